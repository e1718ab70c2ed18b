"""Plugins shipped with tensorweave."""

from ..contract import Plugin
from .containers import nn_module, sequential
from .custom import class_node, custom_code
from .layers import conv2d, dropout, flatten, linear, relu
from .markers import end, start
from .training import adam, cross_entropy_loss, dataloader, sgd

BUILTIN_PLUGINS: tuple[Plugin, ...] = (
    start,
    end,
    linear,
    relu,
    conv2d,
    flatten,
    dropout,
    sequential,
    nn_module,
    cross_entropy_loss,
    sgd,
    adam,
    dataloader,
    custom_code,
    class_node,
)

# Type names the canvas editor uses for the same plugins
BUILTIN_ALIASES: dict[str, str] = {
    "@tensorify/core/StartNode": "start",
    "@tensorify/core/EndNode": "end",
    "@tensorify/core/CustomCodeNode": "custom-code",
    "@tensorify/core/ClassNode": "class",
}

__all__ = ["BUILTIN_ALIASES", "BUILTIN_PLUGINS"]
