"""Helpers shared by plugin generate functions."""

import json
import re
from collections.abc import Mapping
from typing import Any, Optional

from .contract import Children, PluginDefinition

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def python_literal(value: Any, allow_identifiers: bool = False) -> str:
    """Render a settings value as Python source.

    Args:
        value: JSON-like value from settings
        allow_identifiers: Treat identifier-looking strings (``model.parameters``)
            as references instead of string literals

    Raises:
        TypeError: For values that have no Python literal form
    """
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        if allow_identifiers and _IDENTIFIER.match(value):
            return value
        return json.dumps(value)
    if isinstance(value, tuple):
        items = ", ".join(python_literal(v, allow_identifiers) for v in value)
        return f"({items},)" if len(value) == 1 else f"({items})"
    if isinstance(value, list):
        return "[" + ", ".join(python_literal(v, allow_identifiers) for v in value) + "]"
    if isinstance(value, Mapping):
        entries = ", ".join(f"{json.dumps(str(k))}: {python_literal(v, allow_identifiers)}" for k, v in value.items())
        return f"{{{entries}}}"
    raise TypeError(f"Unsupported parameter type: {type(value).__name__}")


def indent(code: str, levels: int = 1) -> str:
    """Indent non-blank lines by ``levels`` * 4 spaces."""
    if not code or levels <= 0:
        return code
    prefix = "    " * levels
    return "\n".join(prefix + line if line.strip() else line for line in code.split("\n"))


def children_list(children: Children) -> list[str]:
    """Normalize the children argument to a list of fragments."""
    if children is None:
        return []
    if isinstance(children, str):
        return [children]
    return list(children)


def strip_assignment(fragment: str) -> str:
    """``x = torch.nn.ReLU()`` -> ``torch.nn.ReLU()``; other fragments unchanged.

    Used when a child that emitted a variable is nested as an argument.
    """
    text = fragment.strip()
    match = re.match(r"^[A-Za-z_][A-Za-z0-9_]*\s*=(?!=)\s*", text)
    if match:
        return text[match.end() :]
    return text


def build_call(callable_path: str, args: list[str], kwargs: Optional[dict[str, str]] = None) -> str:
    parts = list(args)
    parts.extend(f"{k}={v}" for k, v in (kwargs or {}).items())
    return f"{callable_path}({', '.join(parts)})"


def build_layer_constructor(
    callable_path: str,
    required: Mapping[str, Any],
    optional: Optional[Mapping[str, Any]] = None,
    defaults: Optional[Mapping[str, Any]] = None,
) -> str:
    """Build ``callable(required..., optional=...)``, dropping optionals equal to their default."""
    args = [python_literal(v) for v in required.values()]
    kwargs: dict[str, str] = {}
    defaults = defaults or {}
    for key, value in (optional or {}).items():
        if value is None:
            continue
        if key in defaults and defaults[key] == value:
            continue
        kwargs[key] = python_literal(value)
    return build_call(callable_path, args, kwargs)


def emitted_variable_name(definition: PluginDefinition, settings: Mapping[str, Any], name_key: str) -> Optional[str]:
    """Variable name the node assigns to, or None when emission is switched off.

    ``name_key`` is the settings key holding the user chosen name; the
    definition's first emitted variable provides the toggle and fallback.
    """
    if not definition.emits_variables:
        return None
    variable = definition.emits_variables[0]
    toggle_key = variable.toggle_key
    enabled = bool(settings.get(toggle_key, variable.is_on_by_default)) if toggle_key else True
    if not enabled:
        return None
    return str(settings.get(name_key) or variable.value)


def assign_or_expression(expression: str, variable: Optional[str]) -> str:
    return f"{variable} = {expression}" if variable else expression
