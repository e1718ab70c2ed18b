"""Plugin registry: type parsing, plugin sources and resolution."""

from .registry import PluginRegistry
from .sources import (
    BuiltinPluginSource,
    LocalPluginSource,
    PluginSource,
    PluginVersion,
    RemotePluginSource,
    newest,
)
from .versions import LATEST, PluginRef, parse_plugin_type, version_key

__all__ = [
    "LATEST",
    "BuiltinPluginSource",
    "LocalPluginSource",
    "PluginRef",
    "PluginRegistry",
    "PluginSource",
    "PluginVersion",
    "RemotePluginSource",
    "newest",
    "parse_plugin_type",
    "version_key",
]
