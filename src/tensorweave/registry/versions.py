"""Plugin type strings and version ordering.

Accepted forms::

    linear
    linear:1.0.0
    @namespace/linear
    @namespace/linear:1.0.0
    @namespace/linear:latest
    @namespace/group/linear:1.0.0
"""

import re
from dataclasses import dataclass
from typing import Optional

LATEST = "latest"

_TYPE_PATTERN = re.compile(r"^(?:@(?P<namespace>[^\s:@]+)/)?(?P<name>[^/\s:@]+)(?::(?P<version>[^/\s:]+))?$")


@dataclass(frozen=True)
class PluginRef:
    """Parsed plugin type. ``version`` is None when the latest version is wanted."""

    name: str
    namespace: Optional[str] = None
    version: Optional[str] = None

    @property
    def slug(self) -> str:
        return f"@{self.namespace}/{self.name}" if self.namespace else self.name

    def __str__(self) -> str:
        return f"{self.slug}:{self.version}" if self.version else self.slug


def parse_plugin_type(plugin_type: str) -> PluginRef:
    """Split a node type into namespace, name and version.

    Raises:
        ValueError: If the string is not a valid plugin type
    """
    match = _TYPE_PATTERN.match(plugin_type.strip()) if plugin_type else None
    if not match:
        raise ValueError(f"Invalid plugin type '{plugin_type}'. Expected [@namespace/]name[:version]")
    version = match.group("version")
    if version == LATEST:
        version = None
    return PluginRef(name=match.group("name"), namespace=match.group("namespace"), version=version)


def version_key(version: str) -> tuple:
    """Sort key comparing dotted versions numerically (``1.10.0`` > ``1.9.2``).

    Non-numeric parts sort below numeric ones at the same position.
    """
    key = []
    for part in re.split(r"[.\-+]", version):
        if part.isdigit():
            key.append((1, int(part), ""))
        else:
            key.append((0, 0, part))
    return tuple(key)
