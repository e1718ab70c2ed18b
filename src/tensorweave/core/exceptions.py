"""Custom exceptions for tensorweave."""

from dataclasses import dataclass, field
from typing import Any, Optional


class TensorweaveError(Exception):
    """Base exception for all tensorweave errors."""

    pass


class GraphValidationError(TensorweaveError):
    """Structural problem in a submitted node/edge graph.

    Attributes:
        message (str): The validation error message
        path (str): Dotted path to the invalid field (e.g., "nodes[0].type")
        suggestion (str): Optional suggestion for fixing the error
    """

    def __init__(self, message: str, path: str = "", suggestion: str = ""):
        self.message = message
        self.path = path
        self.suggestion = suggestion

        full_message = "Graph validation error"
        if path:
            full_message += f" at {path}"
        full_message += f": {message}"
        if suggestion:
            full_message += f"\n{suggestion}"

        super().__init__(full_message)


class GraphCycleError(TensorweaveError):
    """Raised when a circular dependency is detected in the graph."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = list(node_ids)
        super().__init__(f"Circular dependency detected involving nodes: {', '.join(self.node_ids)}")


class GraphStructureError(TensorweaveError):
    """Raised when a resolved path has an unexpected shape (e.g. several roots)."""

    def __init__(self, message: str, terminal_node_id: Optional[str] = None, node_ids: Optional[list[str]] = None):
        self.terminal_node_id = terminal_node_id
        self.node_ids = node_ids or []
        super().__init__(message)


class NodeError(TensorweaveError):
    """Error attributable to a single node of the graph.

    Subclasses set ``kind`` so callers can report failures without
    matching on class names.
    """

    kind = "node_error"

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        plugin_type: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.reason = message
        self.node_id = node_id
        self.plugin_type = plugin_type
        self.details = details or {}

        parts = [message]
        if node_id:
            parts.append(f"Node ID: {node_id}")
        if plugin_type:
            parts.append(f"Plugin Type: {plugin_type}")

        super().__init__("\n".join(parts))


class PluginNotFoundError(NodeError):
    """Raised when the registry has no plugin for a type/slug."""

    kind = "plugin_not_found"

    def __init__(self, plugin_type: str, source: Optional[str] = None, node_id: Optional[str] = None):
        self.source = source
        message = f"Plugin '{plugin_type}' not found"
        if source:
            message += f" in {source}"
        super().__init__(message, node_id=node_id, plugin_type=plugin_type)


class PluginLoadError(NodeError):
    """Raised when a plugin module exists but cannot be turned into a plugin."""

    kind = "plugin_load_error"


class SettingsValidationError(NodeError):
    """Raised when a node's settings fail its plugin schema."""

    kind = "settings_invalid"

    def __init__(self, errors: list[Any], node_id: Optional[str] = None, plugin_type: Optional[str] = None):
        self.errors = list(errors)
        summary = "; ".join(str(e) for e in self.errors) or "invalid settings"
        super().__init__(
            f"Settings validation failed: {summary}",
            node_id=node_id,
            plugin_type=plugin_type,
            details={"errors": [e.to_dict() if hasattr(e, "to_dict") else {"message": str(e)} for e in self.errors]},
        )


class ChildrenRequiredError(NodeError):
    """Raised when a structural node receives fewer children than it needs."""

    kind = "children_required"


class CodeGenerationError(NodeError):
    """Raised when a plugin's generate function fails."""

    kind = "generation_failed"


class UndefinedScopedVariableError(NodeError):
    """Raised when a qualified reference names a variable the scope never defined."""

    kind = "undefined_scoped_variable"

    def __init__(self, variable: str, line_number: int, line: str, qualifier: str = "self"):
        self.variable = variable
        self.line_number = line_number
        self.line = line
        super().__init__(
            f"Undefined scoped variable '{qualifier}.{variable}' at line {line_number}: {line.strip()}",
            details={"variable": variable, "line_number": line_number, "line": line},
        )


class FormatterUnavailableError(TensorweaveError):
    """Raised when the external code formatter cannot be run."""

    pass


@dataclass
class ArtifactFailure:
    """Structured reason an artifact could not be produced."""

    artifact_id: str
    reason: str
    kind: str = "node_error"
    node_id: Optional[str] = None
    plugin_type: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(cls, artifact_id: str, error: NodeError) -> "ArtifactFailure":
        return cls(
            artifact_id=artifact_id,
            reason=error.reason,
            kind=error.kind,
            node_id=error.node_id,
            plugin_type=error.plugin_type,
            details=dict(error.details),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"artifactId": self.artifact_id, "kind": self.kind, "reason": self.reason}
        if self.node_id:
            data["nodeId"] = self.node_id
        if self.plugin_type:
            data["pluginType"] = self.plugin_type
        if self.details:
            data["details"] = self.details
        return data
