"""Core tensorweave modules for graph representation, validation and settings."""

from .exceptions import (
    ArtifactFailure,
    ChildrenRequiredError,
    CodeGenerationError,
    FormatterUnavailableError,
    GraphCycleError,
    GraphStructureError,
    GraphValidationError,
    NodeError,
    PluginLoadError,
    PluginNotFoundError,
    SettingsValidationError,
    TensorweaveError,
    UndefinedScopedVariableError,
)
from .graph import END_NODE_TYPES, FLOW_INPUT_HANDLE, START_NODE_TYPES, Edge, Graph, Node, parse_graph
from .graph_schema import GRAPH_SCHEMA, normalize_graph, validate_graph
from .settings import SettingsManager, TensorweaveSettings

__all__ = [
    "END_NODE_TYPES",
    "FLOW_INPUT_HANDLE",
    "GRAPH_SCHEMA",
    "START_NODE_TYPES",
    "ArtifactFailure",
    "ChildrenRequiredError",
    "CodeGenerationError",
    "Edge",
    "FormatterUnavailableError",
    "Graph",
    "GraphCycleError",
    "GraphStructureError",
    "GraphValidationError",
    "Node",
    "NodeError",
    "PluginLoadError",
    "PluginNotFoundError",
    "SettingsManager",
    "SettingsValidationError",
    "TensorweaveError",
    "TensorweaveSettings",
    "UndefinedScopedVariableError",
    "normalize_graph",
    "parse_graph",
    "validate_graph",
]
