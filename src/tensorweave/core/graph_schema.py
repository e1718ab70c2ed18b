"""JSON Schema definitions for the node/edge graph submitted for transpilation.

The graph is what the canvas editor produces: an array of configured plugin
nodes and an array of directed edges between them. This module validates that
shape before the resolver ever looks at it.

Design Decisions:
- **'type' is the plugin identifier**: it may carry a namespace and a version
  (``@namespace/name:version``); the registry interprets it, not the schema.
- **Nodes as array**: order of submission is significant, it is the stable
  tie-break used by the resolver.
- **Editor shape accepted**: nodes saved by the canvas keep their plugin id and
  settings under ``data``; ``normalize_graph`` lifts them to the top level.

Example usage:
    >>> from tensorweave.core import validate_graph
    >>>
    >>> graph = {
    ...     "nodes": [
    ...         {"id": "l1", "type": "linear", "settings": {"inFeatures": 4, "outFeatures": 8}},
    ...         {"id": "out", "type": "end"},
    ...     ],
    ...     "edges": [{"id": "e1", "source": "l1", "target": "out"}],
    ... }
    >>> validate_graph(graph)  # No exception raised

Common Validation Errors:
- Missing 'nodes': Every graph must contain at least one node
- Duplicate node IDs: Each node must have a unique identifier
- Invalid edge references: every 'source' and 'target' must name an existing node
"""

import json
import re
from typing import Any, Union

import jsonschema
from jsonschema import Draft7Validator
from jsonschema import ValidationError as JsonSchemaValidationError

from .exceptions import GraphValidationError

GRAPH_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "nodes": {
            "type": "array",
            "description": "Configured plugin instances",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "minLength": 1, "description": "Unique identifier for the node"},
                    "type": {"type": "string", "minLength": 1, "description": "Plugin identifier"},
                    "settings": {
                        "type": "object",
                        "description": "User supplied plugin settings",
                        "additionalProperties": True,
                    },
                    "position": {"type": "object", "description": "Canvas position, ignored"},
                    "label": {"type": "string"},
                    "route": {"type": "string"},
                    "data": {"type": "object", "additionalProperties": True},
                },
                "required": ["id", "type"],
                "additionalProperties": True,
            },
            "minItems": 1,
        },
        "edges": {
            "type": "array",
            "description": "Directed dependencies: target depends on source",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "source": {"type": "string", "description": "Source node ID"},
                    "target": {"type": "string", "description": "Target node ID"},
                    "sourceHandle": {"type": ["string", "null"]},
                    "targetHandle": {"type": ["string", "null"]},
                },
                "required": ["source", "target"],
                "additionalProperties": True,
            },
            "default": [],
        },
    },
    "required": ["nodes"],
    "additionalProperties": True,
}


def _format_path(path: list) -> str:
    """Format a jsonschema path into a readable string like "nodes[0].type"."""
    formatted = ""
    for i, component in enumerate(path):
        if isinstance(component, int):
            formatted += f"[{component}]"
        else:
            if i > 0:
                formatted += "."
            formatted += str(component)
    return formatted or "root"


def _get_suggestion(error: JsonSchemaValidationError) -> str:
    """Get a helpful suggestion based on the validation error."""
    path_str = str(error.absolute_path)

    if error.validator == "required":
        match = re.search(r"'([^']+)' is a required property", error.message)
        if match:
            return f"Add the required field '{match.group(1)}'"
        return "Add the missing required field"
    elif error.validator == "type":
        expected = error.validator_value
        actual = type(error.instance).__name__
        return f"Change type from '{actual}' to '{expected}'"
    elif error.validator == "minItems":
        if "nodes" in path_str:
            return "Add at least one node to the graph"
    elif error.validator == "minLength":
        return "Use a non-empty string"

    return ""


def validate_graph(data: Union[dict[str, Any], str]) -> None:
    """Validate a submitted graph against the schema.

    Performs structural validation (JSON Schema) followed by reference checks
    (duplicate node ids, edges pointing at unknown nodes).

    Args:
        data: The graph (dict or JSON string)

    Raises:
        GraphValidationError: If the graph is invalid
        ValueError: If JSON parsing fails
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e

    validator = Draft7Validator(GRAPH_SCHEMA)

    try:
        validator.check_schema(GRAPH_SCHEMA)
    except jsonschema.SchemaError as e:
        raise RuntimeError(f"Schema definition error: {e}") from e

    errors = list(validator.iter_errors(data))
    if not errors:
        if isinstance(data, dict):
            _validate_duplicate_node_ids(data)
            _validate_edge_references(data)
        return

    error = errors[0]
    raise GraphValidationError(
        message=error.message,
        path=_format_path(list(error.absolute_path)),
        suggestion=_get_suggestion(error),
    )


def _validate_duplicate_node_ids(data: dict[str, Any]) -> None:
    seen = set()
    for i, node in enumerate(data["nodes"]):
        node_id = node["id"]
        if node_id in seen:
            raise GraphValidationError(
                message=f"Duplicate node ID '{node_id}'",
                path=f"nodes[{i}].id",
                suggestion="Use unique IDs for each node",
            )
        seen.add(node_id)


def _validate_edge_references(data: dict[str, Any]) -> None:
    if not data.get("edges"):
        return

    node_ids = {node["id"] for node in data["nodes"]}

    for i, edge in enumerate(data["edges"]):
        for end in ("source", "target"):
            if edge[end] not in node_ids:
                raise GraphValidationError(
                    message=f"Edge references non-existent node '{edge[end]}'",
                    path=f"edges[{i}].{end}",
                    suggestion=f"Change to one of: {sorted(node_ids)}",
                )


def normalize_graph(graph: dict[str, Any]) -> None:
    """Normalize a graph in place so the rest of the pipeline sees one shape.

    - ``edges`` defaults to ``[]``
    - edges without an id get ``e<index>``
    - canvas nodes keeping ``data.pluginId`` / ``data.pluginSettings`` /
      ``data.label`` are lifted to ``type`` / ``settings`` /
      ``settings.labelName``

    Example:
        >>> g = {"nodes": [{"id": "n1", "type": "custom", "data": {"pluginId": "linear"}}]}
        >>> normalize_graph(g)
        >>> g["nodes"][0]["type"], g["edges"]
        ('linear', [])
    """
    if "edges" not in graph:
        graph["edges"] = []

    for index, edge in enumerate(graph.get("edges") or []):
        if isinstance(edge, dict) and not edge.get("id"):
            edge["id"] = f"e{index}"

    for node in graph.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        data = node.get("data")
        if not isinstance(data, dict):
            continue
        if data.get("pluginId"):
            node["type"] = data["pluginId"]
        if "settings" not in node and isinstance(data.get("pluginSettings"), dict):
            node["settings"] = dict(data["pluginSettings"])
        label = data.get("label") or node.get("label")
        if label and isinstance(node.get("settings", {}), dict):
            node.setdefault("settings", {}).setdefault("labelName", label)
