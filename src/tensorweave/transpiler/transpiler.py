"""Graph to PyTorch source transpilation.

Pipeline::

    graph dict -> parse_graph -> resolve_paths -> resolve plugins
              -> CodeComposer (validate, generate, nest) -> imports + body
              -> blank-line cleanup -> external formatter -> artifacts

Graph-level problems (invalid shape, cycles) abort the whole request.
Node-level problems abort only the artifacts whose path contains the node;
the remaining artifacts are still produced and the failures are reported
per artifact.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from tensorweave.core.exceptions import ArtifactFailure, GraphStructureError, NodeError
from tensorweave.core.graph import Graph, parse_graph
from tensorweave.core.settings import TensorweaveSettings
from tensorweave.plugins.contract import Plugin
from tensorweave.registry import PluginRegistry

from .composer import CodeComposer, ComposedPath
from .formatter import CodeFormatter, collapse_blank_lines
from .imports import plan_imports
from .resolver import ResolvedPath, resolve_paths

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    """Generated source for one terminal node."""

    artifact_id: str
    terminal_node_id: str
    code: str
    path: list[str]
    imports: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifactId": self.artifact_id,
            "terminalNodeId": self.terminal_node_id,
            "code": self.code,
            "path": list(self.path),
            "imports": list(self.imports),
        }


@dataclass
class TranspileResult:
    """Outcome of one transpilation request.

    ``paths`` covers every terminal node, including failed ones, so callers
    can show which nodes an artifact depended on.
    """

    artifacts: dict[str, Artifact] = field(default_factory=dict)
    paths: dict[str, list[str]] = field(default_factory=dict)
    failures: dict[str, ArtifactFailure] = field(default_factory=dict)
    errors_by_node: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures

    def code(self, artifact_id: str) -> str:
        return self.artifacts[artifact_id].code

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifacts": {artifact_id: artifact.code for artifact_id, artifact in self.artifacts.items()},
            "paths": {artifact_id: list(path) for artifact_id, path in self.paths.items()},
            "errorsByArtifactId": {artifact_id: f.to_dict() for artifact_id, f in self.failures.items()},
            "errorsByNodeId": dict(self.errors_by_node),
        }


def _path_types(graph: Graph, paths: list[ResolvedPath]) -> list[str]:
    """Distinct node types on any path, in submission order."""
    on_path = {node_id for path in paths for node_id in path.node_ids}
    return list(dict.fromkeys(node.type for node in graph.nodes if node.id in on_path))


def _resolve_plugins(registry: PluginRegistry, node_types: list[str]) -> dict[str, Union[Plugin, NodeError]]:
    plugins: dict[str, Union[Plugin, NodeError]] = {}
    for node_type in node_types:
        try:
            plugins[node_type] = registry.resolve(node_type)
        except NodeError as e:
            logger.debug(f"Could not resolve plugin {node_type}: {e.reason}", extra={"phase": "registry"})
            plugins[node_type] = e
    return plugins


class Transpiler:
    """Turns a parsed graph plus resolved plugins into artifacts."""

    def __init__(
        self,
        settings: Optional[TensorweaveSettings] = None,
        formatter: Optional[CodeFormatter] = None,
        format_code: Optional[bool] = None,
    ):
        self.settings = settings or TensorweaveSettings()
        self.formatter = formatter or CodeFormatter.from_settings(self.settings.formatter)
        if format_code is not None:
            self.formatter.enabled = format_code

    def _check_roots(self, composer: CodeComposer, path: ResolvedPath) -> None:
        flow_roots = [root for root in path.roots if not composer.is_nested(root, path)]
        if len(flow_roots) <= 1:
            return
        message = f"Path ending at '{path.terminal_id}' has {len(flow_roots)} root nodes: {', '.join(flow_roots)}"
        if self.settings.resolver.multi_root == "error":
            raise GraphStructureError(message, terminal_node_id=path.terminal_id, node_ids=flow_roots)
        logger.warning(message, extra={"phase": "resolve", "node_id": path.terminal_id})

    def render(self, composer: CodeComposer, composed: ComposedPath) -> Artifact:
        """Merge imports, apply alias renames and format one composed path.

        Raises:
            NodeError: If alias renames cannot be applied to a node's code
        """
        plan = plan_imports(composed.imports)
        body = [composer.renamed_code(f.node_id, plan.renames) for f in composed.statements]

        header = plan.render()
        code = "\n\n".join(part for part in (header, "\n".join(body)) if part)
        code = collapse_blank_lines(code)
        code = self.formatter.format_or_passthrough(code + "\n")

        return Artifact(
            artifact_id=composed.path.artifact_id,
            terminal_node_id=composed.path.terminal_id,
            code=code,
            path=list(composed.path.node_ids),
            imports=plan.lines(),
        )

    def run(
        self, graph: Graph, plugins: dict[str, Union[Plugin, NodeError]], paths: list[ResolvedPath]
    ) -> TranspileResult:
        result = TranspileResult()
        composer = CodeComposer(graph, plugins)

        for path in paths:
            artifact_id = path.artifact_id
            result.paths[artifact_id] = list(path.node_ids)
            try:
                self._check_roots(composer, path)
                composed = composer.compose(path)
                artifact = self.render(composer, composed)
            except NodeError as e:
                failure = ArtifactFailure.from_error(artifact_id, e)
                result.failures[artifact_id] = failure
                if e.node_id:
                    result.errors_by_node.setdefault(e.node_id, e.reason)
                logger.warning(
                    f"Artifact {artifact_id} failed at node {e.node_id}: {e.reason}",
                    extra={"phase": "compose", "node_id": e.node_id},
                )
                continue
            except GraphStructureError as e:
                result.failures[artifact_id] = ArtifactFailure(
                    artifact_id=artifact_id,
                    reason=str(e),
                    kind="graph_structure",
                    node_id=path.terminal_id,
                    details={"roots": e.node_ids},
                )
                continue

            result.artifacts[artifact_id] = artifact

        logger.info(
            f"Transpiled {len(result.artifacts)} artifact(s), {len(result.failures)} failed",
            extra={"phase": "transpile"},
        )
        return result


def _prepare(
    graph: Union[Graph, dict[str, Any], str],
    registry: Optional[PluginRegistry],
    settings: Optional[TensorweaveSettings],
) -> tuple[Graph, PluginRegistry, list[ResolvedPath]]:
    parsed = parse_graph(graph)
    paths = resolve_paths(parsed)
    return parsed, registry or PluginRegistry.from_settings(settings), paths


def transpile(
    graph: Union[Graph, dict[str, Any], str],
    registry: Optional[PluginRegistry] = None,
    settings: Optional[TensorweaveSettings] = None,
    format_code: Optional[bool] = None,
) -> TranspileResult:
    """Transpile a node/edge graph into one source artifact per terminal node.

    Args:
        graph: Graph dict, JSON string or parsed Graph
        registry: Plugin registry; defaults to one built from ``settings``
        settings: Configuration; defaults to TensorweaveSettings()
        format_code: Override ``settings.formatter.enabled``

    Returns:
        TranspileResult with artifacts and per-artifact failures

    Raises:
        GraphValidationError: If the graph is structurally invalid
        GraphCycleError: If the graph contains a cycle
    """
    parsed, registry, paths = _prepare(graph, registry, settings)
    plugins = _resolve_plugins(registry, _path_types(parsed, paths))
    return Transpiler(settings, format_code=format_code).run(parsed, plugins, paths)


async def transpile_async(
    graph: Union[Graph, dict[str, Any], str],
    registry: Optional[PluginRegistry] = None,
    settings: Optional[TensorweaveSettings] = None,
    format_code: Optional[bool] = None,
) -> TranspileResult:
    """``transpile`` with plugin types fetched concurrently.

    Cancelling the caller cancels outstanding fetches; nothing partial is returned.
    """
    parsed, registry, paths = _prepare(graph, registry, settings)
    plugins = await registry.prefetch(_path_types(parsed, paths))
    return Transpiler(settings, format_code=format_code).run(parsed, plugins, paths)
