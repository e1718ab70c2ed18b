"""Code composition: per-node fragments and per-path artifact bodies.

The composer walks a resolved path in order and generates each node once.
Fragments and failures are memoized per node, so a node shared by several
paths is generated a single time and a failing node fails every path that
contains it.

Structural plugins (``definition.structural``) receive the fragments of
their child edges as a list and nest them; those children are then not
emitted as top-level statements. Every other plugin receives the fragments
of its direct predecessors (None, one string, or a list) and is sequenced.
"""

import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Optional, Union

from tensorweave.core.exceptions import (
    ChildrenRequiredError,
    CodeGenerationError,
    NodeError,
    SettingsValidationError,
)
from tensorweave.core.graph import Edge, Graph, Node
from tensorweave.plugins.contract import Children, GenerationContext, ImportSpec, InputRef, Plugin

from .imports import apply_alias_renames
from .resolver import ResolvedPath

logger = logging.getLogger(__name__)

_ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*=(?!=)")


@dataclass(frozen=True)
class NodeFragment:
    node_id: str
    code: str
    imports: tuple[ImportSpec, ...] = ()
    variable: Optional[str] = None


@dataclass(frozen=True)
class ComposedPath:
    """Unformatted pieces of one artifact, before import merging."""

    path: ResolvedPath
    statements: tuple[NodeFragment, ...]
    imports: tuple[tuple[str, ImportSpec], ...]


def _assigned_variable(code: str) -> Optional[str]:
    """Name assigned by the fragment's last statement line, if any."""
    for line in reversed(code.strip().split("\n")):
        if line.strip():
            match = _ASSIGNMENT.match(line)
            return match.group(1) if match else None
    return None


def _with_node(error: NodeError, node: Node) -> NodeError:
    """Attach node attribution to an error raised without it."""
    if error.node_id == node.id and error.plugin_type:
        return error
    # Resolution errors are shared by every node of a type; attribute a copy
    attributed = error.__class__.__new__(error.__class__)
    attributed.__dict__.update(error.__dict__)
    NodeError.__init__(
        attributed,
        error.reason,
        node_id=error.node_id or node.id,
        plugin_type=error.plugin_type or node.type,
        details=error.details,
    )
    return attributed


class CodeComposer:
    """Generates fragments for the nodes of one graph.

    Args:
        graph: The parsed graph
        plugins: Node type -> resolved plugin, or the NodeError explaining why it could not be resolved
        global_context: Passed unchanged to every plugin via GenerationContext
    """

    def __init__(
        self,
        graph: Graph,
        plugins: Mapping[str, Union[Plugin, NodeError]],
        global_context: Optional[dict] = None,
    ):
        self.graph = graph
        self.plugins = plugins
        self.global_context = dict(global_context or {})
        self._fragments: dict[str, NodeFragment] = {}
        self._errors: dict[str, NodeError] = {}

    @property
    def errors(self) -> dict[str, NodeError]:
        return dict(self._errors)

    def _plugin_for(self, node_type: str) -> Optional[Plugin]:
        resolved = self.plugins.get(node_type)
        return resolved if isinstance(resolved, Plugin) else None

    def is_structural(self, node_id: str) -> bool:
        plugin = self._plugin_for(self.graph.node(node_id).type)
        return plugin is not None and plugin.definition.structural

    def is_child_edge(self, edge: Edge) -> bool:
        return not edge.is_flow_edge and self.is_structural(edge.target)

    def child_edges(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.graph.incoming(node_id) if self.is_child_edge(edge)]

    def is_nested(self, node_id: str, path: ResolvedPath) -> bool:
        """True when every outgoing edge of the node within ``path`` feeds a child slot."""
        members = set(path.node_ids)
        outgoing = [edge for edge in self.graph.outgoing(node_id) if edge.target in members]
        return bool(outgoing) and all(self.is_child_edge(edge) for edge in outgoing)

    def _children(self, node: Node, plugin: Plugin) -> Children:
        if plugin.definition.structural:
            children = [self._fragments[edge.source].code for edge in self.child_edges(node.id)]
            if len(children) < plugin.definition.min_children:
                raise ChildrenRequiredError(
                    f"Structural node requires at least {plugin.definition.min_children} child node(s), "
                    f"got {len(children)}",
                    node_id=node.id,
                    plugin_type=node.type,
                    details={"min_children": plugin.definition.min_children, "children": len(children)},
                )
            return children

        fragments = [self._fragments[edge.source].code for edge in self.graph.incoming(node.id)]
        if not fragments:
            return None
        if len(fragments) == 1:
            return fragments[0]
        return fragments

    def _context(self, node: Node) -> GenerationContext:
        input_data = {}
        for i, edge in enumerate(self.graph.incoming(node.id)):
            source = self.graph.node(edge.source)
            input_data[i] = InputRef(
                node_id=source.id,
                plugin_type=source.type,
                variable=self._fragments[source.id].variable,
                handle=edge.target_handle,
            )
        return GenerationContext(
            node_id=node.id, plugin_type=node.type, input_data=input_data, global_context=self.global_context
        )

    def _generate(self, node: Node) -> NodeFragment:
        resolved = self.plugins.get(node.type)
        if isinstance(resolved, NodeError):
            raise _with_node(resolved, node)
        if resolved is None:
            raise NodeError(f"No plugin resolved for type '{node.type}'", node_id=node.id, plugin_type=node.type)
        plugin = resolved

        validation = plugin.validate_settings(node.settings)
        if not validation.is_valid:
            raise SettingsValidationError(validation.errors, node_id=node.id, plugin_type=node.type)

        children = self._children(node, plugin)
        code = self._invoke(node, plugin, validation.settings, children)
        return NodeFragment(
            node_id=node.id,
            code=code,
            imports=tuple(plugin.declared_imports(validation.settings)),
            variable=_assigned_variable(code),
        )

    def _invoke(self, node: Node, plugin: Plugin, settings: dict, children: Children) -> str:
        context = self._context(node)
        try:
            code = plugin.get_translation_code(settings, children, context)
        except NodeError as e:
            attributed = _with_node(e, node)
            if attributed is e:
                raise
            raise attributed from e
        except Exception as e:
            raise CodeGenerationError(
                f"Plugin failed to generate code: {e}",
                node_id=node.id,
                plugin_type=node.type,
                details={"exception": type(e).__name__},
            ) from e

        if not isinstance(code, str):
            raise CodeGenerationError(
                f"Plugin returned {type(code).__name__} instead of source text",
                node_id=node.id,
                plugin_type=node.type,
            )
        return code

    def fragment(self, node_id: str) -> NodeFragment:
        """Generate (or recall) one node's fragment.

        Predecessors must already have been generated; walking a resolved
        path in order guarantees that.

        Raises:
            NodeError: If the node, or an earlier failure recorded for it, prevents generation
        """
        if node_id in self._errors:
            raise self._errors[node_id]
        cached = self._fragments.get(node_id)
        if cached is not None:
            return cached

        node = self.graph.node(node_id)
        try:
            fragment = self._generate(node)
        except NodeError as e:
            self._errors[node_id] = e
            logger.debug(f"Node {node_id} failed: {e.reason}", extra={"phase": "compose", "node_id": node_id})
            raise
        self._fragments[node_id] = fragment
        return fragment

    def compose(self, path: ResolvedPath) -> ComposedPath:
        """Generate every node of a path, stopping at the first failure.

        Raises:
            NodeError: The first node failure on the path
        """
        statements: list[NodeFragment] = []
        imports: list[tuple[str, ImportSpec]] = []
        for node_id in path.node_ids:
            fragment = self.fragment(node_id)
            imports.extend((node_id, spec) for spec in fragment.imports)
            if fragment.code.strip() and not self.is_nested(node_id, path):
                statements.append(fragment)
        return ComposedPath(path=path, statements=tuple(statements), imports=tuple(imports))

    def _nested_descendants(self, node_id: str) -> Iterator[str]:
        if not self.is_structural(node_id):
            return
        for edge in self.child_edges(node_id):
            yield edge.source
            yield from self._nested_descendants(edge.source)

    def renamed_code(self, node_id: str, renames: Mapping[str, Mapping[str, str]]) -> str:
        """A node's code with alias renames applied to each node's own text.

        Renames belong to the node that declared the import. When a nested
        child is renamed, its structural parent is generated again from the
        renamed child fragments.

        Raises:
            CodeGenerationError: If a renamed alias of a structural node is also bound by one of its nested children
        """
        node = self.graph.node(node_id)
        fragment = self.fragment(node_id)
        own = dict(renames.get(node_id, {}))
        descendants = list(self._nested_descendants(node_id))

        shared = sorted(set(own) & self._bound_aliases(descendants, renames))
        if shared:
            raise CodeGenerationError(
                f"Import alias '{shared[0]}' names different modules in this node and its nested children",
                node_id=node_id,
                plugin_type=node.type,
                details={"aliases": shared},
            )

        code = fragment.code
        if any(renames.get(descendant) for descendant in descendants):
            plugin = self._plugin_for(node.type)
            children = [self.renamed_code(edge.source, renames) for edge in self.child_edges(node_id)]
            code = self._invoke(node, plugin, plugin.validate_settings(node.settings).settings, children)
        return apply_alias_renames(code, own)

    def _bound_aliases(self, node_ids: list[str], renames: Mapping[str, Mapping[str, str]]) -> set[str]:
        """Alias names the given nodes' imports bind once renames are applied."""
        bound: set[str] = set()
        for node_id in node_ids:
            node_renames = renames.get(node_id, {})
            for spec in self.fragment(node_id).imports:
                aliases = [spec.alias] if spec.alias else [alias for _, alias in spec.as_]
                bound.update(node_renames.get(alias, alias) for alias in aliases)
        return bound
