"""Transpiler: graph resolution, code composition and artifact rendering."""

from .composer import CodeComposer, ComposedPath, NodeFragment
from .formatter import CodeFormatter, collapse_blank_lines
from .imports import ImportPlan, apply_alias_renames, merge_imports, plan_imports
from .resolver import ResolvedPath, ancestors, resolve_paths, terminal_nodes, topological_order
from .transpiler import Artifact, Transpiler, TranspileResult, transpile, transpile_async

__all__ = [
    "Artifact",
    "CodeComposer",
    "CodeFormatter",
    "ComposedPath",
    "ImportPlan",
    "NodeFragment",
    "ResolvedPath",
    "TranspileResult",
    "Transpiler",
    "ancestors",
    "apply_alias_renames",
    "collapse_blank_lines",
    "merge_imports",
    "plan_imports",
    "resolve_paths",
    "terminal_nodes",
    "topological_order",
    "transpile",
    "transpile_async",
]
