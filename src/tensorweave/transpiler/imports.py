"""Import aggregation for generated artifacts.

Imports declared by every node on a path are merged into one header:

- ``import x`` / ``import x as y`` lines first, sorted
- then one ``from <path> import ...`` line per module, sorted by module,
  names sorted within the line

When two imports ask for the same alias for different objects, the later
one is renamed (``myAlias`` -> ``my_alias1``) and the rename is recorded for
the node that declared it, so only that node's code is rewritten.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from tensorweave.plugins.contract import ImportSpec

logger = logging.getLogger(__name__)

_TOKEN = re.compile(
    r"(?P<string>\"\"\"[\s\S]*?\"\"\"|'''[\s\S]*?'''|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*')"
    r"|(?P<comment>#[^\n]*)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
)


def snake_alias(alias: str, count: int) -> str:
    """``MyAlias`` -> ``my_alias<count>``."""
    return re.sub(r"([A-Z])", r"_\1", alias).lower().lstrip("_") + str(count)


@dataclass
class _FromGroup:
    plain: set[str] = field(default_factory=set)
    aliased: set[tuple[str, str]] = field(default_factory=set)


@dataclass
class ImportPlan:
    """Merged imports for one artifact plus per-node alias renames."""

    basic: list[tuple[str, Optional[str]]] = field(default_factory=list)
    from_imports: dict[str, _FromGroup] = field(default_factory=dict)
    renames: dict[str, dict[str, str]] = field(default_factory=dict)

    def lines(self) -> list[str]:
        rendered = [f"import {path} as {alias}" if alias else f"import {path}" for path, alias in self.basic]
        for path in sorted(self.from_imports):
            group = self.from_imports[path]
            names = sorted(group.plain) + sorted(f"{item} as {alias}" for item, alias in group.aliased)
            rendered.append(f"from {path} import {', '.join(sorted(names))}")
        return rendered

    def render(self) -> str:
        return "\n".join(self.lines())

    def to_specs(self) -> list[ImportSpec]:
        """The merged imports as specs; planning them again yields the same header."""
        specs = [ImportSpec(path, alias=alias) for path, alias in self.basic]
        for path in sorted(self.from_imports):
            group = self.from_imports[path]
            if group.plain:
                specs.append(ImportSpec(path, items=tuple(sorted(group.plain))))
            if group.aliased:
                specs.append(
                    ImportSpec(
                        path,
                        items=tuple(sorted({item for item, _ in group.aliased})),
                        as_=tuple(sorted(group.aliased)),
                    )
                )
        return specs


def plan_imports(entries: Iterable[tuple[str, ImportSpec]]) -> ImportPlan:
    """Merge imports declared by the nodes of one path.

    Args:
        entries: ``(owner_node_id, import)`` pairs in path order

    Returns:
        ImportPlan with deduplicated imports and alias renames keyed by owner
    """
    plan = ImportPlan()
    basic: set[tuple[str, Optional[str]]] = set()
    # alias (lowercased) -> the (path, item) it names
    claimed: dict[str, tuple[str, Optional[str]]] = {}
    conflicts: dict[str, int] = {}

    def claim(owner: str, alias: str, target: tuple[str, Optional[str]]) -> str:
        key = alias.lower()
        existing = claimed.get(key)
        if existing is None:
            claimed[key] = target
            return alias
        if existing == target:
            return alias
        count = conflicts.get(key, 1)
        conflicts[key] = count + 1
        renamed = snake_alias(alias, count)
        claimed[renamed.lower()] = target
        plan.renames.setdefault(owner, {})[alias] = renamed
        logger.warning(
            f"Import alias '{alias}' already used for {existing[0]}; renamed to '{renamed}' for node {owner}",
            extra={"phase": "imports", "node_id": owner},
        )
        return renamed

    for owner, spec in entries:
        if not spec.path:
            continue
        if not spec.items:
            alias = claim(owner, spec.alias, (spec.path, None)) if spec.alias else None
            basic.add((spec.path, alias))
            continue

        group = plan.from_imports.setdefault(spec.path, _FromGroup())
        for item in spec.items:
            aliases = [a for i, a in spec.as_ if i == item]
            if not aliases:
                group.plain.add(item)
            for alias in aliases:
                group.aliased.add((item, claim(owner, alias, (spec.path, item))))

    plan.basic = sorted(basic, key=lambda pair: (pair[0], pair[1] or ""))
    return plan


def merge_imports(specs: Iterable[ImportSpec]) -> list[ImportSpec]:
    """Deduplicate imports without owner tracking."""
    return plan_imports(("", spec) for spec in specs).to_specs()


def apply_alias_renames(code: str, renames: dict[str, str]) -> str:
    """Rename alias references in code, leaving strings, comments and attributes alone."""
    if not renames:
        return code

    def replace(match: re.Match) -> str:
        name = match.group("name")
        if name is None or name not in renames:
            return match.group(0)
        start = match.start()
        if start > 0 and code[start - 1] == ".":
            return name
        return renames[name]

    return _TOKEN.sub(replace, code)
