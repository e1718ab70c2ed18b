"""Qualify child-layer references inside a generated class body.

Structural plugins that build an ``nn.Module`` assign each child to an
attribute (``self.layer_0``, ``self.layer_1``, ...). Method bodies written by
the user refer to those layers by bare name; this module rewrites the bare
names to the qualified form.

Rules, per identifier matching the layer pattern:

- unqualified and defined: rewritten to ``<qualifier>.<name>``
- qualified and undefined: ``UndefinedScopedVariableError`` with the line
- unqualified and undefined: left as is and logged as a free variable
- attribute of anything other than the qualifier (``x.layer_0``): left as is

String literals and comments are never rewritten.
"""

import logging
import re
from collections.abc import Iterable

from tensorweave.core.exceptions import UndefinedScopedVariableError

logger = logging.getLogger(__name__)

DEFAULT_VARIABLE_PATTERN = r"layer_\d+"
DEFAULT_QUALIFIER = "self"

_TOKEN = re.compile(
    r"(?P<string>\"\"\"[\s\S]*?\"\"\"|'''[\s\S]*?'''|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*')"
    r"|(?P<comment>#[^\n]*)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:[ \t]*\.[ \t]*[A-Za-z_][A-Za-z0-9_]*)*)"
)
_DOT = re.compile(r"[ \t]*\.[ \t]*")
_LAMBDA_PARAMS = re.compile(r"\blambda\b([^:\n]*):")


def _line_at(code: str, offset: int) -> tuple[int, str]:
    line_number = code.count("\n", 0, offset) + 1
    return line_number, code.split("\n")[line_number - 1]


def _follows_attribute_access(code: str, start: int) -> bool:
    """True when the token at ``start`` is preceded by ``.`` (``foo().layer_0``)."""
    i = start - 1
    while i >= 0 and code[i] in " \t":
        i -= 1
    return i >= 0 and code[i] == "."


def _is_parameter_name(code: str, start: int, end: int, lambda_spans: list[tuple[int, int]]) -> bool:
    """True for keyword arguments, parameter defaults (``f(layer_0=1)``) and lambda parameters."""
    if any(lo <= start < hi for lo, hi in lambda_spans):
        return True
    j = end
    while j < len(code) and code[j] in " \t":
        j += 1
    if j >= len(code) or code[j] != "=" or code[j + 1 : j + 2] == "=":
        return False
    i = start - 1
    while i >= 0 and code[i] in " \t\n":
        i -= 1
    return i >= 0 and code[i] in "(,"


def rewrite_scoped_references(
    code: str,
    defined: Iterable[str],
    pattern: str = DEFAULT_VARIABLE_PATTERN,
    qualifier: str = DEFAULT_QUALIFIER,
) -> str:
    """Rewrite bare references to scope-defined variables into qualified ones.

    Args:
        code: Body text to rewrite
        defined: Variable names the enclosing scope defines
        pattern: Regex a name must fully match to be considered a scoped variable
        qualifier: Scope qualifier token (``self`` for generated classes)

    Returns:
        The rewritten code

    Raises:
        UndefinedScopedVariableError: If a qualified reference names an undefined variable
    """
    defined_names = set(defined)
    matcher = re.compile(pattern)
    pieces: list[str] = []
    last = 0
    free: list[str] = []
    lambda_spans = [m.span(1) for m in _LAMBDA_PARAMS.finditer(code)]

    for match in _TOKEN.finditer(code):
        if match.lastgroup != "name":
            continue
        if _follows_attribute_access(code, match.start()):
            continue

        parts = _DOT.split(match.group("name"))
        if parts[0] == qualifier and len(parts) > 1:
            if matcher.fullmatch(parts[1]) and parts[1] not in defined_names:
                line_number, line = _line_at(code, match.start())
                raise UndefinedScopedVariableError(parts[1], line_number, line, qualifier=qualifier)
            continue

        head = parts[0]
        if not matcher.fullmatch(head):
            continue
        if _is_parameter_name(code, match.start(), match.start() + len(head), lambda_spans):
            continue
        if head not in defined_names:
            free.append(head)
            continue

        pieces.append(code[last : match.start()])
        pieces.append(f"{qualifier}.{head}")
        last = match.start() + len(head)

    pieces.append(code[last:])

    if free:
        logger.warning(
            f"Unqualified references to undefined scoped variables left unchanged: {', '.join(sorted(set(free)))}",
            extra={"phase": "scope", "free_variables": sorted(set(free))},
        )
    return "".join(pieces)
