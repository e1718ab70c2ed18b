"""Artifact post-processing: blank-line cleanup and the external formatter."""

import logging
import subprocess
from collections.abc import Sequence
from typing import Optional

from tensorweave.core.exceptions import FormatterUnavailableError
from tensorweave.core.settings import FormatterSettings

logger = logging.getLogger(__name__)


def collapse_blank_lines(code: str) -> str:
    """Collapse runs of blank lines into one and trim the result."""
    lines: list[str] = []
    previous_blank = False
    for line in code.split("\n"):
        blank = not line.strip()
        if blank and previous_blank:
            continue
        lines.append("" if blank else line.rstrip())
        previous_blank = blank
    return "\n".join(lines).strip()


class CodeFormatter:
    """Runs an external formatter (black by default) over generated source.

    The formatter reads the source on stdin and writes the result to stdout.
    """

    def __init__(self, command: Optional[Sequence[str]] = None, timeout: float = 20.0, enabled: bool = True):
        self.command = list(command) if command else ["black", "--quiet", "-"]
        self.timeout = timeout
        self.enabled = enabled

    @classmethod
    def from_settings(cls, settings: FormatterSettings) -> "CodeFormatter":
        return cls(command=settings.command, timeout=settings.timeout, enabled=settings.enabled)

    def format(self, source: str) -> str:
        """Format source code.

        Raises:
            FormatterUnavailableError: If the formatter is missing, times out or rejects the source
        """
        try:
            result = subprocess.run(self.command, input=source, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise FormatterUnavailableError(f"Formatter '{self.command[0]}' is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise FormatterUnavailableError(f"Formatter timed out after {self.timeout} seconds") from e

        if result.returncode != 0:
            raise FormatterUnavailableError(
                f"Formatter exited with code {result.returncode}: {result.stderr.strip()[:500]}"
            )
        return result.stdout

    def format_or_passthrough(self, source: str) -> str:
        """Best effort ``format``: on failure, log a warning and return ``source`` unchanged."""
        if not self.enabled:
            return source
        try:
            return self.format(source)
        except FormatterUnavailableError as e:
            logger.warning(f"Returning unformatted code: {e}", extra={"phase": "format"})
            return source
