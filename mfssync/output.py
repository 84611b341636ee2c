"""Console output formatting for mfssync."""

import json
from typing import Any, Optional

from rich.console import Console


class OutputFormatter:
    """Writes user-facing output.

    Results and progress lines go to stdout; warnings and errors go to
    stderr so that the final line on stdout is always the root hash (or
    the ``Error: ...`` message).
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        verbosity: int = 0,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit the final result as JSON
            quiet: Suppress informational messages
            verbosity: Detail level for progress lines (0 = none)
            console: Console for stdout (created if not given)
            err_console: Console for stderr (created if not given)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.verbosity = verbosity
        self.console = console or Console(
            highlight=False, emoji=False, soft_wrap=True
        )
        self.err_console = err_console or Console(
            stderr=True, highlight=False, emoji=False, soft_wrap=True
        )

    def print(self, message: str = "") -> None:
        """Print a plain line to stdout."""
        self.console.print(message, markup=False)

    def detail(self, level: int, message: str) -> None:
        """Print a progress line if verbosity is at least ``level``."""
        if self.verbosity >= level:
            self.print(message)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(message, markup=False)

    def success(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        self.err_console.print(message, style="yellow", markup=False)

    def error(self, message: str) -> None:
        self.err_console.print(message, style="bold red", markup=False)

    def output_json(self, data: Any) -> None:
        """Print data as a single JSON line on stdout."""
        self.console.print(json.dumps(data, default=str), markup=False)
