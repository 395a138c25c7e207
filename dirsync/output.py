"""Console output formatting for the dirsync CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user-facing output using Rich.

    Informational output is suppressed in quiet mode and in JSON mode,
    where only ``output_json`` writes to stdout. Warnings and errors always
    go to stderr.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Whether to emit machine readable JSON only
            quiet: Whether to suppress non-essential output
            console: Console for regular output (defaults to stdout)
            err_console: Console for warnings and errors (defaults to stderr)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    @property
    def silent(self) -> bool:
        """Whether informational output is suppressed."""
        return self.quiet or self.json_output

    def print(self, message: str = "", style: Optional[str] = None) -> None:
        """Print a plain message."""
        if not self.silent:
            self.console.print(message, style=style, markup=False, soft_wrap=True)

    def info(self, message: str) -> None:
        """Print an informational message."""
        self.print(message)

    def success(self, message: str) -> None:
        """Print a success message in green."""
        self.print(message, style="green")

    def highlight(self, message: str) -> None:
        """Print a section header in magenta."""
        self.print(message, style="bold magenta")

    def warning(self, message: str) -> None:
        """Print a warning message in yellow."""
        self.err_console.print(
            f"Warning: {message}", style="yellow", markup=False, soft_wrap=True
        )

    def error(self, message: str) -> None:
        """Print an error message in red."""
        self.err_console.print(
            f"Error: {message}", style="red", markup=False, soft_wrap=True
        )

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two-column summary table.

        Args:
            title: Table title
            items: (label, value) rows
        """
        if self.silent:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)

    def output_json(self, data: Any) -> None:
        """Write data as JSON to stdout."""
        self.console.print_json(json.dumps(data))
