"""Rich Console factory and theme for convergectl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

CVG_THEME = Theme(
    {
        "cvg.ok": "bold green",
        "cvg.error": "bold red",
        "cvg.warning": "bold yellow",
        "cvg.op": "bold cyan",
        "cvg.key": "dim",
        "cvg.host": "bold blue",
        "cvg.path": "dim",
        "cvg.title": "bold",
        "cvg.status.changed": "green",
        "cvg.status.unchanged": "dim",
        "cvg.status.failed": "bold red",
        "cvg.status.skipped": "dim yellow",
        "cvg.status.issue": "yellow",
        "cvg.status.passed": "green",
        "cvg.status.satisfied": "green",
        "cvg.status.missing": "yellow",
        "cvg.status.planned": "cyan",
    }
)

_STATUS_ICONS: dict[str, str] = {
    "changed": "+",
    "unchanged": "✓",
    "failed": "✗",
    "skipped": "-",
    "issue": "!",
    "passed": "✓",
    "satisfied": "✓",
    "missing": "✗",
    "planned": "•",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=CVG_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Return the Rich style name for an item outcome status."""
    return f"cvg.status.{status}" if status in _STATUS_ICONS else ""


def icon_for_status(status: str) -> str:
    return _STATUS_ICONS.get(status, "?")
