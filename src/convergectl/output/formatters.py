"""Rich/JSON output helpers.

The CLI renders ServiceResult for humans (Rich output, colors, icons)
or machines (--json). The formatter layer adapts ServiceResult to the
requested output mode.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from convergectl.services.result import ServiceResult


class OutputSettings(BaseModel):
    """The three flags that decide how a result is rendered."""

    model_config = {"frozen": True}

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display.

    JSON wins over quiet; quiet wins over the Rich renderers.
    """
    from convergectl.output.renderers import render_quiet, render_result

    settings = settings or OutputSettings()
    if settings.json_output:
        return result.model_dump_json(indent=2)
    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)
