"""Command: build or refresh artifacts without reconciling."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from convergectl.commands._base import CvgCommand

if TYPE_CHECKING:
    from convergectl.commands._context import AppContext


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl artifacts
        convergectl -v artifacts""",
)
@click.pass_obj
def artifacts(app: AppContext) -> None:
    """Build stale [[artifact]] entries in the config directory."""
    from convergectl.services.artifacts import ArtifactService

    app.call("artifacts", lambda: ArtifactService(app.workspace).build())
