"""Command: install packages inline, without a config file."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from convergectl.commands._base import CvgCommand

if TYPE_CHECKING:
    from convergectl.commands._context import AppContext


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl install cargo.bat
        convergectl install os.htop apt.jq pipx.ruff
        convergectl install cargo.ripgrep:rg""",
)
@click.argument("specs", nargs=-1, required=True)
@click.pass_obj
def install(app: AppContext, specs: tuple[str, ...]) -> None:
    """Install packages given as MANAGER.PACKAGE[:BINARY] specs."""
    from convergectl.services.reconcile import ReconcileService

    app.call("install", lambda: ReconcileService(app.workspace).install(specs))
