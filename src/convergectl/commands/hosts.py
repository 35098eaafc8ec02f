"""Command: list inventory hosts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from convergectl.commands._base import CvgCommand

if TYPE_CHECKING:
    from convergectl.commands._context import AppContext


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl hosts
        convergectl hosts 'web*'
        convergectl -q hosts 'db-*'""",
)
@click.argument("pattern", required=False)
@click.pass_obj
def hosts(app: AppContext, pattern: str | None) -> None:
    """List inventory.ini hosts, optionally filtered by a glob PATTERN."""
    from convergectl.services.dispatch import DispatchService

    app.call("hosts", lambda: DispatchService(app.workspace).hosts(pattern))
