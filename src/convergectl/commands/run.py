"""Command: named on-demand run commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from convergectl.commands._base import CvgCommand

if TYPE_CHECKING:
    from convergectl.commands._context import AppContext


@click.command(
    cls=CvgCommand,
    context_settings={"ignore_unknown_options": True},
    examples="""\
        convergectl run
        convergectl run deploy
        convergectl run backup --dry-run /srv
        convergectl -t web1 run logs
        convergectl -r 'web*' -y run restart""",
)
@click.argument("name", required=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def run(app: AppContext, name: str | None, args: tuple[str, ...]) -> None:
    """Run a [run.NAME] command (list them when NAME is omitted).

    Extra ARGS are passed to the command as positional parameters.
    """
    from convergectl.services.dispatch import DispatchService

    app.call("run", lambda: DispatchService(app.workspace).run_command(name, args))
