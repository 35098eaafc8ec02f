"""Command: query computed state probes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from convergectl.commands._base import CvgCommand

if TYPE_CHECKING:
    from convergectl.commands._context import AppContext


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl state
        convergectl state os
        convergectl state theme.gtk
        convergectl state os distro --json
        convergectl state os is arch && echo arch
        convergectl state gpu get nvidia amd none""",
)
@click.argument("name", required=False)
@click.argument("args", nargs=-1)
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.pass_obj
def state(app: AppContext, name: str | None, args: tuple[str, ...], json_output: bool) -> None:
    """Show probe values, or test one: NAME is VAL | isnot VAL | get VAL... DEFAULT."""
    from convergectl.services.probes import StateService

    if json_output:
        app.settings = app.settings.model_copy(update={"json_output": True})
    names = (name,) if name else ()
    app.call("state", lambda: StateService(app.workspace).query(names, args))
