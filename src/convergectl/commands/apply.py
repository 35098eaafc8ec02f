"""Commands: apply, check and plan — the three reconciliation modes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from convergectl.commands._base import CvgCommand, selectors_argument
from convergectl.domain.types import Mode

if TYPE_CHECKING:
    from convergectl.commands._context import AppContext


def _converge(app: AppContext, mode: Mode, selectors: tuple[str, ...]) -> None:
    from convergectl.services.dispatch import DispatchService

    app.call(mode.value, lambda: DispatchService(app.workspace).converge(mode, selectors))


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl apply
        convergectl apply tools shell
        convergectl apply @workstation
        convergectl -t web1 apply
        convergectl -r 'web*' -y apply base""",
)
@selectors_argument
@click.pass_obj
def apply(app: AppContext, selectors: tuple[str, ...]) -> None:
    """Converge the selected configs: check each item and apply what differs."""
    _converge(app, Mode.APPLY, selectors)


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl check
        convergectl check @server
        convergectl --json check tools""",
)
@selectors_argument
@click.pass_obj
def check(app: AppContext, selectors: tuple[str, ...]) -> None:
    """Report which items are satisfied or missing without changing anything."""
    _converge(app, Mode.CHECK, selectors)


@click.command(
    cls=CvgCommand,
    examples="""\
        convergectl plan
        convergectl plan @desktop""",
)
@selectors_argument
@click.pass_obj
def plan(app: AppContext, selectors: tuple[str, ...]) -> None:
    """List the items a run would consider, after run_if gating."""
    _converge(app, Mode.PLAN, selectors)
