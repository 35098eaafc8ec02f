"""Subcommand modules for convergectl.

Provides register_commands() which uses deferred imports to keep
``convergectl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register every standalone command on the root CLI group."""
    # --- Reconciliation ---
    from convergectl.commands.apply import apply, check, plan

    cli.add_command(apply)
    cli.add_command(check)
    cli.add_command(plan)

    # --- Probes, run commands, artifacts ---
    from convergectl.commands.artifacts import artifacts
    from convergectl.commands.run import run
    from convergectl.commands.state import state

    cli.add_command(state)
    cli.add_command(run)
    cli.add_command(artifacts)

    # --- Fleet and ad-hoc ---
    from convergectl.commands.hosts import hosts
    from convergectl.commands.install import install

    cli.add_command(hosts)
    cli.add_command(install)
