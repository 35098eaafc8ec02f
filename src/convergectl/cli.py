"""Root CLI group for convergectl with global flags and command registration."""

from __future__ import annotations

import click

from convergectl import __version__
from convergectl.commands import register_commands
from convergectl.commands._base import CvgGroup
from convergectl.commands._context import AppContext
from convergectl.config.settings import CvgSettings
from convergectl.errors import ConfigError


@click.group(
    cls=CvgGroup,
    invoke_without_command=True,
    examples="""\
        convergectl apply
        convergectl -c ~/dotfiles/converge check
        convergectl -r 'web*' --yes apply base
        convergectl --json state""",
)
@click.version_option(version=__version__, prog_name="convergectl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("--no-interact", is_flag=True, help="Non-interactive mode (decline prompts).")
@click.option("-y", "--yes", "assume_yes", is_flag=True, help="Accept every confirmation prompt.")
@click.option("-c", "--config", "config_path", default=None, help="Config file or directory.")
@click.option("-t", "--target", default=None, metavar="HOST", help="Run on one remote host.")
@click.option(
    "-r", "--remotes", default=None, metavar="PATTERN", help="Run on inventory hosts matching."
)
@click.option("--prepared", is_flag=True, hidden=True)
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    no_interact: bool,
    assume_yes: bool,
    config_path: str | None,
    target: str | None,
    remotes: str | None,
    prepared: bool,
) -> None:
    """convergectl: declarative convergence for machines and small fleets."""
    ctx.ensure_object(dict)
    try:
        settings = CvgSettings.from_cli(
            config_path=config_path,
            json_output=json_output,
            quiet=quiet,
            verbose=verbose,
            log_json=log_json,
            no_interact=no_interact,
            assume_yes=assume_yes,
            target=target,
            remotes=remotes,
            prepared=prepared,
        )
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    app = AppContext(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
