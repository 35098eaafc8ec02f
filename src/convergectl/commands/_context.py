"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy Workspace initialization and
centralized result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import click

from convergectl.errors import ConvergeError
from convergectl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from convergectl.config.settings import CvgSettings
    from convergectl.services.result import ServiceResult
    from convergectl.workspace import Workspace


def _prompt(message: str) -> bool:
    # Prompts go to stderr so --json stdout stays parseable.
    return click.confirm(message, default=False, err=True)


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``.  The workspace is lazily
    initialized on first use so ``--help`` and ``--examples`` never read
    the config or open the cache database.
    """

    def __init__(self, settings: CvgSettings, *, workspace: Workspace | None = None) -> None:
        self.settings = settings
        self._workspace = workspace

        from convergectl.config.logging import configure_logging

        configure_logging(
            verbose=settings.verbose, log_json=settings.log_json, prepared=settings.prepared
        )

    @property
    def workspace(self) -> Workspace:
        """The workspace (created lazily on first access)."""
        if self._workspace is None:
            from convergectl.workspace import Workspace

            self._workspace = Workspace(self.settings, prompt=_prompt)
        return self._workspace

    def close(self) -> None:
        if self._workspace is not None:
            self._workspace.close()

    def call(self, op: str, func: Callable[[], ServiceResult]) -> None:
        """Run a service call and emit its result.

        A fatal error the service did not turn into a result itself is
        converted here, so every command exits through :meth:`emit`.
        """
        from convergectl.services.result import ServiceResult

        try:
            result = func()
        except ConvergeError as exc:
            result = ServiceResult.failure(op, exc)
        self.emit(result)

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Aborted (``result.error`` set): writes to stderr, exits with code 1.
        * Completed with failures (items, hosts, a false predicate): the
          report still goes to stdout, then exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.error is not None:
            click.echo(output, err=True)
            raise SystemExit(1)
        if output:
            click.echo(output)
        # In JSON mode, warnings are already in the serialized payload.
        if not settings.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)
        if not result.ok:
            raise SystemExit(1)
