"""Custom Click base classes and shared parameters.

``CvgCommand`` / ``CvgGroup`` accept an ``examples`` string and expose it
through an eager ``--examples`` flag, keeping ``--help`` short.
:func:`selectors_argument` is the variadic ``SELECTORS`` argument shared by
``apply``, ``check`` and ``plan``.
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from typing import Any, TypeVar

import click

F = TypeVar("F", bound=Callable[..., Any])


def _examples_callback(examples: str) -> Callable[[click.Context, click.Parameter, bool], None]:
    text = textwrap.dedent(examples).strip("\n")

    def show(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(textwrap.indent(text, "  "))
        ctx.exit(0)

    return show


def _with_examples(cmd: click.Command, examples: str | None) -> None:
    if not examples:
        return
    cmd.params.append(
        click.Option(
            ["--examples"],
            is_flag=True,
            expose_value=False,
            is_eager=True,
            callback=_examples_callback(examples),
            help="Show usage examples.",
        )
    )


class CvgCommand(click.Command):
    """Click Command that supports an ``--examples`` flag."""

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        _with_examples(self, examples)


class CvgGroup(click.Group):
    """Click Group that supports ``--examples``; subcommands default to CvgCommand."""

    command_class = CvgCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.examples = examples
        _with_examples(self, examples)


def selectors_argument(func: F) -> F:
    """``[SELECTORS]...``: config keys or ``@label``; none means ``meta.defaults``."""
    return click.argument("selectors", nargs=-1)(func)  # type: ignore[return-value]
