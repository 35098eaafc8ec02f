"""Pluggy hook specifications for convergectl run events.

Hooks are called synchronously after the event they describe. A plugin
that raises is logged and reported as a warning; the run continues.
"""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("convergectl")
hookimpl = pluggy.HookimplMarker("convergectl")


class ConvergectlHookSpec:
    """Hook specifications for the convergectl plugin system."""

    @hookspec
    def post_item(
        self,
        host: str,
        identity: str,
        kind: str,
        status: str,
        detail: str,
    ) -> None:
        """Called after each item's outcome is decided (including skips)."""

    @hookspec
    def post_run(
        self,
        host: str,
        mode: str,
        ok: bool,
        counts: dict[str, int],
    ) -> None:
        """Called once a reconciliation pass on one host has finished."""

    @hookspec
    def post_artifact(self, name: str, built: bool) -> None:
        """Called per artifact after the build pre-pass; ``built`` is False when fresh."""
