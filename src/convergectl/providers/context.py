"""Per-run context threaded into every provider call."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypeVar

from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.domain.probes import ProbeResult
from convergectl.domain.vars import VarScope
from convergectl.infrastructure.cache_store import BlobCache
from convergectl.infrastructure.http import Fetcher
from convergectl.infrastructure.shell import CommandOutput, Shell
from convergectl.infrastructure.templates import TemplateRenderer

ItemT_contra = TypeVar("ItemT_contra", contravariant=True)


def _no_probes() -> Mapping[str, ProbeResult]:
    return {}


def _decline(_prompt: str) -> bool:
    return False


@dataclass(frozen=True)
class RunContext:
    """Immutable collaborators and vars for one reconciliation pass.

    The var scope only becomes a process environment inside :meth:`sh`.
    """

    vars: VarScope
    shell: Shell
    base_dir: Path
    renderer: TemplateRenderer = field(default_factory=TemplateRenderer)
    fetcher: Fetcher = field(default_factory=Fetcher)
    blobs: BlobCache | None = None
    probes: Callable[[], Mapping[str, ProbeResult]] = _no_probes
    confirm: Callable[[str], bool] = _decline
    home: Path = field(default_factory=Path.home)
    is_root: bool = field(default_factory=lambda: hasattr(os, "geteuid") and os.geteuid() == 0)

    def sh(self, command: str, *, stdin: str | None = None) -> CommandOutput:
        return self.shell.run(command, self.vars.environ(), self.base_dir, stdin=stdin)

    def sudo(self, command: str) -> str:
        """Prefix *command* with sudo unless already root."""
        return command if self.is_root else f"sudo {command}"

    def path(self, raw: str) -> Path:
        """Expand vars and ``~``; relative paths resolve against the config dir."""
        expanded = self.vars.expand(raw)
        if expanded == "~" or expanded.startswith("~/"):
            return self.home / expanded[2:]
        p = Path(expanded)
        return p if p.is_absolute() else self.base_dir / p

    def template_context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = dict(self.vars.resolved)
        for result in self.probes().values():
            ctx[result.name.replace("-", "_")] = result.as_context()
        return ctx


class Provider(Protocol[ItemT_contra]):
    """check/apply for one item kind."""

    def check(self, item: ItemT_contra, ctx: RunContext) -> CheckResult: ...

    def apply(self, item: ItemT_contra, ctx: RunContext) -> ApplyResult: ...
