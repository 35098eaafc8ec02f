"""Aliases and environment variables in managed rc files.

Each kind owns one file under ``$HOME`` and a single ``source`` line in the
user's shell rc. Redefining a name replaces its previous line.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from convergectl.domain.items import AliasItem, EnvItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.providers.context import RunContext


@dataclass(frozen=True)
class ManagedFile:
    label: str
    filename: str
    header: str
    format_line: Callable[[str, str], str]
    format_prefix: Callable[[str], str]

    def path(self, home: Path) -> Path:
        return home / self.filename

    @property
    def source_line(self) -> str:
        return f"[ -f ~/{self.filename} ] && . ~/{self.filename}"


ALIASES = ManagedFile(
    label="alias",
    filename=".convergectl_aliases",
    header="# convergectl-managed aliases\n",
    format_line=lambda k, v: f"alias {k}='{v}'",
    format_prefix=lambda k: f"alias {k}=",
)

ENV = ManagedFile(
    label="env",
    filename=".convergectl_env",
    header="# convergectl-managed environment variables\n",
    format_line=lambda k, v: f'export {k}="{v}"',
    format_prefix=lambda k: f"export {k}=",
)


def detect_shell_rc(home: Path, shell: str | None = None) -> Path:
    shell = shell if shell is not None else os.environ.get("SHELL", "")
    if "zsh" in shell:
        return home / ".zshrc"
    if "fish" in shell:
        return home / ".config" / "fish" / "config.fish"
    return home / ".bashrc"


def ensure_sourced(rc_path: Path, line: str) -> None:
    content = rc_path.read_text(encoding="utf-8") if rc_path.exists() else ""
    if line in content.splitlines():
        return
    if content and not content.endswith("\n"):
        content += "\n"
    rc_path.parent.mkdir(parents=True, exist_ok=True)
    rc_path.write_text(content + line + "\n", encoding="utf-8")


class _ManagedEntryProvider:
    managed: ManagedFile

    def check(self, item: AliasItem | EnvItem, ctx: RunContext) -> CheckResult:
        path = self.managed.path(ctx.home)
        if not path.exists():
            return CheckResult.missing(f"{self.managed.label} file '{path}' does not exist")
        expected = self.managed.format_line(item.name, item.value)
        if expected in path.read_text(encoding="utf-8").splitlines():
            return CheckResult.ok()
        return CheckResult.missing(
            f"{self.managed.label} '{item.name}' not defined or has different value"
        )

    def apply(self, item: AliasItem | EnvItem, ctx: RunContext) -> ApplyResult:
        path = self.managed.path(ctx.home)
        prefix = self.managed.format_prefix(item.name)
        try:
            content = (
                path.read_text(encoding="utf-8") if path.exists() else self.managed.header
            )
            kept = [line for line in content.splitlines() if not line.startswith(prefix)]
            kept.append(self.managed.format_line(item.name, item.value))
            path.write_text("\n".join(kept) + "\n", encoding="utf-8")
            ensure_sourced(detect_shell_rc(ctx.home), self.managed.source_line)
        except OSError as exc:
            return ApplyResult.failed(f"failed to update {path}: {exc}")
        return ApplyResult.changed()


class AliasProvider(_ManagedEntryProvider):
    managed = ALIASES


class EnvProvider(_ManagedEntryProvider):
    managed = ENV
