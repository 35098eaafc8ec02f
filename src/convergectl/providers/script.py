"""Scripts installed into ``~/.local/bin``."""

from __future__ import annotations

from pathlib import Path

from convergectl.domain.items import ScriptItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.providers.context import RunContext

SCRIPT_MODE = 0o755


def script_path(item: ScriptItem, ctx: RunContext) -> Path:
    return ctx.home / ".local" / "bin" / item.name


class ScriptProvider:
    def check(self, item: ScriptItem, ctx: RunContext) -> CheckResult:
        target = script_path(item, ctx)
        if not target.exists():
            return CheckResult.missing(f"'{target}' not installed")
        if target.read_text(encoding="utf-8") != item.content:
            return CheckResult.missing("content differs")
        if target.stat().st_mode & 0o777 != SCRIPT_MODE:
            return CheckResult.missing("not executable")
        return CheckResult.ok()

    def apply(self, item: ScriptItem, ctx: RunContext) -> ApplyResult:
        target = script_path(item, ctx)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(item.content, encoding="utf-8")
            target.chmod(SCRIPT_MODE)
        except OSError as exc:
            return ApplyResult.failed(f"failed to install {target}: {exc}")
        return ApplyResult.changed()
