"""Custom commands: a ``check`` shell test and an ``apply`` script."""

from __future__ import annotations

from convergectl.domain.items import CommandItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.providers.context import RunContext


class CommandProvider:
    def check(self, item: CommandItem, ctx: RunContext) -> CheckResult:
        out = ctx.sh(item.check)
        if out.ok:
            return CheckResult.ok(out.stdout)
        return CheckResult.missing(f"check failed (exit {out.exit_code})", output=out.stdout)

    def apply(self, item: CommandItem, ctx: RunContext) -> ApplyResult:
        if item.confirm and not ctx.confirm(f"Apply {item.name}?"):
            return ApplyResult.skipped()
        out = ctx.sh(item.apply)
        if not out.ok:
            detail = out.stderr.strip()
            suffix = f": {detail}" if detail else ""
            return ApplyResult.failed(f"apply failed (exit {out.exit_code}){suffix}")
        return ApplyResult.changed()
