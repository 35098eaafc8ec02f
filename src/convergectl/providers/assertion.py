"""Check-only assertions.

``check`` mode passes when the command exits 0 and the optional
``stdout``/``stderr`` patterns are found. ``foreach`` mode turns every
non-empty output line into a separate finding; no lines means pass.
"""

from __future__ import annotations

import re

from convergectl.domain.items import AssertItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.domain.types import CheckStatus
from convergectl.providers.context import RunContext


class AssertProvider:
    def check(self, item: AssertItem, ctx: RunContext) -> CheckResult:
        out = ctx.sh(item.command)
        if item.foreach is not None:
            findings = tuple(line for line in out.stdout.splitlines() if line.strip())
            if not findings:
                return CheckResult.ok()
            return CheckResult(
                status=CheckStatus.UNSATISFIED,
                output=out.stdout,
                detail=item.message or f"{len(findings)} finding(s)",
                findings=findings,
            )

        if not out.ok:
            detail = item.message or f"exit {out.exit_code}: {out.stderr.strip()}"
            return CheckResult.missing(detail, output=out.stdout)
        for stream, pattern, text in (
            ("stdout", item.stdout, out.stdout),
            ("stderr", item.stderr, out.stderr),
        ):
            if pattern is not None and not re.search(pattern, text):
                detail = item.message or f"{stream} '{text.strip()}' doesn't match '{pattern}'"
                return CheckResult.missing(detail, output=out.stdout)
        return CheckResult.ok(out.stdout)

    def apply(self, item: AssertItem, ctx: RunContext) -> ApplyResult:
        return ApplyResult.skipped("assertions never apply")
