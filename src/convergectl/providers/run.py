"""Named on-demand commands. Their state is never observable.

Locally a run command always inherits this process's stdio; ``tty`` only
changes how a *remote* session is opened.
"""

from __future__ import annotations

from convergectl.domain.items import RunItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.providers.context import RunContext


class RunProvider:
    def check(self, item: RunItem, ctx: RunContext) -> CheckResult:
        return CheckResult.unknown("run commands have no observable state")

    def apply(self, item: RunItem, ctx: RunContext) -> ApplyResult:
        code = ctx.shell.run_interactive(
            item.cmd, ctx.vars.environ(), ctx.base_dir, args=item.args
        )
        if code != 0:
            return ApplyResult.failed(f"command '{item.name}' exited with status {code}")
        return ApplyResult.changed()
