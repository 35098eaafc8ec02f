"""systemd units via ``systemctl``. System-scope mutations use sudo."""

from __future__ import annotations

import shlex

from convergectl.domain.items import ServiceItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.domain.types import ServiceScope
from convergectl.providers.context import RunContext


def _systemctl(item: ServiceItem, verb: str) -> str:
    scope = " --user" if item.scope == ServiceScope.USER else ""
    return f"systemctl{scope} {verb} {shlex.quote(item.name)}"


class ServiceProvider:
    def check(self, item: ServiceItem, ctx: RunContext) -> CheckResult:
        if not ctx.sh(_systemctl(item, "cat")).ok:
            return CheckResult.missing(f"service '{item.name}' not found")
        if item.enabled and not ctx.sh(_systemctl(item, "is-enabled")).ok:
            return CheckResult.missing(f"service '{item.name}' not enabled")
        active = ctx.sh(_systemctl(item, "is-active")).ok
        if item.state == "active" and not active:
            return CheckResult.missing(f"service '{item.name}' not active")
        if item.state == "inactive" and active:
            return CheckResult.missing(f"service '{item.name}' still active")
        return CheckResult.ok()

    def _mutate(self, item: ServiceItem, verb: str, ctx: RunContext) -> str | None:
        command = _systemctl(item, verb)
        if item.scope == ServiceScope.SYSTEM:
            command = ctx.sudo(command)
        out = ctx.sh(command)
        if out.ok:
            return None
        return f"systemctl {verb} failed: {out.stderr.strip()}"

    def apply(self, item: ServiceItem, ctx: RunContext) -> ApplyResult:
        verbs = ["enable"] if item.enabled else []
        verbs.append("start" if item.state == "active" else "stop")
        for verb in verbs:
            if (error := self._mutate(item, verb, ctx)) is not None:
                return ApplyResult.failed(error)
        return ApplyResult.changed()
