"""Provider results and per-item / per-run outcome records."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from convergectl.domain.types import CheckStatus, Mode, OutcomeStatus


class CheckResult(BaseModel):
    """What a provider's ``check`` observed."""

    model_config = {"frozen": True}

    status: CheckStatus
    output: str = ""
    detail: str = ""
    findings: tuple[str, ...] = ()

    @property
    def satisfied(self) -> bool:
        return self.status == CheckStatus.SATISFIED

    @classmethod
    def ok(cls, output: str = "") -> CheckResult:
        return cls(status=CheckStatus.SATISFIED, output=output)

    @classmethod
    def missing(cls, detail: str, *, output: str = "") -> CheckResult:
        return cls(status=CheckStatus.UNSATISFIED, detail=detail, output=output)

    @classmethod
    def unknown(cls, detail: str = "") -> CheckResult:
        return cls(status=CheckStatus.UNKNOWN, detail=detail)


class ApplyResult(BaseModel):
    """What a provider's ``apply`` did: changed, or failed with a reason.

    ``declined`` marks an apply the user refused at a confirmation prompt;
    nothing changed and no cache key is recorded.
    """

    model_config = {"frozen": True}

    ok: bool
    reason: str = ""
    declined: bool = False

    @classmethod
    def changed(cls) -> ApplyResult:
        return cls(ok=True)

    @classmethod
    def skipped(cls, reason: str = "declined") -> ApplyResult:
        return cls(ok=True, reason=reason, declined=True)

    @classmethod
    def failed(cls, reason: str) -> ApplyResult:
        return cls(ok=False, reason=reason)


class ItemOutcome(BaseModel):
    """Recorded outcome for one item in one pass."""

    model_config = {"frozen": True}

    identity: str
    kind: str
    label: str
    status: OutcomeStatus
    detail: str = ""
    findings: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


_FAILING = frozenset({OutcomeStatus.FAILED, OutcomeStatus.ISSUE})


class RunReport(BaseModel):
    """All outcomes of one reconciliation pass on one host."""

    model_config = {"frozen": True}

    host: str = "local"
    mode: Mode = Mode.APPLY
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not any(o.status in _FAILING for o in self.outcomes)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def counts(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for outcome in self.outcomes:
            totals[outcome.status.value] = totals.get(outcome.status.value, 0) + 1
        return totals

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "mode": self.mode.value,
            "ok": self.ok,
            "counts": self.counts(),
            "duration_ms": round(self.duration_ms, 2),
            "items": [o.to_dict() for o in self.outcomes],
        }
