"""Status enums for checks, applies and item outcomes."""

from __future__ import annotations

from enum import StrEnum


class CheckStatus(StrEnum):
    """Result of probing an item's current state."""

    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"
    UNKNOWN = "unknown"


class OutcomeStatus(StrEnum):
    """Final status of one item within a reconciliation pass."""

    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ISSUE = "issue"
    PASSED = "passed"
    SATISFIED = "satisfied"
    MISSING = "missing"
    PLANNED = "planned"


class Mode(StrEnum):
    """Reconciliation mode."""

    APPLY = "apply"
    CHECK = "check"
    PLAN = "plan"


class ServiceScope(StrEnum):
    """systemd unit scope."""

    SYSTEM = "system"
    USER = "user"


class LineMode(StrEnum):
    """Placement of a managed line relative to its matched original."""

    REPLACE = "replace"
    BELOW = "below"
