"""ServiceResult and ServiceError — the universal service contract.

INVARIANT: All service-layer operations return ServiceResult.
A report whose items or hosts failed is still a full result: ``ok`` is
False, ``data`` carries the report and ``error`` stays None. ``error`` is
set only when the operation itself was aborted.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from convergectl.errors import ConvergeError


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: ConvergeError) -> ServiceError:
        detail: dict[str, Any] = {}
        host = getattr(exc, "host", None)
        if host is not None:
            detail["host"] = host
        return cls(code=exc.code, message=str(exc), detail=detail)


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded (every item and host included).
        op: Name of the operation (e.g. ``"apply"``, ``"state"``).
        data: Operation-specific payload.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if the operation was aborted.
        meta: Optional metadata (timing, counts, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(cls, op: str, exc: ConvergeError, **kwargs: Any) -> ServiceResult:
        return cls(ok=False, op=op, error=ServiceError.from_exception(exc), **kwargs)
