"""Probe declarations and results.

A probe is a named, computed piece of system state. It may run a command,
render an expression over its dependencies, or both (the command output is
then available to the expression as ``raw``). Rewrite rules normalize the
value; named templates project it into other shapes.

INVARIANT: no rewrite match means ``value == raw``; the first matching rule
wins and ``original`` then preserves the pre-rewrite ``raw``.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, Field, field_validator

_DURATION_PART = re.compile(r"(\d+)\s*(ms|s|m|h|d|w)")
_UNIT_SECONDS: dict[str, float] = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}


def parse_duration(text: str) -> timedelta:
    """Parse ``30s``, ``5m``, ``1h30m``, ``2d`` or a bare number of seconds.

    Raises:
        ValueError: If *text* is not a recognizable duration.
    """
    cleaned = text.strip().lower()
    if cleaned.isdigit():
        return timedelta(seconds=int(cleaned))
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(cleaned):
        if cleaned[pos : match.start()].strip():
            break
        seconds += int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos == 0 or cleaned[pos:].strip():
        msg = f"Invalid duration: {text!r}"
        raise ValueError(msg)
    return timedelta(seconds=seconds)


class RewriteRule(BaseModel):
    """Replace the whole value with ``value`` when ``match`` is found in it."""

    model_config = {"frozen": True}

    match: str
    value: str

    @field_validator("match")
    @classmethod
    def _valid_regex(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            msg = f"Invalid rewrite pattern {v!r}: {exc}"
            raise ValueError(msg) from exc
        return v


class Probe(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    name: str
    cmd: str | None = None
    expr: str | None = None
    deps: tuple[str, ...] = ()
    rewrite: tuple[RewriteRule, ...] = ()
    templates: dict[str, str] = Field(default_factory=dict)
    ttl: str | None = None
    json_output: bool = Field(default=False, alias="json")

    @field_validator("ttl")
    @classmethod
    def _valid_ttl(cls, v: str | None) -> str | None:
        if v is not None:
            parse_duration(v)
        return v

    @property
    def max_age(self) -> timedelta | None:
        return parse_duration(self.ttl) if self.ttl else None

    @property
    def context_name(self) -> str:
        """Name under which dependents see this probe in template contexts."""
        return self.name.replace("-", "_")


class ProbeResult(BaseModel):
    """Fully resolved probe: raw output, rewritten value, template projections."""

    model_config = {"frozen": True}

    name: str
    raw: str
    value: str
    original: str | None = None
    templates: dict[str, str] = Field(default_factory=dict)
    parsed: Any = None

    def variant(self, name: str | None) -> str | None:
        """Look up ``value``/``raw``/``original`` or a named template.

        A bare probe name (``None``) resolves to the rewritten value.
        ``original`` falls back to ``raw`` when no rewrite fired.
        """
        if name is None or name == "value":
            return self.value
        if name == "raw":
            return self.raw
        if name == "original":
            return self.original if self.original is not None else self.raw
        return self.templates.get(name)

    def as_context(self) -> dict[str, Any]:
        """The object a dependent probe or template sees for this result."""
        ctx: dict[str, Any] = {
            "raw": self.parsed if self.parsed is not None else self.value,
            "value": self.value,
        }
        if self.original is not None:
            ctx["original"] = self.original
        ctx.update(self.templates)
        return ctx

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"raw": self.raw, "value": self.value}
        if self.original is not None:
            data["original"] = self.original
        data.update(self.templates)
        return data


def apply_rewrites(raw: str, rules: tuple[RewriteRule, ...]) -> tuple[str, str | None]:
    """Return ``(value, original)`` after the first matching rule, if any.

    Examples:
        >>> rules = (RewriteRule(match="^A", value="1"), RewriteRule(match=".*", value="3"))
        >>> apply_rewrites("A-x", rules)
        ('1', 'A-x')
        >>> apply_rewrites("", ())
        ('', None)
    """
    for rule in rules:
        if re.search(rule.match, raw):
            return rule.value, raw
    return raw, None


def split_query(query: str) -> tuple[str, str | None]:
    """Split ``name.variant`` into its parts."""
    name, sep, variant = query.partition(".")
    return name, variant if sep else None
