"""Variable scopes — base vars with selector-scoped overlays.

``[vars]`` in ``meta.toml`` holds base values; nested tables keyed by a
selector (``"@label"`` or a config key) are overlays that apply only while
that selector is active. Overlays win per key, in activation order.

The scope is immutable and threaded explicitly into every check, apply and
build. It is only turned into a process environment at the boundary of an
external command (:meth:`VarScope.environ`).
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Iterable, Mapping
from string import Template
from typing import Any

from pydantic import BaseModel, Field


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class VarScope(BaseModel):
    model_config = {"frozen": True}

    base: dict[str, str] = Field(default_factory=dict)
    overlays: dict[str, dict[str, str]] = Field(default_factory=dict)
    active: tuple[str, ...] = ()

    @classmethod
    def from_table(cls, table: Mapping[str, Any] | None) -> VarScope:
        """Split a raw ``[vars]`` table into base values and overlays."""
        base: dict[str, str] = {}
        overlays: dict[str, dict[str, str]] = {}
        for key, value in (table or {}).items():
            if isinstance(value, Mapping):
                overlays[key] = {k: _stringify(v) for k, v in value.items()}
            else:
                base[key] = _stringify(value)
        return cls(base=base, overlays=overlays)

    def with_active(self, selectors: Iterable[str]) -> VarScope:
        return self.model_copy(update={"active": tuple(selectors)})

    @property
    def resolved(self) -> dict[str, str]:
        merged = dict(self.base)
        for selector in self.active:
            merged.update(self.overlays.get(selector, {}))
        return merged

    def environ(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Materialize a child-process environment: os.environ + vars + extra."""
        env = dict(os.environ)
        env.update(self.resolved)
        if extra:
            env.update(extra)
        return env

    def expand(self, text: str) -> str:
        """Substitute ``$NAME`` / ``${NAME}`` from the vars, then the environment."""
        mapping = {**os.environ, **self.resolved}
        return Template(text).safe_substitute(mapping)

    def export_prefix(self) -> str:
        """Shell prefix exporting the base vars, e.g. ``export A='1'; ``."""
        if not self.base:
            return ""
        exports = [f"export {k}={shlex.quote(v)}" for k, v in self.base.items()]
        return "; ".join(exports) + "; "
