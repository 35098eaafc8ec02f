"""Jinja2 rendering for probe expressions, probe templates and file templates.

Rendering is lenient: an undefined name (or an attribute of one) renders
as an empty string instead of raising.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from jinja2 import ChainableUndefined, Environment, TemplateError

from convergectl.errors import ConfigError


def _fromjson(value: Any) -> Any:
    """Parse an embedded JSON string; non-strings pass through."""
    if not isinstance(value, str | bytes):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return None


def build_template_environment() -> Environment:
    env = Environment(
        undefined=ChainableUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    env.filters["fromjson"] = _fromjson
    env.filters["tojson"] = lambda v: json.dumps(v)
    return env


class TemplateRenderer:
    """``render(template, context) -> str`` over a shared environment."""

    def __init__(self, env: Environment | None = None) -> None:
        self._env = env or build_template_environment()
        self._compile = lru_cache(maxsize=256)(self._env.from_string)

    def render(self, template: str, context: Mapping[str, Any]) -> str:
        """Render *template* against *context*.

        Raises:
            ConfigError: If the template itself is malformed.
        """
        try:
            return self._compile(template).render(**context)
        except TemplateError as exc:
            msg = f"Template error in {template!r}: {exc}"
            raise ConfigError(msg) from exc
