"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``CONVERGECTL_*`` prefix
  3. TOML file    — ``meta.toml`` of a config directory, or the ``[meta]``
     table of a single ``converge.toml``
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` fed by
the walk-up discovery in :mod:`convergectl.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any, ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from convergectl.config.discovery import find_config, meta_path
from convergectl.config.models import CacheConfig, DispatchConfig, ProbesConfig, RemoteConfig
from convergectl.errors import ConfigError

_SECTIONS = ("cache", "remote", "probes", "dispatch")


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings sections from the discovered meta file."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        toml_path: Path | None,
        *,
        nested: bool = False,
    ) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise ConfigError(msg) from exc
            if nested:
                data = data.get("meta", {})
            self._data = {k: v for k, v in data.items() if k in _SECTIONS}

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for the meta path during construction.
_tls = threading.local()


class CvgSettings(BaseSettings):
    """Unified settings for the convergectl CLI.

    Stored on the :class:`~convergectl.commands._context.AppContext` built
    at the CLI root.

    Attributes:
        config_path: Resolved ``converge.toml`` or ``converge/`` directory,
            or None when nothing was found.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "CONVERGECTL_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }

    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    no_interact: bool = False
    assume_yes: bool = False
    prepared: bool = False
    target: str | None = None
    remotes: str | None = None

    # --- TOML sections ---
    cache: CacheConfig = Field(default_factory=CacheConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    probes: ProbesConfig = Field(default_factory=ProbesConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)

    _toml_path: ClassVar[Path | None] = None

    @property
    def base_dir(self) -> Path:
        """Directory that relative paths in declarations resolve against."""
        if self.config_path is None:
            return Path.cwd()
        return self.config_path if self.config_path.is_dir() else self.config_path.parent

    @property
    def cache_dir(self) -> Path:
        return self.cache.resolve_dir()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        nested = getattr(_tls, "nested", False)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path, nested=nested),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        cwd: Path | None = None,
        **cli_flags: Any,
    ) -> CvgSettings:
        """Construct settings from a CLI invocation.

        Discovers the config via walk-up (or explicit *config_path*) and
        merges CLI flags as highest-priority overrides.
        """
        resolved: Path | None
        if config_path:
            resolved = Path(config_path).expanduser().resolve()
            if not resolved.exists():
                msg = f"Config not found: {config_path}"
                raise ConfigError(msg)
        else:
            resolved = find_config(cwd)

        _tls.toml_path = meta_path(resolved) if resolved else None
        _tls.nested = bool(resolved and resolved.is_file())
        try:
            return cls(config_path=resolved, **cli_flags)
        finally:
            _tls.toml_path = None
            _tls.nested = False
