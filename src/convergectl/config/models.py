"""Pydantic configuration models with code-baked defaults.

Two families live here:

* settings sections (``[cache]``, ``[remote]``, ``[probes]``, ``[dispatch]``)
  read from ``meta.toml`` by :class:`~convergectl.config.settings.CvgSettings`;
* the declaration schema for config files. Section shapes are validated
  here; individual items are validated by the domain models in
  :mod:`convergectl.domain.items` when the loader builds them.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from convergectl.domain.probes import Probe

# --- meta.toml settings sections ---


class CacheConfig(BaseModel):
    """[cache] section."""

    model_config = {"frozen": True}

    dir: Path | None = None

    def resolve_dir(self) -> Path:
        if self.dir is not None:
            return self.dir.expanduser()
        xdg = os.environ.get("XDG_CACHE_HOME")
        base = Path(xdg) if xdg else Path.home() / ".cache"
        return base / "convergectl"


class RemoteConfig(BaseModel):
    """[remote] section."""

    model_config = {"frozen": True}

    workdir: str = "/tmp/convergectl-remote"
    executable: str = "convergectl"
    ssh_options: list[str] = Field(default_factory=list)
    install: bool = False


class ProbesConfig(BaseModel):
    """[probes] section."""

    model_config = {"frozen": True}

    max_workers: int = 8


class DispatchConfig(BaseModel):
    """[dispatch] section."""

    model_config = {"frozen": True}

    max_workers: int = 16


# --- declaration schema ---


class Meta(BaseModel):
    """``meta.toml`` (directory mode) or the ``[meta]`` table of a single file.

    The settings sections are validated separately by ``CvgSettings``.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    name: str | None = None
    description: str | None = None
    banner: str | None = None
    defaults: list[str] = Field(default_factory=list)
    vars: dict[str, Any] = Field(default_factory=dict)
    include: dict[str, str] = Field(default_factory=dict)
    labels: list[str] = Field(default_factory=list)
    run_if: str | None = None
    cache: dict[str, Any] = Field(default_factory=dict)
    remote: dict[str, Any] = Field(default_factory=dict)
    probes: dict[str, Any] = Field(default_factory=dict)
    dispatch: dict[str, Any] = Field(default_factory=dict)


class FileMeta(BaseModel):
    """[meta] table of one config file in directory mode."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str | None = None
    description: str | None = None
    labels: list[str] = Field(default_factory=list)
    run_if: str | None = None


class RunConfig(BaseModel):
    """[run.NAME] — an on-demand command."""

    model_config = {"frozen": True, "extra": "forbid"}

    cmd: str | None = None
    script: str | None = None
    description: str | None = None
    confirm: bool = False
    tty: bool = False
    local: bool = False
    deps: list[str] = Field(default_factory=list)


class ArtifactConfig(BaseModel):
    """[[artifact]] — a locally built output shipped with the config."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str | None = None
    build: str
    src: str
    dest: str
    watch: list[str] = Field(default_factory=list)
    check: str | None = None
    deps: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.name or self.src


class DeclarationFile(BaseModel):
    """Section shapes of one config file.

    Item tables keep their raw form here; the loader turns them into
    domain items in declaration order.
    """

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    meta: FileMeta = Field(default_factory=FileMeta)
    package: dict[str, dict[str, Any]] = Field(default_factory=dict)
    service: list[dict[str, Any]] = Field(default_factory=list)
    file: dict[str, Any] = Field(default_factory=dict)
    alias: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    script: list[dict[str, Any]] = Field(default_factory=list)
    command: list[dict[str, Any]] = Field(default_factory=list)
    assertions: list[dict[str, Any]] = Field(default_factory=list, alias="assert")
    run: dict[str, RunConfig] = Field(default_factory=dict)
    state: list[Probe] = Field(default_factory=list)
    artifact: list[ArtifactConfig] = Field(default_factory=list)
