"""Declaration loading — TOML files into a validated :class:`Declaration`.

A config path is either one ``converge.toml`` or a ``converge/`` directory.
In directory mode every ``*.toml`` except ``meta.toml`` is a config file,
keyed by its stem and merged in path-sorted order. Items keep strict
declaration order: files in path order, sections in document order,
entries in document order.

Run commands, probes and artifacts are collected from every file; only
items are subject to selector filtering.
"""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from convergectl.config.discovery import META_FILENAME, inventory_path
from convergectl.config.models import ArtifactConfig, DeclarationFile, FileMeta, Meta, RunConfig
from convergectl.domain.hosts import parse_inventory
from convergectl.domain.items import (
    AliasItem,
    AssertItem,
    CommandItem,
    CopyItem,
    EnsureLineItem,
    EnvItem,
    FetchItem,
    Item,
    LineItem,
    PackageItem,
    RunItem,
    ScriptItem,
    ServiceItem,
    SymlinkItem,
    TemplateItem,
)
from convergectl.domain.probes import Probe
from convergectl.domain.vars import VarScope
from convergectl.errors import ConfigError

logger = logging.getLogger(__name__)


class ConfigFile(BaseModel):
    """One config file: its key, meta and items in declaration order."""

    model_config = {"frozen": True}

    key: str
    path: Path
    meta: FileMeta = Field(default_factory=FileMeta)
    items: list[Item] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.meta.name or self.key


class Declaration(BaseModel):
    """Everything read from one config path."""

    model_config = {"frozen": True}

    path: Path
    meta: Meta = Field(default_factory=Meta)
    files: list[ConfigFile] = Field(default_factory=list)
    run: dict[str, RunItem] = Field(default_factory=dict)
    probes: list[Probe] = Field(default_factory=list)
    artifacts: list[ArtifactConfig] = Field(default_factory=list)
    inventory: list[str] = Field(default_factory=list)

    @property
    def base_dir(self) -> Path:
        return self.path if self.path.is_dir() else self.path.parent

    @property
    def labels(self) -> list[str]:
        seen: list[str] = []
        for cfg in self.files:
            for label in cfg.meta.labels:
                if label not in seen:
                    seen.append(label)
        return seen

    def effective_selectors(self, selectors: Iterable[str] = ()) -> tuple[str, ...]:
        """Explicit selectors, else ``meta.defaults``, else none (all files)."""
        explicit = tuple(selectors)
        return explicit if explicit else tuple(self.meta.defaults)

    def select(self, selectors: Iterable[str] = ()) -> list[ConfigFile]:
        """Config files matched by *selectors*, in path order.

        Raises:
            ConfigError: If a selector matches no config key or label.
        """
        effective = self.effective_selectors(selectors)
        if not effective:
            return list(self.files)
        wanted: set[str] = set()
        for selector in effective:
            if selector.startswith("@"):
                label = selector[1:]
                hits = {f.key for f in self.files if label in f.meta.labels}
            else:
                hits = {f.key for f in self.files if f.key == selector}
            if not hits:
                msg = f"Unknown selector {selector!r}"
                raise ConfigError(msg)
            wanted |= hits
        return [f for f in self.files if f.key in wanted]

    def vars_for(self, selectors: Iterable[str] = ()) -> VarScope:
        scope = VarScope.from_table(self.meta.vars)
        return scope.with_active(self.effective_selectors(selectors))

    def run_command(self, name: str) -> RunItem:
        try:
            return self.run[name]
        except KeyError:
            msg = f"Command {name!r} not found in config"
            raise ConfigError(msg) from None


# --- raw section -> items ---


def _build(model: type[BaseModel], data: Mapping[str, Any], source: str) -> Item:
    return model.model_validate({**data, "source": source})  # type: ignore[return-value]


def _packages(section: Mapping[str, Any], source: str) -> list[Item]:
    items: list[Item] = []
    for manager, table in section.items():
        table = dict(table)
        specs = table.pop("items", None)
        if not isinstance(specs, list):
            msg = f"[package.{manager}] requires an 'items' list"
            raise ConfigError(msg)
        for spec in specs:
            items.append(_build(PackageItem, {"manager": manager, "spec": spec, **table}, source))
    return items


def _pairs(
    model: type[BaseModel],
    section: Mapping[str, Any],
    key_field: str,
    value_field: str,
    source: str,
) -> list[Item]:
    """Map-style sections: ``key = "value"`` or ``key = { value_field = ..., ... }``."""
    items: list[Item] = []
    for key, value in section.items():
        data = dict(value) if isinstance(value, Mapping) else {value_field: value}
        items.append(_build(model, {key_field: key, **data}, source))
    return items


def _listed(model: type[BaseModel], entries: Any, source: str) -> list[Item]:
    if isinstance(entries, Mapping):
        entries = [entries]
    return [_build(model, entry, source) for entry in entries]


def _files(section: Mapping[str, Any], source: str) -> list[Item]:
    items: list[Item] = []
    for sub, value in section.items():
        match sub:
            case "copy":
                items += _pairs(CopyItem, value, "src", "dest", source)
            case "symlink":
                items += _pairs(SymlinkItem, value, "src", "link", source)
            case "fetch":
                items += _listed(FetchItem, value, source)
            case "ensure_line":
                items += _pairs(EnsureLineItem, value, "path", "lines", source)
            case "line":
                items += _listed(LineItem, value, source)
            case "template":
                if isinstance(value, Mapping) and "src" not in value:
                    items += _pairs(TemplateItem, value, "src", "dest", source)
                else:
                    items += _listed(TemplateItem, value, source)
            case _:
                msg = f"Unknown file section [file.{sub}]"
                raise ConfigError(msg)
    return items


def _scripts(entries: list[dict[str, Any]], source: str, base_dir: Path) -> list[Item]:
    items: list[Item] = []
    for entry in entries:
        entry = dict(entry)
        rel = entry.pop("path", None)
        if rel is not None:
            script_path = base_dir / rel
            try:
                entry["content"] = script_path.read_text(encoding="utf-8")
            except OSError as exc:
                msg = f"Failed to read script {script_path}: {exc}"
                raise ConfigError(msg) from exc
        items.append(_build(ScriptItem, entry, source))
    return items


def run_items(run: Mapping[str, RunConfig], base_dir: Path) -> dict[str, RunItem]:
    """Turn ``[run.NAME]`` tables into run items, reading script files."""
    commands: dict[str, RunItem] = {}
    for name, cfg in run.items():
        if cfg.cmd is not None:
            cmd = cfg.cmd
        elif cfg.script is not None:
            script_path = base_dir / cfg.script
            try:
                cmd = script_path.read_text(encoding="utf-8")
            except OSError as exc:
                msg = f"Failed to read script {script_path}: {exc}"
                raise ConfigError(msg) from exc
        else:
            msg = f"Command {name!r} has no action defined (needs cmd or script)"
            raise ConfigError(msg)
        commands[name] = RunItem(
            name=name,
            cmd=cmd,
            description=cfg.description,
            confirm=cfg.confirm,
            tty=cfg.tty,
            local=cfg.local,
            deps=tuple(cfg.deps),
        )
    return commands


_SECTION_BUILDERS: dict[str, Callable[[Any, str], list[Item]]] = {
    "package": _packages,
    "service": lambda v, s: _listed(ServiceItem, v, s),
    "file": _files,
    "alias": lambda v, s: _pairs(AliasItem, v, "name", "value", s),
    "env": lambda v, s: _pairs(EnvItem, v, "name", "value", s),
    "command": lambda v, s: _listed(CommandItem, v, s),
    "assert": lambda v, s: _listed(AssertItem, v, s),
}


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ConfigError(msg) from exc
    except OSError as exc:
        msg = f"Failed to read config file {path}: {exc}"
        raise ConfigError(msg) from exc


def _parse_file(
    key: str, path: Path, data: dict[str, Any], base_dir: Path
) -> tuple[ConfigFile, DeclarationFile]:
    try:
        decl = DeclarationFile.model_validate(data)
        items: list[Item] = []
        for section, value in data.items():
            if section == "script":
                items += _scripts(value, key, base_dir)
            elif builder := _SECTION_BUILDERS.get(section):
                items += builder(value, key)
    except ValidationError as exc:
        msg = f"Invalid config {path.name}: {exc}"
        raise ConfigError(msg) from exc
    return ConfigFile(key=key, path=path, meta=decl.meta, items=items), decl


def load_declaration(config_path: Path) -> Declaration:
    """Load a config file or directory.

    Raises:
        ConfigError: On unreadable or malformed TOML, schema violations,
            or a missing path.
    """
    if not config_path.exists():
        msg = f"Config not found: {config_path}"
        raise ConfigError(msg)

    parsed: list[tuple[ConfigFile, DeclarationFile]] = []
    if config_path.is_dir():
        meta_file = config_path / META_FILENAME
        meta_data = _read_toml(meta_file) if meta_file.is_file() else {}
        base_dir = config_path
        for path in sorted(config_path.glob("*.toml")):
            if path.name == META_FILENAME:
                continue
            parsed.append(_parse_file(path.stem, path, _read_toml(path), base_dir))
    else:
        data = _read_toml(config_path)
        meta_data = data.pop("meta", {})
        base_dir = config_path.parent
        file_meta = {k: meta_data[k] for k in FileMeta.model_fields if k in meta_data}
        parsed.append(
            _parse_file(config_path.stem, config_path, {"meta": file_meta, **data}, base_dir)
        )

    try:
        meta = Meta.model_validate(meta_data)
    except ValidationError as exc:
        msg = f"Invalid meta config: {exc}"
        raise ConfigError(msg) from exc

    run: dict[str, RunItem] = {}
    probes: list[Probe] = []
    artifacts: list[ArtifactConfig] = []
    for _cfg, decl in parsed:
        run.update(run_items(decl.run, base_dir))
        probes.extend(decl.state)
        artifacts.extend(decl.artifact)

    inv_path = inventory_path(config_path)
    inventory = parse_inventory(inv_path.read_text(encoding="utf-8")) if inv_path.is_file() else []

    declaration = Declaration(
        path=config_path,
        meta=meta,
        files=[cfg for cfg, _decl in parsed],
        run=run,
        probes=probes,
        artifacts=artifacts,
        inventory=inventory,
    )
    logger.debug(
        "Loaded %d config file(s), %d probe(s), %d artifact(s) from %s",
        len(declaration.files),
        len(probes),
        len(artifacts),
        config_path,
    )
    return declaration
