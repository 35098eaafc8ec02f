"""Declared items — the closed set of desired-state variants.

Every variant is a frozen pydantic model carrying a ``kind`` literal, so the
union below is a tagged union that providers match on exhaustively. Each
item exposes an ``identity``: a stable key built only from the fields that
say *what* is managed (manager + package, path, service name + scope).
Editing any other field keeps the identity, and therefore the cache entry,
intact.

INVARIANT: Items are created at load time and never persisted; only the
cache key recorded against their identity survives a run.
"""

from __future__ import annotations

import re
from abc import abstractmethod
from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator

from convergectl.domain.types import LineMode, ServiceScope

PACKAGE_MANAGERS: frozenset[str] = frozenset(
    {"os", "apt", "pacman", "brew", "cargo", "go", "npm", "pip", "pipx", "webi"}
)


class ItemBase(BaseModel):
    """Fields shared by every item variant."""

    model_config = {"frozen": True, "extra": "forbid"}

    run_if: str | None = None
    cache_key: str | None = None
    cache_key_cmd: str | None = None
    source: str | None = None

    @property
    @abstractmethod
    def identity(self) -> str: ...

    @property
    @abstractmethod
    def target(self) -> str:
        """Short human label for the managed object."""

    @property
    def check_only(self) -> bool:
        return False

    def describe(self) -> str:
        return f"[{self.kind}] {self.target}"  # type: ignore[attr-defined]


class PackageItem(ItemBase):
    """One package from a manager's package set (``name`` or ``name:binary``)."""

    kind: Literal["package"] = "package"
    manager: str
    spec: str

    @model_validator(mode="after")
    def _known_manager(self) -> PackageItem:
        if self.manager not in PACKAGE_MANAGERS:
            msg = f"Unknown package manager {self.manager!r}"
            raise ValueError(msg)
        return self

    @property
    def package(self) -> str:
        return parse_spec(self.spec)[0]

    @property
    def binary(self) -> str:
        return parse_spec(self.spec)[1]

    @property
    def identity(self) -> str:
        return f"package:{self.manager}:{self.package}"

    @property
    def target(self) -> str:
        return self.package

    def describe(self) -> str:
        return f"[package.{self.manager}] {self.package}"


class ServiceItem(ItemBase):
    kind: Literal["service"] = "service"
    name: str
    state: Literal["active", "inactive"] = "active"
    enabled: bool = False
    scope: ServiceScope = ServiceScope.SYSTEM

    @property
    def identity(self) -> str:
        return f"service:{self.scope}:{self.name}"

    @property
    def target(self) -> str:
        return self.name if self.scope == ServiceScope.SYSTEM else f"{self.name} (user)"


class CopyItem(ItemBase):
    kind: Literal["file.copy"] = "file.copy"
    src: str
    dest: str

    @property
    def identity(self) -> str:
        return f"file.copy:{self.dest}"

    @property
    def target(self) -> str:
        return f"{self.src} -> {self.dest}"


class SymlinkItem(ItemBase):
    kind: Literal["file.symlink"] = "file.symlink"
    src: str
    link: str

    @property
    def identity(self) -> str:
        return f"file.symlink:{self.link}"

    @property
    def target(self) -> str:
        return f"{self.link} -> {self.src}"


class FetchItem(ItemBase):
    """Download a URL to a path, optionally reusing a cached body within ``ttl``."""

    kind: Literal["file.fetch"] = "file.fetch"
    url: str
    dest: str
    ttl: str | None = None

    @property
    def identity(self) -> str:
        return f"file.fetch:{self.dest}"

    @property
    def target(self) -> str:
        return f"{self.url} -> {self.dest}"


class EnsureLineItem(ItemBase):
    kind: Literal["file.ensure_line"] = "file.ensure_line"
    path: str
    lines: tuple[str, ...]

    @property
    def identity(self) -> str:
        return f"file.ensure_line:{self.path}"

    @property
    def target(self) -> str:
        return self.path


class LineItem(ItemBase):
    """Structured line edit: replace (or insert below) a matched original line."""

    kind: Literal["file.line"] = "file.line"
    path: str
    line: str
    original: str | None = None
    original_regex: str | None = None
    mode: LineMode = LineMode.REPLACE

    @model_validator(mode="after")
    def _single_matcher(self) -> LineItem:
        if self.original is not None and self.original_regex is not None:
            msg = "file.line accepts 'original' or 'original_regex', not both"
            raise ValueError(msg)
        return self

    @property
    def identity(self) -> str:
        return f"file.line:{self.path}:{self.line}"

    @property
    def target(self) -> str:
        return f"{self.path}: {self.line}"


class TemplateItem(ItemBase):
    kind: Literal["file.template"] = "file.template"
    src: str
    dest: str

    @property
    def identity(self) -> str:
        return f"file.template:{self.dest}"

    @property
    def target(self) -> str:
        return f"{self.src} -> {self.dest}"


class AliasItem(ItemBase):
    kind: Literal["alias"] = "alias"
    name: str
    value: str

    @property
    def identity(self) -> str:
        return f"alias:{self.name}"

    @property
    def target(self) -> str:
        return self.name


class EnvItem(ItemBase):
    kind: Literal["env"] = "env"
    name: str
    value: str

    @property
    def identity(self) -> str:
        return f"env:{self.name}"

    @property
    def target(self) -> str:
        return self.name


class ScriptItem(ItemBase):
    """A script installed into ``~/.local/bin`` with its content read at load."""

    kind: Literal["script"] = "script"
    name: str
    content: str

    @property
    def identity(self) -> str:
        return f"script:{self.name}"

    @property
    def target(self) -> str:
        return self.name


class CommandItem(ItemBase):
    kind: Literal["command"] = "command"
    name: str
    check: str
    apply: str
    confirm: bool = False

    @property
    def identity(self) -> str:
        return f"command:{self.name}"

    @property
    def target(self) -> str:
        return self.name


class AssertItem(ItemBase):
    """Check-only item. ``foreach`` treats every output line as a finding."""

    kind: Literal["assert"] = "assert"
    name: str | None = None
    check: str | None = None
    foreach: str | None = None
    stdout: str | None = None
    stderr: str | None = None
    message: str | None = None

    @model_validator(mode="after")
    def _one_command(self) -> AssertItem:
        if (self.check is None) == (self.foreach is None):
            msg = "assert requires exactly one of 'check' or 'foreach'"
            raise ValueError(msg)
        for pattern in (self.stdout, self.stderr):
            if pattern is None:
                continue
            try:
                re.compile(pattern)
            except re.error as exc:
                msg = f"Invalid assert pattern {pattern!r}: {exc}"
                raise ValueError(msg) from exc
        return self

    @property
    def command(self) -> str:
        return self.foreach if self.foreach is not None else self.check or ""

    @property
    def identity(self) -> str:
        return f"assert:{self.name or self.command}"

    @property
    def target(self) -> str:
        return self.name or self.command

    @property
    def check_only(self) -> bool:
        return True


class RunItem(ItemBase):
    """A named on-demand command (``convergectl run NAME``)."""

    kind: Literal["run"] = "run"
    name: str
    cmd: str
    description: str | None = None
    confirm: bool = False
    tty: bool = False
    local: bool = False
    deps: tuple[str, ...] = ()
    args: tuple[str, ...] = ()

    @property
    def identity(self) -> str:
        return f"run:{self.name}"

    @property
    def target(self) -> str:
        return self.name

    @property
    def interactive(self) -> bool:
        return self.tty


Item = Annotated[
    PackageItem
    | ServiceItem
    | CopyItem
    | SymlinkItem
    | FetchItem
    | EnsureLineItem
    | LineItem
    | TemplateItem
    | AliasItem
    | EnvItem
    | ScriptItem
    | CommandItem
    | AssertItem
    | RunItem,
    Field(discriminator="kind"),
]


def parse_spec(spec: str) -> tuple[str, str]:
    """Split ``package:binary`` into its parts; the binary defaults to the package.

    Examples:
        >>> parse_spec("ripgrep:rg")
        ('ripgrep', 'rg')
        >>> parse_spec("htop")
        ('htop', 'htop')
    """
    package, sep, binary = spec.partition(":")
    return package, binary if sep and binary else package


def parse_package_spec(spec: str) -> PackageItem:
    """Parse an inline ``manager.package`` spec (for example ``cargo.bat``).

    Raises:
        ValueError: If the spec has no manager prefix or names an unknown manager.
    """
    manager, sep, package = spec.partition(".")
    if not sep or not package:
        msg = f"Invalid spec {spec!r}. Use manager.package (e.g. cargo.bat)"
        raise ValueError(msg)
    return PackageItem(manager=manager, spec=package)
