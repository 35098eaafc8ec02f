"""Package managers.

System managers (apt, pacman, brew) query their own package database;
language managers are considered satisfied when the item's binary is on
PATH. ``os`` picks whichever system manager the machine has.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable
from dataclasses import dataclass

from convergectl.domain.items import PackageItem
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.providers.context import RunContext


@dataclass(frozen=True)
class Manager:
    """How one manager checks and installs a package.

    ``check`` is a shell command that succeeds when installed, or None to
    fall back to a PATH lookup of the item's binary.
    """

    name: str
    install: Callable[[str, RunContext], str]
    check: Callable[[str], str] | None = None
    installed_marker: str | None = None


def _q(pkg: str) -> str:
    return shlex.quote(pkg)


MANAGERS: dict[str, Manager] = {
    "apt": Manager(
        "apt",
        check=lambda p: f"dpkg-query -W -f='${{Status}}' {_q(p)}",
        installed_marker="install ok installed",
        install=lambda p, ctx: ctx.sudo(
            f"env DEBIAN_FRONTEND=noninteractive apt-get install -y {_q(p)}"
        ),
    ),
    "pacman": Manager(
        "pacman",
        check=lambda p: f"pacman -Q {_q(p)}",
        install=lambda p, ctx: ctx.sudo(f"pacman -S --noconfirm --needed {_q(p)}"),
    ),
    "brew": Manager(
        "brew",
        check=lambda p: f"brew list --versions {_q(p)}",
        install=lambda p, _ctx: f"brew install {_q(p)}",
    ),
    "cargo": Manager("cargo", install=lambda p, _ctx: f"cargo install {_q(p)}"),
    "go": Manager("go", install=lambda p, _ctx: f"go install {_q(p)}"),
    "npm": Manager("npm", install=lambda p, _ctx: f"npm install -g {_q(p)}"),
    "pip": Manager("pip", install=lambda p, _ctx: f"python3 -m pip install --user {_q(p)}"),
    "pipx": Manager("pipx", install=lambda p, _ctx: f"pipx install {_q(p)}"),
    "webi": Manager("webi", install=lambda p, _ctx: f"curl -fsS https://webi.sh/{p} | sh"),
}

_SYSTEM_PROBE = (("apt-get", "apt"), ("pacman", "pacman"), ("brew", "brew"))


def detect_system_manager(ctx: RunContext) -> Manager | None:
    for binary, name in _SYSTEM_PROBE:
        if ctx.shell.which(binary):
            return MANAGERS[name]
    return None


def binary_for(item: PackageItem) -> str:
    """Binary to look for on PATH.

    For ``go`` packages without an explicit ``:binary`` this is the last
    path segment with any ``@version`` removed.
    """
    package, binary = item.package, item.binary
    if item.manager == "go" and binary == package:
        return package.rsplit("/", 1)[-1].split("@", 1)[0]
    return binary


class PackageProvider:
    def _manager(self, item: PackageItem, ctx: RunContext) -> Manager | None:
        if item.manager == "os":
            return detect_system_manager(ctx)
        return MANAGERS[item.manager]

    def check(self, item: PackageItem, ctx: RunContext) -> CheckResult:
        manager = self._manager(item, ctx)
        if manager is None:
            return CheckResult.unknown("no supported system package manager found")
        if manager.check is None:
            binary = binary_for(item)
            if ctx.shell.which(binary):
                return CheckResult.ok()
            return CheckResult.missing(f"'{binary}' not in PATH")
        out = ctx.sh(manager.check(item.package))
        installed = out.ok and (
            manager.installed_marker is None or manager.installed_marker in out.stdout
        )
        if installed:
            return CheckResult.ok(out.stdout.strip())
        return CheckResult.missing(f"package '{item.package}' not installed", output=out.stdout)

    def apply(self, item: PackageItem, ctx: RunContext) -> ApplyResult:
        manager = self._manager(item, ctx)
        if manager is None:
            return ApplyResult.failed("no supported system package manager found")
        out = ctx.sh(manager.install(item.package, ctx))
        if not out.ok:
            reason = out.stderr.strip() or out.stdout.strip() or f"exit {out.exit_code}"
            return ApplyResult.failed(f"{manager.name} install failed: {reason}")
        return ApplyResult.changed()
