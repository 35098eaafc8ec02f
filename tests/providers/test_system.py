"""Tests for package, service, shell rc, script, assertion and run providers."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from convergectl.domain.items import (
    AliasItem,
    AssertItem,
    EnvItem,
    PackageItem,
    RunItem,
    ScriptItem,
    ServiceItem,
)
from convergectl.domain.types import CheckStatus, ServiceScope
from convergectl.infrastructure.shell import CommandOutput
from convergectl.providers import RunContext, provider_for
from convergectl.providers.package import binary_for
from convergectl.providers.shellrc import detect_shell_rc
from tests.conftest import FakeShell


@pytest.fixture
def fake_ctx(run_ctx: RunContext, fake_shell: FakeShell) -> RunContext:
    return dataclasses.replace(run_ctx, shell=fake_shell)


# ---------------------------------------------------------------------------
# package
# ---------------------------------------------------------------------------


class TestPackage:
    def test_language_manager_checks_path(self, fake_ctx: RunContext) -> None:
        fake_ctx.shell.binaries.add("rg")  # type: ignore[attr-defined]
        present = PackageItem(manager="cargo", spec="ripgrep:rg")
        absent = PackageItem(manager="cargo", spec="bat")
        assert provider_for(present).check(present, fake_ctx).satisfied
        assert "'bat' not in PATH" in provider_for(absent).check(absent, fake_ctx).detail

    def test_go_binary_from_module_path(self) -> None:
        item = PackageItem(manager="go", spec="golang.org/x/tools/cmd/goimports@latest")
        assert binary_for(item) == "goimports"

    def test_apt_marker(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        fake_shell.responses["dpkg-query*"] = CommandOutput(stdout="deinstall ok config-files")
        item = PackageItem(manager="apt", spec="htop")
        assert not provider_for(item).check(item, fake_ctx).satisfied

    def test_os_uses_detected_manager(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        fake_shell.binaries.add("pacman")
        item = PackageItem(manager="os", spec="htop")
        assert provider_for(item).apply(item, fake_ctx).ok
        assert fake_shell.commands == ["pacman -S --noconfirm --needed htop"]

    def test_sudo_when_not_root(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        ctx = dataclasses.replace(fake_ctx, is_root=False)
        item = PackageItem(manager="apt", spec="jq")
        provider_for(item).apply(item, ctx)
        assert fake_shell.commands[-1].startswith("sudo env DEBIAN_FRONTEND=noninteractive")

    def test_os_without_manager(self, fake_ctx: RunContext) -> None:
        item = PackageItem(manager="os", spec="htop")
        assert provider_for(item).check(item, fake_ctx).status == CheckStatus.UNKNOWN
        assert not provider_for(item).apply(item, fake_ctx).ok

    def test_install_failure_reason(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        fake_shell.responses["cargo install bat"] = CommandOutput(stderr="no network", exit_code=1)
        item = PackageItem(manager="cargo", spec="bat")
        result = provider_for(item).apply(item, fake_ctx)
        assert result.reason == "cargo install failed: no network"


# ---------------------------------------------------------------------------
# service
# ---------------------------------------------------------------------------


class TestService:
    def test_enable_and_start(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        fake_shell.responses["systemctl is-enabled sshd"] = 1
        item = ServiceItem(name="sshd", enabled=True)
        assert not provider_for(item).check(item, fake_ctx).satisfied
        assert provider_for(item).apply(item, fake_ctx).ok
        assert fake_shell.commands[-2:] == ["systemctl enable sshd", "systemctl start sshd"]

    def test_user_scope_no_sudo(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        ctx = dataclasses.replace(fake_ctx, is_root=False)
        item = ServiceItem(name="syncthing", scope=ServiceScope.USER)
        provider_for(item).apply(item, ctx)
        assert fake_shell.commands == ["systemctl --user start syncthing"]

    def test_inactive(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        item = ServiceItem(name="cups", state="inactive")
        assert "still active" in provider_for(item).check(item, fake_ctx).detail
        provider_for(item).apply(item, fake_ctx)
        assert fake_shell.commands[-1] == "systemctl stop cups"

    def test_unknown_unit(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        fake_shell.responses["systemctl cat nope"] = 1
        item = ServiceItem(name="nope")
        assert "not found" in provider_for(item).check(item, fake_ctx).detail


# ---------------------------------------------------------------------------
# alias / env / script
# ---------------------------------------------------------------------------


class TestShellRc:
    def test_alias_written_and_sourced(self, run_ctx: RunContext) -> None:
        item = AliasItem(name="ll", value="ls -l")
        provider = provider_for(item)
        assert not provider.check(item, run_ctx).satisfied
        assert provider.apply(item, run_ctx).ok
        assert provider.check(item, run_ctx).satisfied

        managed = (run_ctx.home / ".convergectl_aliases").read_text()
        assert "alias ll='ls -l'" in managed.splitlines()
        bashrc = (run_ctx.home / ".bashrc").read_text()
        assert bashrc.count(".convergectl_aliases") == 2

    def test_redefinition_replaces(self, run_ctx: RunContext) -> None:
        provider = provider_for(EnvItem(name="EDITOR", value="vim"))
        provider.apply(EnvItem(name="EDITOR", value="vim"), run_ctx)
        provider.apply(EnvItem(name="EDITOR", value="nvim"), run_ctx)
        provider.apply(EnvItem(name="PAGER", value="less"), run_ctx)
        lines = (run_ctx.home / ".convergectl_env").read_text().splitlines()
        assert lines[1:] == ['export EDITOR="nvim"', 'export PAGER="less"']
        bashrc = (run_ctx.home / ".bashrc").read_text().splitlines()
        assert len(bashrc) == 1

    @pytest.mark.parametrize(
        ("shell", "rc"),
        [("/bin/zsh", ".zshrc"), ("/usr/bin/fish", ".config/fish/config.fish"), ("", ".bashrc")],
    )
    def test_detect_shell_rc(self, home: Path, shell: str, rc: str) -> None:
        assert detect_shell_rc(home, shell) == home / rc


class TestScript:
    def test_installed_executable(self, run_ctx: RunContext) -> None:
        item = ScriptItem(name="hello", content="#!/bin/sh\necho hi\n")
        provider = provider_for(item)
        provider.apply(item, run_ctx)
        target = run_ctx.home / ".local" / "bin" / "hello"
        assert target.stat().st_mode & 0o777 == 0o755
        assert provider.check(item, run_ctx).satisfied

        target.chmod(0o644)
        assert provider.check(item, run_ctx).detail == "not executable"


# ---------------------------------------------------------------------------
# assert
# ---------------------------------------------------------------------------


class TestAssert:
    def test_stdout_pattern(self, run_ctx: RunContext) -> None:
        item = AssertItem(check="echo $GREETING world", stdout="^hello")
        assert provider_for(item).check(item, run_ctx).satisfied

    def test_stdout_mismatch_detail(self, run_ctx: RunContext) -> None:
        item = AssertItem(check="echo 3.10", stdout=r"^3\.12")
        detail = provider_for(item).check(item, run_ctx).detail
        assert detail == "stdout '3.10' doesn't match '^3\\.12'"

    def test_stderr_pattern(self, run_ctx: RunContext) -> None:
        item = AssertItem(check="echo warn >&2", stderr="warn")
        assert provider_for(item).check(item, run_ctx).satisfied

    def test_message_overrides_detail(self, run_ctx: RunContext) -> None:
        item = AssertItem(check="exit 1", message="swap must be off")
        assert provider_for(item).check(item, run_ctx).detail == "swap must be off"

    def test_foreach_findings(self, run_ctx: RunContext) -> None:
        item = AssertItem(foreach="printf 'a\\n\\nb\\n'")
        check = provider_for(item).check(item, run_ctx)
        assert check.findings == ("a", "b")
        assert check.detail == "2 finding(s)"

    def test_never_applies(self, run_ctx: RunContext) -> None:
        item = AssertItem(check="true")
        assert provider_for(item).apply(item, run_ctx).declined


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    def test_check_is_unknown(self, fake_ctx: RunContext) -> None:
        item = RunItem(name="deploy", cmd="make deploy")
        assert provider_for(item).check(item, fake_ctx).status == CheckStatus.UNKNOWN

    def test_passes_args_interactively(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        item = RunItem(name="greet", cmd='echo "$@"', args=("a", "b c"))
        assert provider_for(item).apply(item, fake_ctx).ok
        assert fake_shell.interactive == [('echo "$@"', ("a", "b c"))]

    def test_nonzero_exit(self, fake_ctx: RunContext, fake_shell: FakeShell) -> None:
        fake_shell.interactive_code = 4
        item = RunItem(name="deploy", cmd="make deploy")
        result = provider_for(item).apply(item, fake_ctx)
        assert result.reason == "command 'deploy' exited with status 4"
