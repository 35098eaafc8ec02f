"""Tests for the apply, check and plan commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from convergectl.cli import cli
from tests.conftest import write_config

DOTFILES = {
    "meta.toml": 'banner = "workstation"\n',
    "shell.toml": """
        [alias]
        ll = "ls -l"

        [env]
        EDITOR = "vim"
    """,
    "broken.toml": """
        [meta]
        labels = ["flaky"]

        [[command]]
        name = "always-fails"
        check = "false"
        apply = "echo 'disk full' >&2; exit 3"
    """,
}


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    return write_config(tmp_path, DOTFILES)


class TestApply:
    def test_apply_then_unchanged(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        first = cli_runner.invoke(cli, ["apply", "shell"])
        assert first.exit_code == 0
        assert first.stdout.splitlines()[0] == "workstation"
        assert "[alias] ll" in first.stdout
        assert "2 items: 2 changed" in first.stdout

        second = cli_runner.invoke(cli, ["apply", "shell"])
        assert second.exit_code == 0
        assert "[alias] ll" not in second.stdout
        assert "2 items: 2 unchanged" in second.stdout

    def test_failed_item_exits_one_with_report(
        self, cli_runner: CliRunner, dotfiles: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["apply"])
        assert result.exit_code == 1
        assert "apply failed (exit 3): disk full" in result.stdout
        assert "1 failed" in result.stdout

    def test_label_selector(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "plan", "@flaky"])
        data = json.loads(result.stdout)
        assert [i["identity"] for i in data["data"]["items"]] == ["command:always-fails"]

    def test_unknown_selector(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        result = cli_runner.invoke(cli, ["apply", "nope"])
        assert result.exit_code == 1
        assert result.stdout == ""
        assert "ERROR" in result.stderr
        assert "nope" in result.stderr

    def test_quiet(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        result = cli_runner.invoke(cli, ["-q", "apply", "shell"])
        assert result.exit_code == 0
        assert result.stdout.startswith("2 items: 2 changed")


class TestCheckAndPlan:
    def test_check_changes_nothing(
        self, cli_runner: CliRunner, dotfiles: Path, home: Path
    ) -> None:
        result = cli_runner.invoke(cli, ["--json", "check", "shell"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["op"] == "check"
        assert data["data"]["counts"] == {"missing": 2}
        assert not (home / ".convergectl_aliases").exists()

    def test_plan_lists_items(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        result = cli_runner.invoke(cli, ["--json", "plan"])
        data = json.loads(result.stdout)
        assert data["data"]["counts"] == {"planned": 3}

    def test_no_config_found(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "check"])
        assert result.exit_code == 1
        error = json.loads(result.stderr)["error"]
        assert error["code"] == "CONFIG_ERROR"


class TestRemoteFlags:
    def test_target_and_remotes_conflict(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        (dotfiles / "inventory.ini").write_text("web1\n")
        result = cli_runner.invoke(cli, ["-t", "web1", "-r", "web*", "apply"])
        assert result.exit_code == 1
        assert "Use either --target or --remotes" in result.stderr

    def test_remotes_without_inventory(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        result = cli_runner.invoke(cli, ["-r", "web*", "apply"])
        assert result.exit_code == 1
        assert "No hosts defined" in result.stderr

    def test_declined_multi_host_apply(self, cli_runner: CliRunner, dotfiles: Path) -> None:
        (dotfiles / "inventory.ini").write_text("web1\nweb2\n")
        result = cli_runner.invoke(cli, ["--no-interact", "-r", "web*", "apply"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "Aborted"
