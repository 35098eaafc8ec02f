"""Tests for the state command."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from convergectl.cli import cli
from tests.conftest import write_config


@pytest.fixture
def probes(tmp_path: Path) -> Path:
    return write_config(
        tmp_path,
        {
            "probes.toml": """
                [[state]]
                name = "os"
                cmd = "echo Arch Linux"
                rewrite = [{ match = "^Arch", value = "arch" }]
                templates = { pkg = "{% if value == 'arch' %}pacman{% endif %}" }

                [[state]]
                name = "cpu-arch"
                cmd = "echo x86_64"
            """
        },
    )


@pytest.mark.usefixtures("probes")
class TestStateCommand:
    def test_single_value(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state", "os"])
        assert result.exit_code == 0
        assert result.stdout == "arch\n"

    def test_template_variant(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state", "os.pkg"])
        assert result.stdout == "pacman\n"

    def test_table(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state"])
        assert result.exit_code == 0
        assert "cpu-arch" in result.stdout
        assert "x86_64" in result.stdout

    def test_quiet_pairs(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["-q", "state"])
        assert result.stdout == "os=arch\ncpu-arch=x86_64\n"

    def test_json_flag_after_command(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state", "os", "--json"])
        data = json.loads(result.stdout)
        assert data["data"]["values"][0]["value"] == "arch"

    @pytest.mark.parametrize(
        ("args", "code"),
        [
            (["os", "is", "arch"], 0),
            (["os", "is", "debian"], 1),
            (["os", "isnot", "debian"], 0),
        ],
    )
    def test_predicates_answer_by_exit_code(
        self, cli_runner: CliRunner, args: list[str], code: int
    ) -> None:
        result = cli_runner.invoke(cli, ["state", *args])
        assert result.exit_code == code
        assert result.stdout == ""

    def test_get(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state", "os", "get", "debian", "arch", "other"])
        assert result.stdout == "arch\n"

    def test_unknown_probe(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["state", "gpu"])
        assert result.exit_code == 1
        assert "Unknown probe 'gpu'" in result.stderr
