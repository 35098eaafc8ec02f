"""Shared pytest fixtures and test helpers for convergectl tests."""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Callable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from convergectl.config.settings import CvgSettings
from convergectl.domain.vars import VarScope
from convergectl.errors import HostUnreachableError
from convergectl.infrastructure.database.engine import init_cache_database
from convergectl.infrastructure.shell import CommandOutput, ShellRunner
from convergectl.providers import RunContext
from convergectl.workspace import Workspace

Handler = Callable[[str], CommandOutput]


class FakeShell:
    """Records commands; answers from exact-match or prefix rules, else exit 0.

    ``responses`` maps a command (or a command prefix ending in ``*``) to a
    CommandOutput, an exit code, or a callable taking the command.
    """

    def __init__(
        self,
        responses: Mapping[str, CommandOutput | int | Handler] | None = None,
        *,
        binaries: Sequence[str] = (),
        interactive_code: int = 0,
    ) -> None:
        self.responses = dict(responses or {})
        self.binaries = set(binaries)
        self.interactive_code = interactive_code
        self.commands: list[str] = []
        self.interactive: list[tuple[str, tuple[str, ...]]] = []
        self.envs: list[dict[str, str]] = []

    def _answer(self, command: str) -> CommandOutput:
        rule = self.responses.get(command)
        if rule is None:
            for pattern, candidate in self.responses.items():
                if pattern.endswith("*") and command.startswith(pattern[:-1]):
                    rule = candidate
                    break
        if rule is None:
            return CommandOutput()
        if isinstance(rule, int):
            return CommandOutput(exit_code=rule)
        if callable(rule):
            return rule(command)
        return rule

    def run(
        self,
        command: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        args: Sequence[str] = (),
        stdin: str | None = None,
    ) -> CommandOutput:
        self.commands.append(command)
        self.envs.append(dict(env or {}))
        return self._answer(command)

    def run_interactive(
        self,
        command: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        args: Sequence[str] = (),
    ) -> int:
        self.interactive.append((command, tuple(args)))
        return self.interactive_code

    def which(self, binary: str) -> str | None:
        return f"/usr/bin/{binary}" if binary in self.binaries else None

    def count(self, command: str) -> int:
        return self.commands.count(command)


class FakeTransport:
    """In-memory transport: per-host exit codes, unreachable hosts, crashes."""

    def __init__(
        self,
        *,
        exit_codes: Mapping[str, int] | None = None,
        unreachable: Sequence[str] = (),
        crash: Sequence[str] = (),
        output: str = "12 items: 12 unchanged (40ms)\n",
    ) -> None:
        self.exit_codes = dict(exit_codes or {})
        self.unreachable = set(unreachable)
        self.crash = set(crash)
        self.output = output
        self.pushes: list[tuple[str, Path, str]] = []
        self.runs: list[tuple[str, str, bool]] = []
        self.pushed_files: dict[str, list[str]] = {}

    def push(self, host: str, local_dir: Path, remote_dir: str) -> None:
        if host in self.unreachable:
            raise HostUnreachableError(host, "connection refused")
        self.pushes.append((host, local_dir, remote_dir))
        self.pushed_files[host] = sorted(
            str(p.relative_to(local_dir)) for p in local_dir.rglob("*") if p.is_file()
        )

    def run(self, host: str, command: str, *, tty: bool = False) -> CommandOutput:
        if host in self.unreachable:
            raise HostUnreachableError(host, "connection refused")
        if host in self.crash:
            msg = f"unexpected failure talking to {host}"
            raise RuntimeError(msg)
        self.runs.append((host, command, tty))
        code = self.exit_codes.get(host, 0)
        return CommandOutput(stdout=self.output, exit_code=code)

    @property
    def hosts_contacted(self) -> set[str]:
        return {h for h, _c, _t in self.runs} | {h for h, _l, _r in self.pushes}


class Clock:
    """Manually advanced unix clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep HOME, the cache dir, cwd and config discovery inside tmp_path."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("SHELL", "/bin/bash")
    monkeypatch.delenv("CONVERGECTL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """CLI invocations reconfigure the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    cvg = logging.getLogger("convergectl")
    cvg_level = cvg.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    cvg.setLevel(cvg_level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    return tmp_path / "home"


@pytest.fixture
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    """Initialized cache database in a temp directory."""
    engine = init_cache_database(tmp_path / "state")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def fake_shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def run_ctx(tmp_path: Path, home: Path) -> RunContext:
    """A RunContext with a real ``sh`` runner rooted at tmp_path/config."""
    base = tmp_path / "config"
    base.mkdir(exist_ok=True)
    return RunContext(
        vars=VarScope(base={"GREETING": "hello"}),
        shell=ShellRunner(),
        base_dir=base,
        home=home,
        is_root=True,
    )


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def write_config(root: Path, files: Mapping[str, str]) -> Path:
    """Create ``root/converge/`` with the given ``name -> TOML`` files."""
    config = root / "converge"
    config.mkdir(parents=True, exist_ok=True)
    for name, body in files.items():
        path = config / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(body), encoding="utf-8")
    return config


def make_workspace(
    config: Path | None,
    *,
    shell: Any = None,
    transport: Any = None,
    clock: Callable[[], float] | None = None,
    prompt: Callable[[str], bool] | None = None,
    load_plugins: bool = False,
    **flags: Any,
) -> Workspace:
    settings = CvgSettings.from_cli(config_path=str(config) if config else None, **flags)
    kwargs: dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock
    return Workspace(
        settings,
        shell=shell or ShellRunner(),
        transport=transport or FakeTransport(),
        prompt=prompt,
        load_plugins=load_plugins,
        **kwargs,
    )
