"""Shell execution — the one boundary where commands become processes.

Every check, apply, build and probe command goes through
:meth:`ShellRunner.run` as ``sh -c <command>``. Captured output
is decoded as UTF-8 with undecodable bytes replaced. There is no implicit
timeout: a hung command hangs the run.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CommandOutput(BaseModel):
    model_config = {"frozen": True}

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Shell(Protocol):
    """What providers and services need from a command runner."""

    def run(
        self,
        command: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        args: Sequence[str] = (),
        stdin: str | None = None,
    ) -> CommandOutput: ...

    def run_interactive(
        self,
        command: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        args: Sequence[str] = (),
    ) -> int: ...

    def which(self, binary: str) -> str | None: ...


class ShellRunner:
    """``sh -c`` via :mod:`subprocess`, capturing or passing through stdio."""

    def __init__(self, shell: str = "sh") -> None:
        self._shell = shell

    def _argv(self, command: str, args: Sequence[str]) -> list[str]:
        argv = [self._shell, "-c", command]
        if args:
            argv += ["_", *args]
        return argv

    def run(
        self,
        command: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        args: Sequence[str] = (),
        stdin: str | None = None,
    ) -> CommandOutput:
        logger.debug("run: %s", command)
        proc = subprocess.run(
            self._argv(command, args),
            env=dict(env) if env is not None else None,
            cwd=cwd,
            input=stdin,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
        return CommandOutput(stdout=proc.stdout, stderr=proc.stderr, exit_code=proc.returncode)

    def run_interactive(
        self,
        command: str,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        args: Sequence[str] = (),
    ) -> int:
        """Run with inherited stdin/stdout/stderr; returns the exit code."""
        logger.debug("run (interactive): %s", command)
        proc = subprocess.run(
            self._argv(command, args),
            env=dict(env) if env is not None else None,
            cwd=cwd,
            check=False,
        )
        return proc.returncode

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)
