"""Remote command transport over ssh and rsync.

One channel per operation. Authentication and host keys are left to the
user's ssh configuration; ssh's own exit status 255 means the channel
could not be opened and is reported as :class:`HostUnreachableError`.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from convergectl.errors import HostUnreachableError
from convergectl.infrastructure.shell import CommandOutput

logger = logging.getLogger(__name__)

SSH_UNREACHABLE = 255


class Transport(Protocol):
    def push(self, host: str, local_dir: Path, remote_dir: str) -> None: ...

    def run(self, host: str, command: str, *, tty: bool = False) -> CommandOutput: ...


class SshTransport:
    """ssh for commands, rsync for shipping the prepared bundle."""

    def __init__(self, ssh_options: Sequence[str] = ()) -> None:
        self._options = list(ssh_options)

    def _ssh(self, host: str, *, tty: bool = False) -> list[str]:
        argv = ["ssh", *self._options]
        if tty:
            argv.append("-t")
        argv.append(host)
        return argv

    def push(self, host: str, local_dir: Path, remote_dir: str) -> None:
        """Mirror *local_dir* to ``host:remote_dir``.

        Raises:
            HostUnreachableError: If the directory cannot be created or synced.
        """
        mkdir = self.run(host, f"mkdir -p {shlex.quote(remote_dir)}")
        if not mkdir.ok:
            raise HostUnreachableError(host, mkdir.stderr.strip() or "mkdir failed")
        rsh = " ".join(["ssh", *self._options])
        argv = ["rsync", "-az", "--delete", "-e", rsh, f"{local_dir}/", f"{host}:{remote_dir}/"]
        logger.debug("push: %s", " ".join(argv))
        proc = subprocess.run(
            argv, capture_output=True, encoding="utf-8", errors="replace", check=False
        )
        if proc.returncode != 0:
            raise HostUnreachableError(host, f"rsync failed: {proc.stderr.strip()}")

    def run(self, host: str, command: str, *, tty: bool = False) -> CommandOutput:
        """Run *command* on *host*.

        With *tty* the remote session is attached to this terminal and the
        returned output is empty; only the exit code is relayed. Without it
        the channel gets no stdin, so a remote prompt reads EOF.

        Raises:
            HostUnreachableError: If ssh could not open the channel.
        """
        argv = [*self._ssh(host, tty=tty), command]
        logger.debug("ssh %s: %s", host, command)
        if tty:
            proc = subprocess.run(argv, check=False)
            result = CommandOutput(exit_code=proc.returncode)
        else:
            captured = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
            result = CommandOutput(
                stdout=captured.stdout, stderr=captured.stderr, exit_code=captured.returncode
            )
        if result.exit_code == SSH_UNREACHABLE:
            raise HostUnreachableError(host, result.stderr.strip() or "connection failed")
        return result
