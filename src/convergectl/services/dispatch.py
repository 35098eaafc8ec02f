"""Dispatch — run a mode or a run command locally or across remote hosts.

Local targets reconcile in-process against the prepared bundle. Remote
targets get the bundle pushed to ``<workdir>/config`` and re-invoke
convergectl there with ``--prepared``, one ssh channel per host.

INVARIANT: Every constraint is checked and every prompt answered before
the first host is contacted. After that, hosts are independent: one
host's failure (unreachable, non-zero exit, or an unexpected exception)
is that host's result and never stops the others.
"""

from __future__ import annotations

import shlex
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pydantic import BaseModel

from convergectl.config.loader import ConfigFile
from convergectl.config.logging import host_logger
from convergectl.domain.hosts import HostTarget, LocalTarget, MultiRemote, resolve_target
from convergectl.domain.items import CommandItem, RunItem, parse_package_spec
from convergectl.domain.types import Mode
from convergectl.errors import ConfigError, ConvergeError, DispatchError, HostUnreachableError
from convergectl.providers import RunContext
from convergectl.providers.run import RunProvider
from convergectl.services.artifacts import ArtifactService, Bundle
from convergectl.services.base import BaseService
from convergectl.services.reconcile import ReconcileService
from convergectl.services.result import ServiceResult


class HostResult(BaseModel):
    """Outcome of one remote invocation."""

    model_config = {"frozen": True}

    host: str
    ok: bool
    exit_code: int | None = None
    output: str = ""
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def summary(self) -> str:
        """Last non-empty output line, or the error."""
        if self.error:
            return self.error
        lines = [line.strip() for line in self.output.splitlines() if line.strip()]
        return lines[-1] if lines else ""

    def to_dict(self) -> dict[str, Any]:
        return {**self.model_dump(mode="json"), "summary": self.summary}


def _hosts_data(results: Sequence[HostResult]) -> dict[str, Any]:
    failed = [r.host for r in results if not r.ok]
    return {
        "hosts": [r.to_dict() for r in results],
        "total": len(results),
        "failed": failed,
    }


class DispatchService(BaseService):
    """Resolve the target, enforce dispatch constraints and fan out."""

    # --- targets ---

    def target(self) -> HostTarget:
        settings = self._ws.settings
        if not (settings.target or settings.remotes):
            return LocalTarget()
        inventory: list[str] = []
        if settings.remotes:
            inventory = self._ws.declaration.inventory
            if not inventory:
                msg = "No hosts defined (inventory.ini missing or empty)"
                raise ConfigError(msg)
        return resolve_target(target=settings.target, remotes=settings.remotes, inventory=inventory)

    def hosts(self, pattern: str | None = None) -> ServiceResult:
        op = "hosts"
        try:
            inventory = self._ws.declaration.inventory
            if pattern:
                target = resolve_target(target=None, remotes=pattern, inventory=inventory)
                hosts = list(target.addresses)
            else:
                hosts = list(inventory)
        except ConfigError as exc:
            return ServiceResult.failure(op, exc)
        return ServiceResult(ok=True, op=op, data={"pattern": pattern, "hosts": hosts})

    # --- modes ---

    def converge(self, mode: Mode, selectors: Sequence[str] = ()) -> ServiceResult:
        """Run ``apply``/``check``/``plan`` on the resolved target."""
        try:
            target = self.target()
            if isinstance(target, LocalTarget):
                return self._converge_local(mode, selectors)
            return self._converge_remote(target, mode, selectors)
        except ConvergeError as exc:
            return ServiceResult.failure(mode.value, exc)

    def _converge_local(self, mode: Mode, selectors: Sequence[str]) -> ServiceResult:
        reconcile = ReconcileService(self._ws)
        if self._ws.settings.prepared or mode == Mode.PLAN:
            return reconcile.converge(mode, selectors)
        with ArtifactService(self._ws).bundle() as bundle:
            result = reconcile.converge(mode, selectors, base_dir=bundle.base_dir)
        if not bundle.artifacts:
            return result
        meta = {**(result.meta or {}), "artifacts": bundle.artifacts}
        return result.model_copy(update={"meta": meta})

    def _converge_remote(
        self, target: HostTarget, mode: Mode, selectors: Sequence[str]
    ) -> ServiceResult:
        decl = self._ws.declaration
        files = decl.select(selectors)
        hosts = target.addresses
        op = "dispatch"
        base: dict[str, Any] = {"mode": mode.value, "selectors": list(selectors)}

        local_cmds = [item for item in decl.run.values() if item.local]
        if isinstance(target, MultiRemote) and mode == Mode.APPLY:
            prompt = f"{mode.value} on {len(hosts)} host(s): {', '.join(hosts)}. Proceed?"
            if not self._ws.confirm(prompt):
                return ServiceResult(ok=True, op=op, data={**base, "aborted": True})

        flags = ["-q", "--prepared"]
        ran_local: list[str] = []
        if mode == Mode.APPLY:
            flags.append(self._confirm_flag(files, hosts))
            for item in local_cmds:
                self._run_local(item)
                ran_local.append(item.name)

        remote = self._ws.settings.remote
        config_dir = f"{remote.workdir}/config"
        command = " ".join(
            [
                self._export_prefix() + remote.executable,
                *flags,
                "-c",
                shlex.quote(config_dir),
                mode.value,
                *(shlex.quote(s) for s in selectors),
            ]
        )

        with ArtifactService(self._ws).bundle() as bundle:

            def deploy(host: str) -> HostResult:
                return self._deploy(host, bundle, config_dir, command)

            results = self.fan_out(hosts, deploy)

        data = {**base, **_hosts_data(results), "local_commands": ran_local}
        return ServiceResult(
            ok=all(r.ok for r in results),
            op=op,
            data=data,
            meta={"artifacts": bundle.artifacts},
        )

    def _confirm_flag(self, files: Sequence[ConfigFile], hosts: Sequence[str]) -> str:
        """Answer every selected ``confirm`` command once, here, for all hosts.

        The answer travels as ``-y`` or ``--no-interact``; remote channels
        have no stdin to prompt on.
        """
        names = [
            item.name
            for cfg in files
            for item in cfg.items
            if isinstance(item, CommandItem) and item.confirm
        ]
        if names and self._ws.confirm(f"Apply {', '.join(names)} on {len(hosts)} host(s)?"):
            return "-y"
        return "--no-interact"

    def _deploy(self, host: str, bundle: Bundle, config_dir: str, command: str) -> HostResult:
        log = host_logger(host)
        transport = self._ws.transport
        start = time.monotonic()
        log.debug("syncing config", dest=config_dir)
        transport.push(host, bundle.base_dir, config_dir)
        if self._ws.settings.remote.install:
            link = f"mkdir -p ~/.config && ln -sfn {shlex.quote(config_dir)} ~/.config/convergectl"
            linked = transport.run(host, link)
            if not linked.ok:
                log.warning("remote install link failed", stderr=linked.stderr.strip())
        log.debug("running", command=command)
        out = transport.run(host, command)
        return HostResult(
            host=host,
            ok=out.ok,
            exit_code=out.exit_code,
            output=out.stdout + out.stderr,
            duration_ms=(time.monotonic() - start) * 1000,
        )

    # --- fan-out ---

    def fan_out(self, hosts: Sequence[str], task: Callable[[str], HostResult]) -> list[HostResult]:
        """Run *task* for every host concurrently; results come back in host order."""
        workers = max(1, min(len(hosts), self._ws.settings.dispatch.max_workers))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._isolated, host, task) for host in hosts]
            return [f.result() for f in futures]

    def _isolated(self, host: str, task: Callable[[str], HostResult]) -> HostResult:
        log = host_logger(host)
        start = time.monotonic()
        try:
            result = task(host)
        except HostUnreachableError as exc:
            log.warning("unreachable", error=str(exc))
            error = str(exc)
        except Exception as exc:
            log.exception("dispatch failed")
            error = f"{type(exc).__name__}: {exc}"
        else:
            log.debug("done", ok=result.ok, exit_code=result.exit_code)
            return result
        return HostResult(
            host=host, ok=False, error=error, duration_ms=(time.monotonic() - start) * 1000
        )

    # --- run commands ---

    def run_command(self, name: str | None, args: Sequence[str] = ()) -> ServiceResult:
        """List run commands, or run one on the resolved target."""
        op = "run"
        try:
            decl = self._ws.declaration
            if name is None:
                commands = [
                    {
                        "name": item.name,
                        "description": item.description,
                        "local": item.local,
                        "tty": item.tty,
                        "confirm": item.confirm,
                    }
                    for item in sorted(decl.run.values(), key=lambda i: i.name)
                ]
                return ServiceResult(ok=True, op="run_list", data={"commands": commands})
            item = decl.run_command(name).model_copy(update={"args": tuple(args)})
            target = self.target()
            if item.local:
                target = LocalTarget()
            if isinstance(target, MultiRemote) and item.interactive:
                msg = f"Command {name!r} requires a tty and cannot run on multiple hosts"
                raise DispatchError(msg)
            if item.confirm and not self._ws.confirm(_confirm_prompt(item, target)):
                return ServiceResult(ok=True, op=op, data={"name": name, "aborted": True})
            if isinstance(target, LocalTarget):
                self._run_local(item)
                return ServiceResult(ok=True, op=op, data={"name": name, "exit_code": 0})
            return self._run_remote(item, target)
        except ConvergeError as exc:
            return ServiceResult.failure(op, exc, data={"name": name} if name else {})

    def _run_local(self, item: RunItem) -> None:
        """Install deps, then run *item* on this machine with inherited stdio.

        Raises:
            DispatchError: If a dependency could not be installed or the
                command exited non-zero.
        """
        if item.deps:
            try:
                deps = [parse_package_spec(spec) for spec in item.deps]
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
            installed = ReconcileService(self._ws).apply_items(deps, op="deps")
            if not installed.ok:
                msg = f"Dependencies for {item.name!r} could not be installed"
                raise DispatchError(msg)
        decl = self._ws.declaration
        ctx = RunContext(
            vars=decl.vars_for(()),
            shell=self._ws.shell,
            base_dir=decl.base_dir,
            confirm=self._ws.confirm,
        )
        result = RunProvider().apply(item, ctx)
        if not result.ok:
            raise DispatchError(result.reason)

    def _run_remote(self, item: RunItem, target: HostTarget) -> ServiceResult:
        command = self._export_prefix() + item.cmd
        if item.args:
            command += " " + " ".join(shlex.quote(a) for a in item.args)
        hosts = target.addresses

        def invoke(host: str) -> HostResult:
            start = time.monotonic()
            out = self._ws.transport.run(host, command, tty=item.interactive)
            return HostResult(
                host=host,
                ok=out.ok,
                exit_code=out.exit_code,
                output=out.stdout + out.stderr,
                duration_ms=(time.monotonic() - start) * 1000,
            )

        results = self.fan_out(hosts, invoke)
        data = {"name": item.name, "tty": item.interactive, **_hosts_data(results)}
        return ServiceResult(ok=all(r.ok for r in results), op="dispatch", data=data)

    def _export_prefix(self) -> str:
        return self._ws.declaration.vars_for(()).export_prefix()


def _confirm_prompt(item: RunItem, target: HostTarget) -> str:
    hosts = target.addresses
    if not hosts:
        return f"Run {item.name}?"
    if len(hosts) == 1:
        return f"Run {item.name} on {hosts[0]}?"
    return f"Run {item.name} on {len(hosts)} hosts ({', '.join(hosts)})?"
