"""Probe evaluation and the ``state`` query operations.

:class:`ProbeEvaluator` resolves a DAG of probes generation by
generation. Each generation is a ready-set whose dependencies are all
resolved, evaluated concurrently in a thread pool. The graph is validated
(unknown deps, cycles) before any command runs.

Command output with a TTL is cached as ``probe:<name>`` in the blob cache
with an explicit timestamp; rewrite rules and templates are recomputed on
every evaluation, cache hit or not.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from convergectl.domain.probes import Probe, ProbeResult, apply_rewrites, split_query
from convergectl.domain.vars import VarScope
from convergectl.errors import ConfigError
from convergectl.infrastructure.cache_store import BlobCache
from convergectl.infrastructure.graph import build_probe_graph, generations, restrict
from convergectl.infrastructure.shell import Shell
from convergectl.infrastructure.templates import TemplateRenderer
from convergectl.services.base import BaseService
from convergectl.services.result import ServiceResult

logger = logging.getLogger(__name__)

QUERY_OPS = ("is", "isnot", "get")


class ProbeEvaluator:
    """``evaluate(probes, only=None) -> {name: ProbeResult}``."""

    def __init__(
        self,
        *,
        shell: Shell,
        renderer: TemplateRenderer,
        vars: VarScope,
        base_dir: Path,
        blobs: BlobCache | None = None,
        max_workers: int = 8,
    ) -> None:
        self._shell = shell
        self._renderer = renderer
        self._vars = vars
        self._base_dir = base_dir
        self._blobs = blobs
        self._max_workers = max(1, max_workers)

    def evaluate(
        self, probes: Sequence[Probe], only: Iterable[str] | None = None
    ) -> dict[str, ProbeResult]:
        """Evaluate *probes* (or *only* those plus their transitive deps).

        Results come back in declaration order.

        Raises:
            ConfigError: On an unknown dependency, a duplicate name or a
                cycle. Nothing has been executed when this is raised.
        """
        graph = build_probe_graph(probes)
        if only is not None:
            graph = restrict(graph, only)
        results: dict[str, ProbeResult] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            for ready in generations(graph):
                resolved = dict(results)
                futures = {
                    name: pool.submit(self._evaluate_one, graph.nodes[name]["probe"], resolved)
                    for name in ready
                }
                for name in ready:
                    results[name] = futures[name].result()
        return {p.name: results[p.name] for p in probes if p.name in results}

    # --- one probe ---

    def _dep_context(self, probe: Probe, resolved: Mapping[str, ProbeResult]) -> dict[str, Any]:
        return {dep.replace("-", "_"): resolved[dep].as_context() for dep in probe.deps}

    def _command_output(self, probe: Probe) -> str:
        assert probe.cmd is not None
        key = f"probe:{probe.name}"
        max_age = probe.max_age
        if max_age is not None and self._blobs is not None:
            cached = self._blobs.get(key, max_age)
            if cached is not None:
                logger.debug("probe %s: cache hit", probe.name)
                return cached.decode("utf-8")
        out = self._shell.run(probe.cmd, self._vars.environ(), self._base_dir)
        if not out.ok:
            logger.debug("probe %s: exit %d", probe.name, out.exit_code)
        raw = out.stdout.strip()
        if max_age is not None and self._blobs is not None:
            self._blobs.set(key, raw.encode("utf-8"))
        return raw

    def _evaluate_one(self, probe: Probe, resolved: Mapping[str, ProbeResult]) -> ProbeResult:
        deps = self._dep_context(probe, resolved)
        raw = ""
        if probe.cmd is not None:
            raw = self._command_output(probe)
        if probe.expr is not None:
            context: dict[str, Any] = {**self._vars.resolved, **deps}
            if probe.cmd is not None:
                context["raw"] = raw
            raw = self._renderer.render(probe.expr, context).strip()

        value, original = apply_rewrites(raw, probe.rewrite)
        parsed: Any = None
        if probe.json_output:
            try:
                parsed = json.loads(value)
            except ValueError:
                logger.debug("probe %s: output is not JSON", probe.name)

        template_ctx: dict[str, Any] = {
            **self._vars.resolved,
            **deps,
            "raw": parsed if parsed is not None else value,
            "value": value,
        }
        if original is not None:
            template_ctx["original"] = original
        rendered = {
            name: self._renderer.render(source, template_ctx)
            for name, source in probe.templates.items()
        }
        return ProbeResult(
            name=probe.name,
            raw=raw,
            value=value,
            original=original,
            templates=rendered,
            parsed=parsed,
        )


class StateService(BaseService):
    """List probe values, read a variant, or test one (``is``/``isnot``/``get``)."""

    def evaluator(self) -> ProbeEvaluator:
        decl = self._ws.declaration
        return ProbeEvaluator(
            shell=self._ws.shell,
            renderer=self._ws.renderer,
            vars=decl.vars_for(()),
            base_dir=decl.base_dir,
            blobs=self._ws.blob_cache,
            max_workers=self._ws.settings.probes.max_workers,
        )

    def query(self, names: Sequence[str] = (), args: Sequence[str] = ()) -> ServiceResult:
        op = "state"
        try:
            probes = self._ws.declaration.probes
            if not probes:
                msg = "No state probes defined in config"
                raise ConfigError(msg)
            if names and args and args[0] in QUERY_OPS:
                return self._operator(names[0], list(args))
            queries = [*names, *args]
            wanted = [split_query(q)[0] for q in queries]
            results = self.evaluator().evaluate(probes, only=wanted or None)
        except ConfigError as exc:
            return ServiceResult.failure(op, exc)

        if not queries:
            data = {"probes": {name: r.to_dict() for name, r in results.items()}}
            return ServiceResult(ok=True, op=op, data=data)
        try:
            values = [{"query": q, "value": _variant(results, q)} for q in queries]
        except ConfigError as exc:
            return ServiceResult.failure(op, exc)
        return ServiceResult(ok=True, op=op, data={"values": values})

    def _operator(self, query: str, args: list[str]) -> ServiceResult:
        name, _variant_name = split_query(query)
        results = self.evaluator().evaluate(self._ws.declaration.probes, only=[name])
        value = _variant(results, query)
        operator, operands = args[0], args[1:]
        data: dict[str, Any] = {"query": query, "value": value, "operator": operator}
        if operator in ("is", "isnot"):
            if not operands:
                msg = f"Missing value after {operator!r}"
                raise ConfigError(msg)
            matched = value == operands[0]
            ok = matched if operator == "is" else not matched
            data["expected"] = operands[0]
            return ServiceResult(ok=ok, op="state_test", data=data)
        if len(operands) < 2:
            msg = "Usage: state <name> get <value>... <default>"
            raise ConfigError(msg)
        allowed, fallback = operands[:-1], operands[-1]
        data["result"] = value if value in allowed else fallback
        return ServiceResult(ok=True, op="state_get", data=data)


def _variant(results: Mapping[str, ProbeResult], query: str) -> str:
    name, variant = split_query(query)
    if name not in results:
        msg = f"Unknown state probe: {name}"
        raise ConfigError(msg)
    value = results[name].variant(variant)
    if value is None:
        msg = f"Unknown variant {variant!r} for state {name!r}"
        raise ConfigError(msg)
    return value
