"""Reconciliation — the check-then-apply loop over declared items.

Per item, in strict declaration order:

1. ``run_if`` exits non-zero: the item is skipped and nothing is recorded.
2. Check. Assertions stop here: pass, or a non-blocking *issue*.
3. With a cache key declared, a passing check is overridden when the
   current key differs from the stored one. A failing check always applies.
   A ``cache_key_cmd`` that exits non-zero yields no key.
4. Apply. Success stores the key; failure is recorded and the run goes on.

``check`` mode stops after step 2 and ``plan`` after step 1. Neither
applies anything or writes the cache.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path

from convergectl.config.loader import ConfigFile
from convergectl.domain.items import Item, parse_package_spec
from convergectl.domain.outcomes import CheckResult, ItemOutcome, RunReport
from convergectl.domain.probes import ProbeResult
from convergectl.domain.types import Mode, OutcomeStatus
from convergectl.domain.vars import VarScope
from convergectl.errors import ConfigError, ConvergeError
from convergectl.infrastructure.cache_store import CacheStore
from convergectl.providers import RunContext, provider_for
from convergectl.services.base import BaseService
from convergectl.services.probes import ProbeEvaluator
from convergectl.services.result import ServiceResult

logger = logging.getLogger(__name__)


class Reconciler:
    """Runs the per-item algorithm against one :class:`RunContext`."""

    def __init__(
        self,
        ctx: RunContext,
        cache: CacheStore,
        *,
        mode: Mode = Mode.APPLY,
        on_outcome: Callable[[ItemOutcome], None] | None = None,
    ) -> None:
        self._ctx = ctx
        self._cache = cache
        self._mode = mode
        self._on_outcome = on_outcome

    def gate(self, predicate: str | None) -> bool:
        """True when there is no predicate or it exits 0."""
        if predicate is None:
            return True
        return self._ctx.sh(predicate).ok

    def current_key(self, item: Item) -> str | None:
        if item.cache_key is not None:
            return self._ctx.vars.expand(item.cache_key)
        if item.cache_key_cmd is not None:
            out = self._ctx.sh(item.cache_key_cmd)
            if not out.ok:
                logger.warning(
                    "cache_key_cmd for %s exited %d; ignoring the cache key",
                    item.identity,
                    out.exit_code,
                )
                return None
            return out.stdout.strip()
        return None

    def run(self, items: Iterable[Item]) -> list[ItemOutcome]:
        return [self.reconcile(item) for item in items]

    def reconcile(self, item: Item) -> ItemOutcome:
        try:
            outcome = self._reconcile(item)
        except (OSError, ValueError, ConvergeError) as exc:
            logger.debug("%s failed", item.identity, exc_info=True)
            outcome = self._outcome(item, OutcomeStatus.FAILED, str(exc))
        if self._on_outcome is not None:
            self._on_outcome(outcome)
        return outcome

    def _outcome(
        self,
        item: Item,
        status: OutcomeStatus,
        detail: str = "",
        findings: Sequence[str] = (),
    ) -> ItemOutcome:
        return ItemOutcome(
            identity=item.identity,
            kind=item.kind,
            label=item.describe(),
            status=status,
            detail=detail,
            findings=list(findings),
        )

    def _reconcile(self, item: Item) -> ItemOutcome:
        if not self.gate(item.run_if):
            return self._outcome(item, OutcomeStatus.SKIPPED, "run_if")
        if self._mode == Mode.PLAN:
            return self._outcome(item, OutcomeStatus.PLANNED)

        provider = provider_for(item)
        check: CheckResult = provider.check(item, self._ctx)

        if item.check_only:
            if check.satisfied:
                return self._outcome(item, OutcomeStatus.PASSED)
            return self._outcome(item, OutcomeStatus.ISSUE, check.detail, check.findings)

        if self._mode == Mode.CHECK:
            status = OutcomeStatus.SATISFIED if check.satisfied else OutcomeStatus.MISSING
            return self._outcome(item, status, check.detail)

        key = self.current_key(item)
        if check.satisfied:
            if key is None or self._cache.get(item.identity) == key:
                return self._outcome(item, OutcomeStatus.UNCHANGED)
            logger.debug("%s: cache key changed, applying", item.identity)

        result = provider.apply(item, self._ctx)
        if not result.ok:
            return self._outcome(item, OutcomeStatus.FAILED, result.reason)
        if result.declined:
            return self._outcome(item, OutcomeStatus.SKIPPED, result.reason)
        if key is not None:
            self._cache.set(item.identity, key)
        return self._outcome(item, OutcomeStatus.CHANGED, check.detail)


class ReconcileService(BaseService):
    """Reconcile the selected config files on this machine."""

    def context(
        self,
        selectors: Sequence[str] = (),
        *,
        base_dir: Path | None = None,
    ) -> RunContext:
        decl = self._ws.declaration
        scope = decl.vars_for(selectors)
        root = base_dir or decl.base_dir
        evaluator = ProbeEvaluator(
            shell=self._ws.shell,
            renderer=self._ws.renderer,
            vars=scope,
            base_dir=root,
            blobs=self._ws.blob_cache,
            max_workers=self._ws.settings.probes.max_workers,
        )
        resolved: dict[str, Mapping[str, ProbeResult]] = {}

        def probes() -> Mapping[str, ProbeResult]:
            if "all" not in resolved:
                resolved["all"] = evaluator.evaluate(decl.probes) if decl.probes else {}
            return resolved["all"]

        return RunContext(
            vars=scope,
            shell=self._ws.shell,
            base_dir=root,
            renderer=self._ws.renderer,
            fetcher=self._ws.fetcher,
            blobs=self._ws.blob_cache,
            probes=probes,
            confirm=self._ws.confirm,
        )

    def converge(
        self,
        mode: Mode,
        selectors: Sequence[str] = (),
        *,
        base_dir: Path | None = None,
    ) -> ServiceResult:
        """Run *mode* over the config files matched by *selectors*.

        Selectors are resolved first; each selected file's own ``run_if``
        is then evaluated and a failing file contributes no items.
        """
        op = mode.value
        warnings: list[str] = []
        start = time.monotonic()
        try:
            decl = self._ws.declaration
            files = decl.select(selectors)
            ctx = self.context(selectors, base_dir=base_dir)
        except ConfigError as exc:
            return ServiceResult.failure(op, exc)

        reconciler = Reconciler(
            ctx,
            self._ws.cache_store,
            mode=mode,
            on_outcome=lambda o: self._item_event(o, warnings),
        )
        outcomes: list[ItemOutcome] = []
        skipped: list[str] = []
        for cfg in files:
            if not self._file_enabled(cfg, reconciler):
                skipped.append(cfg.key)
                continue
            outcomes += reconciler.run(cfg.items)

        report = RunReport(
            mode=mode, outcomes=outcomes, duration_ms=(time.monotonic() - start) * 1000
        )
        self._dispatch_event(
            "post_run",
            {"host": report.host, "mode": op, "ok": report.ok, "counts": report.counts()},
            warnings,
        )
        return ServiceResult(
            ok=report.ok,
            op=op,
            data=report.to_dict(),
            warnings=warnings,
            meta={
                "config": str(decl.path),
                "configs": [f.key for f in files if f.key not in skipped],
                "skipped_configs": skipped,
                "banner": decl.meta.banner,
            },
        )

    def install(self, specs: Sequence[str]) -> ServiceResult:
        """Apply inline ``manager.package`` specs without a config file."""
        op = "install"
        try:
            items = [parse_package_spec(spec) for spec in specs]
        except ValueError as exc:
            return ServiceResult.failure(op, ConfigError(str(exc)))
        return self.apply_items(items, op=op)

    def apply_items(self, items: Sequence[Item], *, op: str = "apply") -> ServiceResult:
        """Apply ad-hoc items with the base vars (run deps, inline installs)."""
        warnings: list[str] = []
        start = time.monotonic()
        if self._ws.settings.config_path is not None:
            ctx = self.context()
        else:
            ctx = RunContext(
                vars=VarScope(),
                shell=self._ws.shell,
                base_dir=Path.cwd(),
                fetcher=self._ws.fetcher,
                confirm=self._ws.confirm,
            )
        reconciler = Reconciler(
            ctx, self._ws.cache_store, on_outcome=lambda o: self._item_event(o, warnings)
        )
        report = RunReport(
            outcomes=reconciler.run(items), duration_ms=(time.monotonic() - start) * 1000
        )
        return ServiceResult(ok=report.ok, op=op, data=report.to_dict(), warnings=warnings)

    def _file_enabled(self, cfg: ConfigFile, reconciler: Reconciler) -> bool:
        if reconciler.gate(cfg.meta.run_if):
            return True
        logger.debug("config %s skipped by run_if", cfg.key)
        return False

    def _item_event(self, outcome: ItemOutcome, warnings: list[str]) -> None:
        self._dispatch_event(
            "post_item",
            {
                "host": "local",
                "identity": outcome.identity,
                "kind": outcome.kind,
                "status": outcome.status.value,
                "detail": outcome.detail,
            },
            warnings,
        )
