"""Artifact pre-pass — build stale artifacts and assemble the shipped bundle.

The bundle is a temp copy of the config directory with every artifact's
``src`` copied to its ``dest`` and every ``include`` entry copied in. It is
what local reconciliation runs against and what gets pushed to remotes.

Freshness, per artifact:

* ``watch`` paths declared: md5 over the sorted ``(relpath, size, mtime)``
  of every watched file, compared with the hash stored after the last
  successful build. A missing ``src`` is always stale.
* else ``check`` declared: exit 0 means fresh.
* else: always build.

Any failure raises :class:`~convergectl.errors.ArtifactBuildError`, and the
whole pre-pass finishes before reconciliation starts.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from convergectl.config.loader import Declaration
from convergectl.config.models import ArtifactConfig
from convergectl.domain.items import PackageItem
from convergectl.errors import ArtifactBuildError, ConvergeError
from convergectl.infrastructure.cache_store import ArtifactHashStore
from convergectl.providers import RunContext
from convergectl.providers.package import PackageProvider, binary_for
from convergectl.services.base import BaseService
from convergectl.services.result import ServiceResult

logger = logging.getLogger(__name__)

BUILT = "built"
FRESH = "fresh"
PRE_RESOLVED = "pre-resolved"


def parse_dep(spec: str) -> PackageItem:
    """``[manager.]package[:binary]``; the manager defaults to ``os``.

    Examples:
        >>> parse_dep("apt.protobuf-compiler:protoc").identity
        'package:apt:protobuf-compiler'
        >>> parse_dep("jq").manager
        'os'
    """
    manager, sep, rest = spec.partition(".")
    if not sep:
        return PackageItem(manager="os", spec=spec)
    try:
        return PackageItem(manager=manager, spec=rest)
    except ValueError as exc:
        msg = f"Unknown package manager {manager!r} in dep {spec!r}"
        raise ArtifactBuildError(msg) from exc


def _resolve(base_dir: Path, raw: str) -> Path:
    p = Path(raw).expanduser()
    return p if p.is_absolute() else base_dir / p


def _collect(path: Path, root: Path, out: list[tuple[str, int, int]]) -> None:
    if path.is_file():
        stat = path.stat()
        rel = str(path.relative_to(root)) if path != root else path.name
        out.append((rel, stat.st_size, int(stat.st_mtime)))
    elif path.is_dir():
        for child in path.iterdir():
            _collect(child, root, out)


def watch_hash(base_dir: Path, artifact: ArtifactConfig) -> str:
    """md5 over the sorted (relative path, size, mtime) of every watched file."""
    entries: list[tuple[str, int, int]] = []
    for watch in artifact.watch:
        path = _resolve(base_dir, watch)
        _collect(path, path, entries)
    entries.sort()
    buf = "".join(f"{rel}\0{size}\0{mtime}\n" for rel, size, mtime in entries)
    return hashlib.md5(buf.encode("utf-8")).hexdigest()  # noqa: S324


def hash_key(base_dir: Path, artifact: ArtifactConfig) -> str:
    return f"{base_dir}\0{artifact.dest}"


class ArtifactBuilder:
    """Decide freshness, install build deps, build, and copy into a bundle.

    *ctx* runs commands in the config directory with the base vars.
    """

    def __init__(self, ctx: RunContext, hashes: ArtifactHashStore) -> None:
        self._ctx = ctx
        self._hashes = hashes

    @property
    def base_dir(self) -> Path:
        return self._ctx.base_dir

    def is_fresh(self, artifact: ArtifactConfig) -> bool:
        if artifact.watch:
            if not _resolve(self.base_dir, artifact.src).exists():
                return False
            stored = self._hashes.get(hash_key(self.base_dir, artifact))
            return stored == watch_hash(self.base_dir, artifact)
        if artifact.check is not None:
            return self._ctx.sh(artifact.check).ok
        return False

    def install_deps(self, deps: Sequence[str]) -> None:
        provider = PackageProvider()
        for spec in deps:
            item = parse_dep(spec)
            binary = binary_for(item)
            if self._ctx.shell.which(binary):
                continue
            logger.info("installing %s (for %s)", item.package, binary)
            result = provider.apply(item, self._ctx)
            if not result.ok:
                raise ArtifactBuildError(result.reason)
            if not self._ctx.shell.which(binary):
                msg = f"Installed {item.package!r} but {binary!r} not found in PATH"
                raise ArtifactBuildError(msg)

    def build(self, artifact: ArtifactConfig) -> str:
        """Build *artifact* in place if stale. Returns ``built`` or ``fresh``."""
        if self.is_fresh(artifact):
            logger.debug("artifact %s is fresh", artifact.label)
            return FRESH
        self.install_deps(artifact.deps)
        out = self._ctx.sh(artifact.build)
        if not out.ok:
            detail = out.stderr.strip() or out.stdout.strip() or f"exit {out.exit_code}"
            msg = f"Artifact build failed: {artifact.label}: {detail}"
            raise ArtifactBuildError(msg)
        if artifact.watch:
            self._hashes.set(hash_key(self.base_dir, artifact), watch_hash(self.base_dir, artifact))
        return BUILT

    def resolve(self, artifact: ArtifactConfig, bundle_dir: Path | None) -> str:
        """Build if needed, then copy ``src`` to ``dest`` inside *bundle_dir*."""
        if (self.base_dir / artifact.dest).exists():
            # shipped inside the config dir itself
            return PRE_RESOLVED
        status = self.build(artifact)
        src = _resolve(self.base_dir, artifact.src)
        if not src.exists():
            msg = f"Artifact not found after build: {artifact.label} (expected at {src})"
            raise ArtifactBuildError(msg)
        if bundle_dir is not None:
            _copy(src, bundle_dir / artifact.dest)
        return status


def _copy(src: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dest, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dest)


class Bundle:
    """A prepared config: either the original path or a temp copy."""

    def __init__(self, config_path: Path, root: Path | None = None) -> None:
        self.config_path = config_path
        self.root = root
        self.artifacts: list[dict[str, Any]] = []

    @property
    def temporary(self) -> bool:
        return self.root is not None

    @property
    def base_dir(self) -> Path:
        return self.config_path if self.config_path.is_dir() else self.config_path.parent

    def cleanup(self) -> None:
        if self.root is not None:
            shutil.rmtree(self.root, ignore_errors=True)


class ArtifactService(BaseService):
    """Build artifacts and prepare the bundle shipped with a run."""

    def builder(self) -> ArtifactBuilder:
        decl = self._ws.declaration
        ctx = RunContext(
            vars=decl.vars_for(()),
            shell=self._ws.shell,
            base_dir=decl.base_dir,
            confirm=self._ws.confirm,
        )
        return ArtifactBuilder(ctx, self._ws.artifact_hashes)

    def prepare_bundle(self) -> Bundle:
        """Copy the config dir to a temp dir and resolve artifacts and includes into it.

        Returns the original path untouched when there is nothing to resolve.

        Raises:
            ArtifactBuildError: If any artifact or include cannot be resolved.
        """
        decl: Declaration = self._ws.declaration
        if not decl.artifacts and not decl.meta.include:
            return Bundle(decl.path)

        root = Path(tempfile.mkdtemp(prefix="convergectl-bundle-"))
        shutil.copytree(decl.base_dir, root, dirs_exist_ok=True)
        config_path = root if decl.path.is_dir() else root / decl.path.name
        bundle = Bundle(config_path, root)
        try:
            builder = self.builder()
            warnings: list[str] = []
            for artifact in decl.artifacts:
                status = builder.resolve(artifact, root)
                bundle.artifacts.append({"name": artifact.label, "status": status})
                self._dispatch_event(
                    "post_artifact", {"name": artifact.label, "built": status == BUILT}, warnings
                )
            for src, dest in decl.meta.include.items():
                src_path = _resolve(decl.base_dir, src)
                try:
                    _copy(src_path, root / dest)
                except OSError as exc:
                    msg = f"Failed to include {src_path}: {exc}"
                    raise ArtifactBuildError(msg) from exc
        except (ConvergeError, OSError):
            bundle.cleanup()
            raise
        return bundle

    @contextmanager
    def bundle(self) -> Iterator[Bundle]:
        bundle = self.prepare_bundle()
        try:
            yield bundle
        finally:
            bundle.cleanup()

    def build(self) -> ServiceResult:
        """Build or refresh every artifact in place (``convergectl artifacts``)."""
        op = "artifacts"
        warnings: list[str] = []
        results: list[dict[str, Any]] = []
        try:
            decl = self._ws.declaration
            builder = self.builder()
            for artifact in decl.artifacts:
                status = builder.resolve(artifact, None)
                results.append({"name": artifact.label, "status": status})
                self._dispatch_event(
                    "post_artifact", {"name": artifact.label, "built": status == BUILT}, warnings
                )
        except ConvergeError as exc:
            return ServiceResult.failure(op, exc, data={"artifacts": results})
        return ServiceResult(ok=True, op=op, data={"artifacts": results}, warnings=warnings)
