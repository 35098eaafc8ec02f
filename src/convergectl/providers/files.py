"""File items: copy, symlink, fetch, ensure_line, line and template."""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path

import httpx

from convergectl.domain.items import (
    CopyItem,
    EnsureLineItem,
    FetchItem,
    LineItem,
    SymlinkItem,
    TemplateItem,
)
from convergectl.domain.outcomes import ApplyResult, CheckResult
from convergectl.domain.probes import parse_duration
from convergectl.domain.types import LineMode
from convergectl.providers.context import RunContext

logger = logging.getLogger(__name__)


def _same_bytes(dest: Path, content: bytes) -> CheckResult:
    if not dest.exists():
        return CheckResult.missing(f"destination '{dest}' does not exist")
    if dest.read_bytes() != content:
        return CheckResult.missing(f"contents differ for '{dest}'")
    return CheckResult.ok()


def _write(dest: Path, content: bytes) -> ApplyResult:
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
    except OSError as exc:
        return ApplyResult.failed(f"failed to write {dest}: {exc}")
    return ApplyResult.changed()


class CopyProvider:
    def check(self, item: CopyItem, ctx: RunContext) -> CheckResult:
        src = ctx.path(item.src)
        if not src.is_file():
            return CheckResult.missing(f"source '{src}' does not exist")
        return _same_bytes(ctx.path(item.dest), src.read_bytes())

    def apply(self, item: CopyItem, ctx: RunContext) -> ApplyResult:
        src, dest = ctx.path(item.src), ctx.path(item.dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        except OSError as exc:
            return ApplyResult.failed(f"failed to copy {src} -> {dest}: {exc}")
        return ApplyResult.changed()


class SymlinkProvider:
    def check(self, item: SymlinkItem, ctx: RunContext) -> CheckResult:
        target, link = ctx.path(item.src), ctx.path(item.link)
        if not link.is_symlink():
            return CheckResult.missing(f"'{link}' is not a symlink")
        current = Path(os.readlink(link))
        if current != target:
            return CheckResult.missing(f"'{link}' points to '{current}', expected '{target}'")
        return CheckResult.ok()

    def apply(self, item: SymlinkItem, ctx: RunContext) -> ApplyResult:
        target, link = ctx.path(item.src), ctx.path(item.link)
        try:
            link.parent.mkdir(parents=True, exist_ok=True)
            if link.is_symlink() or link.exists():
                if link.is_dir() and not link.is_symlink():
                    return ApplyResult.failed(f"cannot replace directory '{link}' with symlink")
                link.unlink()
            link.symlink_to(target)
        except OSError as exc:
            return ApplyResult.failed(f"failed to create symlink {link} -> {target}: {exc}")
        return ApplyResult.changed()


class FetchProvider:
    """Download with httpx; a declared ``ttl`` reuses the cached body."""

    def _body(self, item: FetchItem, ctx: RunContext) -> bytes:
        key = f"url:{item.url}"
        if item.ttl and ctx.blobs is not None:
            cached = ctx.blobs.get(key, parse_duration(item.ttl))
            if cached is not None:
                logger.debug("fetch cache hit: %s", item.url)
                return cached
        body = ctx.fetcher.fetch(item.url)
        if item.ttl and ctx.blobs is not None:
            ctx.blobs.set(key, body)
        return body

    def check(self, item: FetchItem, ctx: RunContext) -> CheckResult:
        dest = ctx.path(item.dest)
        if not dest.exists():
            return CheckResult.missing(f"destination '{dest}' does not exist")
        try:
            body = self._body(item, ctx)
        except httpx.HTTPError as exc:
            return CheckResult.unknown(f"fetch {item.url} failed: {exc}")
        return _same_bytes(dest, body)

    def apply(self, item: FetchItem, ctx: RunContext) -> ApplyResult:
        try:
            body = self._body(item, ctx)
        except httpx.HTTPError as exc:
            return ApplyResult.failed(f"fetch {item.url} failed: {exc}")
        return _write(ctx.path(item.dest), body)


def _read_text(path: Path) -> str:
    """Undecodable bytes survive as surrogates and are restored by :func:`_encode`."""
    return path.read_text(encoding="utf-8", errors="surrogateescape") if path.exists() else ""


def _encode(content: str) -> bytes:
    return content.encode("utf-8", errors="surrogateescape")


def _append_lines(content: str, lines: list[str]) -> str:
    if content and not content.endswith("\n"):
        content += "\n"
    return content + "".join(f"{line}\n" for line in lines)


class EnsureLineProvider:
    def _missing(self, item: EnsureLineItem, content: str) -> list[str]:
        present = set(content.splitlines())
        return [line for line in item.lines if line not in present]

    def check(self, item: EnsureLineItem, ctx: RunContext) -> CheckResult:
        path = ctx.path(item.path)
        if not path.exists():
            return CheckResult.missing(f"file '{path}' does not exist")
        missing = self._missing(item, _read_text(path))
        if missing:
            return CheckResult.missing(f"{len(missing)} line(s) missing in '{path}'")
        return CheckResult.ok()

    def apply(self, item: EnsureLineItem, ctx: RunContext) -> ApplyResult:
        path = ctx.path(item.path)
        content = _read_text(path)
        missing = self._missing(item, content)
        if not missing:
            return ApplyResult.changed()
        return _write(path, _encode(_append_lines(content, missing)))


def edit_line(content: str, item: LineItem) -> str:
    """Place ``item.line`` in *content*.

    The first line matching ``original`` (trimmed literal compare) or
    ``original_regex`` is replaced, or kept with the new line inserted
    below it. Without a match, the line is appended.
    """
    if item.line in content:
        return content
    pattern = item.original_regex
    literal = item.original
    if pattern is None and literal is None:
        return _append_lines(content, [item.line])

    regex = re.compile(pattern) if pattern is not None else None
    out: list[str] = []
    found = False
    for existing in content.splitlines():
        if regex is not None:
            hit = bool(regex.search(existing))
        else:
            hit = existing.strip() == (literal or "").strip()
        if not found and hit:
            found = True
            if item.mode == LineMode.BELOW:
                out.append(existing)
            out.append(item.line)
        else:
            out.append(existing)
    if not found:
        return _append_lines(content, [item.line])
    return "\n".join(out) + "\n"


class LineProvider:
    def check(self, item: LineItem, ctx: RunContext) -> CheckResult:
        path = ctx.path(item.path)
        if not path.exists():
            return CheckResult.missing(f"file '{path}' does not exist")
        if item.line not in _read_text(path):
            return CheckResult.missing(f"line missing in '{path}'")
        return CheckResult.ok()

    def apply(self, item: LineItem, ctx: RunContext) -> ApplyResult:
        path = ctx.path(item.path)
        try:
            updated = edit_line(_read_text(path), item)
        except re.error as exc:
            return ApplyResult.failed(f"invalid original_regex {item.original_regex!r}: {exc}")
        return _write(path, _encode(updated))


class TemplateProvider:
    """Render a jinja2 source file with vars and probe results."""

    def _render(self, item: TemplateItem, ctx: RunContext) -> str:
        source = ctx.path(item.src).read_text(encoding="utf-8")
        return ctx.renderer.render(source, ctx.template_context())

    def check(self, item: TemplateItem, ctx: RunContext) -> CheckResult:
        src = ctx.path(item.src)
        if not src.is_file():
            return CheckResult.missing(f"template '{src}' does not exist")
        return _same_bytes(ctx.path(item.dest), self._render(item, ctx).encode())

    def apply(self, item: TemplateItem, ctx: RunContext) -> ApplyResult:
        try:
            rendered = self._render(item, ctx)
        except OSError as exc:
            return ApplyResult.failed(f"failed to read template {item.src}: {exc}")
        return _write(ctx.path(item.dest), rendered.encode())
