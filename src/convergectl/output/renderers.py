"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer. A result that
failed without an ``error`` (a report with failed items or hosts) still
goes through its op renderer; only aborted operations use the error
renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from convergectl.output.console import (
    create_console,
    get_output,
    icon_for_status,
    style_for_status,
)

if TYPE_CHECKING:
    from rich.console import Console

    from convergectl.services.result import ServiceResult

_REPORT_OPS = ("apply", "check", "plan", "install", "deps")
_FAILING = ("failed", "issue")


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.error is None:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode.

    Reports keep their failing items and the one-line summary, which is
    what a dispatching controller shows per host.
    """
    if result.error is not None:
        return f"ERROR: {result.op} — {result.error.message}"

    data = result.data
    if result.op in _REPORT_OPS:
        lines = [
            f"{icon_for_status(i['status'])} {i['label']}: {i.get('detail') or i['status']}"
            for i in data.get("items", [])
            if i["status"] in _FAILING
        ]
        lines.append(_summary(data))
        return "\n".join(lines)
    if result.op == "state":
        if "values" in data:
            return "\n".join(str(v["value"]) for v in data["values"])
        return "\n".join(f"{k}={v['value']}" for k, v in data.get("probes", {}).items())
    if result.op == "state_get":
        return str(data.get("result", ""))
    if result.op == "state_test":
        return ""
    if result.op in ("dispatch", "hosts") and "hosts" in data:
        if result.op == "hosts":
            return "\n".join(data["hosts"])
        return "\n".join(
            f"{'ok' if h['ok'] else 'failed'} {h['host']}: {h['summary']}" for h in data["hosts"]
        )
    if result.op == "run_list":
        return "\n".join(c["name"] for c in data.get("commands", []))
    if result.op == "run":
        return ""
    return f"OK: {result.op}" if result.ok else f"FAILED: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _summary(data: dict[str, Any]) -> str:
    counts: dict[str, int] = data.get("counts", {})
    total = sum(counts.values())
    parts = [f"{n} {status}" for status, n in counts.items()]
    text = f"{total} items" + (f": {', '.join(parts)}" if parts else "")
    duration = data.get("duration_ms")
    if duration is not None:
        text += f" ({_duration(duration)})"
    return text


def _duration(ms: float) -> str:
    if ms >= 60_000:
        return f"{int(ms // 60_000)}m{int(ms % 60_000 // 1000)}s"
    if ms >= 1000:
        return f"{ms / 1000:.1f}s"
    return f"{ms:.0f}ms"


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK/FAILED status line."""
    if result.ok:
        label = Text("OK", style="cvg.ok")
    else:
        label = Text("FAILED", style="cvg.error")
    op = Text(f"  {result.op}", style="cvg.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="cvg.key")
    if key in ("host", "hosts"):
        v = Text(str(value), style="cvg.host")
    elif key in ("path", "config"):
        v = Text(str(value), style="cvg.path")
    elif key == "name":
        v = Text(str(value), style="cvg.title")
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print the meta block (verbose only)."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        console.print(f"    {k}: {v}")


def _render_artifacts_meta(console: Console, result: ServiceResult) -> None:
    artifacts = (result.meta or {}).get("artifacts") or []
    if not artifacts:
        return
    console.print(Text(":: artifacts", style="cvg.op"))
    for a in artifacts:
        style = "cvg.ok" if a["status"] == "built" else "dim"
        console.print(f"  [{style}]{a['status']:>12}[/{style}]  {a['name']}")
    console.print()


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="cvg.error")
    op = Text(f"  {result.op}", style="cvg.op")
    sep = Text(" — ")
    console.print(label, op, sep, msg)

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Reconciliation reports ────────────────────────────────────────────


def _render_report(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render apply/check/plan/install reports: one line per item, then a summary."""
    data = result.data
    meta = result.meta or {}
    banner = meta.get("banner")
    if banner:
        for line in str(banner).splitlines():
            console.print(Text(line, style="cvg.title"))
        console.print()
    _render_artifacts_meta(console, result)

    for item in data.get("items", []):
        status = str(item["status"])
        if status in ("unchanged", "satisfied", "passed") and not verbose:
            continue
        style = style_for_status(status)
        line = Text(f"  {icon_for_status(status)} ", style=style)
        line.append(str(item["label"]))
        if status != "changed" or verbose:
            line.append(f"  {status}", style=style)
        if item.get("detail") and status not in ("unchanged", "satisfied"):
            line.append(f" ({item['detail']})", style="dim")
        console.print(line)
        for finding in item.get("findings", []):
            console.print(Text(f"      {finding}", style="cvg.warning"))

    skipped = meta.get("skipped_configs") or []
    if skipped:
        console.print(Text(f"  skipped configs: {', '.join(skipped)}", style="dim"))

    style = "cvg.ok" if result.ok else "cvg.error"
    console.print()
    console.print(Text(_summary(data), style=style))
    if verbose:
        _render_meta(console, result)


# ── State ─────────────────────────────────────────────────────────────


def _render_state(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """A single query prints its bare value; otherwise a name/value table."""
    data = result.data
    values = data.get("values")
    if values is not None and len(values) == 1:
        console.print(str(values[0]["value"]), markup=False)
        return

    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Value", style="bold")
    if values is not None:
        for v in values:
            table.add_row(str(v["query"]), str(v["value"]))
    else:
        if verbose:
            table.add_column("Raw", style="dim")
            table.add_column("Templates", style="dim")
        for name, probe in data.get("probes", {}).items():
            row = [name, str(probe["value"])]
            if verbose:
                row.append(str(probe.get("raw", "")))
                row.append(", ".join(f"{k}={v}" for k, v in probe.get("templates", {}).items()))
            table.add_row(*row)
    console.print(table)


def _render_state_get(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    console.print(str(result.data.get("result", "")), markup=False)


def _render_state_test(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Predicates answer through the exit status only."""
    if verbose:
        d = result.data
        console.print(f"{d['query']} = {d['value']!r} {d['operator']} {d['expected']!r}")


# ── Run commands and dispatch ─────────────────────────────────────────


def _render_run_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    commands = result.data.get("commands", [])
    if not commands:
        console.print("No run commands defined in config")
        return
    console.print(Text("Run Commands", style="cvg.title"))
    console.print()
    for cmd in commands:
        line = Text(f"  {cmd['name']}", style="bold")
        if cmd.get("description"):
            line.append(f" - {cmd['description']}", style="dim")
        flags = [flag for flag in ("local", "tty", "confirm") if cmd.get(flag)]
        if flags and verbose:
            line.append(f"  [{', '.join(flags)}]", style="dim")
        console.print(line)


def _render_run(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Local run commands already wrote to the terminal."""
    if result.data.get("aborted"):
        console.print("Aborted")


def _render_dispatch(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Per-host lines; a single host also relays its full output."""
    data = result.data
    if data.get("aborted"):
        console.print("Aborted")
        return
    _render_artifacts_meta(console, result)
    for name in data.get("local_commands", []):
        console.print(f"  [cvg.op]→[/cvg.op] local: {name}")

    hosts = data.get("hosts", [])
    if len(hosts) == 1:
        output = str(hosts[0].get("output") or "").rstrip("\n")
        if output:
            for line in output.splitlines():
                console.print(f"  {line}", markup=False)
            console.print()

    for h in hosts:
        icon = Text("✓ ", style="cvg.ok") if h["ok"] else Text("✗ ", style="cvg.error")
        line = icon + Text(str(h["host"]), style="cvg.host")
        if h.get("summary"):
            line.append(f"  {h['summary']}", style="dim")
        line.append(f"  ({_duration(float(h.get('duration_ms', 0.0)))})", style="dim")
        console.print(line)
        if verbose and len(hosts) > 1 and h.get("output"):
            for out_line in str(h["output"]).rstrip("\n").splitlines():
                console.print(f"      {out_line}", markup=False)

    total = data.get("total", len(hosts))
    failed = data.get("failed", [])
    console.print()
    if failed:
        console.print(
            f"[cvg.warning]![/cvg.warning] {total - len(failed)}/{total} hosts completed, "
            f"{len(failed)} failed"
        )
    else:
        console.print(f"[cvg.ok]✓[/cvg.ok] {total}/{total} hosts completed")


def _render_hosts(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    hosts = result.data.get("hosts", [])
    for host in hosts:
        console.print(Text(host, style="cvg.host"))
    pattern = result.data.get("pattern")
    suffix = f" matching {pattern!r}" if pattern else ""
    console.print(Text(f"\n{len(hosts)} hosts{suffix}", style="dim"))


def _render_artifacts(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    artifacts = result.data.get("artifacts", [])
    if not artifacts:
        console.print("No artifacts defined in config")
        return
    for a in artifacts:
        style = "cvg.ok" if a["status"] == "built" else "dim"
        console.print(f"  [{style}]{a['status']:>12}[/{style}]  {a['name']}")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, _json.dumps(value, separators=(",", ":")))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Reconciliation
    "apply": _render_report,
    "check": _render_report,
    "plan": _render_report,
    "install": _render_report,
    "deps": _render_report,
    # State
    "state": _render_state,
    "state_get": _render_state_get,
    "state_test": _render_state_test,
    # Run / dispatch
    "run_list": _render_run_list,
    "run": _render_run,
    "dispatch": _render_dispatch,
    "hosts": _render_hosts,
    # Artifacts
    "artifacts": _render_artifacts,
}
