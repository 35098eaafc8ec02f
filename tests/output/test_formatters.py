"""Tests for the format_result dispatcher and OutputSettings."""

import json

from convergectl.output.formatters import OutputSettings, format_result
from convergectl.services.result import ServiceError, ServiceResult


def _ok(op: str = "test", **data: object) -> ServiceResult:
    return ServiceResult(ok=True, op=op, data=dict(data))


def _err(op: str = "test", msg: str = "fail") -> ServiceResult:
    return ServiceResult(ok=False, op=op, error=ServiceError(code="ERR", message=msg))


class TestOutputSettings:
    def test_defaults(self) -> None:
        s = OutputSettings()
        assert s.json_output is False
        assert s.quiet is False
        assert s.verbose is False


class TestFormatResultJSON:
    def test_json_mode_returns_valid_json(self) -> None:
        settings = OutputSettings(json_output=True)
        output = format_result(_ok("hosts", hosts=["web1"]), settings=settings)
        data = json.loads(output)
        assert data["ok"] is True
        assert data["op"] == "hosts"
        assert data["data"]["hosts"] == ["web1"]

    def test_json_mode_error(self) -> None:
        output = format_result(_err("apply", "Bad"), settings=OutputSettings(json_output=True))
        data = json.loads(output)
        assert data["ok"] is False
        assert data["error"] == {"code": "ERR", "message": "Bad", "detail": {}}

    def test_json_wins_over_quiet(self) -> None:
        settings = OutputSettings(json_output=True, quiet=True)
        assert json.loads(format_result(_ok(), settings=settings))["op"] == "test"


class TestFormatResultText:
    def test_default_is_rich(self) -> None:
        assert format_result(_ok("hosts", hosts=["web1"])).startswith("web1")

    def test_quiet(self) -> None:
        output = format_result(_ok("hosts", hosts=["a", "b"]), settings=OutputSettings(quiet=True))
        assert output == "a\nb"
