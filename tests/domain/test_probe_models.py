"""Tests for probe declarations, durations, rewrites and variants."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from convergectl.domain.probes import (
    Probe,
    ProbeResult,
    RewriteRule,
    apply_rewrites,
    parse_duration,
    split_query,
)


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "seconds"),
        [("30", 30), ("30s", 30), ("5m", 300), ("1h30m", 5400), ("2d", 172800), ("1w", 604800)],
    )
    def test_valid(self, text: str, seconds: int) -> None:
        assert parse_duration(text) == timedelta(seconds=seconds)

    def test_milliseconds(self) -> None:
        assert parse_duration("250ms") == timedelta(milliseconds=250)

    @pytest.mark.parametrize("text", ["", "soon", "5x", "m5", "5m later"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(text)

    def test_probe_validates_ttl(self) -> None:
        with pytest.raises(ValidationError):
            Probe(name="p", cmd="true", ttl="forever")
        assert Probe(name="p", cmd="true", ttl="1h").max_age == timedelta(hours=1)


class TestRewrites:
    def test_first_match_wins(self) -> None:
        rules = (
            RewriteRule(match="^Ubuntu", value="debian"),
            RewriteRule(match="Ubuntu 2", value="never"),
        )
        assert apply_rewrites("Ubuntu 24.04", rules) == ("debian", "Ubuntu 24.04")

    def test_no_match_keeps_raw(self) -> None:
        rules = (RewriteRule(match="^Arch", value="arch"),)
        assert apply_rewrites("Fedora", rules) == ("Fedora", None)

    def test_invalid_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid rewrite pattern"):
            RewriteRule(match="[", value="x")


class TestProbeResult:
    @pytest.fixture
    def result(self) -> ProbeResult:
        return ProbeResult(
            name="os",
            raw="Ubuntu 24.04",
            value="debian",
            original="Ubuntu 24.04",
            templates={"pkg": "apt"},
        )

    def test_variants(self, result: ProbeResult) -> None:
        assert result.variant(None) == "debian"
        assert result.variant("value") == "debian"
        assert result.variant("raw") == "Ubuntu 24.04"
        assert result.variant("original") == "Ubuntu 24.04"
        assert result.variant("pkg") == "apt"
        assert result.variant("nope") is None

    def test_original_falls_back_to_raw(self) -> None:
        plain = ProbeResult(name="arch", raw="x86_64", value="x86_64")
        assert plain.variant("original") == "x86_64"
        assert "original" not in plain.to_dict()

    def test_context_prefers_parsed_json(self) -> None:
        res = ProbeResult(name="cfg", raw='{"a": 1}', value='{"a": 1}', parsed={"a": 1})
        assert res.as_context()["raw"] == {"a": 1}
        assert res.as_context()["value"] == '{"a": 1}'

    def test_json_alias(self) -> None:
        assert Probe.model_validate({"name": "cfg", "cmd": "cat x", "json": True}).json_output


def test_split_query() -> None:
    assert split_query("os") == ("os", None)
    assert split_query("os.pkg") == ("os", "pkg")
