"""Tests for the sh -c runner and the URL fetcher."""

from pathlib import Path

import httpx
import pytest

from convergectl.infrastructure.http import Fetcher
from convergectl.infrastructure.shell import ShellRunner


class TestShellRunner:
    def test_captures_output_and_exit_code(self) -> None:
        out = ShellRunner().run("echo out; echo err >&2; exit 3")
        assert (out.stdout, out.stderr, out.exit_code, out.ok) == ("out\n", "err\n", 3, False)

    def test_env_and_cwd(self, tmp_path: Path) -> None:
        out = ShellRunner().run('echo "$GREETING"; pwd', {"GREETING": "hi"}, tmp_path)
        assert out.stdout.splitlines() == ["hi", str(tmp_path)]

    def test_positional_args(self) -> None:
        out = ShellRunner().run('printf "%s|" "$@"', args=["a b", "c"])
        assert out.stdout == "a b|c|"

    def test_stdin(self) -> None:
        assert ShellRunner().run("tr a-z A-Z", stdin="abc").stdout == "ABC"

    def test_undecodable_bytes_are_replaced(self) -> None:
        out = ShellRunner().run("printf 'ok\\377'; printf '\\376' >&2")
        assert (out.stdout, out.stderr) == ("ok\ufffd", "\ufffd")

    def test_interactive_returns_exit_code(self) -> None:
        assert ShellRunner().run_interactive('test "$1" = go', args=["go"]) == 0

    def test_which(self) -> None:
        runner = ShellRunner()
        assert runner.which("sh") is not None
        assert runner.which("definitely-not-a-binary-xyz") is None


class TestFetcher:
    def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(302, headers={"location": "https://example.test/new"})
            return httpx.Response(200, content=b"payload")

        fetcher = Fetcher(transport=httpx.MockTransport(handler))
        assert fetcher.fetch("https://example.test/old") == b"payload"

    def test_http_error(self) -> None:
        fetcher = Fetcher(transport=httpx.MockTransport(lambda _r: httpx.Response(404)))
        with pytest.raises(httpx.HTTPStatusError):
            fetcher.fetch("https://example.test/missing")
