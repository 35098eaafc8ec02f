"""Tests for artifact freshness, builds and bundle preparation."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

from convergectl.config.models import ArtifactConfig
from convergectl.domain.vars import VarScope
from convergectl.errors import ArtifactBuildError
from convergectl.infrastructure.cache_store import ArtifactHashStore
from convergectl.infrastructure.shell import CommandOutput
from convergectl.providers import RunContext
from convergectl.services.artifacts import (
    BUILT,
    FRESH,
    PRE_RESOLVED,
    ArtifactBuilder,
    ArtifactService,
    parse_dep,
    watch_hash,
)
from tests.conftest import FakeShell, make_workspace, write_config

WATCHED = """
    [[artifact]]
    name = "tool"
    build = "echo built >> builds.log && mkdir -p build && cp src/main.c build/tool"
    src = "build/tool"
    dest = "bin/tool"
    watch = ["src"]
"""


def _builds(config: Path) -> int:
    log = config / "builds.log"
    return len(log.read_text().splitlines()) if log.exists() else 0


@pytest.fixture
def watched_config(tmp_path: Path) -> Path:
    return write_config(tmp_path, {"artifacts.toml": WATCHED, "src/main.c": "int main;\n"})


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------


class TestWatchFreshness:
    def test_rebuilds_only_when_watched_files_change(self, watched_config: Path) -> None:
        svc = ArtifactService(make_workspace(watched_config))

        assert svc.build().data["artifacts"] == [{"name": "tool", "status": BUILT}]
        assert svc.build().data["artifacts"] == [{"name": "tool", "status": FRESH}]
        assert _builds(watched_config) == 1

        (watched_config / "src" / "main.c").write_text("int main(void);\n")
        assert svc.build().data["artifacts"][0]["status"] == BUILT
        assert _builds(watched_config) == 2

    def test_touched_file_with_same_content_rebuilds(self, watched_config: Path) -> None:
        svc = ArtifactService(make_workspace(watched_config))
        svc.build()
        source = watched_config / "src" / "main.c"
        stamp = source.stat().st_mtime

        os.utime(source, (stamp + 10, stamp + 10))

        assert source.read_text() == "int main;\n"
        assert svc.build().data["artifacts"][0]["status"] == BUILT
        assert _builds(watched_config) == 2

    def test_missing_src_is_stale(self, watched_config: Path) -> None:
        svc = ArtifactService(make_workspace(watched_config))
        svc.build()
        (watched_config / "build" / "tool").unlink()
        assert svc.build().data["artifacts"][0]["status"] == BUILT

    def test_hash_ignores_unwatched_files(self, watched_config: Path) -> None:
        artifact = ArtifactConfig(build="true", src="x", dest="y", watch=["src"])
        before = watch_hash(watched_config, artifact)
        (watched_config / "README").write_text("docs")
        assert watch_hash(watched_config, artifact) == before
        (watched_config / "src" / "util.c").write_text("")
        assert watch_hash(watched_config, artifact) != before


class TestCheckFreshness:
    def test_check_command(self, tmp_path: Path) -> None:
        config = write_config(
            tmp_path,
            {
                "a.toml": """
                    [[artifact]]
                    build = "echo b >> builds.log && mkdir -p out && touch out/site"
                    check = "test -f out/site"
                    src = "out/site"
                    dest = "www/site"
                """
            },
        )
        svc = ArtifactService(make_workspace(config))
        assert svc.build().data["artifacts"][0]["status"] == BUILT
        assert svc.build().data["artifacts"][0]["status"] == FRESH
        assert _builds(config) == 1

    def test_no_watch_no_check_always_builds(self, tmp_path: Path) -> None:
        config = write_config(
            tmp_path,
            {
                "a.toml": """
                    [[artifact]]
                    build = "echo b >> builds.log && touch out"
                    src = "out"
                    dest = "shipped"
                """
            },
        )
        svc = ArtifactService(make_workspace(config))
        svc.build()
        svc.build()
        assert _builds(config) == 2


# ---------------------------------------------------------------------------
# Resolution and failures
# ---------------------------------------------------------------------------


class TestResolve:
    def test_pre_resolved_dest_skips_build(self, watched_config: Path) -> None:
        (watched_config / "bin").mkdir()
        (watched_config / "bin" / "tool").write_text("prebuilt")
        result = ArtifactService(make_workspace(watched_config)).build()
        assert result.data["artifacts"][0]["status"] == PRE_RESOLVED
        assert _builds(watched_config) == 0

    def test_build_failure_is_fatal(self, tmp_path: Path) -> None:
        config = write_config(
            tmp_path,
            {
                "a.toml": """
                    [[artifact]]
                    name = "broken"
                    build = "echo 'cc: error' >&2; exit 7"
                    src = "out"
                    dest = "x"
                """
            },
        )
        result = ArtifactService(make_workspace(config)).build()
        assert result.ok is False
        assert result.error is not None
        assert result.error.code == "ARTIFACT_BUILD_FAILED"
        assert result.error.message == "Artifact build failed: broken: cc: error"

    def test_src_missing_after_build(self, tmp_path: Path) -> None:
        config = write_config(
            tmp_path,
            {"a.toml": '[[artifact]]\nbuild = "true"\nsrc = "never"\ndest = "x"\n'},
        )
        result = ArtifactService(make_workspace(config)).build()
        assert result.error is not None
        assert "not found after build" in result.error.message


class TestDeps:
    def test_parse_dep(self) -> None:
        assert parse_dep("jq").manager == "os"
        assert parse_dep("cargo.wasm-pack").identity == "package:cargo:wasm-pack"
        with pytest.raises(ArtifactBuildError, match="Unknown package manager 'zyp'"):
            parse_dep("zyp.thing")

    def test_installs_missing_binaries(self, tmp_path: Path, db_engine: Engine) -> None:
        shell = FakeShell(binaries=["jq"])

        def install(_command: str) -> CommandOutput:
            shell.binaries.add("protoc")
            return CommandOutput()

        shell.responses["cargo install*"] = install
        ctx = RunContext(vars=VarScope(), shell=shell, base_dir=tmp_path, is_root=True)
        ArtifactBuilder(ctx, ArtifactHashStore(db_engine)).install_deps(
            ["jq", "cargo.protobuf:protoc"]
        )
        assert shell.commands == ["cargo install protobuf"]

    def test_installed_but_not_on_path(self, tmp_path: Path, db_engine: Engine) -> None:
        ctx = RunContext(vars=VarScope(), shell=FakeShell(), base_dir=tmp_path, is_root=True)
        builder = ArtifactBuilder(ctx, ArtifactHashStore(db_engine))
        with pytest.raises(ArtifactBuildError, match="not found in PATH"):
            builder.install_deps(["npm.typescript:tsc"])


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class TestBundle:
    def test_no_artifacts_uses_original(self, tmp_path: Path) -> None:
        config = write_config(tmp_path, {"a.toml": "[alias]\nll = 'ls -l'\n"})
        bundle = ArtifactService(make_workspace(config)).prepare_bundle()
        assert not bundle.temporary
        assert bundle.base_dir == config.resolve()

    def test_bundle_holds_artifacts_and_includes(self, watched_config: Path, home: Path) -> None:
        (home / ".ssh").mkdir()
        (home / ".ssh" / "id.pub").write_text("ssh-ed25519 AAA")
        (watched_config / "meta.toml").write_text('[include]\n"~/.ssh/id.pub" = "keys/id.pub"\n')

        svc = ArtifactService(make_workspace(watched_config))
        with svc.bundle() as bundle:
            root = bundle.base_dir
            assert bundle.temporary
            assert (root / "bin" / "tool").read_text() == "int main;\n"
            assert (root / "keys" / "id.pub").read_text() == "ssh-ed25519 AAA"
            assert (root / "artifacts.toml").exists()
            assert bundle.artifacts == [{"name": "tool", "status": BUILT}]
        assert not root.exists()
        assert not (watched_config / "bin").exists()

    def test_failed_bundle_is_cleaned_up(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        monkeypatch.setattr(tempfile, "tempdir", str(scratch))
        config = write_config(
            tmp_path,
            {"a.toml": '[[artifact]]\nbuild = "exit 1"\nsrc = "o"\ndest = "x"\n'},
        )
        with pytest.raises(ArtifactBuildError):
            ArtifactService(make_workspace(config)).prepare_bundle()
        assert list(scratch.iterdir()) == []
