from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from ghinstall import packager
from ghinstall.packager import SKIP_DOCS_FLAG, BuildError, PackageBuilder, archive_info, effective_build_args


@pytest.mark.parametrize(
    "build_args,build_docs,expected",
    [
        (None, True, ""),
        (None, False, SKIP_DOCS_FLAG),
        ("--sdist", False, f"--sdist {SKIP_DOCS_FLAG}"),
        ("--config-setting=build-docs=true", False, "--config-setting=build-docs=true"),
        ("--wheel", True, "--wheel"),
    ],
)
def test_effective_build_args(build_args, build_docs, expected) -> None:
    assert effective_build_args(build_args, build_docs) == expected


def test_archive_info_wheel() -> None:
    a = archive_info("/tmp/Foo_Bar-1.2.3-py3-none-any.whl")
    assert (a.name, a.version) == ("foo-bar", "1.2.3")


def test_archive_info_sdist() -> None:
    a = archive_info(Path("foo-0.1.tar.gz"))
    assert (a.name, a.version) == ("foo", "0.1")


def test_archive_info_rejects_other_files() -> None:
    with pytest.raises(BuildError, match="Not a package archive"):
        archive_info("foo-0.1.zip")


def _fake_build(produce: list[str], seen: list[list[str]]):
    def run(cmd, cwd, check, stdout, stderr, text):
        seen.append(cmd)
        outdir = Path(cmd[cmd.index("--outdir") + 1])
        for name in produce:
            (outdir / name).write_bytes(b"")
        return subprocess.CompletedProcess(cmd, 0, stdout="Successfully built\n")

    return run


def test_build_reports_new_archives(tmp_path, monkeypatch) -> None:
    src = tmp_path / "src"
    src.mkdir()
    out = tmp_path / "out"
    out.mkdir()
    (out / "old-0.1.tar.gz").write_bytes(b"")
    seen: list[list[str]] = []
    monkeypatch.setattr(packager.subprocess, "run", _fake_build(["pkg-1.0.tar.gz", "pkg-1.0-py3-none-any.whl"], seen))

    archives = PackageBuilder(python="python3").build(src, out, "--sdist --wheel")

    assert [a.path.name for a in archives] == ["pkg-1.0-py3-none-any.whl", "pkg-1.0.tar.gz"]
    cmd = seen[0]
    assert cmd[:3] == ["python3", "-m", "build"]
    assert "--sdist" in cmd and "--wheel" in cmd
    assert cmd[-1] == str(src.resolve())


def test_build_failure_carries_output(tmp_path, monkeypatch) -> None:
    def run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, output="ERROR Backend subprocess exited")

    monkeypatch.setattr(packager.subprocess, "run", run)
    src = tmp_path / "src"
    src.mkdir()

    with pytest.raises(BuildError) as exc:
        PackageBuilder().build(src, tmp_path / "out")
    assert "Backend subprocess exited" in exc.value.output


def test_build_without_archives_fails(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(packager.subprocess, "run", _fake_build([], []))
    src = tmp_path / "src"
    src.mkdir()

    with pytest.raises(BuildError, match="produced no archives"):
        PackageBuilder().build(src, tmp_path / "out")


def test_unbalanced_quote_in_build_args(tmp_path, monkeypatch) -> None:
    seen: list[list[str]] = []
    monkeypatch.setattr(packager.subprocess, "run", _fake_build(["pkg-1.0.tar.gz"], seen))
    src = tmp_path / "src"
    src.mkdir()

    with pytest.raises(BuildError, match="Invalid build arguments"):
        PackageBuilder().build(src, tmp_path / "out", "--sdist '--foo")
    assert seen == []


def test_build_missing_source(tmp_path) -> None:
    with pytest.raises(BuildError, match="does not exist"):
        PackageBuilder().build(tmp_path / "nope", tmp_path / "out")
