"""Shared stubs for the external collaborators: git fetch, build and pip."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import pytest

from ghinstall.manifest import read_manifest
from ghinstall.packager import Archive, archive_info
from ghinstall.reference import Reference
from ghinstall.runtime import InstallOptions


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path_factory):
    cfg_dir = tmp_path_factory.mktemp("cfg")
    monkeypatch.setenv("GHINSTALL_CONFIG", str(cfg_dir / "missing.yaml"))
    for var in ("PIP_INDEX_URL", "PIP_EXTRA_INDEX_URL", "GITHUB_TOKEN"):
        monkeypatch.delenv(var, raising=False)


class StubFetcher:
    """Writes a pyproject.toml instead of cloning; records every request."""

    def __init__(self, packages: Mapping[str, tuple[str, str]] | None = None) -> None:
        # "owner/name" -> (package name, version); default: repo name at 1.0.0
        self.packages = dict(packages or {})
        self.fetched: list[Reference] = []
        self.dests: list[Path] = []

    def fetch(self, reference: Reference, dest: Path) -> Path:
        self.fetched.append(reference)
        self.dests.append(dest)
        name, version = self.packages.get(reference.slug, (reference.name, "1.0.0"))
        pkg_dir = dest / reference.subdir if reference.subdir else dest
        pkg_dir.mkdir(parents=True)
        (pkg_dir / "pyproject.toml").write_text(
            f'[project]\nname = "{name}"\nversion = "{version}"\n', encoding="utf-8"
        )
        return dest


class StubBuilder:
    """Produces an empty sdist named after the manifest."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, Path, str]] = []

    def build(self, source_dir: str | Path, outdir: str | Path, build_args: str = "") -> list[Archive]:
        self.calls.append((Path(source_dir), Path(outdir), build_args))
        manifest = read_manifest(source_dir)
        out = Path(outdir)
        out.mkdir(parents=True, exist_ok=True)
        sdist = out / f"{manifest.name.replace('-', '_')}-{manifest.version}.tar.gz"
        sdist.write_bytes(b"not really a tarball")
        return [archive_info(sdist)]


def staged_index_dir(url: str) -> Path:
    return Path(url2pathname(urlparse(url).path))


class StubRuntime:
    """In-memory stand-in for the interpreter's installed/loaded package registries."""

    def __init__(
        self,
        installed: Mapping[str, str] | None = None,
        loaded: Sequence[str] = (),
        resolvable: bool = True,
    ) -> None:
        self.installed = dict(installed or {})
        self.loaded = set(loaded)
        self.resolvable = resolvable
        self.events: list[tuple] = []
        self.install_calls: list[tuple[dict[str, str], list[str], InstallOptions]] = []
        self.staged_during_install: list[str] = []

    def installed_version(self, name: str, lib: str | None = None) -> str | None:
        return self.installed.get(name)

    def is_loaded(self, name: str) -> bool:
        return name in self.loaded

    def unload(self, name: str) -> list[str]:
        self.events.append(("unload", name))
        self.loaded.discard(name)
        return [name]

    def reload(self, name: str) -> bool:
        self.events.append(("reload", name))
        self.loaded.add(name)
        return True

    def uninstall(self, names: Sequence[str], lib: str | None = None) -> str | None:
        self.events.append(("uninstall", tuple(names)))
        missing = [n for n in names if n not in self.installed]
        for n in names:
            self.installed.pop(n, None)
        return f"there is no package called {missing[0]!r}" if missing else None

    def install(self, packages: Mapping[str, str], sources: Sequence[str], options: InstallOptions) -> None:
        self.events.append(("install", tuple(packages)))
        self.install_calls.append((dict(packages), list(sources), options))
        index = staged_index_dir(sources[0])
        self.staged_during_install = sorted(p.name for p in index.iterdir() if p.is_dir())
        if self.resolvable:
            self.installed.update(packages)
        else:
            for name in packages:
                self.installed.pop(name, None)


@pytest.fixture
def fetcher() -> StubFetcher:
    return StubFetcher()


@pytest.fixture
def builder() -> StubBuilder:
    return StubBuilder()


@pytest.fixture
def runtime() -> StubRuntime:
    return StubRuntime()
