"""
staging.py

Responsibility: Maintain a throwaway PEP 503 "simple" package index on disk.

Layout:
- `<root>/packages/`            archives (sdists and wheels)
- `<root>/simple/index.html`    project list
- `<root>/simple/<name>/index.html`  links to that project's archives

The index pages are rendered with Jinja2 from `ghinstall/templates/`. Index
regeneration is serialized so archives may be inserted from several threads.
The whole tree is removed when the context manager exits.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from ghinstall.packager import Archive, archive_info

logger = logging.getLogger(__name__)

CONTRIB_SUBPATH = "packages"
INDEX_SUBPATH = "simple"


class StagingError(RuntimeError):
    pass


@dataclass(frozen=True)
class _IndexedFile:
    name: str
    sha256: str


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _environment() -> Environment:
    return Environment(
        loader=PackageLoader("ghinstall", "templates"),
        autoescape=select_autoescape(["html"]),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )


class StagingRepository:
    def __init__(self, root: str | Path | None = None) -> None:
        self._explicit_root = Path(root) if root is not None else None
        self._tmp: tempfile.TemporaryDirectory[str] | None = None
        self._root: Path | None = None
        self._lock = threading.Lock()
        self._env = _environment()

    def __enter__(self) -> StagingRepository:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def root(self) -> Path:
        if self._root is None:
            raise StagingError("Staging repository is not open")
        return self._root

    @property
    def contrib_dir(self) -> Path:
        return self.root / CONTRIB_SUBPATH

    @property
    def index_dir(self) -> Path:
        return self.root / INDEX_SUBPATH

    @property
    def url(self) -> str:
        """`file://` URL usable as a pip index URL."""
        return self.index_dir.as_uri() + "/"

    def open(self) -> Path:
        if self._root is not None:
            return self._root
        if self._explicit_root is not None:
            self._root = self._explicit_root
            self._root.mkdir(parents=True, exist_ok=True)
        else:
            self._tmp = tempfile.TemporaryDirectory(prefix="ghinstall-repo-")
            self._root = Path(self._tmp.name)
        self.contrib_dir.mkdir(parents=True, exist_ok=True)
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self._write_index()
        return self._root

    def close(self) -> None:
        root, self._root = self._root, None
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None
        elif root is not None:
            shutil.rmtree(root, ignore_errors=True)

    def insert(self, archive: Archive | str | Path) -> Path:
        """
        Copy an archive into the repository and regenerate the index.
        Returns the staged archive path.
        """
        src = archive.path if isinstance(archive, Archive) else Path(archive)
        if not src.is_file():
            raise StagingError(f"Archive does not exist: {src}")
        archive_info(src)

        with self._lock:
            dst = self.contrib_dir / src.name
            if src.resolve() != dst.resolve():
                shutil.copy2(src, dst)
            self._write_index()
        logger.debug("Staged %s", dst.name)
        return dst

    def projects(self) -> dict[str, list[str]]:
        """Canonical project name -> staged archive filenames."""
        out: dict[str, list[str]] = {}
        for path in sorted(self.contrib_dir.iterdir()):
            if not path.is_file():
                continue
            out.setdefault(archive_info(path).name, []).append(path.name)
        return out

    def _write_index(self) -> None:
        projects = self.projects()

        for stale in self.index_dir.iterdir():
            if stale.is_dir() and stale.name not in projects:
                shutil.rmtree(stale)

        root_tpl = self._env.get_template("root_index.html")
        (self.index_dir / "index.html").write_text(
            root_tpl.render(projects=sorted(projects)), encoding="utf-8", newline="\n"
        )

        project_tpl = self._env.get_template("project_index.html")
        for project, filenames in projects.items():
            files = [_IndexedFile(name=f, sha256=_sha256(self.contrib_dir / f)) for f in filenames]
            page_dir = self.index_dir / project
            page_dir.mkdir(exist_ok=True)
            (page_dir / "index.html").write_text(
                project_tpl.render(project=project, files=files, contrib=CONTRIB_SUBPATH),
                encoding="utf-8",
                newline="\n",
            )
