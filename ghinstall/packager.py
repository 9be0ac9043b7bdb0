"""
packager.py

Responsibility: Turn a source tree into distributable archives.

Building is delegated to PyPA `build` (`python -m build`) running under the
current interpreter; this module only assembles the command line and reports
what was produced.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from packaging.utils import (
    InvalidSdistFilename,
    InvalidWheelFilename,
    canonicalize_name,
    parse_sdist_filename,
    parse_wheel_filename,
)

logger = logging.getLogger(__name__)

SKIP_DOCS_FLAG = "--config-setting=build-docs=false"


class BuildError(RuntimeError):
    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message if not output else f"{message}\n\n{output}")
        self.output = output


@dataclass(frozen=True)
class Archive:
    path: Path
    name: str
    version: str


def archive_info(path: str | Path) -> Archive:
    """
    Identify a built sdist (.tar.gz) or wheel (.whl) by its filename.
    """
    p = Path(path)
    try:
        if p.name.endswith(".whl"):
            name, version, _build, _tags = parse_wheel_filename(p.name)
        elif p.name.endswith(".tar.gz"):
            name, version = parse_sdist_filename(p.name)
        else:
            raise BuildError(f"Not a package archive: {p.name}")
    except (InvalidWheelFilename, InvalidSdistFilename) as e:
        raise BuildError(f"Unrecognised archive name {p.name}: {e}") from e
    return Archive(path=p, name=canonicalize_name(name), version=str(version))


def effective_build_args(build_args: str | None, build_docs: bool) -> str:
    """
    Normalise the caller's build argument string. When docs are not wanted,
    add the skip flag unless the caller already said something about docs.
    """
    args = build_args or ""
    if not build_docs and "build-docs" not in args:
        args = f"{args} {SKIP_DOCS_FLAG}".strip()
    return args


def _run(cmd: list[str], *, cwd: Path) -> str:
    """
    Run a subprocess command, raising a BuildError on failure.
    """
    try:
        r = subprocess.run(cmd, cwd=str(cwd), check=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    except subprocess.CalledProcessError as e:
        raise BuildError(f"Command failed: {' '.join(cmd)}", e.stdout or "") from e
    except OSError as e:
        raise BuildError(f"Could not run {cmd[0]}: {e}") from e
    return r.stdout


class PackageBuilder:
    def __init__(self, python: str | None = None, *, verbose: bool = False) -> None:
        self._python = python or sys.executable
        self._verbose = verbose

    def build(self, source_dir: str | Path, outdir: str | Path, build_args: str = "") -> list[Archive]:
        """
        Build `source_dir` into `outdir` and return the archives produced.
        """
        src = Path(source_dir).resolve()
        out = Path(outdir).resolve()
        out.mkdir(parents=True, exist_ok=True)
        if not src.is_dir():
            raise BuildError(f"Source directory does not exist: {src}")

        try:
            extra = shlex.split(build_args)
        except ValueError as e:
            raise BuildError(f"Invalid build arguments {build_args!r}: {e}") from e

        before = set(out.iterdir())
        cmd = [self._python, "-m", "build", "--outdir", str(out), *extra, str(src)]
        logger.log(logging.INFO if self._verbose else logging.DEBUG, "Building %s...", src)
        output = _run(cmd, cwd=src)
        if self._verbose:
            logger.info("%s", output.rstrip())

        produced = sorted(p for p in out.iterdir() if p not in before and p.name.endswith((".whl", ".tar.gz")))
        if not produced:
            raise BuildError(f"Build of {src} produced no archives", output)
        return [archive_info(p) for p in produced]
