"""
manifest.py

Responsibility: Read the package name and version from a working copy.

`pyproject.toml` ([project], else Poetry's [tool.poetry]) is preferred;
`setup.cfg` ([metadata]) is the fallback for projects that have not moved
their metadata yet. Anything not declared statically (dynamic versions, a bare
`setup.py`) is reported as None and resolved from the built archive.
"""

from __future__ import annotations

import configparser
import tomllib
from dataclasses import dataclass
from pathlib import Path


class ManifestError(ValueError):
    pass


@dataclass(frozen=True)
class Manifest:
    name: str | None
    version: str | None
    path: Path


def _from_pyproject(path: Path) -> tuple[str | None, str | None]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(f"Invalid TOML in {path}: {e}") from e
    project = data.get("project") or {}
    if not isinstance(project, dict):
        raise ManifestError(f"`[project]` must be a table in {path}")
    if not project.get("name"):
        poetry = (data.get("tool") or {}).get("poetry") or {}
        if isinstance(poetry, dict):
            project = poetry
    name = project.get("name")
    version = project.get("version")
    return (str(name).strip() if name else None, str(version).strip() if version else None)


def _from_setup_cfg(path: Path) -> tuple[str | None, str | None]:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as e:
        raise ManifestError(f"Invalid setup.cfg {path}: {e}") from e
    if not parser.has_section("metadata"):
        return None, None
    name = parser.get("metadata", "name", fallback="").strip() or None
    version = parser.get("metadata", "version", fallback="").strip() or None
    # `attr:` / `file:` directives need the build backend to resolve.
    if version and version.startswith(("attr:", "file:")):
        version = None
    return name, version


def read_manifest(package_dir: str | Path) -> Manifest:
    """
    Read the declared name and version of the package rooted at `package_dir`.

    Either may be None when only the build backend knows it (a bare
    `setup.py`, `attr:` versions); the installer then takes it from the built
    archive.
    """
    root = Path(package_dir)
    if not root.is_dir():
        raise ManifestError(f"Package directory does not exist: {root}")

    pyproject = root / "pyproject.toml"
    setup_cfg = root / "setup.cfg"
    if not pyproject.is_file() and not setup_cfg.is_file() and not (root / "setup.py").is_file():
        raise ManifestError(f"No Python package found in {root} (no pyproject.toml, setup.cfg or setup.py)")

    name: str | None = None
    version: str | None = None

    if pyproject.is_file():
        name, version = _from_pyproject(pyproject)

    if (name is None or version is None) and setup_cfg.is_file():
        cfg_name, cfg_version = _from_setup_cfg(setup_cfg)
        name = name or cfg_name
        version = version or cfg_version

    return Manifest(name=name, version=version, path=root)
