from __future__ import annotations

import pytest

from ghinstall.manifest import ManifestError, read_manifest


def test_pyproject(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "ghit"\nversion = "0.2.1"\n', encoding="utf-8")

    m = read_manifest(tmp_path)

    assert (m.name, m.version, m.path) == ("ghit", "0.2.1", tmp_path)


def test_dynamic_version(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "ghit"\ndynamic = ["version"]\n', encoding="utf-8"
    )
    assert read_manifest(tmp_path).version is None


def test_setup_cfg_fallback(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text('[build-system]\nrequires = ["setuptools"]\n', encoding="utf-8")
    (tmp_path / "setup.cfg").write_text("[metadata]\nname = legacy\nversion = 1.4\n", encoding="utf-8")

    m = read_manifest(tmp_path)

    assert (m.name, m.version) == ("legacy", "1.4")


def test_setup_cfg_attr_version_is_dynamic(tmp_path) -> None:
    (tmp_path / "setup.cfg").write_text(
        "[metadata]\nname = legacy\nversion = attr: legacy.__version__\n", encoding="utf-8"
    )
    assert read_manifest(tmp_path).version is None


def test_not_a_python_package(tmp_path) -> None:
    (tmp_path / "DESCRIPTION").write_text("Package: ghit\n", encoding="utf-8")
    with pytest.raises(ManifestError, match="No Python package found"):
        read_manifest(tmp_path)


def test_setup_py_only_leaves_name_to_the_build(tmp_path) -> None:
    (tmp_path / "setup.py").write_text('from setuptools import setup\nsetup(name="pkg", version="1.0.0")\n', encoding="utf-8")

    manifest = read_manifest(tmp_path)

    assert (manifest.name, manifest.version) == (None, None)


def test_build_system_only_pyproject(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text('[build-system]\nrequires = ["setuptools"]\n', encoding="utf-8")
    (tmp_path / "setup.py").write_text("from setuptools import setup\nsetup()\n", encoding="utf-8")
    assert read_manifest(tmp_path).name is None


def test_poetry_project(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[tool.poetry]\nname = "ghit"\nversion = "0.2.1"\n\n[build-system]\nbuild-backend = "poetry.core.masonry.api"\n',
        encoding="utf-8",
    )

    manifest = read_manifest(tmp_path)

    assert (manifest.name, manifest.version) == ("ghit", "0.2.1")


def test_invalid_toml(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project\nname=", encoding="utf-8")
    with pytest.raises(ManifestError, match="Invalid TOML"):
        read_manifest(tmp_path)


def test_missing_directory(tmp_path) -> None:
    with pytest.raises(ManifestError, match="does not exist"):
        read_manifest(tmp_path / "nope")
