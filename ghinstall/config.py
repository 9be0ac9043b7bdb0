"""
config.py

Responsibility: Load user configuration and resolve package sources.

The configuration file is optional YAML (`$GHINSTALL_CONFIG`, else
`~/.config/ghinstall/config.yaml`). Recognised keys:
- host: str
- repos: list of index URLs used for dependencies
- build_args: str
- build_docs: bool
- dependencies: list of dependency kinds / extras
- verbose: bool
- token_env: name of the environment variable holding the GitHub token
"""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ghinstall.reference import DEFAULT_HOST
from ghinstall.runtime import CORE_DEPENDENCIES

PYPI_URL = "https://pypi.org/simple"
PYPI_PLACEHOLDER = "@PYPI@"
CONFIG_ENV = "GHINSTALL_CONFIG"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    host: str = DEFAULT_HOST
    repos: tuple[str, ...] = ()
    build_args: str = ""
    build_docs: bool = True
    dependencies: tuple[str, ...] = CORE_DEPENDENCIES
    verbose: bool = False
    token_env: str = "GITHUB_TOKEN"


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(env).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "ghinstall" / "config.yaml"


def _str_list(data: Mapping[str, Any], key: str) -> tuple[str, ...] | None:
    raw = data.get(key)
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
        raise ConfigError(f"`{key}` must be a list of strings when provided.")
    return tuple(v.strip() for v in raw if v.strip())


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    raw = data.get(key, default)
    if not isinstance(raw, bool):
        raise ConfigError(f"`{key}` must be true or false.")
    return raw


def load_config(path: str | Path | None = None) -> Config:
    """
    Load configuration from `path` (or the default location). A missing
    default file yields defaults; a missing explicit file is an error.
    """
    explicit = path is not None
    cfg_path = Path(path).expanduser() if path is not None else default_config_path()
    if not cfg_path.exists():
        if explicit:
            raise ConfigError(f"Config file does not exist: {cfg_path}")
        return Config()

    try:
        data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {cfg_path} must be a mapping/object at the top level.")

    dependencies = _str_list(data, "dependencies")
    return Config(
        host=str(data.get("host") or DEFAULT_HOST).strip(),
        repos=_str_list(data, "repos") or (),
        build_args=str(data.get("build_args") or "").strip(),
        build_docs=_bool(data, "build_docs", True),
        dependencies=CORE_DEPENDENCIES if dependencies is None else dependencies,
        verbose=_bool(data, "verbose", False),
        token_env=str(data.get("token_env") or "GITHUB_TOKEN").strip(),
    )


def resolve_sources(sources: Sequence[str]) -> list[str]:
    """Replace the PyPI placeholder and drop duplicates, keeping order."""
    out: list[str] = []
    for src in sources:
        url = PYPI_URL if src.strip() == PYPI_PLACEHOLDER else src.strip()
        if url and url not in out:
            out.append(url)
    return out


def configured_package_sources(config: Config | None = None) -> list[str]:
    """
    Package sources for dependency resolution when the caller gives none:
    config `repos`, else pip's own environment variables, else PyPI.
    """
    cfg = config if config is not None else load_config()
    if cfg.repos:
        return resolve_sources(cfg.repos)

    from_env: list[str] = []
    if os.environ.get("PIP_INDEX_URL"):
        from_env.append(os.environ["PIP_INDEX_URL"])
    from_env.extend(os.environ.get("PIP_EXTRA_INDEX_URL", "").split())
    if from_env:
        return resolve_sources(from_env)

    return [PYPI_URL]
