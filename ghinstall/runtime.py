"""
runtime.py

Responsibility: Everything that touches the running interpreter's package state.

`PackageRuntime` is the seam the installer talks to:
- installed versions (importlib.metadata)
- loaded modules (sys.modules)
- uninstall / install (pip, run as a subprocess of this interpreter)

Lookups that can fail return None / an error message instead of raising.
`PipRuntime` is the real implementation; tests substitute their own.
"""

from __future__ import annotations

import importlib
import logging
import subprocess
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from typing import Protocol

from packaging.utils import canonicalize_name

logger = logging.getLogger(__name__)

CORE_DEPENDENCIES = ("required", "build")
INSTALL_TYPES = ("binary", "source")


class InstallError(RuntimeError):
    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message if not output else f"{message}\n\n{output}")
        self.output = output


@dataclass(frozen=True)
class InstallOptions:
    dependencies: tuple[str, ...] = CORE_DEPENDENCIES
    install_type: str | None = None
    lib: str | None = None
    verbose: bool = False
    extra: dict[str, object] = field(default_factory=dict)


class PackageRuntime(Protocol):
    def installed_version(self, name: str, lib: str | None = None) -> str | None: ...
    def is_loaded(self, name: str) -> bool: ...
    def unload(self, name: str) -> list[str]: ...
    def reload(self, name: str) -> bool: ...
    def uninstall(self, names: Sequence[str], lib: str | None = None) -> str | None: ...
    def install(self, packages: Mapping[str, str], sources: Sequence[str], options: InstallOptions) -> None: ...


def _option_args(extra: Mapping[str, object]) -> list[str]:
    """
    Turn pass-through keyword options into pip long options:
    `key=value` -> `--key=value`, `True` -> `--key`, `False`/`None` dropped,
    lists repeat the option.
    """
    args: list[str] = []
    for key, value in extra.items():
        flag = "--" + key.replace("_", "-").lstrip("-")
        if value is None or value is False:
            continue
        if value is True:
            args.append(flag)
        elif isinstance(value, (list, tuple)):
            args.extend(f"{flag}={v}" for v in value)
        else:
            args.append(f"{flag}={value}")
    return args


def requirement_strings(packages: Mapping[str, str], dependencies: Sequence[str]) -> list[str]:
    """Pin each package to its staged version, adding requested extras."""
    extras = [d for d in dependencies if d not in CORE_DEPENDENCIES]
    suffix = f"[{','.join(extras)}]" if extras else ""
    return [f"{name}{suffix}=={version}" for name, version in packages.items()]


def pip_install_command(
    packages: Mapping[str, str],
    sources: Sequence[str],
    options: InstallOptions,
    python: str | None = None,
) -> list[str]:
    if not sources:
        raise InstallError("At least one package source is required")
    if options.install_type is not None and options.install_type not in INSTALL_TYPES:
        raise InstallError(f"Unknown install type {options.install_type!r} (expected one of {', '.join(INSTALL_TYPES)})")

    cmd = [python or sys.executable, "-m", "pip", "install", "--index-url", sources[0]]
    for src in sources[1:]:
        cmd += ["--extra-index-url", src]
    if "required" not in options.dependencies:
        cmd.append("--no-deps")
    # "required" implies "build".
    if "build" not in options.dependencies and "required" not in options.dependencies:
        cmd.append("--no-build-isolation")
    if options.install_type == "binary":
        cmd.append("--only-binary=:all:")
    elif options.install_type == "source":
        cmd.append("--no-binary=:all:")
    if options.lib:
        cmd += ["--target", options.lib, "--upgrade"]
    cmd.append("--verbose" if options.verbose else "--quiet")
    cmd += _option_args(options.extra)
    cmd += requirement_strings(packages, options.dependencies)
    return cmd


class PipRuntime:
    def __init__(self, python: str | None = None) -> None:
        self._python = python or sys.executable
        self._unloaded: dict[str, list[str]] = {}

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        logger.debug("Running %s", " ".join(cmd))
        return subprocess.run(cmd, check=False, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)

    def installed_version(self, name: str, lib: str | None = None) -> str | None:
        importlib.invalidate_caches()
        path = [lib, *sys.path] if lib else list(sys.path)
        for dist in metadata.distributions(name=name, path=path):
            version = dist.version
            return str(version) if version else None
        return None

    def _top_level_modules(self, name: str) -> list[str]:
        canon = canonicalize_name(name)
        modules = [
            module
            for module, dists in metadata.packages_distributions().items()
            if any(canonicalize_name(d) == canon for d in dists)
        ]
        return sorted(modules) or [name.replace("-", "_").replace(".", "_")]

    def is_loaded(self, name: str) -> bool:
        return any(m in sys.modules for m in self._top_level_modules(name))

    def unload(self, name: str) -> list[str]:
        """
        Drop the package's modules from sys.modules. Returns the top-level
        modules that were loaded, which `reload()` imports again.
        """
        tops = [m for m in self._top_level_modules(name) if m in sys.modules]
        for key in list(sys.modules):
            if any(key == m or key.startswith(m + ".") for m in tops):
                del sys.modules[key]
        self._unloaded[name] = tops
        return tops

    def reload(self, name: str) -> bool:
        importlib.invalidate_caches()
        ok = True
        for module in self._unloaded.pop(name, self._top_level_modules(name)):
            try:
                importlib.import_module(module)
            except ImportError as e:
                logger.debug("Could not re-import %s: %s", module, e)
                ok = False
        return ok

    def _remove_from_target(self, name: str, lib: str) -> str | None:
        dists = list(metadata.distributions(name=name, path=[lib]))
        if not dists:
            return f"there is no package called {name!r} in {lib}"
        root = Path(lib).resolve()
        for dist in dists:
            parents: set[Path] = set()
            for entry in dist.files or []:
                target = Path(str(dist.locate_file(entry))).resolve()
                if root not in target.parents:
                    continue
                target.unlink(missing_ok=True)
                parents.add(target.parent)
            # Deepest first, so emptied package directories go before their parents.
            for directory in sorted(parents, key=lambda p: len(p.parts), reverse=True):
                while directory != root and directory.is_dir() and not any(directory.iterdir()):
                    directory.rmdir()
                    directory = directory.parent
        return None

    def uninstall(self, names: Sequence[str], lib: str | None = None) -> str | None:
        if not names:
            return None
        if lib:
            errors = [e for e in (self._remove_from_target(n, lib) for n in names) if e]
            return "; ".join(errors) or None
        r = self._run([self._python, "-m", "pip", "uninstall", "--yes", *names])
        if r.returncode != 0:
            return r.stdout.strip() or f"pip uninstall exited with {r.returncode}"
        return None

    def install(self, packages: Mapping[str, str], sources: Sequence[str], options: InstallOptions) -> None:
        if not packages:
            return
        cmd = pip_install_command(packages, sources, options, python=self._python)
        r = self._run(cmd)
        if options.verbose and r.stdout:
            logger.info("%s", r.stdout.rstrip())
        if r.returncode != 0:
            raise InstallError(f"pip install failed for {', '.join(packages)}", r.stdout)
