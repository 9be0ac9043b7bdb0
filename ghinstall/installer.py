"""
installer.py

Responsibility: Drive an installation end to end.

Per requested reference: parse -> fetch -> read manifest -> version check ->
build -> stage. Then, once for the whole batch: optional uninstall, unload
loaded packages, a single pip install against the staging index plus the
configured sources, version lookup, and re-import.

Collaborators (fetcher, builder, runtime) are injectable; the defaults talk
to GitHub, PyPA `build` and pip.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import warnings
from collections.abc import Iterable
from contextlib import ExitStack
from pathlib import Path
from typing import Protocol

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from ghinstall.config import configured_package_sources, resolve_sources
from ghinstall.fetcher import Credentials, GitFetcher
from ghinstall.manifest import ManifestError, read_manifest
from ghinstall.packager import Archive, BuildError, PackageBuilder, effective_build_args
from ghinstall.reference import DEFAULT_HOST, Reference, parse_reference
from ghinstall.runtime import CORE_DEPENDENCIES, InstallOptions, PackageRuntime, PipRuntime
from ghinstall.staging import StagingRepository

logger = logging.getLogger(__name__)


class VersionRegressionWarning(UserWarning):
    pass


class Fetcher(Protocol):
    def fetch(self, reference: Reference, dest: Path) -> Path: ...


class Builder(Protocol):
    def build(self, source_dir: str | Path, outdir: str | Path, build_args: str = "") -> list[Archive]: ...


def _is_older(candidate: str, current: str) -> bool:
    try:
        return Version(candidate) < Version(current)
    except InvalidVersion:
        logger.debug("Cannot compare versions %r and %r", candidate, current)
        return False


def _warn_if_older(name: str, version: str, current: str | None) -> None:
    if current is not None and _is_older(version, current):
        warnings.warn(
            f"Package {name} older ({version}) than currently installed version ({current}).",
            VersionRegressionWarning,
            stacklevel=4,
        )


class _Run:
    """State for one `install_github` call."""

    def __init__(
        self,
        *,
        fetcher: Fetcher,
        builder: Builder,
        runtime: PackageRuntime,
        staging: StagingRepository,
        workroot: Path,
        build_args: str,
        lib: str | None,
        verbose: bool,
    ) -> None:
        self.fetcher = fetcher
        self.builder = builder
        self.runtime = runtime
        self.staging = staging
        self.workroot = workroot
        self.build_args = build_args
        self.lib = lib
        self.verbose = verbose

    def note(self, msg: str, *args: object) -> None:
        logger.log(logging.INFO if self.verbose else logging.DEBUG, msg, *args)

    def stage(self, reference: Reference, index: int) -> tuple[str, str]:
        """
        Fetch, check and build one reference, and stage its archives.
        Returns (package name, staged version).

        Name or version missing from the manifest are taken from the built
        archive; the version check then runs after the build.
        """
        checkout = self.workroot / f"{index:02d}-{reference.owner}-{reference.name}"
        path = self.fetcher.fetch(reference, checkout)

        package_dir = path / reference.subdir if reference.subdir else path
        self.note("Reading package metadata for '%s'...", reference)
        try:
            manifest = read_manifest(package_dir)
        except ManifestError as e:
            raise ManifestError(f"{reference}: {e}") from e

        current: str | None = None
        if manifest.name is not None:
            current = self.runtime.installed_version(manifest.name, self.lib)
            if manifest.version is not None:
                _warn_if_older(manifest.name, manifest.version, current)

        outdir = self.workroot / "dist" / checkout.name
        try:
            archives = self.builder.build(package_dir, outdir, self.build_args)
        except BuildError as e:
            raise BuildError(f"Failed to build {reference}", e.output) from e

        if manifest.name is not None:
            name = manifest.name
            ours = [a for a in archives if a.name == canonicalize_name(name)]
            if not ours:
                raise BuildError(f"Build of {reference} produced no archive for {name}")
        else:
            built = sorted({a.name for a in archives})
            if len(built) != 1:
                raise BuildError(f"Build of {reference} produced archives for {', '.join(built) or 'nothing'}")
            name = built[0]
            ours = archives
            self.note("Package name for '%s' taken from the built archive: %s", reference, name)
            current = self.runtime.installed_version(name, self.lib)

        version = ours[0].version
        if manifest.name is None or manifest.version is None:
            _warn_if_older(name, version, current)

        for archive in ours:
            self.staging.insert(archive)
        shutil.rmtree(checkout, ignore_errors=True)
        return name, version


def install_github(
    repo: str | Iterable[str],
    *,
    host: str = DEFAULT_HOST,
    credentials: Credentials | str | None = None,
    build_args: str | None = None,
    build_docs: bool = True,
    uninstall: bool = False,
    verbose: bool = False,
    repos: Iterable[str] | None = None,
    install_type: str | None = None,
    dependencies: Iterable[str] = CORE_DEPENDENCIES,
    lib: str | Path | None = None,
    fetcher: Fetcher | None = None,
    builder: Builder | None = None,
    runtime: PackageRuntime | None = None,
    **install_options: object,
) -> dict[str, str | None]:
    """
    Install one or more packages from GitHub repositories.

    `repo` takes `owner/name` strings with optional `[branch]`, `@ref`,
    `#pull` and `/subdir` qualifiers. Returns package name -> installed
    version (None when it cannot be determined), in request order.

    Raises InvalidReferenceError, FetchError, ManifestError, BuildError or
    InstallError; nothing is left behind on disk in any case.
    """
    requested = [repo] if isinstance(repo, str) else list(repo)
    unique = list(dict.fromkeys(requested))
    if not unique:
        return {}

    if isinstance(credentials, str):
        credentials = Credentials(token=credentials)
    lib_path = str(Path(lib).expanduser()) if lib else None
    dependency_kinds = tuple(dependencies)

    references: list[Reference] = []
    for value in unique:
        logger.log(logging.INFO if verbose else logging.DEBUG, "Parsing reponame for '%s'...", value)
        references.append(parse_reference(value, host=host))

    rt = runtime if runtime is not None else PipRuntime()
    sources = resolve_sources(repos) if repos is not None else configured_package_sources()

    with ExitStack() as stack:
        workroot = Path(stack.enter_context(tempfile.TemporaryDirectory(prefix="ghinstall-")))
        staging = stack.enter_context(StagingRepository())
        run = _Run(
            fetcher=fetcher if fetcher is not None else GitFetcher(credentials, verbose=verbose),
            builder=builder if builder is not None else PackageBuilder(verbose=verbose),
            runtime=rt,
            staging=staging,
            workroot=workroot,
            build_args=effective_build_args(build_args, build_docs),
            lib=lib_path,
            verbose=verbose,
        )

        to_install: dict[str, str] = {}
        for index, reference in enumerate(references):
            name, version = run.stage(reference, index)
            to_install[name] = version

        if uninstall:
            run.note("Removing previous installations of %s...", ", ".join(to_install))
            problem = rt.uninstall(list(to_install), lib_path)
            if problem:
                run.note("Note: %s", problem)

        loaded = [name for name in to_install if rt.is_loaded(name)]
        if loaded:
            run.note("Unloading packages %s...", ", ".join(loaded))
            for name in loaded:
                rt.unload(name)

        try:
            extras = [d for d in dependency_kinds if d not in CORE_DEPENDENCIES]
            run.note(
                "Installing packages%s...",
                f" and {', '.join(dependency_kinds)}" if dependency_kinds else "",
            )
            if extras:
                run.note("Requesting extras %s", ", ".join(extras))
            rt.install(
                to_install,
                [staging.url, *sources],
                InstallOptions(
                    dependencies=dependency_kinds,
                    install_type=install_type,
                    lib=lib_path,
                    verbose=verbose,
                    extra=dict(install_options),
                ),
            )
            installed = {name: rt.installed_version(name, lib_path) for name in to_install}
        finally:
            if loaded:
                run.note("Reloading packages %s...", ", ".join(loaded))
                for name in loaded:
                    if not rt.reload(name):
                        logger.warning("Could not reload package %s", name)

    return installed

