"""
cli.py

Responsibility: CLI entrypoint for ghinstall.

High-level flow (single command):
1) Load config (`config.py`) and apply CLI overrides
2) Hand the repository strings to `installer.install_github`
3) Print `name==version` per installed package

Parsing, fetching, building and installing live in their own modules; this
module only maps arguments and errors.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from ghinstall import __version__
from ghinstall.config import ConfigError, load_config
from ghinstall.fetcher import Credentials, FetchError
from ghinstall.installer import install_github
from ghinstall.manifest import ManifestError
from ghinstall.packager import BuildError
from ghinstall.reference import InvalidReferenceError
from ghinstall.runtime import INSTALL_TYPES, InstallError
from ghinstall.staging import StagingError


class CLIError(RuntimeError):
    pass


_KNOWN_ERRORS = (
    CLIError,
    ConfigError,
    InvalidReferenceError,
    FetchError,
    ManifestError,
    BuildError,
    StagingError,
    InstallError,
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.captureWarnings(True)


def _pip_options(raw: list[str]) -> dict[str, object]:
    """
    `--pip-option KEY=VALUE` -> {"KEY": "VALUE"}; a bare `KEY` is a flag.
    Repeated keys collect into a list.
    """
    out: dict[str, object] = {}
    for item in raw:
        key, sep, value = item.partition("=")
        key = key.strip().lstrip("-")
        if not key:
            raise CLIError(f"Invalid --pip-option: {item!r}")
        new: object = value if sep else True
        if key in out:
            prev = out[key]
            out[key] = [*prev, new] if isinstance(prev, list) else [prev, new]
        else:
            out[key] = new
    return out


def install_cmd(args: argparse.Namespace) -> int:
    config = load_config(args.config)

    # CLI overrides
    verbose = bool(args.verbose) or config.verbose
    host = args.host or config.host
    build_args = args.build_args if args.build_args is not None else config.build_args
    build_docs = config.build_docs if args.build_docs is None else bool(args.build_docs)
    repos = args.repos or (list(config.repos) if config.repos else None)
    if args.no_deps:
        dependencies: list[str] = []
    else:
        dependencies = args.dependencies or list(config.dependencies)

    _setup_logging(verbose)

    token = args.token or os.environ.get(config.token_env) or None
    credentials = Credentials(token=token, ssh_key=args.ssh_key) if (token or args.ssh_key) else None

    result = install_github(
        args.repo,
        host=host,
        credentials=credentials,
        build_args=build_args,
        build_docs=build_docs,
        uninstall=bool(args.uninstall),
        verbose=verbose,
        repos=repos,
        install_type=args.install_type,
        dependencies=dependencies,
        lib=args.lib,
        **_pip_options(args.pip_option or []),
    )

    for name, version in result.items():
        print(f"{name}=={version}" if version is not None else f"{name} (not installed)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ghinstall", description="Install Python packages from GitHub repositories")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "repo",
        nargs="+",
        help="owner/name, optionally with [branch], @ref, #pull or /subdir (any order)",
    )
    p.add_argument("--host", default=None, help="GitHub host, for GitHub Enterprise (default: github.com)")
    p.add_argument("--token", default=None, help="GitHub token (or set env GITHUB_TOKEN)")
    p.add_argument("--ssh-key", default=None, help="Private key to clone over SSH")

    p.add_argument("--build-args", default=None, help="Extra arguments passed to `python -m build`")
    p.add_argument("--build-docs", dest="build_docs", action="store_true", default=None, help="Build documentation (default)")
    p.add_argument("--no-build-docs", dest="build_docs", action="store_false", default=None, help="Skip building documentation")

    p.add_argument("--uninstall", action="store_true", help="Uninstall previous installations first")
    p.add_argument("-v", "--verbose", action="store_true", help="Print details of building and installing")

    p.add_argument("--repos", action="append", default=None, metavar="URL", help="Package index for dependencies (repeatable)")
    p.add_argument("--type", dest="install_type", choices=INSTALL_TYPES, default=None, help="Restrict pip to wheels or sdists")
    p.add_argument(
        "--dependencies",
        action="append",
        default=None,
        metavar="KIND",
        help="Dependency kinds to install: required, build, or an extra name (repeatable)",
    )
    p.add_argument("--no-deps", action="store_true", help="Do not install any dependencies")
    p.add_argument("--lib", default=None, help="Install into this directory instead of the environment")
    p.add_argument("--config", default=None, help="Config file (default: ~/.config/ghinstall/config.yaml)")
    p.add_argument("--pip-option", action="append", default=None, metavar="KEY[=VALUE]", help="Extra pip install option")

    p.set_defaults(func=install_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except _KNOWN_ERRORS as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
