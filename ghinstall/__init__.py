"""
ghinstall package

Install Python packages straight from GitHub repositories, without a package
index in between.

Key responsibilities are split across modules:
- `reference.py`: parse `owner/name[branch]@ref#pr/subdir` strings into a `Reference`
- `github_client.py`: isolated GitHub REST API interactions (repo / pull request lookup)
- `fetcher.py`: clone and check out a `Reference` with GitPython
- `manifest.py`: read the package name and version from a working copy
- `packager.py`: build sdist/wheel archives with PyPA `build`
- `staging.py`: throwaway PEP 503 index that pip can install from
- `runtime.py`: the running interpreter's installed/loaded packages, and pip
- `installer.py`: orchestration (parse -> fetch -> build -> stage -> install)
- `cli.py`: CLI entrypoint
"""

from __future__ import annotations

from ghinstall.installer import install_github

__all__ = ["__version__", "install_github"]

__version__ = "0.1.0"
