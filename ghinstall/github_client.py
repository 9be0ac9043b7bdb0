"""
github_client.py

Responsibility: Isolate all direct GitHub REST API interaction.

This module must be the only place that:
- Constructs GitHub REST endpoints (github.com and GitHub Enterprise hosts)
- Sends HTTP requests to the API
- Interprets GitHub API responses / error payloads

Cloning and checkout are handled by `fetcher.py`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

DEFAULT_HOST = "github.com"


class GitHubError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RepoInfo:
    owner: str
    name: str
    clone_url: str


@dataclass(frozen=True)
class PullRequestInfo:
    number: int
    head_sha: str
    head_ref: str


def api_base_for_host(host: str) -> str:
    """
    github.com is served from api.github.com; Enterprise instances expose the
    same API under https://HOST/api/v3.
    """
    host = host.strip().rstrip("/")
    if host in ("", DEFAULT_HOST, "api.github.com"):
        return "https://api.github.com"
    if "://" not in host:
        host = f"https://{host}"
    return f"{host}/api/v3"


class GitHubClient:
    def __init__(self, token: str | None = None, host: str = DEFAULT_HOST, api_base: str | None = None) -> None:
        self._token = (token or "").strip() or None
        self._api_base = (api_base or api_base_for_host(host)).rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "ghinstall",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request(self, method: str, path: str) -> Any:
        url = f"{self._api_base}{path}"
        try:
            r = requests.request(method, url, headers=self._headers(), timeout=30)
        except requests.RequestException as e:
            raise GitHubError(f"GitHub API request failed {method} {path}: {e}") from e
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            raise GitHubError(
                f"GitHub API error {r.status_code} {method} {path}: {payload.get('message', payload)}",
                status_code=r.status_code,
            )
        if r.status_code == 204:
            return None
        return r.json()

    def get_repo(self, owner: str, name: str) -> RepoInfo | None:
        """
        Return RepoInfo if the repo exists and is accessible; otherwise None.
        """
        try:
            data = self._request("GET", f"/repos/{owner}/{name}")
        except GitHubError as e:
            if e.status_code == 404:
                return None
            raise
        return RepoInfo(
            owner=owner,
            name=name,
            clone_url=data["clone_url"],
        )

    def get_pull_request(self, owner: str, name: str, number: int) -> PullRequestInfo | None:
        """
        Return the head of pull request `number`, or None if it does not exist.
        """
        try:
            data = self._request("GET", f"/repos/{owner}/{name}/pulls/{number}")
        except GitHubError as e:
            if e.status_code == 404:
                return None
            raise
        head = data.get("head") or {}
        return PullRequestInfo(
            number=number,
            head_sha=str(head.get("sha") or ""),
            head_ref=str(head.get("ref") or ""),
        )
