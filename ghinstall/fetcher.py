"""
fetcher.py

Responsibility: Produce a local working copy for a `Reference`.

The GitHub API (via `github_client.py`) is consulted for the clone URL and,
for pull requests, the head commit. Cloning itself is done with GitPython.
Every failure is surfaced as a `FetchError` naming the reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from git import GitCommandError, Repo

from ghinstall.github_client import GitHubClient, GitHubError
from ghinstall.reference import Reference

logger = logging.getLogger(__name__)


class FetchError(RuntimeError):
    def __init__(self, reference: Reference, message: str) -> None:
        super().__init__(f"Failed to fetch {reference}: {message}")
        self.reference = reference


@dataclass(frozen=True)
class Credentials:
    """
    Authentication for both the GitHub API and git.

    - `token`: personal access token, used over HTTPS.
    - `ssh_key`: path to a private key; when set, cloning goes over SSH.
    """

    token: str | None = None
    username: str = "x-access-token"
    ssh_key: str | None = None

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, token={'***' if self.token else None}, ssh_key={self.ssh_key!r})"


def _tokenized_https_remote(clone_url: str, credentials: Credentials | None) -> str:
    """
    Convert https://github.com/owner/name.git into an HTTPS URL containing a token.
    The working copy is thrown away after the build, so the token never outlives it.
    """
    if credentials is None or not credentials.token:
        return clone_url
    return clone_url.replace("https://", f"https://{credentials.username}:{credentials.token}@", 1)


class GitFetcher:
    def __init__(
        self,
        credentials: Credentials | None = None,
        client: GitHubClient | None = None,
        *,
        verbose: bool = False,
    ) -> None:
        self._credentials = credentials
        self._client = client
        self._verbose = verbose

    def _note(self, msg: str, *args: object) -> None:
        logger.log(logging.INFO if self._verbose else logging.DEBUG, msg, *args)

    def _client_for(self, reference: Reference) -> GitHubClient:
        if self._client is not None:
            return self._client
        token = self._credentials.token if self._credentials else None
        return GitHubClient(token, host=reference.host)

    def _redact(self, text: str) -> str:
        if self._credentials and self._credentials.token:
            return text.replace(self._credentials.token, "***")
        return text

    def _git_env(self) -> dict[str, str] | None:
        if self._credentials and self._credentials.ssh_key:
            return {"GIT_SSH_COMMAND": f"ssh -i {self._credentials.ssh_key} -o IdentitiesOnly=yes"}
        return None

    def _clone_url(self, reference: Reference) -> str:
        if self._credentials and self._credentials.ssh_key:
            return f"git@{reference.host}:{reference.owner}/{reference.name}.git"

        try:
            info = self._client_for(reference).get_repo(reference.owner, reference.name)
        except GitHubError as e:
            # API unavailable (rate limit, proxy): let git decide whether the repo exists.
            logger.debug("Repository lookup failed for %s, using default clone URL: %s", reference.slug, e)
            clone_url = f"https://{reference.host}/{reference.owner}/{reference.name}.git"
        else:
            if info is None:
                raise FetchError(reference, f"repository {reference.slug} not found on {reference.host}")
            clone_url = info.clone_url
        return _tokenized_https_remote(clone_url, self._credentials)

    def _check_pull_request(self, reference: Reference, number: int) -> None:
        try:
            pr = self._client_for(reference).get_pull_request(reference.owner, reference.name, number)
        except GitHubError as e:
            logger.debug("Pull request lookup failed for %s: %s", reference, e)
            return
        if pr is None:
            raise FetchError(reference, f"pull request #{number} not found")
        self._note("Pull request #%s head is %s (%s)", pr.number, pr.head_sha[:12], pr.head_ref)

    def fetch(self, reference: Reference, dest: Path) -> Path:
        """
        Clone `reference` into `dest` (which must not exist yet) and check out
        its revision selector. Returns the working copy path.
        """
        dest = Path(dest)
        url = self._clone_url(reference)
        env = self._git_env()
        self._note("Cloning %s into %s...", reference, dest)

        try:
            if reference.branch is not None:
                Repo.clone_from(url, dest, env=env, branch=reference.branch, depth=1)
            elif reference.ref is not None:
                repo = Repo.clone_from(url, dest, env=env)
                repo.git.checkout(reference.ref)
            elif reference.pull is not None:
                self._check_pull_request(reference, reference.pull)
                repo = Repo.clone_from(url, dest, env=env)
                local = f"ghinstall-pr-{reference.pull}"
                repo.remote("origin").fetch(f"pull/{reference.pull}/head:{local}")
                repo.git.checkout(local)
            else:
                Repo.clone_from(url, dest, env=env, depth=1)
        except GitCommandError as e:
            raise FetchError(reference, self._redact(str(e))) from None

        return dest
