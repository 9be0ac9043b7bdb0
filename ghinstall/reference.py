"""
reference.py

Responsibility: Parse a shorthand repository string into a typed `Reference`.

Accepted shape: `owner/name` followed by any of these qualifiers, in any order:
- `[branch]`  branch name
- `@ref`      commit id or tag (resolved at fetch time)
- `#N`        pull request number
- `/subdir`   directory inside the repository holding the package

Qualifiers are stripped one pattern at a time until only `owner/name[/subdir]`
is left. At most one of branch / ref / pull request may be given.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_HOST = "github.com"

_BRANCH_RE = re.compile(r"\[([^\[\]]*)\]")
_PULL_RE = re.compile(r"#([^\[\]@#/]*)")
_REF_RE = re.compile(r"@([^\[\]@#/]*)")

_REMAINDER_RE = re.compile(r"^(?P<owner>[^/]+)/(?P<name>[^/]+)(?:/(?P<subdir>.*))?$")
_OWNER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]*$")
_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


class InvalidReferenceError(ValueError):
    pass


@dataclass(frozen=True)
class Reference:
    """A GitHub repository plus an optional revision selector and subdirectory."""

    owner: str
    name: str
    subdir: str | None = None
    branch: str | None = None
    ref: str | None = None
    pull: int | None = None
    host: str = DEFAULT_HOST

    def __post_init__(self) -> None:
        if not self.owner or not self.name:
            raise InvalidReferenceError("Reference requires a non-empty owner and name.")
        chosen = [k for k in ("branch", "ref", "pull") if getattr(self, k) is not None]
        if len(chosen) > 1:
            raise InvalidReferenceError(
                f"Conflicting revision selectors for {self.owner}/{self.name}: {', '.join(chosen)}"
            )
        if self.pull is not None and self.pull <= 0:
            raise InvalidReferenceError(f"Pull request number must be positive, got {self.pull}")

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def selector(self) -> tuple[str, str | int] | None:
        """Return `(kind, value)` for the revision selector, or None for the default branch."""
        if self.branch is not None:
            return ("branch", self.branch)
        if self.ref is not None:
            return ("ref", self.ref)
        if self.pull is not None:
            return ("pull", self.pull)
        return None

    def __str__(self) -> str:
        out = self.slug
        if self.branch is not None:
            out += f"[{self.branch}]"
        if self.ref is not None:
            out += f"@{self.ref}"
        if self.pull is not None:
            out += f"#{self.pull}"
        if self.subdir:
            out += f"/{self.subdir}"
        return out


def _take(pattern: re.Pattern[str], text: str, label: str, original: str) -> tuple[str | None, str]:
    """
    Strip a single qualifier matching `pattern` out of `text`.
    Returns (captured_value_or_none, remaining_text).
    """
    found = pattern.findall(text)
    if not found:
        return None, text
    if len(found) > 1:
        raise InvalidReferenceError(f"Invalid 'repo' string: {original!r} (more than one {label})")
    value = found[0].strip()
    if not value:
        raise InvalidReferenceError(f"Invalid 'repo' string: {original!r} (empty {label})")
    return value, pattern.sub("", text, count=1)


def parse_reference(value: str, host: str = DEFAULT_HOST) -> Reference:
    """
    Parse `value` into a `Reference`.

    Raises InvalidReferenceError when the string does not have the
    `owner/name` shape, when a qualifier is repeated or empty, or when more
    than one of branch / ref / pull request is given.
    """
    original = value
    text = value.strip()

    branch, text = _take(_BRANCH_RE, text, "branch", original)
    pull_raw, text = _take(_PULL_RE, text, "pull request", original)
    ref, text = _take(_REF_RE, text, "ref", original)
    text = text.strip()

    pull: int | None = None
    if pull_raw is not None:
        if not pull_raw.isdigit():
            raise InvalidReferenceError(
                f"Invalid 'repo' string: {original!r} (pull request must be a number, got {pull_raw!r})"
            )
        pull = int(pull_raw)

    m = _REMAINDER_RE.match(text)
    if m is None:
        raise InvalidReferenceError(f"Invalid 'repo' string: {original!r} (expected 'owner/name')")

    owner = m.group("owner")
    name = m.group("name")
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not _OWNER_RE.match(owner):
        raise InvalidReferenceError(f"Invalid 'repo' string: {original!r} (bad owner {owner!r})")
    if not _NAME_RE.match(name) or name in (".", ".."):
        raise InvalidReferenceError(f"Invalid 'repo' string: {original!r} (bad repository name {name!r})")

    subdir = (m.group("subdir") or "").strip("/") or None
    if subdir is not None and ".." in subdir.split("/"):
        raise InvalidReferenceError(f"Invalid 'repo' string: {original!r} (subdirectory may not contain '..')")

    return Reference(
        owner=owner,
        name=name,
        subdir=subdir,
        branch=branch,
        ref=ref,
        pull=pull,
        host=host or DEFAULT_HOST,
    )
