"""
Parsing of GitHub repository references into a canonical ``owner/repo`` identity.

Examples:
    https://github.com/user/repo.git -> user/repo, https://github.com/user/repo.git
    git@github.com:user/repo.git     -> user/repo, https://github.com/user/repo.git
    user/repo                        -> user/repo, https://github.com/user/repo.git
"""

import re
from dataclasses import dataclass
from typing import Optional

GITHUB_HOST = "github.com"

SUPPORTED_FORMATS = (
    "https://github.com/owner/repo",
    "git@github.com:owner/repo.git",
    "owner/repo",
)

# Tried in order, first match wins
_HTTPS_PATTERN = re.compile(r"^https?://github\.com/([^/]+)/(.+?)(\.git)?$")
_SSH_PATTERN = re.compile(r"^git@github\.com:([^/]+)/(.+?)(\.git)?$")
_SHORTHAND_PATTERN = re.compile(r"^([A-Za-z0-9_-]+)/([A-Za-z0-9._-]+)$")

# GitHub rules: alphanumeric with inner hyphens, at most 39 characters
_OWNER_NAME = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,37}[A-Za-z0-9])?$")
_REPO_NAME = re.compile(r"^[A-Za-z0-9._-]+$")

# Path components that would escape a clone directory
_RESERVED_REPO_NAMES = frozenset({".", ".."})


@dataclass(frozen=True)
class ParsedRepoUrl:
    """Canonical identity of a GitHub repository."""

    owner: str
    repo: str

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        return f"https://{GITHUB_HOST}/{self.owner}/{self.repo}.git"


def parse_repo_url(reference: str) -> Optional[ParsedRepoUrl]:
    """
    Parse a repository reference in any supported format.

    Names are returned as written (case is preserved); legality is checked
    separately by ``validate_repo_names``.

    Args:
        reference: Web URL, SSH remote or ``owner/repo`` shorthand

    Returns:
        The parsed identity, or None if the reference matches no supported format
    """
    trimmed = reference.strip()

    for pattern in (_HTTPS_PATTERN, _SSH_PATTERN, _SHORTHAND_PATTERN):
        match = pattern.match(trimmed)
        if match:
            return ParsedRepoUrl(owner=match.group(1), repo=match.group(2))

    return None


def validate_repo_names(owner: str, repo: str) -> bool:
    """Check owner and repository names against GitHub's naming rules."""
    if repo in _RESERVED_REPO_NAMES:
        return False
    return bool(_OWNER_NAME.fullmatch(owner)) and bool(_REPO_NAME.fullmatch(repo))


def format_supported() -> str:
    return "Supported formats:\n" + "\n".join(f"  - {f}" for f in SUPPORTED_FORMATS)
