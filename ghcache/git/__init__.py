"""
Git operations for ghcache.

Architecture:
    - url:   reference parsing and name validation (owner/repo identity)
    - fetch: shallow clone backends (git binary or dulwich)
    - cache: the bounded LRU cache deciding when to clone, reuse or evict
"""

from .cache import RepoCache, resolve_reference, validate_clone
from .fetch import DulwichFetcher, Fetcher, GitCliFetcher, default_fetcher
from .url import (
    SUPPORTED_FORMATS,
    ParsedRepoUrl,
    parse_repo_url,
    validate_repo_names,
)

__all__ = [
    "RepoCache",
    "resolve_reference",
    "validate_clone",
    "DulwichFetcher",
    "Fetcher",
    "GitCliFetcher",
    "default_fetcher",
    "SUPPORTED_FORMATS",
    "ParsedRepoUrl",
    "parse_repo_url",
    "validate_repo_names",
]
