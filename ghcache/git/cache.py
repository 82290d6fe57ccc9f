"""
Bounded cache of shallow GitHub clones.

Cache Structure Example:
    ~/.cache/ghcache/repos/
    ├── facebook/
    │   └── react/          # shallow clone
    │       ├── .git/
    │       └── ...
    └── octocat/
        └── Hello-World/

Each clone has one CacheEntry in the MetadataStore. An entry exists exactly
when its directory is expected to hold a usable clone: entries and directories
are created together after a successful clone and removed together on
eviction. When they diverge (directory deleted by hand, interrupted clone)
the entry is dropped and the repository cloned again.

Eviction:
    - LRU: before every clone, the least recently accessed entries are removed
      so that the new clone keeps the count within ``max_cloned_repos``.
    - Staleness: ``evict_stale`` removes entries not accessed within a given
      age. Nothing schedules it; the host calls it when idle.

Usage:
    cache = RepoCache(load_cache_config())
    path = cache.acquire("facebook/react")
    cache.evict_stale(7)

Thread Safety:
    Overlapping ``acquire`` calls for the same repository within one process
    are serialized by a per-key lock: the second caller finds the first
    caller's clone and does not fetch again. Different processes sharing the
    same cache directory are not coordinated.
"""

import logging
import shutil
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from returns.result import Failure

from ghcache.config import DEFAULT_CONFIG, CacheConfig
from ghcache.exceptions import (
    DeletionFailedError,
    FetchFailedError,
    InvalidReferenceError,
    StoreUnavailableError,
)
from ghcache.git.fetch import Fetcher, default_fetcher
from ghcache.git.url import (
    ParsedRepoUrl,
    format_supported,
    parse_repo_url,
    validate_repo_names,
)
from ghcache.store import CacheEntry, MetadataStore, StoreScope, utcnow
from ghcache.utils import directory_size

logger = logging.getLogger(__name__)


def resolve_reference(reference: str) -> ParsedRepoUrl:
    """
    Parse and validate a repository reference.

    Raises:
        InvalidReferenceError: If the reference is unparseable or names are illegal
    """
    parsed = parse_repo_url(reference)
    if parsed is None:
        raise InvalidReferenceError(
            reference, f"Invalid GitHub URL: {reference}\n{format_supported()}"
        )

    if not validate_repo_names(parsed.owner, parsed.repo):
        raise InvalidReferenceError(
            reference, f"Invalid GitHub owner or repo name: {parsed.key}"
        )

    return parsed


def validate_clone(path: Path) -> bool:
    """
    Check that a clone directory is intact.

    A clone is intact when the directory exists, contains ``.git`` and holds at
    least one regular file next to it.
    """
    try:
        if not path.is_dir():
            return False
        if not (path / ".git").exists():
            return False
        return any(
            child.is_file() for child in path.iterdir() if child.name != ".git"
        )
    except OSError as e:
        logger.debug(f"Could not inspect clone at {path}: {e}")
        return False


class RepoCache:
    """Decides whether to reuse, clone, re-clone or evict cached repositories."""

    def __init__(
        self,
        config: CacheConfig = DEFAULT_CONFIG,
        store: Optional[MetadataStore] = None,
        fetcher: Optional[Fetcher] = None,
        scope: StoreScope = StoreScope.GLOBAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            config: Cache settings, read but never modified
            store: Metadata store (defaults to the global metadata file)
            fetcher: Clone backend (defaults to git, or dulwich without git)
            scope: Store scope new records are written to; refreshed records stay
                in the scope they were read from
            clock: Source of timezone-aware "now" timestamps
        """
        self.config = config
        self.store = store if store is not None else MetadataStore()
        self.fetcher = fetcher if fetcher is not None else default_fetcher()
        self.scope = scope
        self.clock = clock

        # One lock per repository key, see "Thread Safety" above.
        # Each lock is kept with the number of callers holding or waiting on it
        # and dropped once that number reaches zero.
        self._key_locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self._key_locks_lock = threading.Lock()

    @contextmanager
    def _locked_key(self, key: str) -> Iterator[None]:
        with self._key_locks_lock:
            lock, users = self._key_locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._key_locks[key] = (lock, users + 1)

        try:
            with lock:
                yield
        finally:
            with self._key_locks_lock:
                lock, users = self._key_locks[key]
                if users == 1:
                    del self._key_locks[key]
                else:
                    self._key_locks[key] = (lock, users - 1)

    def target_path(self, parsed: ParsedRepoUrl) -> Path:
        """
        Directory a clone of ``parsed`` lives in.

        Raises:
            InvalidReferenceError: If the path would not lie at <clone_directory>/owner/repo
        """
        root = Path(self.config.clone_directory)
        target = root / parsed.owner / parsed.repo
        # Exactly two levels below the root, so "." or ".." can never name it
        if target.resolve().parent.parent != root.resolve():
            raise InvalidReferenceError(
                parsed.key,
                f"Repository {parsed.key} resolves outside the clone directory {root}",
            )
        return target

    def _refresh(self, entry: CacheEntry) -> CacheEntry:
        # Write to the file the winning record came from, otherwise the
        # project copy would keep shadowing the refreshed one
        scope = self.store.scope_of(entry.key) or self.scope
        entry = entry.touched(self.clock())
        self.store.upsert(entry, scope)
        return entry

    # ------------------------------------------------------------------
    # Acquire
    # ------------------------------------------------------------------

    def acquire(self, reference: str) -> Path:
        """
        Return the local path of a clone of ``reference``, cloning it if needed.

        Args:
            reference: Web URL, SSH remote or ``owner/repo`` shorthand

        Returns:
            Path to the cached clone

        Raises:
            InvalidReferenceError: If the reference is not a valid GitHub repository
            FetchFailedError: If cloning fails (no partial clone is left behind)
            DeletionFailedError: If an invalid, evicted or partial clone cannot be removed
            StoreUnavailableError: If the metadata cannot be written
        """
        parsed = resolve_reference(reference)
        self.target_path(parsed)

        with self._locked_key(parsed.key):
            existing = self.store.find_by_key(parsed.key)
            if existing is not None:
                if validate_clone(existing.path):
                    logger.debug(f"Cache hit for {parsed.key} at {existing.path}")
                    self._refresh(existing)
                    return existing.path

                logger.warning(f"Invalid clone detected for {parsed.key}, re-cloning...")
                self._delete(parsed.key)

            self.ensure_capacity()
            return self._clone(parsed)

    def _clone(self, parsed: ParsedRepoUrl) -> Path:
        target = self.target_path(parsed)

        # A directory without a record is left over from an interrupted run
        if target.exists():
            logger.warning(f"Removing untracked directory {target} before cloning")
            self._remove_tree(parsed.key, target)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FetchFailedError(parsed.key, parsed.url, e) from e

        logger.info(f"Cloning {parsed.key} to {target}...")
        result = self.fetcher.shallow_clone(parsed.url, target, self.config.clone_depth)

        if isinstance(result, Failure):
            cause = result.failure()
            logger.error(f"Failed to clone {parsed.key}: {cause}")
            try:
                raise FetchFailedError(parsed.key, parsed.url, cause) from cause
            finally:
                # A DeletionFailedError raised here keeps the fetch error in its chain
                self._discard_partial(parsed.key, target)

        now = self.clock()
        entry = CacheEntry(
            key=parsed.key,
            source_url=parsed.url,
            local_path=str(target),
            created_at=now,
            last_accessed_at=now,
            size_bytes=directory_size(target),
        )
        try:
            self.store.upsert(entry, self.scope)
        except StoreUnavailableError:
            # Without a record nobody would ever evict this clone
            self._discard_partial(parsed.key, target)
            raise

        logger.info(f"Successfully cloned {parsed.key}")
        return target

    def _discard_partial(self, key: str, target: Path) -> None:
        if target.exists():
            self._remove_tree(key, target)

    def touch(self, key: str) -> Optional[CacheEntry]:
        """Mark ``key`` as accessed now. Returns the updated entry, if any."""
        entry = self.store.find_by_key(key)
        if entry is None:
            return None
        return self._refresh(entry)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def ensure_capacity(self) -> List[str]:
        """Evict LRU entries so that one more clone stays within the limit."""
        count = len(self.store.load())
        limit = self.config.max_cloned_repos
        if count < limit:
            return []

        logger.info(f"Max repos ({limit}) reached, cleaning up oldest...")
        return self.evict_lru(count - limit + 1)

    def evict_lru(self, count: int = 1) -> List[str]:
        """
        Remove the ``count`` least recently accessed entries.

        Returns:
            Keys of the removed entries, oldest first
        """
        evicted = []
        for entry in self.store.sorted_by_recency()[: max(count, 0)]:
            logger.info(
                f"Removing LRU repo: {entry.key} "
                f"(last accessed: {entry.last_accessed_at.isoformat(timespec='seconds')})"
            )
            if self._delete(entry.key):
                evicted.append(entry.key)
        return evicted

    def evict_stale(self, max_age: Union[timedelta, float, int]) -> List[str]:
        """
        Remove every entry not accessed within ``max_age``.

        Args:
            max_age: A timedelta, or a number of days

        Returns:
            Keys of the removed entries
        """
        if not isinstance(max_age, timedelta):
            max_age = timedelta(days=max_age)
        cutoff = self.clock() - max_age

        stale = [e for e in self.store.load() if e.last_accessed_at < cutoff]
        if not stale:
            return []

        logger.info(
            f"Cleaning up {len(stale)} stale repo(s) (older than {max_age.days} days)..."
        )
        evicted = []
        for entry in stale:
            if self._delete(entry.key):
                evicted.append(entry.key)
        return evicted

    def delete(self, reference: str) -> bool:
        """
        Explicitly remove a cached repository.

        Returns:
            True if an entry was removed, False if it was not cached
        """
        parsed = resolve_reference(reference)
        with self._locked_key(parsed.key):
            return self._delete(parsed.key)

    def _delete(self, key: str) -> bool:
        entry = self.store.find_by_key(key)
        if entry is None:
            return False

        # Directory first: a record must never outlive its clone
        if entry.path.exists():
            self._remove_tree(key, entry.path)

        self.store.remove(key, StoreScope.GLOBAL)
        if self.store.project_path is not None:
            self.store.remove(key, StoreScope.PROJECT)

        logger.info(f"Deleted repo: {key}")
        return True

    @staticmethod
    def _remove_tree(key: str, path: Path) -> None:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.error(f"Failed to delete repo {key}: {e}")
            raise DeletionFailedError(key, path, e) from e

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def list_all(self) -> List[CacheEntry]:
        """All cached entries, in no particular order."""
        return self.store.load()
