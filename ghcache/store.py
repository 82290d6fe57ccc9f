"""
Persistent metadata for cached repositories.

Records live in YAML files at up to two locations:

    global:  ~/.config/ghcache/metadata.yaml
    project: <project>/.ghcache/metadata.yaml   (optional)

``load()`` merges both, project records replacing global ones with the same key.
The store keeps no in-memory copy: every mutation re-reads the files, applies
the change and writes the whole collection back. Writes go through a temporary
file and ``os.replace`` under an advisory file lock, so a reader sees either the
previous or the new version of a file.

Deleting either file resets the cache metadata; a missing or unreadable file
is read as an empty collection.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import yaml
from filelock import FileLock
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ghcache.config import get_global_metadata_path, get_project_metadata_path
from ghcache.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    """Metadata for one cached clone."""

    key: str = Field(..., description="Canonical owner/repo")
    source_url: str = Field(..., description="HTTPS clone URL")
    local_path: str = Field(..., description="Directory holding the clone")
    created_at: datetime = Field(..., description="Time of the successful clone")
    last_accessed_at: datetime = Field(..., description="Last cache hit, drives LRU")
    size_bytes: Optional[int] = Field(None, description="Disk usage, advisory only")

    @field_validator("created_at", "last_accessed_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        # Hand-edited files may carry naive timestamps; those are taken as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def validate_timestamps(self) -> "CacheEntry":
        if self.last_accessed_at < self.created_at:
            raise ValueError(
                f"last_accessed_at ({self.last_accessed_at.isoformat()}) is earlier "
                f"than created_at ({self.created_at.isoformat()})"
            )
        return self

    @property
    def path(self) -> Path:
        return Path(self.local_path)

    def touched(self, when: datetime) -> "CacheEntry":
        """Copy of this entry accessed at ``when`` (never earlier than its creation)."""
        return self.model_copy(update={"last_accessed_at": max(when, self.created_at)})


class StoreScope(str, Enum):
    GLOBAL = "global"
    PROJECT = "project"


class MetadataStore:
    """Read-modify-write store of CacheEntry records keyed by ``key``."""

    def __init__(
        self,
        global_path: Optional[Path] = None,
        project_path: Optional[Path] = None,
    ):
        """
        Args:
            global_path: Global metadata file (defaults to the XDG config location)
            project_path: Optional project-scoped metadata file overriding global records
        """
        self.global_path = Path(global_path or get_global_metadata_path())
        self.project_path = Path(project_path) if project_path else None
        self._locks: Dict[Path, FileLock] = {}

    @classmethod
    def for_project(
        cls, project_dir: Path, global_path: Optional[Path] = None
    ) -> "MetadataStore":
        return cls(global_path, get_project_metadata_path(project_dir))

    def path_for(self, scope: StoreScope = StoreScope.GLOBAL) -> Path:
        """File backing ``scope``; the project scope falls back to global when unset."""
        if scope == StoreScope.PROJECT and self.project_path is not None:
            return self.project_path
        return self.global_path

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _load_from_path(self, path: Path) -> List[CacheEntry]:
        if not path.exists():
            return []

        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load cache metadata from {path}: {e}")
            return []

        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning(
                f"Ignoring cache metadata in {path}: expected a list of records, "
                f"got {type(data).__name__}"
            )
            return []

        entries: Dict[str, CacheEntry] = {}
        for index, record in enumerate(data):
            try:
                entry = CacheEntry.model_validate(record)
            except ValidationError as e:
                logger.warning(f"Skipping malformed record {index} in {path}: {e}")
                continue
            entries[entry.key] = entry
        return list(entries.values())

    def load(self) -> List[CacheEntry]:
        """
        Load all records, project scope overriding global scope by key.

        Returns:
            Merged entries in file order (global first, then project-only keys)
        """
        merged: Dict[str, CacheEntry] = {
            entry.key: entry for entry in self._load_from_path(self.global_path)
        }
        if self.project_path is not None:
            for entry in self._load_from_path(self.project_path):
                merged[entry.key] = entry
        return list(merged.values())

    def find_by_key(self, key: str) -> Optional[CacheEntry]:
        for entry in self.load():
            if entry.key == key:
                return entry
        return None

    def scope_of(self, key: str) -> Optional[StoreScope]:
        """Scope whose record for ``key`` wins the merge, or None if there is none."""
        if self.project_path is not None:
            if any(e.key == key for e in self._load_from_path(self.project_path)):
                return StoreScope.PROJECT
        if any(e.key == key for e in self._load_from_path(self.global_path)):
            return StoreScope.GLOBAL
        return None

    def sorted_by_recency(self) -> List[CacheEntry]:
        """All entries, least recently accessed first. Ties keep load order."""
        return sorted(self.load(), key=lambda entry: entry.last_accessed_at)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, scope: StoreScope) -> Iterator[Path]:
        path = self.path_for(scope)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(path, e) from e

        lock = self._locks.get(path)
        if lock is None:
            lock = FileLock(str(path) + ".lock")
            self._locks[path] = lock
        with lock:
            yield path

    def save(
        self, entries: List[CacheEntry], scope: StoreScope = StoreScope.GLOBAL
    ) -> None:
        """
        Replace the contents of ``scope``'s file with ``entries``.

        Raises:
            StoreUnavailableError: If the directory or file cannot be written
        """
        with self._locked(scope) as path:
            records = [entry.model_dump(mode="json") for entry in entries]
            tmp_name = None
            try:
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=path.parent,
                    prefix=f".{path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    yaml.safe_dump(records, tmp, sort_keys=False, default_flow_style=False)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, path)
            except OSError as e:
                if tmp_name and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise StoreUnavailableError(path, e) from e

        logger.debug(f"Wrote {len(entries)} cache record(s) to {path}")

    def upsert(self, entry: CacheEntry, scope: StoreScope = StoreScope.GLOBAL) -> None:
        """Replace the record sharing ``entry.key``, or append it."""
        with self._locked(scope):
            entries = self.load()
            for index, existing in enumerate(entries):
                if existing.key == entry.key:
                    entries[index] = entry
                    break
            else:
                entries.append(entry)
            self.save(entries, scope)

    def remove(self, key: str, scope: StoreScope = StoreScope.GLOBAL) -> None:
        with self._locked(scope):
            entries = [entry for entry in self.load() if entry.key != key]
            self.save(entries, scope)
