import io
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from dulwich import porcelain
from returns.result import Failure, Success

from ghcache.config import merge_config
from ghcache.git.cache import RepoCache
from ghcache.store import MetadataStore


@pytest.fixture
def capture_logs():
    """Fixture to capture log output during tests."""
    log_stream = io.StringIO()
    handler = logging.StreamHandler(log_stream)
    logger = logging.getLogger("ghcache")
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield log_stream  # Yield the stream to the test function

    # Cleanup after the test
    logger.removeHandler(handler)
    logger.setLevel(previous_level)
    log_stream.close()


class FakeClock:
    """Deterministic replacement for ``utcnow``."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeFetcher:
    """Records clone requests and fakes their outcome without network access.

    On success the target gets a ``.git`` directory and a README file, which is
    what a real shallow clone leaves behind as far as the cache is concerned.
    """

    def __init__(self):
        self.calls = []
        self.fail_with = None
        self.leave_partial = False

    def shallow_clone(self, url: str, path: Path, depth: int):
        self.calls.append((url, path, depth))
        if self.fail_with is not None:
            if self.leave_partial:
                (path / ".git").mkdir(parents=True, exist_ok=True)
            return Failure(self.fail_with)

        (path / ".git").mkdir(parents=True, exist_ok=True)
        (path / "README.md").write_text(f"# {url}\n")
        return Success(path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def store(tmp_path):
    return MetadataStore(global_path=tmp_path / "config" / "metadata.yaml")


@pytest.fixture
def make_cache(tmp_path, store, fetcher, clock):
    """Factory for a RepoCache rooted in tmp_path with fake fetcher and clock."""

    def _make(**overrides):
        options = {"cloneDirectory": str(tmp_path / "repos")}
        options.update(overrides)
        return RepoCache(merge_config(options), store, fetcher, clock=clock)

    return _make


@pytest.fixture
def local_git_repo(tmp_path):
    """Create a minimal local git repo with a commit."""
    repo_dir = tmp_path / "myrepo"
    repo_dir.mkdir()
    porcelain.init(str(repo_dir))
    (repo_dir / "hello.txt").write_text("hello")
    porcelain.add(str(repo_dir), paths=[str(repo_dir / "hello.txt")])
    porcelain.commit(
        str(repo_dir),
        message=b"initial commit",
        author=b"Test <test@test>",
        committer=b"Test <test@test>",
    )
    return repo_dir
