"""
Shallow clone backends.

A fetcher turns (url, target path, depth) into a populated working copy and
reports the outcome as a ``Result`` instead of raising, so the cache can decide
how to clean up and which error to surface:

    result = fetcher.shallow_clone(url, path, depth=1)
    if isinstance(result, Failure):
        ...  # result.failure() is the underlying exception

Two backends are provided:
    - GitCliFetcher: shells out to the ``git`` binary (default when on PATH)
    - DulwichFetcher: pure-python clone via dulwich, for hosts without git
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from dulwich import porcelain
from returns.result import Failure, Result, Success

logger = logging.getLogger(__name__)

FetchResult = Result[Path, Exception]


class Fetcher(Protocol):
    """Anything able to shallow-clone a repository into a directory."""

    def shallow_clone(self, url: str, path: Path, depth: int) -> FetchResult:
        """Clone ``url`` into ``path`` keeping ``depth`` commits of history."""
        ...


def _check_clone(path: Path) -> FetchResult:
    # A backend may exit cleanly without producing a repository; never report that as success
    if not (path / ".git").exists():
        return Failure(RuntimeError(f"Clone did not produce a git repository at {path}"))
    return Success(path)


class GitCliFetcher:
    """Clone by running ``git clone --depth N``."""

    def __init__(self, git: str = "git", timeout: Optional[float] = None):
        """
        Args:
            git: git executable to run
            timeout: Seconds before the clone is aborted (None waits forever)
        """
        self.git = git
        self.timeout = timeout

    def shallow_clone(self, url: str, path: Path, depth: int) -> FetchResult:
        command = [
            self.git,
            "clone",
            "--depth",
            str(depth),
            "--single-branch",
            "--",
            url,
            str(path),
        ]
        env = dict(os.environ)
        # Never block on a credential prompt: private repositories fail instead
        env["GIT_TERMINAL_PROMPT"] = "0"

        logger.debug(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return Failure(
                TimeoutError(f"git clone of {url} timed out after {self.timeout}s")
            )
        except OSError as e:
            return Failure(e)

        if result.returncode != 0:
            return Failure(
                RuntimeError(
                    f"git clone exited with status {result.returncode}: "
                    f"{result.stderr.strip()}"
                )
            )

        return _check_clone(path)


class DulwichFetcher:
    """Clone in-process with dulwich."""

    def shallow_clone(self, url: str, path: Path, depth: int) -> FetchResult:
        try:
            repo = porcelain.clone(
                source=url,
                target=str(path),
                checkout=True,
                bare=False,
                depth=depth,
            )
            repo.close()
        except Exception as e:
            return Failure(e)

        return _check_clone(path)


def default_fetcher(timeout: Optional[float] = None) -> Fetcher:
    """Use the git binary when available, otherwise fall back to dulwich."""
    git = shutil.which("git")
    if git:
        return GitCliFetcher(git, timeout=timeout)
    logger.debug("git executable not found, cloning with dulwich")
    return DulwichFetcher()
