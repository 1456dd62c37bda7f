"""
Change publisher for imagebump.

Commits rewritten manifests and pushes them to a single remote branch
with optimistic concurrency: attempt the push, and when a concurrent
update got there first, fetch, move onto the new upstream, let the caller
redo the rewrite against the fresh manifests, and push again.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, TypeVar

from ..domain.manifest import CommitRef
from ..exit_codes import ConflictError, NetworkError
from ..infra.git_client import GitClient, PushRejected

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PendingChange:
    """Files to commit and the message to commit them with."""
    paths: Sequence[str]
    message: str


# Called after moving onto a fresh upstream. Returns the change to commit,
# or None if upstream already has the requested state.
RefreshCallback = Callable[[], Optional[PendingChange]]


class ChangePublisher:
    """
    Commit and push manifest changes.

    Example:
        publisher = ChangePublisher(GitClient(), remote="origin", branch="main")
        ref = publisher.publish(root, PendingChange(["deploy/app.yaml"], msg), refresh)
        print(ref.sha, ref.attempts)
    """

    def __init__(
        self,
        git: GitClient,
        remote: str = "origin",
        branch: str = "main",
        max_attempts: int = 3,
        network_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        push: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize ChangePublisher.

        Args:
            git: GitClient used for every git call
            remote: Remote to push to
            branch: Branch on the remote
            max_attempts: Push attempts before giving up with ConflictError
            network_retries: Retries of a single fetch/push on NetworkError
            base_delay: Base delay for exponential backoff
            max_delay: Maximum delay between retries
            push: If False, commit locally and stop
            sleep: Sleep function (injectable for tests)
        """
        self.git = git
        self.remote = remote
        self.branch = branch
        self.max_attempts = max(1, max_attempts)
        self.network_retries = max(0, network_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.push = push
        self._sleep = sleep

    def _with_network_retry(self, operation: str, func: Callable[[], T]) -> T:
        """Run func, retrying NetworkError with capped exponential backoff."""
        attempt = 0
        while True:
            try:
                return func()
            except NetworkError as e:
                if attempt >= self.network_retries:
                    raise
                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                logger.info(f"{operation} failed ({e.message}), retrying in {delay}s (attempt {attempt + 1})")
                self._sleep(delay)
                attempt += 1

    def publish(self, root: Path, change: PendingChange, refresh: RefreshCallback) -> CommitRef:
        """
        Commit `change` and push it to remote/branch.

        Args:
            root: Work tree root
            change: Paths (relative to root) and commit message
            refresh: Redo the rewrite after a rejected push

        Returns:
            CommitRef of the commit now at the tip of remote/branch

        Raises:
            ConflictError: push kept being rejected for max_attempts
            AuthError: credentials rejected
            NetworkError: transport failure after retries
            ManifestIOError: a local git step failed
        """
        attempt = 1
        while True:
            self.git.add(root, change.paths)
            sha = self.git.commit(root, change.paths, change.message)
            logger.info(f"Committed {sha[:12]}: {change.message.splitlines()[0]}")

            if not self.push:
                return CommitRef(sha=sha, remote=self.remote, branch=self.branch, attempts=attempt, pushed=False)

            try:
                self._with_network_retry("push", lambda: self.git.push(root, self.remote, self.branch))
                logger.info(f"Pushed {sha[:12]} to {self.remote}/{self.branch}")
                return CommitRef(sha=sha, remote=self.remote, branch=self.branch, attempts=attempt)
            except PushRejected as e:
                if attempt >= self.max_attempts:
                    raise ConflictError(
                        f"Push to {self.remote}/{self.branch} rejected {attempt} times; giving up",
                        attempts=attempt,
                        path=str(root),
                        cause=e,
                    ) from e
                logger.warning(f"Push rejected by {self.remote}/{self.branch}, refreshing (attempt {attempt})")

            attempt += 1
            upstream = self._with_network_retry("fetch", lambda: self.git.fetch(root, self.remote, self.branch))
            self.git.reset_keep(root, upstream)

            pending = refresh()
            if pending is None:
                logger.info(f"{self.remote}/{self.branch} already has the update at {upstream[:12]}")
                return CommitRef(sha=upstream, remote=self.remote, branch=self.branch, attempts=attempt)
            change = pending
