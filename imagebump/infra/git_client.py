"""
Git client infrastructure for imagebump.

Every git invocation of the updater goes through GitClient, one
subprocess per call, never through a shell.

Failures are classified from git's stderr into the updater's error
taxonomy: credential rejection becomes AuthError, transport failure
becomes NetworkError, and a non-fast-forward push becomes PushRejected
so the publisher can refresh and retry.
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
import logging

from ..exit_codes import AuthError, ManifestIOError, NetworkError

logger = logging.getLogger(__name__)

AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "permission denied (publickey",
    "access denied",
    "the requested url returned error: 401",
    "the requested url returned error: 403",
    "terminal prompts disabled",
)

NETWORK_MARKERS = (
    "could not resolve host",
    "could not resolve hostname",
    "connection timed out",
    "operation timed out",
    "connection refused",
    "connection reset",
    "failed to connect",
    "network is unreachable",
    "unable to access",
    "the remote end hung up unexpectedly",
    "early eof",
    "could not read from remote repository",
)

REJECTED_MARKERS = (
    "[rejected]",
    "non-fast-forward",
    "fetch first",
    "updates were rejected",
    "stale info",
    "cannot lock ref",
    "failed to update ref",
)


class PushRejected(Exception):
    """The remote refused a push because it does not fast-forward."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


@dataclass
class GitResult:
    """Result of a git command."""
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def classify_failure(stderr: str) -> Optional[str]:
    """
    Classify a failed git command from its stderr.

    Returns:
        "auth", "rejected", "network", or None if unrecognized
    """
    text = stderr.lower()
    if any(marker in text for marker in AUTH_MARKERS):
        return "auth"
    if any(marker in text for marker in REJECTED_MARKERS):
        return "rejected"
    if any(marker in text for marker in NETWORK_MARKERS):
        return "network"
    return None


class GitClient:
    """
    Runs git in a work tree.

    Every command runs with a timeout and with terminal prompts disabled,
    so a missing credential fails fast instead of blocking.

    Example:
        client = GitClient(timeout=60)
        root = client.toplevel("deploy/")
        client.add(root, ["deploy/app.yaml"])
        client.commit(root, ["deploy/app.yaml"], "deploy: update app to v2")
        client.push(root, "origin", "main")
    """

    def __init__(
        self,
        timeout: int = 60,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None
    ):
        """
        Initialize GitClient.

        Args:
            timeout: Command timeout in seconds (default: 60)
            author_name: Commit author name (default: git's own config)
            author_email: Commit author email (default: git's own config)
        """
        self.timeout = timeout
        self.author_name = author_name
        self.author_email = author_email

    def _env(self):
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
        return env

    def _run(self, args: Sequence[str], cwd, network: bool = False) -> GitResult:
        """
        Run a git command.

        Args:
            args: Git arguments (e.g., ['status', '--porcelain'])
            cwd: Working directory
            network: The command talks to a remote; a timeout is a NetworkError

        Returns:
            GitResult (never raises for a non-zero exit)
        """
        cmd = ["git"] + list(args)
        logger.debug(f"Running: {' '.join(cmd)} (cwd={cwd})")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env()
            )
        except subprocess.TimeoutExpired as e:
            message = f"git {args[0]} timed out after {self.timeout}s"
            logger.warning(message)
            if network:
                raise NetworkError(message, path=str(cwd), cause=e) from e
            raise ManifestIOError(message, path=str(cwd), cause=e) from e
        except OSError as e:
            raise ManifestIOError(f"Cannot run git: {e}", path=str(cwd), cause=e) from e

        return GitResult(
            args=list(args),
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or ""
        )

    def _check(self, args: Sequence[str], cwd, network: bool = False) -> GitResult:
        """Run a git command and raise a classified error on failure."""
        result = self._run(args, cwd, network=network)
        if result.ok:
            return result

        detail = result.stderr.strip() or result.stdout.strip()
        message = f"git {args[0]} failed: {detail.splitlines()[-1] if detail else 'exit ' + str(result.returncode)}"
        kind = classify_failure(result.stderr + result.stdout)
        if kind == "auth":
            raise AuthError(message, path=str(cwd))
        if network and kind == "rejected":
            raise PushRejected(message, stderr=result.stderr)
        if network and kind == "network":
            raise NetworkError(message, path=str(cwd))
        raise ManifestIOError(message, path=str(cwd))

    def is_git_repo(self, path) -> bool:
        """Check if path is inside a git work tree."""
        result = self._run(["rev-parse", "--is-inside-work-tree"], cwd=path)
        return result.ok and result.stdout.strip() == "true"

    def toplevel(self, path) -> Path:
        """Return the root of the work tree containing path."""
        result = self._check(["rev-parse", "--show-toplevel"], cwd=path)
        return Path(result.stdout.strip())

    def head(self, path) -> str:
        """Return the commit sha HEAD points at."""
        return self._check(["rev-parse", "HEAD"], cwd=path).stdout.strip()

    def current_branch(self, path) -> Optional[str]:
        """Name of the checked-out branch (`HEAD` when detached)."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"], cwd=path)
        if result.ok and result.stdout.strip():
            return result.stdout.strip()
        return None

    def remote_url(self, path, remote: str = "origin") -> Optional[str]:
        """Get remote URL, or None if the remote is not configured."""
        result = self._run(["config", "--get", f"remote.{remote}.url"], cwd=path)
        if result.ok and result.stdout.strip():
            return result.stdout.strip()
        return None

    def checkout_paths(self, path, ref: str, paths: Sequence[str]) -> None:
        """Restore index and work tree copies of `paths` from `ref`."""
        self._check(["checkout", ref, "--"] + list(paths), cwd=path)

    def add(self, path, paths: Sequence[str]) -> None:
        """Stage exactly the given paths."""
        self._check(["add", "--"] + list(paths), cwd=path)

    def commit(self, path, paths: Sequence[str], message: str) -> str:
        """
        Commit only the given paths.

        Content staged for other paths is left out of the commit.

        Returns:
            The new commit sha
        """
        args = []
        if self.author_name:
            args += ["-c", f"user.name={self.author_name}"]
        if self.author_email:
            args += ["-c", f"user.email={self.author_email}"]
        args += ["commit", "--no-verify", "-m", message, "--"] + list(paths)
        self._check(args, cwd=path)
        return self.head(path)

    def push(self, path, remote: str, branch: str) -> None:
        """
        Push HEAD to remote/branch. Never forces.

        Raises:
            PushRejected: remote has commits we do not (non-fast-forward)
            AuthError: credentials rejected
            NetworkError: transport failure
        """
        self._check(["push", remote, f"HEAD:refs/heads/{branch}"], cwd=path, network=True)

    def fetch(self, path, remote: str, branch: str) -> str:
        """
        Fetch remote/branch.

        Returns:
            The fetched commit sha
        """
        self._check(["fetch", "--no-tags", remote, f"refs/heads/{branch}"], cwd=path, network=True)
        return self._check(["rev-parse", "FETCH_HEAD"], cwd=path).stdout.strip()

    def reset_keep(self, path, ref: str) -> None:
        """
        Move the current branch to `ref`, updating files that differ.

        Unlike a hard reset this refuses to discard uncommitted changes
        to files that would be touched.
        """
        self._check(["reset", "--keep", ref], cwd=path)
