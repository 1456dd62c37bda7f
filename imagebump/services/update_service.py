"""
Update service for imagebump.

Sequences load -> rewrite -> persist -> publish as one logical
transaction. A no-op (nothing to change) writes and commits nothing. If
persisting or publishing fails, the local clone is put back the way it
was found: branch at its starting commit, manifests at their starting
text. Once a push is accepted the update is final.
"""

import difflib
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..domain.manifest import ManifestDocument, UpdateRequest, UpdateResult, UpdateSummary
from ..exit_codes import ConfigError, ManifestIOError, UpdaterError
from ..infra.git_client import GitClient
from ..infra.manifest_store import ManifestStore, write_atomic
from ..infra.registry_client import RegistryClient
from .publisher import ChangePublisher, PendingChange
from .rewriter import rewrite

logger = logging.getLogger(__name__)


@dataclass
class PlannedRewrite:
    """One manifest before and after the rewrite."""
    original: ManifestDocument
    updated: ManifestDocument
    result: UpdateResult


def commit_message(request: UpdateRequest, planned: List[PlannedRewrite], relpaths: Dict[Path, str]) -> str:
    """
    Deterministic commit message naming repository and tag.

    The subject line is greppable: `deploy: update <repository> to <tag>`.
    """
    lines = [f"deploy: update {request.repository} to {request.new_tag}", ""]
    for item in planned:
        if not item.result.changed:
            continue
        was = item.result.previous_tag or "untagged"
        lines.append(
            f"- {relpaths[item.original.path]}: {item.result.occurrences} occurrence(s), was {was}"
        )
    return "\n".join(lines) + "\n"


def unified_diff(planned: List[PlannedRewrite]) -> str:
    """Unified diff of every changed manifest."""
    chunks = []
    for item in planned:
        if not item.result.changed:
            continue
        chunks.extend(difflib.unified_diff(
            item.original.text.splitlines(keepends=True),
            item.updated.text.splitlines(keepends=True),
            fromfile=f"a/{item.original.path}",
            tofile=f"b/{item.original.path}",
        ))
    return "".join(chunks)


class UpdateService:
    """
    Point an image repository at a new tag across manifests.

    All settings come from the config dict passed in; nothing is read
    from the environment here.

    Example:
        service = UpdateService(config)
        request = UpdateRequest((Path("deploy/app.yaml"),), "ghcr.io/acme/app", "v2")
        summary = service.update(request)
        if summary.changed:
            print(summary.commit.sha)
    """

    def __init__(
        self,
        config: Dict[str, Any],
        git_client: Optional[GitClient] = None,
        store: Optional[ManifestStore] = None,
        registry: Optional[RegistryClient] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize UpdateService.

        Args:
            config: Configuration dict (see imagebump.config)
            git_client: GitClient instance (creates one from config if None)
            store: ManifestStore instance (creates one from config if None)
            registry: RegistryClient for --verify-registry (created on demand)
            sleep: Sleep function used between retries
        """
        self.config = config
        git_config = config['git']
        self.git = git_client or GitClient(
            timeout=git_config['timeout_seconds'],
            author_name=git_config.get('author_name') or None,
            author_email=git_config.get('author_email') or None,
        )
        self.store = store or ManifestStore(config['manifests']['image_keys'])
        self._registry = registry
        self._sleep = sleep

    @property
    def registry(self) -> RegistryClient:
        if self._registry is None:
            registry_config = self.config.get('registry', {})
            git_config = self.config['git']
            self._registry = RegistryClient(
                base_url=registry_config.get('url'),
                username=registry_config.get('username'),
                token=registry_config.get('token'),
                timeout=registry_config.get('timeout_seconds', 10),
                max_retries=git_config['network_retries'] + 1,
                base_delay=git_config['base_delay'],
                max_delay=git_config['max_delay'],
                sleep=self._sleep,
            )
        return self._registry

    def plan(self, request: UpdateRequest) -> List[PlannedRewrite]:
        """Load every manifest and rewrite it in memory. No writes."""
        planned = []
        for path in request.manifest_paths:
            original = self.store.load(Path(path))
            updated, result = rewrite(original, request.repository, request.new_tag)
            planned.append(PlannedRewrite(original=original, updated=updated, result=result))
            logger.debug(
                f"{path}: {result.occurrences} occurrence(s) of {request.repository}, "
                f"changed={result.changed}"
            )
        return planned

    def update(
        self,
        request: UpdateRequest,
        dry_run: bool = False,
        push: bool = True,
        verify_registry: bool = False
    ) -> UpdateSummary:
        """
        Apply the update and publish it.

        Args:
            request: What to update
            dry_run: Rewrite in memory and report a diff; write nothing
            push: Push the commit (False: commit locally only)
            verify_registry: Refuse tags the registry does not have

        Returns:
            UpdateSummary (summary.changed is False for a no-op)

        Raises:
            UpdaterError subclass describing the failure class
        """
        try:
            return self._update(request, dry_run, push, verify_registry)
        except UpdaterError as e:
            e.with_context(repository=request.repository, tag=request.new_tag)
            raise

    def _update(self, request, dry_run, push, verify_registry) -> UpdateSummary:
        request.validate()
        summary = UpdateSummary(repository=request.repository, new_tag=request.new_tag, dry_run=dry_run)

        planned = self.plan(request)
        summary.results = [item.result for item in planned]

        if not summary.changed:
            if summary.occurrences:
                logger.info(f"{request.repository} is already at {request.new_tag}; nothing to do")
            else:
                logger.info(f"No references to {request.repository} found; nothing to do")
            return summary

        if dry_run:
            summary.diff = unified_diff(planned)
            return summary

        if verify_registry:
            self.registry.verify(request.repository, request.new_tag)

        root, relpaths = self._work_tree(request.manifest_paths)
        git_config = self.config['git']
        remote = git_config['remote']
        branch = git_config.get('branch') or self.git.current_branch(root)
        if not branch or branch == 'HEAD':
            raise ManifestIOError("HEAD is detached; set git.branch or use --branch", path=str(root))
        if push and not self.git.remote_url(root, remote):
            raise ConfigError(f"Git remote '{remote}' is not configured in {root}", path=str(root))

        publisher = ChangePublisher(
            self.git,
            remote=remote,
            branch=branch,
            max_attempts=git_config['max_attempts'],
            network_retries=git_config['network_retries'],
            base_delay=git_config['base_delay'],
            max_delay=git_config['max_delay'],
            push=push,
            sleep=self._sleep,
        )

        start_head = self.git.head(root)
        originals = {item.original.path: item.original.text for item in planned}
        touched: List[Path] = []

        def apply(items: List[PlannedRewrite]) -> PendingChange:
            for item in items:
                if item.result.changed:
                    self.store.persist(item.original.path, item.updated)
                    if item.original.path not in touched:
                        touched.append(item.original.path)
            return PendingChange(
                paths=[relpaths[item.original.path] for item in items if item.result.changed],
                message=commit_message(request, items, relpaths),
            )

        def refresh() -> Optional[PendingChange]:
            fresh = self.plan(request)
            summary.results = [item.result for item in fresh]
            if not summary.changed:
                return None
            return apply(fresh)

        try:
            change = apply(planned)
            summary.commit = publisher.publish(root, change, refresh)
        except BaseException:
            self._rollback(root, start_head, originals, touched, relpaths)
            raise

        return summary

    def _work_tree(self, paths):
        """Find the git work tree holding every manifest."""
        first = Path(paths[0])
        parent = first.parent
        if not self.git.is_git_repo(parent):
            raise ManifestIOError(f"{first} is not inside a git work tree", path=str(first))
        root = self.git.toplevel(parent).resolve()

        relpaths: Dict[Path, str] = {}
        for path in paths:
            path = Path(path)
            rel = os.path.relpath(path.resolve(), root)
            if rel.startswith('..'):
                raise ManifestIOError(f"{path} is outside the work tree {root}", path=str(path))
            relpaths[path] = rel
        return root, relpaths

    def _rollback(self, root, start_head, originals, touched, relpaths) -> None:
        """Put the work tree back to the state it was found in."""
        if not touched:
            return
        logger.warning("Update failed; restoring manifests and branch")
        try:
            self.git.checkout_paths(root, "HEAD", [relpaths[path] for path in touched])
            if self.git.head(root) != start_head:
                self.git.reset_keep(root, start_head)
        except UpdaterError as e:
            logger.error(f"Could not reset branch to {start_head[:12]}: {e.message}")

        for path in touched:
            try:
                write_atomic(path, originals[path])
            except ManifestIOError as e:
                logger.error(f"Could not restore {path}: {e.message}")
