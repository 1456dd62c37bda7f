"""
imagebump - Point deployment manifests at a new container image tag.

Given an image repository and a new tag, imagebump finds every reference
to that repository in YAML deployment manifests, rewrites only the tag,
writes the file atomically, and commits and pushes the change so a GitOps
controller watching the branch rolls it out.

Quick Start:
    from pathlib import Path
    import imagebump

    config = imagebump.load_config()
    service = imagebump.UpdateService(config)
    request = imagebump.UpdateRequest(
        manifest_paths=(Path("deploy/app.yaml"),),
        repository="ghcr.io/acme/app",
        new_tag="v1.4.2",
    )
    summary = service.update(request)
    print(summary.changed, summary.occurrences)

Pure rewrite (no I/O):
    doc = imagebump.ManifestStore().load(Path("deploy/app.yaml"))
    updated, result = imagebump.rewrite(doc, "ghcr.io/acme/app", "v1.4.2")

Domain Objects:
    ImageReference - repository[:tag][@digest]
    ManifestDocument - Manifest text plus located image fields
    UpdateRequest / UpdateResult / UpdateSummary / CommitRef

Errors (see imagebump.exit_codes):
    NotFoundError, ParseError, ManifestPermissionError, ManifestIOError,
    AuthError, NetworkError, ConflictError, ConfigError
"""

__version__ = "0.3.0"

# Domain objects
from .domain import (
    ImageReference,
    ManifestDocument,
    UpdateRequest,
    UpdateResult,
    UpdateSummary,
    CommitRef,
)

# Infrastructure
from .infra import GitClient, ManifestStore, RegistryClient

# Services
from .services import rewrite, ChangePublisher, UpdateService

# Errors
from .exit_codes import (
    UpdaterError,
    InvalidRequestError,
    NotFoundError,
    ParseError,
    ManifestPermissionError,
    ManifestIOError,
    AuthError,
    NetworkError,
    ConflictError,
    ConfigError,
)

# Configuration
from .config import load_config

__all__ = [
    "__version__",
    # Domain objects
    "ImageReference",
    "ManifestDocument",
    "UpdateRequest",
    "UpdateResult",
    "UpdateSummary",
    "CommitRef",
    # Infrastructure
    "GitClient",
    "ManifestStore",
    "RegistryClient",
    # Services
    "rewrite",
    "ChangePublisher",
    "UpdateService",
    # Errors
    "UpdaterError",
    "InvalidRequestError",
    "NotFoundError",
    "ParseError",
    "ManifestPermissionError",
    "ManifestIOError",
    "AuthError",
    "NetworkError",
    "ConflictError",
    "ConfigError",
    # Configuration
    "load_config",
]
