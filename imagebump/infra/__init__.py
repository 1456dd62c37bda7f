"""
Infrastructure layer for imagebump.

Contains abstractions for external systems:
- GitClient: Git command execution
- ManifestStore: YAML manifest loading and atomic persistence
- RegistryClient: Container registry API access (tag existence)

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient, PushRejected
from .manifest_store import ManifestStore, locate_fields, write_atomic
from .registry_client import RegistryClient

__all__ = [
    'GitClient',
    'PushRejected',
    'ManifestStore',
    'locate_fields',
    'write_atomic',
    'RegistryClient',
]
