"""
Domain layer for imagebump.

Contains pure domain objects with no I/O or side effects:
- ImageReference: A `repository[:tag][@digest]` image reference
- ManifestDocument: A manifest's text and the image fields found in it
- UpdateRequest / UpdateResult / UpdateSummary: What to change and what changed
- CommitRef: A commit accepted by the remote

These objects are immutable where possible and provide
serialization methods for JSONL output.
"""

from .reference import ImageReference, is_valid_tag, is_valid_repository
from .manifest import (
    CommitRef,
    FieldKind,
    ImageField,
    ManifestDocument,
    ScalarStyle,
    UpdateRequest,
    UpdateResult,
    UpdateSummary,
)

__all__ = [
    'ImageReference',
    'is_valid_tag',
    'is_valid_repository',
    'CommitRef',
    'FieldKind',
    'ImageField',
    'ManifestDocument',
    'ScalarStyle',
    'UpdateRequest',
    'UpdateResult',
    'UpdateSummary',
]
