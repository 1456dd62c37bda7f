"""
Image reference domain object for imagebump.

An image reference is the `repository[:tag][@digest]` string found in
deployment manifests. The repository may carry a registry host with a
port (`registry.local:5000/team/app`), so the tag separator is the last
`:` that follows the last `/`.
"""

import re
from dataclasses import dataclass
from typing import Optional

TAG_PATTERN = re.compile(r'[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}')
DIGEST_PATTERN = re.compile(r'[A-Za-z][A-Za-z0-9]*(?:[+._-][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}')
REPOSITORY_PATTERN = re.compile(r'[A-Za-z0-9][A-Za-z0-9._/:-]*')


def is_valid_tag(tag: str) -> bool:
    """Check tag syntax: no path separators, no whitespace, at most 128 chars."""
    return bool(tag) and bool(TAG_PATTERN.fullmatch(tag))


def is_valid_repository(repository: str) -> bool:
    """Check that a repository name is non-empty and has no whitespace."""
    if not repository or not REPOSITORY_PATTERN.fullmatch(repository):
        return False
    return not repository.endswith(('/', ':'))


@dataclass(frozen=True)
class ImageReference:
    """
    A container image reference.

    Two references match on `repository` alone; the tag and digest are
    what gets rewritten.

    Example:
        ref = ImageReference.parse("ghcr.io/acme/app:v1")
        ref.repository  # "ghcr.io/acme/app"
        ref.with_tag("v2").to_string()  # "ghcr.io/acme/app:v2"
    """
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> Optional['ImageReference']:
        """
        Parse a reference string.

        Returns:
            ImageReference, or None if the string is not a valid reference
        """
        if not isinstance(value, str):
            return None
        value = value.strip()
        if not value or any(ch.isspace() for ch in value):
            return None

        digest = None
        if '@' in value:
            value, digest = value.split('@', 1)
            if not DIGEST_PATTERN.fullmatch(digest):
                return None

        tag = None
        colon = value.rfind(':')
        if colon > value.rfind('/'):
            value, tag = value[:colon], value[colon + 1:]
            if not is_valid_tag(tag):
                return None

        if not is_valid_repository(value):
            return None

        return cls(repository=value, tag=tag, digest=digest)

    def matches(self, repository: str) -> bool:
        """Exact repository match; `app` does not match `app-worker`."""
        return self.repository == repository

    def with_tag(self, tag: str) -> 'ImageReference':
        """Return a copy pointing at `tag`. A pinned digest is dropped."""
        return ImageReference(repository=self.repository, tag=tag)

    def to_string(self) -> str:
        result = self.repository
        if self.tag:
            result += f":{self.tag}"
        if self.digest:
            result += f"@{self.digest}"
        return result

    def __str__(self) -> str:
        return self.to_string()
