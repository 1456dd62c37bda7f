"""
Manifest domain objects for imagebump.

Pure data: a loaded manifest, the image fields located in it, and the
request/result types of an update. No I/O happens here.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Iterable, List, Tuple

from ..exit_codes import InvalidRequestError
from .reference import ImageReference, is_valid_repository, is_valid_tag

# Plain scalars YAML 1.1 resolves to something other than a string
_NON_STRING_PLAIN = re.compile(
    r"^(?:[-+]?[0-9][0-9_]*(?:\.[0-9_]*)?(?:[eE][-+]?[0-9]+)?|[-+]?\.[0-9_]+|"
    r"y|Y|yes|Yes|YES|n|N|no|No|NO|true|True|TRUE|false|False|FALSE|"
    r"on|On|ON|off|Off|OFF|null|Null|NULL|~)$"
)


def format_key_path(key_path: Iterable[Any]) -> str:
    parts = []
    for key in key_path:
        if isinstance(key, int):
            parts.append(f"[{key}]")
        else:
            parts.append(f".{key}" if parts else str(key))
    return "".join(parts) or "<root>"


class ScalarStyle(Enum):
    """YAML quoting style of an image scalar, kept on rewrite."""
    PLAIN = ""
    SINGLE = "'"
    DOUBLE = '"'

    def quote(self, value: str) -> str:
        return f"{self.value}{value}{self.value}"


class FieldKind(Enum):
    """How the reference is spelled in the manifest."""
    STRING = "string"  # image: repo:tag
    TAG = "tag"        # image: {repository: repo, tag: tag}


@dataclass(frozen=True)
class ImageField:
    """
    One image reference located in a manifest.

    `start` and `end` are character offsets of the scalar (quotes
    included) in the manifest text. For TAG fields the span covers the
    `tag` scalar of the mapping only. A mapping with no `tag` entry gets
    an empty span and an `insertion` (the `tag: ` key text) written
    before the scalar.
    """
    key_path: Tuple[Any, ...]
    reference: ImageReference
    start: int
    end: int
    style: ScalarStyle = ScalarStyle.PLAIN
    kind: FieldKind = FieldKind.STRING
    document: int = 0
    insertion: Optional[str] = None

    @property
    def location(self) -> str:
        """Dotted key path, e.g. `spec.template.spec.containers[0].image`."""
        return format_key_path(self.key_path)

    def replacement(self, tag: str) -> str:
        """Text that replaces the scalar span when retagging to `tag`."""
        if self.kind == FieldKind.TAG:
            style = self.style
            if style == ScalarStyle.PLAIN and _NON_STRING_PLAIN.match(tag):
                # A bare 1.10 would load back as the float 1.1
                style = ScalarStyle.DOUBLE
            return (self.insertion or "") + style.quote(tag)
        return self.style.quote(self.reference.with_tag(tag).to_string())

    def retagged(self, tag: str, start: int, end: int) -> 'ImageField':
        """The field as it reads after its replacement was written at `start`..`end`."""
        return replace(
            self,
            reference=self.reference.with_tag(tag),
            start=start + len(self.insertion or ""),
            end=end,
            insertion=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document': self.document,
            'location': self.location,
            'repository': self.reference.repository,
            'tag': self.reference.tag,
            'digest': self.reference.digest,
            'kind': self.kind.value,
        }


@dataclass(frozen=True)
class ManifestDocument:
    """
    A manifest file as loaded from disk.

    `text` is the exact file content; serializing an unmodified document
    writes the same bytes back. `fields` are the image references found
    in every YAML document of the stream, in file order.
    """
    path: Path
    text: str
    fields: Tuple[ImageField, ...] = ()
    documents: int = 1

    def references(self, repository: Optional[str] = None) -> List[ImageField]:
        if repository is None:
            return list(self.fields)
        return [f for f in self.fields if f.reference.matches(repository)]

    def with_text(self, text: str, fields: Tuple[ImageField, ...]) -> 'ManifestDocument':
        return replace(self, text=text, fields=fields)


@dataclass(frozen=True)
class UpdateRequest:
    """A request to point `repository` at `new_tag` in some manifests."""
    manifest_paths: Tuple[Path, ...]
    repository: str
    new_tag: str

    def validate(self) -> None:
        """
        Check request preconditions.

        Raises:
            InvalidRequestError: empty repository, bad tag syntax or no manifests
        """
        if not is_valid_repository(self.repository):
            raise InvalidRequestError(
                f"Invalid repository name: {self.repository!r}",
                repository=self.repository, tag=self.new_tag,
            )
        if not is_valid_tag(self.new_tag):
            raise InvalidRequestError(
                f"Invalid tag {self.new_tag!r}: tags must match [A-Za-z0-9_][A-Za-z0-9_.-]{{0,127}}",
                repository=self.repository, tag=self.new_tag,
            )
        if not self.manifest_paths:
            raise InvalidRequestError(
                "No manifests given (use --manifest or set manifests.paths)",
                repository=self.repository, tag=self.new_tag,
            )


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of rewriting one manifest."""
    changed: bool = False
    previous_tag: Optional[str] = None
    occurrences: int = 0
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': str(self.path) if self.path else None,
            'changed': self.changed,
            'previous_tag': self.previous_tag,
            'occurrences': self.occurrences,
        }


@dataclass(frozen=True)
class CommitRef:
    """A commit accepted by the remote."""
    sha: str
    remote: str
    branch: str
    attempts: int = 1
    pushed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sha': self.sha,
            'remote': self.remote,
            'branch': self.branch,
            'attempts': self.attempts,
            'pushed': self.pushed,
        }


@dataclass
class UpdateSummary:
    """
    Summary of one updater invocation across all manifests.

    `commit` is set only when a commit was created; a no-op run has
    `changed == False` and no commit.
    """
    repository: str
    new_tag: str
    dry_run: bool = False
    results: List[UpdateResult] = field(default_factory=list)
    commit: Optional[CommitRef] = None
    diff: str = ""

    @property
    def changed(self) -> bool:
        return any(r.changed for r in self.results)

    @property
    def occurrences(self) -> int:
        return sum(r.occurrences for r in self.results)

    @property
    def previous_tag(self) -> Optional[str]:
        for result in self.results:
            if result.changed and result.previous_tag:
                return result.previous_tag
        return None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'type': 'summary',
            'repository': self.repository,
            'tag': self.new_tag,
            'changed': self.changed,
            'previous_tag': self.previous_tag,
            'occurrences': self.occurrences,
            'manifests': len(self.results),
            'dry_run': self.dry_run,
        }
        if self.commit:
            result['commit'] = self.commit.to_dict()
        return result
