"""
Reference rewriter for imagebump.

Pure function from (manifest, repository, tag) to (manifest', result).
No I/O happens here, which keeps the rewrite unit-testable without a
registry, cluster or git remote.
"""

from dataclasses import replace
from typing import List, Tuple

from ..domain.manifest import ImageField, ManifestDocument, UpdateResult


def rewrite(doc: ManifestDocument, repository: str, new_tag: str) -> Tuple[ManifestDocument, UpdateResult]:
    """
    Point every reference to `repository` in `doc` at `new_tag`.

    Matching is exact on the repository: updating `app` leaves
    `app-worker` alone. A reference without a tag gets `:new_tag`
    appended. A reference pinned by digest loses the digest, since the
    digest would otherwise keep winning over the tag.

    "No match" is a normal outcome (`changed=False, occurrences=0`), and so
    is re-running an update that is already applied (`changed=False` with
    the same occurrence count).

    Args:
        doc: Loaded manifest
        repository: Image repository to update, matched exactly
        new_tag: Tag to point it at

    Returns:
        Tuple of (possibly rewritten document, UpdateResult)
    """
    matches = doc.references(repository)
    if not matches:
        return doc, UpdateResult(changed=False, previous_tag=None, occurrences=0, path=doc.path)

    pieces: List[str] = []
    fields: List[ImageField] = []
    previous_tag = None
    changed = False
    cursor = 0
    shift = 0

    for field in doc.fields:
        if not field.reference.matches(repository):
            fields.append(_moved(field, shift))
            continue

        original = doc.text[field.start:field.end]
        replacement = field.replacement(new_tag)
        if replacement != original:
            if not changed:
                previous_tag = field.reference.tag
            changed = True

        pieces.append(doc.text[cursor:field.start])
        pieces.append(replacement)
        cursor = field.end

        new_start = field.start + shift
        shift += len(replacement) - len(original)
        fields.append(field.retagged(new_tag, new_start, field.end + shift))

    if not changed:
        return doc, UpdateResult(
            changed=False,
            previous_tag=matches[0].reference.tag,
            occurrences=len(matches),
            path=doc.path,
        )

    pieces.append(doc.text[cursor:])
    updated = doc.with_text("".join(pieces), tuple(fields))
    return updated, UpdateResult(
        changed=True,
        previous_tag=previous_tag,
        occurrences=len(matches),
        path=doc.path,
    )


def _moved(field: ImageField, shift: int) -> ImageField:
    if not shift:
        return field
    return replace(field, start=field.start + shift, end=field.end + shift)
