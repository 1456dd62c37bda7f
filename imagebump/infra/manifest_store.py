"""
Manifest store infrastructure for imagebump.

Loads YAML manifests and persists rewritten ones with:
- Multi-document streams (`---` separated)
- Byte-stable round trips (the original text is kept, never re-emitted)
- Atomic writes (write to temp, then rename)

Image fields are found by composing the YAML stream into nodes and
searching every mapping for the configured image keys, so no key path is
hard-coded. Node marks give the exact character span of each scalar,
which is what the rewriter splices.
"""

import errno
import os
import stat
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple
import logging

import yaml

from ..domain.manifest import FieldKind, ImageField, ManifestDocument, ScalarStyle, format_key_path
from ..domain.reference import ImageReference, is_valid_tag
from ..exit_codes import (
    ManifestIOError,
    ManifestPermissionError,
    NotFoundError,
    ParseError,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_KEYS = ("image",)

STR_TAG = "tag:yaml.org,2002:str"
NULL_TAG = "tag:yaml.org,2002:null"

_STYLES = {
    None: ScalarStyle.PLAIN,
    "'": ScalarStyle.SINGLE,
    '"': ScalarStyle.DOUBLE,
}


class _FieldLocator:
    """Walks composed YAML nodes collecting image fields of one document."""

    def __init__(self, text: str, path: Path, image_keys: Sequence[str], document: int):
        self.text = text
        self.path = path
        self.image_keys = set(image_keys)
        self.document = document
        self.fields: List[ImageField] = []
        self._seen = set()

    def _malformed(self, key_path, message: str, node: Optional[yaml.Node] = None) -> ParseError:
        where = format_key_path(key_path)
        if node is not None:
            mark = node.start_mark
            message = f"{message} at {where} (line {mark.line + 1}, column {mark.column + 1})"
        else:
            message = f"{message} at {where}"
        return ParseError(message, path=str(self.path))

    def _span(self, node: yaml.ScalarNode, key_path) -> Tuple[int, int, ScalarStyle]:
        """Locate the raw scalar text, skipping any tag or anchor prefix."""
        style = _STYLES.get(node.style)
        if style is None:
            raise self._malformed(key_path, "Block scalars are not supported for image fields", node)
        raw = style.quote(node.value)
        end = node.end_mark.index
        start = end - len(raw)
        if start < node.start_mark.index or self.text[start:end] != raw:
            raise self._malformed(key_path, "Image field must be a single-line scalar", node)
        return start, end, style

    def _add(self, field: ImageField) -> None:
        # Aliases hand back the same node; record each span once.
        if (field.start, field.end) in self._seen:
            return
        self._seen.add((field.start, field.end))
        self.fields.append(field)

    def walk(self, node: Optional[yaml.Node], key_path: Tuple[Any, ...] = ()) -> None:
        if isinstance(node, yaml.MappingNode):
            for key_node, value_node in node.value:
                key = key_node.value if isinstance(key_node, yaml.ScalarNode) else str(key_node.tag)
                child_path = key_path + (key,)
                if key in self.image_keys and isinstance(key_node, yaml.ScalarNode):
                    if self._image_value(value_node, child_path):
                        continue
                self.walk(value_node, child_path)
        elif isinstance(node, yaml.SequenceNode):
            for index, item in enumerate(node.value):
                self.walk(item, key_path + (index,))

    def _image_value(self, node: yaml.Node, key_path) -> bool:
        """Record an image field. Returns True if the node was consumed."""
        if isinstance(node, yaml.ScalarNode):
            if node.tag == NULL_TAG or not node.value.strip():
                raise self._malformed(key_path, "Empty image field", node)
            if node.tag != STR_TAG:
                raise self._malformed(key_path, f"Image field is not a string: {node.value!r}", node)
            reference = ImageReference.parse(node.value)
            if reference is None:
                raise self._malformed(key_path, f"Malformed image reference {node.value!r}", node)
            start, end, style = self._span(node, key_path)
            self._add(ImageField(
                key_path=key_path,
                reference=reference,
                start=start,
                end=end,
                style=style,
                kind=FieldKind.STRING,
                document=self.document,
            ))
            return True

        if isinstance(node, yaml.MappingNode):
            keys = {}
            entries = {}
            for k, v in node.value:
                if isinstance(k, yaml.ScalarNode):
                    keys[k.value] = k
                    entries[k.value] = v
            repo_node = entries.get("repository")
            if not isinstance(repo_node, yaml.ScalarNode):
                return False

            reference = ImageReference.parse(repo_node.value)
            if reference is None or reference.tag or reference.digest:
                raise self._malformed(key_path + ("repository",), f"Malformed image repository {repo_node.value!r}", repo_node)
            if "tag" not in entries:
                self._add(self._missing_tag(node, keys["repository"], repo_node, key_path, reference))
                return True

            tag_node = entries["tag"]
            if not isinstance(tag_node, yaml.ScalarNode):
                raise self._malformed(key_path + ("tag",), "Image tag must be a scalar", tag_node)
            if tag_node.tag == NULL_TAG:
                raise self._malformed(key_path + ("tag",), "Empty image tag", tag_node)
            tag = tag_node.value or None
            if tag is not None and not is_valid_tag(tag):
                raise self._malformed(key_path + ("tag",), f"Malformed image tag {tag!r}", tag_node)

            start, end, style = self._span(tag_node, key_path + ("tag",))
            self._add(ImageField(
                key_path=key_path + ("tag",),
                reference=ImageReference(repository=reference.repository, tag=tag),
                start=start,
                end=end,
                style=style,
                kind=FieldKind.TAG,
                document=self.document,
            ))
            return True

        return False

    def _missing_tag(self, node, key_node, repo_node, key_path, reference) -> ImageField:
        """Empty span where a `tag` entry goes in a mapping that has none.

        Flow mappings get `, tag: ...` after the repository; block mappings
        get a new line at the repository key's indentation.
        """
        if node.flow_style:
            at = repo_node.end_mark.index
            insertion = ", tag: "
        else:
            at = self.text.find("\n", repo_node.end_mark.index)
            newline = "\n"
            if at == -1:
                at = len(self.text)
            elif at > 0 and self.text[at - 1] == "\r":
                at -= 1
                newline = "\r\n"
            insertion = f"{newline}{' ' * key_node.start_mark.column}tag: "
        return ImageField(
            key_path=key_path + ("tag",),
            reference=ImageReference(repository=reference.repository),
            start=at,
            end=at,
            style=ScalarStyle.DOUBLE,
            kind=FieldKind.TAG,
            document=self.document,
            insertion=insertion,
        )


def locate_fields(text: str, path: Path, image_keys: Sequence[str] = DEFAULT_IMAGE_KEYS) -> Tuple[Tuple[ImageField, ...], int]:
    """
    Find every image field in a YAML stream.

    Returns:
        Tuple of (fields in file order, number of documents)

    Raises:
        ParseError: invalid YAML or a malformed image field
    """
    fields: List[ImageField] = []
    documents = 0
    try:
        for index, root in enumerate(yaml.compose_all(text, Loader=yaml.SafeLoader)):
            documents += 1
            locator = _FieldLocator(text, path, image_keys, index)
            locator.walk(root)
            fields.extend(locator.fields)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML: {e}", path=str(path), cause=e) from e

    fields.sort(key=lambda f: f.start)
    return tuple(fields), documents


class ManifestStore:
    """
    Load and persist manifests.

    Example:
        store = ManifestStore(image_keys=["image"])
        doc = store.load(Path("deploy/app.yaml"))
        for field in doc.fields:
            print(field.location, field.reference)
    """

    def __init__(self, image_keys: Optional[Sequence[str]] = None):
        """
        Initialize ManifestStore.

        Args:
            image_keys: Mapping keys whose values are image references
                        (default: ["image"])
        """
        self.image_keys = tuple(image_keys or DEFAULT_IMAGE_KEYS)

    def load(self, path: Path) -> ManifestDocument:
        """
        Load a manifest.

        Raises:
            NotFoundError: path does not exist or is not a file
            ManifestPermissionError: file is not readable
            ParseError: not UTF-8, not YAML, or a malformed image field
            ManifestIOError: any other read failure
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"Manifest not found: {path}", path=str(path), cause=e) from e
        except IsADirectoryError as e:
            raise NotFoundError(f"Manifest is a directory: {path}", path=str(path), cause=e) from e
        except PermissionError as e:
            raise ManifestPermissionError(f"Cannot read manifest: {path}", path=str(path), cause=e) from e
        except OSError as e:
            raise ManifestIOError(f"Cannot read manifest {path}: {e.strerror or e}", path=str(path), cause=e) from e

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Manifest is not valid UTF-8: {path}", path=str(path), cause=e) from e

        fields, documents = locate_fields(text, path, self.image_keys)
        logger.debug(f"Loaded {path}: {documents} document(s), {len(fields)} image field(s)")
        return ManifestDocument(path=path, text=text, fields=fields, documents=documents)

    def persist(self, path: Path, doc: ManifestDocument) -> None:
        """
        Write a manifest atomically.

        The text is written to a temp file in the same directory, flushed
        to disk, then renamed over the original. On failure the temp file
        is removed and the original is left as it was.

        Raises:
            ManifestIOError: write or rename failed
        """
        write_atomic(Path(path), doc.text)
        logger.debug(f"Wrote {path}")


def write_atomic(path: Path, text: str) -> None:
    """Write text to path using temp file and rename.

    A symlinked path is resolved first so the rename replaces the file
    the link points to, not the link.
    """
    path = Path(path).resolve()
    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        mode = None
    except OSError as e:
        raise ManifestIOError(f"Cannot stat {path}: {e.strerror or e}", path=str(path), cause=e) from e

    try:
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )
    except OSError as e:
        raise ManifestIOError(f"Cannot create temp file next to {path}: {e.strerror or e}", path=str(path), cause=e) from e

    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(text.encode("utf-8"))
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(temp_path, mode)

        # Atomic rename
        os.replace(temp_path, path)

    except BaseException as e:
        # Clean up temp file on error
        try:
            os.unlink(temp_path)
        except OSError as cleanup_error:
            if cleanup_error.errno != errno.ENOENT:
                logger.warning(f"Could not remove temp file {temp_path}: {cleanup_error}")
        if isinstance(e, OSError):
            raise ManifestIOError(f"Cannot write manifest {path}: {e.strerror or e}", path=str(path), cause=e) from e
        raise
