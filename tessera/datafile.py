"""Format-polymorphic content files.

A ContentFile loads, caches, patches and writes a single document on disk.
Structured formats (YAML, JSON) hold a plain mapping or sequence; hybrid
documents (HTML with YAML front matter) hold a ``Document`` of metadata and
raw body text.

Key objects:
- ContentFile: Load/patch/write wrapper around one path.
- Document: Metadata plus body of a hybrid document.
- FileFormat: Supported on-disk formats.
- deep_merge: Recursive merge used by ``ContentFile.patch``.
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ParseError, UnsupportedFormatError

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE
)
DELIMITER = "---"
BOM = "\ufeff"


class FileFormat(Enum):
    YAML = "yaml"
    JSON = "json"
    HYBRID = "hybrid"
    UNSUPPORTED = "unsupported"


_EXTENSION_FORMATS = {
    "yml": FileFormat.YAML,
    "yaml": FileFormat.YAML,
    "json": FileFormat.JSON,
    "html": FileFormat.HYBRID,
}


@dataclass
class Document:
    """A hybrid document: YAML front matter plus raw body text.

    Attributes:
        metadata: Parsed front matter mapping.
        body: Everything after the closing delimiter, untouched.
    """

    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""


def deep_merge(target: Any, update: Any) -> Any:
    """Merge ``update`` into ``target`` and return the result as a new value.

    Mappings merge key by key, sequences concatenate, anything else is replaced
    by ``update``. Neither argument is mutated.

    Examples:
        >>> deep_merge({"a": {"x": 1}}, {"a": {"y": 2}})
        {'a': {'x': 1, 'y': 2}}

        >>> deep_merge({"a": [1, 2]}, {"a": [3]})
        {'a': [1, 2, 3]}
    """
    if isinstance(target, Mapping) and isinstance(update, Mapping):
        merged = {key: copy.deepcopy(value) for key, value in target.items()}
        for key, value in update.items():
            if key in merged:
                merged[key] = deep_merge(merged[key], value)
            else:
                merged[key] = copy.deepcopy(value)
        return merged
    if isinstance(target, list) and isinstance(update, list):
        return copy.deepcopy(target) + copy.deepcopy(update)
    return copy.deepcopy(update)


def detect_format(path: Path) -> FileFormat:
    return _EXTENSION_FORMATS.get(path.suffix.lstrip(".").lower(), FileFormat.UNSUPPORTED)


def parse_hybrid(text: str, path: Path) -> Document:
    """Split a hybrid document into front matter and body.

    A document without a leading front matter block is all body.

    Raises:
        ParseError: If the front matter is not valid YAML or not a mapping.
    """
    if text.startswith(BOM):
        text = text[len(BOM):]
    match = FRONTMATTER_RE.match(text)
    if not match:
        return Document(metadata={}, body=text)
    try:
        metadata = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise ParseError(path, f"invalid front matter: {exc}") from exc
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ParseError(path, "front matter must be a mapping")
    return Document(metadata=metadata, body=text[match.end():])


def dump_yaml(value: Any) -> str:
    return yaml.safe_dump(
        value, default_flow_style=False, sort_keys=False, allow_unicode=True
    )


class ContentFile:
    """Load, patch and write one document on disk.

    Content is read lazily and cached on the instance. ``patch`` and ``write``
    load the file first when nothing has been read yet, so a write never
    discards on-disk keys the caller did not touch. Instances do not share
    state: two ContentFile objects on the same path only see each other's
    changes after one writes and the other re-reads with ``force_reload``.

    Attributes:
        path: Absolute path of the document.
        format: Format derived from the file extension.
        content: ``None`` until read; then a mapping/sequence or a Document.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).resolve()
        self.format = detect_format(self.path)
        self.content: Any = None

    def __repr__(self) -> str:
        return f"ContentFile({str(self.path)!r}, format={self.format.value})"

    def is_supported(self) -> bool:
        return self.format is not FileFormat.UNSUPPORTED

    def read(self, force_reload: bool = False) -> Any:
        """Return the document content, reading from disk when needed.

        Args:
            force_reload: Ignore the cached content and read the file again.

        Returns:
            The cached or freshly parsed content. A missing file reads as an
            empty value (``{}`` or an empty Document).

        Raises:
            UnsupportedFormatError: The extension is not supported.
            ParseError: The file exists but cannot be parsed.
        """
        if self.content is not None and not force_reload:
            return self.content
        if not self.is_supported():
            raise UnsupportedFormatError(self.path)

        if self.path.exists():
            try:
                text = self._read_text()
            except UnicodeDecodeError as exc:
                raise ParseError(self.path, f"invalid UTF-8: {exc}") from exc
            self.content = self._parse(text)
        elif self.format is FileFormat.HYBRID:
            self.content = Document()
        else:
            self.content = {}
        return self.content

    def patch(self, update: Any) -> Any:
        """Deep-merge ``update`` into the content and return the new content.

        For hybrid documents only the metadata is merged; the body is kept.
        """
        self.read()
        if self.format is FileFormat.HYBRID:
            self.content = Document(
                metadata=deep_merge(self.content.metadata, update),
                body=self.content.body,
            )
        else:
            self.content = deep_merge(self.content, update)
        return self.content

    def write(self, update: Any = None) -> None:
        """Serialize the content to disk, optionally patching it first.

        Raises:
            UnsupportedFormatError: The extension is not supported. Nothing is
                written in that case.
        """
        if not self.is_supported():
            raise UnsupportedFormatError(self.path)
        self.read()
        if update is not None:
            self.patch(update)
        text = self._serialize()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write_text(text)

    def _read_text(self) -> str:
        with open(self.path, encoding="utf-8", newline="") as f:
            return f.read()

    def _write_text(self, text: str) -> None:
        with open(self.path, "w", encoding="utf-8", newline="") as f:
            f.write(text)

    def _parse(self, text: str) -> Any:
        if text.startswith(BOM):
            text = text[len(BOM):]
        if self.format is FileFormat.YAML:
            try:
                value = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise ParseError(self.path, f"invalid YAML: {exc}") from exc
            return {} if value is None else value
        if self.format is FileFormat.JSON:
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise ParseError(self.path, f"invalid JSON: {exc}") from exc
        return parse_hybrid(text, self.path)

    def _serialize(self) -> str:
        if self.format is FileFormat.YAML:
            return dump_yaml(self.content)
        if self.format is FileFormat.JSON:
            return json.dumps(self.content, indent=2, ensure_ascii=False)
        return "".join(
            [
                f"{DELIMITER}\n",
                dump_yaml(self.content.metadata),
                f"{DELIMITER}\n",
                self.content.body,
            ]
        )
