"""Page generation from the project sitemap.

``PATHS.sitemap`` is a YAML (or JSON) file listing the pages a site should
have::

    pages:
      - path: index
        title: Home
        partials: [hero, features]
      - path: about/team
        title: Team
        layout: wide

For every entry the generator makes sure ``pages/<path>.html`` exists. New
pages get front matter from the entry and a body that includes the listed
partials; missing partials are created as empty sections. Existing pages keep
their body and metadata; keys they lack are filled in from the entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import FILE_TYPES, Settings
from .datafile import ContentFile, Document
from .errors import ParseError
from .logging import get_logger

logger = get_logger("generator")

_ENTRY_KEYS = {"path", "partials"}


@dataclass
class PageSpec:
    """One page requested by the sitemap.

    Attributes:
        path: Page path below ``pages/`` without extension.
        metadata: Front matter for the page.
        partials: Partial names included in a new page's body.
    """

    path: str
    metadata: dict[str, Any] = field(default_factory=dict)
    partials: list[str] = field(default_factory=list)


def parse_sitemap(content: Any, source: Path) -> list[PageSpec]:
    """Turn sitemap content into PageSpecs.

    Entries may be plain strings (the page path) or mappings with a ``path``
    key. The list may sit at the top level or under ``pages``.

    Raises:
        ParseError: The sitemap has an unexpected shape.
    """
    if isinstance(content, dict):
        content = content.get("pages", [])
    if not isinstance(content, list):
        raise ParseError(source, "sitemap must be a list of pages")
    specs = []
    for entry in content:
        if isinstance(entry, str):
            specs.append(PageSpec(path=entry.strip("/")))
            continue
        if not isinstance(entry, dict) or "path" not in entry:
            raise ParseError(source, f"invalid sitemap entry: {entry!r}")
        metadata = {k: v for k, v in entry.items() if k not in _ENTRY_KEYS}
        partials = [str(p) for p in entry.get("partials") or []]
        specs.append(
            PageSpec(path=str(entry["path"]).strip("/"), metadata=metadata, partials=partials)
        )
    return specs


def partial_body(partials: list[str]) -> str:
    return "".join(
        f'{{% include "{name}.{FILE_TYPES["partial"]}" %}}\n' for name in partials
    )


def generate(settings: Settings) -> list[Path]:
    """Create or complete the pages listed in the sitemap.

    Returns:
        Paths of the pages that were written.
    """
    paths = settings.paths
    sitemap = ContentFile(paths.sitemap)
    if not sitemap.path.exists():
        logger.info("No sitemap at %s; nothing to generate", paths.rel(paths.sitemap))
        return []

    written = []
    for spec in parse_sitemap(sitemap.read(), sitemap.path):
        page = ContentFile(paths.pages / f"{spec.path}.{FILE_TYPES['page']}")
        if page.path.exists():
            existing = page.read().metadata
            missing = {k: v for k, v in spec.metadata.items() if k not in existing}
            if not missing:
                continue
            page.write(missing)
        else:
            page.content = Document(metadata=dict(spec.metadata), body=partial_body(spec.partials))
            page.write()
            for name in spec.partials:
                _ensure_partial(paths.partials, name)
        written.append(page.path)
        logger.info("Generated %s", paths.rel(page.path))
    return written


def _ensure_partial(partials_dir: Path, name: str) -> None:
    path = partials_dir / f"{name}.{FILE_TYPES['partial']}"
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    css_class = Path(name).name
    path.write_text(f'<section class="{css_class}">\n</section>\n', encoding="utf-8")
