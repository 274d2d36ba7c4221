"""Page rendering for Tessera.

Pages are HTML documents with YAML front matter under ``PATHS.pages``. Each
page body is rendered with Jinja2, then wrapped in its layout (``layout:`` in
the front matter, ``default`` otherwise). Layouts and partials come from the
project first and the bundled builder templates second.

Layouts, partials, data files and helper modules are parsed once and kept in a
ParseCache. The cache is never refreshed by the renderer itself: the watch
controller calls ``invalidate()`` when any of those sources change.

Key classes:
- ParseCache: Injectable cache of parsed artifacts keyed by source path.
- PageRenderer: Renders every page into the output root.
- RenderedPage: Record of one written page.
"""

from __future__ import annotations

import importlib.util
import inspect
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    TemplateError,
    TemplateSyntaxError,
)
from markupsafe import Markup

from .config import FILE_TYPES, Settings
from .datafile import ContentFile
from .errors import RenderError
from .logging import get_logger
from .utils import iter_files

logger = get_logger("pages")

BUILDER_DIR = Path(__file__).parent / "builder"
DEFAULT_LAYOUT = "default"


class ParseCache:
    """Process-wide cache of parsed templates, data and helpers.

    Owned by the renderer and shared with the watch controller, which only
    ever calls ``invalidate``.
    """

    def __init__(self):
        self._entries: dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        if key not in self._entries:
            self._entries[key] = compute()
        return self._entries[key]

    def invalidate(self) -> None:
        logger.debug("Dropping %d cached artifacts", len(self._entries))
        self._entries.clear()


@dataclass
class RenderedPage:
    """A page written to the output root.

    Attributes:
        source: Source page path.
        output: Written file path.
        url: Site-relative URL, e.g. ``/about/index.html``.
        metadata: Final front matter after build-time enrichment.
    """

    source: Path
    output: Path
    url: str
    metadata: dict[str, Any]


class PageRenderer:
    """Renders pages into the output root.

    Attributes:
        settings: Project settings.
        cache: Parse cache for layouts, partials, data and helpers.
    """

    def __init__(self, settings: Settings, cache: ParseCache | None = None):
        self.settings = settings
        self.cache = cache if cache is not None else ParseCache()

    def page_files(self) -> list[Path]:
        return iter_files(self.settings.paths.pages, [f"**/*.{FILE_TYPES['page']}"])

    def render_all(self) -> list[RenderedPage]:
        """Render every page and write it below the output root."""
        rendered = [self.render_page(path) for path in self.page_files()]
        logger.debug("Rendered %d pages", len(rendered))
        return rendered

    def render_page(self, source: Path) -> RenderedPage:
        paths = self.settings.paths
        rel = source.relative_to(paths.pages)
        url = "/" + rel.as_posix()
        depth = len(rel.parts) - 1

        page_file = ContentFile(source)
        page_file.read()
        document = page_file.patch({"page": rel.with_suffix("").as_posix(), "url": url})
        metadata = document.metadata

        context = self._context(metadata, root="../" * depth)
        env = self.environment()
        try:
            body = env.from_string(document.body).render(context)
            layout_name = metadata.get("layout", DEFAULT_LAYOUT)
            if layout_name:
                layout = self.layout(str(layout_name))
                html = layout.render({**context, "body": Markup(body)})
            else:
                html = body
        except TemplateSyntaxError as exc:
            raise RenderError(
                source, f"Template syntax error on line {exc.lineno}: {exc.message}"
            ) from exc
        except TemplateError as exc:
            raise RenderError(source, f"{type(exc).__name__}: {exc}") from exc

        output = paths.dist / rel
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(html, encoding="utf-8")
        return RenderedPage(source=source, output=output, url=url, metadata=metadata)

    def environment(self) -> Environment:
        key = str(self.settings.paths.partials)
        return self.cache.get_or_compute(key, self._make_environment)

    def layout(self, name: str):
        """Return the compiled layout ``name``."""
        path = self._find_layout(name)
        env = self.environment()

        def compile_layout():
            return env.from_string(path.read_text(encoding="utf-8"))

        try:
            return self.cache.get_or_compute(str(path), compile_layout)
        except TemplateSyntaxError as exc:
            raise RenderError(
                path, f"Template syntax error on line {exc.lineno}: {exc.message}"
            ) from exc

    def data(self) -> dict[str, Any]:
        key = str(self.settings.paths.data)
        return self.cache.get_or_compute(key, self._load_data)

    def helpers(self) -> dict[str, Callable[..., Any]]:
        key = str(self.settings.paths.helpers)
        return self.cache.get_or_compute(key, self._load_helpers)

    def _context(self, metadata: dict[str, Any], root: str) -> dict[str, Any]:
        settings = self.settings
        return {
            "site": settings.site,
            "data": self.data(),
            **metadata,
            "root": root,
            "production": settings.production,
            "origin": settings.origin,
            "port": settings.port,
            "cdn": settings.cdn,
        }

    def _find_layout(self, name: str) -> Path:
        filename = f"{name}.{FILE_TYPES['partial']}"
        for base in (self.settings.paths.layouts, BUILDER_DIR / "layouts"):
            candidate = base / filename
            if candidate.exists():
                return candidate
        raise RenderError(self.settings.paths.layouts / filename, f"layout '{name}' not found")

    def _make_environment(self) -> Environment:
        loader = ChoiceLoader(
            [
                FileSystemLoader(str(self.settings.paths.partials)),
                FileSystemLoader(str(BUILDER_DIR / "partials")),
            ]
        )
        env = Environment(loader=loader, auto_reload=False)
        for name, fn in self.helpers().items():
            env.filters[name] = fn
            env.globals[name] = fn
        return env

    def _load_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        pattern = f"**/*.{FILE_TYPES['data']}"
        for path in iter_files(self.settings.paths.data, [pattern]):
            data[path.stem] = ContentFile(path).read()
        return data

    def _load_helpers(self) -> dict[str, Callable[..., Any]]:
        helpers: dict[str, Callable[..., Any]] = {}
        for path in iter_files(self.settings.paths.helpers, ["**/*.py"]):
            module = _load_module(path, self.settings.paths.helpers)
            for name, member in inspect.getmembers(module, callable):
                if name.startswith("_") or inspect.isclass(member):
                    continue
                if getattr(member, "__module__", None) != module.__name__:
                    continue
                helpers[name] = member
        return helpers


def _load_module(py_file: Path, helpers_dir: Path):
    """Import a helper file as a module without touching ``sys.path``."""
    relative = py_file.relative_to(helpers_dir)
    module_name = "tessera_helpers." + ".".join(relative.with_suffix("").parts)
    spec = importlib.util.spec_from_file_location(module_name, py_file)
    if spec is None or spec.loader is None:
        raise RenderError(py_file, "cannot load helper module")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise RenderError(py_file, f"failed to load helper module: {exc}") from exc
    return module
