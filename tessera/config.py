"""Project configuration for Tessera.

Configuration lives in ``tessera.yaml`` at the project root. Values are merged
over ``DEFAULT_CONFIG``; nested sections (``PATHS``, ``INDEX``, ``UNCSS``) are
merged key by key so a project only needs to list what it overrides.

Key objects:
- Settings: Resolved configuration consumed by the build pipeline.
- Paths: Absolute source and output locations.
- load_config: Reads ``tessera.yaml`` and applies defaults.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CONFIG_FILENAMES = ("tessera.yaml", "tessera.yml")

# Extension globs per source category.
FILE_TYPES = {
    "page": "html",
    "partial": "html",
    "data": "{yml,yaml,json}",
    "content": "{yml,yaml,json}",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "PRODUCTION": False,
    "PATHS": {
        "dist": "dist",
        "src": "src",
        "pages": "src/pages",
        "layouts": "src/layouts",
        "partials": "src/partials",
        "data": "src/data",
        "helpers": "src/helpers",
        "assets": "src/assets",
        "public": "src/public",
        "templates": "src/templates",
        "sitemap": "src/sitemap.yml",
        "entries": ["js/app.js"],
        "styles": ["scss/app.scss"],
        "sass": [],
    },
    "ORIGIN": "http://localhost:8000",
    "PORT": 8000,
    "CDN": "",
    "INDEX": {"sitemap": False, "robots": False, "disallow": []},
    "COMPATIBILITY": ["last 2 versions", "ie >= 11"],
    "WEBPACK": {},
    "UNCSS": {"enabled": False, "ignore": [r"^\.is-.*"]},
    "PLUGINS": [],
    "SITE": {},
}

_NESTED_SECTIONS = ("PATHS", "INDEX", "UNCSS")

_DIRECTORY_KEYS = (
    "dist",
    "src",
    "pages",
    "layouts",
    "partials",
    "data",
    "helpers",
    "assets",
    "public",
    "templates",
)


@dataclass
class Paths:
    """Absolute source and output locations of a project.

    Attributes:
        root: Project root directory.
        dist: Output root; deleted by the clean task.
        entries: JavaScript entry files, relative to ``assets``.
        styles: Sass entry files, relative to ``assets``.
        sass: Extra Sass include paths.
    """

    root: Path
    dist: Path
    src: Path
    pages: Path
    layouts: Path
    partials: Path
    data: Path
    helpers: Path
    assets: Path
    public: Path
    templates: Path
    sitemap: Path
    entries: list[str] = field(default_factory=list)
    styles: list[str] = field(default_factory=list)
    sass: list[Path] = field(default_factory=list)

    def rel(self, path: Path) -> str:
        """Return ``path`` as a POSIX string relative to the project root.

        Used to build glob patterns that the watch controller matches against
        event paths.
        """
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()


@dataclass
class Settings:
    """Resolved project configuration."""

    production: bool
    paths: Paths
    origin: str
    port: int
    cdn: str
    index: dict[str, Any]
    compatibility: list[str]
    webpack: dict[str, Any]
    uncss: dict[str, Any]
    plugins: list[Path]
    site: dict[str, Any]
    extra: dict[str, Any] = field(default_factory=dict)


def find_config_file(project_root: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = project_root / name
        if candidate.exists():
            return candidate
    return None


def read_config(project_root: Path) -> dict[str, Any]:
    """Load raw configuration values with defaults applied.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary of configuration values keyed by their upper-case names.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = find_config_file(project_root)
    if config_path is None:
        return config
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{config_path}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigError(f"{config_path}: expected a mapping at the top level")
    for key, value in loaded.items():
        if key in _NESTED_SECTIONS and isinstance(value, dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


def load_config(project_root: Path, production: bool | None = None) -> Settings:
    """Load and resolve the configuration for ``project_root``.

    Args:
        project_root: Root directory of the project.
        production: Force production mode on or off. When ``None`` the value
            comes from ``TESSERA_ENV=production`` or the ``PRODUCTION`` key.

    Returns:
        Resolved Settings with absolute paths.
    """
    root = project_root.resolve()
    raw = read_config(root)
    if production is None:
        production = os.environ.get("TESSERA_ENV") == "production" or bool(
            raw["PRODUCTION"]
        )

    raw_paths = raw["PATHS"]
    resolved = {key: root / str(raw_paths[key]) for key in _DIRECTORY_KEYS}
    paths = Paths(
        root=root,
        sitemap=root / str(raw_paths["sitemap"]),
        entries=[str(e).lstrip("/") for e in raw_paths.get("entries") or []],
        styles=[str(s).lstrip("/") for s in raw_paths.get("styles") or []],
        sass=[root / str(p) for p in raw_paths.get("sass") or []],
        **resolved,
    )
    known = set(DEFAULT_CONFIG)
    return Settings(
        production=production,
        paths=paths,
        origin=str(raw["ORIGIN"]),
        port=int(raw["PORT"]),
        cdn=str(raw["CDN"] or ""),
        index=dict(raw["INDEX"]),
        compatibility=list(raw["COMPATIBILITY"] or []),
        webpack=dict(raw["WEBPACK"] or {}),
        uncss=dict(raw["UNCSS"]),
        plugins=[root / str(p) for p in raw["PLUGINS"] or []],
        site=dict(raw["SITE"] or {}),
        extra={k: v for k, v in raw.items() if k not in known},
    )
