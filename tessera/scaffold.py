"""Project scaffolding.

- init_template: Copy the bundled starter project into a directory.
- create: Copy one bundled layout or partial into the project so it can be
  customised (``tessera create layout:default``).
"""

from __future__ import annotations

import shutil
from pathlib import Path

from .config import FILE_TYPES, Settings
from .errors import UserInputError
from .logging import get_logger

logger = get_logger("scaffold")

TEMPLATE_DIR = Path(__file__).parent / "template"
BUILDER_DIR = Path(__file__).parent / "builder"
CATEGORIES = ("layout", "partial")


def init_template(root: Path) -> list[Path]:
    """Copy the starter project into ``root``.

    Files that already exist are left alone.

    Returns:
        Paths of the files created.
    """
    created = []
    for src_path in sorted(TEMPLATE_DIR.rglob("*")):
        if src_path.is_dir() or "__pycache__" in src_path.parts:
            continue
        dest_path = root / src_path.relative_to(TEMPLATE_DIR)
        if dest_path.exists():
            logger.debug("Keeping existing %s", dest_path)
            continue
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dest_path)
        created.append(dest_path)
    return created


def parse_target(argument: str | None) -> tuple[str, str]:
    """Split a ``category:target`` argument.

    Raises:
        UserInputError: The argument is missing or the category is unknown.
    """
    if not argument:
        raise UserInputError("no target specified")
    category, _, target = argument.partition(":")
    if category not in CATEGORIES:
        raise UserInputError('category can be only "layout" or "partial"')
    if not target:
        raise UserInputError("no target specified")
    return category, target


def create(argument: str | None, settings: Settings) -> Path:
    """Copy a bundled layout or partial into the project.

    Args:
        argument: ``category:target``, e.g. ``partial:header``.
        settings: Project settings; decides the destination folder.

    Returns:
        Path of the created file.

    Raises:
        UserInputError: Bad argument, unknown source, or existing target.
    """
    category, target = parse_target(argument)
    filename = f"{target}.{FILE_TYPES['partial']}"
    source = BUILDER_DIR / f"{category}s" / filename
    dest_dir = settings.paths.layouts if category == "layout" else settings.paths.partials
    dest = dest_dir / filename
    if not source.exists():
        raise UserInputError("source file does not exist")
    if dest.exists():
        raise UserInputError("target file already exists")

    logger.info("create custom %s %s", target, category)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, dest)
    return dest
