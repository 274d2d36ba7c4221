"""Utility functions for Tessera.

Key functions:
    compile_glob: Translate a glob pattern into a compiled regex.
    GlobSet: Include/exclude glob matching over POSIX relative paths.
    iter_files: List files below a directory that match a GlobSet.
    copy_file: Copy a file, creating parent directories.
    remove_dir: Delete a directory tree.

Glob syntax: ``*`` matches within one path segment, ``**`` matches any number
of segments, ``?`` matches one character and ``{a,b}`` matches either
alternative. Patterns starting with ``!`` exclude.
"""

from __future__ import annotations

import functools
import re
import shutil
from collections.abc import Iterable
from pathlib import Path


def _translate(pattern: str) -> str:
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        char = pattern[i]
        if char == "*":
            if pattern.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
                continue
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "{":
            end = pattern.find("}", i)
            if end != -1:
                options = pattern[i + 1 : end].split(",")
                out.append("(?:" + "|".join(_translate(o) for o in options) + ")")
                i = end + 1
                continue
            out.append(re.escape(char))
        else:
            out.append(re.escape(char))
        i += 1
    return "".join(out)


@functools.lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into a regex matched against whole paths.

    Examples:
        >>> bool(compile_glob("src/**/*.html").fullmatch("src/pages/a/b.html"))
        True
        >>> bool(compile_glob("data/*.{yml,json}").fullmatch("data/site.json"))
        True
    """
    return re.compile(_translate(pattern))


class GlobSet:
    """A set of include and ``!``-prefixed exclude patterns."""

    def __init__(self, patterns: Iterable[str]):
        self.patterns = tuple(patterns)
        self._include = [compile_glob(p) for p in self.patterns if not p.startswith("!")]
        self._exclude = [compile_glob(p[1:]) for p in self.patterns if p.startswith("!")]

    def __repr__(self) -> str:
        return f"GlobSet({list(self.patterns)!r})"

    def matches(self, rel_path: str) -> bool:
        if not any(rx.fullmatch(rel_path) for rx in self._include):
            return False
        return not any(rx.fullmatch(rel_path) for rx in self._exclude)


def iter_files(base: Path, patterns: Iterable[str] = ("**/*",)) -> list[Path]:
    """Return the files below ``base`` whose relative paths match ``patterns``.

    Args:
        base: Directory to search. A missing directory yields no files.
        patterns: Globs relative to ``base``.

    Returns:
        Sorted list of absolute file paths.
    """
    if not base.is_dir():
        return []
    globs = GlobSet(patterns)
    found = []
    for path in base.rglob("*"):
        if path.is_dir():
            continue
        if globs.matches(path.relative_to(base).as_posix()):
            found.append(path)
    return sorted(found)


def copy_file(source: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, dest)


def copy_tree(base: Path, target: Path, patterns: Iterable[str] = ("**/*",)) -> int:
    """Copy matching files from ``base`` into ``target`` keeping relative paths.

    Returns:
        Number of files copied.
    """
    count = 0
    for path in iter_files(base, patterns):
        copy_file(path, target / path.relative_to(base))
        count += 1
    return count


def remove_dir(path: Path) -> None:
    """Delete a directory tree if it exists.

    Args:
        path: Directory to delete.
    """
    if not path.exists():
        return
    shutil.rmtree(str(path), ignore_errors=True)
    if path.exists():
        # Fallback for stubborn directories
        for item in path.rglob("*"):
            if item.is_file():
                item.unlink()
        for item in sorted([p for p in path.rglob("*") if p.is_dir()], reverse=True):
            item.rmdir()
        path.rmdir()
