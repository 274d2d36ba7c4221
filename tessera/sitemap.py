"""Sitemap and robots.txt generation.

Runs after the pages are rendered when ``INDEX.sitemap`` is enabled. Page URLs
are joined to ``ORIGIN``; ``INDEX.disallow`` lists URL prefixes that are left
out of the sitemap and written as ``Disallow`` lines to robots.txt when
``INDEX.robots`` is set.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from xml.etree.ElementTree import Element, SubElement, tostring

from .logging import get_logger

logger = get_logger("sitemap")

_SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def _is_disallowed(url: str, disallow: Iterable[str]) -> bool:
    for rule in disallow:
        prefix = "/" + rule.strip("/")
        if rule and (url == prefix or url.startswith(prefix + "/")):
            return True
    return False


def generate_sitemap(urls: Iterable[str], origin: str, disallow: Iterable[str] = ()) -> str:
    """Generate a sitemap.xml document.

    Args:
        urls: Site-relative page URLs (``/about/index.html``).
        origin: Site origin, e.g. ``https://example.com``.
        disallow: URL prefixes to leave out.

    Returns:
        Complete XML string.
    """
    base = origin.rstrip("/")
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    disallow = list(disallow)

    urlset = Element("urlset")
    urlset.set("xmlns", _SITEMAP_NS)
    for url in sorted(urls):
        if _is_disallowed(url, disallow):
            continue
        if url.endswith("/index.html"):
            url = url[: -len("index.html")]
        url_el = SubElement(urlset, "url")
        SubElement(url_el, "loc").text = base + url
        SubElement(url_el, "lastmod").text = today

    xml = tostring(urlset, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + xml + "\n"


def generate_robots(origin: str, disallow: Iterable[str] = (), sitemap: bool = True) -> str:
    lines = ["User-agent: *"]
    rules = [rule for rule in disallow if rule]
    if rules:
        lines.extend(f"Disallow: /{rule.strip('/')}" for rule in rules)
    else:
        lines.append("Disallow:")
    if sitemap:
        lines.append(f"Sitemap: {origin.rstrip('/')}/sitemap.xml")
    return "\n".join(lines) + "\n"


def write_index(
    urls: Iterable[str],
    output_dir: Path,
    origin: str,
    *,
    robots: bool = False,
    disallow: Iterable[str] = (),
) -> list[Path]:
    """Write sitemap.xml and, optionally, robots.txt into ``output_dir``.

    Returns:
        Paths of the files written.
    """
    disallow = list(disallow or [])
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    sitemap_path = output_dir / "sitemap.xml"
    sitemap_path.write_text(generate_sitemap(urls, origin, disallow), encoding="utf-8")
    written.append(sitemap_path)
    if robots:
        robots_path = output_dir / "robots.txt"
        robots_path.write_text(generate_robots(origin, disallow), encoding="utf-8")
        written.append(robots_path)
    logger.debug("Wrote %s", ", ".join(p.name for p in written))
    return written
