import logging
from pathlib import Path

import pytest

from tessera.config import load_config


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def create_project(root: Path) -> Path:
    src = root / "src"
    write(
        root / "tessera.yaml",
        "ORIGIN: https://example.com\n"
        "INDEX:\n  sitemap: true\n  robots: true\n  disallow: [drafts]\n"
        "SITE:\n  name: Example\n",
    )
    write(
        src / "layouts" / "default.html",
        "<html><body>{% include 'header.html' %}{{ body }}</body></html>",
    )
    write(src / "partials" / "header.html", "<header>{{ site.name }}</header>")
    write(
        src / "pages" / "index.html",
        "---\ntitle: Home\n---\n<h1>{{ title }}</h1>{% for l in data.links %}<a>{{ l.label }}</a>{% endfor %}",
    )
    write(src / "pages" / "drafts" / "wip.html", "---\nlayout: false\n---\nWIP")
    write(src / "data" / "links.yml", "- label: One\n- label: Two\n")
    write(src / "data" / "team.json", '{"lead": "Ada"}')
    write(src / "assets" / "fonts" / "a.woff", "font")
    write(src / "assets" / "js" / "app.js", "function add(a, b) {\n  return a + b;\n}\n")
    write(src / "assets" / "scss" / "app.scss", "body { color: red; }")
    write(src / "assets" / "img" / "logo.svg", "<svg/>")
    write(src / "public" / "favicon.ico", "ico")
    write(src / "templates" / "card.html", "<div>{{title}}</div>")
    return root


@pytest.fixture
def project(tmp_path):
    return create_project(tmp_path)


@pytest.fixture
def settings(project):
    return load_config(project, production=False)


@pytest.fixture(autouse=True)
def _isolate_logging():
    # configure_logging() turns propagation off; caplog needs it on.
    # Handlers added by the CLI hold the runner's streams; drop them afterwards.
    logger = logging.getLogger("tessera")
    previous = (logger.propagate, logger.level, list(logger.handlers))
    logger.propagate = True
    yield
    logger.propagate, level, handlers = previous
    logger.setLevel(level)
    logger.handlers[:] = handlers
