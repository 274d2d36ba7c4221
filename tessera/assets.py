"""Asset steps of the build.

Each public coroutine of AssetPipeline is one leaf of the build graph:

- copy_assets: Static files from ``assets/`` except ``img``, ``js`` and ``scss``.
- copy_public: Public files into the output root.
- copy_content: Data files into ``files/``.
- images: Images into ``assets/img``, optimised with Pillow in production.
- templates: Client-side HTML templates bundled into ``assets/js/_tpl.js``.
- javascript: Entry scripts bundled with webpack, or copied (and minified in
  production) when webpack is not installed.
- sass: Stylesheets compiled with the ``sass`` CLI, then autoprefixed with
  ``postcss`` and stripped of unused rules with ``uncss`` when available.

Plugin source roots (``PLUGINS``) contribute their own ``assets``, ``public``
and ``templates`` folders ahead of the project's.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

from PIL import Image
from rjsmin import jsmin

from .config import FILE_TYPES, Settings
from .executable_utils import find_executable, run_command
from .logging import get_logger
from .utils import copy_file, copy_tree, iter_files

logger = get_logger("assets")

# Subfolders of assets/ that have their own step.
_PROCESSED_ASSET_DIRS = "{img,js,scss}"

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}
TEMPLATE_BUNDLE = "_tpl.js"


class AssetPipeline:
    """Processes scripts, stylesheets, images and static files.

    Attributes:
        settings: Project settings.
        output_dir: Output root.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.paths = settings.paths
        self.output_dir = settings.paths.dist

    def _plugin_dirs(self, name: str) -> list[Path]:
        return [plugin / name for plugin in self.settings.plugins]

    async def copy_assets(self) -> None:
        target = self.output_dir / "assets"
        patterns = ["**/*", f"!{_PROCESSED_ASSET_DIRS}/**/*"]
        count = 0
        for base in [*self._plugin_dirs("assets"), self.paths.assets]:
            count += copy_tree(base, target, patterns)
        logger.debug("Copied %d asset files", count)

    async def copy_public(self) -> None:
        count = 0
        for base in [*self._plugin_dirs("public"), self.paths.public]:
            count += copy_tree(base, self.output_dir)
        logger.debug("Copied %d public files", count)

    async def copy_content(self) -> None:
        pattern = f"**/*.{FILE_TYPES['content']}"
        count = copy_tree(self.paths.data, self.output_dir / "files", [pattern])
        logger.debug("Copied %d content files", count)

    async def images(self) -> None:
        source_dir = self.paths.assets / "img"
        target = self.output_dir / "assets" / "img"
        for source in iter_files(source_dir):
            dest = target / source.relative_to(source_dir)
            if self.settings.production and source.suffix.lower() in IMAGE_EXTENSIONS:
                optimize_image(source, dest)
            else:
                copy_file(source, dest)

    async def templates(self) -> None:
        """Bundle client-side templates into one script.

        Each ``templates/**/*.html`` file is registered under its relative
        path without extension, e.g. ``cards/item``.
        """
        bundle: dict[str, str] = {}
        pattern = f"**/*.{FILE_TYPES['partial']}"
        for base in [*self._plugin_dirs("templates"), self.paths.templates]:
            for path in iter_files(base, [pattern]):
                name = path.relative_to(base).with_suffix("").as_posix()
                bundle[name] = path.read_text(encoding="utf-8")

        lines = ["var templates = window.templates = window.templates || {};"]
        for name in sorted(bundle):
            lines.append(f"templates[{json.dumps(name)}] = {json.dumps(bundle[name])};")
        script = "\n".join(lines) + "\n"
        if self.settings.production:
            script = jsmin(script)

        dest = self.output_dir / "assets" / "js" / TEMPLATE_BUNDLE
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(script, encoding="utf-8")
        logger.debug("Bundled %d templates into %s", len(bundle), dest.name)

    async def javascript(self) -> None:
        entries = [self.paths.assets / entry for entry in self.paths.entries]
        target = self.output_dir / "assets" / "js"
        webpack = find_executable("webpack", self.paths.root)
        if webpack and entries:
            await run_command(self._webpack_command(webpack, entries, target), cwd=self.paths.root)
            return
        if webpack is None:
            logger.debug("webpack not found; copying entry scripts")
        for entry in entries:
            dest = target / entry.name
            if not self.settings.production:
                copy_file(entry, dest)
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_text(jsmin(entry.read_text(encoding="utf-8")), encoding="utf-8")

    def _webpack_command(self, webpack: str, entries: list[Path], target: Path) -> list[str]:
        mode = "production" if self.settings.production else "development"
        cmd = [webpack, "--mode", mode, "--output-path", str(target)]
        if not self.settings.production:
            cmd += ["--devtool", "inline-source-map"]
        for entry in entries:
            cmd += ["--entry", f"{entry.stem}=./{entry.relative_to(self.paths.root).as_posix()}"]
        for key, value in self.settings.webpack.items():
            flag = f"--{key}"
            if value is True:
                cmd.append(flag)
            elif value not in (False, None):
                cmd += [flag, str(value)]
        return cmd

    async def sass(self) -> None:
        sass_bin = find_executable("sass", self.paths.root)
        target = self.output_dir / "assets" / "css"
        target.mkdir(parents=True, exist_ok=True)
        outputs = []
        for entry in self.paths.styles:
            source = self.paths.assets / entry
            dest = target / (Path(entry).stem + ".css")
            if source.suffix == ".css":
                copy_file(source, dest)
            elif sass_bin is None:
                logger.warning("sass CLI not found; skipping %s", entry)
                logger.warning(
                    "Install with `npm install -g sass` or `npm install -D sass` in the project."
                )
                continue
            else:
                await run_command(self._sass_command(sass_bin, source, dest))
            outputs.append(dest)

        postcss = find_executable("postcss", self.paths.root)
        for css in outputs:
            if postcss:
                await run_command(
                    [postcss, str(css), "--use", "autoprefixer", "--replace", "--no-map"],
                    cwd=self.paths.root,
                    env={"BROWSERSLIST": ", ".join(self.settings.compatibility)},
                )
            if self.settings.production and self.settings.uncss.get("enabled"):
                await self._strip_unused(css)

    def _sass_command(self, sass_bin: str, source: Path, dest: Path) -> list[str]:
        cmd = [sass_bin]
        for include in self.paths.sass:
            cmd.append(f"--load-path={include}")
        if self.settings.production:
            cmd += ["--style=compressed", "--no-source-map"]
        else:
            cmd.append("--embed-source-map")
        cmd += [str(source), str(dest)]
        return cmd

    async def _strip_unused(self, css: Path) -> None:
        uncss = find_executable("uncss", self.paths.root)
        if uncss is None:
            logger.warning("uncss not found; keeping unused CSS in %s", css.name)
            return
        html = self.settings.uncss.get("html") or [
            str(p) for p in iter_files(self.output_dir, ["**/*.html"])
        ]
        if isinstance(html, str):
            html = [html]
        if not html:
            return
        cmd = [uncss, "--stylesheets", css.as_uri(), "--htmlroot", str(self.output_dir)]
        ignore = self.settings.uncss.get("ignore") or []
        if ignore:
            cmd += ["--ignore", ",".join(str(i) for i in ignore)]
        stripped = await run_command(cmd + list(html))
        css.write_text(stripped, encoding="utf-8")


def optimize_image(source: Path, dest: Path) -> None:
    """Re-encode an image with Pillow's optimiser; copy it when that fails."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        with Image.open(source) as img:
            if source.suffix.lower() in {".jpg", ".jpeg"}:
                img.save(dest, optimize=True, progressive=True)
            else:
                img.save(dest, optimize=True)
        return
    except OSError as exc:
        logger.debug("Could not optimise %s (%s); copying", source.name, exc)
    shutil.copy2(source, dest)
