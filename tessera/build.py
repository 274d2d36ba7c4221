"""Build pipeline for Tessera.

Wires the build steps into fixed task graphs:

- build: series(clean, templates, parallel(pages, javascript, images, copy), sass)
- copy: parallel(copy-assets, copy-public, copy-content)
- init: series(init-template, generate)
- default: series(build, server, watch)

and registers the watch rules that rerun parts of the build while developing.

Key objects:
- Pipeline: Owns the steps, graphs, parse cache and reload signal of a project.
- build_site: Load configuration and run the build graph once.
"""

from __future__ import annotations

from pathlib import Path

from .assets import AssetPipeline
from .config import FILE_TYPES, Settings, load_config
from .generator import generate
from .logging import get_logger
from .pages import PageRenderer, ParseCache
from .reload import ReloadSignal
from .scaffold import init_template
from .server import DevServer
from .sitemap import write_index
from .tasks import Node, TaskUnit, parallel, run_sync, series
from .utils import remove_dir
from .watch import WatchController

logger = get_logger("build")

# Delay before a script change rebuilds, so editors that write in several
# steps trigger one bundle.
JAVASCRIPT_WATCH_DELAY_MS = 1000


class Pipeline:
    """The build steps and graphs of one project.

    Attributes:
        settings: Project settings.
        cache: Parse cache shared by the renderer and the watch rules.
        renderer: Page renderer.
        assets: Asset steps.
        reload_signal: Bound to the dev server once it starts.
        server: Dev server, once started.
        controller: Watch controller, once the watch step runs.
    """

    def __init__(self, settings: Settings, cache: ParseCache | None = None):
        self.settings = settings
        self.cache = cache if cache is not None else ParseCache()
        self.renderer = PageRenderer(settings, self.cache)
        self.assets = AssetPipeline(settings)
        self.reload_signal = ReloadSignal()
        self.server: DevServer | None = None
        self.controller: WatchController | None = None

        self.clean = TaskUnit("clean", self._clean)
        self.templates = TaskUnit("templates", self.assets.templates)
        self.pages = TaskUnit("pages", self._pages)
        self.javascript = TaskUnit("javascript", self.assets.javascript)
        self.images = TaskUnit("images", self.assets.images)
        self.sass = TaskUnit("sass", self.assets.sass)
        self.copy_assets = TaskUnit("copy-assets", self.assets.copy_assets)
        self.copy_public = TaskUnit("copy-public", self.assets.copy_public)
        self.copy_content = TaskUnit("copy-content", self.assets.copy_content)
        self.generate = TaskUnit("generate", self._generate)
        self.init_template = TaskUnit("init-template", self._init_template)
        self.serve = TaskUnit("server", self._serve)
        self.watch = TaskUnit("watch", self._watch)
        self.reload = self.reload_signal.as_task()

        self.copy = parallel(self.copy_assets, self.copy_public, self.copy_content, name="copy")
        self.build = series(
            self.clean,
            self.templates,
            parallel(self.pages, self.javascript, self.images, self.copy),
            self.sass,
            name="build",
        )
        self.init = series(self.init_template, self.generate, name="init")
        self.default = series(self.build, self.serve, self.watch, name="default")

    def exported(self) -> dict[str, Node]:
        """Graphs runnable by name from the command line."""
        units = [
            self.clean,
            self.copy_assets,
            self.copy_public,
            self.copy_content,
            self.templates,
            self.javascript,
            self.sass,
            self.images,
            self.pages,
            self.generate,
        ]
        graphs: dict[str, Node] = {unit.name: series(unit, name=unit.name) for unit in units}
        graphs["copy"] = self.copy
        graphs["build"] = self.build
        return graphs

    def register_watch_rules(self, controller: WatchController) -> None:
        paths = self.settings.paths
        assets = paths.rel(paths.assets)
        reload = self.reload
        invalidate = self.cache.invalidate

        controller.register(
            [f"{assets}/**/*", f"!{assets}/{{img,js,scss}}/**/*"],
            self.copy_assets,
        )
        controller.register(f"{paths.rel(paths.public)}/**/*", self.copy_public)
        controller.register(
            f"{paths.rel(paths.pages)}/**/*.{FILE_TYPES['page']}",
            series(self.pages, reload, name="pages"),
        )
        controller.register(
            [
                f"{paths.rel(paths.layouts)}/**/*.{FILE_TYPES['partial']}",
                f"{paths.rel(paths.partials)}/**/*.{FILE_TYPES['partial']}",
            ],
            series(self.pages, reload, name="layouts"),
            invalidate=invalidate,
        )
        controller.register(
            f"{paths.rel(paths.templates)}/**/*.html",
            series(self.templates, self.javascript, reload, name="templates"),
        )
        controller.register(
            f"{paths.rel(paths.data)}/**/*.{FILE_TYPES['data']}",
            series(self.pages, reload, name="data"),
            invalidate=invalidate,
        )
        controller.register(
            f"{paths.rel(paths.helpers)}/**/*.py",
            series(self.pages, reload, name="helpers"),
            invalidate=invalidate,
        )
        controller.register(
            f"{assets}/scss/**/*.scss",
            series(self.sass, reload, name="sass"),
        )
        controller.register(
            f"{assets}/js/**/*.js",
            series(self.javascript, reload, name="javascript"),
            delay=JAVASCRIPT_WATCH_DELAY_MS,
        )
        controller.register(
            f"{assets}/img/**/*",
            series(self.images, reload, name="images"),
        )

    def make_controller(self) -> WatchController:
        controller = WatchController(self.settings.paths.root, ignore=[self.settings.paths.dist])
        self.register_watch_rules(controller)
        return controller

    async def _clean(self) -> None:
        remove_dir(self.settings.paths.dist)

    async def _pages(self) -> None:
        rendered = self.renderer.render_all()
        index = self.settings.index
        if index.get("sitemap"):
            write_index(
                [page.url for page in rendered],
                self.settings.paths.dist,
                self.settings.origin,
                robots=bool(index.get("robots")),
                disallow=index.get("disallow") or [],
            )

    async def _generate(self) -> None:
        # init copies a fresh tessera.yaml first, so read the config again.
        settings = load_config(self.settings.paths.root, self.settings.production)
        generate(settings)

    async def _init_template(self) -> None:
        created = init_template(self.settings.paths.root)
        logger.info("Created %d files in %s", len(created), self.settings.paths.root)

    async def _serve(self) -> None:
        self.server = DevServer(self.settings.paths.dist, http_port=self.settings.port)
        await self.server.start()
        self.reload_signal.bind(self.server.reload)

    async def _watch(self) -> None:
        self.controller = self.make_controller()
        try:
            await self.controller.serve_forever()
        finally:
            self.reload_signal.bind(None)
            if self.server is not None:
                await self.server.stop()
                self.server = None


def build_site(project_root: Path, production: bool | None = None) -> Pipeline:
    """Build the site at ``project_root`` once.

    Args:
        project_root: Root directory of the project.
        production: Override production mode (see ``load_config``).

    Returns:
        The Pipeline that ran.

    Raises:
        TaskFailure: A build step failed.
    """
    pipeline = Pipeline(load_config(project_root, production))
    run_sync(pipeline.build)
    return pipeline
