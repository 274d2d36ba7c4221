import asyncio

from tessera.tasks import TaskUnit, series
from tessera.watch import WatchController, _ChangeHandler


def counting_task(log, name, delay=0.0, fail=False):
    async def body():
        log.append(name)
        await asyncio.sleep(delay)
        if fail:
            raise RuntimeError(f"{name} failed")

    return TaskUnit(name, body)


def test_events_within_debounce_window_fire_once(tmp_path):
    log = []
    controller = WatchController(tmp_path)
    rule = controller.register("src/**/*.html", counting_task(log, "pages"), delay=100)

    async def scenario():
        for _ in range(5):
            controller.notify(tmp_path / "src" / "pages" / "index.html")
            await asyncio.sleep(0.005)
        await controller.wait_idle()

    asyncio.run(scenario())
    assert log == ["pages"]
    assert controller.runs(rule) == 1


def test_new_event_resets_debounce_timer(tmp_path):
    log = []
    controller = WatchController(tmp_path)
    controller.register("a.yml", counting_task(log, "data"), delay=150)

    async def scenario():
        controller.notify("a.yml")
        await asyncio.sleep(0.1)
        controller.notify("a.yml")
        await asyncio.sleep(0.1)
        assert log == []
        await controller.wait_idle()

    asyncio.run(scenario())
    assert log == ["data"]


def test_only_matching_rules_fire(tmp_path):
    log = []
    controller = WatchController(tmp_path)
    controller.register(
        ["src/assets/**/*", "!src/assets/{img,js,scss}/**/*"], counting_task(log, "copy")
    )
    controller.register("src/assets/scss/**/*.scss", counting_task(log, "sass"))

    async def scenario():
        assert controller.notify(tmp_path / "src/assets/scss/app.scss")
        await controller.wait_idle()
        controller.notify(tmp_path / "src/assets/fonts/a.woff")
        await controller.wait_idle()
        assert controller.notify(tmp_path / "README.md") == []

    asyncio.run(scenario())
    assert log == ["sass", "copy"]


def test_every_matching_rule_fires_independently(tmp_path):
    log = []
    controller = WatchController(tmp_path)
    controller.register("src/data/**/*.yml", counting_task(log, "pages"))
    controller.register("src/**/*", counting_task(log, "copy"))

    async def scenario():
        matched = controller.notify(tmp_path / "src/data/site.yml")
        assert len(matched) == 2
        await controller.wait_idle()

    asyncio.run(scenario())
    assert sorted(log) == ["copy", "pages"]


def test_invalidate_runs_before_reaction(tmp_path):
    log = []
    controller = WatchController(tmp_path)
    controller.register(
        "layouts/*.html",
        series(counting_task(log, "pages"), counting_task(log, "reload")),
        invalidate=lambda: log.append("invalidate"),
    )

    async def scenario():
        controller.notify("layouts/default.html")
        await controller.wait_idle()

    asyncio.run(scenario())
    assert log == ["invalidate", "pages", "reload"]


def test_failed_reaction_does_not_stop_the_controller(tmp_path, caplog):
    log = []
    controller = WatchController(tmp_path)
    broken = controller.register("a.txt", counting_task(log, "broken", fail=True))
    healthy = controller.register("b.txt", counting_task(log, "healthy"))

    async def scenario():
        controller.notify("a.txt")
        controller.notify("b.txt")
        await controller.wait_idle()
        controller.notify("a.txt")
        await controller.wait_idle()

    asyncio.run(scenario())
    assert log.count("broken") == 2
    assert log.count("healthy") == 1
    assert controller.runs(broken) == 2
    assert controller.runs(healthy) == 1
    assert "broken failed" in caplog.text


def test_fire_during_running_reaction_queues_one_rerun(tmp_path):
    log = []
    controller = WatchController(tmp_path)
    rule = controller.register("a.js", counting_task(log, "javascript", delay=0.05))

    async def scenario():
        controller.notify("a.js")
        await asyncio.sleep(0.02)
        assert log == ["javascript"]
        controller.notify("a.js")
        await asyncio.sleep(0.005)
        controller.notify("a.js")
        await controller.wait_idle()

    asyncio.run(scenario())
    assert log == ["javascript", "javascript"]
    assert controller.runs(rule) == 2


def test_ignored_and_outside_paths_are_dropped(tmp_path):
    log = []
    dist = tmp_path / "dist"
    controller = WatchController(tmp_path, ignore=[dist])
    controller.register("**/*", counting_task(log, "any"))

    assert controller.relative(dist / "index.html") is None
    assert controller.relative(tmp_path.parent / "elsewhere.txt") is None
    assert controller.relative(tmp_path / "src" / "x.txt") == "src/x.txt"


def test_delay_is_given_in_milliseconds(tmp_path):
    controller = WatchController(tmp_path)
    rule = controller.register("*.js", lambda: None, delay=1000)
    assert rule.delay == 1.0
    assert rule.name == "<lambda>"


class DummyEvent:
    def __init__(self, path, event_type="modified", is_directory=False, dest_path=""):
        self.src_path = path
        self.event_type = event_type
        self.is_directory = is_directory
        self.dest_path = dest_path


class DummyLoop:
    def __init__(self):
        self.calls = []

    def call_soon_threadsafe(self, fn, *args):
        self.calls.append(args)


def test_change_handler_forwards_file_changes(tmp_path):
    controller = WatchController(tmp_path)
    loop = DummyLoop()
    handler = _ChangeHandler(controller, loop)

    handler.on_any_event(DummyEvent(str(tmp_path / "a.html")))
    handler.on_any_event(DummyEvent(str(tmp_path / "gone.html"), event_type="deleted"))
    handler.on_any_event(
        DummyEvent(str(tmp_path / "old.html"), event_type="moved", dest_path=str(tmp_path / "new.html"))
    )
    handler.on_any_event(DummyEvent(str(tmp_path / "dir"), is_directory=True))
    handler.on_any_event(DummyEvent(str(tmp_path / "a.html"), event_type="opened"))
    handler.on_any_event(DummyEvent(str(tmp_path / "a.html"), event_type="closed_no_write"))

    forwarded = [args[0] for args in loop.calls]
    assert forwarded == [
        str(tmp_path / "a.html"),
        str(tmp_path / "gone.html"),
        str(tmp_path / "old.html"),
        str(tmp_path / "new.html"),
    ]
