"""Watch controller: reruns task graphs when source files change.

Each WatchRule binds glob patterns to a reaction graph. A filesystem event
whose path matches a rule starts (or restarts) that rule's debounce timer;
when the timer elapses the rule's cache invalidation runs, then the reaction
graph. Created, modified, deleted and moved files are all treated as a change.

Rules are independent. If a rule fires again while its reaction is still
running, a single rerun is queued and starts once the running reaction ends;
further fires in the meantime fold into that rerun. A failing reaction is
logged and the controller keeps listening.

Key classes:
- WatchRule: Patterns, reaction graph, debounce delay and invalidation hook.
- WatchController: Dispatches events to rules and runs their reactions.
- _ChangeHandler: watchdog event handler forwarding events to the loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .logging import get_logger
from .tasks import Node, as_node, run
from .utils import GlobSet

logger = get_logger("watch")

_CHANGE_EVENTS = {
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MOVED,
}


@dataclass(eq=False)
class WatchRule:
    """Binding of glob patterns to a reaction graph.

    Attributes:
        patterns: Globs relative to the project root; ``!`` excludes.
        reaction: Graph run when the rule fires.
        delay: Debounce window in seconds.
        invalidate: Called synchronously right before the reaction runs.
        name: Label used in logs.
    """

    patterns: tuple[str, ...]
    reaction: Node
    delay: float = 0.0
    invalidate: Callable[[], Any] | None = None
    name: str = ""
    globs: GlobSet = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.globs = GlobSet(self.patterns)
        if not self.name:
            self.name = getattr(self.reaction, "name", "<rule>")

    def matches(self, rel_path: str) -> bool:
        return self.globs.matches(rel_path)


@dataclass(eq=False)
class _RuleState:
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task | None = None
    pending: bool = False
    runs: int = 0


class WatchController:
    """Listens for file changes and triggers the matching reaction graphs.

    Attributes:
        root: Project root; event paths are matched relative to it.
        rules: Registered rules in registration order.
        ignore: Directories whose events are dropped (the output root).
    """

    def __init__(self, root: Path, ignore: Iterable[Path] = ()):
        self.root = root.resolve()
        self.rules: list[WatchRule] = []
        self.ignore = [Path(p).resolve() for p in ignore]
        self._states: dict[WatchRule, _RuleState] = {}
        self._observer: Observer | None = None

    def register(
        self,
        patterns: str | Iterable[str],
        reaction: Any,
        *,
        delay: float = 0,
        invalidate: Callable[[], Any] | None = None,
        name: str = "",
    ) -> WatchRule:
        """Add a rule.

        Args:
            patterns: One glob or several; ``!`` prefixed globs exclude.
            reaction: Graph node, TaskUnit or callable to run.
            delay: Debounce window in milliseconds.
            invalidate: Optional cache invalidation run before the reaction.
            name: Label for logs; defaults to the reaction's name.

        Returns:
            The registered WatchRule.
        """
        if isinstance(patterns, str):
            patterns = (patterns,)
        rule = WatchRule(
            patterns=tuple(patterns),
            reaction=as_node(reaction),
            delay=max(delay, 0) / 1000,
            invalidate=invalidate,
            name=name,
        )
        self.rules.append(rule)
        self._states[rule] = _RuleState()
        return rule

    def relative(self, path: Path | str) -> str | None:
        """Return the root-relative POSIX path, or None if it is not watched."""
        absolute = Path(path)
        if not absolute.is_absolute():
            absolute = self.root / absolute
        for ignored in self.ignore:
            if absolute == ignored or ignored in absolute.parents:
                return None
        try:
            return absolute.relative_to(self.root).as_posix()
        except ValueError:
            return None

    def notify(self, path: Path | str) -> list[WatchRule]:
        """Handle a change of ``path``. Must be called from the event loop.

        Returns:
            The rules whose debounce timers were (re)started.
        """
        rel = self.relative(path)
        if rel is None:
            return []
        matched = [rule for rule in self.rules if rule.matches(rel)]
        if matched:
            logger.debug("%s changed; triggering %s", rel, [r.name for r in matched])
        for rule in matched:
            self._schedule(rule)
        return matched

    def runs(self, rule: WatchRule) -> int:
        """Number of reactions ``rule`` has started."""
        return self._states[rule].runs

    def start(self) -> None:
        """Start the watchdog observer. Must be called from the event loop."""
        if self._observer is not None:
            return
        loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_ChangeHandler(self, loop), str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes", self.root)

    def stop(self) -> None:
        for state in self._states.values():
            if state.timer is not None:
                state.timer.cancel()
                state.timer = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    async def serve_forever(self) -> None:
        """Watch until cancelled."""
        self.start()
        try:
            await asyncio.Event().wait()
        finally:
            self.stop()

    async def wait_idle(self, poll: float = 0.01) -> None:
        """Wait until no timer is pending and no reaction is running."""
        while True:
            running = [
                s.task for s in self._states.values() if s.task is not None and not s.task.done()
            ]
            if running:
                await asyncio.wait(running)
                continue
            if any(s.timer is not None for s in self._states.values()):
                await asyncio.sleep(poll)
                continue
            return

    def _schedule(self, rule: WatchRule) -> None:
        state = self._states[rule]
        if state.timer is not None:
            state.timer.cancel()
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(rule.delay, self._fire, rule)

    def _fire(self, rule: WatchRule) -> None:
        state = self._states[rule]
        state.timer = None
        if state.task is not None and not state.task.done():
            state.pending = True
            logger.debug("'%s' is still running; queued a rerun", rule.name)
            return
        state.task = asyncio.get_running_loop().create_task(self._react(rule))

    async def _react(self, rule: WatchRule) -> None:
        state = self._states[rule]
        while True:
            state.pending = False
            state.runs += 1
            try:
                if rule.invalidate is not None:
                    rule.invalidate()
                await run(rule.reaction)
            except Exception as exc:
                logger.error("Reaction '%s' failed: %s", rule.name, exc)
            if not state.pending:
                return


class _ChangeHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the event loop."""

    def __init__(self, controller: WatchController, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.controller = controller
        self.loop = loop

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for path in paths:
            if isinstance(path, bytes):
                path = path.decode()
            self.loop.call_soon_threadsafe(self.controller.notify, path)
