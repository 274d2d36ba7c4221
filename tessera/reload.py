"""Live reload signal.

The last step of a watch reaction asks the browser to reload. The signal is
bound to the dev server once it is running; before that, or without a server,
emitting is a no-op. Errors raised while signalling are logged and never fail
the reaction.
"""

from __future__ import annotations

from collections.abc import Callable

from .logging import get_logger
from .tasks import TaskUnit

logger = get_logger("reload")


class ReloadSignal:
    """One-way notification to a live-reload collaborator."""

    def __init__(self, reloader: Callable[[], None] | None = None):
        self._reloader = reloader

    def bind(self, reloader: Callable[[], None] | None) -> None:
        self._reloader = reloader

    def emit(self) -> None:
        if self._reloader is None:
            logger.debug("reload requested but no live-reload server is bound")
            return
        try:
            self._reloader()
        except Exception as exc:
            logger.warning("live reload signal failed: %s", exc)

    def as_task(self, name: str = "reload") -> TaskUnit:
        return TaskUnit(name, self.emit)
