"""Build task graph.

Tasks are named, side-effecting steps (``TaskUnit``). They are composed into a
graph of ``Leaf``, ``Series`` and ``Parallel`` nodes and evaluated by ``run``:

- Series runs its children one after the other and stops at the first failure.
- Parallel schedules all children concurrently on the event loop, lets every
  child settle, then reports the first failure it observed.

Graphs are assembled once, up front, with ``series`` and ``parallel``::

    build = series(clean, templates, parallel(pages, javascript), sass)
    run_sync(build)
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

from .errors import TaskFailure
from .logging import get_logger

logger = get_logger("tasks")

TaskFn = Callable[[], Union[Awaitable[Any], None]]


@dataclass(frozen=True)
class TaskUnit:
    """A named step of the build.

    Attributes:
        name: Name used in logs and by ``tessera run``.
        fn: Zero-argument callable; may be a coroutine function.
    """

    name: str
    fn: TaskFn

    async def __call__(self) -> None:
        result = self.fn()
        if inspect.isawaitable(result):
            await result


def task(name: str | None = None) -> Callable[[TaskFn], TaskUnit]:
    """Decorator turning a zero-argument function into a TaskUnit."""

    def decorator(fn: TaskFn) -> TaskUnit:
        return TaskUnit(name or fn.__name__, fn)

    return decorator


@dataclass(frozen=True)
class Leaf:
    unit: TaskUnit

    @property
    def name(self) -> str:
        return self.unit.name


@dataclass(frozen=True)
class Series:
    children: tuple[Node, ...]
    name: str = "<series>"


@dataclass(frozen=True)
class Parallel:
    children: tuple[Node, ...]
    name: str = "<parallel>"


Node = Union[Leaf, Series, Parallel]


def as_node(item: Any) -> Node:
    """Coerce a unit, plain callable or node into a graph node."""
    if isinstance(item, (Leaf, Series, Parallel)):
        return item
    if isinstance(item, TaskUnit):
        return Leaf(item)
    if callable(item):
        return Leaf(TaskUnit(getattr(item, "__name__", repr(item)), item))
    raise TypeError(f"cannot use {item!r} as a task")


def series(*items: Any, name: str = "<series>") -> Series:
    return Series(tuple(as_node(item) for item in items), name=name)


def parallel(*items: Any, name: str = "<parallel>") -> Parallel:
    return Parallel(tuple(as_node(item) for item in items), name=name)


def iter_leaves(node: Node):
    """Yield every TaskUnit of ``node`` in definition order."""
    if isinstance(node, Leaf):
        yield node.unit
        return
    for child in node.children:
        yield from iter_leaves(child)


async def run(node: Node) -> None:
    """Evaluate a graph node.

    Raises:
        TaskFailure: A leaf failed. In a Series the remaining siblings are
            skipped; in a Parallel the siblings already running finish first.
    """
    if isinstance(node, Leaf):
        await _run_leaf(node.unit)
    elif isinstance(node, Series):
        for child in node.children:
            await run(child)
    elif isinstance(node, Parallel):
        await _run_parallel(node)
    else:
        raise TypeError(f"not a task graph node: {node!r}")


def run_sync(node: Node) -> None:
    """Run a graph to completion from synchronous code."""
    asyncio.run(run(node))


async def _run_leaf(unit: TaskUnit) -> None:
    logger.info("Starting '%s'...", unit.name)
    started = time.perf_counter()
    try:
        await unit()
    except TaskFailure:
        raise
    except Exception as exc:
        elapsed = _elapsed_ms(started)
        logger.error("'%s' errored after %.0f ms: %s", unit.name, elapsed, exc)
        raise TaskFailure(unit.name, exc) from exc
    logger.info("Finished '%s' after %.0f ms", unit.name, _elapsed_ms(started))


async def _run_parallel(node: Parallel) -> None:
    futures = [asyncio.ensure_future(run(child)) for child in node.children]
    failures: list[Exception] = []
    try:
        for next_done in asyncio.as_completed(futures):
            try:
                await next_done
            except Exception as exc:
                failures.append(exc)
    except asyncio.CancelledError:
        for future in futures:
            future.cancel()
        raise
    if not failures:
        return
    for extra in failures[1:]:
        logger.warning("%s: additional failure: %s", node.name, extra)
    raise failures[0]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
