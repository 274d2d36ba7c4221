import asyncio
import logging

import pytest

from tessera.errors import TaskFailure
from tessera.reload import ReloadSignal
from tessera.tasks import (
    Leaf,
    Parallel,
    Series,
    TaskUnit,
    as_node,
    iter_leaves,
    parallel,
    run,
    run_sync,
    series,
    task,
)


def recorder(log, name, delay=0.0, fail=False):
    async def body():
        log.append(f"{name}:start")
        await asyncio.sleep(delay)
        if fail:
            raise RuntimeError(f"{name} broke")
        log.append(f"{name}:end")

    return TaskUnit(name, body)


def test_series_runs_children_in_order():
    log = []
    graph = series(recorder(log, "a", delay=0.02), recorder(log, "b"))
    run_sync(graph)
    assert log == ["a:start", "a:end", "b:start", "b:end"]


def test_series_stops_at_first_failure():
    log = []
    graph = series(recorder(log, "a", fail=True), recorder(log, "b"))
    with pytest.raises(TaskFailure) as excinfo:
        run_sync(graph)
    assert excinfo.value.task_name == "a"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert log == ["a:start"]


def test_parallel_interleaves_and_waits_for_all():
    log = []
    graph = parallel(recorder(log, "slow", delay=0.05), recorder(log, "fast", delay=0.0))
    run_sync(graph)
    assert log.index("fast:end") < log.index("slow:end")
    assert log[:2] == ["slow:start", "fast:start"]
    assert len(log) == 4


def test_parallel_reports_failure_after_siblings_finish():
    log = []
    graph = series(
        parallel(recorder(log, "bad", fail=True), recorder(log, "good", delay=0.03)),
        recorder(log, "after"),
    )
    with pytest.raises(TaskFailure) as excinfo:
        run_sync(graph)
    assert excinfo.value.task_name == "bad"
    assert "good:end" in log
    assert "after:start" not in log


def test_parallel_first_failure_wins_and_others_are_logged(caplog):
    log = []
    graph = parallel(
        recorder(log, "late", delay=0.03, fail=True),
        recorder(log, "early", fail=True),
    )
    with caplog.at_level(logging.WARNING, logger="tessera"):
        with pytest.raises(TaskFailure) as excinfo:
            run_sync(graph)
    assert excinfo.value.task_name == "early"
    assert "late broke" in caplog.text


def test_sync_callables_and_nested_graphs():
    log = []

    @task()
    def first():
        log.append("first")

    def second():
        log.append("second")

    inner = parallel(second, name="inner")
    graph = series(first, inner, lambda: log.append("third"))
    run_sync(graph)
    assert log == ["first", "second", "third"]
    assert first.name == "first"
    assert isinstance(graph.children[0], Leaf)
    assert isinstance(graph.children[1], Parallel)


def test_leaf_logs_start_and_finish(caplog):
    with caplog.at_level(logging.INFO, logger="tessera"):
        run_sync(series(TaskUnit("hello", lambda: None)))
    assert "Starting 'hello'" in caplog.text
    assert "Finished 'hello'" in caplog.text


def test_as_node_rejects_non_callables():
    with pytest.raises(TypeError):
        as_node(42)
    node = Series((Leaf(TaskUnit("x", lambda: None)),))
    assert as_node(node) is node


def test_iter_leaves_in_definition_order():
    a, b, c = (TaskUnit(n, lambda: None) for n in "abc")
    graph = series(a, parallel(b, c))
    assert [u.name for u in iter_leaves(graph)] == ["a", "b", "c"]


def test_run_rejects_unknown_nodes():
    with pytest.raises(TypeError):
        asyncio.run(run("nope"))


def test_reload_signal_never_fails_the_graph(caplog):
    log = []

    def broken_reload():
        raise ConnectionError("browser gone")

    signal = ReloadSignal(broken_reload)
    graph = series(recorder(log, "pages"), signal.as_task(), recorder(log, "after"))
    with caplog.at_level(logging.WARNING, logger="tessera"):
        run_sync(graph)
    assert log[-1] == "after:end"
    assert "browser gone" in caplog.text


def test_reload_signal_without_reloader_is_noop():
    signal = ReloadSignal()
    signal.emit()
    calls = []
    signal.bind(lambda: calls.append("reload"))
    signal.emit()
    assert calls == ["reload"]
