import asyncio
import time
from dataclasses import dataclass

import pytest

from core.domain.execution import ExecutionConfig, StatusReport
from core.services.batch_executor import BatchCallbacks, BatchExecutor


@dataclass
class Item:
    id: str
    fail: bool = False
    delay: float = 0.0


@dataclass
class Outcome:
    id: str
    ok: bool


def extract(result: Outcome) -> StatusReport:
    return StatusReport(status="success" if result.ok else "failed")


def never_cancelled() -> bool:
    return False


@pytest.mark.asyncio
async def test_all_items_run_in_windows():
    in_flight = 0
    peak = 0
    batch_sizes = []

    async def run(item: Item) -> Outcome:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return Outcome(item.id, True)

    items = [Item(str(i)) for i in range(10)]
    result = await BatchExecutor().execute(
        items,
        run,
        ExecutionConfig(concurrent_calls=3),
        never_cancelled,
        extract,
        BatchCallbacks(on_batch_complete=lambda batch: batch_sizes.append(len(batch))),
    )

    assert len(result.results) == 10
    assert {r.id for r in result.results} == {str(i) for i in range(10)}
    assert (result.progress.total, result.progress.completed, result.progress.passed) == (10, 10, 10)
    assert result.progress.failed == 0
    assert batch_sizes == [3, 3, 3, 1]
    assert peak == 3
    assert not result.cancelled and not result.stopped_on_failure


@pytest.mark.asyncio
async def test_results_follow_completion_order():
    async def run(item: Item) -> Outcome:
        await asyncio.sleep(item.delay)
        return Outcome(item.id, True)

    items = [Item("slow", delay=0.2), Item("fast"), Item("medium", delay=0.05)]
    result = await BatchExecutor().execute(
        items, run, ExecutionConfig(concurrent_calls=3), never_cancelled, extract
    )

    assert [r.id for r in result.results] == ["fast", "medium", "slow"]


@pytest.mark.asyncio
async def test_stop_on_failure_truncates_at_batch_boundary():
    started = []

    async def run(item: Item) -> Outcome:
        return Outcome(item.id, not item.fail)

    items = [Item("0"), Item("1", fail=True), Item("2")] + [Item(str(i)) for i in range(3, 9)]
    result = await BatchExecutor().execute(
        items,
        run,
        ExecutionConfig(concurrent_calls=3, stop_on_failure=True),
        never_cancelled,
        extract,
        BatchCallbacks(on_item_start=started.append),
    )

    assert started == ["0", "1", "2"]
    assert len(result.results) == 3
    assert result.stopped_on_failure
    assert (result.progress.passed, result.progress.failed) == (2, 1)


@pytest.mark.asyncio
async def test_failures_without_stop_keep_going():
    async def run(item: Item) -> Outcome:
        return Outcome(item.id, not item.fail)

    items = [Item("a", fail=True), Item("b"), Item("c")]
    result = await BatchExecutor().execute(
        items, run, ExecutionConfig(concurrent_calls=1), never_cancelled, extract
    )

    assert len(result.results) == 3
    assert not result.stopped_on_failure
    assert result.progress.failed == 1


@pytest.mark.asyncio
async def test_cancellation_during_delay_resolves_early():
    flag = asyncio.Event()

    def cancel_soon(batch):
        asyncio.get_running_loop().call_later(0.1, flag.set)

    async def run(item: Item) -> Outcome:
        return Outcome(item.id, True)

    started = time.perf_counter()
    result = await BatchExecutor().execute(
        [Item("a"), Item("b")],
        run,
        ExecutionConfig(concurrent_calls=1, delay_between_calls=5000),
        flag.is_set,
        extract,
        BatchCallbacks(on_batch_complete=cancel_soon),
    )
    elapsed = time.perf_counter() - started

    assert elapsed < 1.0
    assert result.cancelled
    assert [r.id for r in result.results] == ["a"]


@pytest.mark.asyncio
async def test_cancel_delay_wakes_up_without_cancelling():
    executor: BatchExecutor = BatchExecutor()

    def wake(batch):
        asyncio.get_running_loop().call_later(0.05, executor.cancel_delay)

    async def run(item: Item) -> Outcome:
        return Outcome(item.id, True)

    started = time.perf_counter()
    result = await executor.execute(
        [Item("a"), Item("b")],
        run,
        ExecutionConfig(concurrent_calls=1, delay_between_calls=5000),
        never_cancelled,
        extract,
        BatchCallbacks(on_batch_complete=wake),
    )

    assert time.perf_counter() - started < 1.0
    assert len(result.results) == 2
    assert not result.cancelled


@pytest.mark.asyncio
async def test_cancelled_before_start_runs_nothing():
    async def run(item: Item) -> Outcome:
        raise AssertionError("must not run")

    result = await BatchExecutor().execute(
        [Item("a")], run, ExecutionConfig(), lambda: True, extract
    )

    assert result.results == []
    assert result.cancelled
    assert result.progress.completed == 0


@pytest.mark.asyncio
async def test_raising_executor_finishes_batch_then_raises():
    completed = []

    async def run(item: Item) -> Outcome:
        if item.fail:
            raise RuntimeError("boom")
        await asyncio.sleep(0.01)
        return Outcome(item.id, True)

    with pytest.raises(RuntimeError, match="boom"):
        await BatchExecutor().execute(
            [Item("bad", fail=True), Item("good")],
            run,
            ExecutionConfig(concurrent_calls=2),
            never_cancelled,
            extract,
            BatchCallbacks(on_item_complete=lambda r: completed.append(r.id)),
        )

    assert completed == ["good"]


@pytest.mark.asyncio
async def test_item_errors_can_become_results():
    async def run(item: Item) -> Outcome:
        raise RuntimeError("boom")

    result = await BatchExecutor().execute(
        [Item("x")],
        run,
        ExecutionConfig(),
        never_cancelled,
        extract,
        on_item_error=lambda item, exc: Outcome(item.id, False),
    )

    assert result.results == [Outcome("x", False)]
    assert result.progress.failed == 1
