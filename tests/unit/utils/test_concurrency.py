"""Unit tests for the bounded worker pool and timeout helpers."""

from __future__ import annotations

import asyncio
import gc
import sys
import warnings
from contextlib import contextmanager
from typing import TYPE_CHECKING

import pytest

from reqtrace.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextmanager
def _unraisable_hook() -> Iterator[list[object]]:
    captured: list[object] = []
    original = sys.unraisablehook
    sys.unraisablehook = captured.append
    try:
        yield captured
    finally:
        sys.unraisablehook = original


async def _value(value: int, delay: float = 0.0) -> int:
    await asyncio.sleep(delay)
    return value


@pytest.mark.unit
async def test_pool_yields_every_result() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    results = [result async for result in pool.run(_value(i, 0.001 * (5 - i)) for i in range(5))]
    assert sorted(results) == [0, 1, 2, 3, 4]


@pytest.mark.unit
async def test_pool_never_exceeds_concurrency_limit() -> None:
    active = 0
    peak = 0

    async def tracked() -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.005)
        active -= 1
        return 1

    pool: WorkerPool[int] = WorkerPool(max_concurrency=3)
    total = sum([result async for result in pool.run(tracked() for _ in range(10))])
    assert total == 10
    assert peak <= 3


@pytest.mark.unit
async def test_pool_reraises_first_failure_and_cancels_pending() -> None:
    finished: list[int] = []

    async def slow(value: int) -> int:
        await asyncio.sleep(1.0)
        finished.append(value)
        return value

    async def broken() -> int:
        raise RuntimeError("boom")

    pool: WorkerPool[int] = WorkerPool(max_concurrency=4)
    with pytest.raises(RuntimeError, match="boom"):
        async for _ in pool.run([slow(1), broken(), slow(2)]):
            pass
    assert finished == []


@pytest.mark.unit
def test_pool_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError, match="max_concurrency must be > 0"):
        WorkerPool(max_concurrency=0)


@pytest.mark.unit
async def test_pool_with_cancelled_token_runs_nothing() -> None:
    token = CancellationToken()
    token.cancel()
    pool: WorkerPool[int] = WorkerPool(max_concurrency=1, cancel_token=token)

    with _unraisable_hook() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(asyncio.CancelledError):
            async for _ in pool.run([_value(1), _value(2)]):
                pass
        gc.collect()

    assert leaked == []


@pytest.mark.unit
async def test_run_with_timeout_returns_result() -> None:
    assert await run_with_timeout(_value(7), 1.0) == 7


@pytest.mark.unit
async def test_run_with_timeout_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_seconds must be > 0"):
        await run_with_timeout(_value(1), 0)


@pytest.mark.unit
async def test_run_with_timeout_early_cancel_closes_coroutine() -> None:
    token = CancellationToken()
    token.cancel()

    with _unraisable_hook() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(asyncio.CancelledError):
            await run_with_timeout(_value(1, 0.01), 1.0, token)
        gc.collect()

    assert leaked == []


@pytest.mark.unit
async def test_run_with_timeout_timeout_path_closes_coroutine() -> None:
    with _unraisable_hook() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(TimeoutError, match="timed out after 0.001 seconds"):
            await run_with_timeout(_value(1, 0.05), 0.001)
        gc.collect()

    assert leaked == []


@pytest.mark.unit
async def test_run_with_timeout_stops_when_token_fires() -> None:
    token = CancellationToken()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel()

    canceller = asyncio.ensure_future(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_value(1, 1.0), 5.0, token)
    await canceller


@pytest.mark.unit
async def test_pool_retrieves_every_failure_in_a_batch() -> None:
    loop = asyncio.get_running_loop()
    reported: list[dict[str, object]] = []
    original_handler = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))

    async def broken(name: str) -> int:
        raise RuntimeError(name)

    pool: WorkerPool[int] = WorkerPool(max_concurrency=4)
    raised: list[str] = []
    try:
        try:
            async for _ in pool.run([broken("first"), broken("second"), broken("third")]):
                pass
        except RuntimeError as exc:
            raised.append(str(exc))
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(original_handler)

    assert len(raised) == 1
    assert [context.get("message") for context in reported] == []
