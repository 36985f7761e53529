"""Async concurrency primitives for fanning out per-file work."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run awaitables with bounded concurrency and yield results as they finish.

    The first failure cancels every task still pending and is re-raised.
    """

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    _token: CancellationToken = field(init=False, repr=False)
    _semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._token = self.cancel_token or CancellationToken()
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def run(self, awaitables: Iterable[Awaitable[T]]) -> AsyncIterator[T]:
        pending: set[asyncio.Task[T]] = set()
        for awaitable in awaitables:
            if self._token.is_cancelled:
                _close_unscheduled(awaitable)
                continue
            pending.add(asyncio.ensure_future(self._run_one(awaitable)))

        try:
            while pending:
                self._token.raise_if_cancelled()
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                # Retrieve every failure in the batch so none is reported as unretrieved.
                failures = [
                    exc
                    for task in done
                    if not task.cancelled() and (exc := task.exception()) is not None
                ]
                if failures:
                    raise failures[0]
                if any(task.cancelled() for task in done):
                    raise asyncio.CancelledError("worker task cancelled")
                for task in done:
                    yield task.result()
            self._token.raise_if_cancelled()
        finally:
            await _cancel_all(pending)

    async def _run_one(self, awaitable: Awaitable[T]) -> T:
        async with self._semaphore:
            if self._token.is_cancelled:
                _close_unscheduled(awaitable)
                raise asyncio.CancelledError("operation cancelled")
            return await awaitable


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``awaitable`` until it finishes, times out, or ``cancel_token`` fires."""

    if timeout_seconds <= 0:
        _close_unscheduled(awaitable)
        raise ValueError("timeout_seconds must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled(awaitable)
        raise asyncio.CancelledError("operation cancelled")

    work = asyncio.ensure_future(awaitable)
    cancelled = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {work, cancelled}, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
        if work in done:
            return work.result()
        if cancelled in done:
            raise asyncio.CancelledError("operation cancelled")
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        await _cancel_all({work, cancelled})


async def _cancel_all(tasks: Iterable[asyncio.Future[Any]]) -> None:
    unfinished = [task for task in tasks if not task.done()]
    for task in unfinished:
        task.cancel()
    if unfinished:
        with suppress(Exception):
            await asyncio.gather(*unfinished, return_exceptions=True)


def _close_unscheduled(awaitable: Awaitable[object]) -> None:
    # A raw coroutine that is never scheduled must be closed, or CPython warns
    # "coroutine was never awaited" when it is collected.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "WorkerPool",
    "run_with_timeout",
]
