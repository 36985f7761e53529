"""Utility exports for concurrency helpers."""

from reqtrace.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout

__all__ = [
    "CancellationToken",
    "WorkerPool",
    "run_with_timeout",
]
