"""Collect the annotations of many source units into one corpus."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog

from reqtrace.annotations.models import AnnotationSet
from reqtrace.annotations.source_unit import SourceUnit, extract_annotations
from reqtrace.config.loader import IngestSettings
from reqtrace.observability.logging import correlation_scope
from reqtrace.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout


def collect_annotations(
    units: Iterable[SourceUnit],
    *,
    settings: IngestSettings | None = None,
    logger: Any | None = None,
) -> AnnotationSet:
    """Extract every unit in order and union the results; the first failure propagates."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    corpus = AnnotationSet()
    unit_count = 0
    for unit in units:
        corpus.update(_extract_in_scope(unit, settings, log))
        unit_count += 1
    log.info("annotation_corpus_collected", unit_count=unit_count, annotation_count=len(corpus))
    return corpus


async def collect_annotations_async(
    units: Iterable[SourceUnit],
    *,
    settings: IngestSettings | None = None,
    max_concurrency: int | None = None,
    timeout_seconds: float | None = None,
    cancel_token: CancellationToken | None = None,
    logger: Any | None = None,
) -> AnnotationSet:
    """
    Extract units in worker threads with bounded concurrency.

    Results are merged on the event loop as they complete, so no locking is
    needed around the corpus. The first failing unit cancels the rest. With
    ``timeout_seconds`` the whole collection raises ``TimeoutError`` once the
    budget is spent; extraction already running in threads is abandoned.
    """

    resolved = settings if settings is not None else IngestSettings()
    limit = max_concurrency if max_concurrency is not None else resolved.max_concurrency
    log = logger if logger is not None else structlog.get_logger(__name__)
    pool: WorkerPool[AnnotationSet] = WorkerPool(max_concurrency=limit, cancel_token=cancel_token)
    pending_units = list(units)

    async def gather() -> AnnotationSet:
        corpus = AnnotationSet()
        async for annotations in pool.run(
            asyncio.to_thread(_extract_in_scope, unit, resolved, log)
            for unit in pending_units
        ):
            corpus.update(annotations)
        return corpus

    if timeout_seconds is None:
        corpus = await gather()
    else:
        corpus = await run_with_timeout(gather(), timeout_seconds, cancel_token)

    log.info(
        "annotation_corpus_collected",
        unit_count=len(pending_units),
        annotation_count=len(corpus),
        max_concurrency=limit,
    )
    return corpus


def _extract_in_scope(
    unit: SourceUnit, settings: IngestSettings | None, log: Any
) -> AnnotationSet:
    # Runs on worker threads too; the scope binds in whichever thread runs it.
    with correlation_scope(source_path=unit.path.as_posix()):
        return extract_annotations(unit, settings=settings, logger=log)


__all__ = ["collect_annotations", "collect_annotations_async"]
