"""
Pipeline orchestrator: listing -> profile tasks -> merge -> result.

Each source is listed on its own; a source that fails its listing step is
recorded as failed and the run continues with the others.  Cancellation is
never recorded: it unwinds through :func:`run_pipeline` after the artifact
cache has been flushed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .cancel import CancellationToken, raise_if_cancelled
from .config import Settings
from .errors import OperationCancelled, PipelineException
from .infra.cache import CacheService
from .infra.scheduler import ProgressCallback, RateLimiter, TaskScheduler
from .interfaces import SourceAdapter
from .merge import merge_profiles
from .models import ErrorCode, ListOptions, PipelineError, SearchContext
from .schema import ResultItem
from .tasks import ProfileTask

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    NO_DATA = "no_data"


@dataclass
class PipelineResult:
    items: List[ResultItem] = field(default_factory=list)
    errors: List[PipelineError] = field(default_factory=list)
    listing_counts: Dict[str, int] = field(default_factory=dict)
    failed_sources: List[str] = field(default_factory=list)
    status: RunStatus = RunStatus.NO_DATA
    artifacts_written: List[str] = field(default_factory=list)


def run_status(items: Sequence[ResultItem], errors: Sequence[PipelineError], failed: Sequence[str]) -> RunStatus:
    if not items:
        return RunStatus.NO_DATA
    if failed or errors:
        return RunStatus.PARTIAL
    return RunStatus.OK


def options_from_settings(settings: Settings) -> ListOptions:
    return ListOptions(
        fetch_limit=settings.run.fetch_limit,
        budget_target=settings.budget.target,
        budget_max=settings.budget.max,
        dry_run=settings.run.dry_run,
    )


def dedupe_tasks(tasks: Sequence[ProfileTask]) -> List[ProfileTask]:
    """Keep the first task per ``(provider, target)``."""
    seen = set()
    unique: List[ProfileTask] = []
    for task in tasks:
        if task.dedup_key in seen:
            continue
        seen.add(task.dedup_key)
        unique.append(task)
    if len(unique) != len(tasks):
        logger.info(f"Dropped {len(tasks) - len(unique)} duplicate profile tasks")
    return unique


def _source_failure(adapter: SourceAdapter, exc: Exception) -> PipelineError:
    if isinstance(exc, PipelineException):
        error = exc.to_error()
    else:
        error = PipelineError.build(
            ErrorCode.LISTING_FETCH_FAILED,
            provider=adapter.name,
            message=str(exc) or type(exc).__name__,
        )
    logger.error(f"Source {adapter.name} failed: {error.message}")
    return error


async def _per_source(coros, adapters: Sequence[SourceAdapter]):
    """Gather one coroutine per source, separating results from fatal failures."""
    outcomes = await asyncio.gather(*coros, return_exceptions=True)
    results: List[Tuple[SourceAdapter, Any]] = []
    failures: List[Tuple[SourceAdapter, PipelineError]] = []
    for adapter, outcome in zip(adapters, outcomes):
        if isinstance(outcome, OperationCancelled):
            raise outcome
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, Exception):
            failures.append((adapter, _source_failure(adapter, outcome)))
        else:
            results.append((adapter, outcome))
    return results, failures


async def _run_tasks(
    adapters: Sequence[SourceAdapter],
    settings: Settings,
    options: ListOptions,
    context: SearchContext,
    token: Optional[CancellationToken],
    on_progress: Optional[ProgressCallback],
    result: PipelineResult,
) -> List[ResultItem]:
    listed, failures = await _per_source(
        [adapter.list(options, context, token) for adapter in adapters], adapters
    )
    tasks: List[ProfileTask] = []
    for adapter, outcome in listed:
        result.listing_counts[adapter.name] = outcome.listing_count
        result.errors.extend(outcome.errors)
        tasks.extend(outcome.tasks)
    for adapter, error in failures:
        result.failed_sources.append(adapter.name)
        result.errors.append(error)

    raise_if_cancelled(token)
    scheduler = TaskScheduler(
        concurrency=settings.run.concurrency,
        rate_limiter=RateLimiter({a.name: a.min_interval for a in adapters}),
        on_progress=on_progress,
    )
    scheduled = await scheduler.run(dedupe_tasks(tasks), token)
    result.errors.extend(scheduled.errors)
    return [r.to_item() for r in scheduled.results]


async def _run_batches(
    adapters: Sequence[SourceAdapter],
    options: ListOptions,
    context: SearchContext,
    token: Optional[CancellationToken],
    result: PipelineResult,
) -> List[ResultItem]:
    batches, failures = await _per_source(
        [adapter.run_batch(options, context, token) for adapter in adapters], adapters
    )
    items: List[ResultItem] = []
    for adapter, outcome in batches:
        result.listing_counts[adapter.name] = outcome.listing_count
        result.errors.extend(outcome.errors)
        items.extend(outcome.items)
    for adapter, error in failures:
        result.failed_sources.append(adapter.name)
        result.errors.append(error)
    return items


async def run_pipeline(
    adapters: Sequence[SourceAdapter],
    cache: CacheService,
    settings: Settings,
    context: SearchContext,
    token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
    prior_items: Optional[Sequence[ResultItem]] = None,
) -> PipelineResult:
    """Run every available source once and merge the records with *prior_items*."""
    options = options_from_settings(settings)
    result = PipelineResult()

    active: List[SourceAdapter] = []
    for adapter in adapters:
        if adapter.is_available():
            active.append(adapter)
        else:
            logger.warning(f"Skipping unavailable source: {adapter.name}")
    logger.info(
        f"Starting run ({settings.run.mode} mode): {[a.name for a in active]}"
    )

    try:
        raise_if_cancelled(token)
        if settings.run.mode == "batch":
            current = await _run_batches(active, options, context, token, result)
        else:
            current = await _run_tasks(
                active, settings, options, context, token, on_progress, result
            )
    finally:
        result.artifacts_written = await cache.flush_pending()
        if result.artifacts_written:
            logger.info(f"Wrote {len(result.artifacts_written)} new artifacts")

    result.items = merge_profiles(
        [current, list(prior_items or [])], record_of=lambda item: item.normalized
    )
    result.status = run_status(result.items, result.errors, result.failed_sources)
    logger.info(
        f"Run finished: status={result.status.value}, {len(result.items)} records, "
        f"{len(result.errors)} errors, failed sources={result.failed_sources}"
    )
    return result
