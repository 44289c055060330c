"""
Scheduler infrastructure for running profile tasks.

All tasks of a run, from every source, go through one :class:`TaskScheduler`:
bounded concurrency, a per-provider minimum dispatch interval and per-task
failure capture, so one failing task never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from ..cancel import CancellationToken, raise_if_cancelled, sleep
from ..errors import OperationCancelled
from ..models import ErrorCode, PipelineError, ProgressEvent, TaskState
from ..tasks import ProfileTask, TaskResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class RateLimiter:
    """Per-provider minimum interval between task dispatches.

    The check-then-wait-then-stamp sequence runs under one lock per provider,
    so two tasks of the same provider can never both under-wait.
    """

    def __init__(
        self,
        intervals: Optional[Mapping[str, float]] = None,
        *,
        default_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._intervals: Dict[str, float] = dict(intervals or {})
        self._default = default_interval
        self._clock = clock
        self._last_dispatch: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def interval_for(self, provider: str) -> float:
        return self._intervals.get(provider, self._default)

    async def wait(self, provider: str, token: Optional[CancellationToken] = None) -> None:
        interval = self.interval_for(provider)
        async with self._locks[provider]:
            last = self._last_dispatch.get(provider)
            if interval > 0 and last is not None:
                delay = max(0.0, interval - (self._clock() - last))
                if delay > 0:
                    await sleep(delay, token)
            self._last_dispatch[provider] = self._clock()


class ScheduleResult(BaseModel):
    results: List[TaskResult] = Field(default_factory=list)
    errors: List[PipelineError] = Field(default_factory=list)


class TaskScheduler:
    def __init__(
        self,
        *,
        concurrency: int = 4,
        rate_limiter: Optional[RateLimiter] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self._rate_limiter = rate_limiter or RateLimiter()
        self._on_progress = on_progress

    # ---------------------------------------------- #
    def _report(
        self,
        worker_id: int,
        task: ProfileTask,
        state: TaskState,
        completed: int,
        total: int,
        message: Optional[str] = None,
    ) -> None:
        if self._on_progress is None:
            return
        self._on_progress(
            ProgressEvent(
                worker_id=worker_id,
                provider=task.provider,
                display_name=task.display_name,
                target=task.target,
                state=state,
                completed=completed,
                total=total,
                message=message,
            )
        )

    async def run(
        self,
        tasks: Sequence[ProfileTask],
        token: Optional[CancellationToken] = None,
    ) -> ScheduleResult:
        """Run every task; raise :class:`OperationCancelled` if the run was cancelled."""
        semaphore = asyncio.Semaphore(self.concurrency)
        total = len(tasks)
        completed = 0

        async def _run_one(index: int, task: ProfileTask) -> TaskResult:
            nonlocal completed
            worker_id = index % self.concurrency + 1
            async with semaphore:
                raise_if_cancelled(token)
                self._report(worker_id, task, TaskState.FETCHING, completed, total)
                try:
                    await self._rate_limiter.wait(task.provider, token)
                    result = await task.execute(token)
                except OperationCancelled:
                    raise
                except Exception as exc:
                    completed += 1
                    self._report(worker_id, task, TaskState.ERROR, completed, total, type(exc).__name__)
                    raise
                completed += 1
                state = TaskState.ERROR if result.error is not None else TaskState.DONE
                self._report(worker_id, task, state, completed, total)
                return result

        logger.info("Scheduling %d profile tasks (concurrency=%d)", total, self.concurrency)
        outcomes = await asyncio.gather(
            *(_run_one(i, t) for i, t in enumerate(tasks)), return_exceptions=True
        )

        out = ScheduleResult()
        cancelled = False
        for task, outcome in zip(tasks, outcomes):
            if isinstance(outcome, OperationCancelled):
                cancelled = True
            elif isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                out.errors.append(
                    PipelineError.build(
                        ErrorCode.NORMALIZE_FAILED,
                        provider=task.provider,
                        target=task.target,
                        message=str(outcome) or type(outcome).__name__,
                    )
                )
            else:
                out.results.append(outcome)
                if outcome.error is not None:
                    out.errors.append(outcome.error)

        if cancelled or (token is not None and token.cancelled):
            raise OperationCancelled(token.reason if token is not None else "Operation cancelled")

        logger.info(
            "Profile tasks finished: %d records, %d errors", len(out.results), len(out.errors)
        )
        return out
