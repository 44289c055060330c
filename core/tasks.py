"""
Deferred per-listing work units.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from .cancel import CancellationToken, raise_if_cancelled
from .merge import task_dedup_key
from .models import PipelineError
from .schema import NormalizedRecord, ResultItem


class TaskResult(BaseModel):
    """Normalized record plus the (at most one) error attached to it."""

    record: NormalizedRecord
    raw: Any = None
    error: Optional[PipelineError] = None
    detail_fetched: bool = False

    def to_item(self) -> ResultItem:
        return ResultItem(normalized=self.record, raw=self.raw)


Runner = Callable[[Optional[CancellationToken]], Awaitable[TaskResult]]


@dataclass(frozen=True)
class ProfileTask:
    """Creating a task does no I/O; :meth:`execute` does."""

    provider: str
    display_name: str
    target: str
    run: Runner

    @property
    def dedup_key(self) -> str:
        return task_dedup_key(self.provider, self.target)

    async def execute(self, token: Optional[CancellationToken] = None) -> TaskResult:
        raise_if_cancelled(token)
        return await self.run(token)
