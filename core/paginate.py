"""
paginate.py – sequential page enumeration.

:func:`paginate_until` only enumerates pages; deciding when to stop belongs to
the caller, usually through a :class:`ListingTracker` fed one page at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from .cancel import CancellationToken, raise_if_cancelled, sleep

logger = logging.getLogger(__name__)

T = TypeVar("T")

STOP_EMPTY = "empty"
STOP_STAGNATION = "stagnation"
STOP_LIMIT = "limit"


@dataclass(frozen=True)
class Page(Generic[T]):
    page: int
    items: List[T]


async def paginate_until(
    fetch_page: Callable[[int], Awaitable[List[T]]],
    *,
    first_page: int = 1,
    max_pages: int = 200,
    sleep_between: float = 0.0,
    token: Optional[CancellationToken] = None,
) -> AsyncIterator[Page[T]]:
    """Yield up to *max_pages* pages, strictly one after another."""
    for i in range(max_pages):
        page = first_page + i
        raise_if_cancelled(token)
        items = await fetch_page(page)
        yield Page(page=page, items=items)
        if sleep_between > 0 and i < max_pages - 1:
            await sleep(sleep_between, token)


class ListingTracker(Generic[T]):
    """Caller-side stop rule: empty page, stagnation, or item cap."""

    def __init__(
        self,
        key: Callable[[T], str],
        *,
        stagnation_threshold: int = 2,
        fetch_limit: Optional[int] = None,
    ) -> None:
        self._key = key
        self._threshold = stagnation_threshold
        self._limit = fetch_limit
        self._items: Dict[str, T] = {}
        self._stagnant_pages = 0

    @property
    def items(self) -> List[T]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def _full(self) -> bool:
        return self._limit is not None and len(self._items) >= self._limit

    def observe(self, items: Sequence[T]) -> Optional[str]:
        """Record one page and return a stop reason, or None to keep going."""
        if not items:
            return STOP_EMPTY

        added = 0
        for item in items:
            if self._full():
                break
            key = self._key(item)
            if key in self._items:
                continue
            self._items[key] = item
            added += 1

        if added == 0:
            self._stagnant_pages += 1
            if self._stagnant_pages >= self._threshold:
                return STOP_STAGNATION
        else:
            self._stagnant_pages = 0

        if self._full():
            return STOP_LIMIT
        return None
