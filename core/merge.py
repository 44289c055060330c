"""
merge.py – joining detail pages onto listings, and cross-source dedup.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import (
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from .models import PipelineError, ProfileParseOutcome
from .schema import NormalizedRecord

logger = logging.getLogger(__name__)

L = TypeVar("L")
R = TypeVar("R")


@dataclass(frozen=True)
class JoinKeys:
    url: Optional[str] = None
    id: Optional[str] = None
    slug: Optional[str] = None


@dataclass
class MergedListing(Generic[L]):
    listing: L
    detail: Optional[object] = None


@dataclass
class MergeResult(Generic[L]):
    merged: List[MergedListing[L]] = field(default_factory=list)
    errors: List[PipelineError] = field(default_factory=list)


def join_listings(
    listings: Sequence[L],
    outcomes: Iterable[ProfileParseOutcome],
    *,
    listing_keys: Callable[[L], JoinKeys],
    target_keys: Callable[[str], JoinKeys],
) -> MergeResult[L]:
    """Attach each parsed detail page to its listing.

    Lookup order per listing is exact URL, then the numeric id taken from the
    URL, then the slug.  A listing without a match keeps ``detail=None``; that
    is not an error, the failure (if any) was reported by its outcome.
    """
    result: MergeResult[L] = MergeResult()
    by_url: Dict[str, object] = {}
    by_id: Dict[str, object] = {}
    by_slug: Dict[str, object] = {}

    for outcome in outcomes:
        if not outcome.success:
            if outcome.error is not None:
                result.errors.append(outcome.error)
            continue
        keys = target_keys(outcome.target)
        by_url.setdefault(outcome.target, outcome.data)
        if keys.id:
            by_id.setdefault(keys.id, outcome.data)
        if keys.slug:
            by_slug.setdefault(keys.slug, outcome.data)

    for listing in listings:
        keys = listing_keys(listing)
        detail = None
        if keys.url and keys.url in by_url:
            detail = by_url[keys.url]
        elif keys.id and keys.id in by_id:
            detail = by_id[keys.id]
        elif keys.slug and keys.slug in by_slug:
            detail = by_slug[keys.slug]
        result.merged.append(MergedListing(listing=listing, detail=detail))

    return result


# ---------------------------------------------- #
# Cross-source dedup
def dedup_key(record: NormalizedRecord) -> Tuple[str, ...]:
    if record.provider_id is not None:
        return (record.provider, record.provider_id)
    if record.profile_url is not None:
        return (record.provider, "url", record.profile_url)
    return ("unique", uuid.uuid4().hex)


def merge_profiles(
    record_sets: Iterable[Iterable[R]],
    *,
    record_of: Optional[Callable[[R], NormalizedRecord]] = None,
) -> List[R]:
    """Flatten *record_sets* in order, keeping the first record per dedup key.

    Records with neither a provider id nor a profile URL are always kept.
    """
    seen = set()
    merged: List[R] = []
    dropped = 0
    for records in record_sets:
        for item in records:
            record = record_of(item) if record_of else item
            key = dedup_key(record)  # type: ignore[arg-type]
            if key in seen:
                dropped += 1
                continue
            seen.add(key)
            merged.append(item)
    if dropped:
        logger.info("Dropped %d duplicate records (kept %d)", dropped, len(merged))
    return merged


def task_dedup_key(provider: str, target: str) -> str:
    return json.dumps([provider, target], ensure_ascii=False)
