"""
Core interfaces for the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Sequence,
    TypeVar,
)

import aiohttp
from pydantic import BaseModel

from .cancel import CancellationToken, raise_if_cancelled
from .errors import (
    InvalidArtifactPayload,
    ListingFetchError,
    ListingParseError,
    OperationCancelled,
    PipelineException,
)
from .infra.http import HttpStatusError
from .infra.scheduler import RateLimiter
from .merge import JoinKeys, join_listings
from .models import (
    Artifact,
    ArtifactRequest,
    ErrorCode,
    ListOptions,
    PipelineError,
    ProfileParseOutcome,
    SearchContext,
)
from .paginate import ListingTracker, paginate_until
from .schema import NormalizedRecord, ResultItem
from .tasks import ProfileTask, TaskResult

if TYPE_CHECKING:
    from .config import Settings
    from .infra.cache import CacheService
    from .infra.http import HttpClient

logger = logging.getLogger(__name__)

L = TypeVar("L")
D = TypeVar("D")


class ArtifactStore(ABC):
    """Durable payload storage keyed by ``(artifact_type, request)``."""

    @abstractmethod
    async def read(self, artifact_type: str, request: ArtifactRequest) -> Optional[str]:
        """Return the stored payload, or None.  Must not have side effects."""

    @abstractmethod
    async def write(self, artifacts: Sequence[Artifact]) -> List[str]:
        """Persist *artifacts*, returning where each one went."""


@dataclass
class ListResult:
    tasks: List[ProfileTask] = field(default_factory=list)
    listing_count: int = 0
    errors: List[PipelineError] = field(default_factory=list)


@dataclass
class BatchResult:
    items: List[ResultItem] = field(default_factory=list)
    listing_count: int = 0
    errors: List[PipelineError] = field(default_factory=list)


class SourceAdapter(ABC, Generic[L, D]):
    """One external source.

    Subclasses supply listing discovery, detail fetch/parse and normalization;
    this base turns them into profile tasks (:meth:`list`) or a joined batch
    (:meth:`run_batch`).  Listing failures are raised as
    :class:`ListingFetchError` / :class:`ListingParseError`; everything after
    the listing step is attached to a single item.
    """

    name: str = ""
    display_name: str = ""
    min_interval: float = 0.0
    page_delay: float = 0.0
    timeout: float = 15.0

    def __init__(
        self,
        *,
        http: "HttpClient",
        cache: "CacheService",
        settings: "Settings",
    ) -> None:
        self._http = http
        self._cache = cache
        self._settings = settings

        overrides = settings.provider(self.name)
        if overrides.min_interval is not None:
            self.min_interval = overrides.min_interval
        if overrides.page_delay is not None:
            self.page_delay = overrides.page_delay
        if overrides.timeout is not None:
            self.timeout = overrides.timeout
        self.max_pages = overrides.max_pages or settings.pagination.max_pages
        self.stagnation_threshold = settings.pagination.stagnation_threshold

    def is_available(self) -> bool:
        return True

    # ---------------------------------------------- #
    # Source-specific hooks
    @abstractmethod
    async def fetch_listings(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[L]:
        """Discover listing entries, in source order."""

    @abstractmethod
    def listing_target(self, listing: L) -> Optional[str]:
        """Detail-page URL of *listing*, if it has one."""

    @abstractmethod
    async def fetch_detail(self, target: str, token: Optional[CancellationToken]) -> str:
        """Fetch the detail page through the artifact cache."""

    @abstractmethod
    def parse_detail(self, html: str) -> D:
        ...

    @abstractmethod
    def normalize(self, listing: L, detail: Optional[D], options: ListOptions) -> NormalizedRecord:
        ...

    @abstractmethod
    def listing_keys(self, listing: L) -> JoinKeys:
        ...

    @abstractmethod
    def target_keys(self, target: str) -> JoinKeys:
        ...

    def raw_listing(self, listing: L) -> Any:
        if isinstance(listing, BaseModel):
            return listing.model_dump(mode="json")
        return listing

    # ---------------------------------------------- #
    # Shared plumbing
    async def collect_pages(
        self,
        fetch_page: Callable[[int], Awaitable[List[L]]],
        key: Callable[[L], str],
        options: ListOptions,
        token: Optional[CancellationToken],
        *,
        first_page: int = 1,
    ) -> List[L]:
        """Paginate until an empty page, stagnation, or the fetch limit."""
        tracker: ListingTracker[L] = ListingTracker(
            key,
            stagnation_threshold=self.stagnation_threshold,
            fetch_limit=options.fetch_limit,
        )
        async for page in paginate_until(
            fetch_page,
            first_page=first_page,
            max_pages=self.max_pages,
            sleep_between=self.page_delay,
            token=token,
        ):
            reason = tracker.observe(page.items)
            logger.info(
                "%s – page %d: %d items, %d unique so far",
                self.name,
                page.page,
                len(page.items),
                len(tracker),
            )
            if reason:
                logger.info("%s – stopping pagination (%s)", self.name, reason)
                break
        return tracker.items

    async def _fetch_listings_or_raise(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[L]:
        try:
            return await self.fetch_listings(options, context, token)
        except (OperationCancelled, PipelineException):
            raise
        except (
            HttpStatusError,
            InvalidArtifactPayload,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            OSError,
        ) as exc:
            raise ListingFetchError(str(exc) or type(exc).__name__, provider=self.name) from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise ListingParseError(str(exc) or type(exc).__name__, provider=self.name) from exc

    async def _detail_outcome(
        self, target: str, token: Optional[CancellationToken]
    ) -> ProfileParseOutcome:
        try:
            html = await self.fetch_detail(target, token)
        except OperationCancelled:
            raise
        except Exception as exc:
            logger.debug("%s – detail fetch failed for %s", self.name, target)
            return ProfileParseOutcome(
                success=False,
                target=target,
                error=PipelineError.build(
                    ErrorCode.PROFILE_FETCH_FAILED,
                    provider=self.name,
                    target=target,
                    message=str(exc) or type(exc).__name__,
                ),
            )
        try:
            data = self.parse_detail(html)
        except Exception as exc:
            return ProfileParseOutcome(
                success=False,
                target=target,
                error=PipelineError.build(
                    ErrorCode.PROFILE_PARSE_FAILED,
                    provider=self.name,
                    target=target,
                    message=str(exc) or type(exc).__name__,
                ),
            )
        return ProfileParseOutcome(success=True, target=target, data=data)

    def make_task(self, listing: L, options: ListOptions, index: int = 0) -> ProfileTask:
        url = self.listing_target(listing)

        async def run(token: Optional[CancellationToken]) -> TaskResult:
            outcome = await self._detail_outcome(url, token) if url else None
            detail = outcome.data if outcome is not None and outcome.success else None
            record = self.normalize(listing, detail, options)
            return TaskResult(
                record=record,
                raw=self.raw_listing(listing),
                error=outcome.error if outcome is not None else None,
                detail_fetched=detail is not None,
            )

        return ProfileTask(
            provider=self.name,
            display_name=self.display_name,
            target=url or f"{self.name}:listing:{index}",
            run=run,
        )

    # ---------------------------------------------- #
    # Entry points
    async def list(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken] = None,
    ) -> ListResult:
        raise_if_cancelled(token)
        if options.dry_run:
            return ListResult()

        listings = await self._fetch_listings_or_raise(options, context, token)
        if options.fetch_limit is not None:
            listings = listings[: options.fetch_limit]
        tasks = [self.make_task(listing, options, i) for i, listing in enumerate(listings)]
        logger.info("%s – %d listings, %d tasks", self.name, len(listings), len(tasks))
        return ListResult(tasks=tasks, listing_count=len(listings))

    async def run_batch(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """Fetch every detail page up front, then join them onto the listings."""
        raise_if_cancelled(token)
        if options.dry_run:
            return BatchResult()

        listings = await self._fetch_listings_or_raise(options, context, token)
        if options.fetch_limit is not None:
            listings = listings[: options.fetch_limit]

        targets: List[str] = []
        for listing in listings:
            url = self.listing_target(listing)
            if url and url not in targets:
                targets.append(url)

        semaphore = asyncio.Semaphore(self._settings.run.concurrency)
        limiter = RateLimiter({self.name: self.min_interval})

        async def _one(target: str) -> ProfileParseOutcome:
            async with semaphore:
                raise_if_cancelled(token)
                await limiter.wait(self.name, token)
                return await self._detail_outcome(target, token)

        outcomes = await asyncio.gather(*(_one(t) for t in targets))
        merged = join_listings(
            listings, outcomes, listing_keys=self.listing_keys, target_keys=self.target_keys
        )

        result = BatchResult(listing_count=len(listings), errors=list(merged.errors))
        for entry in merged.merged:
            try:
                record = self.normalize(entry.listing, entry.detail, options)
            except Exception as exc:
                result.errors.append(
                    PipelineError.build(
                        ErrorCode.NORMALIZE_FAILED,
                        provider=self.name,
                        target=self.listing_target(entry.listing),
                        message=str(exc) or type(exc).__name__,
                    )
                )
                continue
            result.items.append(ResultItem(normalized=record, raw=self.raw_listing(entry.listing)))

        logger.info(
            "%s – batch done: %d records, %d errors", self.name, len(result.items), len(result.errors)
        )
        return result


class Sink(ABC):
    """Abstract base class for output sinks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this sink."""

    @abstractmethod
    async def handle(self, item: Any) -> None:
        """Handle an item."""

    async def __aenter__(self) -> "Sink":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None
