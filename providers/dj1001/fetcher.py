"""dj1001.fetcher – 1001dj.com source adapter.

Search result pages are plain HTML, fetched one page at a time through the
artifact cache (``listing_page``); profile pages go through the same cache as
``profile_page`` and are never retried.
"""
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlencode

from core.cancel import CancellationToken
from core.interfaces import SourceAdapter
from core.merge import JoinKeys
from core.models import ArtifactRequest, ListOptions, SearchContext
from core.schema import NormalizedRecord

from .normalize import PROVIDER, normalize_dj
from .parser import (
    BASE_URL,
    DjListing,
    DjProfileDetails,
    parse_profile_page,
    parse_search_page,
    profile_id_from_url,
    profile_slug_from_url,
)

logger = logging.getLogger(__name__)

__all__ = ["Dj1001Source"]

SEARCH_ENDPOINT = f"{BASE_URL}/recherche"


def search_url(page: int, event_type: str = "mariage") -> str:
    query = {"form-search-page": str(page), "form-search-type-event": event_type}
    return f"{SEARCH_ENDPOINT}?{urlencode(query)}"


class Dj1001Source(SourceAdapter[DjListing, DjProfileDetails]):
    name = PROVIDER
    display_name = "1001DJ"
    min_interval = 0.03
    page_delay = 0.1
    timeout = 20.0

    # ------------------------------------------------------------------- #
    async def _get_html(
        self,
        artifact_type: str,
        url: str,
        referer: str,
        token: Optional[CancellationToken],
        max_retries: Optional[int] = None,
    ) -> str:
        async def fetch() -> str:
            return await self._http.get_text(
                url,
                headers={"referer": referer},
                timeout=self.timeout,
                max_retries=max_retries,
                token=token,
            )

        return await self._cache.get_html(
            artifact_type, ArtifactRequest(method="GET", url=url), fetch
        )

    async def fetch_listings(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[DjListing]:
        referer = search_url(1)

        async def fetch_page(page: int) -> List[DjListing]:
            html = await self._get_html("listing_page", search_url(page), referer, token)
            return parse_search_page(html)

        return await self.collect_pages(fetch_page, lambda entry: entry.url, options, token)

    # ------------------------------------------------------------------- #
    def listing_target(self, listing: DjListing) -> Optional[str]:
        return listing.url

    async def fetch_detail(self, target: str, token: Optional[CancellationToken]) -> str:
        return await self._get_html("profile_page", target, f"{BASE_URL}/", token, max_retries=1)

    def parse_detail(self, html: str) -> DjProfileDetails:
        return parse_profile_page(html)

    def normalize(
        self, listing: DjListing, detail: Optional[DjProfileDetails], options: ListOptions
    ) -> NormalizedRecord:
        return normalize_dj(listing, detail, options.budget_target, options.budget_max)

    def listing_keys(self, listing: DjListing) -> JoinKeys:
        return JoinKeys(
            url=listing.url,
            id=listing.profile_id or profile_id_from_url(listing.url),
            slug=profile_slug_from_url(listing.url),
        )

    def target_keys(self, target: str) -> JoinKeys:
        return JoinKeys(url=target, id=profile_id_from_url(target), slug=profile_slug_from_url(target))
