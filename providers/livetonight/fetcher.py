"""livetonight.fetcher – LiveTonight source adapter.

Listing comes from the public musician search API (JSON, cached as
``listing_response``); profile pages are HTML cached as ``profile_page``.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

from core.cancel import CancellationToken
from core.interfaces import SourceAdapter
from core.merge import JoinKeys
from core.models import ArtifactRequest, ListOptions, SearchContext
from core.schema import NormalizedRecord
from providers.profile_page import ParsedProfilePage

from .normalize import PROVIDER, normalize_user
from .parser import (
    PROFILE_BASE_URL,
    LiveTonightUser,
    SearchResponse,
    id_from_url,
    parse_profile,
    slug_from_url,
    users_from_response,
)

logger = logging.getLogger(__name__)

__all__ = ["LiveTonightSource"]

SEARCH_ENDPOINT = (
    "https://wasmv8e0b5.execute-api.eu-west-3.amazonaws.com/default/searchMusiciansv2"
)
CATEGORIES = ("DJ",)
DJ_FILTER = "dj-wedding"

_API_HEADERS = {
    "accept": "application/json",
    "origin": PROFILE_BASE_URL,
    "referer": f"{PROFILE_BASE_URL}/",
}


def search_params(page: int, context: Optional[SearchContext] = None) -> Dict[str, str]:
    params = {
        "page": str(page),
        "radius": "50",
        "sortedBy": "pertinence",
        "index": "users",
        "categories": ",".join(CATEGORIES),
        "dj": DJ_FILTER,
    }
    location = context.location if context else None
    if location is not None and location.lat is not None and location.lng is not None:
        params["lat"] = str(location.lat)
        params["lng"] = str(location.lng)
    return params


def search_url(page: int, context: Optional[SearchContext] = None) -> str:
    return f"{SEARCH_ENDPOINT}?{urlencode(search_params(page, context))}"


class LiveTonightSource(SourceAdapter[LiveTonightUser, ParsedProfilePage]):
    name = PROVIDER
    display_name = "LiveTonight"
    min_interval = 0.03
    page_delay = 0.1
    timeout = 15.0

    async def fetch_listings(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[LiveTonightUser]:
        async def fetch_page(page: int) -> List[LiveTonightUser]:
            url = search_url(page, context)

            async def fetch() -> str:
                return await self._http.get_text(
                    url, headers=_API_HEADERS, timeout=self.timeout, token=token
                )

            response = await self._cache.get_json(
                "listing_response", ArtifactRequest(method="GET", url=url), fetch, schema=SearchResponse
            )
            return users_from_response(response)

        return await self.collect_pages(
            fetch_page, lambda user: user.profile_url or str(user.id), options, token
        )

    # ------------------------------------------------------------------- #
    def listing_target(self, listing: LiveTonightUser) -> Optional[str]:
        return listing.profile_url

    async def fetch_detail(self, target: str, token: Optional[CancellationToken]) -> str:
        async def fetch() -> str:
            return await self._http.get_text(
                target,
                headers={"referer": f"{PROFILE_BASE_URL}/"},
                timeout=self.timeout,
                max_retries=1,
                token=token,
            )

        return await self._cache.get_html(
            "profile_page", ArtifactRequest(method="GET", url=target), fetch
        )

    def parse_detail(self, html: str) -> ParsedProfilePage:
        return parse_profile(html)

    def normalize(
        self, listing: LiveTonightUser, detail: Optional[ParsedProfilePage], options: ListOptions
    ) -> NormalizedRecord:
        return normalize_user(listing, detail, options.budget_target, options.budget_max)

    def listing_keys(self, listing: LiveTonightUser) -> JoinKeys:
        return JoinKeys(url=listing.profile_url, id=str(listing.id), slug=listing.slug)

    def target_keys(self, target: str) -> JoinKeys:
        return JoinKeys(url=target, id=id_from_url(target), slug=slug_from_url(target))
