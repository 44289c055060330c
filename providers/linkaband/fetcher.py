"""linkaband.fetcher – Linkaband source adapter.

Listing is built from two APIs: recommendation pages give artist ids
(``listing_recommendation_response``), then the musician search endpoint
returns the artist records in batches of ids (``listing_profile_batch_response``).
The batch endpoint needs ``LINKABAND_API_KEY``; it travels in a header and is
never part of an artifact key.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlencode

from core.cancel import CancellationToken, raise_if_cancelled, sleep
from core.errors import ListingFetchError
from core.interfaces import SourceAdapter
from core.merge import JoinKeys
from core.models import ArtifactRequest, ListOptions, SearchContext
from core.schema import NormalizedRecord
from providers.profile_page import ParsedProfilePage

from .normalize import PROVIDER, normalize_artist
from .parser import (
    PROFILE_BASE_URL,
    LinkabandArtist,
    ProfileBatchResponse,
    RecommendationResponse,
    artists_from_batch,
    parse_profile,
    slug_from_url,
)

logger = logging.getLogger(__name__)

__all__ = ["LinkabandSource"]

RECOMMENDATIONS_ENDPOINT = "https://recommendations.linkaband.com/content_based/sim/search"
ARTISTS_ENDPOINT = "https://api.linkaband.com/api/search/musicians"

LANDING_TYPE = "mariage"
ARTIST_TYPES = ("dj",)
SUPER_ARTIST_TYPE = 1
RECOMMENDATION_LIMIT = 18
RECOMMENDATION_CONFIG = "v0.4.0"
BATCH_SIZE = 20

# around Paris, over the wedding season
DEFAULT_LAT = 48.98
DEFAULT_LNG = 1.98
DEFAULT_DATE_FROM = "01-06-2025"
DEFAULT_DATE_TO = "30-09-2025"

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

_API_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "origin": PROFILE_BASE_URL,
    "referer": f"{PROFILE_BASE_URL}/",
}


def api_date(value: Optional[str], default: str) -> str:
    """Linkaband wants ``DD-MM-YYYY``; ISO dates are converted, anything else passes through."""
    if not value:
        return default
    match = _ISO_DATE_RE.match(value.strip())
    if match:
        year, month, day = match.groups()
        return f"{day}-{month}-{year}"
    return value.strip()


def recommendation_params(page: int, context: Optional[SearchContext] = None) -> Dict[str, str]:
    location = context.location if context else None
    lat = location.lat if location is not None and location.lat is not None else DEFAULT_LAT
    lng = location.lng if location is not None and location.lng is not None else DEFAULT_LNG
    date = context.date if context else None
    return {
        "landing_type": LANDING_TYPE,
        "artist_types": json.dumps(list(ARTIST_TYPES)),
        "longitude": str(lng),
        "latitude": str(lat),
        "page": str(page),
        "date_from": api_date(date, DEFAULT_DATE_FROM),
        "date_to": api_date(date, DEFAULT_DATE_TO),
        "super_artiste_type": str(SUPER_ARTIST_TYPE),
        "limit": str(RECOMMENDATION_LIMIT),
        "config": RECOMMENDATION_CONFIG,
    }


def recommendations_url(page: int, context: Optional[SearchContext] = None) -> str:
    return f"{RECOMMENDATIONS_ENDPOINT}?{urlencode(recommendation_params(page, context))}"


def artists_url(ids: Sequence[int]) -> str:
    return f"{ARTISTS_ENDPOINT}?{urlencode({'artistsIds': ','.join(str(i) for i in ids)})}"


class LinkabandSource(SourceAdapter[LinkabandArtist, ParsedProfilePage]):
    name = PROVIDER
    display_name = "Linkaband"
    min_interval = 0.03
    page_delay = 0.03
    timeout = 15.0

    def is_available(self) -> bool:
        return bool(self._settings.secrets.linkaband_api_key)

    # ------------------------------------------------------------------- #
    async def recommendation_ids(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[int]:
        async def fetch_page(page: int) -> List[int]:
            url = recommendations_url(page, context)

            async def fetch() -> str:
                return await self._http.get_text(
                    url, headers=_API_HEADERS, timeout=self.timeout, token=token
                )

            response = await self._cache.get_json(
                "listing_recommendation_response",
                ArtifactRequest(method="GET", url=url),
                fetch,
                schema=RecommendationResponse,
            )
            ids = response.ids()
            logger.debug(
                "%s – recommendations page %d: %d ids (total announced: %s)",
                self.name,
                page,
                len(ids),
                response.total_count,
            )
            return ids

        return await self.collect_pages(fetch_page, str, options, token, first_page=0)

    async def artists(
        self, ids: Sequence[int], token: Optional[CancellationToken]
    ) -> List[LinkabandArtist]:
        headers = {**_API_HEADERS, "x-auth-token": self._settings.secrets.linkaband_api_key or ""}
        chunks = [list(ids[i : i + BATCH_SIZE]) for i in range(0, len(ids), BATCH_SIZE)]
        artists: List[LinkabandArtist] = []

        for index, chunk in enumerate(chunks):
            raise_if_cancelled(token)
            if index:
                await sleep(self.page_delay, token)
            url = artists_url(chunk)

            async def fetch() -> str:
                return await self._http.get_text(url, headers=headers, timeout=self.timeout, token=token)

            batch = await self._cache.get_json(
                "listing_profile_batch_response",
                ArtifactRequest(method="GET", url=url),
                fetch,
                schema=ProfileBatchResponse,
            )
            artists.extend(artists_from_batch(batch.root))
            logger.info(
                "%s – artist batch %d/%d: %d requested, %d returned",
                self.name,
                index + 1,
                len(chunks),
                len(chunk),
                len(batch.root),
            )
        return artists

    async def fetch_listings(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[LinkabandArtist]:
        if not self.is_available():
            raise ListingFetchError("LINKABAND_API_KEY is required", provider=self.name)

        ids = await self.recommendation_ids(options, context, token)
        if not ids:
            raise ListingFetchError("No artist ids returned by recommendations", provider=self.name)
        return await self.artists(ids, token)

    # ------------------------------------------------------------------- #
    def listing_target(self, listing: LinkabandArtist) -> Optional[str]:
        return listing.profile_url

    async def fetch_detail(self, target: str, token: Optional[CancellationToken]) -> str:
        async def fetch() -> str:
            return await self._http.get_text(
                target,
                headers={"origin": PROFILE_BASE_URL, "referer": f"{PROFILE_BASE_URL}/"},
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
        self, listing: LinkabandArtist, detail: Optional[ParsedProfilePage], options: ListOptions
    ) -> NormalizedRecord:
        return normalize_artist(listing, detail, options.budget_target, options.budget_max)

    def listing_keys(self, listing: LinkabandArtist) -> JoinKeys:
        return JoinKeys(url=listing.profile_url, id=str(listing.profile_id), slug=listing.slug)

    def target_keys(self, target: str) -> JoinKeys:
        return JoinKeys(url=target, slug=slug_from_url(target))
