"""mariagesnet.fetcher – Mariages.net source adapter.

Mariages.net sits behind bot protection, so every request is proxied through
the Bright Data Web Unlocker API.  Artifacts are keyed by the proxy call
(POST + ``{zone, url, format, method}``) and never by the API key.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from core.cancel import CancellationToken
from core.errors import ListingFetchError
from core.interfaces import SourceAdapter
from core.merge import JoinKeys
from core.models import ArtifactRequest, ListOptions, SearchContext
from core.schema import NormalizedRecord
from providers.profile_page import ParsedProfilePage

from .normalize import PROVIDER, normalize_vendor
from .parser import (
    BASE_URL,
    ListingResponse,
    MariagesnetVendor,
    parse_profile,
    vendor_id_from_url,
    vendors_from_response,
)

logger = logging.getLogger(__name__)

__all__ = ["MariagesnetSource"]

BRIGHTDATA_ENDPOINT = "https://api.brightdata.com/request"
SEARCH_ENDPOINT = f"{BASE_URL}/search-filters.php"

# wedding DJs
ID_GRUPO = 2
ID_SECTOR = 9

_TARGET_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def search_url(page: int) -> str:
    query = {
        "id_grupo": str(ID_GRUPO),
        "id_sector": str(ID_SECTOR),
        "id_region": "",
        "id_provincia": "",
        "showmode": "list",
        "NumPage": str(page),
        "isHomeSearcher": "1",
        "txtStrSearch": "",
        "txtLocSearch": "",
        "userSearch": "1",
        "isNearby": "1",
    }
    return f"{SEARCH_ENDPOINT}?{urlencode(query)}"


def proxy_body(zone: str, url: str) -> Dict[str, Any]:
    return {"zone": zone, "url": url, "format": "raw", "method": "GET"}


class MariagesnetSource(SourceAdapter[MariagesnetVendor, ParsedProfilePage]):
    name = PROVIDER
    display_name = "Mariages.net"
    min_interval = 0.5
    page_delay = 0.5
    timeout = 15.0

    def is_available(self) -> bool:
        secrets = self._settings.secrets
        return bool(secrets.brightdata_api_key and secrets.brightdata_zone)

    # ------------------------------------------------------------------- #
    def _proxied(
        self,
        artifact_type: str,
        url: str,
        token: Optional[CancellationToken],
        max_retries: Optional[int] = None,
    ):
        """Return ``(request, fetch)`` for one proxied GET of *url*."""
        secrets = self._settings.secrets
        zone = secrets.brightdata_zone or ""
        request = ArtifactRequest(method="POST", url=BRIGHTDATA_ENDPOINT, body=proxy_body(zone, url))

        async def fetch() -> str:
            logger.debug("%s – proxied %s %s", self.name, artifact_type, url)
            return await self._http.post_text(
                BRIGHTDATA_ENDPOINT,
                {**proxy_body(zone, url), "headers": _TARGET_HEADERS},
                headers={"authorization": f"Bearer {secrets.brightdata_api_key}"},
                timeout=self.timeout,
                max_retries=max_retries,
                token=token,
            )

        return request, fetch

    async def fetch_listings(
        self,
        options: ListOptions,
        context: SearchContext,
        token: Optional[CancellationToken],
    ) -> List[MariagesnetVendor]:
        if not self.is_available():
            raise ListingFetchError(
                "BRIGHTDATA_API_KEY and BRIGHTDATA_WEB_UNLOCKER_ZONE are required",
                provider=self.name,
            )

        async def fetch_page(page: int) -> List[MariagesnetVendor]:
            request, fetch = self._proxied("listing_response", search_url(page), token)
            response = await self._cache.get_json(
                "listing_response", request, fetch, schema=ListingResponse
            )
            return vendors_from_response(response)

        return await self.collect_pages(fetch_page, lambda vendor: vendor.vendor_id, options, token)

    # ------------------------------------------------------------------- #
    def listing_target(self, listing: MariagesnetVendor) -> Optional[str]:
        return listing.storefront_url

    async def fetch_detail(self, target: str, token: Optional[CancellationToken]) -> str:
        request, fetch = self._proxied("profile_response", target, token, max_retries=1)
        return await self._cache.get_html("profile_response", request, fetch)

    def parse_detail(self, html: str) -> ParsedProfilePage:
        return parse_profile(html)

    def normalize(
        self,
        listing: MariagesnetVendor,
        detail: Optional[ParsedProfilePage],
        options: ListOptions,
    ) -> NormalizedRecord:
        return normalize_vendor(listing, detail, options.budget_target, options.budget_max)

    def listing_keys(self, listing: MariagesnetVendor) -> JoinKeys:
        return JoinKeys(url=listing.storefront_url, id=listing.vendor_id)

    def target_keys(self, target: str) -> JoinKeys:
        return JoinKeys(url=target, id=vendor_id_from_url(target))
