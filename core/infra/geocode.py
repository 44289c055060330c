"""
geocode.py – resolve a free-text location into coordinates.

Direct ``"lat,lng"`` input never touches the network; anything else goes to
OpenStreetMap Nominatim.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from pydantic import BaseModel, TypeAdapter

from ..cancel import CancellationToken
from ..models import SearchLocation
from .http import HttpClient

logger = logging.getLogger(__name__)

NOMINATIM_ENDPOINT = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "PrestaFinder/1.0"
TIMEOUT = 10.0

_LAT_LNG_RE = re.compile(r"^(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)$")


class _NominatimResult(BaseModel):
    lat: str
    lon: str
    display_name: str


_RESULTS = TypeAdapter(List[_NominatimResult])


def parse_lat_lng(text: str) -> Optional[SearchLocation]:
    trimmed = text.strip()
    match = _LAT_LNG_RE.match(trimmed)
    if not match:
        return None
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return SearchLocation(text=trimmed, lat=lat, lng=lng)


class Geocoder:
    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def resolve(
        self, text: str, token: Optional[CancellationToken] = None
    ) -> SearchLocation:
        trimmed = text.strip()
        if not trimmed:
            raise ValueError("Location cannot be empty")

        direct = parse_lat_lng(trimmed)
        if direct is not None:
            return direct

        payload = await self._http.get_json(
            NOMINATIM_ENDPOINT,
            params={"q": trimmed, "format": "json", "limit": "1"},
            headers={"user-agent": USER_AGENT, "accept": "application/json"},
            timeout=TIMEOUT,
            token=token,
        )
        results = _RESULTS.validate_python(payload)
        if not results:
            raise LookupError(f"No geocoding results for {trimmed!r}")

        best = results[0]
        logger.info("Geocoded %r to %s", trimmed, best.display_name)
        return SearchLocation(text=best.display_name, lat=float(best.lat), lng=float(best.lon))
