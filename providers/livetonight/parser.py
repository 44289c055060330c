"""livetonight.parser – decode the musician search API response.

The API answers ``{"final": {"body": {"hits": {"hits": [{"_source": {...}}]}}}}``.
The envelope is validated as a whole (a cached payload of another shape is
refetched); each ``_source`` is then decoded into :class:`LiveTonightUser`
on its own so one malformed user never hides the rest of the page.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.coerce import coerce_float, coerce_int, coerce_str
from providers.profile_page import ParsedProfilePage, parse_profile_page

logger = logging.getLogger(__name__)

PROFILE_BASE_URL = "https://www.livetonight.fr"
DESCRIPTION_SELECTORS: Sequence[str] = (
    ".artist-description",
    ".musician-description",
    ".description",
    "main",
)

_ID_RE = re.compile(r"/(\d+)-")
_SLUG_RE = re.compile(r"/\d+-([^/?#]+)$")


# --------------------------------------------------------------------------- #
# Response envelope
# --------------------------------------------------------------------------- #


class _Hit(BaseModel):
    source: Dict[str, Any] = Field(alias="_source")


class _Hits(BaseModel):
    hits: List[_Hit] = Field(default_factory=list)


class _Body(BaseModel):
    hits: _Hits


class _Final(BaseModel):
    body: _Body


class SearchResponse(BaseModel):
    final: _Final


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #


class LiveTonightVideo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    link: Optional[str] = None

    @field_validator("link", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)


class LiveTonightUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    band_name: Optional[str] = None
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[float] = None
    musician_reviews_count: Optional[int] = None
    price: Optional[float] = None
    categories: List[str] = Field(default_factory=list)
    address: Optional[str] = None
    picture: Optional[str] = None
    cover: Optional[str] = None
    picture_mobile: Optional[str] = None
    videos: List[LiveTonightVideo] = Field(default_factory=list)
    approved: Optional[bool] = None
    contracts_public: Optional[bool] = None

    @field_validator("id", mode="before")
    @classmethod
    def _strict_id(cls, value: Any) -> int:
        parsed = coerce_int(value)
        if parsed is None:
            raise ValueError("id must be an integer")
        return parsed

    @field_validator(
        "band_name", "name", "slug", "description", "address", "picture", "cover", "picture_mobile",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)

    @field_validator("rating", "price", mode="before")
    @classmethod
    def _float(cls, value: Any) -> Optional[float]:
        return coerce_float(value)

    @field_validator("musician_reviews_count", mode="before")
    @classmethod
    def _int(cls, value: Any) -> Optional[int]:
        return coerce_int(value)

    @field_validator("categories", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, str) and v]

    @field_validator("videos", mode="before")
    @classmethod
    def _objects(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, dict)]

    @field_validator("approved", "contracts_public", mode="before")
    @classmethod
    def _bool(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None

    @property
    def profile_url(self) -> Optional[str]:
        if not self.slug:
            return None
        return f"{PROFILE_BASE_URL}/groupe-musique-dj/{self.id}-{self.slug}"

    @property
    def city(self) -> Optional[str]:
        if self.address and "," in self.address:
            return self.address.split(",")[0].strip() or None
        return None


def users_from_response(response: SearchResponse) -> List[LiveTonightUser]:
    users: List[LiveTonightUser] = []
    for hit in response.final.body.hits.hits:
        try:
            users.append(LiveTonightUser.model_validate(hit.source))
        except ValidationError as exc:
            logger.warning(
                "Skipping undecodable livetonight user (%d validation errors)", exc.error_count()
            )
    return users


def id_from_url(url: str) -> Optional[str]:
    match = _ID_RE.search(url)
    return match.group(1) if match else None


def slug_from_url(url: str) -> Optional[str]:
    match = _SLUG_RE.search(url)
    return match.group(1) if match else None


def parse_profile(html: str) -> ParsedProfilePage:
    return parse_profile_page(html, DESCRIPTION_SELECTORS)
