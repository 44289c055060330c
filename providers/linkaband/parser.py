"""linkaband.parser – decode the recommendation and artist-batch APIs.

Listing is two-stage: the recommendation endpoint pages through artist ids,
then the search endpoint returns full artist records for batches of ids.
Each artist is decoded on its own so one malformed record never hides the
rest of the batch.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError, field_validator, model_validator

from core.coerce import coerce_float, coerce_int, coerce_str, normalize_spaces
from providers.profile_page import ParsedProfilePage, make_soup, parse_profile_page

logger = logging.getLogger(__name__)

PROFILE_BASE_URL = "https://linkaband.com"
DESCRIPTION_SELECTORS: Sequence[str] = (
    "[data-testid='artist-description']",
    ".artist-description",
    ".description",
    "main",
)
HEADER_SELECTORS: Sequence[str] = (
    ".artist-card-extended__name",
    '[class*="artist-card-extended__name"]',
)

_SLUG_RE = re.compile(r"linkaband\.com/([^/?#]+)$")
# "DJ Nova 4,9 (128)" -> rating 4,9 over 128 reviews
_HEADER_RATING_RE = re.compile(r"(?:^|\s)([0-5](?:[.,][0-9]+)?)\s*\(\s*([0-9][0-9 .,]*)\s*\)(?=\s|$)")


# --------------------------------------------------------------------------- #
# Recommendations
# --------------------------------------------------------------------------- #


class RecommendationResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    artist_ids: Optional[List[Any]] = None
    artist_ids_camel: Optional[List[Any]] = Field(default=None, alias="artistIds")
    total_recommendations_count: Optional[Any] = None
    relevant_recommendations_count: Optional[Any] = None

    def ids(self) -> List[int]:
        values = self.artist_ids if self.artist_ids is not None else self.artist_ids_camel or []
        ids: List[int] = []
        for value in values:
            parsed = coerce_int(value)
            if parsed is not None:
                ids.append(parsed)
        return ids

    @property
    def total_count(self) -> Optional[int]:
        return coerce_int(self.total_recommendations_count)


# --------------------------------------------------------------------------- #
# Artists
# --------------------------------------------------------------------------- #


class ProfileBatchResponse(RootModel[List[Dict[str, Any]]]):
    pass


class ImageRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None
    original: Optional[str] = None
    url_bis: Optional[str] = None

    @field_validator("url", "original", "url_bis", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)

    def urls(self) -> List[str]:
        return [u for u in (self.url, self.original, self.url_bis) if u]


class ArtistLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    city: Optional[str] = None
    zipcode: Optional[str] = None
    country: Optional[str] = None

    @field_validator("city", "zipcode", "country", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)


class LowestService(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount_one_brut: Optional[float] = None
    amount_full_ht: Optional[float] = None
    amount_full_ttc: Optional[float] = None
    duration: Optional[str] = Field(default=None, alias="duree")

    @field_validator("amount_one_brut", "amount_full_ht", "amount_full_ttc", mode="before")
    @classmethod
    def _float(cls, value: Any) -> Optional[float]:
        return coerce_float(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)

    @property
    def price(self) -> Optional[float]:
        for amount in (self.amount_full_ttc, self.amount_one_brut, self.amount_full_ht):
            if amount is not None:
                return amount
        return None


class LowestLineup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    description: Optional[str] = None
    nb_membres: Optional[int] = None
    material: Optional[str] = None
    lowest_prestation: Optional[LowestService] = None

    @field_validator("name", "description", "material", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)

    @field_validator("nb_membres", mode="before")
    @classmethod
    def _int(cls, value: Any) -> Optional[int]:
        return coerce_int(value)

    @field_validator("lowest_prestation", mode="before")
    @classmethod
    def _object(cls, value: Any) -> Optional[Dict[str, Any]]:
        return value if isinstance(value, dict) else None


class LinkabandArtist(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    profile_id: int = Field(alias="id")
    name: str
    slug: str
    description: Optional[str] = None
    departement_name: Optional[str] = None
    verified: Optional[bool] = None
    global_rating: Optional[float] = None
    avg_rating: Optional[float] = None
    nb_comments: Optional[int] = None
    response_time: Optional[str] = None
    facturation: Optional[str] = None
    styles: List[str] = Field(default_factory=list)
    players: List[str] = Field(default_factory=list)
    profile_picture: ImageRef = Field(default_factory=ImageRef)
    cover_pictures: List[ImageRef] = Field(default_factory=list)
    localisation: ArtistLocation = Field(default_factory=ArtistLocation)
    lowest_formation: Optional[LowestLineup] = None

    @model_validator(mode="before")
    @classmethod
    def _covers(cls, data: Any) -> Any:
        # the API sends either one ``cover_picture`` object or a ``cover_pictures`` list
        if isinstance(data, dict) and data.get("cover_picture") is not None:
            data = {**data, "cover_pictures": data["cover_picture"]}
        return data

    @field_validator("profile_id", mode="before")
    @classmethod
    def _strict_id(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("id must be an integer")
        return value

    @field_validator("name", "slug", mode="before")
    @classmethod
    def _required_text(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("must be a string")
        return value

    @field_validator(
        "description", "departement_name", "response_time", "facturation", mode="before"
    )
    @classmethod
    def _text(cls, value: Any) -> Optional[str]:
        return coerce_str(value)

    @field_validator("verified", mode="before")
    @classmethod
    def _bool(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None

    @field_validator("global_rating", "avg_rating", mode="before")
    @classmethod
    def _float(cls, value: Any) -> Optional[float]:
        return coerce_float(value)

    @field_validator("nb_comments", mode="before")
    @classmethod
    def _int(cls, value: Any) -> Optional[int]:
        return coerce_int(value)

    @field_validator("styles", "players", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, str) and v]

    @field_validator("profile_picture", "localisation", mode="before")
    @classmethod
    def _object(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("cover_pictures", mode="before")
    @classmethod
    def _objects(cls, value: Any) -> List[Any]:
        if isinstance(value, dict):
            return [value]
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, dict)]

    @field_validator("lowest_formation", mode="before")
    @classmethod
    def _lineup(cls, value: Any) -> Optional[Dict[str, Any]]:
        return value if isinstance(value, dict) else None

    @property
    def profile_url(self) -> str:
        return f"{PROFILE_BASE_URL}/{quote(self.slug, safe='')}"

    @property
    def lowest_price(self) -> Optional[float]:
        if self.lowest_formation is None or self.lowest_formation.lowest_prestation is None:
            return None
        return self.lowest_formation.lowest_prestation.price

    def image_urls(self) -> List[str]:
        urls = self.profile_picture.urls()
        for cover in self.cover_pictures:
            urls.extend(cover.urls())
        return urls


def artists_from_batch(records: Sequence[Dict[str, Any]]) -> List[LinkabandArtist]:
    artists: List[LinkabandArtist] = []
    for record in records:
        try:
            artists.append(LinkabandArtist.model_validate(record))
        except ValidationError as exc:
            logger.warning(
                "Skipping undecodable linkaband artist (%d validation errors)", exc.error_count()
            )
    return artists


def slug_from_url(url: str) -> Optional[str]:
    match = _SLUG_RE.search(url)
    return unquote(match.group(1)) if match else None


# --------------------------------------------------------------------------- #
# Profile page
# --------------------------------------------------------------------------- #


def header_rating(text: str) -> Optional[Tuple[float, int]]:
    """``(rating, review_count)`` from the card header, e.g. ``"DJ Nova 5.0 (10)"``."""
    match = _HEADER_RATING_RE.search(normalize_spaces(text))
    if not match:
        return None
    value = coerce_float(match.group(1).replace(",", "."))
    count = coerce_int(re.sub(r"[^0-9]", "", match.group(2)))
    if value is None or count is None or not 0 <= value <= 5:
        return None
    return value, count


def parse_profile(html: str) -> ParsedProfilePage:
    page = parse_profile_page(html, DESCRIPTION_SELECTORS)
    soup = make_soup(html)
    for selector in HEADER_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        rating = header_rating(node.get_text(" "))
        if rating is not None:
            return page.model_copy(update={"rating_value": rating[0], "rating_count": rating[1]})
    return page
