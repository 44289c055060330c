"""linkaband.normalize – artist (+ profile page) -> NormalizedRecord."""
from __future__ import annotations

import re
from typing import List, Optional

from core.normalize import (
    CommonProfileInput,
    ProfileOverrides,
    build_common_profile,
    unique_urls,
)
from core.schema import DjDetails, NormalizedRecord
from providers.profile_page import ParsedProfilePage

from .parser import LinkabandArtist

PROVIDER = "linkaband"

_LIST_SPLIT_RE = re.compile(r"[,;/\n]|\s-\s")


def split_equipment(value: Optional[str]) -> List[str]:
    """``"sound system, wireless mic"`` -> ``["sound system", "wireless mic"]``."""
    if not value:
        return []
    return [part.strip() for part in _LIST_SPLIT_RE.split(value) if part.strip()]


def to_common_input(artist: LinkabandArtist, page: Optional[ParsedProfilePage]) -> CommonProfileInput:
    page = page or ParsedProfilePage()
    pricing_min = page.pricing_min if page.pricing_min is not None else artist.lowest_price
    currency = page.pricing_currency or ("EUR" if pricing_min is not None else None)
    return CommonProfileInput(
        provider=PROVIDER,
        provider_id=str(artist.profile_id),
        name=artist.name,
        profile_url=artist.profile_url,
        description=page.description or artist.description,
        city=artist.localisation.city,
        region=artist.departement_name,
        rating_value=page.rating_value if page.rating_value is not None else artist.global_rating,
        rating_count=page.rating_count if page.rating_count is not None else artist.nb_comments,
        pricing_min=pricing_min,
        pricing_max=page.pricing_max,
        pricing_currency=currency,
        image_urls=unique_urls(*artist.image_urls(), page.image_url),
    )


def normalize_artist(
    artist: LinkabandArtist,
    page: Optional[ParsedProfilePage],
    budget_target: float,
    budget_max: float,
) -> NormalizedRecord:
    material = artist.lowest_formation.material if artist.lowest_formation else None
    return build_common_profile(
        to_common_input(artist, page),
        budget_target,
        budget_max,
        overrides=ProfileOverrides(
            is_verified=artist.verified,
            response_time=artist.response_time,
            travel_policy=artist.facturation,
        ),
        details=DjDetails(
            musical_styles=list(artist.styles),
            dj_set_formats=list(artist.players),
            sound_equipment=split_equipment(material),
        ),
    )
