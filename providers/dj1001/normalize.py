"""dj1001.normalize – listing (+ profile page) -> NormalizedRecord."""
from __future__ import annotations

from typing import Optional

from core.normalize import CommonProfileInput, build_common_profile, unique_urls
from core.schema import NormalizedRecord

from .parser import DjListing, DjProfileDetails

PROVIDER = "1001dj"


def _pick(detail_value, listing_value):
    return detail_value if detail_value is not None else listing_value


def to_common_input(listing: DjListing, detail: Optional[DjProfileDetails]) -> CommonProfileInput:
    page = detail or DjProfileDetails()
    return CommonProfileInput(
        provider=PROVIDER,
        provider_id=listing.profile_id,
        name=listing.name,
        profile_url=listing.url,
        description=page.description,
        city=listing.address_locality,
        region=listing.address_region,
        rating_value=_pick(page.rating_value, listing.rating_value),
        rating_count=_pick(page.rating_count, listing.rating_count),
        pricing_min=_pick(page.pricing_min, listing.offer_low_price),
        pricing_max=_pick(page.pricing_max, listing.offer_high_price),
        pricing_currency=_pick(page.pricing_currency, listing.offer_currency),
        image_urls=unique_urls(listing.image_url, page.image_url),
    )


def normalize_dj(
    listing: DjListing,
    detail: Optional[DjProfileDetails],
    budget_target: float,
    budget_max: float,
) -> NormalizedRecord:
    return build_common_profile(to_common_input(listing, detail), budget_target, budget_max)
