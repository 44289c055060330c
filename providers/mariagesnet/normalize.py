"""mariagesnet.normalize – vendor (+ storefront page) -> NormalizedRecord."""
from __future__ import annotations

from typing import List, Optional

from core.normalize import CommonProfileInput, build_common_profile, unique_urls
from core.schema import DjDetails, NormalizedRecord
from providers.profile_page import ParsedProfilePage

from .parser import MariagesnetVendor, split_styles

PROVIDER = "mariagesnet"


def _location_part(vendor: MariagesnetVendor, key: str, index: int) -> Optional[str]:
    value = vendor.address.get(key)
    if isinstance(value, str):
        return value
    if vendor.location_text:
        parts = [p.strip() for p in vendor.location_text.split(",")]
        if index < len(parts):
            return parts[index] or None
    return None


def image_urls(vendor: MariagesnetVendor, page: Optional[ParsedProfilePage]) -> List[str]:
    return unique_urls(*vendor.gallery_urls(), page.image_url if page else None)


def to_common_input(
    vendor: MariagesnetVendor, page: Optional[ParsedProfilePage]
) -> CommonProfileInput:
    detail = page or ParsedProfilePage()
    return CommonProfileInput(
        provider=PROVIDER,
        provider_id=vendor.vendor_id,
        name=vendor.name,
        profile_url=vendor.storefront_url,
        description=detail.description or vendor.description,
        city=_location_part(vendor, "city", 0),
        region=_location_part(vendor, "region", 1),
        rating_value=detail.rating_value if detail.rating_value is not None else vendor.rating,
        rating_count=(
            detail.rating_count if detail.rating_count is not None else vendor.reviews_count
        ),
        pricing_min=(
            detail.pricing_min if detail.pricing_min is not None else vendor.starting_price_value
        ),
        pricing_max=detail.pricing_max,
        pricing_currency=detail.pricing_currency or vendor.currency,
        image_urls=image_urls(vendor, page),
    )


def normalize_vendor(
    vendor: MariagesnetVendor,
    page: Optional[ParsedProfilePage],
    budget_target: float,
    budget_max: float,
) -> NormalizedRecord:
    return build_common_profile(
        to_common_input(vendor, page),
        budget_target,
        budget_max,
        details=DjDetails(musical_styles=split_styles(vendor.sector)),
    )
