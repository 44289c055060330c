"""livetonight.normalize – user (+ profile page) -> NormalizedRecord."""
from __future__ import annotations

from typing import Optional

from core.normalize import (
    CommonProfileInput,
    ProfileOverrides,
    build_common_profile,
    unique_urls,
)
from core.schema import DjDetails, NormalizedRecord
from providers.profile_page import ParsedProfilePage

from .parser import LiveTonightUser

PROVIDER = "livetonight"


def to_common_input(user: LiveTonightUser, page: Optional[ParsedProfilePage]) -> CommonProfileInput:
    page = page or ParsedProfilePage()
    currency = page.pricing_currency or ("EUR" if user.price is not None else None)
    return CommonProfileInput(
        provider=PROVIDER,
        provider_id=str(user.id),
        name=user.band_name or user.name,
        profile_url=user.profile_url,
        description=page.description or user.description,
        city=user.city,
        rating_value=page.rating_value if page.rating_value is not None else user.rating,
        rating_count=(
            page.rating_count if page.rating_count is not None else user.musician_reviews_count
        ),
        pricing_min=page.pricing_min if page.pricing_min is not None else user.price,
        pricing_max=page.pricing_max,
        pricing_currency=currency,
        image_urls=unique_urls(user.picture, user.cover, user.picture_mobile, page.image_url),
        video_urls=[v.link for v in user.videos if v.link],
    )


def normalize_user(
    user: LiveTonightUser,
    page: Optional[ParsedProfilePage],
    budget_target: float,
    budget_max: float,
) -> NormalizedRecord:
    return build_common_profile(
        to_common_input(user, page),
        budget_target,
        budget_max,
        overrides=ProfileOverrides(
            is_verified=user.approved, contract_provided=user.contracts_public
        ),
        details=DjDetails(musical_styles=list(user.categories)),
    )
