"""
Shared projection into :class:`~core.schema.NormalizedRecord`.

Every provider maps its listing (+ optional detail page) into a
:class:`CommonProfileInput` and lets :func:`build_common_profile` fill the
rest, so budget fit and offers are computed one way for all sources.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .schema import (
    Availability,
    BudgetFit,
    BudgetSummary,
    Communication,
    DjDetails,
    Location,
    Media,
    NormalizedRecord,
    Offer,
    Policies,
    Price,
    Professionalism,
    Reputation,
)


class CommonProfileInput(BaseModel):
    provider: str
    provider_id: Optional[str] = None
    name: Optional[str] = None
    profile_url: Optional[str] = None
    description: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    rating_value: Optional[float] = None
    rating_count: Optional[int] = None
    pricing_min: Optional[float] = None
    pricing_max: Optional[float] = None
    pricing_currency: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)


class ProfileOverrides(BaseModel):
    is_verified: Optional[bool] = None
    response_time: Optional[str] = None
    travel_policy: Optional[str] = None
    contract_provided: Optional[bool] = None
    review_highlights: Optional[List[str]] = None
    service_area: Optional[List[str]] = None


def compute_budget_fit(
    min_known_price: Optional[float],
    max_known_price: Optional[float],
    budget_target: float,
    budget_max: float,
) -> BudgetFit:
    best = min_known_price if min_known_price is not None else max_known_price
    if best is None:
        return BudgetFit.UNKNOWN
    if best <= budget_target:
        return BudgetFit.GOOD
    if best <= budget_max:
        return BudgetFit.OK
    return BudgetFit.BAD


def build_single_offer(inp: CommonProfileInput, unit: str = "total") -> List[Offer]:
    """One "Base offer" priced at the lowest known price, if any."""
    best = inp.pricing_min if inp.pricing_min is not None else inp.pricing_max
    if best is None:
        return []
    return [
        Offer(
            offer_id=inp.provider_id or f"{inp.provider}:default",
            name="Base offer",
            base_price=Price(amount=best, currency=inp.pricing_currency, unit=unit),
        )
    ]


def unique_urls(*candidates: Optional[str]) -> List[str]:
    out: List[str] = []
    for url in candidates:
        if url and url not in out:
            out.append(url)
    return out


def build_common_profile(
    inp: CommonProfileInput,
    budget_target: float,
    budget_max: float,
    overrides: Optional[ProfileOverrides] = None,
    details: Optional[DjDetails] = None,
) -> NormalizedRecord:
    ov = overrides or ProfileOverrides()
    service_area = ov.service_area
    if service_area is None:
        service_area = [inp.city] if inp.city else []

    return NormalizedRecord(
        provider=inp.provider,
        provider_id=inp.provider_id,
        name=inp.name,
        profile_url=inp.profile_url,
        description=inp.description,
        reputation=Reputation(
            rating=inp.rating_value,
            review_count=inp.rating_count,
            review_highlights=ov.review_highlights or [],
        ),
        location=Location(
            city=inp.city,
            region=inp.region,
            service_area=service_area,
            travel_policy=ov.travel_policy,
        ),
        availability=Availability(),
        professionalism=Professionalism(
            is_verified=ov.is_verified,
            response_time=ov.response_time,
            contract_provided=ov.contract_provided,
        ),
        media=Media(
            photos_count=len(inp.image_urls),
            videos_count=len(inp.video_urls),
            portfolio_links=list(inp.image_urls),
        ),
        communication=Communication(),
        policies=Policies(),
        budget_summary=BudgetSummary(
            min_known_price=inp.pricing_min,
            max_known_price=inp.pricing_max,
            has_transparent_pricing=(
                inp.pricing_min is not None or inp.pricing_max is not None
            ),
            budget_fit=compute_budget_fit(
                inp.pricing_min, inp.pricing_max, budget_target, budget_max
            ),
        ),
        offers=build_single_offer(inp),
        service_specific=details or DjDetails(),
    )
