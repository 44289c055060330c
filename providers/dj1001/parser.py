"""dj1001.parser – search-result and profile-page parsing for 1001dj.com.

Search pages embed a schema.org ``ItemList`` in JSON-LD; when it is missing
we fall back to scraping ``/profil-dj-`` links.  Raw JSON-LD is decoded into
small pydantic models first, an item that does not decode is skipped.
"""
from __future__ import annotations

import json
import logging
import re
import unicodedata
from collections import deque
from typing import Any, Dict, Iterator, List, Literal, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from core.coerce import coerce_float, coerce_int, coerce_str, normalize_spaces
from providers.profile_page import (
    ParsedProfilePage,
    euro_prices,
    extract_description,
    extract_rating_count,
    get_meta,
    make_soup,
    page_text,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://www.1001dj.com"

_PROFILE_ID_RE = re.compile(r"/profil-dj-(\d+)-")
_PROFILE_SLUG_RE = re.compile(r"/profil-dj-\d+-([^./]+)\.htm")
_PERCENT_RE = re.compile(
    r"([A-Za-zÀ-ÿ0-9'’ -]+?)\s+((?:-\s*de\s*)?[0-9]+(?:[.,][0-9]+)?)\s*%"
)
_LESS_THAN_RE = re.compile(r"^-\s*de\s*([0-9]+(?:\.[0-9]+)?)$", re.IGNORECASE)

DETAIL_PRICE_SELECTORS = ", ".join(
    [
        ".price-package",
        ".fw-semibold",
        '[class*="price"]',
        '[class*="Price"]',
        '[aria-label*="€"]',
        '[aria-label*="euro"]',
    ]
)


def profile_id_from_url(url: str) -> Optional[str]:
    match = _PROFILE_ID_RE.search(url)
    return match.group(1) if match else None


def profile_slug_from_url(url: str) -> Optional[str]:
    match = _PROFILE_SLUG_RE.search(url)
    return match.group(1) if match else None


# --------------------------------------------------------------------------- #
# Models
# --------------------------------------------------------------------------- #


class DjListing(BaseModel):
    url: str
    profile_id: Optional[str] = None
    position: Optional[int] = None
    name: Optional[str] = None
    price_range: Optional[str] = None
    offer_low_price: Optional[float] = None
    offer_high_price: Optional[float] = None
    offer_currency: Optional[str] = None
    image_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    street_address: Optional[str] = None
    address_locality: Optional[str] = None
    postal_code: Optional[str] = None
    address_region: Optional[str] = None
    address_country: Optional[str] = None
    rating_count: Optional[int] = None
    rating_value: Optional[float] = None
    source: Literal["jsonld", "html"] = "jsonld"


class RatingPerformance(BaseModel):
    coup_de_coeur_pct: Optional[float] = None
    parfait_pct: Optional[float] = None
    ambiance_de_folie_pct: Optional[float] = None
    top_tier_pct: Optional[float] = None


class DjProfileDetails(ParsedProfilePage):
    rating_performance: Optional[RatingPerformance] = None


class _LdLoose(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _LdGeo(_LdLoose):
    latitude: Any = None
    longitude: Any = None


class _LdAddress(_LdLoose):
    streetAddress: Any = None
    addressLocality: Any = None
    postalCode: Any = None
    addressRegion: Any = None
    addressCountry: Any = None


class _LdRating(_LdLoose):
    ratingValue: Any = None
    ratingCount: Any = None


class _LdItem(_LdLoose):
    url: str
    name: Any = None
    priceRange: Any = None
    offers: Any = None
    image: Any = None
    geo: Optional[_LdGeo] = None
    address: Optional[_LdAddress] = None
    aggregateRating: Optional[_LdRating] = None

    @field_validator("geo", "address", "aggregateRating", mode="before")
    @classmethod
    def _objects_only(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class _LdListElement(_LdLoose):
    position: Any = None
    item: _LdItem


# --------------------------------------------------------------------------- #
# JSON-LD helpers
# --------------------------------------------------------------------------- #


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    return [] if value is None else [value]


def _json_ld_blobs(soup: BeautifulSoup) -> Iterator[Any]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            yield json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")


def _first_offer(value: Any) -> Dict[str, Any]:
    for offer in _as_list(value):
        if isinstance(offer, dict):
            return offer
    return {}


def _listing_from_ld(element: _LdListElement) -> DjListing:
    item = element.item
    url = urljoin(BASE_URL, item.url)
    offer = _first_offer(item.offers)
    image = item.image
    image_url = image.get("url") if isinstance(image, dict) else image
    geo = item.geo or _LdGeo()
    address = item.address or _LdAddress()
    rating = item.aggregateRating or _LdRating()
    return DjListing(
        url=url,
        profile_id=profile_id_from_url(url),
        position=coerce_int(element.position),
        name=coerce_str(item.name),
        price_range=coerce_str(item.priceRange),
        offer_low_price=coerce_float(offer.get("lowPrice")),
        offer_high_price=coerce_float(offer.get("highPrice")),
        offer_currency=coerce_str(offer.get("priceCurrency")),
        image_url=coerce_str(image_url),
        latitude=coerce_float(geo.latitude),
        longitude=coerce_float(geo.longitude),
        street_address=coerce_str(address.streetAddress),
        address_locality=coerce_str(address.addressLocality),
        postal_code=coerce_str(address.postalCode),
        address_region=coerce_str(address.addressRegion),
        address_country=coerce_str(address.addressCountry),
        rating_count=coerce_int(rating.ratingCount),
        rating_value=coerce_float(rating.ratingValue),
        source="jsonld",
    )


def _listings_from_item_list(elements: List[Any]) -> List[DjListing]:
    out: List[DjListing] = []
    for raw in elements:
        try:
            element = _LdListElement.model_validate(raw)
        except ValidationError:
            logger.debug("Skipping undecodable ItemList element")
            continue
        if element.item.url:
            out.append(_listing_from_ld(element))
    return out


def _listings_from_links(soup: BeautifulSoup) -> List[DjListing]:
    out: List[DjListing] = []
    seen = set()
    for anchor in soup.select('a[href*="/profil-dj-"]'):
        href = anchor.get("href")
        if not href:
            continue
        url = urljoin(BASE_URL, href)
        if url in seen:
            continue
        seen.add(url)
        out.append(
            DjListing(
                url=url,
                profile_id=profile_id_from_url(url),
                name=normalize_spaces(anchor.get_text(" ")) or None,
                source="html",
            )
        )
    return out


def parse_search_page(html: str) -> List[DjListing]:
    """Listing entries on one search page, JSON-LD first."""
    soup = make_soup(html)
    for blob in _json_ld_blobs(soup):
        for obj in _as_list(blob):
            if not isinstance(obj, dict) or obj.get("@type") != "ItemList":
                continue
            elements = obj.get("itemListElement")
            if not isinstance(elements, list):
                continue
            listings = _listings_from_item_list(elements)
            if listings:
                return listings
    return _listings_from_links(soup)


# --------------------------------------------------------------------------- #
# Profile page
# --------------------------------------------------------------------------- #


def _find_offer(value: Any) -> Optional[Dict[str, Any]]:
    """Breadth-first search for the first dict carrying offer fields."""
    queue = deque([value])
    while queue:
        current = queue.popleft()
        if isinstance(current, list):
            queue.extend(current)
            continue
        if not isinstance(current, dict):
            continue
        low = coerce_float(current.get("lowPrice"))
        high = coerce_float(current.get("highPrice"))
        currency = coerce_str(current.get("priceCurrency"))
        if low is not None or high is not None or currency is not None:
            return {"low": low, "high": high, "currency": currency}
        queue.extend(v for v in current.values() if isinstance(v, (dict, list)))
    return None


def _normalize_label(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value.lower().replace("œ", "oe"))
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(re.sub(r"[^a-z0-9 ]+", " ", stripped).split())


def _percent(token: str) -> Optional[float]:
    cleaned = token.strip().replace(",", ".")
    less_than = _LESS_THAN_RE.match(cleaned)
    if less_than:
        bound = coerce_float(less_than.group(1))
        return None if bound is None else bound / 2
    return coerce_float(cleaned)


def parse_rating_performance(soup: BeautifulSoup) -> Optional[RatingPerformance]:
    block = soup.select_one(".list-rating, [class*='list-rating']")
    if block is None:
        return None

    metrics: Dict[str, float] = {}
    for match in _PERCENT_RE.finditer(normalize_spaces(block.get_text(" "))):
        value = _percent(match.group(2))
        if value is not None:
            metrics[_normalize_label(match.group(1))] = value
    if not metrics:
        return None

    coup = metrics.get("coup de coeur")
    parfait = metrics.get("parfait")
    folie = metrics.get("ambiance de folie")
    top = (coup or 0) + (parfait or 0) + (folie or 0)
    return RatingPerformance(
        coup_de_coeur_pct=coup,
        parfait_pct=parfait,
        ambiance_de_folie_pct=folie,
        top_tier_pct=round(top, 2) if top > 0 else None,
    )


def _rating_count(soup: BeautifulSoup) -> Optional[int]:
    for node in soup.select('[aria-label*="avis"], [aria-label*="évaluation"], [aria-label*="evaluation"]'):
        value = extract_rating_count(normalize_spaces(node.get("aria-label", "")))
        if value is not None:
            return value
    return extract_rating_count(page_text(soup))


def parse_profile_page(html: str) -> DjProfileDetails:
    soup = make_soup(html)

    offer = None
    for blob in _json_ld_blobs(soup):
        offer = _find_offer(blob)
        if offer:
            break

    prices = euro_prices(node.get_text(" ") for node in soup.select(DETAIL_PRICE_SELECTORS))
    performance = parse_rating_performance(soup)
    rating_value = None
    if performance is not None and performance.top_tier_pct is not None:
        rating_value = round(performance.top_tier_pct / 100 * 5, 2)

    offer = offer or {}
    low = offer.get("low")
    high = offer.get("high")
    currency = offer.get("currency")
    return DjProfileDetails(
        description=extract_description(soup, ["div.description-truncate-lines p"]),
        image_url=get_meta(soup, "og:image"),
        rating_value=rating_value,
        rating_count=_rating_count(soup),
        rating_performance=performance,
        pricing_min=low if low is not None else (min(prices) if prices else None),
        pricing_max=high if high is not None else (max(prices) if prices else None),
        pricing_currency=currency or ("EUR" if prices else None),
        prices_found=prices,
    )
