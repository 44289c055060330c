"""mariagesnet.parser – decode ``search-filters.php`` responses.

A listing response is JSON whose ``listingResults`` field carries the result
tiles as an HTML fragment.  Vendor order comes from ``resultVendorsIds``
(falling back to tile order); ratings missing from a tile are taken from the
double-encoded ``mapMarkers`` and images from ``listingVendorsGalleryJson``.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from providers.profile_page import ParsedProfilePage, parse_profile_page

logger = logging.getLogger(__name__)

BASE_URL = "https://www.mariages.net"
DESCRIPTION_SELECTORS: Sequence[str] = (
    ".storefront-description",
    ".vendor-description",
    ".description",
    "main",
)

_VENDOR_ID_RE = re.compile(r"--e(\d+)(?:[?#]|$)")
_PRICE_JUNK_RE = re.compile(r"[^0-9,.\- ]+")
_DOT_THOUSANDS_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")
_COMMA_THOUSANDS_RE = re.compile(r"^-?\d{1,3}(?:,\d{3})+$")
_STYLE_SPLIT_RE = re.compile(r"[,\n;/|-]")


class ListingResponse(BaseModel):
    """Envelope check for a cached or fetched listing payload."""

    model_config = ConfigDict(extra="ignore")

    listing_results: Optional[str] = Field(alias="listingResults")
    result_vendors_ids: List[Any] = Field(default_factory=list, alias="resultVendorsIds")
    map_markers: Any = Field(default=None, alias="mapMarkers")
    gallery: Any = Field(default=None, alias="listingVendorsGalleryJson")


class MariagesnetVendor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    vendor_id: str = Field(min_length=1)
    name: Optional[str] = None
    storefront_url: Optional[str] = None
    location_text: Optional[str] = None
    description: Optional[str] = None
    rating: Optional[float] = None
    reviews_count: Optional[int] = None
    tile_attrs: Dict[str, str] = Field(default_factory=dict)
    vendor_info: Dict[str, Any] = Field(default_factory=dict)
    map_marker: Dict[str, Any] = Field(default_factory=dict)
    gallery: List[Dict[str, Any]] = Field(default_factory=list)
    starting_price: Any = None
    starting_price_value: Optional[float] = None
    currency: Optional[str] = None
    sector: Optional[str] = None
    address: Dict[str, Any] = Field(default_factory=dict)

    def gallery_urls(self) -> List[str]:
        urls: List[str] = []
        for item in self.gallery:
            for key, value in item.items():
                if key.startswith("src") and isinstance(value, str) and value:
                    urls.append(value)
        return urls


# --------------------------------------------------------------------------- #
# Scalar helpers
# --------------------------------------------------------------------------- #


def parse_price(value: Any) -> Optional[float]:
    """Read ``"1 200 €"``, ``"1.200"``, ``"1,200.50"``, ``"950,5"`` and friends."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).replace("\u00a0", " ").replace("€", "").strip()
    text = _PRICE_JUNK_RE.sub("", text).strip().replace(" ", "")
    if not text:
        return None

    if "," in text and "." in text:
        if text.rfind(".") > text.rfind(","):
            text = text.replace(",", "")
        else:
            text = text.replace(".", "").replace(",", ".", 1)
    elif "." in text:
        if _DOT_THOUSANDS_RE.match(text):
            text = text.replace(".", "")
    elif "," in text:
        if _COMMA_THOUSANDS_RE.match(text):
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".", 1)

    match = re.match(r"^-?\d+(?:\.\d+)?", text)
    return float(match.group(0)) if match else None


def rating_and_reviews(label: str) -> tuple[Optional[float], Optional[int]]:
    """Pull ``X sur 5`` and ``N avis`` out of an aria-label."""
    cleaned = label.replace(",", ".").replace("\u00a0", " ")
    for ch in "():;":
        cleaned = cleaned.replace(ch, " ")
    tokens = [t for t in cleaned.split(" ") if t.strip()]

    rating: Optional[float] = None
    reviews: Optional[int] = None
    for i, token in enumerate(tokens):
        lower = token.lower()
        if lower == "sur" and 0 < i < len(tokens) - 1:
            prev, nxt = parse_price(tokens[i - 1]), parse_price(tokens[i + 1])
            if prev is not None and nxt == 5:
                rating = prev
        elif lower.startswith("avis") and i > 0:
            digits = tokens[i - 1].replace(".", "")
            if digits.isdigit():
                reviews = int(digits)
    return rating, reviews


def _double_decoded(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        first = json.loads(value)
    except ValueError:
        return value
    if isinstance(first, str):
        try:
            return json.loads(first)
        except ValueError:
            return first
    return first


def vendor_id_from_url(url: str) -> Optional[str]:
    match = _VENDOR_ID_RE.search(url)
    return match.group(1) if match else None


def split_styles(value: Optional[str]) -> List[str]:
    if not value or not value.strip():
        return []
    return [part.strip() for part in _STYLE_SPLIT_RE.split(value) if part.strip()]


# --------------------------------------------------------------------------- #
# Tiles
# --------------------------------------------------------------------------- #


def _text_of(tile: Tag, selector: str) -> Optional[str]:
    node = tile.select_one(selector)
    if node is None:
        return None
    return node.get_text(strip=True) or None


def _vendor_info(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def parse_tiles(listing_html: Optional[str]) -> Dict[str, Dict[str, Any]]:
    if not listing_html:
        return {}
    soup = BeautifulSoup(listing_html, "html.parser")
    tiles: Dict[str, Dict[str, Any]] = {}

    for tile in soup.select("li[data-vendor-id]"):
        vendor_id = str(tile.get("data-vendor-id") or "").strip()
        if not vendor_id:
            continue

        rating: Optional[float] = None
        reviews: Optional[int] = None
        for node in tile.select("[aria-label]"):
            found_rating, found_reviews = rating_and_reviews(str(node.get("aria-label") or ""))
            if found_rating is not None:
                rating = found_rating
            if found_reviews is not None:
                reviews = found_reviews

        title = tile.select_one('a[data-test-id="storefrontTitle"]')
        href = title.get("href") if title is not None else None
        tiles[vendor_id] = {
            "vendor_id": vendor_id,
            "tile_attrs": {k: v for k, v in tile.attrs.items() if isinstance(v, str)},
            "storefront_url": urljoin(BASE_URL, str(href)) if href else None,
            "name": (title.get_text(strip=True) or None) if title is not None else None,
            "location_text": _text_of(tile, ".vendorTile__location"),
            "description": _text_of(tile, "p.vendorTile__description"),
            "rating": rating,
            "reviews_count": reviews,
            "vendor_info": _vendor_info(tile.get("data-vendor-info")),
        }
    return tiles


def _markers_by_id(raw: Any) -> Dict[str, Dict[str, Any]]:
    decoded = _double_decoded(raw)
    if not isinstance(decoded, list):
        return {}
    return {
        m["vendorId"]: m
        for m in decoded
        if isinstance(m, dict) and isinstance(m.get("vendorId"), str) and m["vendorId"]
    }


def _gallery_by_id(raw: Any) -> Dict[str, List[Dict[str, Any]]]:
    if not isinstance(raw, dict):
        return {}
    return {
        str(vendor_id): [i for i in items if isinstance(i, dict)]
        for vendor_id, items in raw.items()
        if isinstance(items, list)
    }


def vendors_from_response(response: ListingResponse) -> List[MariagesnetVendor]:
    tiles = parse_tiles(response.listing_results)
    markers = _markers_by_id(response.map_markers)
    galleries = _gallery_by_id(response.gallery)

    ordered = [str(v) for v in response.result_vendors_ids if v is not None and str(v)]
    vendor_ids = ordered or list(tiles)

    vendors: List[MariagesnetVendor] = []
    seen = set()
    for vendor_id in vendor_ids:
        if vendor_id in seen:
            continue
        seen.add(vendor_id)

        record: Dict[str, Any] = dict(tiles.get(vendor_id) or {"vendor_id": vendor_id})
        marker = markers.get(vendor_id)
        if marker:
            record["map_marker"] = marker
            if record.get("rating") is None:
                record["rating"] = parse_price(marker.get("averageRating"))
        if vendor_id in galleries:
            record["gallery"] = galleries[vendor_id]

        info = record.get("vendor_info") or {}
        if info:
            record["starting_price"] = info.get("price")
            record["starting_price_value"] = parse_price(info.get("price"))
            record["currency"] = info.get("currency") if isinstance(info.get("currency"), str) else None
            record["sector"] = info.get("sector") if isinstance(info.get("sector"), str) else None
            address = info.get("address")
            record["address"] = address if isinstance(address, dict) else {}

        try:
            vendors.append(MariagesnetVendor.model_validate(record))
        except ValidationError as exc:
            logger.warning(
                "Skipping undecodable mariagesnet vendor %s (%d validation errors)",
                vendor_id,
                exc.error_count(),
            )
    return vendors


def parse_profile(html: str) -> ParsedProfilePage:
    return parse_profile_page(html, DESCRIPTION_SELECTORS)
