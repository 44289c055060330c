"""
profile_page.py – source-agnostic heuristics for provider detail pages.

Used as-is by sources without a dedicated parser and as a toolbox by the
ones that have one.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from core.coerce import coerce_float, coerce_int, normalize_spaces

RATING_WORDS = {
    "avis",
    "review",
    "reviews",
    "evaluation",
    "evaluations",
}

RATING_NODE_SELECTORS = ", ".join(
    [
        '[data-testid="storefrontHeadingReviewsStars"]',
        '[data-testid*="Reviews"][data-testid*="Stars"]',
        '[data-testid*="reviews"][data-testid*="stars"]',
        ".storefrontHeadingReviews__stars",
        '[aria-label*="Note globale"]',
        '[aria-label*="note globale"]',
        '[aria-label*="sur 5"]',
    ]
)

PRICE_NODE_SELECTORS = ", ".join(
    [
        '[class*="price"]',
        '[class*="Price"]',
        '[data-test*="price"]',
        '[aria-label*="€"]',
        '[aria-label*="euro"]',
    ]
)

_SLASH_FIVE_RE = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*/\s*5\b")
_SUR_FIVE_RE = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s+sur\s+5\b", re.IGNORECASE)
_EURO_RE = re.compile(r"(\d[\d\s.,]*\d|\d)\s*(?:€|euros?\b)", re.IGNORECASE)


class ParsedProfilePage(BaseModel):
    description: Optional[str] = None
    image_url: Optional[str] = None
    rating_value: Optional[float] = None
    rating_count: Optional[int] = None
    pricing_min: Optional[float] = None
    pricing_max: Optional[float] = None
    pricing_currency: Optional[str] = None
    prices_found: List[float] = Field(default_factory=list)


# --------------------------------------------------------------------------- #
# Helpers shared with source-specific parsers
# --------------------------------------------------------------------------- #


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def page_text(soup: BeautifulSoup) -> str:
    return normalize_spaces(soup.get_text(" "))


def get_meta(soup: BeautifulSoup, name: str) -> Optional[str]:
    for attr in ("name", "property"):
        tag = soup.find("meta", attrs={attr: name})
        content = tag.get("content") if tag is not None else None
        if isinstance(content, str) and content.strip():
            return content.strip()
    return None


def extract_description(soup: BeautifulSoup, selectors: Sequence[str]) -> Optional[str]:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = normalize_spaces(node.get_text(" "))
        if text:
            return text
    return get_meta(soup, "og:description") or get_meta(soup, "description")


def fold_word(token: str) -> str:
    """Lowercase, strip accents and punctuation: ``"Évaluations,"`` -> ``"evaluations"``."""
    decomposed = unicodedata.normalize("NFD", token.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z]", "", stripped)


def _count_token(token: str) -> Optional[int]:
    digits = re.sub(r"[^0-9]", "", token)
    return coerce_int(digits) if digits else None


def extract_rating_count(text: str) -> Optional[int]:
    tokens = text.split(" ")
    for i in range(1, len(tokens)):
        if fold_word(tokens[i]) not in RATING_WORDS:
            continue
        value = _count_token(tokens[i - 1])
        if value is not None:
            return value
        if i + 1 < len(tokens):
            value = _count_token(tokens[i + 1])
            if value is not None:
                return value
    return None


def rating_from_text(text: str) -> Optional[float]:
    normalized = normalize_spaces(text).replace(",", ".")
    for pattern in (_SLASH_FIVE_RE, _SUR_FIVE_RE):
        match = pattern.search(normalized)
        if match:
            value = coerce_float(match.group(1))
            if value is not None and 0 <= value <= 5:
                return value
    return None


def extract_rating_value(soup: BeautifulSoup) -> Optional[float]:
    for node in soup.select(RATING_NODE_SELECTORS):
        label = node.get("aria-label")
        if isinstance(label, str):
            value = rating_from_text(label)
            if value is not None:
                return value
        value = rating_from_text(node.get_text(" "))
        if value is not None:
            return value
    return rating_from_text(page_text(soup))


def euro_prices(texts: Iterable[str]) -> List[float]:
    prices: List[float] = []
    for text in texts:
        for match in _EURO_RE.finditer(normalize_spaces(text)):
            value = coerce_float(match.group(1))
            if value is not None:
                prices.append(value)
    return prices


def extract_prices(soup: BeautifulSoup, selectors: str = PRICE_NODE_SELECTORS) -> List[float]:
    texts = [node.get_text(" ") for node in soup.select(selectors)]
    texts = [t for t in texts if t.strip()]
    if not texts:
        texts = [page_text(soup)]
    return euro_prices(texts)


# --------------------------------------------------------------------------- #


def parse_profile_page(html: str, description_selectors: Sequence[str]) -> ParsedProfilePage:
    soup = make_soup(html)
    prices = extract_prices(soup)
    return ParsedProfilePage(
        description=extract_description(soup, description_selectors),
        image_url=get_meta(soup, "og:image"),
        rating_value=extract_rating_value(soup),
        rating_count=extract_rating_count(page_text(soup)),
        pricing_min=min(prices) if prices else None,
        pricing_max=max(prices) if prices else None,
        pricing_currency="EUR" if prices else None,
        prices_found=prices,
    )
