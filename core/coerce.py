"""
Lenient scalar coercion for scraped values.

Sources mix ``"1 200,50"``, ``"1,200.50"`` and plain numbers; these helpers
return ``None`` instead of raising when a value cannot be read.
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

_DIGITS_RE = re.compile(r"^[0-9]+$")
_FLOAT_RE = re.compile(r"^[+-]?[0-9][0-9.,]*$")
_SPACES_RE = re.compile(r"[\s\u00a0\u202f]+")


def normalize_spaces(text: Optional[str]) -> str:
    if not text:
        return ""
    return _SPACES_RE.sub(" ", text).strip()


def coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _DIGITS_RE.match(value.strip()):
        return int(value.strip())
    return None


def _normalize_float_string(value: str) -> Optional[str]:
    compact = _SPACES_RE.sub("", value).strip()
    if not compact or not _FLOAT_RE.match(compact):
        return None

    sign = compact[0] if compact[0] in "+-" else ""
    digits = compact[1:] if sign else compact
    commas = digits.count(",")
    dots = digits.count(".")

    if commas and dots:
        # the right-most separator is the decimal one
        if digits.rfind(",") > digits.rfind("."):
            return sign + digits.replace(".", "").replace(",", ".")
        return sign + digits.replace(",", "")
    if commas:
        if commas == 1:
            return sign + digits.replace(",", ".")
        head, _, frac = digits.rpartition(",")
        return f"{sign}{head.replace(',', '')}.{frac}"
    if dots > 1:
        head, _, frac = digits.rpartition(".")
        return f"{sign}{head.replace('.', '')}.{frac}"
    return sign + digits


def coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        normalized = _normalize_float_string(value)
        if normalized is None:
            return None
        try:
            return float(normalized)
        except ValueError:
            return None
    return None


def coerce_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
