"""
sanitize.py – redaction pass for anything that leaves the pipeline as text.

Strips ``Bearer``/``Basic`` credentials, blanks sensitive query-string values
inside URLs and caps the length of the result.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

MAX_LENGTH = 200
REDACTED = "[REDACTED]"

SENSITIVE_PARAMS = (
    "api_key",
    "apikey",
    "token",
    "auth",
    "secret",
    "password",
    "access_token",
    "bearer",
)

_AUTH_SCHEME_RE = re.compile(r"\b(Bearer|Basic)\s+[^\s\"',;]+", re.IGNORECASE)
_URL_RE = re.compile(r"https?://[^\s\"'<>]+", re.IGNORECASE)
_PARAM_RE = re.compile(
    r"([?&](?:%s)=)[^&#\s]*" % "|".join(re.escape(p) for p in SENSITIVE_PARAMS),
    re.IGNORECASE,
)


def _redact_url(match: re.Match) -> str:
    url = match.group(0)
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc or not parts.query:
        return url
    return _PARAM_RE.sub(lambda m: m.group(1) + REDACTED, url)


def sanitize_for_error(text: str | None) -> str:
    """Return *text* with credentials redacted and length capped."""
    if not text:
        return ""
    out = _AUTH_SCHEME_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    out = _URL_RE.sub(_redact_url, out)
    if len(out) > MAX_LENGTH:
        out = out[: MAX_LENGTH - 3] + "..."
    return out
