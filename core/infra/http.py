"""
http.py – Async HTTP client built on *aiohttp* with smart retries,
          transparent 429 / 5xx back-off, per-instance default headers
          and cooperative cancellation.
"""

from __future__ import annotations

import asyncio
import json as jsonlib
import logging
import random
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional

import aiohttp

from ..cancel import CancellationToken, raise_if_cancelled, sleep
from ..sanitize import sanitize_for_error

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200

BROWSER_HEADERS: Dict[str, str] = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "fr-FR,fr;q=0.9,en;q=0.8",
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "cache-control": "no-cache",
    "pragma": "no-cache",
}


def snippet(body: str, length: int = SNIPPET_LENGTH) -> str:
    return " ".join(body.split())[:length]


@dataclass(frozen=True)
class HttpResponse:
    status: int
    content_type: str
    body: str
    retry_after: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpStatusError(Exception):
    """Non-2xx response; the message carries a short body snippet."""

    def __init__(self, status: int, method: str, url: str, body: str = "") -> None:
        self.status = status
        self.method = method
        self.url = url
        self.snippet = snippet(body)
        message = f"HTTP {status} on {method} {url}"
        if self.snippet:
            message = f"{message}: {self.snippet}"
        super().__init__(message)


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * global & per-request headers (keeps user-agent in one place)
    * exponential back-off **with jitter** for 429 / 5xx / network errors
    * transparent parsing of *Retry-After* header
    * every request raced against a :class:`~core.cancel.CancellationToken`
    * async context-manager support
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._own_session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = dict(
            BROWSER_HEADERS if default_headers is None else default_headers
        )

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Internal helpers
    @staticmethod
    def _parse_retry_after(header_val: str | None) -> Optional[float]:
        """Return seconds given a Retry-After header value."""
        if not header_val:
            return None
        header_val = header_val.strip()
        # seconds
        if header_val.isdigit():
            return float(header_val)
        # HTTP-date
        try:
            retry_at = parsedate_to_datetime(header_val).timestamp()
        except (TypeError, ValueError):
            return None
        return max(0.0, retry_at - time.time())

    def _merge_headers(self, extra: Mapping[str, str] | None) -> Dict[str, str]:
        merged: Dict[str, str] = {**self._default_headers}
        if extra:
            merged.update(extra)
        return merged

    def _backoff(self, attempt: int, retry_after: Optional[float]) -> float:
        if retry_after is not None:
            return min(retry_after, self._max_delay)
        exponential = min(self._base_delay * 2 ** (attempt - 1), self._max_delay)
        return exponential + random.uniform(0, self._base_delay)

    async def _send(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        token: Optional[CancellationToken],
        **kwargs,
    ) -> HttpResponse:
        async def _do() -> HttpResponse:
            async with session.request(method, url, **kwargs) as resp:
                body = await resp.text(errors="replace")
                return HttpResponse(
                    status=resp.status,
                    content_type=resp.headers.get("Content-Type", ""),
                    body=body,
                    retry_after=resp.headers.get("Retry-After"),
                )

        if token is None:
            return await _do()
        return await token.guard(_do())

    # ---------------------------------------------- #
    # Public helpers
    async def request(
        self,
        method: str,
        url: str,
        *,
        token: Optional[CancellationToken] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        retry_for_status: tuple[int, ...] = (429, 500, 502, 503, 504),
        **kwargs,
    ) -> HttpResponse:
        """Perform a request with retries; non-2xx raises :class:`HttpStatusError`."""
        session = await self._ensure_session()
        kwargs["headers"] = self._merge_headers(kwargs.pop("headers", None))
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
        attempts = max(1, self._max_retries if max_retries is None else max_retries)

        for attempt in range(1, attempts + 1):
            raise_if_cancelled(token)
            retry_after: Optional[float] = None
            try:
                response = await self._send(session, method, url, token, **kwargs)
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as exc:
                error: Exception = exc
            else:
                if response.ok:
                    return response
                error = HttpStatusError(response.status, method, url, response.body)
                if response.status not in retry_for_status:
                    raise error
                retry_after = self._parse_retry_after(response.retry_after)

            # final attempt – re-raise
            if attempt == attempts:
                if attempts > 1:
                    logger.error(
                        "HTTP %s %s failed after %d attempts: %s",
                        method,
                        sanitize_for_error(url),
                        attempt,
                        sanitize_for_error(str(error)),
                    )
                raise error

            sleep_seconds = self._backoff(attempt, retry_after)
            logger.warning(
                "HTTP %s %s failed (attempt %d/%d – will retry in %.1fs): %s",
                method,
                sanitize_for_error(url),
                attempt,
                attempts,
                sleep_seconds,
                sanitize_for_error(str(error).splitlines()[0]) if str(error) else type(error).__name__,
            )
            await sleep(sleep_seconds, token)

        # Should never hit here
        raise RuntimeError("Unreachable retry loop")

    async def get_text(self, url: str, **kwargs) -> str:
        return (await self.request("GET", url, **kwargs)).body

    async def get_json(self, url: str, **kwargs) -> Any:
        return jsonlib.loads(await self.get_text(url, **kwargs))

    async def post_text(
        self,
        url: str,
        data: Dict[str, Any] | Any,
        *,
        json: bool = True,
        **kwargs,
    ) -> str:
        if json:
            kwargs["json"] = data
        else:
            kwargs["data"] = data
        return (await self.request("POST", url, **kwargs)).body
