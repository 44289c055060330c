"""
cache.py – read-through layer over an :class:`~core.interfaces.ArtifactStore`.

* in-memory overlay: a payload fetched in this run is visible to later reads
  without touching storage
* content-shape checks: a cached payload that is not HTML (or not valid JSON
  for the requested model) is refetched and overwritten, never returned
* pending buffer: new payloads are held until :meth:`CacheService.flush_pending`
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..errors import InvalidArtifactPayload
from ..interfaces import ArtifactStore
from ..models import Artifact, ArtifactRequest
from .artifacts import stable_serialize

logger = logging.getLogger(__name__)

FetchContent = Callable[[], Awaitable[str]]

_TAG_RE = re.compile(r"<[a-z][a-z0-9-]*(?:\s|>)")
_SNIFF_LENGTH = 512


def looks_like_html(payload: str) -> bool:
    text = payload.lstrip()
    if not text:
        return False
    head = text[:_SNIFF_LENGTH].lower()
    if head.startswith("<!doctype html") or head.startswith("<html"):
        return True
    return _TAG_RE.search(head) is not None


def _decode_json(payload: str, schema: Optional[Type[BaseModel]]) -> Any:
    """Return the decoded payload, or raise ``ValueError`` when it has the wrong shape."""
    data = json.loads(payload)
    if schema is None:
        return data
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


class CacheService:
    def __init__(self, store: ArtifactStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._pending: List[Artifact] = []
        self._pending_index: Dict[str, int] = {}
        self._overlay: Dict[str, str] = {}

    @staticmethod
    def _key(artifact_type: str, request: ArtifactRequest) -> str:
        return f"{artifact_type}:{stable_serialize(request)}"

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ---------------------------------------------- #
    # Raw access
    async def _lookup(self, artifact_type: str, request: ArtifactRequest) -> Optional[str]:
        key = self._key(artifact_type, request)
        async with self._lock:
            if key in self._overlay:
                return self._overlay[key]
        return await self._store.read(artifact_type, request)

    async def _remember(
        self, artifact_type: str, request: ArtifactRequest, payload: str
    ) -> None:
        key = self._key(artifact_type, request)
        artifact = Artifact(artifact_type=artifact_type, request=request, payload=payload)
        async with self._lock:
            self._overlay[key] = payload
            index = self._pending_index.get(key)
            if index is None:
                self._pending_index[key] = len(self._pending)
                self._pending.append(artifact)
            else:
                self._pending[index] = artifact

    async def get_raw(
        self, artifact_type: str, request: ArtifactRequest, fetch_content: FetchContent
    ) -> str:
        cached = await self._lookup(artifact_type, request)
        if cached is not None:
            logger.debug("cache hit %s %s", artifact_type, request.url)
            return cached
        logger.debug("cache miss %s %s", artifact_type, request.url)
        payload = await fetch_content()
        await self._remember(artifact_type, request, payload)
        return payload

    # ---------------------------------------------- #
    # Shape-checked access
    async def get_json(
        self,
        artifact_type: str,
        request: ArtifactRequest,
        fetch_content: FetchContent,
        schema: Optional[Type[BaseModel]] = None,
    ) -> Any:
        cached = await self._lookup(artifact_type, request)
        if cached is not None:
            try:
                return _decode_json(cached, schema)
            except ValueError:
                logger.info("Cached %s for %s has the wrong shape, refetching", artifact_type, request.url)

        payload = await fetch_content()
        try:
            decoded = _decode_json(payload, schema)
        except ValueError as exc:
            raise InvalidArtifactPayload(f"Invalid JSON artifact payload for {request.url}") from exc
        await self._remember(artifact_type, request, payload)
        return decoded

    async def get_html(
        self, artifact_type: str, request: ArtifactRequest, fetch_content: FetchContent
    ) -> str:
        cached = await self._lookup(artifact_type, request)
        if cached is not None:
            if looks_like_html(cached):
                return cached
            logger.info("Cached %s for %s is not HTML, refetching", artifact_type, request.url)

        payload = await fetch_content()
        if not looks_like_html(payload):
            raise InvalidArtifactPayload(f"Invalid HTML artifact payload for {request.url}")
        await self._remember(artifact_type, request, payload)
        return payload

    # ---------------------------------------------- #
    # Persistence
    async def flush_pending(self) -> List[str]:
        async with self._lock:
            pending = self._pending
            self._pending = []
            self._pending_index = {}
        if not pending:
            return []
        return await self._store.write(pending)
