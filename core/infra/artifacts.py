"""
artifacts.py – content-addressable, file-backed storage for raw payloads.

Layout: ``<raw_dir>/<bucket>/<fingerprint>.txt`` where *bucket* is
``listings`` or ``profiles``.  Reads are keyed by ``(artifact_type, request)``
only, so they stay stable across process restarts.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..interfaces import ArtifactStore
from ..models import Artifact, ArtifactRequest

logger = logging.getLogger(__name__)

DEFAULT_RAW_DIR = "~/.presta-finder/raw"
FINGERPRINT_LENGTH = 16

BUCKET_BY_ARTIFACT_TYPE: Dict[str, str] = {
    "listing_recommendation_response": "listings",
    "listing_page": "listings",
    "listing_response": "listings",
    "listing_profile_batch_response": "profiles",
    "profile_page": "profiles",
    "profile_response": "profiles",
}

_UNSAFE_RE = re.compile(r"[^a-z0-9_-]+")


def stable_serialize(value: Any) -> str:
    """JSON with sorted keys so field order never changes the output."""
    if isinstance(value, ArtifactRequest):
        value = value.identity()
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(request: ArtifactRequest) -> str:
    digest = hashlib.sha1(stable_serialize(request).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def sanitize_artifact_type(artifact_type: str) -> str:
    return _UNSAFE_RE.sub("_", artifact_type.lower()).strip("_") or "artifact"


def bucket_for(artifact_type: str) -> str:
    known = BUCKET_BY_ARTIFACT_TYPE.get(artifact_type)
    if known:
        return known
    name = sanitize_artifact_type(artifact_type)
    return "profiles" if "profile" in name else "listings"


class FileArtifactStore(ArtifactStore):
    def __init__(self, raw_dir: Optional[str] = None) -> None:
        self.root = Path(raw_dir or DEFAULT_RAW_DIR).expanduser()

    def path_for(self, artifact_type: str, request: ArtifactRequest) -> Path:
        return self.root / bucket_for(artifact_type) / f"{fingerprint(request)}.txt"

    async def read(self, artifact_type: str, request: ArtifactRequest) -> Optional[str]:
        path = self.path_for(artifact_type, request)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    async def write(self, artifacts: Sequence[Artifact]) -> List[str]:
        written: List[str] = []
        for artifact in artifacts:
            path = self.path_for(artifact.artifact_type, artifact.request)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(artifact.payload, encoding="utf-8")
            written.append(str(path))
        if written:
            logger.info("Persisted %d artifacts under %s", len(written), self.root)
        return written
