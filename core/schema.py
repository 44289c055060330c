"""
schema.py – the common record shape every source projects into, and the
versioned output document handed to the scoring stage.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import SchemaVersionError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class BudgetFit(str, Enum):
    GOOD = "good"
    OK = "ok"
    BAD = "bad"
    UNKNOWN = "unknown"


class Reputation(_Record):
    rating: Optional[float] = None
    review_count: Optional[int] = None
    review_highlights: List[str] = Field(default_factory=list)


class Location(_Record):
    city: Optional[str] = None
    region: Optional[str] = None
    service_area: List[str] = Field(default_factory=list)
    travel_policy: Optional[str] = None


class Availability(_Record):
    available_dates: List[str] = Field(default_factory=list)
    lead_time_days: Optional[int] = None
    booking_status: Optional[str] = None


class Professionalism(_Record):
    is_verified: Optional[bool] = None
    years_experience: Optional[int] = None
    response_time: Optional[str] = None
    contract_provided: Optional[bool] = None
    insurance: Optional[bool] = None


class Media(_Record):
    photos_count: int = 0
    videos_count: int = 0
    portfolio_links: List[str] = Field(default_factory=list)


class Communication(_Record):
    languages: List[str] = Field(default_factory=list)
    response_channels: List[str] = Field(default_factory=list)


class Policies(_Record):
    cancellation_policy: Optional[str] = None
    requirements: List[str] = Field(default_factory=list)


class BudgetSummary(_Record):
    min_known_price: Optional[float] = None
    max_known_price: Optional[float] = None
    has_transparent_pricing: bool = False
    budget_fit: BudgetFit = BudgetFit.UNKNOWN


class Price(_Record):
    amount: float
    currency: Optional[str] = None
    unit: str = "total"


class Offer(_Record):
    offer_id: str
    name: str
    base_price: Price


class DjDetails(_Record):
    musical_styles: List[str] = Field(default_factory=list)
    dj_set_formats: List[str] = Field(default_factory=list)
    mc_services: Optional[bool] = None
    sound_equipment: List[str] = Field(default_factory=list)
    lighting_equipment: List[str] = Field(default_factory=list)
    special_moments_support: List[str] = Field(default_factory=list)


class NormalizedRecord(_Record):
    provider: str
    provider_id: Optional[str] = None
    name: Optional[str] = None
    profile_url: Optional[str] = None
    description: Optional[str] = None
    service_type: str = "wedding-dj"
    reputation: Reputation = Field(default_factory=Reputation)
    location: Location = Field(default_factory=Location)
    availability: Availability = Field(default_factory=Availability)
    professionalism: Professionalism = Field(default_factory=Professionalism)
    media: Media = Field(default_factory=Media)
    communication: Communication = Field(default_factory=Communication)
    policies: Policies = Field(default_factory=Policies)
    budget_summary: BudgetSummary = Field(default_factory=BudgetSummary)
    offers: List[Offer] = Field(default_factory=list)
    service_specific: DjDetails = Field(default_factory=DjDetails)


# ---------------------------------------------- #
# Output document
class ResultItem(_Record):
    kind: Literal["profile"] = "profile"
    normalized: NormalizedRecord
    raw: Any = None


class OutputMeta(_Record):
    source: str
    record_kind: Literal["profiles", "unknown"]
    count: int
    generated_at: str
    schema_version: str = SCHEMA_VERSION


class ParsedOutput(_Record):
    meta: OutputMeta
    results: List[ResultItem] = Field(default_factory=list)
    raw: Any = None

    def dump(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


def build_parsed_output(
    source: str, items: Sequence[ResultItem], raw: Any = None
) -> ParsedOutput:
    return ParsedOutput(
        meta=OutputMeta(
            source=source,
            record_kind="profiles" if items else "unknown",
            count=len(items),
            generated_at=datetime.now(tz=timezone.utc).isoformat(),
        ),
        results=list(items),
        raw=raw,
    )


def validate_parsed_output(data: Any) -> ParsedOutput:
    """Validate a decoded output document, refusing unknown schema versions."""
    if not isinstance(data, dict) or not isinstance(data.get("meta"), dict):
        raise SchemaVersionError("Output document has no meta block")
    version = data["meta"].get("schemaVersion")
    if version != SCHEMA_VERSION:
        raise SchemaVersionError(
            f"Unsupported schemaVersion {version!r} (expected {SCHEMA_VERSION!r})"
        )
    return ParsedOutput.model_validate(data)


def load_parsed_output(path: str | Path) -> ParsedOutput:
    with Path(path).open(encoding="utf-8") as fh:
        data = json.load(fh)
    output = validate_parsed_output(data)
    logger.info("Loaded %d prior records from %s", output.meta.count, path)
    return output
