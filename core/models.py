"""
Core data models for the pipeline.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .sanitize import sanitize_for_error


# ---------------------------------------------- #
# Artifacts
class ArtifactRequest(BaseModel):
    """One external call; only ever used to compute a fingerprint."""

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    body: Optional[Any] = None

    def identity(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact_type: str
    request: ArtifactRequest
    payload: str


# ---------------------------------------------- #
# Errors
class ErrorCode(str, Enum):
    LISTING_FETCH_FAILED = "LISTING_FETCH_FAILED"
    LISTING_PARSE_FAILED = "LISTING_PARSE_FAILED"
    PROFILE_FETCH_FAILED = "PROFILE_FETCH_FAILED"
    PROFILE_PARSE_FAILED = "PROFILE_PARSE_FAILED"
    MERGE_FAILED = "MERGE_FAILED"
    NORMALIZE_FAILED = "NORMALIZE_FAILED"
    CANCELLED = "CANCELLED"


class PipelineStep(str, Enum):
    LISTING_FETCH = "listing-fetch"
    LISTING_PARSE = "listing-parse"
    PROFILE_FETCH = "profile-fetch"
    PROFILE_PARSE = "profile-parse"
    MERGE = "merge"
    NORMALIZE = "normalize"


STEP_BY_CODE: Dict[ErrorCode, PipelineStep] = {
    ErrorCode.LISTING_FETCH_FAILED: PipelineStep.LISTING_FETCH,
    ErrorCode.LISTING_PARSE_FAILED: PipelineStep.LISTING_PARSE,
    ErrorCode.PROFILE_FETCH_FAILED: PipelineStep.PROFILE_FETCH,
    ErrorCode.PROFILE_PARSE_FAILED: PipelineStep.PROFILE_PARSE,
    ErrorCode.MERGE_FAILED: PipelineStep.MERGE,
    ErrorCode.NORMALIZE_FAILED: PipelineStep.NORMALIZE,
}


class PipelineError(BaseModel):
    """Structured, sanitized error attached to a source or an item."""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    provider: str
    step: PipelineStep
    target: Optional[str] = None
    message: str

    @field_validator("message")
    @classmethod
    def _sanitize_message(cls, value: str) -> str:
        return sanitize_for_error(value)

    @field_validator("target")
    @classmethod
    def _sanitize_target(cls, value: Optional[str]) -> Optional[str]:
        return sanitize_for_error(value) if value else value

    @classmethod
    def build(
        cls,
        code: ErrorCode,
        *,
        provider: str,
        message: str,
        target: Optional[str] = None,
    ) -> "PipelineError":
        if code not in STEP_BY_CODE:
            raise ValueError(f"{code.value} is not reported as a pipeline error")
        return cls(
            code=code,
            provider=provider,
            step=STEP_BY_CODE[code],
            target=target,
            message=message,
        )


# ---------------------------------------------- #
# Detail-page outcomes
class ProfileFetchOutcome(BaseModel):
    success: bool
    target: str
    html: Optional[str] = None
    error: Optional[PipelineError] = None


class ProfileParseOutcome(BaseModel):
    success: bool
    target: str
    data: Any = None
    error: Optional[PipelineError] = None


# ---------------------------------------------- #
# Run inputs
class SearchLocation(BaseModel):
    text: str
    lat: Optional[float] = None
    lng: Optional[float] = None


class SearchContext(BaseModel):
    service_type: str = "wedding-dj"
    location: Optional[SearchLocation] = None
    date: Optional[str] = None


class ListOptions(BaseModel):
    fetch_limit: Optional[int] = Field(default=None, ge=1)
    budget_target: float = 1500.0
    budget_max: float = 2500.0
    dry_run: bool = False


# ---------------------------------------------- #
# Progress
class TaskState(str, Enum):
    FETCHING = "fetching"
    EVALUATING = "evaluating"
    DONE = "done"
    ERROR = "error"


class ProgressEvent(BaseModel):
    worker_id: int
    provider: str
    display_name: str
    target: str
    state: TaskState
    completed: int
    total: int
    message: Optional[str] = None
