"""
Exception hierarchy for the pipeline.

Two severities exist: exceptions that are fatal to one source
(:class:`ListingFetchError`, :class:`ListingParseError`) and failures attached
to one item, which are converted into :class:`~core.models.PipelineError`
records via :meth:`PipelineException.to_error`.  :class:`OperationCancelled`
is never converted; it unwinds every layer.
"""

from __future__ import annotations

from typing import Optional

from .models import ErrorCode, PipelineError


class OperationCancelled(Exception):
    """Raised when the run's cancellation token fires."""

    code = ErrorCode.CANCELLED

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class PipelineException(Exception):
    code: ErrorCode = ErrorCode.NORMALIZE_FAILED

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        target: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.target = target

    def to_error(self) -> PipelineError:
        return PipelineError.build(
            self.code, provider=self.provider, target=self.target, message=str(self)
        )


class ListingFetchError(PipelineException):
    code = ErrorCode.LISTING_FETCH_FAILED


class ListingParseError(PipelineException):
    code = ErrorCode.LISTING_PARSE_FAILED


class ProfileFetchError(PipelineException):
    code = ErrorCode.PROFILE_FETCH_FAILED


class ProfileParseError(PipelineException):
    code = ErrorCode.PROFILE_PARSE_FAILED


class InvalidArtifactPayload(ValueError):
    """A freshly fetched payload failed its content-shape check."""


class SchemaVersionError(ValueError):
    """An output document carries a schema version this code cannot read."""
