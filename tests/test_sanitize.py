import pytest

from core.errors import ListingFetchError
from core.models import ErrorCode, PipelineError, PipelineStep
from core.sanitize import MAX_LENGTH, sanitize_for_error


class TestSanitizeForError:
    def test_empty(self):
        assert sanitize_for_error("") == ""
        assert sanitize_for_error(None) == ""

    def test_bearer_token_redacted(self):
        out = sanitize_for_error("request failed: Authorization: Bearer sk-live-123456 rejected")
        assert "sk-live-123456" not in out
        assert "Bearer [REDACTED]" in out

    def test_basic_credentials_redacted(self):
        out = sanitize_for_error("basic dXNlcjpwYXNz was refused")
        assert "dXNlcjpwYXNz" not in out

    def test_sensitive_query_params_redacted(self):
        out = sanitize_for_error(
            "HTTP 403 on GET https://api.example.com/search?page=2&api_key=SECRET&token=abc#top"
        )
        assert "SECRET" not in out
        assert "abc" not in out
        assert "page=2" in out
        assert "api_key=[REDACTED]" in out
        assert "token=[REDACTED]" in out

    def test_plain_text_untouched(self):
        assert sanitize_for_error("token expired") == "token expired"

    def test_truncated(self):
        out = sanitize_for_error("x" * 500)
        assert len(out) == MAX_LENGTH
        assert out.endswith("...")


class TestPipelineError:
    def test_build_derives_step_and_sanitizes(self):
        error = PipelineError.build(
            ErrorCode.PROFILE_FETCH_FAILED,
            provider="livetonight",
            target="https://x.example/p?access_token=abc",
            message="Bearer abc boom",
        )
        assert error.step is PipelineStep.PROFILE_FETCH
        assert "abc" not in error.target
        assert "abc" not in error.message

    def test_direct_construction_is_sanitized_too(self):
        error = PipelineError(
            code=ErrorCode.NORMALIZE_FAILED,
            provider="1001dj",
            step=PipelineStep.NORMALIZE,
            message="y" * 300,
        )
        assert len(error.message) == MAX_LENGTH

    def test_cancelled_is_never_an_error_record(self):
        with pytest.raises(ValueError):
            PipelineError.build(ErrorCode.CANCELLED, provider="1001dj", message="stop")

    def test_exception_to_error(self):
        error = ListingFetchError("HTTP 500 on GET https://a.example/?apikey=k", provider="1001dj").to_error()
        assert error.code is ErrorCode.LISTING_FETCH_FAILED
        assert error.step is PipelineStep.LISTING_FETCH
        assert error.target is None
        assert "apikey=[REDACTED]" in error.message
