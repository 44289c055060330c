import aiohttp
import pytest

from core.cancel import CancellationToken
from core.errors import OperationCancelled
from core.infra.http import HttpClient, HttpStatusError, snippet


class _Response:
    def __init__(self, status, body="", headers=None):
        self.status = status
        self.headers = headers or {}
        self._body = body

    async def text(self, errors="strict"):
        return self._body


class _Request:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return None


class ScriptedSession:
    """Stands in for aiohttp.ClientSession, replaying one outcome per request."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return _Request(self._outcomes.pop(0))


def _client(session, **kwargs):
    return HttpClient(session=session, base_delay=0, **kwargs)


class TestRequest:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        session = ScriptedSession(_Response(503, "busy"), _Response(200, "<html>ok</html>"))
        assert await _client(session).get_text("https://example.com/") == "<html>ok</html>"
        assert len(session.calls) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        session = ScriptedSession(_Response(404, "  gone \n for   good  "))
        with pytest.raises(HttpStatusError) as info:
            await _client(session).get_text("https://example.com/x")
        assert info.value.status == 404
        assert str(info.value) == "HTTP 404 on GET https://example.com/x: gone for good"
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_single_attempt_when_max_retries_is_one(self):
        session = ScriptedSession(_Response(503), _Response(200, "late"))
        with pytest.raises(HttpStatusError):
            await _client(session).get_text("https://example.com/", max_retries=1)
        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_connection_errors_retried(self):
        session = ScriptedSession(aiohttp.ClientConnectionError("reset"), _Response(200, "{}"))
        assert await _client(session).get_json("https://example.com/api") == {}

    @pytest.mark.asyncio
    async def test_headers_merged_and_json_body_sent(self):
        session = ScriptedSession(_Response(200, "done"))
        await _client(session).post_text(
            "https://example.com/api", {"q": 1}, headers={"authorization": "Bearer k"}
        )
        method, _, kwargs = session.calls[0]
        assert method == "POST"
        assert kwargs["json"] == {"q": 1}
        assert kwargs["headers"]["authorization"] == "Bearer k"
        assert "user-agent" in kwargs["headers"]

    @pytest.mark.asyncio
    async def test_cancelled_token_sends_nothing(self):
        token = CancellationToken()
        token.cancel()
        session = ScriptedSession(_Response(200))
        with pytest.raises(OperationCancelled):
            await _client(session).get_text("https://example.com/", token=token)
        assert session.calls == []


class TestHelpers:
    def test_retry_after_seconds(self):
        assert HttpClient._parse_retry_after("7") == 7.0
        assert HttpClient._parse_retry_after("soon") is None
        assert HttpClient._parse_retry_after(None) is None

    def test_backoff_is_capped(self):
        client = HttpClient(base_delay=1.0, max_delay=5.0)
        assert client._backoff(1, 120.0) == 5.0
        assert 5.0 <= client._backoff(10, None) <= 6.0

    def test_snippet(self):
        assert snippet("a \n  b") == "a b"
        assert len(snippet("x" * 500)) == 200
