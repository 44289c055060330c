"""
Shared fixtures: an in-memory artifact store, a scripted HTTP client and
settings that never read secrets from the environment.

No test touches the network or the user's raw-artifact directory.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from core.config import PaginationSettings, ProviderSettings, RunSettings, Secrets, Settings
from core.infra.artifacts import fingerprint
from core.infra.cache import CacheService
from core.infra.http import HttpStatusError
from core.interfaces import ArtifactStore
from core.models import Artifact, ArtifactRequest


class InMemoryArtifactStore(ArtifactStore):
    def __init__(self) -> None:
        self.data: Dict[Tuple[str, str], str] = {}
        self.reads = 0
        self.write_calls: List[List[Artifact]] = []

    def seed(self, artifact_type: str, request: ArtifactRequest, payload: str) -> None:
        self.data[(artifact_type, fingerprint(request))] = payload

    async def read(self, artifact_type: str, request: ArtifactRequest) -> Optional[str]:
        self.reads += 1
        return self.data.get((artifact_type, fingerprint(request)))

    async def write(self, artifacts: Sequence[Artifact]) -> List[str]:
        self.write_calls.append(list(artifacts))
        written = []
        for artifact in artifacts:
            key = (artifact.artifact_type, fingerprint(artifact.request))
            self.data[key] = artifact.payload
            written.append(f"memory://{key[0]}/{key[1]}")
        return written


Route = Union[str, Exception, Callable[[str, Dict[str, Any]], str]]


class FakeHttpClient:
    """Answers from a URL -> body table; unknown URLs get a 404.

    POST requests whose JSON body carries a ``url`` (proxy calls) are routed
    by that inner URL.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def route(self, url: str, body: Route) -> None:
        self.routes[url] = body

    def requested(self, method: Optional[str] = None) -> List[str]:
        return [url for m, url, _ in self.calls if method is None or m == method]

    def _answer(self, method: str, url: str, kwargs: Dict[str, Any]) -> str:
        self.calls.append((method, url, kwargs))
        token = kwargs.get("token")
        if token is not None:
            token.raise_if_cancelled()
        route = self.routes.get(url)
        if route is None:
            raise HttpStatusError(404, method, url, "not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url, kwargs)
        return route

    async def get_text(self, url: str, **kwargs) -> str:
        return self._answer("GET", url, kwargs)

    async def get_json(self, url: str, **kwargs) -> Any:
        return json.loads(self._answer("GET", url, kwargs))

    async def post_text(self, url: str, data: Any, *, json: bool = True, **kwargs) -> str:
        target = data.get("url") if isinstance(data, dict) else None
        kwargs["data"] = data
        return self._answer("POST", target or url, kwargs)


@pytest.fixture
def store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def cache(store: InMemoryArtifactStore) -> CacheService:
    return CacheService(store)


@pytest.fixture
def http() -> FakeHttpClient:
    return FakeHttpClient()


NO_DELAY = ProviderSettings(min_interval=0, page_delay=0)


def make_settings(secrets: Optional[Secrets] = None, **run: Any) -> Settings:
    return Settings(
        run=RunSettings(**run),
        providers={name: NO_DELAY for name in ("1001dj", "linkaband", "livetonight", "mariagesnet")},
        pagination=PaginationSettings(stagnation_threshold=2, max_pages=10),
        secrets=secrets or Secrets(),
    )


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()
