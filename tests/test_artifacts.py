import hashlib

import pytest

from core.infra.artifacts import (
    FileArtifactStore,
    bucket_for,
    fingerprint,
    sanitize_artifact_type,
    stable_serialize,
)
from core.models import Artifact, ArtifactRequest

URL = "https://www.1001dj.com/recherche?form-search-page=1"


class TestFingerprint:
    def test_key_order_does_not_matter(self):
        a = ArtifactRequest(method="POST", url=URL, body={"zone": "z", "url": "u", "format": "raw"})
        b = ArtifactRequest(method="POST", url=URL, body={"format": "raw", "url": "u", "zone": "z"})
        assert fingerprint(a) == fingerprint(b)

    def test_length_and_value(self):
        request = ArtifactRequest(url=URL)
        expected = hashlib.sha1(
            ('{"method":"GET","url":"%s"}' % URL).encode("utf-8")
        ).hexdigest()[:16]
        assert stable_serialize(request) == '{"method":"GET","url":"%s"}' % URL
        assert fingerprint(request) == expected
        assert len(fingerprint(request)) == 16

    def test_differs_per_request(self):
        assert fingerprint(ArtifactRequest(url=URL)) != fingerprint(ArtifactRequest(url=URL + "2"))
        assert fingerprint(ArtifactRequest(url=URL)) != fingerprint(
            ArtifactRequest(method="POST", url=URL)
        )


class TestBuckets:
    @pytest.mark.parametrize(
        "artifact_type,bucket",
        [
            ("listing_page", "listings"),
            ("listing_response", "listings"),
            ("listing_recommendation_response", "listings"),
            ("profile_page", "profiles"),
            ("profile_response", "profiles"),
            ("listing_profile_batch_response", "profiles"),
            ("Vendor Profile Dump!", "profiles"),
            ("search results", "listings"),
        ],
    )
    def test_bucket_for(self, artifact_type, bucket):
        assert bucket_for(artifact_type) == bucket

    def test_sanitize_artifact_type(self):
        assert sanitize_artifact_type("Vendor Profile Dump!") == "vendor_profile_dump"
        assert sanitize_artifact_type("!!!") == "artifact"


class TestFileArtifactStore:
    @pytest.mark.asyncio
    async def test_read_missing_returns_none(self, tmp_path):
        store = FileArtifactStore(str(tmp_path))
        assert await store.read("profile_page", ArtifactRequest(url=URL)) is None

    @pytest.mark.asyncio
    async def test_write_then_read(self, tmp_path):
        store = FileArtifactStore(str(tmp_path))
        request = ArtifactRequest(url=URL)
        paths = await store.write(
            [Artifact(artifact_type="listing_page", request=request, payload="<html>1</html>")]
        )
        assert paths == [str(tmp_path / "listings" / f"{fingerprint(request)}.txt")]
        assert await store.read("listing_page", request) == "<html>1</html>"

    @pytest.mark.asyncio
    async def test_rewrite_is_idempotent(self, tmp_path):
        store = FileArtifactStore(str(tmp_path))
        request = ArtifactRequest(url=URL)
        for payload in ("<html>old</html>", "<html>new</html>"):
            await store.write([Artifact(artifact_type="profile_page", request=request, payload=payload)])

        files = list((tmp_path / "profiles").iterdir())
        assert len(files) == 1
        assert await store.read("profile_page", request) == "<html>new</html>"
