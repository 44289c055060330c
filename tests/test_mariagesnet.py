import json

import pytest

from core.config import Secrets
from core.errors import ListingFetchError
from core.infra.artifacts import stable_serialize
from core.models import ErrorCode, ListOptions, SearchContext
from core.schema import BudgetFit
from providers.mariagesnet import MariagesnetSource
from providers.mariagesnet.fetcher import BRIGHTDATA_ENDPOINT, search_url
from providers.mariagesnet.parser import (
    ListingResponse,
    parse_price,
    rating_and_reviews,
    split_styles,
    vendor_id_from_url,
    vendors_from_response,
)

NORD = "https://www.mariages.net/dj/dj-nord--e101"
SUD = "https://www.mariages.net/dj/dj-sud--e202"

TILES = """
<ul>
<li data-vendor-id="101" data-vendor-info='{"price": "1.200 €", "currency": "EUR", "sector": "House - Disco, Années 80", "address": {"city": "Lille", "region": "Nord"}}'>
  <a data-test-id="storefrontTitle" href="/dj/dj-nord--e101">DJ Nord</a>
  <div class="vendorTile__location">Lille, Nord</div>
  <span aria-label="Note 4,9 sur 5 (32 avis)"></span>
  <p class="vendorTile__description">Ambiance garantie</p>
</li>
<li data-vendor-id="202">
  <a data-test-id="storefrontTitle" href="https://www.mariages.net/dj/dj-sud--e202">DJ Sud</a>
  <div class="vendorTile__location">Marseille, Bouches-du-Rhône</div>
</li>
</ul>
"""

LISTING = {
    "listingResults": TILES,
    "resultVendorsIds": ["202", "101", "202"],
    "mapMarkers": json.dumps(json.dumps([{"vendorId": "202", "averageRating": "4,5"}])),
    "listingVendorsGalleryJson": {
        "101": [{"src": "https://cdn.mariages.net/101-a.jpg", "srcset": "https://cdn.mariages.net/101-b.jpg"}, "junk"]
    },
}
EMPTY_LISTING = {"listingResults": "", "resultVendorsIds": []}

STOREFRONT = """
<html><body>
<div class="storefront-description">DJ depuis 15 ans, toutes ambiances.</div>
<span class="price">1 500 €</span>
</body></html>
"""

SECRETS = Secrets(brightdata_api_key="key-1", brightdata_zone="unlocker")


@pytest.fixture
def source(http, cache, settings_factory):
    http.route(search_url(1), json.dumps(LISTING))
    http.route(search_url(2), json.dumps(EMPTY_LISTING))
    http.route(NORD, STOREFRONT)
    return MariagesnetSource(http=http, cache=cache, settings=settings_factory(secrets=SECRETS))


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1 200 €", 1200),
        ("1\u00a0200\u00a0€", 1200),
        ("1.200", 1200),
        ("1,200", 1200),
        ("1,200.50", 1200.5),
        ("1.234,56", 1234.56),
        ("950,5", 950.5),
        (800, 800),
        ("sur demande", None),
        (None, None),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


def test_rating_and_reviews():
    assert rating_and_reviews("Note 4,9 sur 5 (32 avis)") == (4.9, 32)
    assert rating_and_reviews("Aucun avis") == (None, None)


def test_split_styles():
    assert split_styles("House - Disco, Années 80") == ["House", "Disco", "Années 80"]
    assert split_styles("  ") == []


def test_vendor_id_from_url():
    assert vendor_id_from_url(NORD + "?utm=1") == "101"
    assert vendor_id_from_url("https://www.mariages.net/dj/dj-nord") is None


class TestVendorsFromResponse:
    def test_order_markers_and_gallery(self):
        vendors = vendors_from_response(ListingResponse.model_validate(LISTING))
        assert [v.vendor_id for v in vendors] == ["202", "101"]

        sud, nord = vendors
        assert sud.rating == 4.5
        assert sud.storefront_url == SUD

        assert nord.storefront_url == NORD
        assert nord.rating == 4.9
        assert nord.reviews_count == 32
        assert nord.starting_price_value == 1200
        assert nord.sector == "House - Disco, Années 80"
        assert nord.gallery_urls() == [
            "https://cdn.mariages.net/101-a.jpg",
            "https://cdn.mariages.net/101-b.jpg",
        ]

    def test_tile_order_without_ids(self):
        data = dict(LISTING, resultVendorsIds=[])
        vendors = vendors_from_response(ListingResponse.model_validate(data))
        assert [v.vendor_id for v in vendors] == ["101", "202"]


class TestMariagesnetSource:
    def test_unavailable_without_credentials(self, http, cache, settings):
        assert not MariagesnetSource(http=http, cache=cache, settings=settings).is_available()

    @pytest.mark.asyncio
    async def test_list_without_credentials_fails(self, http, cache, settings):
        source = MariagesnetSource(http=http, cache=cache, settings=settings)
        with pytest.raises(ListingFetchError):
            await source.list(ListOptions(), SearchContext())
        assert http.calls == []

    @pytest.mark.asyncio
    async def test_tasks_mode(self, source):
        listed = await source.list(ListOptions(), SearchContext())
        assert [t.target for t in listed.tasks] == [SUD, NORD]

        sud, nord = [await task.run(None) for task in listed.tasks]

        assert sud.error.code is ErrorCode.PROFILE_FETCH_FAILED
        assert sud.record.location.city == "Marseille"
        assert sud.record.location.region == "Bouches-du-Rhône"
        assert sud.record.reputation.rating == 4.5

        record = nord.record
        assert nord.error is None
        assert record.provider == "mariagesnet"
        assert record.provider_id == "101"
        assert record.description == "DJ depuis 15 ans, toutes ambiances."
        assert record.location.city == "Lille"
        assert record.reputation.rating == 4.9
        assert record.reputation.review_count == 32
        assert record.budget_summary.min_known_price == 1500
        assert record.budget_summary.budget_fit is BudgetFit.GOOD
        assert record.service_specific.musical_styles == ["House", "Disco", "Années 80"]
        assert record.media.photos_count == 2

    @pytest.mark.asyncio
    async def test_requests_go_through_proxy(self, source, http):
        listed = await source.list(ListOptions(), SearchContext())
        await listed.tasks[1].run(None)

        assert all(method == "POST" for method, _, _ in http.calls)
        _, _, kwargs = http.calls[0]
        assert kwargs["data"]["zone"] == "unlocker"
        assert kwargs["data"]["format"] == "raw"
        assert kwargs["headers"]["authorization"] == "Bearer key-1"

    @pytest.mark.asyncio
    async def test_artifacts_never_contain_the_api_key(self, source, cache, store):
        listed = await source.list(ListOptions(), SearchContext())
        await listed.tasks[1].run(None)
        await cache.flush_pending()

        artifacts = store.write_calls[0]
        assert {a.artifact_type for a in artifacts} == {"listing_response", "profile_response"}
        for artifact in artifacts:
            assert artifact.request.url == BRIGHTDATA_ENDPOINT
            assert "key-1" not in stable_serialize(artifact.request)

    @pytest.mark.asyncio
    async def test_batch_mode(self, source):
        batch = await source.run_batch(ListOptions(), SearchContext())
        assert [i.normalized.provider_id for i in batch.items] == ["202", "101"]
        assert batch.items[1].normalized.budget_summary.min_known_price == 1500
        assert [e.target for e in batch.errors] == [SUD]
