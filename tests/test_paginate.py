import asyncio

import pytest

from core.cancel import CancellationToken
from core.errors import OperationCancelled
from core.paginate import ListingTracker, paginate_until


def _ids(start: int, stop: int):
    return [f"dj-{i}" for i in range(start, stop)]


class TestPaginateUntil:
    @pytest.mark.asyncio
    async def test_sequential_pages(self):
        seen = []

        async def fetch_page(page):
            seen.append(page)
            return [page]

        pages = [p async for p in paginate_until(fetch_page, first_page=3, max_pages=4)]
        assert [p.page for p in pages] == [3, 4, 5, 6]
        assert seen == [3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_cancelled_before_next_fetch(self):
        token = CancellationToken()
        fetched = []

        async def fetch_page(page):
            fetched.append(page)
            return [page]

        with pytest.raises(OperationCancelled):
            async for page in paginate_until(fetch_page, max_pages=5, token=token):
                token.cancel("user abort")
        assert fetched == [1]

    @pytest.mark.asyncio
    async def test_sleep_between_is_cancellable(self):
        token = CancellationToken()

        async def fetch_page(page):
            return [page]

        async def consume():
            async for _ in paginate_until(fetch_page, max_pages=3, sleep_between=30, token=token):
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        token.cancel()
        with pytest.raises(OperationCancelled):
            await asyncio.wait_for(task, timeout=2)


class TestListingTracker:
    @pytest.mark.asyncio
    async def test_stagnation_stops_after_page_three(self):
        # pages 0 and 1 bring 36 new ids, later pages repeat page 1
        pages = {0: _ids(0, 18), 1: _ids(18, 36)}
        fetched = []

        async def fetch_page(page):
            fetched.append(page)
            return pages.get(page, _ids(18, 36))

        tracker = ListingTracker(lambda x: x)
        async for page in paginate_until(fetch_page, first_page=0, max_pages=50):
            if tracker.observe(page.items):
                break

        assert fetched == [0, 1, 2, 3]
        assert len(tracker) == 36

    def test_default_threshold_needs_two_stagnant_pages(self):
        tracker = ListingTracker(lambda x: x)
        assert tracker.observe(_ids(0, 5)) is None
        assert tracker.observe(_ids(0, 5)) is None
        assert tracker.observe(_ids(0, 5)) == "stagnation"

    def test_progress_resets_stagnation(self):
        tracker = ListingTracker(lambda x: x)
        tracker.observe(_ids(0, 5))
        assert tracker.observe(_ids(0, 5)) is None
        assert tracker.observe(_ids(5, 6)) is None
        assert tracker.observe(_ids(5, 6)) is None

    def test_empty_page(self):
        assert ListingTracker(lambda x: x).observe([]) == "empty"

    def test_fetch_limit(self):
        tracker = ListingTracker(lambda x: x, fetch_limit=7)
        assert tracker.observe(_ids(0, 5)) is None
        assert tracker.observe(_ids(5, 10)) == "limit"
        assert tracker.items == _ids(0, 7)

    def test_keeps_first_occurrence_order(self):
        tracker = ListingTracker(lambda x: x["id"])
        tracker.observe([{"id": "a", "v": 1}, {"id": "b", "v": 1}])
        tracker.observe([{"id": "a", "v": 2}, {"id": "c", "v": 2}])
        assert [(x["id"], x["v"]) for x in tracker.items] == [("a", 1), ("b", 1), ("c", 2)]
