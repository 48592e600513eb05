"""
Tests for the pager strategies.
"""

import re

import pytest

from booru_crawler.client import BooruAPIError, RateLimitedError
from booru_crawler.models import Post
from booru_crawler.pager import Pager
from booru_crawler.query import SearchTagsBuilder


def make_post(post_id: int) -> Post:
    return Post(id=post_id, rating="g", file_ext="png")


class FakeBoard:
    """Answers page-number and ID-window searches from a fixed set of post IDs."""

    def __init__(self, post_ids, failures=None):
        self.post_ids = sorted(post_ids)
        self.failures = list(failures or [])
        self.queries = []

    async def fetch_posts(self, query):
        self.queries.append(query)
        if self.failures:
            raise self.failures.pop(0)

        limit = int(query.get("limit"))
        window = re.search(r"id:(\d+)\.\.\.(\d+)", query.get("tags"))
        if window:
            start, end = int(window.group(1)), int(window.group(2))
            ids = [post_id for post_id in self.post_ids if start <= post_id < end]
            return [make_post(post_id) for post_id in ids[:limit]]

        page = int(query.get("page"))
        ids = self.post_ids[(page - 1) * limit:page * limit]
        return [make_post(post_id) for post_id in ids]


def make_pager(board, limit=2, requests_per_second=None, rate_limit_retries=3):
    pager = Pager(
        board,
        SearchTagsBuilder(["cat"]),
        limit=limit,
        requests_per_second=requests_per_second,
        rate_limit_retries=rate_limit_retries,
    )
    pager.pauses = []

    async def pause(seconds):
        pager.pauses.append(seconds)

    pager._pause = pause
    return pager


async def collect(pages):
    return [[post.id for post in posts] async for posts in pages]


@pytest.mark.asyncio
async def test_by_page_stops_on_empty_page():
    board = FakeBoard(range(1, 6))
    pager = make_pager(board)

    assert await collect(pager.by_page()) == [[1, 2], [3, 4], [5]]
    assert [query.get("page") for query in board.queries] == ["1", "2", "3", "4"]
    assert board.queries[0].get("tags") == "cat"
    assert pager.pages_fetched == 4


@pytest.mark.asyncio
async def test_by_page_start_page():
    pager = make_pager(FakeBoard(range(1, 6)))
    assert await collect(pager.by_page(start_page=3)) == [[5]]


@pytest.mark.asyncio
async def test_by_page_empty_search():
    pager = make_pager(FakeBoard([]))
    assert await collect(pager.by_page()) == []


@pytest.mark.asyncio
async def test_rate_delay_between_requests():
    pager = make_pager(FakeBoard(range(1, 4)), requests_per_second=4)

    await collect(pager.by_page())

    assert pager.pauses == [0.25, 0.25]


@pytest.mark.asyncio
async def test_no_delay_without_rate():
    pager = make_pager(FakeBoard(range(1, 4)))

    await collect(pager.by_page())

    assert pager.pauses == [0.0, 0.0]


@pytest.mark.asyncio
async def test_by_id_window():
    board = FakeBoard([1, 2, 3, 7, 8, 15, 30])
    pager = make_pager(board, limit=2)

    pages = await collect(pager.by_id_window(1, 20, window_size=10))

    assert pages == [[1, 2], [3, 7], [8, 15]]
    tags = [query.get("tags") for query in board.queries]
    assert tags[0] == "cat id:1...11 order:id"
    assert tags[1] == "cat id:3...13 order:id"
    assert tags[2] == "cat id:8...18 order:id"
    assert tags[3] == "cat id:16...20 order:id"
    assert len(tags) == 4
    # ID 30 lies past the end of the range
    assert all(post_id < 20 for page in pages for post_id in page)


@pytest.mark.asyncio
async def test_by_id_window_skips_empty_windows():
    board = FakeBoard([25])
    pager = make_pager(board, limit=5)

    assert await collect(pager.by_id_window(1, 31, window_size=10)) == [[25]]
    tags = [query.get("tags") for query in board.queries]
    assert tags == [
        "cat id:1...11 order:id",
        "cat id:11...21 order:id",
        "cat id:21...31 order:id",
        "cat id:26...31 order:id",
    ]


@pytest.mark.asyncio
async def test_by_id_window_rejects_bad_size():
    pager = make_pager(FakeBoard([]))
    with pytest.raises(ValueError):
        await collect(pager.by_id_window(1, 10, window_size=0))


@pytest.mark.asyncio
async def test_rate_limited_page_is_retried():
    board = FakeBoard(range(1, 3), failures=[RateLimitedError("429"), RateLimitedError("429")])
    pager = make_pager(board, requests_per_second=2)

    assert await collect(pager.by_page()) == [[1, 2]]
    assert [query.get("page") for query in board.queries] == ["1", "1", "1", "2"]
    assert pager.pauses[:2] == [0.5, 0.5]


@pytest.mark.asyncio
async def test_rate_limit_retries_exhausted():
    board = FakeBoard(range(1, 3), failures=[RateLimitedError("429")] * 3)
    pager = make_pager(board, rate_limit_retries=2)

    with pytest.raises(RateLimitedError):
        await collect(pager.by_page())
    assert len(board.queries) == 3


@pytest.mark.asyncio
async def test_other_errors_propagate():
    board = FakeBoard(range(1, 3), failures=[BooruAPIError("HTTP 500")])
    pager = make_pager(board)

    with pytest.raises(BooruAPIError):
        await collect(pager.by_page())
    assert len(board.queries) == 1


@pytest.mark.asyncio
async def test_by_id_window_does_not_pause_after_last_window():
    board = FakeBoard([1, 2, 15])
    pager = make_pager(board, limit=5, requests_per_second=2)

    assert await collect(pager.by_id_window(1, 20, window_size=10)) == [[1, 2], [15]]

    # windows 1...11, 3...13, 13...20, 16...20; no pause after the last one
    assert len(board.queries) == 4
    assert pager.pauses == [0.5, 0.5, 0.5]
