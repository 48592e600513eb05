"""
Sequential page requests against one search.

Two strategies are supported: plain page numbers, and ID windows that walk
``[start, end)`` in ascending ID order so a crawl never re-requests IDs it
has already passed.
"""

import asyncio
from typing import AsyncIterator, List, Optional
from .client import RateLimitedError
from .models import Post
from .query import ApiQuery, InEx, Order, SearchTagsBuilder
from .config import settings
from .logging import get_logger


class Pager:
    """Drives page requests for one search."""

    def __init__(
        self,
        client,
        builder: SearchTagsBuilder,
        limit: Optional[int] = None,
        requests_per_second: Optional[float] = None,
        rate_limit_retries: Optional[int] = None,
    ):
        self.client = client
        self.builder = builder
        self.limit = limit or settings.page_limit
        self.delay = 1.0 / requests_per_second if requests_per_second else 0.0
        self.rate_limit_retries = (
            settings.rate_limit_retries if rate_limit_retries is None else rate_limit_retries
        )
        self.logger = get_logger("pager")
        self.pages_fetched = 0

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _fetch(self, query: ApiQuery) -> List[Post]:
        """Fetch one page, backing off and retrying while rate limited."""
        attempt = 0
        while True:
            try:
                posts = await self.client.fetch_posts(query)
                self.pages_fetched += 1
                return posts
            except RateLimitedError:
                attempt += 1
                if attempt > self.rate_limit_retries:
                    raise
                backoff = self.delay or settings.retry_delay
                self.logger.warning(
                    f"⚠️  Rate limited, retrying in {backoff:.2f}s "
                    f"(attempt {attempt}/{self.rate_limit_retries})"
                )
                await self._pause(backoff)

    async def by_page(self, start_page: int = 1) -> AsyncIterator[List[Post]]:
        """Yield pages until the first empty one."""
        tags = self.builder.build()
        page = start_page
        while True:
            query = ApiQuery.posts(tags).limit(self.limit).page(page)
            posts = await self._fetch(query)

            if not posts:
                self.logger.debug(f"Page {page} is empty, done")
                return

            yield posts

            page += 1
            await self._pause(self.delay)

    def window_query(self, window_start: int, window_end: int) -> ApiQuery:
        builder = self.builder.copy()
        builder.set_metatag("id", [str(InEx(window_start, window_end))])
        builder.set_metatag("order", [Order.ID.value])
        return ApiQuery.posts(builder.build()).limit(self.limit)

    async def by_id_window(self, id_start: int, id_end: int, window_size: int) -> AsyncIterator[List[Post]]:
        """Yield posts window by window over ``[id_start, id_end)``."""
        if window_size <= 0:
            raise ValueError("window_size must be positive")

        window_start = id_start
        while window_start < id_end:
            window_end = min(window_start + window_size, id_end)
            posts = await self._fetch(self.window_query(window_start, window_end))

            if posts:
                yield posts
                # never move backwards, even if the board returns stray IDs
                window_start = max(max(post.id for post in posts) + 1, window_start + 1)
            else:
                self.logger.debug(f"Window {window_start}...{window_end} is empty")
                window_start = window_end

            if window_start < id_end:
                await self._pause(self.delay)
