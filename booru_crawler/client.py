"""
Board API client.
"""

import base64
from enum import Enum
from typing import List, Optional
import httpx
from pydantic import TypeAdapter, ValidationError
from .models import Post, WikiPage
from .query import ApiQuery, Endpoint
from .config import settings
from .logging import get_logger


class BooruAPIError(Exception):
    """Transport failure or unexpected response status."""
    pass


class NotFoundError(BooruAPIError):
    """The requested resource does not exist."""
    pass


class RateLimitedError(BooruAPIError):
    """The board asked us to slow down (HTTP 429)."""
    pass


class MalformedResponseError(BooruAPIError):
    """The response body does not match the expected model."""
    pass


class Board(str, Enum):
    """Supported boards, differing only in hostname."""
    DANBOORU = "danbooru"
    SAFEBOORU = "safebooru"

    @property
    def host(self) -> str:
        return f"https://{self.value}.donmai.us"


class Auth:
    """Username and API key pair."""

    def __init__(self, username: str, api_key: str):
        self.username = username
        self.api_key = api_key

    def basic(self) -> str:
        """Basic authorization header value."""
        token = base64.b64encode(f"{self.username}:{self.api_key}".encode()).decode()
        return f"Basic {token}"

    @classmethod
    def from_settings(cls) -> Optional["Auth"]:
        if not settings.has_credentials():
            return None
        return cls(settings.danbooru_username, settings.danbooru_api_key)


_posts_adapter = TypeAdapter(List[Post])


class BooruClient:
    """Async client for one board."""

    def __init__(
        self,
        board: Board = Board.DANBOORU,
        auth: Optional[Auth] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.board = Board(board)
        self.logger = get_logger("booru_client")

        headers = {"User-Agent": settings.user_agent}
        if auth is not None:
            headers["Authorization"] = auth.basic()

        self.client = httpx.AsyncClient(
            base_url=self.board.host,
            headers=headers,
            timeout=timeout or settings.request_timeout,
            follow_redirects=True,
            transport=transport,
        )

    def compose(self, path: str, query: Optional[ApiQuery] = None) -> httpx.URL:
        """Absolute URL for an endpoint path and query."""
        if query is None:
            return httpx.URL(self.board.host + path)
        return httpx.URL(self.board.host + path, params=query.params)

    async def _request(self, method: str, url, params: Optional[ApiQuery] = None) -> httpx.Response:
        """Send a request and map failures onto the client's error types."""
        try:
            response = await self.client.request(
                method=method,
                url=url,
                params=params.params if params is not None else None,
            )
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404:
                raise NotFoundError(f"HTTP 404: {e.request.url}")
            if status_code == 429:
                self.logger.warning(f"⚠️  Rate limited by {self.board.value}: {e.request.url}")
                raise RateLimitedError(f"HTTP 429: {e.request.url}")
            self.logger.error(f"❌ HTTP {method} {e.request.url} failed: {status_code}")
            raise BooruAPIError(f"HTTP {status_code}: {e.response.text[:200]}")

        except httpx.RequestError as e:
            self.logger.error(f"❌ Request failed: {str(e)}")
            raise BooruAPIError(f"Request failed: {e}")

    async def fetch_posts(self, query: ApiQuery) -> List[Post]:
        """Fetch one page of posts."""
        response = await self._request("GET", Endpoint.posts(), params=query)
        try:
            return _posts_adapter.validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected posts response: {e}")

    async def fetch_post(self, post_id: int) -> Post:
        response = await self._request("GET", Endpoint.post(post_id))
        try:
            return Post.model_validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected post response: {e}")

    async def fetch_wiki_page(self, title: str) -> WikiPage:
        """Fetch the wiki page of a tag; spaces in the title become underscores."""
        response = await self._request("GET", Endpoint.wiki_page(title.replace(" ", "_")))
        try:
            return WikiPage.model_validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected wiki page response: {e}")

    async def fetch_bytes(self, url: str) -> bytes:
        """Download raw media bytes."""
        response = await self._request("GET", url)
        return response.content

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
