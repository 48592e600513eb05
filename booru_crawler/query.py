"""
Search query construction for the board API.

A search is a list of free tags followed by metatags (``key:value`` filters
such as ``rating:g,s`` or ``score:50..100``). ``SearchTagsBuilder`` builds the
``tags`` string; ``ApiQuery`` carries it along with paging parameters.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, Iterable, List, Optional, Tuple, TypeVar, Union
from .models import FileExt, Rating


T = TypeVar("T", int, str)


@dataclass(frozen=True)
class Exact(Generic[T]):
    value: T

    def __str__(self) -> str:
        return render_range(self)


@dataclass(frozen=True)
class Min(Generic[T]):
    min: T

    def __str__(self) -> str:
        return render_range(self)


@dataclass(frozen=True)
class Max(Generic[T]):
    max: T

    def __str__(self) -> str:
        return render_range(self)


@dataclass(frozen=True)
class MinMax(Generic[T]):
    """Inclusive on both ends."""
    min: T
    max: T

    def __str__(self) -> str:
        return render_range(self)


@dataclass(frozen=True)
class InEx(Generic[T]):
    """Inclusive minimum, exclusive maximum."""
    min: T
    max: T

    def __str__(self) -> str:
        return render_range(self)


Range = Union[Exact[T], Min[T], Max[T], MinMax[T], InEx[T]]

Score = Range[int]
Date = Range[str]
Id = Range[int]


def render_range(value: Range) -> str:
    """Render a range in the API's textual encoding."""
    if isinstance(value, Exact):
        return str(value.value)
    if isinstance(value, Min):
        return f"{value.min}.."
    if isinstance(value, Max):
        return f"..{value.max}"
    if isinstance(value, MinMax):
        return f"{value.min}..{value.max}"
    if isinstance(value, InEx):
        return f"{value.min}...{value.max}"
    raise TypeError(f"Not a range: {value!r}")


def month_start(year: int, month: int) -> str:
    """First day of a month in the API's date format, e.g. ``2024-1-01``."""
    return f"{year}-{month}-01"


def month_window(year: int, month: int) -> InEx[str]:
    """Date range covering exactly one calendar month."""
    next_month = month % 12 + 1
    next_year = year + month // 12
    return InEx(month_start(year, month), month_start(next_year, next_month))


class Order(str, Enum):
    """Values of the ``order`` metatag."""
    ID = "id"
    ID_DESC = "id_desc"
    SCORE = "score"
    SCORE_ASC = "score_asc"
    FAVCOUNT = "favcount"
    RANK = "rank"
    CHANGE = "change"
    RANDOM = "random"


class SearchTagsBuilder:
    """Builds the ``tags`` search string.

    Metatag keys keep their first-insertion order. ``set_metatag`` replaces the
    values of a key; ``append_metatag`` adds to them. The builder does not
    validate anything, the board is the judge of tag grammar.
    """

    def __init__(self, tags: Optional[Iterable[str]] = None):
        self._tags: List[str] = list(tags or [])
        self._metatags: Dict[str, List[str]] = {}

    @property
    def tags(self) -> List[str]:
        return list(self._tags)

    @property
    def metatags(self) -> Dict[str, str]:
        """Metatag values comma-joined per key."""
        return {key: ",".join(values) for key, values in self._metatags.items()}

    def add_tag(self, tag: str) -> None:
        self._tags.append(tag)

    def set_metatag(self, key: str, values: List[str]) -> None:
        self._metatags[key] = list(values)

    def append_metatag(self, key: str, value: str) -> None:
        if key in self._metatags:
            self._metatags[key].append(value)
        else:
            self.set_metatag(key, [value])

    def build(self) -> str:
        """Return the canonical search string."""
        tags = " ".join(tag for tag in self._tags if tag)
        metatags = " ".join(
            f"{key}:{','.join(values)}" for key, values in self._metatags.items()
        )
        return " ".join(part for part in (tags, metatags) if part)

    def copy(self) -> "SearchTagsBuilder":
        builder = SearchTagsBuilder(self._tags)
        for key, values in self._metatags.items():
            builder.set_metatag(key, values)
        return builder

    # -- sugar --

    def ratings(self, ratings: List[Rating]) -> None:
        self.set_metatag("rating", [rating.value for rating in ratings])

    def filetypes(self, filetypes: List[FileExt]) -> None:
        self.set_metatag("filetype", [filetype.value for filetype in filetypes])

    def scores(self, scores: List[Score]) -> None:
        self.append_metatag("score", ",".join(render_range(score) for score in scores))

    def dates(self, dates: List[Date]) -> None:
        self.append_metatag("date", ",".join(render_range(date) for date in dates))

    def ids(self, ids: List[Id]) -> None:
        self.append_metatag("id", ",".join(render_range(id_range) for id_range in ids))

    def order(self, order: Order) -> None:
        self.append_metatag("order", order.value)

    def __str__(self) -> str:
        return self.build()


class Endpoint:
    """Request paths of the board API."""

    @staticmethod
    def posts() -> str:
        return "/posts.json"

    @staticmethod
    def post(post_id: int) -> str:
        return f"/posts/{post_id}.json"

    @staticmethod
    def wiki_page(title: str) -> str:
        return f"/wiki_pages/{title}.json"


class ApiQuery:
    """Ordered request parameters."""

    def __init__(self, params: Optional[List[Tuple[str, str]]] = None):
        self._params: List[Tuple[str, str]] = list(params or [])

    @classmethod
    def posts(cls, tags: Optional[str] = None) -> "ApiQuery":
        """Parameters for /posts.json."""
        query = cls()
        if tags is not None:
            query.insert("tags", tags)
        return query

    def insert(self, key: str, value) -> "ApiQuery":
        self._params.append((key, str(value)))
        return self

    def set(self, key: str, value) -> "ApiQuery":
        self._params = [(k, v) for k, v in self._params if k != key]
        return self.insert(key, value)

    def limit(self, limit: int) -> "ApiQuery":
        return self.set("limit", limit)

    def page(self, page: int) -> "ApiQuery":
        return self.set("page", page)

    def get(self, key: str) -> Optional[str]:
        for k, v in self._params:
            if k == key:
                return v
        return None

    def copy(self) -> "ApiQuery":
        return ApiQuery(self._params)

    @property
    def params(self) -> List[Tuple[str, str]]:
        return list(self._params)

    def to_string(self) -> str:
        return "&".join(f"{k}={v}" for k, v in self._params)

    def __str__(self) -> str:
        return self.to_string()
