"""
Tag taxonomy: known tag sets, classification and caption normalization.

Tags are stored underscore-separated on the board (``cat_ears``) and rendered
space-separated in captions (``cat ears``). A few tags are emoticons whose
underscore is part of the symbol (``>_<``) and are kept verbatim.
"""

import re
from typing import Iterable, List, Optional, Tuple
from .models import Post


# tags which have an underscore in them
UNDERSCORE_TAGS = frozenset([
    ">_<",
    ">_o",
    "0_0",
    "o_o",
    "3_3",
    "6_9",
    "@_@",
    "u_u",
    "x_x",
    "^_^",
    "|_|",
    "=_=",
    "+_+",
    "+_-",
    "._.",
    "<o>_<o>",
    "<|>_<|>",
    # deprecated
    "||_||",
    "(o)_(o)",
])

# tags about the number of people
PEOPLE_TAGS = frozenset([
    "1girl",
    "2girls",
    "3girls",
    "4girls",
    "5girls",
    "6+girls",
    "multiple girls",
    "1boy",
    "2boys",
    "3boys",
    "4boys",
    "5boys",
    "6+boys",
    "multiple boys",
    "1other",
    "2others",
    "3others",
    "4others",
    "5others",
    "6+others",
    "multiple others",
])

FOCUS_TAGS = frozenset([
    "solo focus",
    "male focus",
    "other focus",
])

DUPLICATION_META_TAGS = frozenset([
    "duplicate",
    "pixel-perfect duplicate",
])

# parts of meta tags that describe the upload rather than the image
OUT_OF_CONTEXT_META_TAG_PARTS = frozenset([
    "commentary",
    "commision",
    "translat",
    "request",
    "mismatch",
    "bad",
    "has",
    "resize",
    "scale",
    "edit",
    "source",
    "available",
    "sample",
    "upload",
    "link",
    "paid",
    "reward",
    "check",
    "variant",
    "text",
    "gift",
    "guest",
    "artist collaboration",
])

PLACEHOLDERS = ("people", "general", "character", "copyright", "artist", "meta")

_PLACEHOLDER_PATTERN = re.compile(r"\{(" + "|".join(PLACEHOLDERS) + r")\}")


def split_whitespaces(text: str) -> List[str]:
    """Split on runs of whitespace, dropping empty pieces."""
    return text.split()


def with_underscores(tags: Iterable[str]) -> frozenset:
    """Tags plus their underscore spelling, as they appear in raw tag strings."""
    tags = frozenset(tags)
    return tags | frozenset(tag.replace(" ", "_") for tag in tags)


def replace_whitespace_to_comma(text: str) -> str:
    """Place tags with commas instead of spaces."""
    return ", ".join(text.split())


class Matcher:
    """Matches tags against a fixed tag set."""

    def __init__(self, tags: Iterable[str]):
        self.tags = frozenset(tags)

    def has(self, tag: str) -> bool:
        """Whether ``tag`` is one of the registered tags."""
        return tag in self.tags

    def any_in(self, text: str) -> bool:
        """Whether any registered tag is a substring of ``text``."""
        return any(tag in text for tag in self.tags)

    def classify_has(self, tags: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Split ``tags`` into (matched, unmatched) by exact membership."""
        return self._partition(tags, self.has)

    def classify_any_in(self, tags: Iterable[str]) -> Tuple[List[str], List[str]]:
        """Split ``tags`` into (matched, unmatched) by substring containment."""
        return self._partition(tags, self.any_in)

    @staticmethod
    def _partition(tags, predicate):
        matched = []
        unmatched = []
        for tag in tags:
            if predicate(tag):
                matched.append(tag)
            else:
                unmatched.append(tag)
        return matched, unmatched


class Normalizer:
    """Turns board tag strings into caption text."""

    def __init__(self, keep_tags: Iterable[str] = UNDERSCORE_TAGS):
        self.keep_tags = frozenset(keep_tags)

    def normalize_text(self, text: str) -> str:
        tokens = [
            token if token in self.keep_tags else token.replace("_", " ")
            for token in split_whitespaces(text)
        ]
        return ", ".join(tokens)

    def normalize(self, tags: Iterable[str]) -> List[str]:
        return [self.normalize_text(tag) for tag in tags if tag.strip()]


class TagFormatter:
    """Renders a caption template for a post.

    Person-count tags are moved out of the general tags into ``{people}``.
    Meta tags about the upload itself (commentary, translation requests, ...)
    are dropped from ``{meta}`` unless ``keep_out_of_context_meta`` is set.
    """

    def __init__(
        self,
        normalizer: Optional[Normalizer] = None,
        people_matcher: Optional[Matcher] = None,
        ooc_meta_matcher: Optional[Matcher] = None,
        keep_out_of_context_meta: bool = False,
    ):
        self.normalizer = normalizer or Normalizer()
        self.people_matcher = people_matcher or Matcher(with_underscores(PEOPLE_TAGS))
        self.ooc_meta_matcher = ooc_meta_matcher or Matcher(with_underscores(OUT_OF_CONTEXT_META_TAG_PARTS))
        self.keep_out_of_context_meta = keep_out_of_context_meta

    def categorize(self, post: Post) -> dict:
        """Return the normalized tag list of every placeholder."""
        general_tags = split_whitespaces(post.tag_string_general)
        meta_tags = split_whitespaces(post.tag_string_meta)

        people_tags, general_tags = self.people_matcher.classify_has(general_tags)
        _ooc_meta_tags, context_meta_tags = self.ooc_meta_matcher.classify_any_in(meta_tags)
        if not self.keep_out_of_context_meta:
            meta_tags = context_meta_tags

        return {
            "people": self.normalizer.normalize(people_tags),
            "general": self.normalizer.normalize(general_tags),
            "character": self.normalizer.normalize(split_whitespaces(post.tag_string_character)),
            "copyright": self.normalizer.normalize(split_whitespaces(post.tag_string_copyright)),
            "artist": self.normalizer.normalize(split_whitespaces(post.tag_string_artist)),
            "meta": self.normalizer.normalize(meta_tags),
        }

    def format(self, template: str, post: Post) -> str:
        categories = {key: ", ".join(tags) for key, tags in self.categorize(post).items()}
        return _PLACEHOLDER_PATTERN.sub(lambda match: categories[match.group(1)], template)
