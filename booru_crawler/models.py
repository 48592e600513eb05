"""
Data models for the Booru Crawler.
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Rating(str, Enum):
    """Content rating of a post, serialized by its one-letter code."""
    GENERAL = "g"
    SENSITIVE = "s"
    QUESTIONABLE = "q"
    EXPLICIT = "e"


class FileExt(str, Enum):
    """Media file extension."""
    JPG = "jpg"
    PNG = "png"
    WEBP = "webp"
    WEBM = "webm"
    ZIP = "zip"
    MP4 = "mp4"
    GIF = "gif"
    AVIF = "avif"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() == "jpeg":
            return cls.JPG
        return None


class Variant(BaseModel):
    """Resized rendition of a media asset."""
    type: str
    url: str
    width: int
    height: int
    file_ext: str


class MediaAsset(BaseModel):
    """Media asset backing a post."""
    id: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    md5: Optional[str] = None
    file_ext: Optional[str] = None  # legacy assets carry formats outside FileExt
    file_size: int = 0
    image_width: int = 0
    image_height: int = 0
    duration: Optional[float] = None
    status: str = ""
    file_key: Optional[str] = None
    is_public: bool = True
    pixel_hash: str = ""
    variants: Optional[List[Variant]] = None


class Post(BaseModel):
    """Board post as returned by /posts.json."""
    model_config = ConfigDict(frozen=True)

    id: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # score
    score: int = 0
    source: str = ""
    up_score: int = 0
    down_score: int = 0
    fav_count: int = 0
    rating: Rating

    # image size
    image_width: int = 0
    image_height: int = 0

    # tags
    tag_count: int = 0
    tag_string: str = ""
    tag_string_general: str = ""
    tag_string_character: str = ""
    tag_string_copyright: str = ""
    tag_string_artist: str = ""
    tag_string_meta: str = ""
    tag_count_general: int = 0
    tag_count_artist: int = 0
    tag_count_character: int = 0
    tag_count_copyright: int = 0
    tag_count_meta: int = 0

    # urls, missing on banned posts
    has_large: bool = False
    media_asset: Optional[MediaAsset] = None
    file_url: Optional[str] = None
    large_file_url: Optional[str] = None
    preview_file_url: Optional[str] = None

    # relations
    parent_id: Optional[int] = None
    has_children: bool = False
    has_active_children: bool = False
    has_visible_children: bool = False

    last_commented_at: Optional[str] = None
    last_comment_bumped_at: Optional[str] = None
    last_noted_at: Optional[str] = None

    # file
    file_size: int = 0
    file_ext: FileExt
    md5: Optional[str] = None

    # users
    uploader_id: Optional[int] = None
    approver_id: Optional[int] = None
    pixiv_id: Optional[int] = None

    # status
    is_pending: bool = False
    is_flagged: bool = False
    is_deleted: bool = False
    is_banned: bool = False
    bit_flags: int = 0


class WikiPage(BaseModel):
    """Wiki page describing a tag."""
    id: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    title: str
    other_names: List[str] = []
    body: str = ""
    is_locked: bool = False
    is_deleted: bool = False


class PostProcessingResult(BaseModel):
    """Result of running one post through the pipeline."""
    post_id: int
    success: bool
    skipped: bool = False
    processing_time: float = 0.0
    error: Optional[str] = None


class BatchProcessingResult(BaseModel):
    """Result of running one page of posts through the pipeline."""
    batch_size: int
    admitted: int
    persisted: int
    skipped: int
    failed: int
    processing_time: float
    results: List[PostProcessingResult] = Field(default_factory=list)
