"""
Resumption of interrupted crawls from what is already on disk.
"""

from pathlib import Path
from typing import Optional, Union
from pydantic import ValidationError
from .models import Post
from .logging import get_logger


PathLike = Union[str, Path]


def media_path(output_dir: PathLike, post_id: int, extension: str) -> Path:
    return Path(output_dir) / f"{post_id}.{extension}"


def caption_path(output_dir: PathLike, post_id: int) -> Path:
    return Path(output_dir) / f"{post_id}.txt"


def bucket_path(output_dir: PathLike, prefix: str, year: int, month: int) -> Path:
    return Path(output_dir) / f"{prefix}-{year}-{month:02}.jsonl"


class ResumeTracker:
    """Computes where a crawl should continue from.

    Nothing is persisted besides the crawl output itself: a finished monthly
    bucket is a file that exists, an ID crawl resumes after the highest ID it
    wrote, and a gathered post is one whose media and caption both exist.
    """

    def __init__(self, overwrite: bool = False):
        self.overwrite = overwrite
        self.logger = get_logger("resume")

    def bucket_done(self, path: PathLike) -> bool:
        """Whether a date bucket's output file already exists."""
        return not self.overwrite and Path(path).exists()

    def max_recorded_id(self, path: PathLike) -> Optional[int]:
        """Highest post ID in a JSONL file, or None if it holds no valid record."""
        path = Path(path)
        if not path.exists():
            return None

        max_id = None
        # read bytes: a line torn inside a multibyte character is just another invalid line
        with open(path, "rb") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    post = Post.model_validate_json(line)
                except ValidationError as e:
                    # a crash can leave a torn last line
                    self.logger.warning(f"⚠️  Skipping unreadable line {line_number} of {path}: {e.error_count()} errors")
                    continue
                if max_id is None or post.id > max_id:
                    max_id = post.id
        return max_id

    def resume_start(self, path: PathLike, default_start: int) -> int:
        """First ID the next fetch window should request."""
        if self.overwrite:
            return default_start

        max_id = self.max_recorded_id(path)
        if max_id is None:
            return default_start

        self.logger.info(f"🔁 Resuming {Path(path).name} after post {max_id}")
        return max_id + 1

    def post_done(self, output_dir: PathLike, post_id: int, extension: str) -> bool:
        """Whether both media file and caption of a post exist."""
        if self.overwrite:
            return False
        return media_path(output_dir, post_id, extension).exists() and caption_path(output_dir, post_id).exists()
