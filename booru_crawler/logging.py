"""
Logging configuration for the Booru Crawler.
"""

import logging
from typing import Any, Dict, Optional
from rich.console import Console
from rich.logging import RichHandler
from .config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """Configure clean, simple logging output on stderr."""

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, (level or settings.log_level).upper()),
        handlers=[RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=False
        )],
        force=True  # Override any existing configuration
    )

    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class CrawlMetrics:
    """Tracks counts for one crawl run."""

    def __init__(self):
        self.logger = get_logger("metrics")
        self.metrics: Dict[str, Any] = {
            "pages_fetched": 0,
            "posts_persisted": 0,
            "posts_skipped": 0,
            "failures": 0,
            "bytes_downloaded": 0,
        }

    def log_page(self, post_count: int) -> None:
        self.metrics["pages_fetched"] += 1
        self.logger.debug(f"Page {self.metrics['pages_fetched']} fetched | Posts: {post_count}")

    def log_download(self, post_id: int, size: int) -> None:
        self.metrics["bytes_downloaded"] += size
        self.logger.debug(f"Downloaded post {post_id} | {size} bytes")

    def log_post_persisted(self, post_id: int, processing_time: float) -> None:
        """Log a post whose media and caption were written."""
        self.metrics["posts_persisted"] += 1

        # Only log individual posts at DEBUG level to avoid spam
        self.logger.debug(
            f"Post persisted: {post_id} | Time: {processing_time:.3f}s | "
            f"Total: {self.metrics['posts_persisted']} posts"
        )

    def log_post_skipped(self, post_id: int) -> None:
        self.metrics["posts_skipped"] += 1
        self.logger.debug(f"⏭️  Skipping already persisted post: {post_id}")

    def log_post_failure(self, post_id: int, error: str) -> None:
        """Log a failed post."""
        self.metrics["failures"] += 1

        # Failures are warnings: the run carries on without this post
        self.logger.warning(f"Post processing failed: {post_id} | Error: {error}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        return self.metrics.copy()
