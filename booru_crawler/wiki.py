"""
Wiki page fetcher for tag descriptions.
"""

import asyncio
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Union
from pydantic import ValidationError
from .client import BooruClient, NotFoundError, RateLimitedError
from .crawler import JsonlWriter
from .models import WikiPage
from .pipeline import StagePool
from .failure_tracker import FailureTracker
from .config import settings
from .logging import get_logger


logger = get_logger("wiki")


def wiki_title(tag: str) -> str:
    """Wiki titles use underscores where tags are often written with spaces."""
    return tag.strip().replace(" ", "_")


def fetched_titles(path: Union[str, Path]) -> Set[str]:
    """Titles of the wiki pages already stored in a JSONL file."""
    path = Path(path)
    titles: Set[str] = set()
    if not path.exists():
        return titles

    with open(path, "rb") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                titles.add(WikiPage.model_validate_json(line).title)
            except ValidationError:
                logger.warning(f"⚠️  Skipping unreadable line {line_number} of {path}")
    return titles


async def fetch_wiki_pages(
    client: BooruClient,
    tags: Iterable[str],
    output_path: Union[str, Path],
    connections: int = 2,
    overwrite: bool = False,
    failure_tracker: Optional[FailureTracker] = None,
    rate_limit_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> Dict[str, int]:
    """Fetch the wiki page of every tag into a JSONL file.

    Titles already in the file are skipped, missing pages go to the
    not-found list of the failure ledger. Returns counts per outcome.
    """
    tracker = failure_tracker or FailureTracker(failure_file=None)
    retries = settings.rate_limit_retries if rate_limit_retries is None else rate_limit_retries
    backoff = settings.retry_delay if retry_delay is None else retry_delay

    done = set() if overwrite else fetched_titles(output_path)
    titles = []
    for tag in tags:
        title = wiki_title(tag)
        if title and title not in done and title not in titles:
            titles.append(title)

    stats = {"fetched": 0, "skipped": len(done), "not_found": 0, "failed": 0}
    if not titles:
        logger.info("✅ Every wiki page is already fetched")
        return stats

    logger.info(f"📚 Fetching {len(titles)} wiki pages ({len(done)} already fetched)")

    with JsonlWriter(output_path, append=not overwrite) as writer:

        async def fetch(title: str) -> None:
            attempt = 0
            while True:
                try:
                    page = await client.fetch_wiki_page(title)
                except NotFoundError:
                    tracker.record_not_found(title)
                    stats["not_found"] += 1
                    return
                except RateLimitedError:
                    attempt += 1
                    if attempt > retries:
                        raise
                    await asyncio.sleep(backoff)
                    continue

                await writer.write_records([page])
                stats["fetched"] += 1
                return

        def on_error(title: str, error: Exception) -> None:
            logger.error(f"❌ Failed to fetch wiki page {title}: {error}")
            tracker.record_failure(title, str(error))
            stats["failed"] += 1

        pool = StagePool("wiki", connections, fetch, on_error=on_error)
        pool.start()
        try:
            for title in titles:
                await pool.put(title)
            await pool.join()
        finally:
            await pool.stop()

    tracker.save_failures()
    logger.info(
        f"✅ Wiki pages: {stats['fetched']} fetched, {stats['not_found']} not found, {stats['failed']} failed"
    )
    return stats
