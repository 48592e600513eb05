"""
Crawl runners: monthly JSONL buckets, ID-window dumps and image+caption gathering.
"""

import asyncio
import os
import time
from contextlib import aclosing
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union
from pydantic import BaseModel
from .client import BooruClient
from .models import FileExt, Post
from .pager import Pager
from .pipeline import Optimization, Pipeline, PipelineContext, ProgressCounter, StagePool
from .query import Min, MinMax, SearchTagsBuilder, month_window
from .resume import ResumeTracker, bucket_path
from .tags import TagFormatter
from .failure_tracker import FailureTracker
from .config import settings
from .logging import CrawlMetrics, get_logger


logger = get_logger("crawler")

PathLike = Union[str, Path]


class CrawlError(Exception):
    """A crawl could not be completed."""
    pass


class JsonlWriter:
    """Writes pydantic records to a JSONL file, one serialized record per line."""

    def __init__(self, path: PathLike, append: bool = False):
        self.path = Path(path)
        self.append = append
        self.lines_written = 0
        self._file = None
        self._lock = asyncio.Lock()

    def open(self) -> "JsonlWriter":
        """Open the output file; an OSError here ends the crawl before it starts."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.append:
            self._drop_torn_tail()
        self._file = open(self.path, "a" if self.append else "w", encoding="utf-8")
        return self

    def _drop_torn_tail(self) -> None:
        """Cut an unterminated last line left behind by an interrupted write."""
        if not self.path.exists():
            return

        with open(self.path, "rb+") as f:
            size = f.seek(0, os.SEEK_END)
            if size == 0:
                return
            f.seek(size - 1)
            if f.read(1) == b"\n":
                return

            keep = 0
            position = size
            while position > 0:
                step = min(4096, position)
                position -= step
                f.seek(position)
                newline = f.read(step).rfind(b"\n")
                if newline >= 0:
                    keep = position + newline + 1
                    break
            f.truncate(keep)

        logger.warning(f"✂️  Dropped {size - keep} bytes of a torn last line in {self.path}")

    async def write_records(self, records: List[BaseModel]) -> None:
        if self._file is None:
            raise CrawlError(f"{self.path} is not open")

        # lines from concurrent writers must never interleave
        text = "".join(record.model_dump_json() + "\n" for record in records)
        async with self._lock:
            await asyncio.to_thread(self._write, text)
            self.lines_written += len(records)

    async def write_posts(self, posts: List[Post]) -> None:
        await self.write_records(posts)

    def _write(self, text: str) -> None:
        self._file.write(text)
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def iter_months(year_start: int, month_start: int, year_end: int, month_end: int) -> Iterator[Tuple[int, int]]:
    """Every (year, month) from the start month to the end month, inclusive."""
    year, month = year_start, month_start
    while (year, month) <= (year_end, month_end):
        yield year, month
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


async def _write_pages(pager_pages, writer: JsonlWriter, write_concurrency: int, metrics: CrawlMetrics) -> int:
    """Drain an async page iterator into ``writer`` through a pool of writers."""
    errors: List[Exception] = []

    def on_error(posts, error):
        logger.error(f"❌ Failed to write {len(posts)} posts to {writer.path}: {error}")
        errors.append(error)

    pool = StagePool("write", write_concurrency, writer.write_posts, on_error=on_error)
    pool.start()
    count = 0
    try:
        async with aclosing(pager_pages) as pages:
            async for posts in pages:
                metrics.log_page(len(posts))
                count += len(posts)
                await pool.put(posts)
        await pool.join()
    finally:
        await pool.stop()

    if errors:
        raise CrawlError(f"{len(errors)} page writes to {writer.path} failed: {errors[0]}")
    return count


async def crawl_monthly(
    client: BooruClient,
    tags: str,
    output_dir: PathLike,
    prefix: str,
    year_start: int,
    month_start: int = 1,
    year_end: Optional[int] = None,
    month_end: Optional[int] = None,
    overwrite: bool = False,
    write_concurrency: Optional[int] = None,
    requests_per_second: Optional[float] = None,
    metrics: Optional[CrawlMetrics] = None,
) -> int:
    """Write every post of each month into ``<prefix>-<year>-<month>.jsonl``.

    Buckets whose file already exists are skipped unless ``overwrite`` is set.
    Returns the number of posts written.
    """
    year_end = year_start if year_end is None else year_end
    month_end = month_start if month_end is None else month_end
    metrics = metrics or CrawlMetrics()
    resume = ResumeTracker(overwrite=overwrite)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    total = 0
    for year, month in iter_months(year_start, month_start, year_end, month_end):
        path = bucket_path(output_dir, prefix, year, month)
        if resume.bucket_done(path):
            logger.info(f"⏭️  {path} already exists, skipping")
            continue

        builder = SearchTagsBuilder()
        builder.add_tag(tags)
        builder.dates([month_window(year, month)])
        logger.info(f"🔍 Crawling {year}-{month:02}: {builder.build()}")

        pager = Pager(client, builder, requests_per_second=requests_per_second)
        start_time = time.time()
        with JsonlWriter(path) as writer:
            count = await _write_pages(
                pager.by_page(), writer, write_concurrency or settings.write_concurrency, metrics
            )

        total += count
        logger.info(f"✅ {path.name}: {count} posts, {pager.pages_fetched} pages in {time.time() - start_time:.1f}s")

    return total


async def crawl_ids(
    client: BooruClient,
    tags: str,
    output_dir: PathLike,
    name: str,
    id_start: int,
    id_end: int,
    window_size: int = 1000,
    overwrite: bool = False,
    write_concurrency: Optional[int] = None,
    requests_per_second: Optional[float] = None,
    metrics: Optional[CrawlMetrics] = None,
) -> int:
    """Dump posts with IDs in ``[id_start, id_end)`` into ``<name>.jsonl``.

    An existing dump is resumed after the highest ID it holds.
    Returns the number of posts written by this run.
    """
    metrics = metrics or CrawlMetrics()
    resume = ResumeTracker(overwrite=overwrite)
    path = Path(output_dir) / f"{name}.jsonl"

    start = resume.resume_start(path, id_start)
    if start >= id_end:
        logger.info(f"✅ {path.name} already covers IDs up to {id_end}")
        return 0

    builder = SearchTagsBuilder()
    builder.add_tag(tags)
    pager = Pager(client, builder, requests_per_second=requests_per_second)

    logger.info(f"🔍 Dumping IDs {start}...{id_end} in windows of {window_size}")
    start_time = time.time()
    with JsonlWriter(path, append=not overwrite) as writer:
        count = await _write_pages(
            pager.by_id_window(start, id_end, window_size),
            writer,
            write_concurrency or settings.write_concurrency,
            metrics,
        )

    logger.info(f"✅ {path.name}: {count} posts, {pager.pages_fetched} windows in {time.time() - start_time:.1f}s")
    return count


def gather_search(tags: str, score_min: int = 1, score_max: Optional[int] = None) -> SearchTagsBuilder:
    """Search for gatherable images: not banned, still images, scored."""
    builder = SearchTagsBuilder()
    builder.add_tag(tags)
    builder.add_tag("-is:banned")
    builder.filetypes([FileExt.PNG, FileExt.JPG, FileExt.WEBP])
    if score_max is None:
        builder.scores([Min(score_min)])
    else:
        builder.scores([MinMax(score_min, score_max)])
    return builder


async def gather(
    client: BooruClient,
    tags: str,
    output_dir: PathLike,
    num_posts: int = 20,
    score_min: int = 1,
    score_max: Optional[int] = None,
    template: Optional[str] = None,
    optimization: Optimization = Optimization.NONE,
    overwrite: bool = False,
    connections: Optional[int] = None,
    threads: Optional[int] = None,
    requests_per_second: Optional[float] = None,
    formatter: Optional[TagFormatter] = None,
    failure_tracker: Optional[FailureTracker] = None,
    metrics: Optional[CrawlMetrics] = None,
) -> int:
    """Download images with tag captions until ``num_posts`` are on disk.

    Posts already on disk count toward ``num_posts``. Returns the number of
    posts done (persisted now or before).
    """
    if num_posts <= 0:
        raise ValueError("num_posts must be positive")

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    builder = gather_search(tags, score_min, score_max)
    logger.info(f"🔍 Gathering {num_posts} posts: {builder.build()}")

    progress = ProgressCounter(total=num_posts)
    context = PipelineContext(
        fetcher=client,
        output_dir=output_dir,
        formatter=formatter or TagFormatter(keep_out_of_context_meta=settings.keep_out_of_context_meta),
        template=template or settings.tag_template,
        progress=progress,
        optimization=Optimization(optimization),
        overwrite=overwrite,
        metrics=metrics or CrawlMetrics(),
        failure_tracker=failure_tracker,
    )
    pager = Pager(client, builder, requests_per_second=requests_per_second)

    start_time = time.time()
    async with Pipeline(context, connections=connections, threads=threads) as pipeline:
        async with aclosing(pager.by_page()) as pages:
            async for posts in pages:
                context.metrics.log_page(len(posts))
                await pipeline.run_batch(posts)
                if progress.is_complete:
                    break

    if not progress.is_complete:
        logger.warning(f"⚠️  Search ran out of posts: {progress.value}/{num_posts} gathered")
    logger.info(f"🎉 Gathered {progress.value} posts in {time.time() - start_time:.1f}s")
    return progress.value
