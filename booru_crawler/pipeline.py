"""
Download -> transform -> persist pipeline for board posts.

Each stage is a ``StagePool``: a fixed number of asyncio workers draining a
bounded queue and handing results to the next stage's queue. A failing post
is reported and dropped without disturbing the posts around it.
"""

import asyncio
import io
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional
from PIL import Image
from .models import BatchProcessingResult, Post, PostProcessingResult
from .resume import ResumeTracker, caption_path, media_path
from .tags import TagFormatter
from .failure_tracker import FailureTracker
from .config import settings
from .logging import CrawlMetrics, get_logger


class Optimization(str, Enum):
    """How downloaded images are re-encoded before they are written."""
    NONE = "none"   # write the original bytes
    WEBP = "webp"   # lossless WebP


def resolve_extension(optimization: Optimization, post: Post) -> str:
    """File extension of the media file written for ``post``."""
    if optimization is Optimization.WEBP:
        return "webp"
    return post.file_ext.value


def reencode(data: bytes, optimization: Optimization) -> bytes:
    """Decode image bytes and re-encode them for ``optimization``."""
    if optimization is Optimization.NONE:
        return data

    with Image.open(io.BytesIO(data)) as image:
        image.load()
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")
        buffer = io.BytesIO()
        image.save(buffer, format="WEBP", lossless=True)
    return buffer.getvalue()


class ProgressCounter:
    """Completed posts across a whole crawl, shared by every worker."""

    def __init__(self, total: Optional[int] = None):
        self.total = total
        self._value = 0
        self._lock = asyncio.Lock()

    @property
    def value(self) -> int:
        return self._value

    @property
    def remaining(self) -> Optional[int]:
        if self.total is None:
            return None
        return max(self.total - self._value, 0)

    @property
    def is_complete(self) -> bool:
        return self.total is not None and self._value >= self.total

    async def increment(self, amount: int = 1) -> int:
        async with self._lock:
            self._value += amount
            return self._value


class StagePool:
    """A fixed number of workers draining one bounded queue."""

    def __init__(
        self,
        name: str,
        concurrency: int,
        handler: Callable[[Any], Awaitable[Any]],
        downstream: Optional["StagePool"] = None,
        on_error: Optional[Callable[[Any, Exception], None]] = None,
        queue_size: Optional[int] = None,
    ):
        if concurrency <= 0:
            raise ValueError(f"{name}: concurrency must be positive")

        self.name = name
        self.concurrency = concurrency
        self.handler = handler
        self.downstream = downstream
        self.on_error = on_error
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size if queue_size is not None else concurrency * 2)
        self.logger = get_logger(f"pipeline.{name}")
        self.processed = 0
        self.failed = 0
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"{self.name}-{index}")
            for index in range(self.concurrency)
        ]

    async def put(self, item) -> None:
        await self.queue.put(item)

    async def join(self) -> None:
        """Wait until every queued item has been handled."""
        await self.queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _worker(self) -> None:
        while True:
            item = await self.queue.get()
            try:
                result = await self.handler(item)
                self.processed += 1
                if result is not None and self.downstream is not None:
                    await self.downstream.put(result)
            except Exception as e:
                self.failed += 1
                if self.on_error is not None:
                    self.on_error(item, e)
                else:
                    self.logger.warning(f"⚠️  {self.name} failed: {e}")
            finally:
                self.queue.task_done()


@dataclass
class PipelineTask:
    """One post on its way through the stages."""
    post: Post
    extension: str
    data: Optional[bytes] = None
    started_at: float = field(default_factory=time.time)


@dataclass
class PipelineContext:
    """Resources shared by every stage of a crawl."""
    fetcher: Any  # provides ``async fetch_bytes(url) -> bytes``
    output_dir: Path
    formatter: TagFormatter
    template: str
    progress: ProgressCounter
    optimization: Optimization = Optimization.NONE
    overwrite: bool = False
    metrics: CrawlMetrics = field(default_factory=CrawlMetrics)
    failure_tracker: Optional[FailureTracker] = None


class Pipeline:
    """Runs pages of posts through download, transform and persist."""

    def __init__(
        self,
        context: PipelineContext,
        connections: Optional[int] = None,
        threads: Optional[int] = None,
        writers: Optional[int] = None,
    ):
        self.context = context
        self.logger = get_logger("pipeline")
        self.resume = ResumeTracker(overwrite=context.overwrite)
        self._results: List[PostProcessingResult] = []

        self.persist_pool = StagePool(
            "persist", writers or settings.write_concurrency, self._persist, on_error=self._on_error
        )
        self.transform_pool = StagePool(
            "transform", threads or settings.threads, self._transform,
            downstream=self.persist_pool, on_error=self._on_error,
        )
        self.download_pool = StagePool(
            "download", connections or settings.connections, self._download,
            downstream=self.transform_pool, on_error=self._on_error,
        )
        self._pools = [self.download_pool, self.transform_pool, self.persist_pool]

    def start(self) -> None:
        for pool in self._pools:
            pool.start()

    async def close(self) -> None:
        for pool in self._pools:
            await pool.stop()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def admit(self, posts: List[Post]) -> List[PipelineTask]:
        """Pick the posts of a page that enter the pipeline.

        Posts without a media URL are ignored, posts already on disk count as
        done, and no more posts are admitted than the crawl still needs.
        """
        progress = self.context.progress
        admitted = []
        for post in posts:
            remaining = progress.remaining
            if remaining is not None and len(admitted) >= remaining:
                break
            if post.file_url is None:
                continue

            extension = resolve_extension(self.context.optimization, post)
            if self.resume.post_done(self.context.output_dir, post.id, extension):
                await progress.increment()
                self.context.metrics.log_post_skipped(post.id)
                self._results.append(PostProcessingResult(post_id=post.id, success=True, skipped=True))
                continue

            admitted.append(PipelineTask(post=post, extension=extension))
        return admitted

    async def run_batch(self, posts: List[Post]) -> BatchProcessingResult:
        """Run one page of posts through every stage and wait for it to finish."""
        start_time = time.time()
        self.start()
        self._results = []

        tasks = await self.admit(posts)
        for task in tasks:
            await self.download_pool.put(task)

        # a post is handed downstream before its upstream item is marked done
        for pool in self._pools:
            await pool.join()

        results = self._results
        self._results = []
        batch_time = time.time() - start_time

        persisted = sum(1 for r in results if r.success and not r.skipped)
        skipped = sum(1 for r in results if r.skipped)
        failed = sum(1 for r in results if not r.success)

        if failed and self.context.failure_tracker is not None:
            self.context.failure_tracker.save_failures()

        status_msg = f"📊 Batch: {persisted} persisted"
        if skipped:
            status_msg += f", {skipped} already done"
        if failed:
            status_msg += f", {failed} failed"
        progress = self.context.progress
        total = f"{progress.value}/{progress.total}" if progress.total is not None else f"{progress.value}"
        self.logger.info(f"{status_msg} | Time: {batch_time:.1f}s | Total: {total}")

        return BatchProcessingResult(
            batch_size=len(posts),
            admitted=len(tasks),
            persisted=persisted,
            skipped=skipped,
            failed=failed,
            processing_time=batch_time,
            results=results,
        )

    async def _download(self, task: PipelineTask) -> PipelineTask:
        task.data = await self.context.fetcher.fetch_bytes(task.post.file_url)
        self.context.metrics.log_download(task.post.id, len(task.data))
        return task

    async def _transform(self, task: PipelineTask) -> PipelineTask:
        if self.context.optimization is not Optimization.NONE:
            task.data = await asyncio.to_thread(reencode, task.data, self.context.optimization)
        return task

    async def _persist(self, task: PipelineTask) -> None:
        post = task.post
        caption = self.context.formatter.format(self.context.template, post)
        await asyncio.to_thread(self._write_files, task, caption)
        await self.context.progress.increment()

        processing_time = time.time() - task.started_at
        self.context.metrics.log_post_persisted(post.id, processing_time)
        if self.context.failure_tracker is not None:
            self.context.failure_tracker.clear_failure(post.id)
        self._results.append(PostProcessingResult(post_id=post.id, success=True, processing_time=processing_time))

    def _write_files(self, task: PipelineTask, caption: str) -> None:
        output_dir = self.context.output_dir
        media_path(output_dir, task.post.id, task.extension).write_bytes(task.data)
        caption_path(output_dir, task.post.id).write_text(caption, encoding="utf-8")

    def _on_error(self, task: PipelineTask, error: Exception) -> None:
        message = str(error) or type(error).__name__
        self.context.metrics.log_post_failure(task.post.id, message)
        if self.context.failure_tracker is not None:
            self.context.failure_tracker.record_failure(task.post.id, message)
        self._results.append(PostProcessingResult(
            post_id=task.post.id,
            success=False,
            error=message,
            processing_time=time.time() - task.started_at,
        ))
