"""
Command line entry point for the Booru Crawler.
"""

import asyncio
import sys
import argparse
from pathlib import Path
from typing import List, Optional
from .client import Auth, Board, BooruAPIError, BooruClient
from .crawler import CrawlError, crawl_ids, crawl_monthly, gather
from .pipeline import Optimization
from .tags import TagFormatter
from .failure_tracker import FailureTracker
from .wiki import fetch_wiki_pages
from .config import settings
from .logging import CrawlMetrics, setup_logging, get_logger


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Booru Crawler - fetch posts, images and tag captions from Danbooru-style boards"
    )

    parser.add_argument(
        "-d", "--board",
        choices=[board.value for board in Board],
        default=settings.board,
        help=f"Board to crawl (default: {settings.board})"
    )
    parser.add_argument("--username", default=settings.danbooru_username, help="Board username (env: DANBOORU_USERNAME)")
    parser.add_argument("--api-key", default=settings.danbooru_api_key, help="Board API key (env: DANBOORU_API_KEY)")
    parser.add_argument(
        "--requests-per-second",
        type=float,
        default=settings.requests_per_second,
        help="Maximum page requests per second (default: unlimited)"
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL from configuration")
    parser.add_argument(
        "--failure-file",
        default=settings.failure_file,
        help=f"Failure ledger file (default: {settings.failure_file})"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # crawl: monthly JSONL buckets
    crawl = subparsers.add_parser("crawl", help="Dump post metadata into one JSONL file per month")
    crawl.add_argument("-t", "--tags", default="", help="Search tags")
    crawl.add_argument("--year-start", type=int, default=2024)
    crawl.add_argument("--year-end", type=int, help="Defaults to --year-start")
    crawl.add_argument("--month-start", type=int, default=1, choices=range(1, 13), metavar="MONTH")
    crawl.add_argument("--month-end", type=int, choices=range(1, 13), metavar="MONTH", help="Defaults to --month-start")
    crawl.add_argument("-o", "--output-path", default="output", help="Output folder (default: output)")
    crawl.add_argument("-p", "--prefix", help="Output file prefix (default: board name)")
    crawl.add_argument("--write-concurrency", type=int, default=settings.write_concurrency)
    crawl.add_argument("--overwrite", action="store_true", help="Re-crawl months that already have a file")

    # dump: ID windows into one resumable JSONL file
    dump = subparsers.add_parser("dump", help="Dump post metadata by ID range into one resumable JSONL file")
    dump.add_argument("-t", "--tags", default="", help="Search tags")
    dump.add_argument("--id-start", type=int, default=1)
    dump.add_argument("--id-end", type=int, required=True, help="First ID not to fetch")
    dump.add_argument("--window-size", type=int, default=1000)
    dump.add_argument("-o", "--output-path", default="output", help="Output folder (default: output)")
    dump.add_argument("-n", "--name", help="Output file name without extension (default: board name)")
    dump.add_argument("--write-concurrency", type=int, default=settings.write_concurrency)
    dump.add_argument("--overwrite", action="store_true", help="Start over instead of resuming")

    # gather: images with tag captions
    gather_parser = subparsers.add_parser("gather", help="Download images with tag caption files")
    gather_parser.add_argument("tags", help="Search tags")
    gather_parser.add_argument("-o", "--output-path", default="output", help="Output folder (default: output)")
    gather_parser.add_argument("-c", "--connections", type=int, default=settings.connections,
                               help="Concurrent image downloads")
    gather_parser.add_argument("-t", "--threads", type=int, default=settings.threads,
                               help="Concurrent image encoders")
    gather_parser.add_argument("-O", "--overwrite", action="store_true", help="Overwrite existing files")
    gather_parser.add_argument("-n", "--num-posts", type=int, default=20, help="How many posts to download")
    gather_parser.add_argument("--tag-template", default=settings.tag_template)
    gather_parser.add_argument("--optim", choices=[o.value for o in Optimization], default=Optimization.NONE.value,
                               help="none: keep original files, webp: lossless WebP")
    gather_parser.add_argument("--score-min", type=int, default=1)
    gather_parser.add_argument("--score-max", type=int)
    gather_parser.add_argument("--keep-out-of-context-meta", action="store_true",
                               default=settings.keep_out_of_context_meta,
                               help="Keep meta tags such as commentary requests in captions")

    # wiki: tag wiki pages
    wiki = subparsers.add_parser("wiki", help="Fetch tag wiki pages into a JSONL file")
    wiki.add_argument("tags", nargs="*", help="Tags to fetch")
    wiki.add_argument("--tags-file", type=Path, help="File with one tag per line")
    wiki.add_argument("--output", type=Path, default=Path("./output/tag-wiki.jsonl"))
    wiki.add_argument("--num-connections", type=int, default=2)
    wiki.add_argument("--overwrite", action="store_true")

    # failures: inspect the failure ledger
    failures = subparsers.add_parser("failures", help="Show or reset the failure ledger")
    failures.add_argument("--reset", action="store_true", help="Reset all failure tracking")
    failures.add_argument("--reset-post", metavar="POST_ID", help="Reset failure tracking for one post")

    return parser.parse_args(argv)


def read_tags(args) -> List[str]:
    tags = list(args.tags)
    if args.tags_file:
        with open(args.tags_file, "r", encoding="utf-8") as f:
            tags.extend(line.strip() for line in f if line.strip())
    return tags


def show_failures(args, tracker: FailureTracker) -> int:
    logger = get_logger("main")

    if args.reset:
        tracker.failures = {}
        tracker.not_found = []
        tracker.save_failures()
        logger.info("✅ All failure records reset")
        return 0

    if args.reset_post:
        tracker.clear_failure(args.reset_post)
        tracker.save_failures()
        logger.info(f"✅ Failure record reset for {args.reset_post}")
        return 0

    summary = tracker.get_failure_summary()
    logger.info(f"📊 Total failed posts: {summary['total_failed_posts']}")
    logger.info(f"🔍 Not found: {summary['not_found']}")
    failed_ids = tracker.get_failed_ids()
    if failed_ids:
        logger.info("🔗 Failed post IDs:")
        for i, post_id in enumerate(failed_ids[:20]):  # Show first 20
            logger.info(f"   {i+1}. {post_id} ({tracker.failures[post_id].get('error')})")
        if len(failed_ids) > 20:
            logger.info(f"   ... and {len(failed_ids) - 20} more")
    else:
        logger.info("✅ No failed posts")
    return 0


async def run_command(args, tracker: FailureTracker) -> None:
    """Run one crawl command against the board."""
    logger = get_logger("main")
    board = Board(args.board)
    auth = Auth(args.username, args.api_key) if args.username and args.api_key else None
    if auth is None:
        logger.info("🔓 No credentials configured, crawling anonymously")

    metrics = CrawlMetrics()
    async with BooruClient(board, auth=auth) as client:
        if args.command == "crawl":
            await crawl_monthly(
                client,
                args.tags,
                args.output_path,
                args.prefix or board.value,
                year_start=args.year_start,
                month_start=args.month_start,
                year_end=args.year_end,
                month_end=args.month_end,
                overwrite=args.overwrite,
                write_concurrency=args.write_concurrency,
                requests_per_second=args.requests_per_second,
                metrics=metrics,
            )

        elif args.command == "dump":
            await crawl_ids(
                client,
                args.tags,
                args.output_path,
                args.name or board.value,
                id_start=args.id_start,
                id_end=args.id_end,
                window_size=args.window_size,
                overwrite=args.overwrite,
                write_concurrency=args.write_concurrency,
                requests_per_second=args.requests_per_second,
                metrics=metrics,
            )

        elif args.command == "gather":
            await gather(
                client,
                args.tags,
                args.output_path,
                num_posts=args.num_posts,
                score_min=args.score_min,
                score_max=args.score_max,
                template=args.tag_template,
                optimization=Optimization(args.optim),
                overwrite=args.overwrite,
                connections=args.connections,
                threads=args.threads,
                requests_per_second=args.requests_per_second,
                formatter=TagFormatter(keep_out_of_context_meta=args.keep_out_of_context_meta),
                failure_tracker=tracker,
                metrics=metrics,
            )

        elif args.command == "wiki":
            await fetch_wiki_pages(
                client,
                read_tags(args),
                args.output,
                connections=args.num_connections,
                overwrite=args.overwrite,
                failure_tracker=tracker,
            )

    stats = metrics.get_metrics()
    if stats["pages_fetched"]:
        logger.info(
            f"📊 Pages: {stats['pages_fetched']} | Persisted: {stats['posts_persisted']} | "
            f"Skipped: {stats['posts_skipped']} | Failed: {stats['failures']} | "
            f"Downloaded: {stats['bytes_downloaded'] / (1024 * 1024):.1f} MiB"
        )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    setup_logging(args.log_level)
    logger = get_logger("main")

    tracker = FailureTracker(args.failure_file)
    if args.command == "failures":
        return show_failures(args, tracker)

    logger.info(f"🚀 Starting Booru Crawler: {args.command} on {args.board}")

    try:
        asyncio.run(run_command(args, tracker))
        logger.info("✅ Crawl completed successfully")
        return 0

    except (BooruAPIError, CrawlError) as e:
        logger.error(f"❌ Crawl failed: {str(e)}")
        return 1
    except OSError as e:
        logger.error(f"❌ Filesystem error: {str(e)}")
        return 1
    except ValueError as e:
        logger.error(f"❌ Invalid arguments: {str(e)}")
        return 1
    except KeyboardInterrupt:
        logger.info("⏹️  Crawl interrupted by user")
        return 130
    finally:
        tracker.save_failures()


if __name__ == "__main__":
    sys.exit(main())
