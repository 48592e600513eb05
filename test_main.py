"""
Tests for the command line entry point.
"""

import pytest

from booru_crawler import main as cli
from booru_crawler.client import BooruAPIError
from booru_crawler.failure_tracker import FailureTracker
from booru_crawler.pipeline import Optimization


def test_parse_gather_arguments():
    args = cli.parse_arguments(["gather", "cat ears", "-n", "5", "--optim", "webp", "--score-max", "50"])

    assert args.command == "gather"
    assert args.tags == "cat ears"
    assert args.num_posts == 5
    assert Optimization(args.optim) is Optimization.WEBP
    assert args.score_min == 1
    assert args.score_max == 50
    assert args.output_path == "output"


def test_parse_crawl_arguments():
    args = cli.parse_arguments(["-d", "safebooru", "crawl", "-t", "1girl", "--month-start", "3"])

    assert args.board == "safebooru"
    assert args.year_start == 2024
    assert args.month_start == 3
    assert args.month_end is None
    assert args.prefix is None


def test_parse_rejects_unknown_board():
    with pytest.raises(SystemExit):
        cli.parse_arguments(["-d", "gelbooru", "crawl"])


def test_failures_command(tmp_path):
    failure_file = str(tmp_path / "failures.json")
    tracker = FailureTracker(failure_file)
    tracker.record_failure(7, "HTTP 500")
    tracker.save_failures()

    assert cli.main(["--failure-file", failure_file, "failures"]) == 0
    assert cli.main(["--failure-file", failure_file, "failures", "--reset-post", "7"]) == 0
    assert FailureTracker(failure_file).get_failed_ids() == []


def test_crawl_success(tmp_path, monkeypatch):
    calls = []

    async def fake_crawl_monthly(client, tags, output_dir, prefix, **kwargs):
        calls.append((tags, output_dir, prefix, kwargs))
        return 0

    monkeypatch.setattr(cli, "crawl_monthly", fake_crawl_monthly)

    code = cli.main([
        "--failure-file", str(tmp_path / "failures.json"),
        "crawl", "-t", "1girl", "-o", str(tmp_path), "--year-start", "2023",
    ])

    assert code == 0
    tags, output_dir, prefix, kwargs = calls[0]
    assert tags == "1girl"
    assert prefix == "danbooru"
    assert kwargs["year_start"] == 2023


@pytest.mark.parametrize("error", [BooruAPIError("HTTP 500"), OSError("read-only file system")])
def test_fatal_errors_exit_non_zero(tmp_path, monkeypatch, error):
    async def failing_crawl_ids(*args, **kwargs):
        raise error

    monkeypatch.setattr(cli, "crawl_ids", failing_crawl_ids)

    code = cli.main([
        "--failure-file", str(tmp_path / "failures.json"),
        "dump", "--id-end", "100", "-o", str(tmp_path),
    ])

    assert code == 1
