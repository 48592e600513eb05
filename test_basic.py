#!/usr/bin/env python3
"""
Basic test script for the Booru Crawler.
This script tests the core functionality without touching a real board.
"""

import os
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

def test_imports():
    """Test that all modules can be imported."""
    print("Testing imports...")

    from booru_crawler import config, logging, models, query, tags, client, pager, resume, pipeline, crawler, wiki, main
    print("✓ Core modules imported successfully")

def test_config():
    """Test configuration loading."""
    print("\nTesting configuration...")

    os.environ['DANBOORU_USERNAME'] = 'test-user'
    os.environ['DANBOORU_API_KEY'] = 'test-api-key'
    try:
        from booru_crawler.config import Settings, DEFAULT_TAG_TEMPLATE

        settings = Settings(_env_file=None)

        assert settings.danbooru_username == 'test-user'
        assert settings.danbooru_api_key == 'test-api-key'
        assert settings.has_credentials()
        assert settings.board == 'danbooru'
        assert settings.page_limit == 200
        assert settings.connections == 4
        assert settings.tag_template == DEFAULT_TAG_TEMPLATE
        assert settings.request_delay == 0.0
    finally:
        del os.environ['DANBOORU_USERNAME']
        del os.environ['DANBOORU_API_KEY']

    print("✓ Configuration loaded successfully")

def test_config_validation():
    """Test configuration validators."""
    print("\nTesting configuration validation...")

    from pydantic import ValidationError
    from booru_crawler.config import Settings

    settings = Settings(_env_file=None, board='SafeBooru', log_level='debug', requests_per_second=4)
    assert settings.board == 'safebooru'
    assert settings.log_level == 'DEBUG'
    assert settings.request_delay == 0.25

    with pytest.raises(ValidationError):
        Settings(_env_file=None, board='gelbooru')
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level='LOUD')
    with pytest.raises(ValidationError):
        Settings(_env_file=None, page_limit=500)

    print("✓ Configuration validation works correctly")

def test_models():
    """Test data models."""
    print("\nTesting data models...")

    from booru_crawler.models import Post, Rating, FileExt, WikiPage, PostProcessingResult

    # Banned posts come without urls or tag strings
    post = Post.model_validate({"id": 1, "rating": "g", "file_ext": "jpeg"})
    assert post.rating is Rating.GENERAL
    assert post.file_ext is FileExt.JPG
    assert post.file_url is None
    assert post.tag_string_general == ""

    line = post.model_dump_json()
    assert Post.model_validate_json(line) == post

    wiki = WikiPage.model_validate({"id": 3, "title": "cat_ears", "other_names": ["猫耳"]})
    assert wiki.body == ""

    result = PostProcessingResult(post_id=1, success=True, processing_time=1.5)
    assert result.skipped is False
    assert result.error is None

    print("✓ Data models work correctly")

def test_logging():
    """Test logging setup."""
    print("\nTesting logging...")

    from booru_crawler.logging import setup_logging, get_logger, CrawlMetrics

    # Setup logging
    setup_logging("INFO")

    # Test logger
    logger = get_logger("test")
    logger.info("Test log message")

    # Test metrics
    metrics = CrawlMetrics()
    metrics.log_page(200)
    metrics.log_download(1, 1024)
    metrics.log_post_persisted(1, 0.5)
    metrics.log_post_skipped(2)
    metrics.log_post_failure(3, "boom")

    current_metrics = metrics.get_metrics()
    assert current_metrics["pages_fetched"] == 1
    assert current_metrics["bytes_downloaded"] == 1024
    assert current_metrics["posts_persisted"] == 1
    assert current_metrics["posts_skipped"] == 1
    assert current_metrics["failures"] == 1

    print("✓ Logging setup works correctly")

def test_failure_tracker(tmp_path):
    """Test the failure ledger round trip."""
    print("\nTesting failure tracker...")

    from booru_crawler.failure_tracker import FailureTracker

    failure_file = str(tmp_path / "failures.json")
    tracker = FailureTracker(failure_file)
    assert tracker.record_failure(42, "timeout") == 1
    assert tracker.record_failure(42, "timeout again") == 2
    tracker.record_not_found("no_such_tag")
    tracker.record_not_found("no_such_tag")
    tracker.save_failures()

    reloaded = FailureTracker(failure_file)
    assert reloaded.get_failed_ids() == ["42"]
    assert reloaded.failures["42"]["attempts"] == 2
    assert reloaded.failures["42"]["error"] == "timeout again"
    assert reloaded.not_found == ["no_such_tag"]

    reloaded.clear_failure(42)
    summary = reloaded.get_failure_summary()
    assert summary["total_failed_posts"] == 0
    assert summary["not_found"] == 1

    print("✓ Failure tracker works correctly")

def test_failure_tracker_corrupt_file(tmp_path):
    """A damaged ledger starts fresh instead of failing the crawl."""
    from booru_crawler.failure_tracker import FailureTracker

    failure_file = tmp_path / "failures.json"
    failure_file.write_text("{not json", encoding="utf-8")

    tracker = FailureTracker(str(failure_file))
    assert tracker.failures == {}
    assert tracker.not_found == []

def main():
    """Run all tests."""
    print("Running basic tests for Booru Crawler...")
    print("=" * 50)

    sys.exit(pytest.main([__file__, "-q"]))

if __name__ == "__main__":
    main()
