"""
Booru Crawler

Retrieves tagged posts and media from Danbooru-style image boards, pages
through search results, downloads media and writes normalized tag captions
and JSONL post records to disk.
"""

__version__ = "1.0.0"
__author__ = "Booru Crawler Team"
