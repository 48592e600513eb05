"""
Side ledger of posts that failed and identifiers the board does not know.
"""

import os
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional
from .logging import get_logger


class FailureTracker:
    """Records failed post IDs and not-found identifiers in a JSON file."""

    def __init__(self, failure_file: Optional[str] = "crawl_failures.json"):
        self.failure_file = failure_file
        self.logger = get_logger("failure_tracker")

        # Structure: {post_id: {"attempts": N, "last_failed": "ISO_TIME", "error": "..."}}
        self.failures: Dict[str, Dict] = {}
        self.not_found: List[str] = []
        self.load_failures()

    def load_failures(self):
        """Load failure data from disk."""
        if not self.failure_file or not os.path.exists(self.failure_file):
            self.logger.debug("📋 No failure file found, starting fresh")
            return

        try:
            with open(self.failure_file, 'r', encoding="utf-8") as f:
                data = json.load(f)
            self.failures = data.get("failures", {})
            self.not_found = data.get("not_found", [])
            self.logger.debug(f"📋 Loaded {len(self.failures)} failure records, {len(self.not_found)} not found")
        except (OSError, ValueError) as e:
            self.logger.warning(f"⚠️  Failed to load failure data: {e}, starting fresh")
            self.failures = {}
            self.not_found = []

    def save_failures(self):
        """Save failure data to disk."""
        if not self.failure_file:
            return

        data = {
            "failures": self.failures,
            "not_found": self.not_found,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with open(self.failure_file, 'w', encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            self.logger.debug(f"💾 Saved {len(self.failures)} failure records")
        except OSError as e:
            self.logger.warning(f"⚠️  Failed to save failure data: {e}")

    def record_failure(self, post_id, error: str) -> int:
        """Record a failure for a post and return its attempt count."""
        key = str(post_id)
        now = datetime.now(timezone.utc).isoformat()

        record = self.failures.setdefault(key, {"attempts": 0})
        record["attempts"] += 1
        record["last_failed"] = now
        record["error"] = error
        return record["attempts"]

    def record_not_found(self, identifier: str) -> None:
        if identifier not in self.not_found:
            self.not_found.append(identifier)
            self.logger.info(f"🔍 Not found: {identifier}")

    def clear_failure(self, post_id) -> None:
        self.failures.pop(str(post_id), None)

    def get_failed_ids(self) -> List[str]:
        return list(self.failures.keys())

    def get_failure_summary(self) -> Dict:
        """Get a summary of failure statistics."""
        return {
            "total_failed_posts": len(self.failures),
            "not_found": len(self.not_found),
            "failed_ids": self.get_failed_ids()[:10],
        }
