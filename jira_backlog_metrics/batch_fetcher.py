"""Paged retrieval of search results.

The JIRA search API returns at most a page of issues per request. The
BatchFetcher walks the pages sequentially until one of three limits is hit:

* the number of issues fetched reaches the requested cap,
* the fixed page ceiling is reached,
* the next offset would be past the reported total.

The fetcher knows nothing about the client library; it is handed a callable
that performs one page request and returns the decoded JSON body.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .common_constants import MAX_PAGES, PAGE_SIZE

logger = logging.getLogger(__name__)

# search_page(jql, fields, start_at, max_results, expand) -> {"issues": [...], "total": n}
SearchPage = Callable[[str, List[str], int, int, Optional[str]], Dict[str, Any]]


@dataclass
class BatchResult:
    """All issues fetched for one query, plus how the fetch went."""

    issues: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    batch_count: int = 0
    page_size: int = PAGE_SIZE

    @property
    def fetched_count(self) -> int:
        return len(self.issues)

    @property
    def truncated(self) -> bool:
        return self.fetched_count < self.total

    def batch_info(self):
        """Summary suitable for inclusion in a bundle."""
        return {
            "batchCount": self.batch_count,
            "truncated": self.truncated,
            "batchSize": self.page_size,
            "totalFound": self.total,
            "fetchedCount": self.fetched_count,
        }

    def warning(self) -> Optional[str]:
        """A user-facing warning when the results are incomplete."""
        if not self.truncated:
            return None
        return (
            f"Results truncated: fetched {self.fetched_count} of {self.total} "
            f"matching issues. Narrow the query or raise the result limit."
        )


class BatchFetcher:
    """Fetch every page of a query, up to a cap.

    Pages are requested strictly one after another. An error raised by
    `search_page` propagates to the caller unchanged; nothing is retried.
    """

    def __init__(self, search_page: SearchPage, page_size=PAGE_SIZE, max_pages=MAX_PAGES):
        self.search_page = search_page
        self.page_size = page_size
        self.max_pages = max_pages

    def fetch(self, jql, fields, max_results, expand_changelog=True) -> BatchResult:
        """Run `jql` and collect the results of every page.

        Args:
            jql: The query string.
            fields: The issue fields to request.
            max_results: Stop once at least this many issues were fetched.
            expand_changelog: Request each issue's changelog as well.

        Returns:
            A BatchResult. A page with a missing or short issue list simply
            contributes what it has.
        """
        expand = "changelog" if expand_changelog else None
        result = BatchResult(page_size=self.page_size)
        start_at = 0

        while True:
            page = self.search_page(jql, fields, start_at, self.page_size, expand) or {}
            page_issues = page.get("issues") or []

            result.issues.extend(page_issues)
            result.total = int(page.get("total") or 0)
            result.batch_count += 1
            start_at += self.page_size

            logger.info(
                "Fetched page %d: %d issues (%d of %d so far)",
                result.batch_count,
                len(page_issues),
                result.fetched_count,
                result.total,
            )

            if result.fetched_count >= max_results:
                break
            if result.batch_count >= self.max_pages:
                logger.warning("Stopped after the maximum of %d pages", self.max_pages)
                break
            if start_at >= result.total:
                break

        if result.truncated:
            logger.warning(
                "Query returned %d issues but only %d were fetched",
                result.total,
                result.fetched_count,
            )

        return result
