"""Common constants used across Jira Backlog Metrics modules."""

from typing import Dict, Final, List

# Priority level thresholds: < 10 is high, < 100 is medium, anything else low
HIGH_PRIORITY_LIMIT: Final[int] = 10
ACTIVE_BACKLOG_LIMIT: Final[int] = 100

# Highest priority level that is still inside the active ("Top 7") backlog
ACTIVE_BACKLOG_MAX_LEVEL: Final[int] = ACTIVE_BACKLOG_LIMIT - 1

PRIORITY_CATEGORIES: Final[List[str]] = ["high", "medium", "low", "unknown"]

INTERVALS: Final[List[str]] = ["daily", "weekly", "monthly"]

# Pandas period aliases for each interval. Weekly periods end on Saturday so
# that they start on the Sunday on or before a date.
INTERVAL_FREQUENCIES: Final[Dict[str, str]] = {
    "daily": "D",
    "weekly": "W-SAT",
    "monthly": "M",
}

# Upstream pagination
PAGE_SIZE: Final[int] = 100
MAX_PAGES: Final[int] = 50
DEFAULT_TIMEOUT: Final[int] = 10

# Snapshot cache keys
TICKETS_CACHE_KEY: Final[str] = "tickets"
HISTORICAL_CACHE_KEY: Final[str] = "historical"
CACHE_KEYS: Final[List[str]] = [TICKETS_CACHE_KEY, HISTORICAL_CACHE_KEY]

# Fields requested from the search API
ISSUE_FIELDS: Final[List[str]] = [
    "summary",
    "status",
    "created",
    "updated",
    "priority",
    "labels",
    "creator",
]

OTHER_SOURCE_LABEL: Final[str] = "other"
DEFAULT_SOURCE_LABEL_COLOR: Final[str] = "#6b7280"

SOURCE_LABEL_COLORS: Final[Dict[str, str]] = {
    "src-bug-fix": "#ef4444",
    "src-golive-critical": "#dc2626",
    "src-new-feature": "#3b82f6",
    "src-integration": "#8b5cf6",
    "src-tech-debt": "#f59e0b",
    "src-unknown": "#6b7280",
    "src-maintenance": "#10b981",
    "src-enhancement": "#ec4899",
    "src-research": "#06b6d4",
    "src-critical": "#84cc16",
}
