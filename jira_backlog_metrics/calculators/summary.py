"""Summary metrics for Jira Backlog Metrics.

This module computes the headline numbers shown for a ticket set: counts by
priority category, status and source label, the average time tickets spend
in the active backlog, and what entered or left it today.
"""

import datetime
from typing import Any, Dict

from ..common_constants import ACTIVE_BACKLOG_LIMIT, PRIORITY_CATEGORIES
from ..utils import parse_timestamp, round_half_up


def calculate_counts(tickets) -> Dict[str, int]:
    """Number of tickets per priority category, plus `total`."""
    counts = {category: 0 for category in PRIORITY_CATEGORIES}
    for ticket in tickets:
        category = ticket.get("priorityCategory")
        counts[category if category in counts else "unknown"] += 1
    counts["total"] = len(tickets)
    return counts


def _is_on(value, day):
    parsed = parse_timestamp(value)
    return parsed is not None and parsed.astimezone(datetime.timezone.utc).date() == day


def _one_decimal(total, count):
    if count == 0:
        return 0
    return round_half_up(total / count * 10) / 10


def calculate_metrics(tickets, now: datetime.datetime) -> Dict[str, Any]:
    """Summarise a ticket set.

    Args:
        tickets: Enriched ticket dicts.
        now: Reference time; "today" is its UTC calendar date.

    Returns:
        A dict with `total`, `byPriority`, `byStatus`, `bySource`,
        `avgTimeInTop7` (overall and per category, one decimal),
        `top7Count`, `fixedToday` and `incomingToday`.
    """
    today = now.astimezone(datetime.timezone.utc).date()
    by_status: Dict[str, int] = {}
    by_source: Dict[str, int] = {}
    sums = {"overall": 0, "high": 0, "medium": 0, "low": 0}
    counts = dict.fromkeys(sums, 0)
    top7_count = fixed_today = incoming_today = 0

    for ticket in tickets:
        category = ticket.get("priorityCategory") or "unknown"

        status = ticket.get("status") or "Unknown"
        by_status[status] = by_status.get(status, 0) + 1

        for label in ticket.get("sourceLabels") or []:
            by_source[label] = by_source.get(label, 0) + 1

        days = ticket.get("timeInTop7Days")
        if days is not None:
            sums["overall"] += days
            counts["overall"] += 1
            if category in sums:
                sums[category] += days
                counts[category] += 1

        level = ticket.get("priorityLevel")
        if level is not None and level < ACTIVE_BACKLOG_LIMIT:
            top7_count += 1

        if _is_on(ticket.get("outgoingDate"), today):
            fixed_today += 1
        if _is_on(ticket.get("incomingDate"), today):
            incoming_today += 1

    return {
        "total": len(tickets),
        "byPriority": {k: v for k, v in calculate_counts(tickets).items() if k != "total"},
        "byStatus": by_status,
        "bySource": by_source,
        "avgTimeInTop7": {key: _one_decimal(sums[key], counts[key]) for key in sums},
        "top7Count": top7_count,
        "fixedToday": fixed_today,
        "incomingToday": incoming_today,
    }
