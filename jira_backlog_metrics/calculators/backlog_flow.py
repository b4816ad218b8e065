"""Backlog flow views for Jira Backlog Metrics.

These are built on the incoming and outgoing dates of enriched tickets: how
each source label's tickets moved through the active backlog period by
period, which tickets have been in it longest, what entered or left it most
recently, and filtered pages of the ticket list.

Period boundaries are midnights UTC. A period runs from its first day up to,
but not including, the first day of the next period.
"""

import datetime
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pandas as pd

from ..common_constants import (
    ACTIVE_BACKLOG_LIMIT,
    INTERVAL_FREQUENCIES,
    PRIORITY_CATEGORIES,
)
from ..utils import calendar_date, parse_timestamp, round_half_up
from .source_labels import all_source_labels
from .summary import calculate_metrics

UTC = datetime.timezone.utc

STATS_LIMIT = 10
DEFAULT_PAGE_SIZE = 100

FLOW_TICKET_FIELDS = [
    "key",
    "summary",
    "timeInTop7Days",
    "priorityLevel",
    "status",
    "incomingDate",
    "outgoingDate",
]


@dataclass
class FlowPeriod:
    """One period of a flow analysis. `end` is exclusive."""

    date: str
    start: datetime.datetime
    end: datetime.datetime


def _midnight(day):
    return datetime.datetime.combine(day, datetime.time(), tzinfo=UTC)


def _pick(ticket, fields):
    return {field: ticket.get(field) for field in fields}


def in_active_backlog(ticket) -> bool:
    """True if the ticket currently has a priority level below 100."""
    level = ticket.get("priorityLevel")
    return level is not None and level < ACTIVE_BACKLOG_LIMIT


def flow_periods(start: datetime.date, end: datetime.date, interval="daily") -> List[FlowPeriod]:
    """The consecutive periods covering every day from `start` to `end`.

    The first period is the one containing `start`, so weekly periods begin
    on the Sunday on or before it and monthly periods on the 1st.

    Raises:
        ValueError: If `interval` is not daily, weekly or monthly.
    """
    try:
        frequency = INTERVAL_FREQUENCIES[interval]
    except KeyError:
        raise ValueError(f"Unknown interval `{interval}`") from None

    if end < start:
        return []

    return [
        FlowPeriod(
            date=period.start_time.date().isoformat(),
            start=_midnight(period.start_time.date()),
            end=_midnight((period + 1).start_time.date()),
        )
        for period in pd.period_range(start=pd.Timestamp(start), end=pd.Timestamp(end), freq=frequency)
    ]


def period_source_flow(dated_tickets, period: FlowPeriod) -> Dict[str, Any]:
    """How one source label's tickets moved through the backlog in `period`.

    Args:
        dated_tickets: `(ticket, incoming, outgoing)` tuples with the dates
            already parsed.
        period: The period to report on.

    Returns:
        A dict with `total` (tickets in the active backlog at some point in
        the period), `inTop7` (still there at its end), `incoming` and
        `outgoing` (entered or left during it), `avgTimeInTop7` (one decimal)
        and `tickets`.
    """
    flow = {
        "total": 0,
        "inTop7": 0,
        "avgTimeInTop7": 0,
        "incoming": 0,
        "outgoing": 0,
        "tickets": [],
    }

    for ticket, incoming, outgoing in dated_tickets:
        if incoming is None or incoming >= period.end:
            continue
        if outgoing is not None and outgoing < period.start:
            continue

        flow["total"] += 1
        if outgoing is None or outgoing >= period.end:
            flow["inTop7"] += 1
        else:
            flow["outgoing"] += 1
        if incoming >= period.start:
            flow["incoming"] += 1
        flow["tickets"].append(_pick(ticket, FLOW_TICKET_FIELDS))

    if flow["tickets"]:
        total_time = sum(t["timeInTop7Days"] or 0 for t in flow["tickets"])
        flow["avgTimeInTop7"] = round_half_up(total_time / len(flow["tickets"]) * 10) / 10

    return flow


def source_flow_analysis(
    tickets,
    now: datetime.datetime,
    interval="daily",
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
    sources=None,
) -> Dict[str, Any]:
    """Backlog flow per period and source label.

    Args:
        tickets: Enriched ticket dicts.
        now: Reference time. `end` defaults to its UTC date.
        interval: One of daily, weekly or monthly.
        start: First day to cover. Defaults to the earliest creation date.
        end: Last day to cover.
        sources: Source labels to analyse. Defaults to every label found.

    Returns:
        A dict with `analysis` (one entry per period with `date`, `interval`
        and a `sources` mapping of label to `period_source_flow` output),
        `total` (number of periods), `interval`, `sourcesAnalyzed` and the
        `dateRange` actually covered.

    Raises:
        ValueError: If `interval` is not daily, weekly or monthly.
    """
    if interval not in INTERVAL_FREQUENCIES:
        raise ValueError(f"Unknown interval `{interval}`")

    if sources is None:
        sources = all_source_labels(tickets)

    if start is None:
        created = [day for day in (calendar_date(t.get("created")) for t in tickets) if day]
        start = min(created) if created else None
    if end is None:
        end = now.astimezone(UTC).date()

    dated = [
        (ticket, parse_timestamp(ticket.get("incomingDate")), parse_timestamp(ticket.get("outgoingDate")))
        for ticket in tickets
    ]
    by_source = {
        source: [entry for entry in dated if source in (entry[0].get("sourceLabels") or [])]
        for source in sources
    }

    periods = flow_periods(start, end, interval) if start is not None else []
    analysis = [
        {
            "date": period.date,
            "interval": interval,
            "sources": {source: period_source_flow(by_source[source], period) for source in sources},
        }
        for period in periods
    ]

    return {
        "analysis": analysis,
        "total": len(analysis),
        "interval": interval,
        "sourcesAnalyzed": list(sources),
        "dateRange": {
            "from": start.isoformat() if start else None,
            "to": end.isoformat(),
        },
    }


def most_recent(tickets, date_field, limit=STATS_LIMIT):
    """Tickets with a readable `date_field`, latest first."""
    dated = [(parse_timestamp(t.get(date_field)), t) for t in tickets]
    dated = [(date, t) for date, t in dated if date is not None]
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [t for _, t in dated[:limit]]


def ticket_stats(tickets, now: datetime.datetime, limit=STATS_LIMIT) -> Dict[str, Any]:
    """Headline metrics plus the longest-waiting, latest fixed and latest added tickets."""
    longest = sorted(
        (t for t in tickets if in_active_backlog(t)),
        key=lambda t: t.get("timeInTop7Days") or 0,
        reverse=True,
    )[:limit]

    return {
        "current": calculate_metrics(tickets, now),
        "topTicketsByTime": [
            _pick(t, ["key", "summary", "timeInTop7Days", "priorityLevel", "status"])
            for t in longest
        ],
        "recentlyFixed": [
            _pick(t, ["key", "summary", "outgoingDate", "timeInTop7Days"])
            for t in most_recent(tickets, "outgoingDate", limit)
        ],
        "recentlyAdded": [
            _pick(t, ["key", "summary", "incomingDate", "priorityLevel"])
            for t in most_recent(tickets, "incomingDate", limit)
        ],
    }


def filter_tickets(tickets, priority=None, status=None, in_top7=False) -> List[Dict[str, Any]]:
    """Tickets matching every filter given.

    Raises:
        ValueError: If `priority` is not a priority category.
    """
    if priority is not None and priority not in PRIORITY_CATEGORIES:
        raise ValueError(f"Unknown priority `{priority}`, expected one of {PRIORITY_CATEGORIES}")

    return [
        t
        for t in tickets
        if (priority is None or t.get("priorityCategory") == priority)
        and (status is None or t.get("status") == status)
        and (not in_top7 or in_active_backlog(t))
    ]


def paginate(tickets, page=1, limit=DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    """One page of `tickets` with paging metadata.

    Raises:
        ValueError: If `page` or `limit` is below 1.
    """
    if page < 1 or limit < 1:
        raise ValueError("`page` and `limit` must be at least 1")

    first = (page - 1) * limit
    return {
        "tickets": tickets[first : first + limit],
        "total": len(tickets),
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(len(tickets) / limit),
    }
