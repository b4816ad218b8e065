"""Interval aggregation for Jira Backlog Metrics.

This module buckets enriched tickets into daily, weekly or monthly periods.
A ticket's bucket is derived from the calendar date written in one of its
timestamps (creation for the main time series, the outgoing date for the
fixed-tickets series):

* daily: that date,
* weekly: the Sunday on or before that date,
* monthly: the first day of that date's month.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from ..common_constants import (
    INTERVAL_FREQUENCIES,
    OTHER_SOURCE_LABEL,
    PRIORITY_CATEGORIES,
)
from ..utils import calendar_date

logger = logging.getLogger(__name__)

BUCKET_COLUMNS = ["position", "date", "key", "category"]


def bucket_key(value, interval="daily") -> Optional[str]:
    """Return the ISO date of the period containing timestamp `value`.

    Returns None if `value` cannot be parsed.

    Raises:
        ValueError: If `interval` is not daily, weekly or monthly.
    """
    try:
        frequency = INTERVAL_FREQUENCIES[interval]
    except KeyError:
        raise ValueError(f"Unknown interval `{interval}`") from None

    day = calendar_date(value)
    if day is None:
        return None

    period = pd.Timestamp(day).to_period(frequency)
    return period.start_time.date().isoformat()


def _category(ticket):
    category = ticket.get("priorityCategory")
    return category if category in PRIORITY_CATEGORIES else "unknown"


def bucket_tickets(tickets, interval="daily", date_field="created") -> pd.DataFrame:
    """One row per ticket with a readable `date_field`, tagged with its bucket.

    `position` indexes back into `tickets`.
    """
    rows = []
    for position, ticket in enumerate(tickets):
        date = bucket_key(ticket.get(date_field), interval)
        if date is None:
            logger.debug("Ticket %s has no usable `%s`", ticket.get("key"), date_field)
            continue
        rows.append((position, date, ticket.get("key"), _category(ticket)))

    return pd.DataFrame(rows, columns=BUCKET_COLUMNS)


@dataclass
class AggregatedPeriod:
    """Counts by priority category for the tickets of one period."""

    date: str
    high: int = 0
    medium: int = 0
    low: int = 0
    unknown: int = 0
    total: int = 0
    tickets: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return {
            "date": self.date,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "unknown": self.unknown,
            "total": self.total,
            "ticketKeys": [t.get("key") for t in self.tickets],
        }


def aggregate_by_interval(tickets, interval="daily") -> List[AggregatedPeriod]:
    """Bucket `tickets` by creation date and count them per priority category.

    Args:
        tickets: Enriched ticket dicts.
        interval: One of daily, weekly or monthly.

    Returns:
        Periods sorted ascending by date. Only periods with at least one
        ticket are present. Tickets with an unreadable creation time are left
        out.
    """
    frame = bucket_tickets(tickets, interval)
    if len(frame.index) == 0:
        return []

    counts = pd.crosstab(frame["date"], frame["category"]).reindex(
        columns=PRIORITY_CATEGORIES, fill_value=0
    )

    periods = []
    for date, group in frame.groupby("date", sort=True):
        row = counts.loc[date]
        periods.append(
            AggregatedPeriod(
                date=date,
                high=int(row["high"]),
                medium=int(row["medium"]),
                low=int(row["low"]),
                unknown=int(row["unknown"]),
                total=len(group.index),
                tickets=[tickets[position] for position in group["position"]],
            )
        )

    logger.debug("Aggregated %d tickets into %d %s periods", len(frame.index), len(periods), interval)
    return periods


def fixed_tickets_series(tickets, interval="daily", labels=None) -> List[Dict[str, Any]]:
    """Count tickets that left the active backlog, per period and source label.

    Tickets are bucketed by their outgoing date. Each entry has a `total`, a
    count per source label and for `other` (tickets with no source label),
    and a `<label>Tickets` list of ticket keys next to each count. A ticket
    with several source labels counts once under each.

    Args:
        tickets: Enriched ticket dicts.
        interval: One of daily, weekly or monthly.
        labels: The source labels to report on. Defaults to every label found
            on an outgoing ticket.
    """
    frame = bucket_tickets(tickets, interval, date_field="outgoingDate")
    if len(frame.index) == 0:
        return []

    if labels is None:
        labels = sorted(
            {label for p in frame["position"] for label in tickets[p].get("sourceLabels") or []}
        )
    columns = list(labels) + [OTHER_SOURCE_LABEL]

    series = []
    for date, group in frame.groupby("date", sort=True):
        entry = {"date": date, "total": len(group.index)}
        for column in columns:
            entry[column] = 0
            entry[f"{column}Tickets"] = []

        for position in group["position"]:
            ticket = tickets[position]
            ticket_labels = [label for label in ticket.get("sourceLabels") or [] if label in labels]
            for label in ticket_labels or [OTHER_SOURCE_LABEL]:
                entry[label] += 1
                entry[f"{label}Tickets"].append(ticket.get("key"))

        series.append(entry)

    return series
