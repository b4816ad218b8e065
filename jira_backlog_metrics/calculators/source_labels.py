"""Source label breakdowns for Jira Backlog Metrics.

Source labels are ticket labels with a fixed prefix (``src-`` by default)
describing where a piece of work came from, e.g. ``src-bug-fix``.
"""

import re
from typing import Any, Dict, List

import pandas as pd

from ..common_constants import DEFAULT_SOURCE_LABEL_COLOR, SOURCE_LABEL_COLORS
from ..utils import round_half_up
from .intervals import AggregatedPeriod


def all_source_labels(tickets) -> List[str]:
    """Sorted union of the source labels of every ticket."""
    return sorted({label for ticket in tickets for label in ticket.get("sourceLabels") or []})


def source_label_name(label, prefix="src-"):
    """Human-readable name: ``src-bug-fix`` becomes ``Bug Fix``."""
    name = label[len(prefix):] if prefix and label.startswith(prefix) else label
    name = name.replace("-", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name)


def source_label_series(periods: List[AggregatedPeriod], labels=None) -> List[Dict[str, Any]]:
    """Per period, how many tickets carry each source label.

    Every label in `labels` (by default the union over all tickets in all
    periods) appears in every entry, with a count and a `<label>Tickets`
    list of ticket keys, so the series can be plotted without gaps.
    """
    if labels is None:
        labels = all_source_labels(t for p in periods for t in p.tickets)

    rows = [
        (period.date, ticket.get("key"), label)
        for period in periods
        for ticket in period.tickets
        for label in ticket.get("sourceLabels") or []
        if label in labels
    ]
    frame = pd.DataFrame(rows, columns=["date", "key", "label"])
    dates = [period.date for period in periods]

    counts = pd.DataFrame()
    keys = {}
    if len(frame.index) > 0:
        counts = pd.crosstab(frame["date"], frame["label"])
        keys = frame.groupby(["date", "label"])["key"].apply(list).to_dict()
    counts = counts.reindex(index=dates, columns=labels, fill_value=0)

    series = []
    for date in dates:
        entry = {"date": date}
        for label in labels:
            entry[label] = int(counts.at[date, label])
            entry[f"{label}Tickets"] = keys.get((date, label), [])
        series.append(entry)
    return series


def source_label_summary(tickets, prefix="src-", colors=None) -> List[Dict[str, Any]]:
    """Distribution of source labels over a ticket set.

    Returns:
        One dict per label with `name`, `label`, `count`, `percentage` (of
        all tickets, rounded) and `color`, sorted by count descending and
        then by label.
    """
    if colors is None:
        colors = SOURCE_LABEL_COLORS

    counts = pd.Series(
        [label for ticket in tickets for label in ticket.get("sourceLabels") or []],
        dtype=object,
    ).value_counts()

    total = len(tickets)
    summary = [
        {
            "name": source_label_name(label, prefix),
            "label": label,
            "count": int(count),
            "percentage": round_half_up(count / total * 100) if total else 0,
            "color": colors.get(label, DEFAULT_SOURCE_LABEL_COLOR),
        }
        for label, count in counts.items()
    ]
    summary.sort(key=lambda s: (-s["count"], s["label"]))
    return summary
