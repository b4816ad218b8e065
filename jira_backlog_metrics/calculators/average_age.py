"""Average ticket age per period for Jira Backlog Metrics."""

from typing import Any, Dict, List

import pandas as pd

from ..common_constants import PRIORITY_CATEGORIES
from ..utils import round_half_up
from .intervals import AggregatedPeriod


def average_age(tickets) -> int:
    """Rounded mean `ageInDays` of `tickets`; 0 if there are none.

    Tickets without an age are ignored.
    """
    ages = pd.Series([t.get("ageInDays") for t in tickets], dtype=float).dropna()
    if ages.empty:
        return 0
    return round_half_up(ages.mean())


def average_age_series(periods: List[AggregatedPeriod]) -> List[Dict[str, Any]]:
    """Per period, the average age of the tickets in each priority category.

    Each entry has `date` and `<category>AvgAge` for every category, e.g.
    `highAvgAge`. A category with no tickets in a period averages to 0.
    """
    series = []
    for period in periods:
        entry = {"date": period.date}
        for category in PRIORITY_CATEGORIES:
            entry[f"{category}AvgAge"] = average_age(
                t for t in period.tickets if t.get("priorityCategory") == category
            )
        series.append(entry)
    return series
