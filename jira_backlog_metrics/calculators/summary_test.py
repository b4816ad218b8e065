"""Tests for summary metrics in Jira Backlog Metrics."""

import datetime

import pytest

from ..enrichment import TicketEnricher
from .summary import calculate_counts, calculate_metrics


@pytest.fixture(name="tickets")
def enriched_tickets(priority_matcher, sample_issues, now):
    return TicketEnricher(priority_matcher).enrich_all(sample_issues, now)


def test_calculate_counts(tickets):
    assert calculate_counts(tickets) == {"high": 1, "medium": 1, "low": 1, "unknown": 1, "total": 4}
    assert calculate_counts([]) == {"high": 0, "medium": 0, "low": 0, "unknown": 0, "total": 0}


def test_calculate_metrics(tickets, now):
    metrics = calculate_metrics(tickets, now)

    assert metrics == {
        "total": 4,
        "byPriority": {"high": 1, "medium": 1, "low": 1, "unknown": 1},
        "byStatus": {"To Do": 3, "Done": 1},
        "bySource": {"src-bug-fix": 2, "src-new-feature": 1},
        "avgTimeInTop7": {"overall": 13.0, "high": 15.0, "medium": 17.0, "low": 8.0},
        "top7Count": 2,
        "fixedToday": 0,
        "incomingToday": 0,
    }


def test_today_counts(tickets):
    day_of_outgoing = datetime.datetime(2024, 1, 10, 18, tzinfo=datetime.timezone.utc)

    metrics = calculate_metrics(tickets, day_of_outgoing)

    assert metrics["fixedToday"] == 1
    assert metrics["incomingToday"] == 0


def test_average_time_has_one_decimal():
    tickets = [
        {"priorityCategory": "high", "timeInTop7Days": 1},
        {"priorityCategory": "high", "timeInTop7Days": 2},
        {"priorityCategory": "high", "timeInTop7Days": 2},
    ]

    metrics = calculate_metrics(tickets, datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc))

    assert metrics["avgTimeInTop7"]["high"] == 1.7
    assert metrics["avgTimeInTop7"]["medium"] == 0
