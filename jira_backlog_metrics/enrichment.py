"""Ticket enrichment for Jira Backlog Metrics.

This module combines the raw fields of an issue with its transition histories
and backlog flow flags into one enriched ticket record, the unit that every
aggregation and the snapshot cache work with.
"""

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .common_constants import ACTIVE_BACKLOG_LIMIT, HIGH_PRIORITY_LIMIT
from .priority_flow import PriorityFlowFlags, classify_priority_flow
from .transitions import (
    FieldMatcher,
    Transition,
    TransitionHistory,
    extract_transitions,
    to_priority_level,
)
from .utils import days_between, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def categorize_priority(priority_level: Optional[int]) -> str:
    """Map a priority level to high, medium, low or unknown."""
    if priority_level is None:
        return "unknown"
    if priority_level < HIGH_PRIORITY_LIMIT:
        return "high"
    if priority_level < ACTIVE_BACKLOG_LIMIT:
        return "medium"
    return "low"


def extract_source_labels(labels, prefix="src-") -> List[str]:
    """Return the labels that carry the source label prefix, in order."""
    return [label for label in labels or [] if isinstance(label, str) and label.startswith(prefix)]


def calculate_age(created: Optional[datetime.datetime], now: datetime.datetime) -> Optional[int]:
    """Age of a ticket in whole days, rounded up."""
    if created is None:
        return None
    return days_between(created, now)


def calculate_time_in_backlog(
    flags: PriorityFlowFlags,
    created: Optional[datetime.datetime],
    now: datetime.datetime,
) -> Optional[int]:
    """Days spent in the active backlog.

    Counted from the incoming date (or creation, when the ticket never had a
    recorded entry) to the outgoing date, or to `now` while it is still there.
    """
    start = flags.incoming_date or created
    if start is None:
        return None

    end = now
    if flags.outgoing_date is not None and flags.outgoing_date >= start:
        end = flags.outgoing_date
    return days_between(start, end)


def _name_of(value):
    if isinstance(value, dict):
        return value.get("displayName") or value.get("name")
    return None


def _current_view(value, transitions: List[Transition], created, creator):
    """Current value plus when and by whom it last changed."""
    if transitions:
        last = transitions[-1]
        return {
            "value": value,
            "timestamp": format_timestamp(last.timestamp),
            "author": last.author,
        }
    return {
        "value": value,
        "timestamp": format_timestamp(created),
        "author": creator,
    }


@dataclass
class EnrichedTicket:
    """Raw issue fields plus everything derived from the changelog."""

    key: str
    summary: Optional[str]
    status: Optional[str]
    status_id: Optional[str]
    created: Optional[str]
    updated: Optional[str]
    priority: Optional[str]
    priority_level: Optional[int]
    priority_category: str
    age_in_days: Optional[int]
    time_in_backlog_days: Optional[int]
    labels: List[str]
    source_labels: List[str]
    transitions: TransitionHistory
    flags: PriorityFlowFlags
    current_status: Dict[str, Any] = field(default_factory=dict)
    current_priority_level: Dict[str, Any] = field(default_factory=dict)
    current_labels: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        """Serialize to the JSON shape shared with the presentation layer."""
        data = {
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "statusId": self.status_id,
            "created": self.created,
            "updated": self.updated,
            "priority": self.priority,
            "priorityLevel": self.priority_level,
            "priorityCategory": self.priority_category,
            "ageInDays": self.age_in_days,
            "timeInTop7Days": self.time_in_backlog_days,
            "labels": list(self.labels),
            "sourceLabels": list(self.source_labels),
            "statusTransitions": [t.to_dict() for t in self.transitions.status],
            "priorityLevelTransitions": [
                t.to_dict() for t in self.transitions.priority_level
            ],
            "labelTransitions": [t.to_dict() for t in self.transitions.labels],
            "currentStatus": self.current_status,
            "currentPriorityLevel": self.current_priority_level,
            "currentLabels": self.current_labels,
        }
        data.update(self.flags.to_dict())
        return data


class TicketEnricher:
    """Turns raw search results into enriched tickets.

    The priority level field is identified by `priority_matcher`; its id is
    also used to read the current value from the issue fields.
    """

    def __init__(self, priority_matcher: FieldMatcher, source_label_prefix="src-"):
        self.priority_matcher = priority_matcher
        self.source_label_prefix = source_label_prefix

    @classmethod
    def from_settings(cls, settings):
        """Build an enricher from the `settings` section of the options."""
        return cls(
            FieldMatcher(
                field_id=settings.get("priority_level_field_id"),
                field_name=settings.get("priority_level_field_name"),
            ),
            source_label_prefix=settings.get("source_label_prefix") or "src-",
        )

    def enrich(self, issue, now: datetime.datetime) -> EnrichedTicket:
        """Enrich a single issue.

        Args:
            issue: One issue dict from the search API, including its changelog.
            now: The reference time for ages; never read from the clock here.
        """
        key = issue["key"]
        if not isinstance(key, str):
            raise ValueError(f"Issue key {key!r} is not a string")

        fields = issue.get("fields") or {}
        status = fields.get("status") or {}
        labels = [label for label in fields.get("labels") or [] if isinstance(label, str)]

        created_raw = fields.get("created")
        created = parse_timestamp(created_raw)

        priority_level = None
        if self.priority_matcher.field_id:
            priority_level = to_priority_level(fields.get(self.priority_matcher.field_id))

        transitions = extract_transitions(issue.get("changelog"), self.priority_matcher)
        flags = classify_priority_flow(transitions.priority_level, priority_level, created)
        creator = _name_of(fields.get("creator")) or _name_of(fields.get("reporter"))

        return EnrichedTicket(
            key=key,
            summary=fields.get("summary"),
            status=status.get("name"),
            status_id=status.get("id"),
            created=created_raw,
            updated=fields.get("updated"),
            priority=_name_of(fields.get("priority")),
            priority_level=priority_level,
            priority_category=categorize_priority(priority_level),
            age_in_days=calculate_age(created, now),
            time_in_backlog_days=calculate_time_in_backlog(flags, created, now),
            labels=labels,
            source_labels=extract_source_labels(labels, self.source_label_prefix),
            transitions=transitions,
            flags=flags,
            current_status=_current_view(
                status.get("name"), transitions.status, created, creator
            ),
            current_priority_level=_current_view(
                priority_level, transitions.priority_level, created, creator
            ),
            current_labels=_current_view(
                sorted(labels), transitions.labels, created, creator
            ),
        )

    def enrich_all(self, issues, now: datetime.datetime) -> List[Dict[str, Any]]:
        """Enrich a batch of issues, skipping any that cannot be processed.

        A malformed issue is logged and dropped; it never aborts the batch.
        An issue whose key was already seen is dropped as well. This happens
        when an insert upstream shifts an issue onto the next page while the
        pages are being fetched. The first occurrence is kept.
        """
        tickets = []
        seen = set()
        for issue in issues:
            try:
                ticket = self.enrich(issue, now).to_dict()
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                key = issue.get("key") if isinstance(issue, dict) else None
                logger.warning("Skipping issue %s that could not be enriched: %s", key, e)
                continue

            if ticket["key"] in seen:
                logger.warning("Skipping duplicate issue %s", ticket["key"])
                continue
            seen.add(ticket["key"])
            tickets.append(ticket)

        logger.debug("Enriched %d of %d issues", len(tickets), len(issues))
        return tickets
