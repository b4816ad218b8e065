"""Changelog parsing for Jira Backlog Metrics.

This module turns the raw changelog of an issue (as returned by the JIRA
search API with ``expand=changelog``) into three transition histories: status,
priority level and labels. Each history is sorted ascending by timestamp, with
ties kept in changelog order.
"""

import datetime
import logging
import math
from dataclasses import dataclass, field
from typing import Any, FrozenSet, List, Optional

from .utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

STATUS_FIELD = "status"
LABELS_FIELD = "labels"


class FieldMatcher:
    """Match changelog items for a field known by two names.

    Custom fields show up in the changelog either with their internal id
    (``customfield_11129``) or their display name (``Priority Level``),
    depending on the JIRA version and API used. Either candidate may be
    omitted, but not both.
    """

    def __init__(self, field_id=None, field_name=None):
        if not field_id and not field_name:
            raise ValueError("FieldMatcher needs a field id or a field name")
        self.field_id = field_id
        self.field_name = field_name

    def matches(self, item):
        """Return True if the changelog `item` changes this field."""
        if self.field_id:
            if item.get("fieldId") == self.field_id or item.get("field") == self.field_id:
                return True
        if self.field_name:
            name = item.get("field")
            if isinstance(name, str) and name.lower() == self.field_name.lower():
                return True
        return False

    def __repr__(self):
        return f"FieldMatcher(field_id={self.field_id!r}, field_name={self.field_name!r})"


@dataclass
class Transition:
    """A single change of one field."""

    timestamp: datetime.datetime
    author: Optional[str]
    from_value: Any
    to_value: Any

    def to_dict(self):
        """Serialize to the camelCase shape used in snapshots."""
        return {
            "timestamp": format_timestamp(self.timestamp),
            "author": self.author,
            "fromValue": self.from_value,
            "toValue": self.to_value,
        }


@dataclass
class LabelTransition(Transition):
    """A change of the label set, with the tokens added and removed."""

    added: FrozenSet[str] = frozenset()
    removed: FrozenSet[str] = frozenset()

    def to_dict(self):
        return {
            "timestamp": format_timestamp(self.timestamp),
            "author": self.author,
            "fromValue": sorted(self.from_value),
            "toValue": sorted(self.to_value),
            "added": sorted(self.added),
            "removed": sorted(self.removed),
        }


@dataclass
class TransitionHistory:
    """The three sorted transition lists of one issue."""

    status: List[Transition] = field(default_factory=list)
    priority_level: List[Transition] = field(default_factory=list)
    labels: List[LabelTransition] = field(default_factory=list)


def to_priority_level(value) -> Optional[int]:
    """Convert a priority level value or display string to an integer.

    Returns None for absent or empty values. Non-numeric strings are a data
    error upstream; they are logged and treated as absent.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = value
    else:
        text = str(value).strip()
        if text == "":
            return None
        try:
            number = float(text)
        except ValueError:
            logger.debug("Ignoring non-numeric priority level %r", value)
            return None

    if not math.isfinite(number):
        return None
    return int(number)


def split_labels(value) -> FrozenSet[str]:
    """Split a space-separated label string into a set of tokens."""
    if not value:
        return frozenset()
    return frozenset(str(value).split())


def _display_value(value):
    if value is None or value == "":
        return None
    return value


def _author_name(history):
    author = history.get("author")
    if not isinstance(author, dict):
        return None
    return (
        author.get("displayName")
        or author.get("name")
        or author.get("emailAddress")
        or author.get("accountId")
    )


def _iter_history_items(changelog):
    """Yield ``(timestamp, author, item)`` for each well-formed change item."""
    if not changelog:
        return

    histories = changelog.get("histories") if isinstance(changelog, dict) else changelog
    for history in histories or []:
        if not isinstance(history, dict):
            continue

        timestamp = parse_timestamp(history.get("created"))
        if timestamp is None:
            logger.debug("Skipping changelog entry without a valid timestamp")
            continue

        author = _author_name(history)
        for item in history.get("items") or []:
            if isinstance(item, dict):
                yield timestamp, author, item


def extract_transitions(changelog, priority_matcher: FieldMatcher) -> TransitionHistory:
    """Extract status, priority level and label transitions from a changelog.

    Args:
        changelog: The ``changelog`` object of an issue (a dict with a
            ``histories`` list), or None.
        priority_matcher: Identifies the priority level field.

    Returns:
        A TransitionHistory whose lists are sorted by timestamp. A missing
        changelog yields three empty lists.
    """
    history = TransitionHistory()

    for timestamp, author, item in _iter_history_items(changelog):
        from_string = item.get("fromString")
        to_string = item.get("toString")

        if priority_matcher.matches(item):
            history.priority_level.append(
                Transition(
                    timestamp=timestamp,
                    author=author,
                    from_value=to_priority_level(from_string),
                    to_value=to_priority_level(to_string),
                )
            )
        elif item.get("field") == STATUS_FIELD:
            history.status.append(
                Transition(
                    timestamp=timestamp,
                    author=author,
                    from_value=_display_value(from_string),
                    to_value=_display_value(to_string),
                )
            )
        elif item.get("field") == LABELS_FIELD:
            before = split_labels(from_string)
            after = split_labels(to_string)
            history.labels.append(
                LabelTransition(
                    timestamp=timestamp,
                    author=author,
                    from_value=before,
                    to_value=after,
                    added=after - before,
                    removed=before - after,
                )
            )

    # sorted() is stable, so equal timestamps keep their changelog order
    history.status = sorted(history.status, key=lambda t: t.timestamp)
    history.priority_level = sorted(history.priority_level, key=lambda t: t.timestamp)
    history.labels = sorted(history.labels, key=lambda t: t.timestamp)

    return history
