"""Backlog flow classification for Jira Backlog Metrics.

The active backlog is the set of tickets whose priority level is below 100.
A ticket is *incoming* when it first receives a priority level (or is created
with one) and *outgoing* when its priority level is first cleared or raised
past 99. Both are reconstructed from the priority level history alone, since
workflow status and priority level are governed independently upstream.

Only the first occurrence of each event is considered: a ticket that leaves
and later re-enters the backlog keeps its original dates.
"""

import datetime
from dataclasses import dataclass
from typing import List, Optional

from .common_constants import ACTIVE_BACKLOG_MAX_LEVEL
from .transitions import Transition
from .utils import format_timestamp


@dataclass
class PriorityFlowFlags:
    """Incoming/outgoing dates of one ticket. The flags follow the dates."""

    incoming_date: Optional[datetime.datetime] = None
    outgoing_date: Optional[datetime.datetime] = None

    @property
    def is_incoming(self) -> bool:
        return self.incoming_date is not None

    @property
    def is_outgoing(self) -> bool:
        return self.outgoing_date is not None

    def to_dict(self):
        return {
            "incomingDate": format_timestamp(self.incoming_date),
            "outgoingDate": format_timestamp(self.outgoing_date),
            "isIncoming": self.is_incoming,
            "isOutgoing": self.is_outgoing,
        }


def _is_active(level):
    return level is not None and level <= ACTIVE_BACKLOG_MAX_LEVEL


def find_incoming_date(
    transitions: List[Transition],
    current_level: Optional[int],
    created: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Return when the ticket entered the backlog, or None.

    Rules, first match wins:

    1. The first transition from no priority level to some priority level.
    2. If the earliest transition already starts from a priority level, the
       ticket had one before the tracked history: use the creation time.
    3. With no transitions at all but a current priority level, the ticket was
       created already prioritised: use the creation time.
    """
    for transition in transitions:
        if transition.from_value is None and transition.to_value is not None:
            return transition.timestamp

    if transitions:
        if transitions[0].from_value is not None:
            return created
        return None

    if current_level is not None:
        return created

    return None


def find_outgoing_date(
    transitions: List[Transition],
    current_level: Optional[int],
    created: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Return when the ticket left the backlog, or None.

    The first transition that either clears the priority level (the ticket was
    completed) or moves it from the active range (or from nothing) past 99.
    A ticket with no history that currently sits above 99 is taken to have
    been created outside the active range.
    """
    for transition in transitions:
        if transition.to_value is None:
            return transition.timestamp
        if transition.to_value > ACTIVE_BACKLOG_MAX_LEVEL and (
            transition.from_value is None or _is_active(transition.from_value)
        ):
            return transition.timestamp

    if not transitions and current_level is not None:
        if current_level > ACTIVE_BACKLOG_MAX_LEVEL:
            return created

    return None


def classify_priority_flow(
    transitions: List[Transition],
    current_level: Optional[int],
    created: Optional[datetime.datetime],
) -> PriorityFlowFlags:
    """Derive incoming/outgoing flags from a sorted priority level history.

    Args:
        transitions: Priority level transitions, sorted ascending by time.
        current_level: The ticket's current priority level, or None.
        created: The ticket's creation time, or None if it was unreadable.

    Returns:
        PriorityFlowFlags. Incoming and outgoing are decided independently,
        so a ticket can be both or neither.
    """
    return PriorityFlowFlags(
        incoming_date=find_incoming_date(transitions, current_level, created),
        outgoing_date=find_outgoing_date(transitions, current_level, created),
    )
