"""Utility functions for Jira Backlog Metrics.

This module provides the timestamp handling shared by the transition,
enrichment and aggregation code, plus a few small dict and file helpers.
"""

import datetime
import json
import logging
import math
import os.path
from typing import Optional

import dateutil.parser

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def extend_dict(d, e):
    """Extend dictionary d with entries from e, returning a new dictionary."""
    r = d.copy()
    r.update(e)
    return r


def get_extension(filename):
    """Get file extension from filename."""
    return os.path.splitext(filename)[1].lower()


def parse_timestamp(value) -> Optional[datetime.datetime]:
    """Parse a JIRA timestamp into a timezone-aware datetime.

    JIRA renders timestamps like ``2024-01-05T00:00:00.000+0000``. Naive
    values are taken to be UTC. Anything that cannot be parsed yields
    ``None`` rather than an exception, since a single malformed value should
    never abort the processing of a whole ticket.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, datetime.date):
        parsed = datetime.datetime.combine(value, datetime.time())
    else:
        try:
            parsed = dateutil.parser.parse(str(value))
        except (ValueError, OverflowError, TypeError):
            logger.debug("Unable to parse timestamp %r", value)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    """Render a datetime as a UTC ISO 8601 string ending in ``Z``.

    Milliseconds are kept when present, e.g. ``2024-01-05T10:30:00.250Z``.
    """
    if value is None:
        return None

    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    value = value.astimezone(datetime.timezone.utc)

    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond // 1000:03d}"
    return text + "Z"


def calendar_date(value) -> Optional[datetime.date]:
    """Return the calendar date written in a timestamp, in its own offset.

    ``2024-01-01T23:30:00.000-0500`` is on 2024-01-01 even though it is
    2024-01-02 in UTC.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.date()


def days_between(start: datetime.datetime, end: datetime.datetime) -> int:
    """Whole days between two instants, rounded up.

    The absolute difference is used, so clock skew between JIRA and the local
    machine can never produce a negative age.
    """
    seconds = abs((end - start).total_seconds())
    return int(math.ceil(seconds / SECONDS_PER_DAY))


def round_half_up(value) -> int:
    """Round to the nearest integer, with halves rounded up."""
    return int(math.floor(value + 0.5))


def write_json_file(output_file, data):
    """Write `data` to `output_file` as pretty-printed UTF-8 JSON."""
    with open(output_file, "w", encoding="utf-8") as out:
        json.dump(data, out, indent=2, ensure_ascii=False)
