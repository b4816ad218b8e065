"""Snapshot persistence for Jira Backlog Metrics.

A snapshot is a JSON document holding a `fetchedAt` timestamp, a `tickets`
list of enriched tickets and whatever derived series were computed with
them. One file per cache key lives in the cache directory.

The cache is best-effort: a missing, unreadable or malformed file loads as
absent and never raises. Writes only go through if the candidate is strictly
newer than what is on disk; tickets that dropped out of the newer result set
are carried over, tagged as historical.
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

EXISTING_DATA_NEWER = "existing_data_newer"
CREATED = "created"
MERGED = "merged"
ERROR = "error"


class SnapshotValidationError(ValueError):
    """Raised when a snapshot document does not have the expected shape."""


def validate_snapshot(data) -> Dict[str, Any]:
    """Check the shape of a snapshot document and return it.

    Raises:
        SnapshotValidationError: If `fetchedAt` is not a timestamp, or
            `tickets` is not a list of dicts with unique string keys.
    """
    if not isinstance(data, dict):
        raise SnapshotValidationError("Snapshot is not a JSON object")

    if parse_timestamp(data.get("fetchedAt")) is None:
        raise SnapshotValidationError("Snapshot has no valid `fetchedAt`")

    tickets = data.get("tickets")
    if not isinstance(tickets, list):
        raise SnapshotValidationError("Snapshot `tickets` is not a list")

    seen = set()
    for ticket in tickets:
        if not isinstance(ticket, dict) or not isinstance(ticket.get("key"), str):
            raise SnapshotValidationError("Snapshot contains a ticket without a key")
        if ticket["key"] in seen:
            raise SnapshotValidationError(f"Duplicate ticket `{ticket['key']}` in snapshot")
        seen.add(ticket["key"])

    return data


def merge_tickets(new_tickets, old_tickets, last_seen):
    """Union of two ticket lists keyed by ticket key.

    All of `new_tickets` come first, unchanged. Old tickets whose key is not
    among them follow, tagged `historical` with `lastSeen` set to
    `last_seen`.
    """
    new_keys = {ticket["key"] for ticket in new_tickets}
    merged = list(new_tickets)
    for ticket in old_tickets:
        if ticket["key"] not in new_keys:
            merged.append(dict(ticket, historical=True, lastSeen=last_seen))
    return merged


@dataclass
class SaveResult:
    """Outcome of SnapshotStore.save_if_newer."""

    saved: bool
    reason: str
    merged_info: Optional[Dict[str, Any]] = None

    def to_dict(self):
        result = {"saved": self.saved, "reason": self.reason}
        if self.merged_info is not None:
            result["mergedInfo"] = self.merged_info
        return result


class SnapshotStore:
    """JSON snapshot files in one directory, one per cache key.

    Reads and writes of the same key are not locked against each other. Two
    concurrent writers can both pass the freshness check and the later write
    wins.
    """

    def __init__(self, directory):
        self.directory = directory

    def path(self, key):
        """The file a cache key is stored in."""
        if not KEY_PATTERN.match(key or ""):
            raise ValueError(f"Invalid cache key `{key}`")
        return os.path.join(self.directory, f"{key}.json")

    def load(self, key) -> Optional[Dict[str, Any]]:
        """Return the snapshot stored under `key`, or None if there is no usable one."""
        path = self.path(key)
        try:
            with open(path, encoding="utf-8") as snapshot_file:
                return validate_snapshot(json.load(snapshot_file))
        except FileNotFoundError:
            logger.debug("No snapshot at %s", path)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError and SnapshotValidationError are both ValueErrors
            logger.warning("Ignoring unusable snapshot %s: %s", path, e)
        return None

    def write(self, key, data):
        """Write `data` under `key`, replacing the file in one step."""
        os.makedirs(self.directory, exist_ok=True)
        path = self.path(key)

        fd, temp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as out:
                json.dump(data, out, indent=2, ensure_ascii=False)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def _write_logged(self, key, data):
        """Write `data`, logging rather than raising if the file system refuses."""
        try:
            self.write(key, data)
        except OSError as e:
            logger.warning("Could not write snapshot `%s` to %s: %s", key, self.directory, e)
            return False
        return True

    def save_if_newer(self, key, candidate, now) -> SaveResult:
        """Persist `candidate` unless the stored snapshot is as new or newer.

        Args:
            key: Cache key.
            candidate: A snapshot document. It is not modified.
            now: Recorded as `mergedInfo.mergedAt` when a merge happens.

        Returns:
            A SaveResult. `reason` is `created` for a first write, `merged`
            when an older snapshot was merged in, `existing_data_newer`
            when the save was rejected and `error` when the file could not
            be written.

        Raises:
            SnapshotValidationError: If `candidate` itself is malformed.
        """
        validate_snapshot(candidate)
        existing = self.load(key)

        if existing is None:
            if not self._write_logged(key, candidate):
                return SaveResult(saved=False, reason=ERROR)
            logger.info("Saved %d tickets to new snapshot `%s`", len(candidate["tickets"]), key)
            return SaveResult(saved=True, reason=CREATED)

        existing_at = parse_timestamp(existing["fetchedAt"])
        candidate_at = parse_timestamp(candidate["fetchedAt"])
        if candidate_at <= existing_at:
            logger.info(
                "Not saving snapshot `%s`: stored data from %s is not older than %s",
                key,
                existing["fetchedAt"],
                candidate["fetchedAt"],
            )
            return SaveResult(saved=False, reason=EXISTING_DATA_NEWER)

        tickets = merge_tickets(candidate["tickets"], existing["tickets"], existing["fetchedAt"])
        merged_info = {
            "newTickets": len(candidate["tickets"]),
            "existingTickets": len(existing["tickets"]),
            "totalMerged": len(tickets),
            "mergedAt": format_timestamp(now),
        }
        if not self._write_logged(key, dict(candidate, tickets=tickets, mergedInfo=merged_info)):
            return SaveResult(saved=False, reason=ERROR)

        logger.info(
            "Merged snapshot `%s`: %d new + %d existing = %d tickets",
            key,
            merged_info["newTickets"],
            merged_info["existingTickets"],
            merged_info["totalMerged"],
        )
        return SaveResult(saved=True, reason=MERGED, merged_info=merged_info)

    def status(self, key) -> Dict[str, Any]:
        """Describe what is cached under `key`."""
        snapshot = self.load(key)
        if snapshot is None:
            return {
                "available": False,
                "count": 0,
                "lastUpdated": None,
                "jqlUsed": None,
                "merged": False,
                "mergedInfo": None,
            }
        return {
            "available": True,
            "count": len(snapshot["tickets"]),
            "lastUpdated": snapshot["fetchedAt"],
            "jqlUsed": snapshot.get("jqlUsed"),
            "merged": bool(snapshot.get("mergedInfo")),
            "mergedInfo": snapshot.get("mergedInfo"),
        }

    def clear(self, key) -> bool:
        """Delete the snapshot under `key`. Returns False if there was none."""
        try:
            os.remove(self.path(key))
        except FileNotFoundError:
            return False
        logger.info("Cleared snapshot `%s`", key)
        return True
