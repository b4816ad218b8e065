"""Analytics service for Jira Backlog Metrics.

This module ties the pieces together: it fetches issues, enriches them,
computes the derived series, persists the result as a snapshot and falls back
to the last snapshot when JIRA cannot be reached.

Both entry points take the current time as a parameter and share no mutable
state, so the web API may run them concurrently.
"""

import logging
import re
from typing import Any, Dict, Optional

from jira.exceptions import JIRAError
from requests.exceptions import RequestException

from .batch_fetcher import BatchResult
from .calculators.average_age import average_age_series
from .calculators.backlog_flow import (
    DEFAULT_PAGE_SIZE,
    filter_tickets,
    paginate,
    source_flow_analysis,
    ticket_stats,
)
from .calculators.intervals import aggregate_by_interval, fixed_tickets_series
from .calculators.source_labels import (
    all_source_labels,
    source_label_series,
    source_label_summary,
)
from .calculators.summary import calculate_counts, calculate_metrics
from .common_constants import (
    CACHE_KEYS,
    HISTORICAL_CACHE_KEY,
    INTERVALS,
    TICKETS_CACHE_KEY,
)
from .config import ConfigError, DataUnavailableError, FetchError
from .enrichment import TicketEnricher
from .jira_client import create_jira_client, has_credentials
from .querymanager import QueryManager, describe_error
from .utils import format_timestamp

logger = logging.getLogger(__name__)

CREATED_CLAUSE = re.compile(r"created\s*>=\s*-\d+d", re.IGNORECASE)
ORDER_BY = re.compile(r"\s+ORDER\s+BY\s+", re.IGNORECASE)

NO_CREDENTIALS_SUGGESTION = (
    "Provide JIRA credentials (Domain, Username and Password, or the JIRA_URL, "
    "JIRA_USERNAME and JIRA_PASSWORD environment variables) or fetch once to "
    "populate the cache."
)
FETCH_FAILED_SUGGESTION = (
    "Check the JIRA connection settings and the query, then fetch once to "
    "populate the cache."
)
NO_QUERY_SUGGESTION = "Set `Query` or `Project` in the configuration, or pass a query."
CONFIG_ERROR_SUGGESTION = (
    "Check `Priority Level Field Id` and `Priority Level Field Name` against the "
    "fields of the JIRA instance, then fetch once to populate the cache."
)


def field_reference(field_id, field_name=None):
    """How to refer to the priority level field in JQL."""
    match = re.match(r"customfield_(\d+)$", field_id or "")
    if match:
        return f"cf[{match.group(1)}]"
    if field_id:
        return field_id
    return f'"{field_name}"'


def default_query(settings) -> Optional[str]:
    """The configured current-tickets query, or one built from `Project`.

    The built query selects the project's tickets that have a priority level
    and were created in the last `Current Days` days, newest first.
    """
    if settings.get("query"):
        return settings["query"]

    project = settings.get("project")
    if not project:
        return None

    field = field_reference(
        settings.get("priority_level_field_id"), settings.get("priority_level_field_name")
    )
    return (
        f"project = {project} AND {field} > 0 "
        f"AND created >= -{settings.get('current_days', 30)}d ORDER BY created DESC"
    )


def widen_query(jql, days):
    """Make `jql` look back `days` days.

    An existing ``created >= -Nd`` clause is replaced; otherwise one is added
    in front of any ORDER BY.
    """
    clause = f"created >= -{days}d"
    if CREATED_CLAUSE.search(jql):
        return CREATED_CLAUSE.sub(clause, jql, count=1)

    parts = ORDER_BY.split(jql, maxsplit=1)
    if len(parts) == 2:
        return f"{parts[0]} AND {clause} ORDER BY {parts[1]}"
    return f"{jql} AND {clause}"


def historical_query(settings) -> Optional[str]:
    """The configured historical query, or the current query widened."""
    if settings.get("historical_query"):
        return settings["historical_query"]

    jql = default_query(settings)
    if jql is None:
        return None
    return widen_query(jql, settings.get("historical_days", 90))


def build_current_bundle(tickets, result: BatchResult, jql, now) -> Dict[str, Any]:
    """The current-tickets bundle."""
    bundle = {
        "counts": calculate_counts(tickets),
        "tickets": tickets,
        "totalIssues": result.total,
        "fetchedIssues": result.fetched_count,
        "batchInfo": result.batch_info(),
        "jqlUsed": jql,
        "fetchedAt": format_timestamp(now),
        "fromCache": False,
    }
    if result.warning():
        bundle["warning"] = result.warning()
    return bundle


def build_historical_bundle(
    tickets, result: BatchResult, jql, now, interval="daily", prefix="src-"
) -> Dict[str, Any]:
    """The historical bundle: time series plus the tickets they came from."""
    periods = aggregate_by_interval(tickets, interval)
    labels = all_source_labels(tickets)

    bundle = {
        "timeSeries": [period.to_dict() for period in periods],
        "sourceLabelsTimeSeries": source_label_series(periods, labels),
        "averageAgeTimeSeries": average_age_series(periods),
        "fixedTicketsTimeSeries": fixed_tickets_series(tickets, interval, labels),
        "sourceLabels": source_label_summary(tickets, prefix),
        "counts": calculate_counts(tickets),
        "tickets": tickets,
        "totalTickets": len(tickets),
        "interval": interval,
        "batchInfo": result.batch_info(),
        "jqlUsed": jql,
        "fetchedAt": format_timestamp(now),
        "fromCache": False,
    }
    if result.warning():
        bundle["warning"] = result.warning()

    logger.info(
        "Historical analysis complete: %d periods, %d source labels, %d tickets",
        len(periods),
        len(labels),
        len(tickets),
    )
    return bundle


def connect(options):
    """Create a QueryManager for the configured JIRA instance.

    Raises:
        FetchError: If JIRA cannot be reached or rejects the credentials.
    """
    try:
        jira = create_jira_client(options["connection"])
    except (JIRAError, RequestException) as e:
        raise FetchError(f"Unable to connect to JIRA: {describe_error(e)}") from e
    return QueryManager(jira, options["settings"])


def query_manager_factory(options):
    """A zero-argument QueryManager factory, or None without credentials."""
    if not has_credentials(options["connection"]):
        return None
    return lambda: connect(options)


class AnalyticsService:
    """Current-ticket and historical analytics with snapshot fallback.

    Args:
        query_manager_factory: Callable returning a QueryManager, or None
            when no credentials are configured. Then only cached data is
            served.
        store: A SnapshotStore.
        settings: The `settings` section of the options.
    """

    def __init__(self, query_manager_factory, store, settings):
        self.query_manager_factory = query_manager_factory
        self.store = store
        self.settings = settings

    def _from_cache(self, key, jql, source, reason, error=None, suggestion=FETCH_FAILED_SUGGESTION):
        snapshot = self.store.load(key)

        if snapshot is None:
            message = str(error) if error is not None else f"{reason} and no cached data available"
            raise DataUnavailableError(message, suggestion=suggestion, jql=jql) from error

        detail = f"{reason}: {error}" if error is not None else reason
        logger.warning(
            "Serving cached `%s` data from %s (%s)", key, snapshot["fetchedAt"], detail
        )
        return dict(
            snapshot,
            fromCache=True,
            cacheInfo={
                "savedAt": snapshot["fetchedAt"],
                "ticketCount": len(snapshot["tickets"]),
                "source": source,
                "reason": reason,
            },
            warning=f"Using cached data from {snapshot['fetchedAt']} - {detail}",
        )

    def _fetch(self, key, jql, max_results):
        """Return `(query_manager, result, None)`, or `(None, None, cached_bundle)`."""
        if self.query_manager_factory is None:
            return None, None, self._from_cache(
                key,
                jql,
                "local_cache",
                "No JIRA credentials configured",
                suggestion=NO_CREDENTIALS_SUGGESTION,
            )

        if not jql:
            return None, None, self._from_cache(
                key, jql, "local_cache", "No query configured", suggestion=NO_QUERY_SUGGESTION
            )

        try:
            query_manager = self.query_manager_factory()
            result = query_manager.find_issues(jql, max_results=max_results)
        except FetchError as e:
            logger.error("Fetching `%s` data failed: %s", key, e)
            return None, None, self._from_cache(
                key, jql, "fallback_cache", "Jira API unavailable", error=e
            )
        except ConfigError as e:
            logger.error("JIRA does not match the configuration: %s", e)
            return None, None, self._from_cache(
                key,
                jql,
                "fallback_cache",
                "JIRA configuration error",
                error=e,
                suggestion=CONFIG_ERROR_SUGGESTION,
            )

        return query_manager, result, None

    def _save(self, key, bundle, now):
        result = self.store.save_if_newer(key, bundle, now)
        if result.merged_info is not None:
            bundle["mergedInfo"] = result.merged_info
        return result

    def current_tickets(self, now, jql=None) -> Dict[str, Any]:
        """Enriched current tickets with counts.

        Raises:
            DataUnavailableError: If neither JIRA nor the cache can provide data.
        """
        jql = jql or default_query(self.settings)
        query_manager, result, cached = self._fetch(
            TICKETS_CACHE_KEY, jql, self.settings.get("max_results", 2000)
        )
        if cached is not None:
            return cached

        enricher = TicketEnricher(
            query_manager.priority_matcher, self.settings.get("source_label_prefix") or "src-"
        )
        tickets = enricher.enrich_all(result.issues, now)
        bundle = build_current_bundle(tickets, result, jql, now)
        self._save(TICKETS_CACHE_KEY, bundle, now)
        return bundle

    def historical_data(self, now, jql=None, interval=None) -> Dict[str, Any]:
        """Time series over the historical window.

        Raises:
            ValueError: If `interval` is not daily, weekly or monthly.
            DataUnavailableError: If neither JIRA nor the cache can provide data.
        """
        interval = interval or self.settings.get("interval") or "daily"
        if interval not in INTERVALS:
            raise ValueError(f"Unknown interval `{interval}`, expected one of {INTERVALS}")

        jql = jql or historical_query(self.settings)
        query_manager, result, cached = self._fetch(
            HISTORICAL_CACHE_KEY, jql, self.settings.get("historical_max_results", 3000)
        )
        if cached is not None:
            return cached

        prefix = self.settings.get("source_label_prefix") or "src-"
        enricher = TicketEnricher(query_manager.priority_matcher, prefix)
        tickets = enricher.enrich_all(result.issues, now)
        bundle = build_historical_bundle(tickets, result, jql, now, interval, prefix)
        self._save(HISTORICAL_CACHE_KEY, bundle, now)
        return bundle

    def _cached_tickets(self):
        snapshot = self.store.load(TICKETS_CACHE_KEY)
        return snapshot["tickets"] if snapshot else []

    def metrics(self, now) -> Dict[str, Any]:
        """Summary metrics over the cached current tickets."""
        return calculate_metrics(self._cached_tickets(), now)

    def stats(self, now) -> Dict[str, Any]:
        """Metrics plus the longest-waiting, latest fixed and latest added tickets."""
        return ticket_stats(self._cached_tickets(), now)

    def list_tickets(
        self, priority=None, status=None, in_top7=False, page=1, limit=DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        """A filtered page of the cached current tickets.

        Raises:
            ValueError: For an unknown priority category, or a page or limit
                below 1.
        """
        tickets = filter_tickets(self._cached_tickets(), priority, status, in_top7)
        return paginate(tickets, page, limit)

    def source_flow(self, now, interval=None, start=None, end=None, source=None) -> Dict[str, Any]:
        """Backlog flow per period and source label over the cached current tickets.

        Args:
            now: Reference time; the analysis ends on its date by default.
            interval: daily, weekly or monthly. Defaults to the `Interval` setting.
            start: First `datetime.date` to cover.
            end: Last `datetime.date` to cover.
            source: Restrict the analysis to one source label.

        Raises:
            ValueError: If `interval` is not daily, weekly or monthly.
        """
        interval = interval or self.settings.get("interval") or "daily"
        return source_flow_analysis(
            self._cached_tickets(),
            now,
            interval=interval,
            start=start,
            end=end,
            sources=[source] if source else None,
        )

    def find_ticket(self, key) -> Optional[Dict[str, Any]]:
        """Look a ticket up in the cached snapshots, current tickets first."""
        for cache_key in CACHE_KEYS:
            snapshot = self.store.load(cache_key)
            if snapshot is None:
                continue
            for ticket in snapshot["tickets"]:
                if ticket["key"] == key:
                    return ticket
        return None

    def cache_status(self) -> Dict[str, Any]:
        status = {key: self.store.status(key) for key in CACHE_KEYS}
        status["cacheDirectory"] = self.store.directory
        return status

    def clear_cache(self, kind):
        """Delete cached snapshots.

        Args:
            kind: `tickets`, `historical` or `all`.

        Returns:
            The cache keys that were cleared.

        Raises:
            ValueError: For any other `kind`.
        """
        if kind == "all":
            keys = list(CACHE_KEYS)
        elif kind in CACHE_KEYS:
            keys = [kind]
        else:
            raise ValueError(f"Unknown cache type `{kind}`, expected tickets, historical or all")

        for key in keys:
            self.store.clear(key)
        return keys
