"""Query management module for Jira Backlog Metrics.

This module resolves the priority level field against the JIRA instance and
runs paged searches through the BatchFetcher, turning client and network
failures into FetchError.
"""

import json
import logging
import re

from jira.exceptions import JIRAError
from requests.exceptions import RequestException

from .batch_fetcher import BatchFetcher, BatchResult
from .common_constants import ISSUE_FIELDS, MAX_PAGES, PAGE_SIZE
from .config import ConfigError, FetchError
from .transitions import FieldMatcher

logger = logging.getLogger(__name__)


def jql_error_hint(message, field_id=None):
    """Return a remediation hint for a failed JQL query, or an empty string."""
    text = (message or "").lower()
    if "field" in text:
        reference = "cf[<id>]"
        match = re.match(r"customfield_(\d+)$", field_id or "")
        if match:
            reference = f"cf[{match.group(1)}]"
        return (
            f" Try using {reference} for the Priority Level field, "
            f"or check field names in your Jira instance."
        )
    if "status" in text:
        return " Check available status names in your project."
    if "project" in text:
        return " Verify the project key is correct."
    return ""


def describe_error(e):
    """Best effort human-readable message for a JIRA or network error."""
    if isinstance(e, JIRAError):
        return getattr(e, "text", None) or str(e)
    return str(e) or e.__class__.__name__


class QueryManager:
    """Manage and execute queries"""

    settings = {
        "priority_level_field_id": None,
        "priority_level_field_name": None,
        "max_results": 2000,
    }

    def __init__(self, jira, settings, page_size=PAGE_SIZE, max_pages=MAX_PAGES):
        self.jira = jira
        self.settings = self.settings.copy()
        self.settings.update(settings)

        self._jira_fields = None

        field_id = self.settings["priority_level_field_id"]
        field_name = self.settings["priority_level_field_name"]
        if not field_id and field_name:
            field_id = self.field_name_to_id(field_name)
            logger.info("Resolved `%s` to field %s", field_name, field_id)

        self.priority_matcher = FieldMatcher(field_id=field_id, field_name=field_name)
        self.fetcher = BatchFetcher(self.search_page, page_size=page_size, max_pages=max_pages)

    @property
    def jira_fields(self):
        """Field definitions of the JIRA instance, fetched once."""
        if self._jira_fields is None:
            logger.debug("Resolving JIRA fields")
            try:
                self._jira_fields = self.jira.fields()
            except (JIRAError, RequestException) as e:
                raise FetchError(f"Unable to list JIRA fields: {describe_error(e)}") from e

            if len(self._jira_fields) == 0:
                raise ConfigError(
                    "No field data retrieved from JIRA. "
                    "This likely means a problem with the JIRA API."
                ) from None
        return self._jira_fields

    def field_name_to_id(self, name):
        """Convert field name to JIRA field ID.

        Args:
            name: The field name to convert

        Returns:
            The JIRA field ID

        Raises:
            ConfigError: If field name doesn't exist in JIRA
        """
        try:
            return next(f["id"] for f in self.jira_fields if f["name"].lower() == name.lower())
        except StopIteration:
            logger.debug(
                "Failed to look up %s in JIRA fields: %s",
                name,
                json.dumps(self.jira_fields),
            )
            raise ConfigError(
                f"JIRA field with name `{name}` does not exist "
                f"(did you try to use the field id instead?)"
            ) from None

    def request_fields(self):
        """The issue fields every search asks for."""
        fields = list(ISSUE_FIELDS)
        if self.priority_matcher.field_id:
            fields.append(self.priority_matcher.field_id)
        return fields

    def search_page(self, jql, fields, start_at, max_results, expand):
        """Request one page of raw search results."""
        return self.jira.search_issues(
            jql,
            startAt=start_at,
            maxResults=max_results,
            fields=fields,
            expand=expand,
            json_result=True,
        )

    def find_issues(self, jql, max_results=None, expand_changelog=True) -> BatchResult:
        """Return every issue (with changelog) matching `jql`, up to a cap.

        Args:
            jql: JQL query string
            max_results: Cap on the number of issues. Defaults to
                settings["max_results"].
            expand_changelog: Request each issue's changelog.

        Raises:
            FetchError: If any page request fails.
        """
        if max_results is None:
            max_results = self.settings["max_results"]

        logger.info("Fetching issues with query `%s`", jql)
        logger.info("Limiting to %d results", max_results)

        try:
            result = self.fetcher.fetch(
                jql, self.request_fields(), max_results, expand_changelog=expand_changelog
            )
        except JIRAError as e:
            message = describe_error(e)
            logger.error(
                "JIRA API error while fetching issues with query `%s`: %s (Status: %s)",
                jql,
                message,
                getattr(e, "status_code", "Unknown"),
            )
            raise FetchError(
                message + jql_error_hint(message, self.priority_matcher.field_id), jql=jql
            ) from e
        except RequestException as e:
            logger.error("Network error while fetching issues with query `%s`: %s", jql, e)
            raise FetchError(describe_error(e), jql=jql) from e

        logger.info("Fetched %d issues", result.fetched_count)
        if result.fetched_count == 0:
            logger.warning(
                "Query returned 0 issues. This may indicate: "
                "1. The JQL query doesn't match any issues "
                "2. Authentication/authorization issues "
                "3. The query needs adjustment"
            )
        return result
