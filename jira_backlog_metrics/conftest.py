"""Test configuration and fixtures for Jira Backlog Metrics.

This module provides test fixtures and fake JIRA objects for testing the
enrichment, aggregation and caching code.
"""

import datetime

import pytest
from mock import Mock

from .config import FetchError, create_default_options
from .querymanager import QueryManager
from .snapshot_store import SnapshotStore
from .test_classes import (
    PRIORITY_LEVEL_FIELD,
    FauxJIRA,
    faux_change,
    faux_issue,
    priority_change,
)
from .transitions import FieldMatcher
from .utils import extend_dict

# Fixtures


@pytest.fixture
def now():
    """The fixed reference time used by every computation under test."""
    return datetime.datetime(2024, 1, 20, tzinfo=datetime.timezone.utc)


@pytest.fixture
def priority_matcher():
    return FieldMatcher(field_id=PRIORITY_LEVEL_FIELD, field_name="Priority Level")


@pytest.fixture(name="jira_fields")
def fields():
    """A subset of the fields of a JIRA instance."""
    return [
        {"id": "summary", "name": "Summary"},
        {"id": "status", "name": "Status"},
        {"id": "created", "name": "Created date"},
        {"id": "labels", "name": "Labels"},
        {"id": PRIORITY_LEVEL_FIELD, "name": "Priority Level"},
    ]


@pytest.fixture(name="base_settings")
def settings(tmp_path):
    """Default `settings`, caching into a temporary directory."""
    return extend_dict(
        create_default_options()["settings"],
        {
            "project": "KSD",
            "cache_directory": str(tmp_path / "data"),
        },
    )


@pytest.fixture(name="base_options")
def options(base_settings):
    """Default options with a complete set of credentials."""
    connection = extend_dict(
        create_default_options()["connection"],
        {
            "domain": "https://example.atlassian.net",
            "username": "me@example.com",
            "password": "secret",
        },
    )
    return {"connection": connection, "settings": base_settings}


@pytest.fixture
def store(base_settings):
    return SnapshotStore(base_settings["cache_directory"])


@pytest.fixture(name="e2e_issue")
def end_to_end_issue():
    """Created 2024-01-01, entered the active backlog at level 5 on 2024-01-05."""
    return faux_issue(
        "KSD-1",
        created="2024-01-01T00:00:00.000+0000",
        priority_level="5",
        labels=["src-bug-fix"],
        changes=[priority_change("2024-01-05T00:00:00.000+0000", None, "5")],
    )


@pytest.fixture(name="sample_issues")
def issues(e2e_issue):
    """A small backlog covering every priority category."""
    return [
        e2e_issue,
        faux_issue(
            "KSD-2",
            created="2024-01-02T09:00:00.000+0000",
            priority_level=50,
            labels=["src-new-feature", "customer"],
            changes=[
                priority_change("2024-01-03T00:00:00.000+0000", None, "50"),
                faux_change(
                    "2024-01-04T00:00:00.000+0000",
                    [("status", "To Do", "In Progress")],
                    author="John Smith",
                ),
            ],
        ),
        faux_issue(
            "KSD-3",
            created="2024-01-02T10:00:00.000+0000",
            priority_level=150,
            labels=["src-bug-fix"],
            status="Done",
            changes=[
                priority_change("2024-01-02T12:00:00.000+0000", None, "20"),
                priority_change("2024-01-10T00:00:00.000+0000", "20", "150"),
            ],
        ),
        faux_issue(
            "KSD-4",
            created="2024-01-08T00:00:00.000+0000",
            priority_level=None,
        ),
    ]


@pytest.fixture
def faux_jira(jira_fields, sample_issues):
    return FauxJIRA(jira_fields, sample_issues)


@pytest.fixture
def query_manager(faux_jira, base_settings):
    return QueryManager(faux_jira, base_settings)


@pytest.fixture
def failing_query_manager():
    """A query manager whose searches always fail."""
    manager = Mock()
    manager.find_issues.side_effect = FetchError("Service Unavailable")
    return manager
