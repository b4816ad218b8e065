"""Tests for changelog parsing in Jira Backlog Metrics."""

import pytest

from .test_classes import faux_change, priority_change
from .transitions import FieldMatcher, extract_transitions, split_labels, to_priority_level
from .utils import format_timestamp


def _changelog(*histories):
    return {"histories": list(histories)}


def test_field_matcher_requires_a_candidate():
    with pytest.raises(ValueError):
        FieldMatcher()


def test_field_matcher_by_id_or_name():
    matcher = FieldMatcher(field_id="customfield_11129", field_name="Priority Level")

    assert matcher.matches({"field": "Priority Level", "fieldId": "customfield_11129"})
    assert matcher.matches({"field": "customfield_11129"})
    assert matcher.matches({"field": "priority level"})
    assert not matcher.matches({"field": "Priority", "fieldId": "priority"})


def test_field_matcher_name_only():
    matcher = FieldMatcher(field_name="Priority Level")
    assert matcher.matches({"field": "Priority Level"})
    assert not matcher.matches({"fieldId": "customfield_11129"})


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        ("", None),
        ("  ", None),
        ("5", 5),
        ("5.0", 5),
        (" 42 ", 42),
        (7, 7),
        (12.0, 12),
        ("high", None),
        ("nan", None),
        (True, None),
    ],
)
def test_to_priority_level(value, expected):
    assert to_priority_level(value) == expected


def test_split_labels():
    assert split_labels(None) == frozenset()
    assert split_labels("") == frozenset()
    assert split_labels("a  b c") == frozenset({"a", "b", "c"})


def test_missing_changelog_gives_empty_lists(priority_matcher):
    for changelog in (None, {}, {"histories": []}):
        history = extract_transitions(changelog, priority_matcher)
        assert history.status == []
        assert history.priority_level == []
        assert history.labels == []


def test_transitions_are_sorted_by_timestamp(priority_matcher):
    changelog = _changelog(
        faux_change("2024-01-09T00:00:00.000+0000", [("status", "In Progress", "Done")]),
        priority_change("2024-01-08T00:00:00.000+0000", "5", "3"),
        faux_change("2024-01-02T00:00:00.000+0000", [("status", "To Do", "In Progress")]),
        priority_change("2024-01-03T00:00:00.000+0000", None, "5"),
        faux_change("2024-01-05T00:00:00.000+0000", [("labels", "", "src-bug-fix")]),
    )

    history = extract_transitions(changelog, priority_matcher)

    for transitions in (history.status, history.priority_level, history.labels):
        timestamps = [t.timestamp for t in transitions]
        assert timestamps == sorted(timestamps)

    assert [(t.from_value, t.to_value) for t in history.status] == [
        ("To Do", "In Progress"),
        ("In Progress", "Done"),
    ]
    assert [(t.from_value, t.to_value) for t in history.priority_level] == [(None, 5), (5, 3)]


def test_ties_keep_changelog_order(priority_matcher):
    changelog = _changelog(
        priority_change("2024-01-03T00:00:00.000+0000", None, "5"),
        priority_change("2024-01-03T00:00:00.000+0000", "5", "7"),
        priority_change("2024-01-03T00:00:00.000+0000", "7", "2"),
    )

    history = extract_transitions(changelog, priority_matcher)
    assert [t.to_value for t in history.priority_level] == [5, 7, 2]


def test_non_numeric_priority_level_becomes_none(priority_matcher):
    changelog = _changelog(priority_change("2024-01-03T00:00:00.000+0000", "oops", "5"))

    (transition,) = extract_transitions(changelog, priority_matcher).priority_level
    assert transition.from_value is None
    assert transition.to_value == 5


def test_label_transitions(priority_matcher):
    changelog = _changelog(
        faux_change(
            "2024-01-03T00:00:00.000+0000",
            [("labels", "customer src-bug-fix", "customer src-tech-debt urgent")],
        )
    )

    (transition,) = extract_transitions(changelog, priority_matcher).labels
    assert transition.added == {"src-tech-debt", "urgent"}
    assert transition.removed == {"src-bug-fix"}
    assert transition.to_dict() == {
        "timestamp": "2024-01-03T00:00:00Z",
        "author": "Jane Doe",
        "fromValue": ["customer", "src-bug-fix"],
        "toValue": ["customer", "src-tech-debt", "urgent"],
        "added": ["src-tech-debt", "urgent"],
        "removed": ["src-bug-fix"],
    }


def test_status_transition_to_dict(priority_matcher):
    changelog = _changelog(
        faux_change(
            "2024-01-03T08:00:00.000+0100",
            [("status", "To Do", "In Progress")],
            author="John Smith",
        )
    )

    (transition,) = extract_transitions(changelog, priority_matcher).status
    assert transition.to_dict() == {
        "timestamp": "2024-01-03T07:00:00Z",
        "author": "John Smith",
        "fromValue": "To Do",
        "toValue": "In Progress",
    }


def test_entries_without_timestamp_or_author(priority_matcher):
    changelog = _changelog(
        faux_change("not a date", [("status", "To Do", "Done")]),
        faux_change("2024-01-03T00:00:00.000+0000", [("status", "", "Done")], author=None),
        "garbage",
    )

    (transition,) = extract_transitions(changelog, priority_matcher).status
    assert transition.author is None
    assert transition.from_value is None
    assert format_timestamp(transition.timestamp) == "2024-01-03T00:00:00Z"


def test_unrelated_fields_are_ignored(priority_matcher):
    changelog = _changelog(
        faux_change("2024-01-03T00:00:00.000+0000", [("assignee", "a", "b"), ("priority", "Low", "High")])
    )

    history = extract_transitions(changelog, priority_matcher)
    assert history.status == history.priority_level == history.labels == []
