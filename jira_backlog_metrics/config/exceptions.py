"""Exceptions for Jira Backlog Metrics.

This module provides the custom exception classes shared by the configuration,
fetching and analytics code.
"""


class ConfigError(Exception):
    """
    Exception raised for errors in the configuration.
    """


class FetchError(Exception):
    """
    Exception raised when the JIRA search API cannot be queried.

    Wraps the underlying JIRA or network error so callers can fall back to
    cached data without knowing about the client library.
    """

    def __init__(self, message, jql=None):
        super().__init__(message)
        self.jql = jql


class DataUnavailableError(Exception):
    """
    Exception raised when neither live nor cached data can be provided.

    `suggestion` is a remediation hint suitable for showing to a user.
    """

    def __init__(self, message, suggestion=None, jql=None):
        super().__init__(message)
        self.suggestion = suggestion
        self.jql = jql
