"""Configuration module for Jira Backlog Metrics.

This module provides configuration loading and error handling utilities.
"""

from .exceptions import ConfigError, DataUnavailableError, FetchError
from .loader import config_to_options, create_default_options

__all__ = [
    "config_to_options",
    "create_default_options",
    "ConfigError",
    "DataUnavailableError",
    "FetchError",
]
