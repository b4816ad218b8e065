"""JIRA client utilities for Jira Backlog Metrics.

This module creates and configures the JIRA client shared by the CLI and the
web API.
"""

import logging
import os

from jira import JIRA

from .common_constants import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

ENV_VARIABLES = {
    "url": "JIRA_URL",
    "username": "JIRA_USERNAME",
    "password": "JIRA_PASSWORD",
}


def normalize_value(value):
    """Strip whitespace and surrounding quotes from a credential value.

    Docker's --env-file keeps the quotes written in .env files, which breaks
    authentication.
    """
    if not value:
        return None

    value = str(value).strip()
    while value and (value[0] in "\"'" or value[-1] in "\"'"):
        stripped = value.strip('"').strip("'")
        if stripped == value:
            break
        value = stripped
    value = value.strip()
    return value or None


def _lookup(connection, key, env_key):
    return normalize_value(connection.get(key) or os.environ.get(env_key))


def get_jira_connection_params(connection):
    """Return `(url, username, password)` from config or the environment.

    Raises:
        ValueError: If any of the three is missing.
    """
    url = _lookup(connection, "domain", ENV_VARIABLES["url"])
    username = _lookup(connection, "username", ENV_VARIABLES["username"])
    password = _lookup(connection, "password", ENV_VARIABLES["password"])

    missing_params = [
        name
        for name, value in (("url", url), ("username", username), ("password", password))
        if not value
    ]
    if missing_params:
        raise ValueError(
            f"Missing required JIRA connection parameters: "
            f"{', '.join(missing_params)}. "
            f"Provide them via connection config or environment variables "
            f"({', '.join(ENV_VARIABLES.values())})."
        )

    return url, username, password


def has_credentials(connection) -> bool:
    """True if a complete set of connection parameters is available."""
    try:
        get_jira_connection_params(connection)
    except ValueError:
        return False
    return True


def _proxies(connection):
    proxies = {}
    if connection.get("http_proxy"):
        proxies["http"] = connection["http_proxy"]
    if connection.get("https_proxy"):
        proxies["https"] = connection["https_proxy"]
    return proxies or None


def create_jira_client(connection):
    """Create a JIRA client with the given connection options."""
    url, username, password = get_jira_connection_params(connection)

    jira_options = {"server": url, "rest_api_version": 3}
    jira_options.update(connection.get("jira_client_options") or {})

    logger.debug("Connecting to %s as %s", url, username)
    try:
        return JIRA(
            options=jira_options,
            basic_auth=(username, password),
            timeout=connection.get("timeout") or DEFAULT_TIMEOUT,
            proxies=_proxies(connection),
            get_server_info=connection.get("jira_server_version_check", True),
        )
    except Exception as e:
        logger.error("Failed to create JIRA client: %s", e)
        raise
