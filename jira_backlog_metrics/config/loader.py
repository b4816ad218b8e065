"""Configuration loader for Jira Backlog Metrics.

A configuration file looks like::

    Connection:
      Domain: https://example.atlassian.net
      Username: me@example.com
      Password: api-token

    Project: KSD
    Query: project = KSD AND cf[11129] > 0 ORDER BY created DESC

    Output:
      Interval: weekly
      Max Results: 2000
      Tickets Data: tickets.json
      Historical Data: historical.json

Section and key names are case-insensitive.
"""

import logging
import os.path

import yaml
from pydicti import odicti

from ..common_constants import DEFAULT_TIMEOUT, INTERVALS
from ..utils import get_extension
from .exceptions import ConfigError
from .type_utils import expand_key, force_choice, force_int, force_list

logger = logging.getLogger(__name__)

CONNECTION_KEYS = [
    ("domain", "domain"),
    ("username", "username"),
    ("password", "password"),
    ("http proxy", "http_proxy"),
    ("https proxy", "https_proxy"),
    ("jira client options", "jira_client_options"),
    ("jira server version check", "jira_server_version_check"),
]

INT_SETTINGS = {
    "current_days": 1,
    "historical_days": 1,
    "max_results": 1,
    "historical_max_results": 1,
}

STRING_SETTINGS = [
    "priority_level_field_id",
    "priority_level_field_name",
    "source_label_prefix",
    "cache_directory",
]

DATA_FILE_SETTINGS = ["tickets_data", "historical_data"]


class _CaseInsensitiveLoader(yaml.SafeLoader):
    """Safe loader that builds case-insensitive ordered mappings."""


def _construct_mapping(loader, node):
    loader.flatten_mapping(node)
    return odicti(loader.construct_pairs(node, deep=True))


_CaseInsensitiveLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping
)


def load_yaml(data):
    """Parse YAML text into case-insensitive dicts."""
    return yaml.load(data, _CaseInsensitiveLoader)


def create_default_options():
    """Create default options dictionary."""
    return {
        "connection": {
            "domain": None,
            "username": None,
            "password": None,
            "timeout": DEFAULT_TIMEOUT,
            "http_proxy": None,
            "https_proxy": None,
            "jira_server_version_check": True,
            "jira_client_options": {},
        },
        "settings": {
            "project": None,
            "query": None,
            "historical_query": None,
            "current_days": 30,
            "historical_days": 90,
            "max_results": 2000,
            "historical_max_results": 3000,
            "priority_level_field_id": "customfield_11129",
            "priority_level_field_name": "Priority Level",
            "source_label_prefix": "src-",
            "cache_directory": "data",
            "interval": "daily",
            "tickets_data": [],
            "historical_data": [],
            "verbose": False,
        },
    }


def _parse_connection_config(config, options):
    """Parse connection configuration."""
    if "connection" not in config or config["connection"] is None:
        return

    conn_config = config["connection"]
    conn_options = options["connection"]

    for config_key, option_key in CONNECTION_KEYS:
        if config_key in conn_config:
            conn_options[option_key] = conn_config[config_key]

    if "timeout" in conn_config:
        conn_options["timeout"] = force_int("timeout", conn_config["timeout"], minimum=1)

    if conn_options["jira_client_options"] is None:
        conn_options["jira_client_options"] = {}
    conn_options["jira_client_options"] = dict(conn_options["jira_client_options"])


def _parse_query_config(config, options):
    """Parse the top-level `Project`, `Query` and `Historical Query` keys."""
    settings = options["settings"]
    for key in ["project", "query", "historical_query"]:
        if expand_key(key) in config and config[expand_key(key)] is not None:
            settings[key] = str(config[expand_key(key)]).strip()


def _data_filenames(key, value):
    filenames = [os.path.basename(str(v)) for v in force_list(value) if v]
    for filename in filenames:
        if get_extension(filename) != ".json":
            raise ConfigError(
                f"Output file `{filename}` for key `{expand_key(key)}` "
                f"must have a .json extension"
            )
    return filenames


def _parse_output_config(config, options):
    """Parse output configuration."""
    if "output" not in config or config["output"] is None:
        return

    output_config = config["output"]
    settings = options["settings"]

    if expand_key("output_directory") in output_config:
        options["output_directory"] = output_config[expand_key("output_directory")]

    for key, minimum in INT_SETTINGS.items():
        if expand_key(key) in output_config:
            settings[key] = force_int(key, output_config[expand_key(key)], minimum)

    for key in STRING_SETTINGS:
        if expand_key(key) in output_config:
            settings[key] = str(output_config[expand_key(key)])

    if "interval" in output_config:
        settings["interval"] = force_choice("interval", output_config["interval"], INTERVALS)

    for key in DATA_FILE_SETTINGS:
        if expand_key(key) in output_config:
            settings[key] = _data_filenames(key, output_config[expand_key(key)])


def config_to_options(data, cwd=None, extended=False, _visited_files=None):
    """
    Parse YAML config data and return options dict.

    Args:
        data: The YAML text.
        cwd: Directory the file was read from. Needed to resolve `Extends`
            and a relative `Cache Directory`.
        extended: True when parsing a file pulled in through `Extends`.
    """
    if _visited_files is None:
        _visited_files = set()

    try:
        config = load_yaml(data)
    except yaml.YAMLError as e:
        raise ConfigError("Unable to parse YAML configuration file.") from e

    if config is None:
        raise ConfigError("Configuration file is empty") from None

    if not isinstance(config, dict):
        raise ConfigError("Configuration file must contain a mapping") from None

    options = create_default_options()

    if "extends" in config:
        if cwd is None:
            raise ConfigError("`extends` is not supported here.")

        extends_filename = os.path.abspath(
            os.path.normpath(os.path.join(cwd, str(config["extends"]).replace("/", os.path.sep)))
        )

        if not os.path.exists(extends_filename):
            raise ConfigError(
                f"File `{extends_filename}` referenced in `extends` not found."
            ) from None

        if extends_filename in _visited_files:
            raise ConfigError(
                f"Circular extends reference detected: {extends_filename}"
            ) from None

        _visited_files.add(extends_filename)

        logger.debug("Extending file %s", extends_filename)
        with open(extends_filename, encoding="utf-8") as extends_file:
            options = config_to_options(
                extends_file.read(),
                cwd=os.path.dirname(extends_filename),
                extended=True,
                _visited_files=_visited_files,
            )

    _parse_connection_config(config, options)
    _parse_query_config(config, options)
    _parse_output_config(config, options)

    settings = options["settings"]
    if cwd is not None and not os.path.isabs(settings["cache_directory"]):
        settings["cache_directory"] = os.path.join(cwd, settings["cache_directory"])

    if not extended and not settings["query"] and not settings["project"]:
        logger.warning(
            "No `Query` or `Project` found. A query must be given on each request."
        )

    return options
