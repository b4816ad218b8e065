"""Tests for configuration loading in Jira Backlog Metrics."""

import os

import pytest

from .config import ConfigError, config_to_options
from .config.type_utils import expand_key, force_choice, force_int, force_list


def test_force_list():
    assert force_list(None) == [None]
    assert force_list("foo") == ["foo"]
    assert force_list(("foo",)) == ["foo"]
    assert force_list(["foo"]) == ["foo"]


def test_force_int():
    assert force_int("foo", "100") == 100
    assert force_int("foo", 100.5) == 100

    with pytest.raises(ConfigError):
        force_int("foo", "bar")

    with pytest.raises(ConfigError, match="at least 1"):
        force_int("max_results", 0, minimum=1)


def test_force_choice():
    assert force_choice("interval", " Weekly ", ["daily", "weekly"]) == "weekly"
    with pytest.raises(ConfigError, match="daily, weekly"):
        force_choice("interval", "hourly", ["daily", "weekly"])


def test_expand_key():
    assert expand_key("foo") == "foo"
    assert expand_key("foo_bar") == "foo bar"
    assert expand_key("FOO") == "foo"


def test_config_to_options_minimal():
    options = config_to_options(
        """\
Connection:
    Domain: https://foo.com

Project: KSD
"""
    )

    assert options["connection"]["domain"] == "https://foo.com"
    assert options["connection"]["timeout"] == 10
    assert options["settings"]["project"] == "KSD"
    assert options["settings"]["query"] is None
    assert options["settings"]["interval"] == "daily"
    assert options["settings"]["max_results"] == 2000
    assert options["settings"]["historical_max_results"] == 3000
    assert options["settings"]["priority_level_field_id"] == "customfield_11129"
    assert options["settings"]["source_label_prefix"] == "src-"


def test_config_to_options_maximal():
    options = config_to_options(
        """\
connection:
    domain: https://foo.com
    username: user1
    password: apassword
    timeout: 20
    http proxy: http://proxy.local
    https proxy: https://proxy.local
    jira client options:
        verify: false

Query: project = KSD AND cf[11129] > 0
Historical query: project = KSD AND created >= -180d

Output:
    Interval: Weekly
    Current Days: 14
    Historical Days: 180
    Max Results: 500
    Historical Max Results: 1000
    Priority Level Field Id: customfield_12345
    Priority Level Field Name: Rank Level
    Source Label Prefix: origin-
    Cache Directory: /var/cache/backlog
    Tickets Data: tickets.json
    Historical Data:
        - historical.json
        - ../archive/historical-copy.json
"""
    )

    connection = options["connection"]
    assert connection["username"] == "user1"
    assert connection["password"] == "apassword"
    assert connection["timeout"] == 20
    assert connection["http_proxy"] == "http://proxy.local"
    assert connection["https_proxy"] == "https://proxy.local"
    assert connection["jira_client_options"] == {"verify": False}

    settings = options["settings"]
    assert settings["query"] == "project = KSD AND cf[11129] > 0"
    assert settings["historical_query"] == "project = KSD AND created >= -180d"
    assert settings["interval"] == "weekly"
    assert settings["current_days"] == 14
    assert settings["historical_days"] == 180
    assert settings["max_results"] == 500
    assert settings["historical_max_results"] == 1000
    assert settings["priority_level_field_id"] == "customfield_12345"
    assert settings["priority_level_field_name"] == "Rank Level"
    assert settings["source_label_prefix"] == "origin-"
    assert settings["cache_directory"] == "/var/cache/backlog"
    assert settings["tickets_data"] == ["tickets.json"]
    assert settings["historical_data"] == ["historical.json", "historical-copy.json"]


def test_config_rejects_bad_values():
    with pytest.raises(ConfigError, match="interval"):
        config_to_options("Output:\n    Interval: hourly\n")

    with pytest.raises(ConfigError, match="max results"):
        config_to_options("Output:\n    Max Results: lots\n")

    with pytest.raises(ConfigError, match=".json"):
        config_to_options("Output:\n    Tickets Data: tickets.csv\n")


def test_config_rejects_unparseable_or_empty():
    with pytest.raises(ConfigError):
        config_to_options("Output: [unclosed\n")

    with pytest.raises(ConfigError):
        config_to_options("")

    with pytest.raises(ConfigError):
        config_to_options("- just\n- a list\n")


def test_cache_directory_relative_to_config(tmp_path):
    options = config_to_options("Project: KSD\n", cwd=str(tmp_path))
    assert options["settings"]["cache_directory"] == os.path.join(str(tmp_path), "data")


def test_config_to_options_extends(tmp_path):
    (tmp_path / "base.yaml").write_text(
        """\
Connection:
    Domain: https://foo.com

Project: KSD

Output:
    Interval: monthly
    Max Results: 100
""",
        encoding="utf-8",
    )

    options = config_to_options(
        """\
Extends: base.yaml

Output:
    Max Results: 50
""",
        cwd=str(tmp_path),
    )

    assert options["connection"]["domain"] == "https://foo.com"
    assert options["settings"]["project"] == "KSD"
    assert options["settings"]["interval"] == "monthly"
    assert options["settings"]["max_results"] == 50


def test_config_to_options_extends_errors(tmp_path):
    with pytest.raises(ConfigError, match="not supported"):
        config_to_options("Extends: base.yaml\n")

    with pytest.raises(ConfigError, match="not found"):
        config_to_options("Extends: missing.yaml\n", cwd=str(tmp_path))

    (tmp_path / "a.yaml").write_text("Extends: b.yaml\n", encoding="utf-8")
    (tmp_path / "b.yaml").write_text("Extends: a.yaml\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Circular"):
        config_to_options("Extends: a.yaml\n", cwd=str(tmp_path))
