"""Tests for CLI functionality in Jira Backlog Metrics.

This module contains unit tests for the command line interface.
"""

import json
import os

import pytest

from .cli import (
    configure_argument_parser,
    load_options,
    override_options,
    run_command_line,
)

CONFIG = """
Connection:
  Domain: https://example.atlassian.net
  Username: me@example.com
  Password: secret

Project: KSD

Output:
  Cache directory: data
  Tickets data: tickets.json
  Historical data:
    - history.json
"""


def test_override_options():
    """Test override_options functionality."""

    class FauxArgs:
        """Mock arguments class for testing."""

        def __init__(self, opts):
            self.__dict__.update(opts)

    options = {"one": 1, "two": 2}
    override_options(options, FauxArgs({}))
    assert json.dumps(options) == json.dumps({"one": 1, "two": 2})

    options = {"one": 1, "two": 2}
    override_options(options, FauxArgs({"one": 11}))
    assert json.dumps(options) == json.dumps({"one": 11, "two": 2})

    options = {"one": 1, "two": 2}
    override_options(options, FauxArgs({"one": None, "three": 3}))
    assert json.dumps(options) == json.dumps({"one": 1, "two": 2})


def test_argument_parser():
    parser = configure_argument_parser()

    args = parser.parse_args(
        ["config.yml", "--historical", "--interval", "weekly", "-n", "50", "--query", "project = X"]
    )

    assert args.config == "config.yml"
    assert args.historical is True
    assert args.interval == "weekly"
    assert args.max_results == 50
    assert args.query == "project = X"
    assert args.server is None


def test_argument_parser_rejects_unknown_interval():
    with pytest.raises(SystemExit):
        configure_argument_parser().parse_args(["--interval", "hourly"])


def test_load_options_applies_overrides(tmp_path):
    config_file = tmp_path / "config.yml"
    config_file.write_text(CONFIG)
    parser = configure_argument_parser()
    args = parser.parse_args(
        [str(config_file), "-n", "25", "--interval", "monthly", "--username", "other@example.com"]
    )

    options = load_options(args)

    assert options["connection"]["username"] == "other@example.com"
    assert options["connection"]["password"] == "secret"
    assert options["settings"]["max_results"] == 25
    assert options["settings"]["historical_max_results"] == 25
    assert options["settings"]["interval"] == "monthly"
    assert options["settings"]["cache_directory"] == str(tmp_path / "data")


def test_load_options_without_config():
    args = configure_argument_parser().parse_args(["--domain", "https://jira.local"])

    options = load_options(args)

    assert options["connection"]["domain"] == "https://jira.local"
    assert options["settings"]["project"] is None


def test_run_command_line_without_config(capsys):
    parser = configure_argument_parser()

    assert run_command_line(parser, parser.parse_args([])) == 2
    assert "usage" in capsys.readouterr().out


def test_run_command_line_missing_config_file(tmp_path, capsys):
    parser = configure_argument_parser()
    args = parser.parse_args([str(tmp_path / "missing.yml")])

    assert run_command_line(parser, args) == 1
    assert "not found" in capsys.readouterr().out


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yml"
    path.write_text(CONFIG)
    monkeypatch.chdir(tmp_path)
    return path


@pytest.fixture
def live_jira(mocker, query_manager):
    return mocker.patch(
        "jira_backlog_metrics.cli.query_manager_factory",
        return_value=lambda: query_manager,
    )


def test_run_command_line_writes_tickets(config_file, live_jira, tmp_path):
    parser = configure_argument_parser()

    assert run_command_line(parser, parser.parse_args([str(config_file)])) == 0

    with open(tmp_path / "tickets.json", encoding="utf-8") as f:
        data = json.load(f)
    assert data["counts"]["total"] == 4
    assert os.path.exists(tmp_path / "data" / "tickets.json")


def test_run_command_line_historical(config_file, live_jira, tmp_path, faux_jira):
    parser = configure_argument_parser()
    args = parser.parse_args([str(config_file), "--historical", "--interval", "weekly"])

    assert run_command_line(parser, args) == 0

    with open(tmp_path / "history.json", encoding="utf-8") as f:
        data = json.load(f)
    assert data["interval"] == "weekly"
    assert "created >= -90d" in faux_jira.calls[0]["jql"]


def test_run_command_line_output_directory(config_file, live_jira, tmp_path):
    parser = configure_argument_parser()
    args = parser.parse_args([str(config_file), "-o", str(tmp_path / "out")])

    assert run_command_line(parser, args) == 0
    assert os.path.exists(tmp_path / "out" / "tickets.json")
    assert os.path.exists(tmp_path / "data" / "tickets.json")


def test_run_command_line_prints_without_output_files(tmp_path, monkeypatch, live_jira, capsys):
    config_file = tmp_path / "config.yml"
    config_file.write_text("Project: KSD\n")
    monkeypatch.chdir(tmp_path)
    parser = configure_argument_parser()

    assert run_command_line(parser, parser.parse_args([str(config_file)])) == 0
    assert json.loads(capsys.readouterr().out)["totalIssues"] == 4


def test_run_command_line_unavailable(config_file, mocker, failing_query_manager, capsys):
    mocker.patch(
        "jira_backlog_metrics.cli.query_manager_factory",
        return_value=lambda: failing_query_manager,
    )
    parser = configure_argument_parser()

    assert run_command_line(parser, parser.parse_args([str(config_file)])) == 1

    out = capsys.readouterr().out
    assert "Error: Service Unavailable" in out
    assert "fetch once" in out
