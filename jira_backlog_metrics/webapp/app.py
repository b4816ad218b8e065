"""Web application for Jira Backlog Metrics.

This module provides a Flask-based JSON API over the analytics service. It
serves JSON only; any dashboard is a separate client.
"""

import datetime
import logging

from dotenv import load_dotenv
from flask import Flask, jsonify, request

from ..analytics import AnalyticsService, query_manager_factory
from ..calculators.backlog_flow import DEFAULT_PAGE_SIZE
from ..config import ConfigError, DataUnavailableError
from ..snapshot_store import SnapshotStore
from ..utils import calendar_date, format_timestamp

load_dotenv()

logger = logging.getLogger(__name__)

app = Flask("jira-backlog-metrics")


# Add security headers
@app.after_request
def add_security_headers(response):
    """Add security headers to all responses."""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def configure(options, clock=utcnow):
    """Point the app at a set of options. Must be called before serving."""
    app.config["OPTIONS"] = options
    app.config["CLOCK"] = clock


def get_service() -> AnalyticsService:
    """Build the analytics service for the current request."""
    options = app.config.get("OPTIONS")
    if options is None:
        raise ConfigError("The web application has not been configured")

    return AnalyticsService(
        query_manager_factory(options),
        SnapshotStore(options["settings"]["cache_directory"]),
        options["settings"],
    )


def now():
    return app.config.get("CLOCK", utcnow)()


def _request_data():
    return request.get_json(silent=True) or {}


def _int_arg(name, default):
    value = request.args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"`{name}` must be a whole number, not `{value}`") from None


def _date_arg(name):
    value = request.args.get(name)
    if not value:
        return None
    day = calendar_date(value)
    if day is None:
        raise ValueError(f"`{name}` is not a date: `{value}`")
    return day


def _unavailable(e: DataUnavailableError):
    body = {"error": str(e), "jqlUsed": e.jql}
    if e.suggestion:
        body["suggestion"] = e.suggestion
    return jsonify(body), 500


@app.route("/api/health")
def health():
    return jsonify({"status": "OK", "timestamp": format_timestamp(now())})


@app.route("/api/jira/current-tickets", methods=["POST"])
def current_tickets():
    data = _request_data()
    try:
        return jsonify(get_service().current_tickets(now(), jql=data.get("jql")))
    except DataUnavailableError as e:
        return _unavailable(e)


@app.route("/api/jira/historical-data", methods=["POST"])
def historical_data():
    data = _request_data()
    try:
        return jsonify(
            get_service().historical_data(
                now(), jql=data.get("jql"), interval=data.get("interval")
            )
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except DataUnavailableError as e:
        return _unavailable(e)


@app.route("/api/cache/status")
def cache_status():
    return jsonify(get_service().cache_status())


@app.route("/api/cache/clear", methods=["POST"])
def clear_cache():
    kind = _request_data().get("type")
    try:
        cleared = get_service().clear_cache(kind)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    logger.info("Cleared %s cache", kind)
    return jsonify(
        {
            "success": True,
            "message": f"Cleared {kind} cache",
            "cleared": cleared,
            "clearedAt": format_timestamp(now()),
        }
    )


@app.route("/api/metrics/json")
def metrics_json():
    return jsonify(get_service().metrics(now()))


@app.route("/api/stats")
def stats():
    return jsonify(get_service().stats(now()))


@app.route("/api/tickets")
def tickets():
    args = request.args
    try:
        return jsonify(
            get_service().list_tickets(
                priority=args.get("priority") or None,
                status=args.get("status") or None,
                in_top7=args.get("inTop7") == "true",
                page=_int_arg("page", 1),
                limit=_int_arg("limit", DEFAULT_PAGE_SIZE),
            )
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@app.route("/api/tickets/sources")
def ticket_sources():
    args = request.args
    try:
        return jsonify(
            get_service().source_flow(
                now(),
                interval=args.get("interval") or None,
                start=_date_arg("from"),
                end=_date_arg("to"),
                source=args.get("source") or None,
            )
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@app.route("/api/tickets/<key>")
def ticket_detail(key):
    ticket = get_service().find_ticket(key)
    if ticket is None:
        return jsonify({"error": f"Ticket {key} not found in cache"}), 404
    return jsonify(ticket)
