import argparse
import datetime
import json
import logging
import os

from dotenv import load_dotenv

from .analytics import AnalyticsService, query_manager_factory
from .common_constants import INTERVALS
from .config import DataUnavailableError, config_to_options, create_default_options
from .snapshot_store import SnapshotStore
from .utils import write_json_file
from .webapp.app import app as webapp
from .webapp.app import configure as configure_webapp

load_dotenv()

logger = logging.getLogger(__name__)


def configure_argument_parser():
    """Configure an ArgumentParser that manages command line options."""

    parser = argparse.ArgumentParser(
        description=(
            "Extract backlog flow metrics from JIRA: enriched current tickets, "
            "or historical time series by priority and source label."
        )
    )

    # Basic options
    parser.add_argument("config", metavar="config.yml", nargs="?", help="Configuration file")
    parser.add_argument("-v", dest="verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "-vv",
        dest="very_verbose",
        action="store_true",
        help="Even more verbose output",
    )
    parser.add_argument(
        "-n",
        metavar="N",
        dest="max_results",
        type=int,
        help="Fetch at most N issues",
    )
    parser.add_argument(
        "--historical",
        action="store_true",
        help="Produce historical time series instead of the current tickets",
    )
    parser.add_argument(
        "--interval",
        choices=INTERVALS,
        help="Time series interval for --historical",
    )
    parser.add_argument("--query", metavar="JQL", help="Override the configured query")

    parser.add_argument(
        "--server",
        metavar="127.0.0.1:8080",
        help=(
            "Run as a web server instead of a command line tool, "
            "on the given host and/or port. "
            "The configuration file is used if given."
        ),
    )

    # Output directory
    parser.add_argument(
        "--output-directory",
        "-o",
        metavar="metrics",
        help="Write output files to this directory, rather than the current working directory.",
    )

    # Connection options
    parser.add_argument("--domain", metavar="https://my.jira.com", help="JIRA domain name")
    parser.add_argument("--username", metavar="user", help="JIRA user name")
    parser.add_argument("--password", metavar="password", help="JIRA password or API token")
    parser.add_argument("--http-proxy", metavar="https://proxy.local", help="URL to HTTP Proxy")
    parser.add_argument(
        "--https-proxy",
        metavar="https://proxy.local",
        help="URL to HTTPS Proxy",
    )

    return parser


def main():
    parser = configure_argument_parser()
    args = parser.parse_args()

    configure_logging(args)

    if args.server:
        return run_server(parser, args)
    return run_command_line(parser, args)


def configure_logging(args):
    logging.basicConfig(
        format="[%(asctime)s %(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=(
            logging.DEBUG
            if args.very_verbose
            else logging.INFO if args.verbose else logging.WARNING
        ),
    )


def load_options(args):
    """Read the configuration file, if any, and apply command line overrides."""
    if args.config:
        logger.debug("Parsing options from %s", args.config)
        with open(args.config, encoding="utf-8") as config:
            options = config_to_options(
                config.read(), cwd=os.path.dirname(os.path.abspath(args.config))
            )
    else:
        options = create_default_options()

    # Command line arguments override config file options
    override_options(options["connection"], args)
    override_options(options["settings"], args)
    if args.max_results:
        options["settings"]["historical_max_results"] = args.max_results

    return options


def run_server(parser, args):
    host = None
    port = args.server

    if ":" in args.server:
        (host, port) = args.server.split(":")
    port = int(port)

    try:
        options = load_options(args)
    except FileNotFoundError:
        parser.error(f"Configuration file '{args.config}' not found.")

    configure_webapp(options)
    webapp.run(host=host, port=port, threaded=True)
    return 0


def run_command_line(parser, args):
    if not args.config:
        parser.print_usage()
        return 2

    try:
        options = load_options(args)
    except FileNotFoundError:
        print(
            f"Error: Configuration file '{args.config}' not found. "
            "Please provide a valid config file."
        )
        return 1

    settings = options["settings"]
    store = SnapshotStore(os.path.abspath(settings["cache_directory"]))

    # Set output directory if required
    output_dir = args.output_directory or options.get("output_directory")
    if output_dir:
        logger.info("Changing working directory to %s", output_dir)
        os.makedirs(output_dir, exist_ok=True)
        os.chdir(output_dir)

    service = AnalyticsService(query_manager_factory(options), store, settings)
    now = datetime.datetime.now(datetime.timezone.utc)

    try:
        if args.historical:
            bundle = service.historical_data(now, jql=args.query, interval=args.interval)
            output_files = settings["historical_data"]
        else:
            bundle = service.current_tickets(now, jql=args.query)
            output_files = settings["tickets_data"]
    except DataUnavailableError as e:
        logger.error("%s", e)
        if e.suggestion:
            print(f"Error: {e}\n{e.suggestion}")
        else:
            print(f"Error: {e}")
        return 1

    if bundle.get("warning"):
        logger.warning("%s", bundle["warning"])

    if not output_files:
        print(json.dumps(bundle, indent=2, ensure_ascii=False))

    for output_file in output_files:
        logger.info("Writing data to %s", output_file)
        write_json_file(output_file, bundle)

    return 0


def override_options(options, arguments):
    """Update `options` dict with settings from `arguments`
    with the same key.
    """
    for key in options.keys():
        if getattr(arguments, key, None) is not None:
            options[key] = getattr(arguments, key)


if __name__ == "__main__":
    raise SystemExit(main())
