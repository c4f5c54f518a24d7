"""Command-line entry point for memwatch."""

import argparse
import logging
import os
import sys
from typing import Any

from memwatch import __version__
from memwatch.config import (
    config_from_mapping,
    load_config,
    parse_assignments,
    parse_size,
    parse_thresholds,
)
from memwatch.errors import ConfigurationError
from memwatch.models import ThresholdConfig
from memwatch.service import SupervisorRPC
from memwatch.watchdog import MemoryWatchdog

logger = logging.getLogger("memwatch")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all subcommands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", help="TOML file with watchdog settings")
    common.add_argument(
        "-p", "--program", action="append", default=[], metavar="NAME=SIZE",
        help="limit for a program (NAME or GROUP:NAME); repeatable",
    )
    common.add_argument(
        "-g", "--group", action="append", default=[], metavar="GROUP=SIZE",
        help="limit for every program in a group; repeatable",
    )
    common.add_argument("-a", "--any", metavar="SIZE", help="limit for every other program")
    common.add_argument("-u", "--uptime", type=int, metavar="SECONDS", help="minimum uptime before restart (default 60)")
    common.add_argument("-n", "--name", help="watchdog name shown in restart reports")
    common.add_argument("--cumulative", action="store_true", default=None, help="include child processes in memory usage")
    common.add_argument("--server-url", help="supervisord URL (default: $SUPERVISOR_SERVER_URL)")
    common.add_argument("--username", help="supervisord username")
    common.add_argument("--password", help="supervisord password")
    common.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")

    parser = argparse.ArgumentParser(
        prog="memwatch",
        description="Restart supervisord programs that use too much memory.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("listen", parents=[common], help="run as a supervisord event listener")

    run = subparsers.add_parser("run", parents=[common], help="tick on a timer instead of TICK events")
    run.add_argument("--interval", type=float, default=60.0, help="seconds between ticks (default 60)")
    run.add_argument("--once", action="store_true", help="run a single tick and exit")

    top = subparsers.add_parser("top", parents=[common], help="interactive dashboard")
    top.add_argument("--interval", type=float, default=60.0, help="seconds between ticks (default 60)")

    return parser


def resolve_config(args: argparse.Namespace) -> ThresholdConfig:
    """Merge the config file with command-line overrides."""
    data: dict[str, Any] = dict(load_config(args.config)) if args.config else {}

    if args.program:
        thresholds = parse_thresholds("program", data.get("program"))
        data["program"] = {**thresholds, **parse_assignments(args.program)}
    if args.group:
        thresholds = parse_thresholds("group", data.get("group"))
        data["group"] = {**thresholds, **parse_assignments(args.group)}
    if args.any is not None:
        data["any"] = parse_size(args.any)
    if args.uptime is not None:
        data["uptime"] = args.uptime
    if args.name is not None:
        data["name"] = args.name
    if args.cumulative is not None:
        data["cumulative"] = args.cumulative

    return config_from_mapping(data)


def build_service(args: argparse.Namespace, config: ThresholdConfig) -> SupervisorRPC:
    """Create the supervisord client from options or the listener environment."""
    if args.server_url:
        return SupervisorRPC(
            args.server_url,
            username=args.username,
            password=args.password,
            cumulative=config.cumulative,
        )
    return SupervisorRPC.from_environ(os.environ, cumulative=config.cumulative)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the memwatch command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # stdout belongs to the event listener protocol
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        config = resolve_config(args)
        service = build_service(args, config)
    except ConfigurationError as e:
        print(f"memwatch: {e}", file=sys.stderr)
        return 2

    watchdog = MemoryWatchdog(service, config)
    logger.info("Watching %s (any=%d bytes, uptime=%ds)", service.server_url, config.any, config.uptime)

    if args.command == "listen":
        from memwatch.listener import EventListener

        EventListener(watchdog).listen()
    elif args.command == "run":
        from memwatch.monitor import WatchdogMonitor

        monitor = WatchdogMonitor(watchdog, poll_rate=args.interval)
        if args.once:
            monitor.tick()
        else:
            monitor.start()
            try:
                monitor.join()
            except KeyboardInterrupt:
                monitor.stop()
    else:
        from memwatch.app import WatchdogApp

        WatchdogApp(watchdog, poll_rate=args.interval).run()

    return 0


if __name__ == "__main__":
    sys.exit(main())
