#!/usr/bin/env python3
"""
CLI for the mailbox response monitor.

Usage:
    python -m src.cli monitor --config config.yaml
    python -m src.cli tail --file response.txt
    python -m src.cli extract reply.txt
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Callable, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load .env from project root
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()

from src.monitor import (
    ConfigurationError,
    ResponseMonitor,
    ResponseReader,
    apply_env_overrides,
    extract_response,
    find_config_file,
    load_settings,
)
from src.monitor.settings import DEFAULT_CONFIG_CANDIDATES


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("cli")


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Configure console logging, plus a DEBUG file handler when requested."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if (verbose or log_file) else logging.INFO)
    root_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self, on_exit: Optional[Callable[[], None]] = None):
        self.should_exit = False
        self._on_exit = on_exit
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True
        if self._on_exit is not None:
            self._on_exit()


def _resolve_settings(config_arg: Optional[str]) -> Optional[dict]:
    if config_arg:
        logger.info("Loading config from: %s", Path(config_arg).resolve())
    else:
        logger.info("Auto-discovering config file...")

    config_path = find_config_file(config_arg)
    if config_path is None:
        logger.error(
            "Config file not found: %s",
            config_arg or ", ".join(DEFAULT_CONFIG_CANDIDATES),
        )
        return None

    try:
        return apply_env_overrides(load_settings(config_path))
    except ConfigurationError as e:
        logger.error("Error loading email config: %s", e)
        return None


async def _drain_responses(monitor: ResponseMonitor) -> None:
    """Log every response handed to the in-process channel."""
    queue = monitor.responses
    while True:
        record = await queue.get()
        logger.info("[RESPONSE] %s", record.text)
        queue.task_done()


async def _run_monitor(monitor: ResponseMonitor) -> None:
    consumer = asyncio.create_task(_drain_responses(monitor))
    try:
        await monitor.start()
    finally:
        consumer.cancel()


def cmd_monitor(args) -> int:
    """Run the response monitor until interrupted."""
    settings = _resolve_settings(args.config)
    if settings is None:
        return 1

    if args.interval is not None:
        settings["email_poll_interval_ms"] = args.interval
    if args.responses_dir:
        settings["email_responses_dir"] = args.responses_dir
    if args.response_file:
        settings["email_response_file"] = args.response_file

    monitor = ResponseMonitor.from_settings(settings)
    if monitor is None:
        logger.error("Failed to load email configuration")
        return 1

    GracefulShutdown(monitor.stop)
    logger.info("Response monitor started. Press Ctrl+C to stop.")

    try:
        asyncio.run(_run_monitor(monitor))
    except KeyboardInterrupt:
        pass
    return 0


def cmd_tail(args) -> int:
    """Print response records as they are appended."""
    if args.file:
        path = Path(args.file)
    else:
        settings = _resolve_settings(args.config)
        if settings is None:
            return 1
        path = Path(settings.get("email_response_file") or "response.txt")

    reader = ResponseReader(path)
    shutdown = GracefulShutdown()
    logger.info("Following %s", path.resolve())

    while not shutdown.should_exit:
        for record in reader.read_new():
            print(record.format_line(), flush=True)
        if args.once:
            break
        time.sleep(args.interval)
    return 0


def cmd_extract(args) -> int:
    """Run the extractor on a file (or stdin) and print the response."""
    if args.path == "-":
        body = sys.stdin.read()
    else:
        try:
            body = Path(args.path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.error("Cannot read %s: %s", args.path, e)
            return 1

    response = extract_response(body)
    if response is None:
        print("No response found", file=sys.stderr)
        return 1
    print(response)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mailbox response monitor for the log processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch the mailbox configured in ./config.yaml
  python -m src.cli monitor

  # Use an explicit config and poll every 10 seconds
  python -m src.cli monitor --config LogEventProcessor/config.yaml --interval 10000

  # Follow the response file
  python -m src.cli tail --file response.txt

  # Check what a reply body would produce
  python -m src.cli extract reply.txt
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", default=None, help="Also write DEBUG logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Monitor command
    monitor_parser = subparsers.add_parser("monitor", help="Run the mailbox response monitor")
    monitor_parser.add_argument("--config", default=None, help="Settings file (default: auto-discover)")
    monitor_parser.add_argument("--interval", type=int, default=None, help="Poll interval in ms")
    monitor_parser.add_argument("--responses-dir", default=None, help="Fallback drop directory")
    monitor_parser.add_argument("--response-file", default=None, help="Response file to append to")
    monitor_parser.set_defaults(func=cmd_monitor)

    # Tail command
    tail_parser = subparsers.add_parser("tail", help="Follow the response file")
    tail_parser.add_argument("--file", default=None, help="Response file (default: from settings)")
    tail_parser.add_argument("--config", default=None, help="Settings file (default: auto-discover)")
    tail_parser.add_argument("--interval", type=float, default=1.0, help="Seconds between reads")
    tail_parser.add_argument("--once", action="store_true", help="Print pending records and exit")
    tail_parser.set_defaults(func=cmd_tail)

    # Extract command
    extract_parser = subparsers.add_parser("extract", help="Extract the response from a message body")
    extract_parser.add_argument("path", help="File containing the body, or - for stdin")
    extract_parser.set_defaults(func=cmd_extract)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.log_file)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
