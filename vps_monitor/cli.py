import argparse
import logging
import signal
import threading
from typing import List, Optional

from pydantic import ValidationError

from vps_monitor.bot import MonitorBot
from vps_monitor.config import Settings
from vps_monitor.errors import StartupConfigError
from vps_monitor.logging_config import setup_logging
from vps_monitor.runtime import Runtime

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Telegram bot that reports host metrics on demand and sends alerts "
            "and periodic digests to the configured admin chat."
        )
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: LOG_LEVEL env var or INFO)",
    )
    parser.add_argument(
        "--start-monitoring",
        action="store_true",
        help="Start the monitoring loop immediately instead of waiting for /monitor.",
    )
    parser.add_argument(
        "--poll-timeout",
        type=int,
        default=30,
        help="Long-polling timeout in seconds for getUpdates (default: 30)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = Settings.from_env()
        setup_logging(args.log_level or settings.log_level)
        runtime = Runtime.with_telegram(settings)
    except (StartupConfigError, ValidationError) as exc:
        setup_logging(args.log_level or "INFO")
        logger.error("Startup failed: %s", exc)
        return 1

    bot = MonitorBot(runtime, runtime.telegram)
    stop_event = threading.Event()

    def _interrupt(signum, _frame):
        raise KeyboardInterrupt(signal.Signals(signum).name)

    # SIGINT already raises KeyboardInterrupt, which also breaks out of a long poll
    signal.signal(signal.SIGTERM, _interrupt)

    if args.start_monitoring:
        runtime.controller.start()

    try:
        bot.run(stop_event, timeout=args.poll_timeout)
    except KeyboardInterrupt:
        logger.info("Stopping VPS Monitor Bot...")
    finally:
        stop_event.set()
        runtime.shutdown()
        logger.info("VPS Monitor Bot stopped")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
