#!/usr/bin/env python3
"""APRS-IS CWOP weather aggregator daemon.

Listens to the APRS-IS feed around the configured position, keeps a
distance-weighted aggregate of nearby CWOP stations and pushes it to
InfluxDB after every report.

Start:  python aggregator_main.py
Stop:   Ctrl-C, SIGTERM or SIGHUP
"""

import logging
import signal
import sys
import threading
from pathlib import Path

# Ensure the backend package is importable when running from the backend/ dir
sys.path.insert(0, str(Path(__file__).resolve().parent))

from aprs_wx.config import settings
from aprs_wx.services.collector import AprsWxCollector

logger = logging.getLogger("aprs_wx.daemon")


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set the stop event on SIGINT / SIGTERM (and SIGHUP where it exists)."""

    def _handler(signum, _frame):
        logger.info("Interrupt signal (%d) received", signum)
        stop_event.set()

    sigs = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        sigs.append(signal.SIGHUP)
    for sig in sigs:
        signal.signal(sig, _handler)


def main() -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(levelname)s:     %(name)s - %(message)s",
    )

    if not settings.is_configured:
        logger.error(
            "Callsign %s is not configured; set APRS_WX_CALLSIGN", settings.callsign,
        )
        return 1
    if not settings.influx_enabled:
        logger.warning("InfluxDB not configured, data will not be stored")

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    collector = AprsWxCollector(settings, stop_event=stop_event)
    logger.info("Hello, CWOP APRS-IS! %s %s", settings.callsign, settings.filter_expression)
    collector.run()
    logger.info("Stats: %s", collector.stats)
    return 0


if __name__ == "__main__":
    sys.exit(main())
