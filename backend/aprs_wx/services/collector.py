"""APRS-IS listener feeding the weather aggregate.

Connects to APRS-IS with a geographic range filter, reads lines, decodes
CWOP weather reports, keeps the station aggregate current and pushes every
new snapshot to InfluxDB.

Each connection is an epoch: it ends after `cycle_rate` lines, after too
many consecutive idle reads, on a read failure or when the stop event is
set.  A clean epoch end reconnects at once; failures back off
exponentially.  Everything runs on the calling thread.

References:
    http://www.aprs-is.net/connecting.aspx
    http://www.aprs-is.net/javAPRSFilter.aspx
"""

import logging
import threading
from typing import Callable, Optional

from ..config import Settings
from ..protocol.constants import APRSC_KEEPALIVE, COMMENT_MARKER
from ..protocol.cursor import ParseCursor
from ..protocol.packet import (
    DecodeError,
    NotWeather,
    Packet,
    PacketDecoder,
    WeatherPacket,
)
from ..protocol.session import (
    AprsConnectionError,
    LineSession,
    ProtocolRejection,
    ReadFailure,
)
from .aggregator import StationAggregator
from .influx import InfluxWriter, measurement_prefix

logger = logging.getLogger(__name__)

BACKOFF_INITIAL = 5.0
BACKOFF_MAX = 300.0


class AprsWxCollector:
    """Owns the read loop, the decoder, the aggregate and the exporter."""

    def __init__(
        self,
        config: Settings,
        session_factory: Optional[Callable[[], LineSession]] = None,
        aggregator: Optional[StationAggregator] = None,
        writer: Optional[InfluxWriter] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.session_factory = session_factory or self._default_session
        self.decoder = PacketDecoder(config.reference_position, config.radius_km)
        if aggregator is None:
            aggregator = StationAggregator(max_age=config.station_max_age)
        self.aggregator = aggregator
        if writer is None and config.influx_enabled:
            writer = InfluxWriter(
                config.influx_host, config.influx_port, config.influx_db,
                tls=config.influx_tls,
            )
        self.writer = writer
        self.stop_event = stop_event or threading.Event()
        self.prefix = measurement_prefix(config.influx_measurement, config.callsign)
        self.backoff = BACKOFF_INITIAL
        self._stats = {
            "lines": 0,
            "weather": 0,
            "not_weather": 0,
            "decode_errors": 0,
            "comments": 0,
            "pushes": 0,
            "push_failures": 0,
            "epochs": 0,
        }

    @property
    def stats(self) -> dict:
        return dict(self._stats, stations=len(self.aggregator))

    def _default_session(self) -> LineSession:
        return LineSession(
            self.config.server_host,
            self.config.server_port,
            connect_timeout=self.config.connect_timeout,
        )

    def stop(self) -> None:
        self.stop_event.set()

    # ---- connection epochs ----

    def run(self) -> None:
        """Run connection epochs until the stop event is set."""
        logger.info(
            "APRS collector started (%s, filter=%s, influx=%s)",
            self.config.callsign,
            self.config.filter_expression or "none",
            self.writer.url if self.writer else "disabled",
        )
        while not self.stop_event.is_set():
            try:
                self.run_epoch()
                self.backoff = BACKOFF_INITIAL
            except (AprsConnectionError, ProtocolRejection, ReadFailure) as exc:
                logger.warning("APRS-IS error: %s", exc)
                if self.stop_event.is_set():
                    break
                logger.info("APRS-IS reconnecting in %.0fs", self.backoff)
                self.stop_event.wait(self.backoff)
                self.backoff = min(self.backoff * 2, BACKOFF_MAX)
        logger.info("APRS collector stopped")

    def run_epoch(self) -> int:
        """One connection: connect, login, read until the budget is spent.

        Returns the number of lines read.
        """
        session = self.session_factory()
        self._stats["epochs"] += 1
        line_count = 0
        idle_reads = 0
        try:
            session.connect(stop_event=self.stop_event)
            session.login(
                self.config.callsign,
                self.config.passcode,
                self.config.filter_expression,
            )
            while line_count < self.config.cycle_rate and not self.stop_event.is_set():
                line = session.read_line(self.config.idle_timeout)
                if not line:
                    idle_reads += 1
                    if idle_reads >= self.config.max_idle_reads:
                        logger.warning(
                            "No data from %s in %d reads, reconnecting",
                            session.peer_name, idle_reads,
                        )
                        break
                    continue

                idle_reads = 0
                line_count += 1
                self.process_line(line, session.cursor(), comment=session.is_comment())
        finally:
            session.close()
        logger.debug("Epoch ended after %d lines", line_count)
        return line_count

    # ---- per-line handling ----

    def process_line(
        self,
        line: str,
        cursor: Optional[ParseCursor] = None,
        comment: Optional[bool] = None,
    ) -> Optional[Packet]:
        """Handle one raw feed line. Returns the decoded packet, if any.

        `comment` is the session's verdict on the line; without it the
        comment marker is checked here.
        """
        self._stats["lines"] += 1
        logger.debug("RX: %s", line.rstrip("\n"))

        if comment is None:
            comment = line.startswith(COMMENT_MARKER)
        if comment:
            self._stats["comments"] += 1
            if line.startswith(APRSC_KEEPALIVE) and self.config.influx_repeats and len(self.aggregator):
                # Re-evict first so expired stations are not re-sent.
                self.aggregator.recompute()
                self.export()
            return None

        packet = self.decoder.decode(cursor or ParseCursor(line))

        if isinstance(packet, WeatherPacket):
            self._stats["weather"] += 1
            logger.info("WX %s", packet.report.describe())
            self.aggregator.ingest(packet.report)
            self.export()
        elif isinstance(packet, DecodeError):
            self._stats["decode_errors"] += 1
            logger.warning(
                "Packet decoding error (%s: %s) at %d: %s",
                packet.status.value, packet.reason, packet.offset,
                packet.line.rstrip("\n"),
            )
        elif isinstance(packet, NotWeather):
            self._stats["not_weather"] += 1
            logger.debug("Skipped %s: %s", packet.callsign, packet.reason)
        return packet

    def export(self) -> bool:
        """Push the current snapshot if an exporter is configured."""
        if self.writer is None:
            return False
        snapshot = self.aggregator.snapshot
        if snapshot.is_empty:
            return False
        ok = self.writer.push(snapshot, self.prefix)
        self._stats["pushes" if ok else "push_failures"] += 1
        return ok
