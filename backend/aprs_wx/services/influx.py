"""InfluxDB export of the aggregate snapshot.

Serialises an AggregateSnapshot to line protocol
(``<prefix><name>=<value>`` per line) and POSTs it to the InfluxDB 1.x
``/write`` endpoint.  Push failures are logged and never touch the
aggregate; there is no retry, the next report produces a fresh push.

Reference: https://docs.influxdata.com/influxdb/v1/guides/write_data/
"""

import logging
from typing import Optional

import httpx

from ..protocol.fields import field_for
from .aggregator import AGGREGATE_ORDER, AggregateSnapshot

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10.0

DEW_POINT_NAME = "DewPt"
HUMIDEX_NAME = "Humidex"
WIND_CHILL_NAME = "WindChill"


def measurement_prefix(measurement: str, callsign: str) -> str:
    """Line protocol prefix: measurement, call tag and the field separator."""
    return f"{measurement},call={callsign} "


def format_value(value: float) -> str:
    return f"{value:.6g}"


def snapshot_fields(snapshot: AggregateSnapshot) -> list[tuple[str, float]]:
    """(name, value) pairs in export order: table quantities then derived."""
    fields = [
        (field_for(q).db_name, snapshot.values[q])
        for q in AGGREGATE_ORDER
        if q in snapshot.values
    ]
    if snapshot.dew_point is not None:
        fields.append((DEW_POINT_NAME, snapshot.dew_point))
    if snapshot.humidex is not None:
        fields.append((HUMIDEX_NAME, snapshot.humidex))
    if snapshot.wind_chill is not None:
        fields.append((WIND_CHILL_NAME, snapshot.wind_chill))
    return fields


def format_line_protocol(snapshot: AggregateSnapshot, prefix: str) -> str:
    """One ``<prefix><name>=<value>`` line per present field."""
    return "\n".join(
        f"{prefix}{name}={format_value(value)}"
        for name, value in snapshot_fields(snapshot)
    )


class InfluxWriter:
    """Pushes line protocol bodies to an InfluxDB database over HTTP."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        tls: bool = False,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.database = database
        self.tls = tls
        self.timeout = timeout
        self._transport = transport
        self._consecutive_errors = 0

    @property
    def url(self) -> str:
        scheme = "https" if self.tls else "http"
        return f"{scheme}://{self.host}:{self.port}/write"

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    def write(self, body: str) -> bool:
        """POST a line protocol body. Returns True on a 2xx response."""
        if not body:
            return False
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(
                    self.url,
                    params={"db": self.database},
                    content=body.encode(),
                    headers={"Content-Type": "text/plain; charset=utf-8"},
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._consecutive_errors += 1
            logger.warning(
                "Influx write to %s rejected: HTTP %d %s",
                self.url, exc.response.status_code, exc.response.text.strip(),
            )
            return False
        except httpx.HTTPError as exc:
            self._consecutive_errors += 1
            logger.warning("Influx write to %s failed: %s", self.url, exc)
            return False

        self._consecutive_errors = 0
        logger.debug("Influx write OK (%d bytes)", len(body))
        return True

    def push(self, snapshot: AggregateSnapshot, prefix: str) -> bool:
        """Serialise and write a snapshot. Empty snapshots are not sent."""
        return self.write(format_line_protocol(snapshot, prefix))
