"""Distance-weighted aggregate of nearby station reports.

Keeps the most recent WeatherReport per callsign and, on every new report,
recomputes a snapshot: for each quantity the Hann-weighted mean across all
live stations that report it, in metric units, plus dew point, humidex and
wind chill when their inputs are present.

Reports older than the maximum age are evicted before each recompute, so a
station that stops reporting drops out of the aggregate entirely.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping, Optional

from ..protocol.fields import WEATHER_FIELDS, Quantity, field_for
from ..protocol.packet import WeatherReport
from .calculations import dew_point, humidex, to_metric, wind_chill

logger = logging.getLogger(__name__)

STATION_MAX_AGE = 3600  # seconds


@dataclass(frozen=True)
class AggregateSnapshot:
    """Weighted-mean view across all live station reports (metric units)."""
    values: Mapping[Quantity, float] = field(default_factory=dict)
    dew_point: Optional[float] = None
    humidex: Optional[float] = None
    wind_chill: Optional[float] = None
    station_count: int = 0
    contributors: int = 0

    def get(self, quantity: Quantity) -> Optional[float]:
        return self.values.get(quantity)

    @property
    def is_empty(self) -> bool:
        return not self.values


def _aggregate_quantities() -> list[Quantity]:
    """Quantities in table order, each once."""
    seen: list[Quantity] = []
    for spec in WEATHER_FIELDS:
        if spec.quantity not in seen:
            seen.append(spec.quantity)
    return seen


AGGREGATE_ORDER = _aggregate_quantities()


class StationAggregator:
    """Latest report per station plus the derived aggregate snapshot."""

    def __init__(
        self,
        max_age: float = STATION_MAX_AGE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_age = max_age
        self._clock = clock
        self._reports: dict[str, WeatherReport] = {}
        self._snapshot = AggregateSnapshot()

    def __len__(self) -> int:
        return len(self._reports)

    def __contains__(self, callsign: object) -> bool:
        return callsign in self._reports

    def __iter__(self) -> Iterator[WeatherReport]:
        return iter(list(self._reports.values()))

    @property
    def snapshot(self) -> AggregateSnapshot:
        return self._snapshot

    def report_for(self, callsign: str) -> Optional[WeatherReport]:
        return self._reports.get(callsign)

    def ingest(self, report: WeatherReport) -> AggregateSnapshot:
        """Store a station's latest report and recompute the aggregate."""
        self._reports[report.callsign] = report
        return self.recompute()

    def evict_stale(self, now: Optional[float] = None, max_age: Optional[float] = None) -> int:
        """Remove reports older than max_age seconds. Returns count removed."""
        if now is None:
            now = self._clock()
        if max_age is None:
            max_age = self.max_age
        stale = [k for k, v in self._reports.items() if now - v.captured_at > max_age]
        for k in stale:
            del self._reports[k]
        if stale:
            logger.debug("Evicted %d stale stations: %s", len(stale), ", ".join(stale))
        return len(stale)

    def recompute(self) -> AggregateSnapshot:
        """Rebuild the snapshot from the live reports."""
        self.evict_stale()

        weighted: dict[Quantity, float] = {}
        weights: dict[Quantity, float] = {}
        contributors = 0

        for report in self._reports.values():
            weight = report.position.weight
            if weight is None:
                continue
            contributed = False
            for quantity in AGGREGATE_ORDER:
                raw = report.values[quantity]
                if raw is None:
                    continue
                value = to_metric(raw, field_for(quantity).units)
                weighted[quantity] = weighted.get(quantity, 0.0) + value * weight
                weights[quantity] = weights.get(quantity, 0.0) + weight
                contributed = True
            if contributed:
                contributors += 1

        values = {
            q: weighted[q] / weights[q]
            for q in AGGREGATE_ORDER
            if weights.get(q, 0.0) > 0.0
        }

        dp = hx = wc = None
        temp = values.get(Quantity.TEMPERATURE)
        humidity = values.get(Quantity.HUMIDITY)
        gust = values.get(Quantity.WIND_GUST)
        if temp is not None and humidity is not None:
            dp = dew_point(temp, humidity)
            hx = humidex(temp, dp)
        if temp is not None and gust is not None:
            wc = wind_chill(temp, gust)

        self._snapshot = AggregateSnapshot(
            values=values,
            dew_point=dp,
            humidex=hx,
            wind_chill=wc,
            station_count=len(self._reports),
            contributors=contributors,
        )
        logger.debug(
            "Aggregate from %d stations (%d weighted)",
            self._snapshot.station_count, contributors,
        )
        return self._snapshot
