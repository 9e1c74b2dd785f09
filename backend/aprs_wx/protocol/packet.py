"""CWOP weather packet decoder for raw APRS-IS lines.

Decodes the uncompressed position + weather format:

    CALL>PATH:@DDHHMMzDDMM.mmN/DDDMM.mmW_DDD/SSSgGGGtTTTrRRRpPPPPPPhHHbBBBBB

The information field is walked with an explicit ParseCursor: every helper
takes a cursor and returns the value it read together with the advanced
cursor, so decode() is reentrant and can be fed canned lines.

Every result is one of WeatherPacket, NotWeather or DecodeError.

Reference: http://www.aprs.org/doc/APRS101.PDF  (Chapters 6, 8 and 12)
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .cursor import ParseCursor
from .fields import FIELDS_BY_FLAG, QUANTITY_COUNT, FieldSpec, Quantity, field_for
from .geo import bearing_deg, distance_km, proximity_weight

logger = logging.getLogger(__name__)

POSITION_DISCRIMINATORS = "!=@/"
TIMESTAMPED_DISCRIMINATORS = "@/"
TIMESTAMP_LENGTH = 7
MINUTES_LENGTH = 5

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)")
_DIGITS_RE = re.compile(r"\d+")


class PacketStatus(Enum):
    WX_PACKET = "wx_packet"
    NOT_WEATHER = "not_weather"
    DECODING_ERROR = "decoding_error"
    ERROR_LATITUDE = "error_latitude"
    ERROR_LONGITUDE = "error_longitude"


class FieldParseError(ValueError):
    """A flagged weather value ran past the end of the line."""


# --- Data model ---

@dataclass
class Position:
    """A point with optional distance, bearing and weight from a reference."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: Optional[float] = None
    bearing_deg: Optional[float] = None
    weight: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def locate_from(self, reference: Optional["Position"]) -> bool:
        """Set distance and bearing from the reference point.

        Returns False (leaving both unset) unless both points have lat/lon.
        """
        if reference is None or not (self.has_coordinates and reference.has_coordinates):
            return False
        self.distance_km = distance_km(
            reference.latitude, reference.longitude, self.latitude, self.longitude,
        )
        self.bearing_deg = bearing_deg(
            reference.latitude, reference.longitude, self.latitude, self.longitude,
        )
        return True


def _empty_values() -> list[Optional[float]]:
    return [None] * QUANTITY_COUNT


@dataclass
class WeatherReport:
    """One decoded weather report from one station."""
    callsign: str
    position: Position = field(default_factory=Position)
    timestamp: Optional[str] = None
    symbol_table: Optional[str] = None
    symbol_code: Optional[str] = None
    values: list[Optional[float]] = field(default_factory=_empty_values)
    captured_at: float = field(default_factory=time.monotonic)

    def value(self, quantity: Quantity) -> Optional[float]:
        return self.values[quantity]

    def set_value(self, quantity: Quantity, value: Optional[float]) -> None:
        self.values[quantity] = value

    @property
    def has_weather(self) -> bool:
        return any(v is not None for v in self.values)

    def describe(self) -> str:
        """One-line human readable summary for logging."""
        parts = [self.callsign]
        pos = self.position
        if pos.has_coordinates:
            parts.append(f"{pos.latitude:.4f},{pos.longitude:.4f}")
        if pos.distance_km is not None and pos.bearing_deg is not None:
            parts.append(f"{pos.distance_km:.1f}km @ {pos.bearing_deg:.0f}deg")
        if pos.weight is not None:
            parts.append(f"w={pos.weight:.3f}")
        for quantity in Quantity:
            v = self.values[quantity]
            if v is not None:
                spec = field_for(quantity)
                parts.append(f"{spec.db_name}={v:.{spec.precision}f}")
        return " ".join(parts)


# --- Results ---

@dataclass
class WeatherPacket:
    report: WeatherReport
    status: PacketStatus = PacketStatus.WX_PACKET


@dataclass
class NotWeather:
    reason: str
    callsign: Optional[str] = None
    status: PacketStatus = PacketStatus.NOT_WEATHER


@dataclass
class DecodeError:
    reason: str
    line: str
    offset: int
    status: PacketStatus = PacketStatus.DECODING_ERROR
    report: Optional[WeatherReport] = None  # fields decoded before the failure


Packet = Union[WeatherPacket, NotWeather, DecodeError]


# --- Fixed-width value parsing ---

def parse_fixed(cursor: ParseCursor, width: int) -> tuple[Optional[float], ParseCursor]:
    """Parse exactly `width` characters as a number.

    Returns None for the value if the slice is short or is not entirely a
    number; the cursor always advances by `width`.
    """
    text, cursor = cursor.take(width)
    if len(text) != width or not _NUMBER_RE.fullmatch(text):
        return None, cursor
    return float(text), cursor


def parse_digits(cursor: ParseCursor, width: int) -> tuple[Optional[int], ParseCursor]:
    """Parse exactly `width` decimal digits."""
    text, cursor = cursor.take(width)
    if len(text) != width or not _DIGITS_RE.fullmatch(text):
        return None, cursor
    return int(text), cursor


def decode_coordinate(
    cursor: ParseCursor,
    degree_digits: int,
    positive: str,
    negative: str,
) -> tuple[Optional[float], ParseCursor]:
    """Decode DD(D)MM.mm + hemisphere into signed decimal degrees.

    Returns None for the value if any part is missing or the hemisphere
    character is not one of `positive` / `negative`.
    """
    degrees, cursor = parse_digits(cursor, degree_digits)
    minutes, cursor = parse_fixed(cursor, MINUTES_LENGTH)
    hemisphere, cursor = cursor.take_char()
    if degrees is None or minutes is None or hemisphere is None:
        return None, cursor

    value = degrees + minutes / 60.0
    hemisphere = hemisphere.upper()
    if hemisphere == positive:
        return value, cursor
    if hemisphere == negative:
        return -value, cursor
    return None, cursor


def decode_latitude(cursor: ParseCursor) -> tuple[Optional[float], ParseCursor]:
    return decode_coordinate(cursor, 2, "N", "S")


def decode_longitude(cursor: ParseCursor) -> tuple[Optional[float], ParseCursor]:
    return decode_coordinate(cursor, 3, "E", "W")


def decode_field(
    cursor: ParseCursor,
    spec: FieldSpec,
    strict_length: bool = False,
) -> tuple[Optional[float], ParseCursor]:
    """Read one table-defined value and apply its scale and offset.

    Raises:
        FieldParseError: if strict_length is set and the line ends inside
            the field.
    """
    if strict_length and cursor.remaining < spec.digits:
        raise FieldParseError(
            f"{spec.db_name} needs {spec.digits} digits, "
            f"{cursor.remaining} left at offset {cursor.offset}"
        )
    raw, cursor = parse_fixed(cursor, spec.digits)
    if raw is None:
        return None, cursor
    if raw == 0 and spec.zero_means is not None:
        return spec.zero_means, cursor
    return raw * spec.scale + spec.offset, cursor


# --- Decoder ---

class PacketDecoder:
    """Decodes raw feed lines into weather reports.

    The reference position and filter radius are fixed per decoder; the
    decoder keeps no per-line state.
    """

    def __init__(
        self,
        reference: Optional[Position] = None,
        radius_km: Optional[float] = None,
    ):
        self.reference = reference
        self.radius_km = radius_km

    def decode_line(self, line: str) -> Packet:
        return self.decode(ParseCursor(line))

    def decode(self, cursor: ParseCursor) -> Packet:
        packet, _ = self.decode_with_cursor(cursor)
        return packet

    def decode_with_cursor(self, cursor: ParseCursor) -> tuple[Packet, ParseCursor]:
        """Decode one line, also returning where decoding stopped."""
        line = cursor.line

        name = cursor.text_before(">")
        if not name:
            return DecodeError("missing station name", line, cursor.offset), cursor

        info = cursor.advance(len(name)).after(":")
        if info is None:
            return DecodeError("missing information field", line, cursor.offset), cursor
        cursor = info
        if cursor.at_end:
            return DecodeError("missing discriminator", line, cursor.offset), cursor

        discriminator, cursor = cursor.take_char()
        if discriminator not in POSITION_DISCRIMINATORS:
            return DecodeError(
                f"unhandled discriminator {discriminator!r}", line, cursor.offset - 1,
            ), cursor

        report = WeatherReport(callsign=name)
        if discriminator in TIMESTAMPED_DISCRIMINATORS:
            report.timestamp, cursor = cursor.take(TIMESTAMP_LENGTH)

        latitude, cursor = decode_latitude(cursor)
        if latitude is None:
            return DecodeError(
                "latitude", line, cursor.offset,
                status=PacketStatus.ERROR_LATITUDE, report=report,
            ), cursor
        report.position.latitude = latitude

        report.symbol_table, cursor = cursor.take_char()

        longitude, cursor = decode_longitude(cursor)
        if longitude is None:
            return DecodeError(
                "longitude", line, cursor.offset,
                status=PacketStatus.ERROR_LONGITUDE, report=report,
            ), cursor
        report.position.longitude = longitude

        report.symbol_code, cursor = cursor.take_char()

        # Wind direction and speed are positional, without flags.
        value, cursor = decode_field(cursor, field_for(Quantity.WIND_DIRECTION))
        report.set_value(Quantity.WIND_DIRECTION, value)
        cursor = cursor.advance(1)
        value, cursor = decode_field(cursor, field_for(Quantity.WIND_SPEED))
        report.set_value(Quantity.WIND_SPEED, value)

        cursor = self._decode_flagged(report, cursor)

        self._locate(report)

        # A plain position report is a non-weather packet; it never enters
        # the aggregate or its station count.
        if not report.has_weather:
            return NotWeather("position report without weather", name), cursor
        return WeatherPacket(report), cursor

    def _decode_flagged(self, report: WeatherReport, cursor: ParseCursor) -> ParseCursor:
        """Decode flag + value pairs until an unknown flag or end of line."""
        while not cursor.at_end:
            flag, cursor = cursor.take_char()
            spec = FIELDS_BY_FLAG.get(flag)
            if spec is None:
                # The flag belongs to whatever follows the weather data.
                return cursor.rewind(1)
            try:
                value, cursor = decode_field(cursor, spec, strict_length=True)
            except FieldParseError as exc:
                logger.warning(
                    "Weather value decoding error: %s Index: %d\n\t%s",
                    exc, cursor.offset, cursor.line.rstrip("\n"),
                )
                return cursor
            if value is not None:
                report.set_value(spec.quantity, value)
        return cursor

    def _locate(self, report: WeatherReport) -> None:
        pos = report.position
        if not pos.locate_from(self.reference):
            return
        if self.radius_km is not None and pos.distance_km <= self.radius_km:
            pos.weight = proximity_weight(pos.distance_km, self.radius_km)
