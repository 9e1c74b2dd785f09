"""Weather field definitions for CWOP/APRS weather reports.

Each flagged value in the weather payload is defined by a FieldSpec entry:
the flag character that introduces it, its fixed digit width, the unit it is
reported in and the scale applied after parsing.  The decoder and the unit
conversion both walk WEATHER_FIELDS, so adding a quantity is a table edit.

Reference: http://www.aprs.org/doc/APRS101.PDF  (Chapter 12 - Weather)
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class Quantity(IntEnum):
    """Measured quantities; the value is the slot index in a report."""
    WIND_DIRECTION = 0
    WIND_SPEED = 1
    WIND_GUST = 2
    TEMPERATURE = 3
    HUMIDITY = 4
    RAIN_HOUR = 5
    RAIN_DAY = 6
    RAIN_MIDNIGHT = 7
    PRESSURE = 8
    LUMINOSITY = 9


QUANTITY_COUNT = len(Quantity)


class Units(Enum):
    """Unit tags for wire values (after scaling)."""
    DEGREES = "deg"
    MPH = "mph"
    FAHRENHEIT = "F"
    PERCENT = "%"
    INCH_100 = "in/100"
    HPA = "hPa"
    WATTS_PER_SQM = "W/m2"


@dataclass(frozen=True)
class FieldSpec:
    """Definition of a single flagged weather value."""
    quantity: Quantity
    flag: str
    digits: int
    db_name: str
    units: Units
    scale: float = 1.0
    precision: int = 0
    offset: float = 0.0  # added after scaling
    zero_means: Optional[float] = None  # raw 0 encodes this value


WEATHER_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(Quantity.WIND_DIRECTION, "c", 3, "WDir", Units.DEGREES),
    FieldSpec(Quantity.WIND_SPEED, "s", 3, "WSpeed", Units.MPH),
    FieldSpec(Quantity.WIND_GUST, "g", 3, "WGust", Units.MPH),
    FieldSpec(Quantity.TEMPERATURE, "t", 3, "Temp", Units.FAHRENHEIT),
    FieldSpec(Quantity.HUMIDITY, "h", 2, "RelHum", Units.PERCENT, zero_means=100.0),
    FieldSpec(Quantity.RAIN_HOUR, "r", 3, "RHour", Units.INCH_100, precision=2),
    FieldSpec(Quantity.RAIN_DAY, "p", 3, "RDay", Units.INCH_100, precision=2),
    FieldSpec(Quantity.RAIN_MIDNIGHT, "P", 3, "RainMid", Units.INCH_100, precision=2),
    FieldSpec(Quantity.PRESSURE, "b", 5, "BarroP", Units.HPA, scale=0.1, precision=1),
    FieldSpec(Quantity.LUMINOSITY, "L", 3, "Lumin", Units.WATTS_PER_SQM),
    # High-range luminosity shares the LUMINOSITY slot.
    FieldSpec(Quantity.LUMINOSITY, "l", 3, "Lumin", Units.WATTS_PER_SQM, offset=1000.0),
)

FIELDS_BY_FLAG: dict[str, FieldSpec] = {f.flag: f for f in WEATHER_FIELDS}

# One entry per quantity: the first table entry wins (skips the "l" variant).
PRIMARY_FIELDS: dict[Quantity, FieldSpec] = {}
for _field in WEATHER_FIELDS:
    PRIMARY_FIELDS.setdefault(_field.quantity, _field)
del _field


def field_for(quantity: Quantity) -> FieldSpec:
    """Return the primary FieldSpec for a quantity."""
    return PRIMARY_FIELDS[quantity]
