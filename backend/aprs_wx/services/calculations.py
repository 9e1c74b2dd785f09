"""Weather calculation services.

Unit conversion of APRS wire units to metric, dew point, humidex and wind
chill.

All temperatures in degrees Celsius unless noted.
"""

import math
from typing import Optional

from ..protocol.fields import Units

MPH_TO_KMH = 1.60934
INCH_100_TO_MM = 0.254

# Readings smaller than this (after conversion) are sensor noise.
NOISE_EPSILON = 0.01


def fahrenheit_to_celsius(temp_f: float) -> float:
    return (temp_f - 32.0) * (5.0 / 9.0)


def to_metric(value: float, units: Units) -> float:
    """Convert a wire-unit value to its metric equivalent.

    Fahrenheit becomes Celsius, mph becomes km/h and hundredths of an inch
    become mm.  Other units are already metric and pass through.  Results
    smaller than NOISE_EPSILON in magnitude are clamped to zero.
    """
    if units is Units.FAHRENHEIT:
        value = fahrenheit_to_celsius(value)
    elif units is Units.MPH:
        value = value * MPH_TO_KMH
    elif units is Units.INCH_100:
        value = value * INCH_100_TO_MM

    if abs(value) < NOISE_EPSILON:
        return 0.0
    return value


def dew_point(temp_c: float, humidity: float) -> float:
    """Approximate dew point from temperature and relative humidity.

    Uses the simple Lawrence approximation Td = T - (100 - RH) / 5,
    good to about 1C above 50% RH.
    """
    return temp_c - (100.0 - humidity) / 5.0


def humidex(temp_c: float, dew_point_c: float) -> float:
    """Canadian humidex from temperature and dew point (both Celsius).

    e = 6.11 * exp(5417.7530 * (1/273.16 - 1/Td_K))
    humidex = T + 0.5555 * (e - 10)
    """
    e = 6.11 * math.exp(5417.7530 * ((1.0 / 273.16) - (1.0 / (dew_point_c + 273.15))))
    return temp_c + 0.5555 * (e - 10.0)


def wind_chill(temp_c: float, wind_kmh: float) -> Optional[float]:
    """Environment Canada / NWS wind chill index.

    Args:
        temp_c: Air temperature in Celsius.
        wind_kmh: Wind (gust) speed in km/h.

    Returns:
        Wind chill in Celsius, or None for a negative wind speed.
    """
    if wind_kmh < 0:
        return None
    v = wind_kmh ** 0.16
    return 13.12 + 0.6215 * temp_c - 11.37 * v + 0.3965 * temp_c * v
