"""Application configuration using Pydantic Settings."""

import re
from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from .protocol.constants import (
    APRS_IS_HOST,
    APRS_IS_PORT,
    CONNECT_TIMEOUT,
    IDLE_TIMEOUT,
    UNCONFIGURED_CALLSIGN,
)
from .protocol.packet import Position

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/aprs-wx/aprs-wx.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"

_CALLSIGN_RE = re.compile(r"[A-Z0-9-]+")
_PASSCODE_RE = re.compile(r"-1|\d+")
_HOST_RE = re.compile(r"[A-Za-z0-9.\-:]+")
_DB_RE = re.compile(r"[A-Za-z0-9_]+")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # APRS-IS login
    callsign: str = UNCONFIGURED_CALLSIGN
    passcode: str = "-1"

    # Reference position and radius filter
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None

    # Feed
    server_host: str = APRS_IS_HOST
    server_port: int = APRS_IS_PORT
    connect_timeout: float = CONNECT_TIMEOUT
    idle_timeout: float = IDLE_TIMEOUT
    max_idle_reads: int = 120  # consecutive empty reads before reconnecting
    cycle_rate: int = 100  # lines per connection before reconnecting
    station_max_age: float = 3600.0

    # InfluxDB export (disabled unless host, port and db are all set)
    influx_host: Optional[str] = None
    influx_port: Optional[int] = None
    influx_db: Optional[str] = None
    influx_tls: bool = False
    influx_repeats: bool = False  # re-push on server keep-alives
    influx_measurement: str = "aggregate"

    log_level: str = "INFO"

    model_config = {"env_prefix": "APRS_WX_", "env_file": str(_ENV_FILE)}

    @field_validator("callsign")
    @classmethod
    def _check_callsign(cls, v: str) -> str:
        v = v.strip().upper()
        if not _CALLSIGN_RE.fullmatch(v):
            raise ValueError(f"invalid callsign {v!r}")
        return v

    @field_validator("passcode")
    @classmethod
    def _check_passcode(cls, v: str) -> str:
        v = v.strip()
        if not _PASSCODE_RE.fullmatch(v):
            raise ValueError("passcode must be numeric")
        return v

    @field_validator("influx_host")
    @classmethod
    def _check_influx_host(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HOST_RE.fullmatch(v):
            raise ValueError(f"invalid influx host {v!r}")
        return v

    @field_validator("influx_db")
    @classmethod
    def _check_influx_db(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _DB_RE.fullmatch(v):
            raise ValueError(f"invalid influx database name {v!r}")
        return v

    @field_validator("server_port", "influx_port")
    @classmethod
    def _check_port(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 < v < 65536:
            raise ValueError(f"port out of range: {v}")
        return v

    @field_validator("radius_km", "idle_timeout", "connect_timeout", "station_max_age")
    @classmethod
    def _check_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("cycle_rate", "max_idle_reads")
    @classmethod
    def _check_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def _check_radius_has_centre(self) -> "Settings":
        """A radius filter needs a centre point."""
        if self.radius_km is not None and self.reference_position is None:
            raise ValueError("radius_km requires latitude and longitude")
        return self

    @property
    def reference_position(self) -> Optional[Position]:
        if self.latitude is None or self.longitude is None:
            return None
        return Position(latitude=self.latitude, longitude=self.longitude)

    @property
    def filter_expression(self) -> str:
        """APRS-IS range filter r/lat/lon/km, or "" without a radius."""
        if self.radius_km is None or self.reference_position is None:
            return ""
        return f"r/{self.latitude:g}/{self.longitude:g}/{self.radius_km:g}"

    @property
    def influx_enabled(self) -> bool:
        return bool(self.influx_host and self.influx_port and self.influx_db)

    @property
    def is_configured(self) -> bool:
        return not self.callsign.startswith(UNCONFIGURED_CALLSIGN)


settings = Settings()
