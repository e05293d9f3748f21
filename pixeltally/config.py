"""
Service settings, read from the environment.

    ANALYTICS_DIR             data directory holding log.csv and stats.csv
    ANALYTICS_TZ              IANA time zone used to cut days (default UTC)
    ANALYTICS_DASH_TOKEN      token required by the /stats dashboard (empty disables it)
    ANALYTICS_IP_SALT         secret mixed into session fingerprints
    ANALYTICS_PIXEL_PATH      route of the tracking pixel
    ANALYTICS_FSYNC           "1" to fsync every log line
    ANALYTICS_LOG_LEVEL       logging level name
    ANALYTICS_REPORT_DAYS     days of history shown on the dashboard
    GEOIP_DB_PATH             MaxMind GeoLite2-Country database
    CORS_ALLOW_ORIGINS        comma separated origin allowlist
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigError

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
DEFAULT_DIR = "data"
DEFAULT_TZ = "UTC"
DEFAULT_DASH_TOKEN = "changeme"
DEFAULT_IP_SALT = "please-change-me-and-keep-secret"
DEFAULT_PIXEL_PATH = "/pixel.gif"
DEFAULT_GEOIP_DB_PATH = "/geoip/GeoLite2-Country.mmdb"
DEFAULT_REPORT_DAYS = 30

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Validated, immutable service configuration."""

    data_dir: str = DEFAULT_DIR
    timezone: str = DEFAULT_TZ
    dash_token: str = DEFAULT_DASH_TOKEN
    ip_salt: str = DEFAULT_IP_SALT
    pixel_path: str = DEFAULT_PIXEL_PATH
    geoip_db_path: str = DEFAULT_GEOIP_DB_PATH
    cors_allow_origins: Tuple[str, ...] = field(default_factory=tuple)
    fsync: bool = False
    log_level: str = "INFO"
    report_days: int = DEFAULT_REPORT_DAYS

    def __post_init__(self):
        if not self.data_dir:
            raise ConfigError("Data directory must not be empty")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown time zone: {self.timezone!r}") from e
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level!r}")
        if not self.pixel_path.startswith("/"):
            raise ConfigError(f"Pixel path must start with '/': {self.pixel_path!r}")
        if self.report_days < 1:
            raise ConfigError(f"Report days must be positive: {self.report_days}")

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "Settings":
        origins = environ.get("CORS_ALLOW_ORIGINS", "").split(",")
        try:
            report_days = int(environ.get("ANALYTICS_REPORT_DAYS", DEFAULT_REPORT_DAYS))
        except ValueError as e:
            raise ConfigError("ANALYTICS_REPORT_DAYS must be an integer") from e
        return cls(
            data_dir=environ.get("ANALYTICS_DIR", DEFAULT_DIR),
            timezone=environ.get("ANALYTICS_TZ", DEFAULT_TZ),
            dash_token=environ.get("ANALYTICS_DASH_TOKEN", DEFAULT_DASH_TOKEN),
            ip_salt=environ.get("ANALYTICS_IP_SALT", DEFAULT_IP_SALT),
            pixel_path=environ.get("ANALYTICS_PIXEL_PATH", DEFAULT_PIXEL_PATH),
            geoip_db_path=environ.get("GEOIP_DB_PATH", DEFAULT_GEOIP_DB_PATH),
            cors_allow_origins=tuple(o.strip() for o in origins if o.strip()),
            fsync=environ.get("ANALYTICS_FSYNC", "").lower() in _TRUE,
            log_level=environ.get("ANALYTICS_LOG_LEVEL", "INFO"),
            report_days=report_days,
        )
