"""
IP address to ISO country code, using a local MaxMind database.
"""

import logging
import os
import threading
from typing import Optional

import geoip2.database
import geoip2.errors

logger = logging.getLogger(__name__)


class GeoLookup:
    """
    Lazily opened GeoLite2-Country reader.

    A missing database file is not an error: every lookup then returns "".
    """

    def __init__(self, db_path: Optional[str]):
        self.db_path = db_path
        self._reader = None
        self._opened = False
        self._lock = threading.Lock()

    def _get_reader(self):
        with self._lock:
            if not self._opened:
                self._opened = True
                if self.db_path and os.path.exists(self.db_path):
                    self._reader = geoip2.database.Reader(self.db_path)
                    logger.info(f"Loaded GeoIP database {self.db_path}")
                else:
                    logger.warning(f"GeoIP database {self.db_path!r} not found, countries disabled")
            return self._reader

    def country(self, ip: str) -> str:
        """
        Return the 2-letter country code for ``ip``, or "" if unknown.
        Only the code is ever stored, never the address.
        """
        reader = self._get_reader()
        if reader is None or not ip:
            return ""
        try:
            resp = reader.country(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return ""
        code = resp.country.iso_code or resp.registered_country.iso_code
        return code or ""

    def __call__(self, ip: str) -> str:
        return self.country(ip)

    def close(self) -> None:
        with self._lock:
            if self._reader is not None:
                self._reader.close()
                self._reader = None
