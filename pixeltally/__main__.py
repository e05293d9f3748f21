"""
Run the analytics service.

Usage examples:
  # Defaults from the environment (ANALYTICS_DIR, ANALYTICS_TZ, ...)
  python -m pixeltally

  # Explicit data directory and time zone
  python -m pixeltally --dir /var/lib/pixeltally --tz Europe/Zurich --port 8080
"""

import argparse
import dataclasses
import logging
import os

from .app import create_app
from .collector import Collector
from .config import Settings
from .geo import GeoLookup


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Cookie-less web analytics service")
    ap.add_argument("--host", default="0.0.0.0")
    ap.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8000")))
    ap.add_argument("--dir", help="Directory to store stats (default: $ANALYTICS_DIR)")
    ap.add_argument("--tz", help="Time zone used to cut days (default: $ANALYTICS_TZ)")
    ap.add_argument("--salt", help="Secret for session fingerprints (default: $ANALYTICS_IP_SALT)")
    return ap.parse_args(argv)


def build_settings(args) -> Settings:
    settings = Settings.from_env()
    overrides = {
        "data_dir": args.dir,
        "timezone": args.tz,
        "ip_salt": args.salt,
    }
    return dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v})


def main(argv=None):
    args = parse_args(argv)
    settings = build_settings(args)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    geo = GeoLookup(settings.geoip_db_path)
    with Collector(settings.data_dir, tz=settings.zone, fsync=settings.fsync) as collector:
        app = create_app(collector, settings, geo)
        logging.getLogger(__name__).info(
            f"Started on {args.host}:{args.port}, data in {settings.data_dir}"
        )
        # Dev server, production uses gunicorn with app_from_env()
        app.run(host=args.host, port=args.port)
    geo.close()


if __name__ == "__main__":
    main()
