"""
HTTP surface: tracking pixel, JS snippet, dashboard and health check.

Tracking never breaks the page that embeds it: if recording a hit fails the
error is logged and the pixel is served anyway.
"""

import logging
from typing import Optional

from flask import Flask, Response, abort, request

from .collector import Collector
from .config import Settings
from .errors import AnalyticsError
from .geo import GeoLookup
from .hit import hit_from_request
from .report import render_dashboard

logger = logging.getLogger(__name__)

# 1x1 transparent gif bytes (tracking pixel)
PIXEL_BYTES = (
    b"GIF89a"
    b"\x01\x00\x01\x00"
    b"\x80"
    b"\x00"
    b"\x00"
    b"\x00\x00\x00"
    b"\xff\xff\xff"
    b"\x21\xf9\x04\x01\x00\x00\x00\x00"
    b"\x2c\x00\x00\x00\x00\x01\x00\x01\x00\x00"
    b"\x02\x02\x44\x01\x00"
    b"\x3b"
)

SCRIPT_JS = (
    "new Image().src='{pixel}?u='+encodeURIComponent(location.href)"
    "+'&r='+encodeURIComponent(document.referrer)+'&d='+screen.width;"
)


def record(collector: Collector, salt: str, geo: Optional[GeoLookup], api: bool) -> bool:
    """Record the current request; errors are logged, not raised."""
    try:
        return collector.add(hit_from_request(request, salt, geo, api=api, tz=collector.tz))
    except (AnalyticsError, OSError):
        logger.exception("Failed to record hit")
        return False


def pick_cors_origin(request_origin: str | None, allowed_origins) -> str | None:
    """
    Return allowed origin if it matches our allowlist.
    """
    if not request_origin:
        return None
    for allowed in allowed_origins:
        if request_origin == allowed:
            return allowed
    return None


def create_app(
    collector: Collector,
    settings: Settings,
    geo: Optional[GeoLookup] = None,
) -> Flask:
    """Build the analytics Flask app around an existing Collector."""
    app = Flask(__name__)
    app.extensions["pixeltally"] = collector

    @app.after_request
    def add_cors_headers(resp):
        """
        Attach CORS headers if this was a cross-origin call from an allowed Origin.
        """
        origin = pick_cors_origin(request.headers.get("Origin"), settings.cors_allow_origins)
        if origin:
            req_method = request.headers.get("Access-Control-Request-Method", "GET,POST,OPTIONS")
            req_headers = request.headers.get("Access-Control-Request-Headers", "Content-Type")

            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers["Vary"] = "Origin"
            resp.headers["Access-Control-Allow-Credentials"] = "false"
            resp.headers["Access-Control-Allow-Methods"] = req_method
            resp.headers["Access-Control-Allow-Headers"] = req_headers
            resp.headers["Access-Control-Max-Age"] = "600"
        return resp

    # -------------------------------------------------------------------------
    # Ingest routes
    # -------------------------------------------------------------------------
    def pixel():
        """
        Tracking pixel endpoint. GET serves a 1x1 gif, POST/PUT answer 204.
          <img src="/pixel.gif?u=/path&r=https://referrer">
        """
        if request.method == "OPTIONS":
            return ("", 200)
        record(collector, settings.ip_salt, geo, api=True)
        if request.method != "GET":
            return ("", 204)
        resp = Response(PIXEL_BYTES, mimetype="image/gif")
        resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        resp.headers["Pragma"] = "no-cache"
        resp.headers["Expires"] = "Mon, 01 Jan 1990 00:00:00 GMT"
        resp.headers["Tk"] = "N"
        return resp

    app.add_url_rule(
        settings.pixel_path, "pixel", pixel, methods=["GET", "POST", "PUT", "OPTIONS"]
    )

    @app.route("/script.js")
    def script():
        pixel_url = request.host_url.rstrip("/") + settings.pixel_path
        return Response(SCRIPT_JS.format(pixel=pixel_url), mimetype="application/javascript")

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------
    @app.route("/stats")
    def stats():
        token = request.args.get("token", "")
        if not settings.dash_token or token != settings.dash_token:
            return abort(403)
        try:
            ctx = collector.report_context()
        except (AnalyticsError, OSError):
            logger.exception("Failed to load stats")
            return abort(500)
        return render_dashboard(ctx, days=settings.report_days)

    @app.route("/healthz")
    def healthz():
        return "ok", 200

    return app


def track_requests(
    app: Flask,
    collector: Collector,
    salt: str,
    geo: Optional[GeoLookup] = None,
) -> Flask:
    """
    Record every request served by ``app`` (middleware mode).

    Static files and ``/_`` paths are filtered by the Collector.
    """
    @app.before_request
    def _track():
        record(collector, salt, geo, api=False)

    return app


def app_from_env() -> Flask:
    """
    Composition root for WSGI servers:
      gunicorn 'pixeltally.app:app_from_env()'
    """
    settings = Settings.from_env()
    collector = Collector(settings.data_dir, tz=settings.zone, fsync=settings.fsync)
    return create_app(collector, settings, GeoLookup(settings.geoip_db_path))
