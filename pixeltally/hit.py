"""
Turn an HTTP request into a normalized, anonymous Hit.

Nothing personal is kept: the IP address is only used for the country lookup
and, together with the user agent and the current date, for a salted session
fingerprint that changes every day.
"""

import hashlib
import hmac
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional
from urllib.parse import parse_qs, urlparse

from .log import Hit

MOBILE = "mobile"
DESKTOP = "desktop"

# Request headers carrying the real client address behind a proxy
IP_HEADERS = ("X-Real-IP", "X-Forwarded-For")
# User-agent substrings only found on mobile devices
MOBILE_UAS = ("iPhone", "iPad", "Android")
# Widest screen still counted as mobile, from Bootstrap's lg breakpoint
MOBILE_BREAKPOINT = 992
SKIP_SUBDOMAINS = ("www.", "www1.", "www2.", "www3.", "www4.", "m.", "l.", "lm.", "i.", "old.")
BOT_AGENTS = ("bot", "crawler", "spider", "spyder", "search", "worm", "fetch", "nutch",
              "http://", "https://")

MAX_PATH_LENGTH = 200
MAX_REF_LENGTH = 64

CountryLookup = Callable[[str], str]


def client_ip(req) -> str:
    """Most likely real client address of a Flask/Werkzeug request."""
    for header in IP_HEADERS:
        fields = req.headers.get(header, "").split()
        if fields:
            ip = fields[0].rstrip(",")
            if ip:
                return ip
    return req.remote_addr or ""


def session_id(ip: str, user_agent: str, salt: str, day: date) -> str:
    """
    Daily session fingerprint: HMAC of IP, date and user agent.
    Returns 8 hex chars, enough to tell visitors of one site apart.
    """
    msg = f"{ip}|{day:%Y%m%d}|{user_agent}"
    digest = hmac.new(salt.encode("utf-8"), msg.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:8]


def is_bot(user_agent: str) -> bool:
    ua = user_agent.lower()
    return any(b in ua for b in BOT_AGENTS)


def is_mobile(user_agent: str, screen_width: Optional[str] = None) -> bool:
    if any(m in user_agent for m in MOBILE_UAS):
        return True
    try:
        width = int(screen_width or 0)
    except ValueError:
        return False
    return 0 < width < MOBILE_BREAKPOINT


def accept_language_country(header: str) -> str:
    """
    Country guess from Accept-Language: "de" -> "DE", "en-GB" -> "GB".
    Weighted entries (with ";q=") are ignored.
    """
    for lang in header.split(","):
        lang = lang.strip()
        if ";" in lang:
            continue
        if len(lang) == 2 and lang.isalpha():
            return lang.upper()
        if len(lang) == 5 and lang[2] == "-" and lang[3:].isalpha():
            return lang[3:].upper()
    return ""


def clean_path(path: str) -> str:
    """Bound the path and keep it safe for the comma-separated log."""
    path = path.replace(",", "%2C").replace("\n", "").replace("\r", "")
    if not path:
        return "/"
    return path[:MAX_PATH_LENGTH - 1]


def clean_referrer(raw: Optional[str]) -> str:
    """
    Reduce a referrer URL (or bare utm_source) to a host name, folding
    well-known sites to one name.
    """
    if not raw:
        return ""
    if "://" not in raw:
        raw = "//" + raw
    try:
        host = urlparse(raw).hostname or ""
    except ValueError:
        return ""
    for sub in SKIP_SUBDOMAINS:
        if host.startswith(sub):
            host = host[len(sub):]
            break
    if (host.endswith(".google.com")
            or host.startswith("google.co.")
            or host.startswith("google.com.")
            or (len(host) < 13 and host.startswith("google."))
            or host in ("com.google.android.googlequicksearchbox", "com.google.android.gm")):
        host = "google.com"
    elif host.endswith(".bing.com"):
        host = "bing.com"
    elif host.endswith(".duckduckgo.com"):
        host = "duckduckgo.com"
    elif host.endswith(".reddit.com"):
        host = "reddit.com"
    elif host.endswith(".wikipedia.org"):
        host = "wikipedia.org"
    return host.replace(",", "")[:MAX_REF_LENGTH]


def clean_country(code: str) -> str:
    code = code.strip().upper()
    return code if len(code) == 2 and code.isalpha() else ""


def hit_from_request(
    req,
    salt: str,
    geo: Optional[CountryLookup] = None,
    now: Optional[datetime] = None,
    api: bool = True,
    tz: tzinfo = timezone.utc,
) -> Hit:
    """
    Build a Hit from a request.

    Args:
        req: Flask/Werkzeug request
        salt: Secret for the session fingerprint
        geo: IP -> country code lookup
        now: Hit timestamp (default: current UTC time)
        api: True for pixel/API calls, where the page is given by the ``u``
            parameter or the Referer; False when tracking the request itself
        tz: Zone whose calendar day scopes the session fingerprint; must be
            the zone the Collector cuts periods in

    Returns:
        Hit. Bots get a Hit with an empty path, which the Collector ignores.
    """
    now = now or datetime.now(timezone.utc)
    user_agent = req.headers.get("User-Agent", "")
    if is_bot(user_agent):
        return Hit(timestamp=now)

    if api:
        page = req.args.get("u") or req.headers.get("Referer", "")
        u = urlparse(page)
        path = u.path
        ref = parse_qs(u.query).get("utm_source", [""])[0] or req.values.get("r", "")
    else:
        path = req.path
        ref = req.args.get("utm_source", "")

    ip = client_ip(req)

    country = clean_country(req.values.get("c", "")) if api else ""
    if not country and geo is not None:
        country = geo(ip)
    if not country:
        country = accept_language_country(req.headers.get("Accept-Language", ""))

    mobile = is_mobile(user_agent, req.values.get("d") if api else None)
    return Hit(
        timestamp=now,
        path=clean_path(path),
        session=session_id(ip, user_agent, salt, now.astimezone(tz).date()),
        referrer=clean_referrer(ref),
        country=country,
        device=MOBILE if mobile else DESKTOP,
    )
