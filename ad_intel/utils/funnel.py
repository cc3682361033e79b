"""Destination URL parsing and funnel-type classification.

The classification is a best-effort pattern match on the URL text. Rules are
checked in order and the first match wins. App store and tracking rules look
at the host only, so keywords in a landing page path do not count.
"""

import re
from typing import Optional
from urllib.parse import urlparse

TRACKING_LINK = "tracking_link"
APP_STORE = "app_store"
QUIZ_FUNNEL = "quiz_funnel"
LANDING_PAGE = "landing_page"
UNKNOWN = "unknown"

# (funnel_type, pattern, match on host only)
FUNNEL_RULES = [
    (APP_STORE, re.compile(r"apps\.apple\.com|itunes\.apple\.com|play\.google\.com"), True),
    (QUIZ_FUNNEL, re.compile(r"quiz|survey|assessment"), False),
    (TRACKING_LINK, re.compile(r"track|click|redirect|affiliate|shortlink|bit\.ly|(?:^|\.)go\."), True),
]


def classify_funnel_type(link_url: Optional[str]) -> str:
    """Classify a destination URL as app_store, quiz_funnel, tracking_link or landing_page."""
    if not link_url or not link_url.strip():
        return UNKNOWN

    lower = link_url.strip().lower()
    host, _ = parse_funnel_url(lower)
    for funnel_type, pattern, host_only in FUNNEL_RULES:
        if pattern.search(host if host_only else lower):
            return funnel_type
    return LANDING_PAGE


def parse_funnel_url(link_url: str) -> tuple[str, Optional[str]]:
    """
    Split a destination URL into (domain, path).

    URLs without a scheme and host cannot be parsed; the raw string is then
    used as the domain and the path is None.
    """
    try:
        parsed = urlparse(link_url)
        hostname = parsed.hostname
    except ValueError:
        return link_url, None

    if not parsed.scheme or not hostname:
        return link_url, None
    return hostname, parsed.path or "/"
