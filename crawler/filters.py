"""URL scope and skip rules shared by the crawler and the orchestrator."""

from __future__ import annotations

import urllib.parse as urlparse
from collections.abc import Iterable

# Query parameters that mark tracking/advertising links. ``utm_*`` is matched
# by prefix, the rest by exact name.
TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = {
    "clickid",
    "ref",
    "referrer",
    "gclid",
    "fbclid",
    "yclid",
    "ysclid",
    "msclkid",
    "dclid",
    "igshid",
    "mc_cid",
    "mc_eid",
    "openstat",
    "_openstat",
    "_ga",
    "_gl",
    "twclid",
    "ttclid",
    "srsltid",
}

AD_DOMAINS = {
    "doubleclick.net",
    "googleadservices.com",
    "googlesyndication.com",
    "google-analytics.com",
    "googletagmanager.com",
    "adservice.google.com",
    "mc.yandex.ru",
    "an.yandex.ru",
    "top-fwz1.mail.ru",
    "counter.yadro.ru",
    "connect.facebook.net",
    "ads.vk.com",
}

CHECKOUT_PATH_MARKERS = ("/basket", "/cart", "/checkout")

DOCUMENT_EXTENSIONS = (".pdf", ".docx", ".xlsx", ".zip", ".rar")

PSEUDO_SCHEMES = ("tel:", "javascript:")


def clean_url(url: str) -> str:
    """Strip the fragment and the query string from ``url``."""

    return url.split("#", 1)[0].split("?", 1)[0].strip()


def is_pseudo_link(href: str) -> bool:
    return (href or "").strip().lower().startswith(PSEUDO_SCHEMES)


def is_document_link(url: str) -> bool:
    return urlparse.urlsplit(url).path.lower().endswith(DOCUMENT_EXTENSIONS)


def relative_path(site_url: str, url: str) -> str:
    """Path of ``url`` relative to ``site_url``; absolute URL when outside it."""

    if url == site_url:
        return "/"
    if url.startswith(site_url + "/"):
        return url[len(site_url):]
    return url


def _host_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in domains)


def has_tracking_params(url: str) -> bool:
    query = urlparse.urlsplit(url).query
    for name, _ in urlparse.parse_qsl(query, keep_blank_values=True):
        lowered = name.lower()
        if lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES):
            return True
    return False


def is_ad_domain(url: str) -> bool:
    host = (urlparse.urlsplit(url).hostname or "").lower()
    return bool(host) and _host_matches(host, AD_DOMAINS)


def is_checkout_path(url: str) -> bool:
    path = urlparse.urlsplit(url).path.lower()
    return any(marker in path for marker in CHECKOUT_PATH_MARKERS)


class UrlFilter:
    """Decide which URLs the crawler may follow.

    ``site_urls`` are the configured site prefixes (no trailing slash).
    """

    def __init__(self, site_urls: Iterable[str]) -> None:
        self.site_urls = tuple(url.rstrip("/") for url in site_urls)

    def in_scope(self, url: str) -> bool:
        return any(url == prefix or url.startswith(prefix + "/") for prefix in self.site_urls)

    def should_skip(self, url: str) -> bool:
        """``True`` for out-of-scope, tracking, ad-network and checkout URLs."""

        if not url or is_pseudo_link(url):
            return True
        if not self.in_scope(clean_url(url)):
            return True
        return has_tracking_params(url) or is_ad_domain(url) or is_checkout_path(url)
