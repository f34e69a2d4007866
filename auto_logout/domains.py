"""Hostname extraction and tracked-domain matching."""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

# Placeholder tabs the browser opens on its own (e.g. after the last tab in a
# window is closed). Swept after closing tracked tabs.
BLANK_TAB_URLS = frozenset({
    "about:blank",
    "chrome://newtab/",
    "chrome://new-tab-page/",
    "chrome-search://local-ntp/local-ntp.html",
})

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def _strip_www(hostname: str) -> str:
    return hostname[4:] if hostname.startswith("www.") else hostname


def hostname_from_url(url: Optional[str]) -> Optional[str]:
    """Return the lower-cased hostname of `url` without a leading `www.`.

    Malformed URLs, and URLs without a scheme or host, yield None.
    """
    if not url:
        return None
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return _strip_www(hostname.lower())


def is_tracked(hostname: Optional[str], tracked_sites: Iterable[str]) -> bool:
    """True if `hostname` equals a tracked site or is a subdomain of one."""
    if not hostname:
        return False
    hostname = _strip_www(hostname.lower())
    return any(hostname == site or hostname.endswith(f".{site}") for site in tracked_sites)


def is_tracked_url(url: Optional[str], tracked_sites: Iterable[str]) -> bool:
    return is_tracked(hostname_from_url(url), tracked_sites)


def normalize_site(raw: str) -> Optional[str]:
    """Reduce a user-entered site to a bare domain ("https://www.X.com/a" -> "x.com")."""
    site = _SCHEME_RE.sub("", raw.strip()).lower()
    site = site.split("/", 1)[0]
    site = _strip_www(site)
    return site or None


def normalize_sites(raw_sites: Iterable[str]) -> list[str]:
    """Normalize a site list, dropping empties and duplicates but keeping order."""
    sites: list[str] = []
    for raw in raw_sites:
        site = normalize_site(raw)
        if site and site not in sites:
            sites.append(site)
    return sites


def cookie_domains(tracked_sites: Iterable[str]) -> list[str]:
    """Every domain whose cookies get evicted: each site and its www. variant."""
    domains: list[str] = []
    for site in tracked_sites:
        domains.extend([site, f"www.{site}"])
    return domains


def is_blank_tab_url(url: Optional[str]) -> bool:
    if not url:
        return True
    return url in BLANK_TAB_URLS or url.startswith("chrome://newtab/")
