"""Activity detection: is any open tab on a tracked site?"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .browser import Tab
from .domains import hostname_from_url, is_tracked


@dataclass(frozen=True)
class TabActivitySnapshot:
    any_tracked_tab_open: bool = False
    tracked_tab_ids: tuple[int, ...] = field(default_factory=tuple)


def scan(open_tabs: Iterable[Tab], tracked_sites: Iterable[str]) -> TabActivitySnapshot:
    """Classify every tab across every window.

    Window focus and idle state are deliberately ignored. Tabs without a URL
    are skipped.
    """
    sites = list(tracked_sites)
    tracked_ids: list[int] = []
    for tab in open_tabs:
        if not tab.url:
            continue
        if is_tracked(hostname_from_url(tab.url), sites) and tab.id not in tracked_ids:
            tracked_ids.append(tab.id)
    return TabActivitySnapshot(
        any_tracked_tab_open=bool(tracked_ids),
        tracked_tab_ids=tuple(tracked_ids),
    )
