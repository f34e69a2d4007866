"""Budget enforcement side effects: cookie eviction and tab remediation.

Every browser call is one item. Items run concurrently, catch their own
failures and report an ItemResult, so one vanished tab or cookie error never
stops the rest of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Iterable, Optional

from . import config
from .browser import BrowserClient, Tab
from .domains import cookie_domains, is_blank_tab_url, is_tracked_url
from .settings import DEFAULT_REDIRECT_PAGE, EnforcementKind, Settings

logger = logging.getLogger(__name__)

NEW_TAB_URL = "chrome://newtab/"


@dataclass(frozen=True)
class ItemResult:
    target: str
    action: str
    ok: bool
    error: Optional[str] = None


@dataclass
class EnforcementReport:
    cookies: list[ItemResult] = field(default_factory=list)
    tabs: list[ItemResult] = field(default_factory=list)
    sweep: list[ItemResult] = field(default_factory=list)

    @property
    def items(self) -> list[ItemResult]:
        return self.cookies + self.tabs + self.sweep

    @property
    def failures(self) -> list[ItemResult]:
        return [item for item in self.items if not item.ok]

    def summary(self) -> str:
        def count(items):
            return f"{sum(1 for i in items if i.ok)}/{len(items)}"
        return f"cookies {count(self.cookies)}, tabs {count(self.tabs)}, sweep {count(self.sweep)}"


@dataclass
class CloseResult:
    closed_count: int
    items: list[ItemResult] = field(default_factory=list)


async def attempt(target: str, action: str, operation: Awaitable) -> ItemResult:
    """Await one browser operation, converting any failure into a failed ItemResult."""
    try:
        await operation
    except Exception as e:
        logger.warning(f"{action} {target} failed: {e}")
        return ItemResult(target, action, False, str(e))
    return ItemResult(target, action, True)


class Enforcer:
    """Runs the enforcement batch against a BrowserClient."""

    def __init__(self, browser: BrowserClient, sweep_delay: float = None):
        self.browser = browser
        self.sweep_delay = config.SWEEP_DELAY_SECONDS if sweep_delay is None else sweep_delay

    async def enforce(self, settings: Settings) -> EnforcementReport:
        """Evict cookies (awaited first), then apply the tab action to tracked tabs."""
        report = EnforcementReport()
        report.cookies = await self.evict_cookies(settings.tracked_sites)
        report.tabs, report.sweep = await self.remediate_tabs(settings)
        logger.info(f"Enforcement finished: {report.summary()}")
        return report

    # ---- Cookies ----

    async def evict_cookies(self, tracked_sites: Iterable[str]) -> list[ItemResult]:
        batches = await asyncio.gather(*(self._evict_domain(d) for d in cookie_domains(tracked_sites)))
        return [item for batch in batches for item in batch]

    async def _evict_domain(self, domain: str) -> list[ItemResult]:
        try:
            cookies = await self.browser.get_cookies(domain)
        except Exception as e:
            logger.warning(f"Error listing cookies for domain {domain}: {e}")
            return [ItemResult(domain, "list_cookies", False, str(e))]

        results = await asyncio.gather(*(
            attempt(f"{cookie.name}@{cookie.domain}", "remove_cookie", self.browser.remove_cookie(cookie))
            for cookie in cookies
        ))
        cleared = sum(1 for r in results if r.ok)
        logger.info(f"Cleared {cleared}/{len(results)} cookies for domain: {domain}")
        return list(results)

    # ---- Tabs ----

    async def _all_tabs(self) -> list[Tab]:
        try:
            return await self.browser.query_tabs()
        except Exception as e:
            logger.warning(f"Error querying tabs: {e}")
            return []

    async def remediate_tabs(self, settings: Settings) -> tuple[list[ItemResult], list[ItemResult]]:
        """Redirect or close every tracked tab. Returns (tab results, sweep results)."""
        action = settings.enforcement_action
        if action.kind == EnforcementKind.NONE:
            return [], []

        tabs = await self._all_tabs()
        tracked = [tab for tab in tabs if tab.url and is_tracked_url(tab.url, settings.tracked_sites)]

        if action.kind == EnforcementKind.REDIRECT:
            results = await asyncio.gather(*(
                attempt(f"tab:{tab.id}", "redirect", self.browser.update_tab(tab.id, action.url))
                for tab in tracked
            ))
            return list(results), []

        active_id = next((tab.id for tab in tracked if tab.active), None)
        results = await asyncio.gather(*(
            attempt(f"tab:{tab.id}", "close", self.browser.remove_tab(tab.id))
            for tab in tracked
        ))
        # Closing the last tab of a window makes the browser open a blank one
        await asyncio.sleep(self.sweep_delay)
        sweep = await self.sweep_blank_tabs(active_id)
        return list(results), sweep

    async def sweep_blank_tabs(
        self, current_tab_id: Optional[int] = None, keep_tab_id: Optional[int] = None
    ) -> list[ItemResult]:
        """Close blank/new-tab placeholders plus `current_tab_id` if it still exists."""
        tabs = await self._all_tabs()
        targets = [tab.id for tab in tabs if is_blank_tab_url(tab.url) and tab.id != keep_tab_id]
        if current_tab_id is not None and current_tab_id not in targets:
            if any(tab.id == current_tab_id for tab in tabs):
                targets.append(current_tab_id)
        results = await asyncio.gather(*(
            attempt(f"tab:{tab_id}", "sweep", self.browser.remove_tab(tab_id))
            for tab_id in targets
        ))
        return list(results)

    async def close_enforced_tabs(self, settings: Settings) -> CloseResult:
        """Close the tabs showing the redirect page ("back to work").

        The active one is closed last, by the sweep, after any other blocked
        tabs are gone. If nothing else was closed a new tab is opened first so
        the user is not left without one. Raises BrowserError if the tabs
        cannot be listed.
        """
        page = settings.redirect_to
        if settings.enforcement_action.kind != EnforcementKind.REDIRECT:
            page = DEFAULT_REDIRECT_PAGE

        tabs = await self.browser.query_tabs()
        blocked = [tab for tab in tabs if tab.url and page in tab.url]
        current_id = next((tab.id for tab in blocked if tab.active), None)
        logger.info(f"Found {len(blocked)} blocked page tabs to close (active: {current_id})")

        results = list(await asyncio.gather(*(
            attempt(f"tab:{tab.id}", "close", self.browser.remove_tab(tab.id))
            for tab in blocked
            if tab.id != current_id
        )))
        closed_count = sum(1 for r in results if r.ok)

        fallback_id = None
        if closed_count == 0:
            try:
                fallback_id = (await self.browser.create_tab(NEW_TAB_URL)).id
                logger.info("Opened new tab as fallback")
            except Exception as e:
                logger.warning(f"Failed to open new tab: {e}")

        await asyncio.sleep(self.sweep_delay)
        results.extend(await self.sweep_blank_tabs(current_id, keep_tab_id=fallback_id))
        return CloseResult(closed_count=closed_count, items=results)
