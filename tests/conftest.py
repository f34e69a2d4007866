"""Shared fixtures: an in-memory browser, temp SQLite stores, and a fixed clock."""

import asyncio
import os
import tempfile
from dataclasses import replace
from datetime import date
from pathlib import Path

# Keep the crash log and default DB out of the home directory (read at import time)
_tmp = Path(tempfile.gettempdir())
os.environ.setdefault("AUTO_LOGOUT_CRASH_LOG", str(_tmp / "auto-logout-test-crash.log"))
os.environ.setdefault("AUTO_LOGOUT_DB", str(_tmp / "auto-logout-test.db"))

import pytest

from auto_logout.browser import BrowserClient, Cookie, Tab
from auto_logout.engine import BudgetEngine
from auto_logout.enforcement import Enforcer
from auto_logout.errors import BrowserError, TabNotFoundError
from auto_logout.store import KeyValueStore


def run(coro):
    """Run an async function in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FakeBrowser(BrowserClient):
    """In-memory BrowserClient.

    `fail` maps a method name to the exception it raises; `fail_tab_ids` makes
    update/remove fail for specific tabs; `fail_cookie_domains` makes cookie
    listing fail per domain. Closing the last tab of a window opens a new-tab
    placeholder there, like a real browser.
    """

    def __init__(self, tabs=None, cookies=None):
        self.tabs: dict[int, Tab] = {tab.id: tab for tab in tabs or []}
        self.cookies: list[Cookie] = list(cookies or [])
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self.fail_tab_ids: set[int] = set()
        self.fail_cookie_domains: set[str] = set()
        self.sounds: list[tuple] = []
        self.indicator_updates: list[bool] = []
        self.idle_state = "active"
        self.next_tab_id = 1000
        # Set by tests that need to hold a cycle inside query_tabs
        self.query_entered: asyncio.Event = None
        self.query_gate: asyncio.Event = None

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    def call_names(self):
        return [call[0] for call in self.calls]

    async def query_tabs(self):
        self._record("query_tabs")
        if self.query_entered is not None:
            self.query_entered.set()
        if self.query_gate is not None:
            await self.query_gate.wait()
        return list(self.tabs.values())

    async def get_tab(self, tab_id):
        self._record("get_tab", tab_id)
        if tab_id not in self.tabs:
            raise TabNotFoundError(f"Tab not found: {tab_id}")
        return self.tabs[tab_id]

    async def update_tab(self, tab_id, url):
        self._record("update_tab", tab_id, url)
        if tab_id in self.fail_tab_ids or tab_id not in self.tabs:
            raise TabNotFoundError(f"Tab not found: {tab_id}")
        self.tabs[tab_id] = replace(self.tabs[tab_id], url=url)

    async def remove_tab(self, tab_id):
        self._record("remove_tab", tab_id)
        if tab_id in self.fail_tab_ids or tab_id not in self.tabs:
            raise TabNotFoundError(f"Tab not found: {tab_id}")
        window_id = self.tabs.pop(tab_id).window_id
        if window_id is not None and not any(t.window_id == window_id for t in self.tabs.values()):
            self._open("chrome://newtab/", window_id)

    async def create_tab(self, url):
        self._record("create_tab", url)
        return self._open(url, window_id=1)

    def _open(self, url, window_id):
        tab = Tab(id=self.next_tab_id, url=url, active=False, window_id=window_id)
        self.tabs[tab.id] = tab
        self.next_tab_id += 1
        return tab

    async def get_cookies(self, domain):
        self._record("get_cookies", domain)
        if domain in self.fail_cookie_domains:
            raise BrowserError(f"cookie store unavailable for {domain}")
        return [c for c in self.cookies if c.domain.lstrip(".") == domain]

    async def remove_cookie(self, cookie):
        self._record("remove_cookie", cookie.name, cookie.domain)
        if cookie in self.cookies:
            self.cookies.remove(cookie)

    async def play_sound(self, source, volume):
        self._record("play_sound", source, volume)
        self.sounds.append((source, volume))

    async def set_indicator(self, active):
        self._record("set_indicator", active)
        self.indicator_updates.append(active)

    async def query_idle_state(self, threshold_seconds):
        self._record("query_idle_state", threshold_seconds)
        return self.idle_state


class FixedClock:
    """Injectable `today` callable; tests move it across midnight."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


def tab(tab_id, url, active=False, window_id=1):
    return Tab(id=tab_id, url=url, active=active, window_id=window_id)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_state.db"


@pytest.fixture
def store(db_path):
    """Initialized two-tier store in a temp DB."""
    kv = KeyValueStore(db_path)
    run(kv.init())
    return kv


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def clock():
    return FixedClock(date(2024, 1, 2))


@pytest.fixture
def make_engine(store, browser, clock):
    """Build (and load) an engine on the temp store and fake browser."""
    def _make(**overrides):
        kwargs = dict(
            store=store,
            browser=browser,
            enforcer=Enforcer(overrides.get("browser", browser), sweep_delay=0),
            today=clock,
        )
        kwargs.update(overrides)
        engine = BudgetEngine(**kwargs)
        run(engine.load())
        return engine
    return _make
