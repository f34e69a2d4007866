"""Browser access: the operations the engine needs, and the HTTP bridge client.

The browser itself is driven by a companion (the extension side) that exposes
tabs, cookies, sound playback and the toolbar indicator over a small REST API.
Calls are blocking `requests` calls run in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests

from . import config
from .errors import BrowserError, TabNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tab:
    id: int
    url: Optional[str] = None
    active: bool = False
    window_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Tab":
        return cls(
            id=int(data["id"]),
            url=data.get("url") or None,
            active=bool(data.get("active", False)),
            window_id=data.get("windowId"),
        )


@dataclass(frozen=True)
class Cookie:
    name: str
    domain: str
    path: str = "/"
    secure: bool = False
    store_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Cookie":
        return cls(
            name=data["name"],
            domain=data["domain"],
            path=data.get("path") or "/",
            secure=bool(data.get("secure", False)),
            store_id=data.get("storeId"),
        )

    @property
    def removal_url(self) -> str:
        """URL the cookie API needs to address this cookie for removal."""
        protocol = "https:" if self.secure else "http:"
        host = self.domain[1:] if self.domain.startswith(".") else self.domain
        return f"{protocol}//{host}{self.path}"


class BrowserClient(ABC):
    """Async browser operations. Failures raise BrowserError (TabNotFoundError for gone tabs)."""

    @abstractmethod
    async def query_tabs(self) -> list[Tab]:
        """Every open tab in every window."""

    @abstractmethod
    async def get_tab(self, tab_id: int) -> Tab:
        ...

    @abstractmethod
    async def update_tab(self, tab_id: int, url: str) -> None:
        ...

    @abstractmethod
    async def remove_tab(self, tab_id: int) -> None:
        ...

    @abstractmethod
    async def create_tab(self, url: str) -> Tab:
        ...

    @abstractmethod
    async def get_cookies(self, domain: str) -> list[Cookie]:
        ...

    @abstractmethod
    async def remove_cookie(self, cookie: Cookie) -> None:
        ...

    @abstractmethod
    async def play_sound(self, source: str, volume: float) -> None:
        ...

    @abstractmethod
    async def set_indicator(self, active: bool) -> None:
        """Toolbar icon: active while any tracked tab is open."""

    @abstractmethod
    async def query_idle_state(self, threshold_seconds: int) -> str:
        """Return "active", "idle" or "locked"."""


class HttpBrowserClient(BrowserClient):
    """BrowserClient backed by the companion's REST API."""

    def __init__(self, base_url: str = None, timeout: float = None, session: requests.Session = None):
        self.base_url = (base_url or config.BROWSER_BRIDGE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.BROWSER_BRIDGE_TIMEOUT
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BrowserError(f"{method} {path} failed: {e}") from e
        if resp.status_code == 404 and path.startswith("/tabs/"):
            raise TabNotFoundError(f"Tab not found: {path.rsplit('/', 1)[-1]}")
        if resp.status_code >= 400:
            raise BrowserError(f"{method} {path} returned {resp.status_code}: {resp.text[:200]}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise BrowserError(f"{method} {path} returned invalid JSON") from e

    async def _call(self, method: str, path: str, **kwargs):
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def query_tabs(self) -> list[Tab]:
        data = await self._call("GET", "/tabs")
        return [Tab.from_dict(item) for item in data or []]

    async def get_tab(self, tab_id: int) -> Tab:
        return Tab.from_dict(await self._call("GET", f"/tabs/{tab_id}"))

    async def update_tab(self, tab_id: int, url: str) -> None:
        await self._call("PATCH", f"/tabs/{tab_id}", json={"url": url})

    async def remove_tab(self, tab_id: int) -> None:
        await self._call("DELETE", f"/tabs/{tab_id}")

    async def create_tab(self, url: str) -> Tab:
        return Tab.from_dict(await self._call("POST", "/tabs", json={"url": url}))

    async def get_cookies(self, domain: str) -> list[Cookie]:
        data = await self._call("GET", "/cookies", params={"domain": domain})
        return [Cookie.from_dict(item) for item in data or []]

    async def remove_cookie(self, cookie: Cookie) -> None:
        await self._call("DELETE", "/cookies", json={
            "url": cookie.removal_url,
            "name": cookie.name,
            "storeId": cookie.store_id,
        })

    async def play_sound(self, source: str, volume: float) -> None:
        await self._call("POST", "/sound", json={"source": source, "volume": volume})

    async def set_indicator(self, active: bool) -> None:
        await self._call("POST", "/indicator", json={"active": active})

    async def query_idle_state(self, threshold_seconds: int) -> str:
        data = await self._call("GET", "/idle", params={"threshold": threshold_seconds})
        return (data or {}).get("state", "active")
