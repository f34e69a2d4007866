"""Exception types raised by the storage layer and the browser bridge."""


class AutoLogoutError(Exception):
    """Base class for errors raised by this package."""


class StoreError(AutoLogoutError):
    """Persistence read or write failed."""


class BrowserError(AutoLogoutError):
    """A browser operation (tab, cookie, sound, idle query) failed."""


class TabNotFoundError(BrowserError):
    """The tab no longer exists."""
