"""Auto-Logout: a shared daily time budget for distracting sites.

One timer is shared across every tracked site. When it runs out the sites'
cookies are cleared and their tabs are redirected or closed.
"""

from .engine import BudgetEngine, StatusSnapshot
from .errors import AutoLogoutError, BrowserError, StoreError, TabNotFoundError
from .settings import EnforcementAction, EnforcementKind, Settings, SettingsProvider
from .store import KeyValueStore
from .timer import BudgetTimer, EnginePhase, format_remaining

__all__ = [
    "AutoLogoutError",
    "BrowserError",
    "BudgetEngine",
    "BudgetTimer",
    "EnforcementAction",
    "EnforcementKind",
    "EnginePhase",
    "KeyValueStore",
    "Settings",
    "SettingsProvider",
    "StatusSnapshot",
    "StoreError",
    "TabNotFoundError",
    "format_remaining",
]
