"""
BudgetEngine: the shared timer and enforcement engine.

Owns the durable state (timer, break mode, pause flag), runs one evaluation
cycle per second, and serves the query/command contract used by every
presentation surface. Ticks and commands share one asyncio.Lock, so a command
arriving mid-tick is applied after the tick, never inside it.

Per cycle:
    daily rollover -> settings -> scan tabs -> accumulate -> warn / enforce
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import BaseModel

from . import config
from .browser import BrowserClient
from .detector import TabActivitySnapshot, scan
from .domains import hostname_from_url, is_tracked
from .enforcement import EnforcementReport, Enforcer
from .errors import TabNotFoundError
from .settings import Settings, SettingsProvider
from .store import LOCAL, KeyValueStore
from .timer import BudgetTimer, EnginePhase, TickResult, TimerEvent

logger = logging.getLogger(__name__)

# Fast-tier keys and their defaults
LOCAL_DEFAULTS = {
    "sharedTimerState": None,
    "breakMode": False,
    "timerPaused": False,
}


@dataclass
class ContextSignals:
    """What the browser last told us about focus and the active tab. Informational only."""

    active_tab_id: Optional[int] = None
    active_domain: Optional[str] = None
    window_focused: bool = True
    user_active: bool = True


class StatusSnapshot(BaseModel):
    domain: Optional[str] = None
    is_tracked: bool = False
    seconds_used: int = 0
    limit_seconds: int = 0
    remaining_seconds: int = 0
    window_focused: bool = False
    user_active: bool = False
    break_mode: bool = False
    paused: bool = False
    phase: EnginePhase = EnginePhase.IDLE
    timer_active: bool = False
    is_shared_timer: bool = True


def degraded_snapshot() -> StatusSnapshot:
    limit = Settings().budget_seconds(False)
    return StatusSnapshot(limit_seconds=limit, remaining_seconds=limit)


class BudgetEngine:
    """Shared budget timer plus enforcement, driven by a 1 Hz scheduler job."""

    def __init__(
        self,
        store: KeyValueStore,
        browser: BrowserClient,
        settings_provider: SettingsProvider = None,
        enforcer: Enforcer = None,
        today: Callable[[], date] = None,
    ) -> None:
        self.store = store
        self.browser = browser
        self.settings_provider = settings_provider or SettingsProvider(store)
        self.enforcer = enforcer or Enforcer(browser)
        self._today = today or date.today

        # Durable state (restored by load())
        self.timer = BudgetTimer()
        self.break_mode: bool = False
        self.paused: bool = False

        # Ephemeral state
        self.signals = ContextSignals()
        self.timer_active: bool = False
        self.phase: EnginePhase = EnginePhase.IDLE
        self.last_report: Optional[EnforcementReport] = None

        self._lock = asyncio.Lock()
        self._cycle_running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def today_str(self) -> str:
        return self._today().isoformat()

    async def load(self) -> None:
        """Restore persisted state, then run the daily boundary check."""
        try:
            data = await self.store.get(LOCAL, LOCAL_DEFAULTS)
        except Exception as e:
            logger.error(f"Error loading shared timer state: {e}")
            data = dict(LOCAL_DEFAULTS)
        self.timer = BudgetTimer.from_dict(data["sharedTimerState"])
        self.break_mode = bool(data["breakMode"])
        self.paused = bool(data["timerPaused"])
        logger.info(
            f"Loaded state: {self.timer.seconds_used}s used, "
            f"break_mode={self.break_mode}, paused={self.paused}"
        )
        async with self._lock:
            await self._check_daily_reset(self.today_str())

    def register_jobs(self, scheduler: AsyncIOScheduler) -> None:
        """Register the tick, the midnight wake-up and the idle poll."""
        # max_instances=1: never overlap cycles. coalesce + short grace: late
        # ticks are dropped, not replayed.
        scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=config.TICK_INTERVAL_SECONDS),
            id="budget_tick",
            name="Budget tick",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=1,
            replace_existing=True,
        )
        scheduler.add_job(
            self.daily_reset_check,
            trigger=CronTrigger(hour=0, minute=0),
            id="daily_reset",
            name="Daily reset",
            coalesce=True,
            replace_existing=True,
        )
        scheduler.add_job(
            self.poll_idle_state,
            trigger=IntervalTrigger(seconds=config.IDLE_POLL_SECONDS),
            id="idle_poll",
            name="Idle poll",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _save(self, values: dict) -> None:
        try:
            await self.store.set(LOCAL, values)
        except Exception as e:
            logger.error(f"Error saving state {sorted(values)}: {e}")

    async def _persist_timer(self) -> None:
        await self._save({"sharedTimerState": self.timer.to_dict()})

    async def _check_daily_reset(self, today: str) -> Optional[TickResult]:
        result = self.timer.check_daily_reset(today)
        if result is not None:
            await self._persist_timer()
            logger.info(f"Daily timer reset for {today}")
        return result

    # ------------------------------------------------------------------
    # Tick cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> Optional[TickResult]:
        """One evaluation cycle. Never raises; failures are logged with traceback."""
        if self._cycle_running:
            logger.debug("Tick skipped: previous cycle still running")
            return None
        self._cycle_running = True
        try:
            async with self._lock:
                return await self._cycle()
        except Exception as e:
            logger.exception(f"Error in tick: {e}")
            return None
        finally:
            self._cycle_running = False

    async def _cycle(self) -> TickResult:
        today = self.today_str()
        rollover = await self._check_daily_reset(today)

        settings = await self.settings_provider.load()
        snapshot = await self._scan(settings)
        await self._update_indicator(snapshot.any_tracked_tab_open)

        result = self.timer.tick(
            today,
            tracked_active=snapshot.any_tracked_tab_open,
            paused=self.paused,
            budget_seconds=settings.budget_seconds(self.break_mode),
            lead_seconds=settings.warning_lead_seconds,
        )
        if rollover is not None:
            result.events.insert(0, TimerEvent.DAILY_RESET)
            result.reset_date = rollover.reset_date
        self.phase = result.phase

        if TimerEvent.ACCUMULATED in result.events:
            await self._persist_timer()

        if TimerEvent.WARNING in result.events:
            await self._play_warning()

        if TimerEvent.EXPIRED in result.events:
            logger.info("Time limit reached! Clearing cookies and remediating tracked tabs")
            try:
                self.last_report = await self.enforcer.enforce(settings)
            finally:
                self.timer.reset()
                await self._persist_timer()

        return result

    async def _scan(self, settings: Settings) -> TabActivitySnapshot:
        try:
            tabs = await self.browser.query_tabs()
        except Exception as e:
            logger.warning(f"Tab query failed, treating as no tracked activity: {e}")
            return TabActivitySnapshot()
        return scan(tabs, settings.tracked_sites)

    async def _update_indicator(self, active: bool) -> None:
        if active == self.timer_active:
            return
        logger.info(f"Timer state changing from {self.timer_active} to {active}")
        self.timer_active = active
        try:
            await self.browser.set_indicator(active)
        except Exception as e:
            logger.warning(f"Error updating indicator: {e}")

    async def _play_warning(self) -> None:
        logger.info(f"Warning: {self.timer.seconds_used}s used")
        try:
            await self.browser.play_sound(config.WARNING_SOUND, config.WARNING_VOLUME)
        except Exception as e:
            logger.warning(f"Error requesting warning sound: {e}")

    async def daily_reset_check(self) -> None:
        """Midnight wake-up: roll over even if no tick has run since."""
        try:
            async with self._lock:
                await self._check_daily_reset(self.today_str())
        except Exception as e:
            logger.exception(f"Error in daily reset check: {e}")

    async def poll_idle_state(self) -> None:
        try:
            state = await self.browser.query_idle_state(config.IDLE_THRESHOLD_SECONDS)
        except Exception as e:
            logger.debug(f"Idle state query failed: {e}")
            return
        self.signals.user_active = state == "active"

    # ------------------------------------------------------------------
    # Query contract
    # ------------------------------------------------------------------

    async def status(self) -> StatusSnapshot:
        """Snapshot for presentation surfaces. Never raises.

        Engine fields are read under the lock; the active tab is resolved
        through the bridge after the lock is released.
        """
        try:
            async with self._lock:
                await self._check_daily_reset(self.today_str())
                settings = await self.settings_provider.load()
                limit = settings.budget_seconds(self.break_mode)
                seconds_used = self.timer.seconds_used
                snapshot = StatusSnapshot(
                    domain=self.signals.active_domain,
                    seconds_used=seconds_used,
                    limit_seconds=limit,
                    remaining_seconds=max(0, limit - seconds_used),
                    window_focused=self.signals.window_focused,
                    user_active=self.signals.user_active,
                    break_mode=self.break_mode,
                    paused=self.paused,
                    phase=self.timer.phase(self.timer_active, self.paused),
                    timer_active=self.timer_active,
                )
                active_tab_id = self.signals.active_tab_id
        except Exception as e:
            logger.error(f"Error handling status request: {e}")
            return degraded_snapshot()

        if active_tab_id is not None:
            try:
                tab = await self.browser.get_tab(active_tab_id)
                snapshot.domain = hostname_from_url(tab.url)
            except TabNotFoundError:
                snapshot.domain = None
            except Exception as e:
                # Bridge unreachable: keep the domain last reported by the browser
                logger.debug(f"Active tab lookup failed: {e}")
        snapshot.is_tracked = is_tracked(snapshot.domain, settings.tracked_sites)
        return snapshot

    # ------------------------------------------------------------------
    # Command contract
    # ------------------------------------------------------------------

    async def reset_timer(self) -> dict:
        async with self._lock:
            self.timer.reset()
            await self._persist_timer()
        logger.info("Timer reset on request")
        return {"success": True}

    async def toggle_pause(self) -> dict:
        async with self._lock:
            self.paused = not self.paused
            await self._save({"timerPaused": self.paused})
        logger.info(f"Timer {'paused' if self.paused else 'resumed'}")
        return {"success": True, "paused": self.paused}

    async def toggle_mode(self) -> dict:
        async with self._lock:
            return await self._switch_mode(not self.break_mode)

    async def set_mode(self, break_mode: bool) -> dict:
        async with self._lock:
            if break_mode == self.break_mode:
                return {"success": True, "break_mode": self.break_mode}
            return await self._switch_mode(break_mode)

    async def _switch_mode(self, break_mode: bool) -> dict:
        # Mode and the timer reset are written together: never one without the other
        self.break_mode = break_mode
        self.timer.reset()
        await self._save({"breakMode": self.break_mode, "sharedTimerState": self.timer.to_dict()})
        logger.info(f"Switched to {'break' if break_mode else 'work'} mode, timer reset")
        return {"success": True, "break_mode": self.break_mode}

    async def close_enforced_tabs(self) -> dict:
        async with self._lock:
            try:
                settings = await self.settings_provider.load()
                result = await self.enforcer.close_enforced_tabs(settings)
            except Exception as e:
                logger.error(f"Error closing blocked tabs: {e}")
                return {"success": False, "error": str(e)}
        return {"success": True, "closed_count": result.closed_count}

    # ------------------------------------------------------------------
    # Browser signals
    # ------------------------------------------------------------------

    def record_tab_activated(self, tab_id: int) -> None:
        if tab_id != self.signals.active_tab_id:
            self.signals.active_domain = None
        self.signals.active_tab_id = tab_id

    def record_tab_updated(self, tab_id: int, url: Optional[str]) -> None:
        if tab_id == self.signals.active_tab_id and url:
            self.signals.active_domain = hostname_from_url(url)

    def record_focus_changed(self, focused: bool) -> None:
        self.signals.window_focused = focused
