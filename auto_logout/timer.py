"""Shared budget timer: pure logic, no I/O.

All time values are whole seconds. The calendar date is injected as an ISO
string (YYYY-MM-DD) so ticks are deterministic under test. The caller persists
`to_dict()` after every tick and every reset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TimerEvent(Enum):
    DAILY_RESET = "daily_reset"
    ACCUMULATED = "accumulated"
    WARNING = "warning"
    EXPIRED = "expired"


class EnginePhase(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    WARNED = "warned"
    EXPIRED = "expired"
    PAUSED = "paused"


@dataclass
class TickResult:
    events: list[TimerEvent] = field(default_factory=list)
    phase: EnginePhase = EnginePhase.IDLE
    reset_date: str | None = None  # date that was rolled over, on DAILY_RESET

    @property
    def mutated(self) -> bool:
        return bool(self.events)


def warning_point(budget_seconds: int, lead_seconds: int) -> int | None:
    """Second at which the warning fires, or None when the lead covers the whole budget."""
    lead_seconds = max(1, lead_seconds)
    if lead_seconds >= budget_seconds:
        return None
    return budget_seconds - lead_seconds


def format_remaining(seconds: int) -> str:
    """Format seconds as 'm:ss' (negative clamps to 0:00)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class BudgetTimer:
    """Seconds used today against the active budget, plus the warning latch.

    The warning fires at most once per budget cycle: it triggers on the first
    tick at or past the warning point and stays latched until the next reset,
    so a skipped tick cannot lose it. Raising the budget moves the warning
    point ahead of the seconds used and re-arms the latch.
    """

    def __init__(self, seconds_used: int = 0, last_reset_date: str | None = None, warned: bool = False):
        self._seconds_used: int = max(0, int(seconds_used))
        self._last_reset_date: str | None = last_reset_date
        self._warned: bool = warned

    # ---- Read-only properties ----

    @property
    def seconds_used(self) -> int:
        return self._seconds_used

    @property
    def last_reset_date(self) -> str | None:
        return self._last_reset_date

    @property
    def warned(self) -> bool:
        return self._warned

    # ---- Mutations ----

    def accumulate_one_second(self) -> None:
        self._seconds_used += 1

    def reset(self) -> None:
        self._seconds_used = 0
        self._warned = False

    def check_daily_reset(self, today_date: str) -> TickResult | None:
        """Reset if the calendar day changed. Returns a TickResult if it did."""
        if self._last_reset_date == today_date:
            return None
        result = TickResult(events=[TimerEvent.DAILY_RESET], reset_date=self._last_reset_date)
        self.reset()
        self._last_reset_date = today_date
        return result

    # ---- Core methods ----

    def evaluate(self, budget_seconds: int, lead_seconds: int) -> list[TimerEvent]:
        """Compare elapsed time to the budget; latch the warning when it fires."""
        if self._seconds_used >= budget_seconds:
            return [TimerEvent.EXPIRED]
        point = warning_point(budget_seconds, lead_seconds)
        if point is not None and self._seconds_used < point:
            # Budget raised past the point that already fired: arm it again
            self._warned = False
        if point is not None and self._seconds_used >= point and not self._warned:
            self._warned = True
            return [TimerEvent.WARNING]
        return []

    def tick(
        self,
        today_date: str,
        tracked_active: bool,
        paused: bool,
        budget_seconds: int,
        lead_seconds: int,
    ) -> TickResult:
        """One evaluation cycle: daily rollover first, then accumulate and evaluate.

        Pausing skips accumulation and evaluation but not the rollover.
        """
        result = self.check_daily_reset(today_date) or TickResult()

        if paused:
            result.phase = EnginePhase.PAUSED
            return result
        if not tracked_active:
            result.phase = EnginePhase.IDLE
            return result

        self.accumulate_one_second()
        result.events.append(TimerEvent.ACCUMULATED)
        result.events.extend(self.evaluate(budget_seconds, lead_seconds))
        result.phase = self.phase(tracked_active, paused)
        if TimerEvent.EXPIRED in result.events:
            result.phase = EnginePhase.EXPIRED
        return result

    def phase(self, tracked_active: bool, paused: bool) -> EnginePhase:
        if paused:
            return EnginePhase.PAUSED
        if not tracked_active:
            return EnginePhase.IDLE
        return EnginePhase.WARNED if self._warned else EnginePhase.ACCUMULATING

    # ---- Serialization ----

    def to_dict(self) -> dict:
        """CamelCase dict, the shape stored under `sharedTimerState`."""
        return {
            "secondsUsed": self._seconds_used,
            "lastResetDate": self._last_reset_date,
            "warned": self._warned,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "BudgetTimer":
        data = data or {}
        try:
            seconds_used = int(data.get("secondsUsed", 0))
        except (TypeError, ValueError):
            seconds_used = 0
        last_reset_date = data.get("lastResetDate")
        if not isinstance(last_reset_date, str):
            last_reset_date = None
        return cls(seconds_used, last_reset_date, bool(data.get("warned", False)))
