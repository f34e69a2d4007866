"""Unit tests for BudgetTimer: pure logic, no I/O dependencies."""

from auto_logout.timer import (
    BudgetTimer,
    EnginePhase,
    TimerEvent,
    format_remaining,
    warning_point,
)

TODAY = "2024-01-02"


# ---- Helpers ----

def tick(timer: BudgetTimer, budget: int = 60, lead: int = 10, active: bool = True,
         paused: bool = False, date: str = TODAY):
    return timer.tick(date, tracked_active=active, paused=paused, budget_seconds=budget, lead_seconds=lead)


def collect_events(timer: BudgetTimer, ticks: int, **kwargs) -> list[list[TimerEvent]]:
    """Run `ticks` cycles and return the events of each."""
    return [tick(timer, **kwargs).events for _ in range(ticks)]


# ---- format_remaining ----

class TestFormatRemaining:
    def test_zero(self):
        assert format_remaining(0) == "0:00"

    def test_pads_seconds(self):
        assert format_remaining(65) == "1:05"

    def test_long(self):
        assert format_remaining(25 * 60) == "25:00"

    def test_negative_clamps(self):
        assert format_remaining(-3) == "0:00"


# ---- warning_point ----

class TestWarningPoint:
    def test_lead_before_budget(self):
        assert warning_point(60, 10) == 50

    def test_lead_equal_to_budget_never_warns(self):
        assert warning_point(10, 10) is None

    def test_lead_longer_than_budget_never_warns(self):
        assert warning_point(5, 10) is None


# ---- Accumulation ----

class TestAccumulation:
    def test_one_second_per_active_tick(self):
        timer = BudgetTimer(last_reset_date=TODAY)
        for _ in range(3):
            result = tick(timer)
        assert timer.seconds_used == 3
        assert result.events == [TimerEvent.ACCUMULATED]
        assert result.phase == EnginePhase.ACCUMULATING

    def test_no_tracked_tab_is_idle(self):
        timer = BudgetTimer(10, TODAY)
        result = tick(timer, active=False)
        assert timer.seconds_used == 10
        assert result.events == []
        assert result.phase == EnginePhase.IDLE
        assert not result.mutated

    def test_paused_skips_accumulation(self):
        timer = BudgetTimer(10, TODAY)
        result = tick(timer, paused=True)
        assert timer.seconds_used == 10
        assert result.phase == EnginePhase.PAUSED

    def test_reaches_budget_in_exactly_budget_ticks(self):
        timer = BudgetTimer(last_reset_date=TODAY)
        events = collect_events(timer, 5, budget=5, lead=1)
        assert [TimerEvent.EXPIRED in e for e in events] == [False, False, False, False, True]
        assert timer.seconds_used == 5


# ---- Warning latch ----

class TestWarning:
    def test_fires_once_at_warning_point(self):
        timer = BudgetTimer(last_reset_date=TODAY)
        events = collect_events(timer, 10, budget=10, lead=3)
        warned_on = [i + 1 for i, e in enumerate(events) if TimerEvent.WARNING in e]
        assert warned_on == [7]
        assert timer.warned

    def test_phase_after_warning(self):
        timer = BudgetTimer(7, TODAY)
        assert tick(timer, budget=10, lead=3).phase == EnginePhase.WARNED

    def test_skipped_point_still_warns(self):
        # Resumed past the warning point (e.g. a restart): warns on the next tick
        timer = BudgetTimer(8, TODAY)
        assert TimerEvent.WARNING in tick(timer, budget=10, lead=3).events

    def test_latched_warning_not_repeated(self):
        timer = BudgetTimer(8, TODAY, warned=True)
        assert TimerEvent.WARNING not in tick(timer, budget=10, lead=3).events

    def test_raised_budget_rearms_warning(self):
        timer = BudgetTimer(50, TODAY, warned=True)
        assert TimerEvent.WARNING not in tick(timer, budget=120, lead=10).events
        assert not timer.warned
        events = collect_events(timer, 59, budget=120, lead=10)
        warned_on = [52 + i for i, e in enumerate(events) if TimerEvent.WARNING in e]
        assert warned_on == [110]

    def test_lowered_budget_keeps_latch(self):
        timer = BudgetTimer(50, TODAY, warned=True)
        assert TimerEvent.WARNING not in tick(timer, budget=55, lead=10).events
        assert timer.warned

    def test_lead_longer_than_budget(self):
        """Budget 5s, lead 10s: no warning at all, expiry on the tick reaching 5."""
        timer = BudgetTimer(last_reset_date=TODAY)
        events = collect_events(timer, 5, budget=5, lead=10)
        assert not any(TimerEvent.WARNING in e for e in events)
        assert events[-1] == [TimerEvent.ACCUMULATED, TimerEvent.EXPIRED]

    def test_reset_clears_latch(self):
        timer = BudgetTimer(9, TODAY, warned=True)
        timer.reset()
        assert timer.seconds_used == 0
        assert not timer.warned
        assert timer.last_reset_date == TODAY


# ---- Expiry ----

class TestExpiry:
    def test_expired_phase(self):
        timer = BudgetTimer(59, TODAY, warned=True)
        result = tick(timer, budget=60)
        assert TimerEvent.EXPIRED in result.events
        assert result.phase == EnginePhase.EXPIRED

    def test_lowered_budget_expires_immediately(self):
        timer = BudgetTimer(500, TODAY)
        assert TimerEvent.EXPIRED in tick(timer, budget=300).events


# ---- Daily rollover ----

class TestDailyReset:
    def test_new_day_resets_before_accumulating(self):
        timer = BudgetTimer(200, "2024-01-01")
        result = tick(timer, date="2024-01-02")
        assert result.events[0] == TimerEvent.DAILY_RESET
        assert result.reset_date == "2024-01-01"
        assert timer.last_reset_date == "2024-01-02"
        assert timer.seconds_used == 1

    def test_rollover_while_idle(self):
        timer = BudgetTimer(200, "2024-01-01")
        result = tick(timer, active=False, date="2024-01-02")
        assert result.events == [TimerEvent.DAILY_RESET]
        assert timer.to_dict() == {"secondsUsed": 0, "lastResetDate": "2024-01-02", "warned": False}

    def test_rollover_while_paused(self):
        timer = BudgetTimer(200, "2024-01-01")
        tick(timer, paused=True, date="2024-01-02")
        assert timer.seconds_used == 0

    def test_missing_date_counts_as_new_day(self):
        timer = BudgetTimer(50, None)
        assert timer.check_daily_reset(TODAY) is not None
        assert timer.seconds_used == 0

    def test_same_day_is_noop(self):
        timer = BudgetTimer(50, TODAY)
        assert timer.check_daily_reset(TODAY) is None
        assert timer.seconds_used == 50

    def test_monotonic_within_a_day(self):
        timer = BudgetTimer(last_reset_date=TODAY)
        seen = []
        for i in range(30):
            tick(timer, budget=1000, active=i % 3 != 0, paused=i % 7 == 0)
            seen.append(timer.seconds_used)
        assert seen == sorted(seen)


# ---- Serialization ----

class TestSerialization:
    def test_to_dict(self):
        assert BudgetTimer(12, TODAY, True).to_dict() == {
            "secondsUsed": 12, "lastResetDate": TODAY, "warned": True,
        }

    def test_from_dict_restores(self):
        timer = BudgetTimer.from_dict({"secondsUsed": 12, "lastResetDate": TODAY, "warned": True})
        assert (timer.seconds_used, timer.last_reset_date, timer.warned) == (12, TODAY, True)

    def test_from_dict_without_latch(self):
        # State written before the latch existed
        timer = BudgetTimer.from_dict({"secondsUsed": 12, "lastResetDate": TODAY})
        assert not timer.warned

    def test_from_garbage(self):
        timer = BudgetTimer.from_dict({"secondsUsed": "lots", "lastResetDate": 20240102})
        assert timer.seconds_used == 0
        assert timer.last_reset_date is None

    def test_from_none(self):
        assert BudgetTimer.from_dict(None).to_dict() == {"secondsUsed": 0, "lastResetDate": None, "warned": False}
