"""
Auto-Logout API: FastAPI local server for the shared usage budget.

This server provides:
- The 1 Hz budget tick (scheduled with APScheduler)
- Status snapshots for every presentation surface (popup, blocked page, CLI)
- Timer commands: reset, pause, work/break mode, "back to work"
- Settings read/update
- Browser signal intake (active tab, window focus)
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Literal, Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from . import config
from .browser import HttpBrowserClient
from .engine import BudgetEngine, StatusSnapshot
from .log import (
    asyncio_exception_handler,
    global_exception_handler,
    logger,
    recent_logs,
    setup_logging,
    write_crash_marker,
)
from .settings import EnforcementKind, Settings
from .store import KeyValueStore

setup_logging()

# Install global exception handler
sys.excepthook = global_exception_handler


# ============ Request/Response Models ============


class ModeRequest(BaseModel):
    break_mode: bool


class ModeResponse(BaseModel):
    success: bool
    break_mode: bool


class PauseResponse(BaseModel):
    success: bool
    paused: bool


class CloseTabsResponse(BaseModel):
    success: bool
    closed_count: int = 0
    error: Optional[str] = None


class SettingsResponse(BaseModel):
    work_limit_minutes: float
    break_limit_minutes: float
    tracked_sites: List[str]
    warning_lead_seconds: int
    redirect_to: Optional[str]
    enforcement: EnforcementKind

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsResponse":
        return cls(**settings.model_dump(), enforcement=settings.enforcement_action.kind)


class SettingsUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their stored value."""
    work_limit_minutes: Optional[float] = None
    break_limit_minutes: Optional[float] = None
    tracked_sites: Optional[Union[List[str], str]] = None
    warning_lead_seconds: Optional[int] = None
    # null means "no tab action"; "close" closes tracked tabs
    redirect_to: Optional[str] = None


class BrowserEventRequest(BaseModel):
    event: Literal["tab_activated", "tab_updated", "focus_changed"]
    tab_id: Optional[int] = None
    url: Optional[str] = None
    focused: Optional[bool] = None


class LogEntry(BaseModel):
    """Single log entry."""
    timestamp: str
    level: str
    logger: Optional[str] = None
    message: str


class LogsResponse(BaseModel):
    """Response for recent logs."""
    logs: List[LogEntry]
    count: int


# ============ App ============


def build_engine() -> BudgetEngine:
    """Engine wired to the configured database and browser bridge."""
    return BudgetEngine(KeyValueStore(config.DB_PATH), HttpBrowserClient())


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Install asyncio exception handler for this loop
    loop = asyncio.get_running_loop()
    loop.set_exception_handler(asyncio_exception_handler)

    write_crash_marker("SERVER STARTED")

    # Startup (tests pre-seed app.state.engine with a fake browser)
    engine = getattr(app.state, "engine", None) or build_engine()
    await engine.store.init()
    await engine.settings_provider.ensure_defaults()
    await engine.load()
    app.state.engine = engine

    scheduler = AsyncIOScheduler()
    engine.register_jobs(scheduler)
    if getattr(app.state, "start_scheduler", True):
        scheduler.start()
        logger.info("Scheduler started")
    yield

    write_crash_marker("SERVER STOPPING")

    # Shutdown
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


app = FastAPI(
    title="Auto-Logout",
    description="Shared usage budget timer and enforcement for tracked sites",
    version="0.1.0",
    lifespan=lifespan,
)

# The popup and blocked page call in from the extension origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_engine(request: Request) -> BudgetEngine:
    return request.app.state.engine


# ============ Query ============


@app.get("/api/status", response_model=StatusSnapshot)
async def get_status(engine: BudgetEngine = Depends(get_engine)):
    """Current budget snapshot. Never fails; degrades to defaults instead."""
    return await engine.status()


# ============ Commands ============


@app.post("/api/timer/reset")
async def reset_timer(engine: BudgetEngine = Depends(get_engine)):
    return await engine.reset_timer()


@app.post("/api/timer/pause", response_model=PauseResponse)
async def toggle_pause(engine: BudgetEngine = Depends(get_engine)):
    return await engine.toggle_pause()


@app.post("/api/timer/mode/toggle", response_model=ModeResponse)
async def toggle_mode(engine: BudgetEngine = Depends(get_engine)):
    """Switch between work and break budgets. Always resets the timer."""
    return await engine.toggle_mode()


@app.post("/api/timer/mode", response_model=ModeResponse)
async def set_mode(request: ModeRequest, engine: BudgetEngine = Depends(get_engine)):
    """Select a mode explicitly. Selecting the current mode changes nothing."""
    return await engine.set_mode(request.break_mode)


@app.post("/api/tabs/close-enforced", response_model=CloseTabsResponse)
async def close_enforced_tabs(engine: BudgetEngine = Depends(get_engine)):
    """Close the blocked-page tabs ("back to work")."""
    return await engine.close_enforced_tabs()


# ============ Settings ============


@app.get("/api/settings", response_model=SettingsResponse)
async def get_settings(engine: BudgetEngine = Depends(get_engine)):
    settings = await engine.settings_provider.load()
    return SettingsResponse.from_settings(settings)


@app.put("/api/settings", response_model=SettingsResponse)
async def update_settings(request: SettingsUpdateRequest, engine: BudgetEngine = Depends(get_engine)):
    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No settings provided")
    try:
        settings = await engine.settings_provider.update(changes)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False),
        )
    return SettingsResponse.from_settings(settings)


# ============ Browser Signals ============


@app.post("/api/browser/events")
async def browser_event(request: BrowserEventRequest, engine: BudgetEngine = Depends(get_engine)):
    """Active-tab and focus notifications from the extension. Informational only."""
    if request.event == "focus_changed":
        if request.focused is None:
            raise HTTPException(status_code=422, detail="focus_changed requires 'focused'")
        engine.record_focus_changed(request.focused)
    else:
        if request.tab_id is None:
            raise HTTPException(status_code=422, detail=f"{request.event} requires 'tab_id'")
        if request.event == "tab_activated":
            engine.record_tab_activated(request.tab_id)
        else:
            engine.record_tab_updated(request.tab_id, request.url)
    return {"status": "ok", "event": request.event}


# ============ Health & Logs ============


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@app.get("/api/logs/recent", response_model=LogsResponse)
async def get_recent_logs(limit: int = 50):
    """Get recent server logs from the circular buffer (max 100)."""
    logs = recent_logs(limit)
    return {"logs": logs, "count": len(logs)}


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Auto-Logout",
        "version": "0.1.0",
        "description": "Shared usage budget timer and enforcement for tracked sites",
        "docs": "/docs",
    }


def run() -> None:
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=config.SERVER_PORT)


if __name__ == "__main__":
    run()
