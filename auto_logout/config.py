"""Configuration for the auto-logout service and its terminal client."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (AUTO_LOGOUT_DB, BROWSER_BRIDGE_URL, etc.)
load_dotenv(Path(__file__).parent.parent / ".env")

# Storage
DB_PATH = Path(os.environ.get("AUTO_LOGOUT_DB", str(Path.home() / ".auto-logout" / "state.db"))).expanduser()
CRASH_LOG_PATH = Path(
    os.environ.get("AUTO_LOGOUT_CRASH_LOG", str(Path.home() / ".auto-logout" / "crash.log"))
).expanduser()

# Server
SERVER_PORT = int(os.environ.get("AUTO_LOGOUT_PORT", "7790"))
API_URL = os.environ.get("AUTO_LOGOUT_URL", f"http://localhost:{SERVER_PORT}")

# Browser companion (extension side) that owns tabs and cookies
BROWSER_BRIDGE_URL = os.environ.get("BROWSER_BRIDGE_URL", "http://127.0.0.1:7791")
BROWSER_BRIDGE_TIMEOUT = float(os.environ.get("BROWSER_BRIDGE_TIMEOUT", "10"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Clock
TICK_INTERVAL_SECONDS = 1
IDLE_POLL_SECONDS = 15
IDLE_THRESHOLD_SECONDS = 60

# Enforcement
SWEEP_DELAY_SECONDS = 0.1  # let the browser open its placeholder tab before sweeping
WARNING_SOUND = "beep.mp3"
WARNING_VOLUME = 1.0

# Client polling (matches the popup's 500ms refresh)
STATUS_POLL_SECONDS = 0.5
