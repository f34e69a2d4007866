#!/usr/bin/env python3
"""
Initialize the SQLite state database and seed default settings.
Run this script standalone or let the API server initialize on startup.
"""

import json
import os
import sqlite3
from pathlib import Path

from auto_logout.settings import Settings
from auto_logout.store import TIER_TABLES

DB_PATH = Path(os.environ.get("AUTO_LOGOUT_DB", str(Path.home() / ".auto-logout" / "state.db"))).expanduser()


def init_database(db_path: Path = None):
    """Create both storage tiers and seed the settings tier on first run."""
    db_path = Path(db_path or DB_PATH).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()

    # Enable WAL mode so status polls don't block tick writes
    cursor.execute("PRAGMA journal_mode=WAL")

    # Set busy timeout to 5 seconds (prevents indefinite blocking on lock contention)
    cursor.execute("PRAGMA busy_timeout=5000")

    for table in TIER_TABLES.values():
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    # Seed default settings (existing values are kept)
    for key, value in Settings().to_storage().items():
        cursor.execute(
            "INSERT OR IGNORE INTO sync_settings (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )

    conn.commit()
    conn.close()
    print(f"Database initialized at {db_path}")


if __name__ == "__main__":
    init_database()
