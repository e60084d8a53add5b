"""SQLite table definitions."""

SCHEMA_VERSION = 1

TABLES = [
    """CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )""",
    # Append-only log of grid status transitions plus manual corrections.
    # recorded_at is ISO-8601 UTC, so text ordering is chronological.
    """CREATE TABLE IF NOT EXISTS grid_status_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        recorded_at TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('unknown', 'offline', 'online')),
        schedule_date_key TEXT,
        schedule_fetched_at TEXT,
        manual INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE INDEX IF NOT EXISTS idx_grid_status_history_recorded_at
        ON grid_status_history (recorded_at)""",
]
