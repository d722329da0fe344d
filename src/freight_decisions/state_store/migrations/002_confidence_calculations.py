"""
Migration 002: Add confidence_calculations table.

Append-only audit of every confidence evaluation, including per-signal
scores, details and the weights in effect at the time.
"""

import sqlite3

VERSION = 2
NAME = "confidence_calculations"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create confidence_calculations table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS confidence_calculations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            document_id TEXT,
            document_type TEXT NOT NULL,
            sender_domain TEXT,
            pattern_id TEXT,
            signals_json TEXT NOT NULL,  -- JSON: {"completeness": {"score": 90, "details": {...}}}
            weights_used TEXT NOT NULL,  -- JSON: {"completeness": 2.0, ...}
            raw_score REAL NOT NULL,
            overall_score INTEGER NOT NULL,
            recommendation TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_confidence_calc_document "
        "ON confidence_calculations(document_id)"
    )
