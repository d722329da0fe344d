"""
Migration 001: Add sender_trust_scores and detection_patterns tables.

Both tables hold statistics maintained outside the scoring path: trust is
recomputed from reviewed extractions, pattern counts from classifier hits.
"""

import sqlite3

VERSION = 1
NAME = "sender_trust"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create sender_trust_scores and detection_patterns tables."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sender_trust_scores (
            sender_domain TEXT PRIMARY KEY,
            total_emails INTEGER NOT NULL DEFAULT 0,
            correct_extractions INTEGER NOT NULL DEFAULT 0,
            trust_score REAL NOT NULL DEFAULT 0.5,  -- 0..1
            updated_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS detection_patterns (
            id TEXT PRIMARY KEY,
            pattern_type TEXT NOT NULL,  -- subject, body, attachment, sender
            document_type TEXT NOT NULL,
            hit_count INTEGER NOT NULL DEFAULT 0,
            false_positive_count INTEGER NOT NULL DEFAULT 0,
            updated_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_detection_patterns_doctype "
        "ON detection_patterns(document_type)"
    )
