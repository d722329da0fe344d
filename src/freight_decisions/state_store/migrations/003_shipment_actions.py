"""
Migration 003: Add shipments and shipment_actions tables.

An action is open while completed_at is NULL and completes at most once.
"""

import sqlite3

VERSION = 3
NAME = "shipment_actions"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create shipments and shipment_actions tables."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS shipments (
            shipment_id TEXT PRIMARY KEY,
            stage TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS shipment_actions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            shipment_id TEXT NOT NULL,
            document_type TEXT NOT NULL,
            description TEXT NOT NULL,
            action_type TEXT,
            owner TEXT,
            priority INTEGER,
            deadline TEXT,
            auto_resolve_on TEXT,  -- JSON array
            auto_resolve_keywords TEXT,  -- JSON array
            source_document_id TEXT,
            created_at TEXT NOT NULL,
            completed_at TEXT
        )
    """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_shipment_actions_open "
        "ON shipment_actions(shipment_id, completed_at)"
    )
