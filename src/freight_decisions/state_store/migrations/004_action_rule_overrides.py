"""
Migration 004: Add template overrides and time_based_action_rules table.

action_templates gains has_action, applicable_stages and the flip keyword
lists. Time-based rules fire relative to a shipment cutoff, ETD or ETA.
"""

import sqlite3

VERSION = 4
NAME = "action_rule_overrides"

TEMPLATE_COLUMNS = {
    "has_action": "INTEGER NOT NULL DEFAULT 1",
    "applicable_stages": "TEXT",  # JSON array, NULL = all stages
    "flip_to_action_keywords": "TEXT",  # JSON array
    "flip_to_no_action_keywords": "TEXT",  # JSON array
}


def upgrade(conn: sqlite3.Connection) -> None:
    """Add template override columns and create time_based_action_rules."""
    cursor = conn.execute("PRAGMA table_info(action_templates)")
    columns = [row[1] for row in cursor.fetchall()]

    for name, definition in TEMPLATE_COLUMNS.items():
        if name not in columns:
            conn.execute(f"ALTER TABLE action_templates ADD COLUMN {name} {definition}")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS time_based_action_rules (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            rule_name TEXT NOT NULL UNIQUE,
            trigger_event TEXT NOT NULL,  -- si_cutoff, vgm_cutoff, cargo_cutoff, etd, eta
            trigger_offset_hours INTEGER NOT NULL,
            action_verb TEXT NOT NULL,
            action_description TEXT NOT NULL,
            action_owner TEXT NOT NULL DEFAULT 'operations',
            applicable_stages TEXT,  -- JSON array
            unless_condition TEXT,
            notify_parties TEXT,  -- JSON array
            urgency TEXT NOT NULL DEFAULT 'normal',
            cooldown_hours INTEGER NOT NULL DEFAULT 24,
            enabled INTEGER NOT NULL DEFAULT 1
        )
    """
    )
