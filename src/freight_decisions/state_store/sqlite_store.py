"""
SQLite-based state store implementation.

Tables:
- confidence_rules, expected_fields, confidence_thresholds,
  action_templates, flow_validation_rules, time_based_action_rules:
  decision rules (read-mostly)
- sender_trust_scores: per-domain extraction track record
- detection_patterns: pattern registry with hit/false-positive counts
- confidence_calculations: append-only confidence audit
- shipments, shipment_actions: shipment stage and open actions
"""

import json
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..schemas.actions import (
    ActionTemplate,
    DeadlinePolicy,
    OpenAction,
    TimeBasedRule,
    TriggerEvent,
)
from ..schemas.confidence import (
    ConfidenceRule,
    ConfidenceSignal,
    ExpectedField,
    FlowRule,
    FlowRuleType,
    Recommendation,
    Threshold,
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SenderTrustRecord:
    """Extraction track record of one sender domain."""

    domain: str
    total_emails: int
    correct_extractions: int
    trust_score: float
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SenderTrustRecord":
        """Create from database row."""
        return cls(
            domain=row["sender_domain"],
            total_emails=row["total_emails"],
            correct_extractions=row["correct_extractions"],
            trust_score=row["trust_score"],
            updated_at=row["updated_at"],
        )


@dataclass
class DetectionPatternRecord:
    """A registered detection pattern and its track record."""

    id: str
    pattern_type: str
    document_type: str
    hit_count: int
    false_positive_count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "DetectionPatternRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            pattern_type=row["pattern_type"],
            document_type=row["document_type"],
            hit_count=row["hit_count"] or 0,
            false_positive_count=row["false_positive_count"] or 0,
        )


def _template_from_row(row: sqlite3.Row) -> ActionTemplate:
    """Build an ActionTemplate; raises ValueError on unknown policies."""
    deadline_type = row["deadline_type"]
    return ActionTemplate(
        id=row["id"],
        document_type=row["document_type"],
        from_party=row["from_party"],
        direction=row["direction"],
        action_type=row["action_type"],
        action_verb=row["action_verb"],
        template=row["action_template"],
        default_owner=row["default_owner"],
        deadline_type=DeadlinePolicy(deadline_type) if deadline_type else None,
        deadline_days=row["deadline_days"],
        deadline_cutoff_field=row["deadline_cutoff_field"],
        deadline_cutoff_offset=row["deadline_cutoff_offset"],
        base_priority=row["base_priority"],
        boost_keywords=tuple(json.loads(row["boost_keywords"] or "[]")),
        boost_amount=row["boost_amount"],
        auto_resolve_on=tuple(json.loads(row["auto_resolve_on"] or "[]")),
        auto_resolve_keywords=tuple(json.loads(row["auto_resolve_keywords"] or "[]")),
        has_action=bool(row["has_action"]),
        applicable_stages=tuple(json.loads(row["applicable_stages"] or "[]")),
        flip_to_action_keywords=tuple(json.loads(row["flip_to_action_keywords"] or "[]")),
        flip_to_no_action_keywords=tuple(json.loads(row["flip_to_no_action_keywords"] or "[]")),
        enabled=bool(row["enabled"]),
    )


def _time_rule_from_row(row: sqlite3.Row) -> TimeBasedRule:
    """Build a TimeBasedRule; raises ValueError on unknown trigger events."""
    return TimeBasedRule(
        id=row["id"],
        name=row["rule_name"],
        trigger_event=TriggerEvent(row["trigger_event"]),
        trigger_offset_hours=row["trigger_offset_hours"],
        action_verb=row["action_verb"],
        description=row["action_description"],
        owner=row["action_owner"],
        applicable_stages=tuple(json.loads(row["applicable_stages"] or "[]")),
        unless_condition=row["unless_condition"],
        notify_parties=tuple(json.loads(row["notify_parties"] or "[]")),
        urgency=row["urgency"],
        cooldown_hours=row["cooldown_hours"],
        enabled=bool(row["enabled"]),
    )


def _json_list(values: Sequence[str] | None) -> str | None:
    return json.dumps(list(values)) if values is not None else None


def _json_tuple(value: str | None) -> tuple[str, ...] | None:
    return tuple(json.loads(value)) if value is not None else None


def _action_from_row(row: sqlite3.Row) -> OpenAction:
    return OpenAction(
        id=row["id"],
        shipment_id=row["shipment_id"],
        document_type=row["document_type"],
        description=row["description"],
        completed_at=row["completed_at"],
        auto_resolve_on=_json_tuple(row["auto_resolve_on"]),
        auto_resolve_keywords=_json_tuple(row["auto_resolve_keywords"]),
    )


class StateStore:
    """
    SQLite-based state store for the decision engine.

    Provides persistent storage of:
    - Decision rules (confidence rules, expected fields, bands, templates,
      flow rules, time-based rules)
    - Sender trust and detection pattern statistics
    - Confidence audit trail (append-only)
    - Shipment stages and open actions

    Every method opens its own short-lived connection, so a single
    instance may be shared between threads.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the decision-rule schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS confidence_rules (
                    rule_name TEXT PRIMARY KEY,
                    weight REAL NOT NULL,
                    enabled INTEGER NOT NULL DEFAULT 1
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS expected_fields (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    document_type TEXT NOT NULL,
                    field_name TEXT NOT NULL,
                    is_required INTEGER NOT NULL DEFAULT 0,
                    weight REAL NOT NULL DEFAULT 1.0,
                    UNIQUE (document_type, field_name)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS confidence_thresholds (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    min_score INTEGER NOT NULL,
                    max_score INTEGER NOT NULL,
                    action TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS action_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    document_type TEXT NOT NULL,
                    from_party TEXT NOT NULL,
                    direction TEXT NOT NULL DEFAULT 'inbound',
                    action_type TEXT NOT NULL,
                    action_verb TEXT NOT NULL,
                    action_template TEXT NOT NULL,
                    default_owner TEXT,
                    deadline_type TEXT,
                    deadline_days INTEGER,
                    deadline_cutoff_field TEXT,
                    deadline_cutoff_offset INTEGER,
                    base_priority INTEGER NOT NULL DEFAULT 60,
                    boost_keywords TEXT,  -- JSON array
                    boost_amount INTEGER NOT NULL DEFAULT 0,
                    auto_resolve_on TEXT,  -- JSON array of document types
                    auto_resolve_keywords TEXT,  -- JSON array
                    enabled INTEGER NOT NULL DEFAULT 1,
                    UNIQUE (document_type, from_party, direction)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS flow_validation_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    shipment_stage TEXT NOT NULL,
                    document_type TEXT NOT NULL,
                    rule_type TEXT NOT NULL,
                    UNIQUE (shipment_stage, document_type)
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_expected_fields_doctype "
                "ON expected_fields(document_type)"
            )

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # Decision rule methods

    def get_confidence_rules(self) -> list[ConfidenceRule]:
        """Get all confidence rules."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM confidence_rules ORDER BY rule_name").fetchall()
            return [
                ConfidenceRule(
                    name=row["rule_name"], weight=row["weight"], enabled=bool(row["enabled"])
                )
                for row in rows
            ]

    def get_expected_fields(self) -> list[ExpectedField]:
        """Get expected fields for all document types."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM expected_fields ORDER BY id").fetchall()
            return [
                ExpectedField(
                    document_type=row["document_type"],
                    field_name=row["field_name"],
                    is_required=bool(row["is_required"]),
                    weight=row["weight"],
                )
                for row in rows
            ]

    def get_thresholds(self) -> list[Threshold]:
        """Get threshold bands sorted by min_score descending.

        Raises:
            ValueError: If a band names an unknown action
        """
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM confidence_thresholds ORDER BY min_score DESC, id ASC"
            ).fetchall()
            return [
                Threshold(
                    min_score=row["min_score"],
                    max_score=row["max_score"],
                    action=Recommendation(row["action"]),
                )
                for row in rows
            ]

    def get_action_templates(self, enabled_only: bool = True) -> list[ActionTemplate]:
        """Get action templates in insertion order.

        Raises:
            ValueError: If a template names an unknown deadline policy
        """
        query = "SELECT * FROM action_templates"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY id"

        with self._transaction() as conn:
            rows = conn.execute(query).fetchall()
            return [_template_from_row(row) for row in rows]

    def get_flow_rules(self) -> list[FlowRule]:
        """Get all flow validation rules.

        Raises:
            ValueError: If a rule has an unknown rule type
        """
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM flow_validation_rules ORDER BY id").fetchall()
            return [
                FlowRule(
                    stage=row["shipment_stage"],
                    document_type=row["document_type"],
                    rule_type=FlowRuleType(row["rule_type"]),
                )
                for row in rows
            ]

    def get_time_based_rules(self, enabled_only: bool = True) -> list[TimeBasedRule]:
        """Get time-based action rules in insertion order.

        Raises:
            ValueError: If a rule names an unknown trigger event
        """
        query = "SELECT * FROM time_based_action_rules"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY id"

        with self._transaction() as conn:
            rows = conn.execute(query).fetchall()
            return [_time_rule_from_row(row) for row in rows]

    def replace_decision_config(
        self,
        rules: Sequence[ConfidenceRule],
        expected_fields: Sequence[ExpectedField],
        thresholds: Sequence[Threshold],
        templates: Sequence[ActionTemplate],
        flow_rules: Sequence[FlowRule],
        time_rules: Sequence[TimeBasedRule] = (),
    ) -> None:
        """Replace all decision rules in a single transaction."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM confidence_rules")
            conn.execute("DELETE FROM expected_fields")
            conn.execute("DELETE FROM confidence_thresholds")
            conn.execute("DELETE FROM action_templates")
            conn.execute("DELETE FROM flow_validation_rules")
            conn.execute("DELETE FROM time_based_action_rules")

            conn.executemany(
                "INSERT INTO confidence_rules (rule_name, weight, enabled) VALUES (?, ?, ?)",
                [(r.name, r.weight, r.enabled) for r in rules],
            )
            conn.executemany(
                """
                INSERT INTO expected_fields (document_type, field_name, is_required, weight)
                VALUES (?, ?, ?, ?)
            """,
                [(f.document_type, f.field_name, f.is_required, f.weight) for f in expected_fields],
            )
            conn.executemany(
                "INSERT INTO confidence_thresholds (min_score, max_score, action) VALUES (?, ?, ?)",
                [(t.min_score, t.max_score, t.action.value) for t in thresholds],
            )
            conn.executemany(
                """
                INSERT INTO action_templates
                (document_type, from_party, direction, action_type, action_verb,
                 action_template, default_owner, deadline_type, deadline_days,
                 deadline_cutoff_field, deadline_cutoff_offset, base_priority,
                 boost_keywords, boost_amount, auto_resolve_on, auto_resolve_keywords,
                 has_action, applicable_stages, flip_to_action_keywords,
                 flip_to_no_action_keywords, enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                [
                    (
                        t.document_type,
                        t.from_party,
                        t.direction,
                        t.action_type,
                        t.action_verb,
                        t.template,
                        t.default_owner,
                        t.deadline_type.value if t.deadline_type else None,
                        t.deadline_days,
                        t.deadline_cutoff_field,
                        t.deadline_cutoff_offset,
                        t.base_priority,
                        json.dumps(list(t.boost_keywords)),
                        t.boost_amount,
                        json.dumps(list(t.auto_resolve_on)),
                        json.dumps(list(t.auto_resolve_keywords)),
                        t.has_action,
                        json.dumps(list(t.applicable_stages)) if t.applicable_stages else None,
                        json.dumps(list(t.flip_to_action_keywords)),
                        json.dumps(list(t.flip_to_no_action_keywords)),
                        t.enabled,
                    )
                    for t in templates
                ],
            )
            conn.executemany(
                """
                INSERT INTO time_based_action_rules
                (rule_name, trigger_event, trigger_offset_hours, action_verb,
                 action_description, action_owner, applicable_stages, unless_condition,
                 notify_parties, urgency, cooldown_hours, enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                [
                    (
                        r.name,
                        r.trigger_event.value,
                        r.trigger_offset_hours,
                        r.action_verb,
                        r.description,
                        r.owner,
                        json.dumps(list(r.applicable_stages)) if r.applicable_stages else None,
                        r.unless_condition,
                        json.dumps(list(r.notify_parties)),
                        r.urgency,
                        r.cooldown_hours,
                        r.enabled,
                    )
                    for r in time_rules
                ],
            )
            conn.executemany(
                """
                INSERT INTO flow_validation_rules (shipment_stage, document_type, rule_type)
                VALUES (?, ?, ?)
            """,
                [(r.stage, r.document_type, r.rule_type.value) for r in flow_rules],
            )

    # Sender trust methods

    def get_sender_trust(self, domain: str) -> SenderTrustRecord | None:
        """Get the trust record for a sender domain."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM sender_trust_scores WHERE sender_domain = ?", (domain.lower(),)
            ).fetchone()
            return SenderTrustRecord.from_row(row) if row else None

    def upsert_sender_trust(
        self,
        domain: str,
        total_emails: int,
        correct_extractions: int,
        trust_score: float | None = None,
    ) -> None:
        """Insert or replace a sender trust record.

        trust_score defaults to correct_extractions / total_emails.
        """
        if trust_score is None:
            trust_score = correct_extractions / total_emails if total_emails else 0.5

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sender_trust_scores
                (sender_domain, total_emails, correct_extractions, trust_score, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(sender_domain) DO UPDATE SET
                    total_emails = excluded.total_emails,
                    correct_extractions = excluded.correct_extractions,
                    trust_score = excluded.trust_score,
                    updated_at = excluded.updated_at
            """,
                (domain.lower(), total_emails, correct_extractions, trust_score, _utc_now()),
            )

    def record_extraction_outcome(self, domain: str, correct: bool) -> SenderTrustRecord:
        """Count one reviewed extraction for a sender and recompute trust."""
        domain = domain.lower()
        now = _utc_now()

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sender_trust_scores
                (sender_domain, total_emails, correct_extractions, trust_score, updated_at)
                VALUES (?, 0, 0, 0.5, ?)
                ON CONFLICT(sender_domain) DO NOTHING
            """,
                (domain, now),
            )
            conn.execute(
                """
                UPDATE sender_trust_scores
                SET total_emails = total_emails + 1,
                    correct_extractions = correct_extractions + ?,
                    trust_score = CAST(correct_extractions + ? AS REAL) / (total_emails + 1),
                    updated_at = ?
                WHERE sender_domain = ?
            """,
                (int(correct), int(correct), now, domain),
            )
            row = conn.execute(
                "SELECT * FROM sender_trust_scores WHERE sender_domain = ?", (domain,)
            ).fetchone()
            return SenderTrustRecord.from_row(row)

    # Detection pattern methods

    def get_detection_pattern(self, pattern_id: str) -> DetectionPatternRecord | None:
        """Get a detection pattern by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM detection_patterns WHERE id = ?", (pattern_id,)
            ).fetchone()
            return DetectionPatternRecord.from_row(row) if row else None

    def upsert_detection_pattern(
        self,
        pattern_id: str,
        pattern_type: str,
        document_type: str,
        hit_count: int = 0,
        false_positive_count: int = 0,
    ) -> None:
        """Insert or replace a detection pattern."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO detection_patterns
                (id, pattern_type, document_type, hit_count, false_positive_count, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    pattern_type = excluded.pattern_type,
                    document_type = excluded.document_type,
                    hit_count = excluded.hit_count,
                    false_positive_count = excluded.false_positive_count,
                    updated_at = excluded.updated_at
            """,
                (pattern_id, pattern_type, document_type, hit_count, false_positive_count, _utc_now()),
            )

    def record_pattern_hit(self, pattern_id: str) -> bool:
        """Count one firing of a pattern. Returns False if unknown."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE detection_patterns SET hit_count = hit_count + 1, updated_at = ? WHERE id = ?",
                (_utc_now(), pattern_id),
            )
            return cursor.rowcount > 0

    def record_false_positive(self, pattern_id: str) -> bool:
        """Count one wrong firing of a pattern. Returns False if unknown."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE detection_patterns
                SET false_positive_count = false_positive_count + 1, updated_at = ?
                WHERE id = ?
            """,
                (_utc_now(), pattern_id),
            )
            return cursor.rowcount > 0

    # Shipment methods

    def upsert_shipment_stage(self, shipment_id: str, stage: str) -> None:
        """Record the current stage of a shipment."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO shipments (shipment_id, stage, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(shipment_id) DO UPDATE SET
                    stage = excluded.stage, updated_at = excluded.updated_at
            """,
                (shipment_id, stage, _utc_now()),
            )

    def get_shipment_stage(self, shipment_id: str) -> str | None:
        """Get the current stage of a shipment."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT stage FROM shipments WHERE shipment_id = ?", (shipment_id,)
            ).fetchone()
            return row["stage"] if row else None

    # Confidence audit methods

    def record_confidence_calculation(
        self,
        document_id: str | None,
        document_type: str,
        sender_domain: str | None,
        pattern_id: str | None,
        signals: dict[str, ConfidenceSignal],
        raw_score: float,
        overall_score: int,
        recommendation: str,
    ) -> int:
        """Append a confidence calculation to the audit trail. Returns its ID.

        Audit rows are never updated or deleted by the engine.
        """
        signals_json = {
            name: {"score": s.score, "details": s.details} for name, s in signals.items()
        }
        weights_json = {name: s.weight for name, s in signals.items()}

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO confidence_calculations
                (document_id, document_type, sender_domain, pattern_id, signals_json,
                 weights_used, raw_score, overall_score, recommendation, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    document_id,
                    document_type,
                    sender_domain,
                    pattern_id,
                    json.dumps(signals_json, default=str),
                    json.dumps(weights_json),
                    raw_score,
                    overall_score,
                    recommendation,
                    _utc_now(),
                ),
            )
            return cursor.lastrowid or 0

    def get_confidence_calculation(self, calculation_id: int) -> dict[str, Any] | None:
        """Get an audit row by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM confidence_calculations WHERE id = ?", (calculation_id,)
            ).fetchone()
            if not row:
                return None
            result = dict(row)
            result["signals"] = json.loads(result.pop("signals_json"))
            result["weights_used"] = json.loads(result["weights_used"])
            return result

    # Action methods

    def create_action(
        self,
        shipment_id: str,
        document_type: str,
        description: str,
        action_type: str | None = None,
        owner: str | None = None,
        priority: int | None = None,
        deadline: datetime | None = None,
        auto_resolve_on: Sequence[str] | None = None,
        auto_resolve_keywords: Sequence[str] | None = None,
        source_document_id: str | None = None,
    ) -> int:
        """Open an action for a shipment. Returns the action ID.

        auto_resolve_on / auto_resolve_keywords are stored as given; None
        leaves resolution to the template of the action's document type.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO shipment_actions
                (shipment_id, document_type, description, action_type, owner, priority,
                 deadline, auto_resolve_on, auto_resolve_keywords, source_document_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    shipment_id,
                    document_type,
                    description,
                    action_type,
                    owner,
                    priority,
                    deadline.isoformat() if deadline else None,
                    _json_list(auto_resolve_on),
                    _json_list(auto_resolve_keywords),
                    source_document_id,
                    _utc_now(),
                ),
            )
            return cursor.lastrowid or 0

    def get_action(self, action_id: int) -> OpenAction | None:
        """Get an action (open or completed) by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM shipment_actions WHERE id = ?", (action_id,)
            ).fetchone()
            return _action_from_row(row) if row else None

    def list_open_actions(self, shipment_id: str) -> list[OpenAction]:
        """Get all not-yet-completed actions of a shipment, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM shipment_actions
                WHERE shipment_id = ? AND completed_at IS NULL
                ORDER BY created_at ASC, id ASC
            """,
                (shipment_id,),
            ).fetchall()
            return [_action_from_row(row) for row in rows]

    def complete_action(self, action_id: int, note: str | None = None) -> bool:
        """
        Mark an open action completed, appending note to its description.

        The update only applies while completed_at is NULL, so an action
        completes at most once. Returns True if this call completed it.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE shipment_actions
                SET completed_at = ?,
                    description = description || COALESCE(?, '')
                WHERE id = ? AND completed_at IS NULL
            """,
                (_utc_now(), note, action_id),
            )
            return cursor.rowcount > 0

    # Statistics

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._transaction() as conn:

            def count(query: str) -> int:
                row = conn.execute(query).fetchone()
                return row["count"] if row else 0

            return {
                "confidence_rules": count("SELECT COUNT(*) as count FROM confidence_rules"),
                "action_templates": count("SELECT COUNT(*) as count FROM action_templates"),
                "flow_rules": count("SELECT COUNT(*) as count FROM flow_validation_rules"),
                "time_rules": count("SELECT COUNT(*) as count FROM time_based_action_rules"),
                "sender_domains": count("SELECT COUNT(*) as count FROM sender_trust_scores"),
                "confidence_calculations": count(
                    "SELECT COUNT(*) as count FROM confidence_calculations"
                ),
                "open_actions": count(
                    "SELECT COUNT(*) as count FROM shipment_actions WHERE completed_at IS NULL"
                ),
                "completed_actions": count(
                    "SELECT COUNT(*) as count FROM shipment_actions WHERE completed_at IS NOT NULL"
                ),
            }
