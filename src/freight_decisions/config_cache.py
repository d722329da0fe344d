"""
In-memory cache of decision rules.

Rules are read from the state store into an immutable ConfigSnapshot.
A refresh builds a new snapshot and swaps the reference under a lock;
readers take whatever snapshot is current and never block.
"""

import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Optional

from .config import ConfigValidationError
from .schemas.actions import ActionTemplate, TemplateKey, TimeBasedRule
from .schemas.confidence import ConfidenceRule, ExpectedField, FlowRule, Threshold
from .state_store import StateStore

logger = logging.getLogger(__name__)


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


@dataclass(frozen=True)
class ConfigSnapshot:
    """One consistent view of every decision rule."""

    rules: Mapping[str, ConfidenceRule] = field(default_factory=lambda: _frozen({}))
    expected_fields: Mapping[str, tuple[ExpectedField, ...]] = field(
        default_factory=lambda: _frozen({})
    )
    # Sorted by min_score descending
    thresholds: tuple[Threshold, ...] = ()
    templates: Mapping[TemplateKey, ActionTemplate] = field(default_factory=lambda: _frozen({}))
    templates_by_type: Mapping[str, tuple[ActionTemplate, ...]] = field(
        default_factory=lambda: _frozen({})
    )
    flow_rules: Mapping[tuple[str, str], FlowRule] = field(default_factory=lambda: _frozen({}))
    time_rules: tuple[TimeBasedRule, ...] = ()

    @classmethod
    def build(
        cls,
        rules: Iterable[ConfidenceRule] = (),
        expected_fields: Iterable[ExpectedField] = (),
        thresholds: Iterable[Threshold] = (),
        templates: Iterable[ActionTemplate] = (),
        flow_rules: Iterable[FlowRule] = (),
        time_rules: Iterable[TimeBasedRule] = (),
    ) -> "ConfigSnapshot":
        """Index rule rows into lookup tables.

        Disabled templates and time rules are dropped. For duplicate keys
        the first row wins.
        """
        fields_by_type: dict[str, list[ExpectedField]] = {}
        for f in expected_fields:
            fields_by_type.setdefault(f.document_type, []).append(f)

        by_key: dict[TemplateKey, ActionTemplate] = {}
        by_type: dict[str, list[ActionTemplate]] = {}
        for template in templates:
            if not template.enabled:
                continue
            by_key.setdefault(template.key, template)
            by_type.setdefault(template.document_type, []).append(template)

        flow: dict[tuple[str, str], FlowRule] = {}
        for rule in flow_rules:
            flow.setdefault((rule.stage, rule.document_type), rule)

        return cls(
            rules=_frozen({r.name: r for r in rules}),
            expected_fields=_frozen({k: tuple(v) for k, v in fields_by_type.items()}),
            thresholds=tuple(sorted(thresholds, key=lambda t: t.min_score, reverse=True)),
            templates=_frozen(by_key),
            templates_by_type=_frozen({k: tuple(v) for k, v in by_type.items()}),
            flow_rules=_frozen(flow),
            time_rules=tuple(r for r in time_rules if r.enabled),
        )

    def weight_for(self, rule_name: str) -> float:
        """Effective weight of a confidence rule (0 if missing or disabled)."""
        rule = self.rules.get(rule_name)
        return rule.effective_weight if rule else 0.0

    def fields_for(self, document_type: str) -> tuple[ExpectedField, ...]:
        return self.expected_fields.get(document_type, ())

    def flow_rule(self, stage: str, document_type: str) -> Optional[FlowRule]:
        return self.flow_rules.get((stage, document_type))

    def template_for(self, key: TemplateKey) -> Optional[ActionTemplate]:
        return self.templates.get(key)

    def template_for_document_type(
        self, document_type: str, direction: str = "inbound"
    ) -> Optional[ActionTemplate]:
        """First template for a document type, preferring the given direction."""
        candidates = self.templates_by_type.get(document_type, ())
        for template in candidates:
            if template.direction == direction:
                return template
        return candidates[0] if candidates else None

    def validate(self) -> list[str]:
        """Validate rule values.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        for rule in self.rules.values():
            if rule.weight < 0:
                errors.append(f"confidence rule '{rule.name}' has negative weight {rule.weight}")

        for fields in self.expected_fields.values():
            for f in fields:
                if f.weight < 0:
                    errors.append(
                        f"expected field '{f.document_type}.{f.field_name}' "
                        f"has negative weight {f.weight}"
                    )

        for band in self.thresholds:
            if band.min_score > band.max_score:
                errors.append(f"threshold band {band.min_score}-{band.max_score}: min > max")
            if band.min_score < 0 or band.max_score > 100:
                errors.append(
                    f"threshold band {band.min_score}-{band.max_score} is outside 0-100"
                )

        for rule in self.time_rules:
            if rule.cooldown_hours < 0:
                errors.append(f"time rule '{rule.name}' has negative cooldown_hours")

        return errors

    def sizes(self) -> dict[str, int]:
        return {
            "rules": len(self.rules),
            "expected_fields": sum(len(v) for v in self.expected_fields.values()),
            "thresholds": len(self.thresholds),
            "templates": len(self.templates),
            "flow_rules": len(self.flow_rules),
            "time_rules": len(self.time_rules),
        }


EMPTY_SNAPSHOT = ConfigSnapshot()


class ConfigCache:
    """
    TTL cache of decision rules loaded from the state store.

    Until the first successful load, ensure_loaded() returns an empty
    snapshot: every rule weight is 0 and no templates exist.
    """

    def __init__(
        self,
        store: StateStore,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Optional[ConfigSnapshot] = None
        self._loaded_at: Optional[float] = None
        self._loaded_at_utc: Optional[str] = None
        self._stale = True

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._stale or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self._ttl

    def _load(self) -> ConfigSnapshot:
        """Read all rule tables. Raises sqlite3.Error or ValueError."""
        return ConfigSnapshot.build(
            rules=self._store.get_confidence_rules(),
            expected_fields=self._store.get_expected_fields(),
            thresholds=self._store.get_thresholds(),
            templates=self._store.get_action_templates(enabled_only=True),
            flow_rules=self._store.get_flow_rules(),
            time_rules=self._store.get_time_based_rules(enabled_only=True),
        )

    def _install(self, snapshot: ConfigSnapshot) -> None:
        self._snapshot = snapshot
        self._loaded_at = self._clock()
        self._loaded_at_utc = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self._stale = False
        logger.info(f"Loaded decision rules: {snapshot.sizes()}")

    def ensure_loaded(self) -> ConfigSnapshot:
        """
        Return the current snapshot, reloading it first if expired.

        Load and validation failures are logged and the previous snapshot
        is kept. Never raises.
        """
        snapshot = self._snapshot
        if snapshot is not None and self._is_fresh():
            return snapshot

        with self._lock:
            if self._is_fresh():
                return self._snapshot or EMPTY_SNAPSHOT

            try:
                candidate = self._load()
            except (sqlite3.Error, ValueError) as e:
                logger.error(f"Failed to load decision rules, keeping previous snapshot: {e}")
                return self._snapshot or EMPTY_SNAPSHOT

            errors = candidate.validate()
            if errors:
                logger.error(
                    f"Discarding invalid decision rules, keeping previous snapshot: "
                    f"{'; '.join(errors)}"
                )
                return self._snapshot or EMPTY_SNAPSHOT

            self._install(candidate)
            return candidate

    def invalidate(self) -> None:
        """Force the next ensure_loaded() to reload regardless of TTL."""
        with self._lock:
            self._stale = True

    def warm(self) -> ConfigSnapshot:
        """
        Load rules at startup.

        Raises:
            ConfigValidationError: If the stored rules are invalid
        """
        with self._lock:
            try:
                candidate = self._load()
            except ValueError as e:
                raise ConfigValidationError(f"Invalid decision rules: {e}") from e
            except sqlite3.Error as e:
                logger.error(f"Failed to load decision rules at startup: {e}")
                return self._snapshot or EMPTY_SNAPSHOT

            errors = candidate.validate()
            if errors:
                raise ConfigValidationError("Invalid decision rules: " + "; ".join(errors))

            self._install(candidate)
            return candidate

    def stats(self) -> dict[str, Any]:
        """Snapshot sizes and freshness for monitoring."""
        snapshot = self._snapshot or EMPTY_SNAPSHOT
        expires_in = 0.0
        if self._is_fresh() and self._loaded_at is not None:
            expires_in = max(0.0, self._ttl - (self._clock() - self._loaded_at))
        return {
            "loaded": self._snapshot is not None,
            "loaded_at": self._loaded_at_utc,
            "ttl_seconds": self._ttl,
            "expires_in_seconds": round(expires_in, 1),
            **snapshot.sizes(),
        }
