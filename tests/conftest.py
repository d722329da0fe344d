"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from freight_decisions.config_cache import ConfigCache
from freight_decisions.state_store import StateStore
from rule_sets import (
    FakeClock,
    standard_fields,
    standard_flow_rules,
    standard_rules,
    standard_templates,
    standard_thresholds,
    standard_time_rules,
)


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Empty state store."""
    return StateStore(temp_db)


@pytest.fixture
def seeded_store(store) -> StateStore:
    """State store loaded with the standard decision rules."""
    store.replace_decision_config(
        rules=standard_rules(),
        expected_fields=standard_fields(),
        thresholds=standard_thresholds(),
        templates=standard_templates(),
        flow_rules=standard_flow_rules(),
        time_rules=standard_time_rules(),
    )
    return store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(seeded_store, clock) -> ConfigCache:
    """Rule cache over the seeded store with a controllable clock."""
    return ConfigCache(seeded_store, ttl_seconds=300, clock=clock)
