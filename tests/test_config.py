"""Tests for configuration loading."""

from pathlib import Path

import pytest

from freight_decisions.config import (
    Config,
    ConfigValidationError,
    FlowScoreConfig,
    create_default_config,
    load_config,
)


class TestConfigDefaults:
    """Tests for default configuration values."""

    def test_defaults_are_valid(self):
        """Default config has no validation errors."""
        assert Config().validate() == []

    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        """A missing config file falls back to defaults."""
        monkeypatch.delenv("DECISIONS_DB_PATH", raising=False)
        monkeypatch.delenv("DECISIONS_CACHE_TTL_SECONDS", raising=False)
        monkeypatch.delenv("DECISIONS_NEW_SENDER_MIN_EMAILS", raising=False)
        config = load_config(tmp_path / "missing.yaml")

        assert config.cache.ttl_seconds == 300
        assert config.confidence.new_sender_min_emails == 10
        assert config.actions.default_owner == "operations"
        assert config.state_db_path == Path("data/decisions.db")

    def test_default_config_file_loads(self, tmp_path):
        """The generated default file round-trips to the default values."""
        path = tmp_path / "config.yaml"
        create_default_config(path)

        config = load_config(path)

        assert config.confidence == Config().confidence
        assert config.actions == Config().actions


class TestConfigLoading:
    """Tests for YAML values and environment overrides."""

    def test_yaml_values(self, tmp_path):
        """Values from the file override defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            """
cache:
  ttl_seconds: 60
confidence:
  new_sender_min_emails: 5
  flow_scores:
    unexpected: 40
actions:
  default_owner: ops_team
  time_action_lookahead_hours: 24
"""
        )

        config = load_config(path)

        assert config.cache.ttl_seconds == 60
        assert config.confidence.new_sender_min_emails == 5
        assert config.confidence.flow_scores.unexpected == 40
        assert config.confidence.flow_scores.expected == 100
        assert config.actions.default_owner == "ops_team"
        assert config.actions.time_action_lookahead_hours == 24

    def test_env_overrides(self, tmp_path, monkeypatch):
        """Environment variables win over the file."""
        monkeypatch.setenv("DECISIONS_DB_PATH", str(tmp_path / "env.db"))
        monkeypatch.setenv("DECISIONS_CACHE_TTL_SECONDS", "15")
        monkeypatch.setenv("DECISIONS_NEW_SENDER_MIN_EMAILS", "3")

        config = load_config(tmp_path / "missing.yaml")

        assert config.state_db_path == tmp_path / "env.db"
        assert config.cache.ttl_seconds == 15
        assert config.confidence.new_sender_min_emails == 3

    def test_invalid_env_value(self, tmp_path, monkeypatch):
        """Non-integer TTL in the environment is rejected."""
        monkeypatch.setenv("DECISIONS_CACHE_TTL_SECONDS", "soon")

        with pytest.raises(ConfigValidationError):
            load_config(tmp_path / "missing.yaml")

    def test_non_mapping_file(self, tmp_path):
        """A YAML list is not a valid config."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigValidationError):
            load_config(path)

    def test_invalid_values_rejected(self, tmp_path):
        """Validation errors are raised at load time."""
        path = tmp_path / "config.yaml"
        path.write_text(
            """
confidence:
  unknown_sender_trust: 1.5
  identifier_min_length: 40
actions:
  time_action_lookahead_hours: -1
"""
        )

        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)

        assert "unknown_sender_trust" in str(exc_info.value)
        assert "identifier_min_length" in str(exc_info.value)
        assert "time_action_lookahead_hours" in str(exc_info.value)


class TestFlowScores:
    """Tests for flow score lookup."""

    def test_score_for_rule_types(self):
        scores = FlowScoreConfig()
        assert scores.score_for("expected") == 100
        assert scores.score_for("allowed") == 80
        assert scores.score_for("unexpected") == 45
        assert scores.score_for("impossible") == 10

    def test_score_for_missing_rule(self):
        assert FlowScoreConfig().score_for(None) == 70
