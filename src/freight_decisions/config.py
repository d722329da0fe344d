"""
Configuration management (SSOT).

This module defines ALL runtime configuration for the decision engine.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Runtime settings (cache TTL, signal defaults, owners) live in config.yaml
- Decision rules (weights, bands, templates, flow rules) are data in the
  state store and are imported from a separate rules file
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class CacheConfig:
    """Decision-rule cache settings."""

    # Snapshot lifetime before the next call reloads (seconds)
    ttl_seconds: int = 300


@dataclass
class FlowScoreConfig:
    """Flow-validation score per rule type."""

    expected: int = 100
    allowed: int = 80
    unexpected: int = 45
    impossible: int = 10
    # No rule configured for (stage, document_type)
    no_rule: int = 70
    # No shipment stage available at all
    no_context: int = 75

    def score_for(self, rule_type: str | None) -> int:
        """Score for a flow rule type (None means no rule)."""
        if rule_type is None:
            return self.no_rule
        return getattr(self, rule_type, self.no_rule)


@dataclass
class ConcernThresholds:
    """Signal scores below which the reasoning lists a concern."""

    completeness: int = 60
    sender_trust: int = 60
    flow_validation: int = 70
    field_consistency: int = 80
    # Pattern scores at or above this are called out as strong
    strong_pattern: int = 90


@dataclass
class ConfidenceConfig:
    """Signal evaluation settings."""

    # Senders with fewer tracked emails are flagged as new
    new_sender_min_emails: int = 10
    # Trust assumed for domains never seen before (0-1)
    unknown_sender_trust: float = 0.5
    # Score for an address without a parseable domain
    invalid_sender_score: int = 30
    # Reliability assumed for patterns without any hits yet
    unproven_pattern_reliability: int = 80
    # Pattern confidence assumed when the classifier did not send one
    default_pattern_confidence: int = 80
    # Score when the pattern id is not in the registry
    unknown_pattern_score: int = 70
    # Neutral score for failed or unconfigured lookups
    neutral_score: int = 50
    # Plausible identifier length (booking, MBL, HBL numbers)
    identifier_min_length: int = 5
    identifier_max_length: int = 30
    # Field-consistency scoring
    consistency_issue_penalty: int = 15
    consistency_floor: int = 40
    # Worker threads used to evaluate the five signals
    max_workers: int = 5
    flow_scores: FlowScoreConfig = field(default_factory=FlowScoreConfig)
    concerns: ConcernThresholds = field(default_factory=ConcernThresholds)


@dataclass
class ActionConfig:
    """Action recommendation settings."""

    default_owner: str = "operations"
    # Direction used for template lookups of incoming email
    direction: str = "inbound"
    # from_party value that matches any sender
    wildcard_party: str = "*"
    # Time-based actions due within this many hours are reported
    time_action_lookahead_hours: int = 72


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    actions: ActionConfig = field(default_factory=ActionConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/decisions.db"))
    rules_path: Path = field(default_factory=lambda: Path("rules.yaml"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if self.cache.ttl_seconds < 0:
            errors.append("cache.ttl_seconds must be >= 0")

        conf = self.confidence
        if not 0.0 <= conf.unknown_sender_trust <= 1.0:
            errors.append("confidence.unknown_sender_trust must be between 0 and 1")
        if conf.identifier_min_length > conf.identifier_max_length:
            errors.append("identifier_min_length must be <= identifier_max_length")
        if conf.max_workers < 1:
            errors.append("confidence.max_workers must be >= 1")

        scores = {
            "invalid_sender_score": conf.invalid_sender_score,
            "unproven_pattern_reliability": conf.unproven_pattern_reliability,
            "default_pattern_confidence": conf.default_pattern_confidence,
            "unknown_pattern_score": conf.unknown_pattern_score,
            "neutral_score": conf.neutral_score,
            "consistency_floor": conf.consistency_floor,
            "flow_scores.expected": conf.flow_scores.expected,
            "flow_scores.allowed": conf.flow_scores.allowed,
            "flow_scores.unexpected": conf.flow_scores.unexpected,
            "flow_scores.impossible": conf.flow_scores.impossible,
            "flow_scores.no_rule": conf.flow_scores.no_rule,
            "flow_scores.no_context": conf.flow_scores.no_context,
        }
        for name, value in scores.items():
            if not 0 <= value <= 100:
                errors.append(f"confidence.{name} must be between 0 and 100")

        if not self.actions.default_owner:
            errors.append("actions.default_owner is required")
        if self.actions.time_action_lookahead_hours < 0:
            errors.append("actions.time_action_lookahead_hours must be >= 0")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - DECISIONS_DB_PATH
    - DECISIONS_RULES_PATH
    - DECISIONS_CACHE_TTL_SECONDS
    - DECISIONS_NEW_SENDER_MIN_EMAILS

    Raises:
        ConfigValidationError: If the file is not a mapping or values are invalid
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    if not isinstance(data, dict):
        raise ConfigValidationError(f"{config_path} must contain a YAML mapping")

    # Cache
    cache_data = data.get("cache", {})
    ttl_env = os.environ.get("DECISIONS_CACHE_TTL_SECONDS", "")
    ttl_seconds = cache_data.get("ttl_seconds", 300)
    if ttl_env:
        try:
            ttl_seconds = int(ttl_env)
        except ValueError:
            raise ConfigValidationError(
                f"DECISIONS_CACHE_TTL_SECONDS must be an integer, got {ttl_env!r}"
            )
    cache = CacheConfig(ttl_seconds=ttl_seconds)

    # Confidence
    conf_data = data.get("confidence", {})
    flow_data = conf_data.get("flow_scores", {})
    concern_data = conf_data.get("concerns", {})
    new_sender_env = os.environ.get("DECISIONS_NEW_SENDER_MIN_EMAILS", "")
    new_sender_min = conf_data.get("new_sender_min_emails", 10)
    if new_sender_env:
        try:
            new_sender_min = int(new_sender_env)
        except ValueError:
            raise ConfigValidationError(
                f"DECISIONS_NEW_SENDER_MIN_EMAILS must be an integer, got {new_sender_env!r}"
            )

    flow_defaults = FlowScoreConfig()
    flow_scores = FlowScoreConfig(
        expected=flow_data.get("expected", flow_defaults.expected),
        allowed=flow_data.get("allowed", flow_defaults.allowed),
        unexpected=flow_data.get("unexpected", flow_defaults.unexpected),
        impossible=flow_data.get("impossible", flow_defaults.impossible),
        no_rule=flow_data.get("no_rule", flow_defaults.no_rule),
        no_context=flow_data.get("no_context", flow_defaults.no_context),
    )

    concern_defaults = ConcernThresholds()
    concerns = ConcernThresholds(
        completeness=concern_data.get("completeness", concern_defaults.completeness),
        sender_trust=concern_data.get("sender_trust", concern_defaults.sender_trust),
        flow_validation=concern_data.get("flow_validation", concern_defaults.flow_validation),
        field_consistency=concern_data.get(
            "field_consistency", concern_defaults.field_consistency
        ),
        strong_pattern=concern_data.get("strong_pattern", concern_defaults.strong_pattern),
    )

    confidence = ConfidenceConfig(
        new_sender_min_emails=new_sender_min,
        unknown_sender_trust=conf_data.get("unknown_sender_trust", 0.5),
        invalid_sender_score=conf_data.get("invalid_sender_score", 30),
        unproven_pattern_reliability=conf_data.get("unproven_pattern_reliability", 80),
        default_pattern_confidence=conf_data.get("default_pattern_confidence", 80),
        unknown_pattern_score=conf_data.get("unknown_pattern_score", 70),
        neutral_score=conf_data.get("neutral_score", 50),
        identifier_min_length=conf_data.get("identifier_min_length", 5),
        identifier_max_length=conf_data.get("identifier_max_length", 30),
        consistency_issue_penalty=conf_data.get("consistency_issue_penalty", 15),
        consistency_floor=conf_data.get("consistency_floor", 40),
        max_workers=conf_data.get("max_workers", 5),
        flow_scores=flow_scores,
        concerns=concerns,
    )

    # Actions
    action_data = data.get("actions", {})
    actions = ActionConfig(
        default_owner=action_data.get("default_owner", "operations"),
        direction=action_data.get("direction", "inbound"),
        wildcard_party=action_data.get("wildcard_party", "*"),
        time_action_lookahead_hours=action_data.get("time_action_lookahead_hours", 72),
    )

    state_db = os.environ.get("DECISIONS_DB_PATH", data.get("state_db_path", "data/decisions.db"))
    rules_path = os.environ.get("DECISIONS_RULES_PATH", data.get("rules_path", "rules.yaml"))

    config = Config(
        cache=cache,
        confidence=confidence,
        actions=actions,
        state_db_path=Path(state_db),
        rules_path=Path(rules_path),
    )

    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))

    return config


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Freight decision engine configuration
#
# Decision rules (signal weights, threshold bands, action templates and
# flow rules) are NOT configured here. They live in the state database and
# are imported from the rules file with `freight-decisions import-rules`.

# Rule cache
cache:
  ttl_seconds: 300                       # Reload rules after this many seconds

# Confidence signals
confidence:
  new_sender_min_emails: 10              # Fewer tracked emails = new sender
  unknown_sender_trust: 0.5              # Trust for never-seen domains (0-1)
  invalid_sender_score: 30               # Sender address without a domain
  unproven_pattern_reliability: 80       # Pattern with no hits yet
  default_pattern_confidence: 80         # Pattern fired without a confidence
  unknown_pattern_score: 70              # Pattern id missing from registry
  neutral_score: 50                      # Failed or unconfigured lookups
  identifier_min_length: 5               # Plausible booking/BL number length
  identifier_max_length: 30
  consistency_issue_penalty: 15          # Per cross-field issue
  consistency_floor: 40                  # Lowest field-consistency score
  max_workers: 5                         # Threads evaluating signals
  flow_scores:
    expected: 100
    allowed: 80
    unexpected: 45
    impossible: 10
    no_rule: 70
    no_context: 75
  concerns:                              # Reasoning lists signals below these
    completeness: 60
    sender_trust: 60
    flow_validation: 70
    field_consistency: 80
    strong_pattern: 90

# Action recommendations
actions:
  default_owner: "operations"
  direction: "inbound"
  wildcard_party: "*"
  time_action_lookahead_hours: 72        # Report time-based actions due this soon

# State database path
state_db_path: "data/decisions.db"

# Rules file used by import-rules
rules_path: "rules.yaml"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
