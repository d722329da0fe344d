"""
CLI main entry point.
"""

import argparse
import json
import logging
import sqlite3
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..rules import RulesFileError, create_default_rules, import_rules_file
from ..schemas.actions import ShipmentContext, parse_datetime
from ..schemas.confidence import ConfidenceInput
from ..services import ClassifiedDocument, DecisionService
from ..state_store import StateStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="freight-decisions",
        description="Score freight document extractions and recommend operational actions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init command
    init_parser = subparsers.add_parser(
        "init", help="Write default config and rules, create the database"
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing config and rules files",
    )

    # import-rules command
    import_parser = subparsers.add_parser(
        "import-rules", help="Load a rules file into the state database"
    )
    import_parser.add_argument(
        "--rules",
        type=Path,
        help="Rules file (default: rules_path from config)",
    )

    # score command
    score_parser = subparsers.add_parser("score", help="Score one classified document")
    score_parser.add_argument("document", type=Path, help="Document JSON file ('-' for stdin)")
    score_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # recommend command
    recommend_parser = subparsers.add_parser(
        "recommend", help="Recommend an action for one classified document"
    )
    recommend_parser.add_argument(
        "document", type=Path, help="Document JSON file ('-' for stdin)"
    )
    recommend_parser.add_argument(
        "--now", type=str, help="Reference time for cutoff proximity (ISO 8601)"
    )
    recommend_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # auto-resolve command
    resolve_parser = subparsers.add_parser(
        "auto-resolve", help="Close open shipment actions resolved by a new document"
    )
    resolve_parser.add_argument("--shipment-id", required=True, help="Shipment ID")
    resolve_parser.add_argument(
        "--document-type", required=True, help="Type of the incoming document"
    )
    resolve_parser.add_argument("--subject", default="", help="Email subject")
    resolve_parser.add_argument("--body", default="", help="Email body")

    # process command
    process_parser = subparsers.add_parser(
        "process", help="Score, recommend and auto-resolve for one document"
    )
    process_parser.add_argument("document", type=Path, help="Document JSON file ('-' for stdin)")
    process_parser.add_argument(
        "--create-action",
        action="store_true",
        help="Open the recommended action for the shipment",
    )
    process_parser.add_argument(
        "--now", type=str, help="Reference time for cutoff proximity (ISO 8601)"
    )
    process_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # time-actions command
    time_parser = subparsers.add_parser(
        "time-actions", help="List time-based actions due for a shipment"
    )
    time_parser.add_argument(
        "shipment", type=Path, help="Shipment context JSON file ('-' for stdin)"
    )
    time_parser.add_argument("--now", type=str, help="Reference time (ISO 8601)")
    time_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # status command
    subparsers.add_parser("status", help="Show rule cache and database status")

    return parser


def _read_json(path: Path) -> dict[str, Any]:
    if str(path) == "-":
        data = json.load(sys.stdin)
    else:
        with open(path) as f:
            data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("document must be a JSON object")
    return data


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, default=str))


def _open_service(config: Config) -> DecisionService:
    """Build the decision service with warmed rules.

    Raises:
        ConfigValidationError: If the stored rules are invalid
    """
    service = DecisionService.from_config(config)
    try:
        service.cache.warm()
    except ConfigValidationError:
        service.close()
        raise
    return service


def cmd_init(config_path: Path, force: bool) -> int:
    """Write default files, create the database and import the rules."""
    if force or not config_path.exists():
        create_default_config(config_path)
        print(f"✓ Wrote config: {config_path}")
    else:
        print(f"  ⏭ Config exists: {config_path}")

    config = load_config(config_path)

    if force or not config.rules_path.exists():
        create_default_rules(config.rules_path)
        print(f"✓ Wrote rules: {config.rules_path}")
    else:
        print(f"  ⏭ Rules exist: {config.rules_path}")

    store = StateStore(config.state_db_path)
    print(f"✓ Database ready: {config.state_db_path}")

    return cmd_import_rules(config, config.rules_path, store)


def cmd_import_rules(
    config: Config, rules_path: Optional[Path], store: Optional[StateStore] = None
) -> int:
    """Import a rules file into the state database."""
    rules_path = rules_path or config.rules_path
    store = store or StateStore(config.state_db_path)

    print(f"📥 Importing rules from {rules_path}...")
    try:
        rule_set = import_rules_file(store, rules_path)
    except RulesFileError as e:
        print(f"❌ Invalid rules: {e}")
        return 1

    for name, count in rule_set.summary().items():
        print(f"  {name + ':':<22}{count}")
    print("\n✓ Rules imported")
    return 0


def cmd_score(config: Config, document_path: Path, as_json: bool) -> int:
    """Score one classified document."""
    inp = ConfidenceInput.from_dict(_read_json(document_path))

    with _open_service(config) as service:
        result = service.confidence.calculate_confidence(inp)

    if as_json:
        _print_json(result.to_dict())
        return 0

    print(f"\n📊 Confidence: {result.overall_score}% → {result.recommendation.value}")
    print("=" * 40)
    for name, signal in result.signals.items():
        print(f"  {name + ':':<20}{signal.score:>4}  (weight {signal.weight:g})")
    print()
    for reason in result.reasoning:
        print(f"  • {reason}")
    if result.audit_id is not None:
        print(f"\n  Audit ID: {result.audit_id}")
    return 0


def _print_recommendation(action) -> None:
    icon = "📌" if action.has_action else "📁"
    print(f"\n{icon} {action.action_verb}: {action.description}")
    print("=" * 40)
    print(f"  Owner:       {action.owner}")
    print(f"  Priority:    {action.priority} ({action.priority_label.value})")
    if action.deadline:
        print(f"  Deadline:    {action.deadline.isoformat()} ({action.deadline_source})")
    print(f"  Source:      {action.source.value} (confidence {action.confidence}%)")
    if action.was_flipped:
        print(f"  Flipped by:  '{action.flip_keyword}'")
    if action.auto_resolve_on:
        print(f"  Resolved by: {', '.join(action.auto_resolve_on)}")


def cmd_recommend(
    config: Config, document_path: Path, now: Optional[datetime], as_json: bool
) -> int:
    """Recommend an action for one classified document."""
    document = ClassifiedDocument.from_dict(_read_json(document_path))

    with _open_service(config) as service:
        action = service.actions.get_recommendation(
            document_type=document.document_type,
            from_party=document.from_party,
            subject=document.subject,
            body=document.body,
            email_date=document.email_date,
            shipment_context=document.shipment_context,
            now=now,
        )

    if as_json:
        _print_json(action.to_dict())
    else:
        _print_recommendation(action)
    return 0


def cmd_auto_resolve(
    config: Config, shipment_id: str, document_type: str, subject: str, body: str
) -> int:
    """Close open actions resolved by a new document."""
    with _open_service(config) as service:
        result = service.auto_resolver.check_auto_resolve(
            shipment_id, document_type, subject, body
        )

    if not result.resolved:
        print(f"No open actions of {shipment_id} resolved by {document_type}")
        return 0

    for action_id in result.resolved_action_ids:
        print(f"  ✓ Resolved action {action_id}")
    print(f"\n✓ Resolved: {len(result.resolved_action_ids)}")
    return 0


def cmd_process(
    config: Config,
    document_path: Path,
    create_action: bool,
    now: Optional[datetime],
    as_json: bool,
) -> int:
    """Run scoring, recommendation and auto-resolution for one document."""
    document = ClassifiedDocument.from_dict(_read_json(document_path))

    with _open_service(config) as service:
        decision = service.process_document(document, create_action=create_action, now=now)

    if as_json:
        _print_json(decision.to_dict())
        return 0

    conf = decision.confidence
    print(f"\n📊 Confidence: {conf.overall_score}% → {conf.recommendation.value}")
    for reason in conf.reasoning:
        print(f"  • {reason}")
    _print_recommendation(decision.action)
    if decision.auto_resolve and decision.auto_resolve.resolved:
        ids = ", ".join(str(i) for i in decision.auto_resolve.resolved_action_ids)
        print(f"\n✓ Auto-resolved actions: {ids}")
    if decision.created_action_id is not None:
        print(f"✓ Opened action {decision.created_action_id}")
    return 0


def cmd_time_actions(
    config: Config, shipment_path: Path, now: Optional[datetime], as_json: bool
) -> int:
    """List time-based actions firing now or coming up for a shipment."""
    context = ShipmentContext.from_dict(_read_json(shipment_path))

    with _open_service(config) as service:
        actions = service.actions.get_time_based_actions(context, now=now)

    if as_json:
        _print_json({"actions": [a.to_dict() for a in actions]})
        return 0

    if not actions:
        print("No time-based actions due")
        return 0

    print(f"\n⏰ Time-based actions: {len(actions)}")
    print("=" * 40)
    for action in actions:
        when = "FIRING" if action.is_firing else f"in {action.hours_until_trigger:.1f}h"
        print(f"  {action.action_verb}: {action.description} [{action.urgency}, {when}]")
        print(f"      owner {action.owner}, fires at {action.fires_at.isoformat()}")
    return 0


def cmd_status(config: Config) -> int:
    """Show rule cache and database status."""
    with _open_service(config) as service:
        cache_stats = service.cache.stats()
        stats = service.store.get_stats()

    print("\n📊 Decision Engine Status")
    print("=" * 40)
    print(f"  Rules loaded at:         {cache_stats['loaded_at'] or 'never'}")
    print(f"  Confidence rules:        {cache_stats['rules']}")
    print(f"  Expected fields:         {cache_stats['expected_fields']}")
    print(f"  Threshold bands:         {cache_stats['thresholds']}")
    print(f"  Action templates:        {cache_stats['templates']}")
    print(f"  Flow rules:              {cache_stats['flow_rules']}")
    print(f"  Time rules:              {cache_stats['time_rules']}")
    print(f"  Known sender domains:    {stats['sender_domains']}")
    print(f"  Confidence audits:       {stats['confidence_calculations']}")
    print(f"  Open actions:            {stats['open_actions']}")
    print(f"  Completed actions:       {stats['completed_actions']}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init":
        try:
            return cmd_init(parsed.config, parsed.force)
        except ConfigValidationError as e:
            print(f"❌ Failed to load config: {e}")
            return 1

    # Load config
    try:
        config = load_config(parsed.config)
    except ConfigValidationError as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    now = None
    if getattr(parsed, "now", None):
        try:
            now = parse_datetime(parsed.now)
        except ValueError:
            print(f"❌ Invalid --now value: {parsed.now}")
            return 1

    # Route to command
    try:
        if parsed.command == "import-rules":
            return cmd_import_rules(config, parsed.rules)
        elif parsed.command == "score":
            return cmd_score(config, parsed.document, parsed.json)
        elif parsed.command == "recommend":
            return cmd_recommend(config, parsed.document, now, parsed.json)
        elif parsed.command == "auto-resolve":
            return cmd_auto_resolve(
                config, parsed.shipment_id, parsed.document_type, parsed.subject, parsed.body
            )
        elif parsed.command == "process":
            return cmd_process(config, parsed.document, parsed.create_action, now, parsed.json)
        elif parsed.command == "time-actions":
            return cmd_time_actions(config, parsed.shipment, now, parsed.json)
        elif parsed.command == "status":
            return cmd_status(config)
        else:
            parser.print_help()
            return 1
    except ConfigValidationError as e:
        print(f"❌ Invalid decision rules: {e}")
        return 1
    except (OSError, ValueError, KeyError) as e:
        print(f"❌ Invalid document: {e}")
        return 1
    except sqlite3.Error as e:
        print(f"❌ Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
