#!/usr/bin/env python3
"""
crisis-engine CLI
=================

Command-line interface for the crisis detection engine.

Usage:
    crisis-engine classify --clicks 11            # Classify a behavior record
    crisis-engine classify --errors 4 --json

    crisis-engine scenarios                       # List built-in scenarios
    crisis-engine simulate emergency-crisis       # Run a scenario (exit 1 on fail)
    crisis-engine simulate my-scenario.yaml --seed 7

    crisis-engine sessions ~/.crisis_engine/sessions.jsonl
    crisis-engine config show
"""

import argparse
import json
import sys
import logging
from pathlib import Path
from typing import List, Optional

import yaml

from crisis_engine.classifier import CrisisClassifier
from crisis_engine.config import load_engine_config
from crisis_engine.fog import estimate, fog_band
from crisis_engine.models.profile import AdaptationProfile
from crisis_engine.models.record import BehaviorRecord
from crisis_engine.recorder import JsonlSessionStore
from crisis_engine.selector import AdaptationSelector
from crisis_engine.simulation import BUILTIN_SCENARIOS, get_scenario, run_scenario

logger = logging.getLogger(__name__)


def _print_profile(profile: AdaptationProfile) -> None:
    print("\nAdaptation profile:")
    print(f"  Simplification:    {profile.simplification:.2f}")
    print(f"  Touch targets:     x{profile.touch_target_multiplier:.2f}")
    print(f"  Reduce motion:     {'yes' if profile.reduce_motion else 'no'}")
    print(f"  Color:             {profile.color.value}")
    print(f"  Hide non-essential:{' yes' if profile.hide_non_essential else ' no'}")
    print(f"  Confirmations:     {profile.confirmation.label}")
    features = sorted(f.value for f in profile.features)
    print(f"  Features:          {', '.join(features) if features else '-'}")


def cmd_classify(args: argparse.Namespace) -> int:
    """Classify a single behavior record."""
    config = load_engine_config(args.config)
    record = BehaviorRecord.from_dict({
        "rapid_click_count": args.clicks,
        "navigation_reversal_count": args.reversals,
        "error_event_count": args.errors,
        "session_duration_seconds": args.duration,
        "help_request_count": args.help_requests,
        "manual_self_report": args.rating,
    })

    result = CrisisClassifier.from_config(config.classifier).explain(record)
    score = estimate(record, config.fog)
    band = fog_band(score, config.fog)
    profile = AdaptationSelector(config.selector, config.fog).select(result.level, score)

    if args.json:
        print(json.dumps({
            "level": result.level.label,
            "triggers": [t.model_dump(mode="json") for t in result.triggers],
            "fog_score": round(score, 4),
            "fog_band": band.value,
            "profile": profile.to_dict(),
        }, indent=2))
        return 0

    print(f"Level: {result.level}")
    for trigger in result.triggers:
        print(f"  - {trigger.type.value}: {trigger.context}")
    print(f"Fog: {score:.2f} ({band.value})")
    _print_profile(profile)
    return 0


def cmd_scenarios(args: argparse.Namespace) -> int:
    """List built-in scenarios."""
    for name, scenario in BUILTIN_SCENARIOS.items():
        print(f"{name:<20} {scenario.expected_peak.label:<10} "
              f"{scenario.total_ticks:>3} ticks  {scenario.description}")
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    """Run a scenario and report pass/fail."""
    try:
        scenario = get_scenario(args.scenario)
    except (KeyError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    config = load_engine_config(args.config)
    result = run_scenario(scenario, config, seed=args.seed)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"=== Scenario: {scenario.name} ===")
        if scenario.description:
            print(scenario.description)
        print()
        for entry in result.timeline:
            print(f"  t={entry.time:>6.1f}s  {entry.level.label:<10} "
                  f"fog={entry.fog_score:.2f}  touch=x{entry.touch_target_multiplier:.2f}")
        print()
        print(f"Peak:     {result.peak_level} (expected {result.expected_peak})")
        print(f"Final:    {result.final_level}")
        print(f"Sessions: {result.sessions}")
        print(f"Flapped:  {'yes' if result.flapped else 'no'}")
        print(f"Result:   {'PASS' if result.passed else 'FAIL'}")

    return 0 if result.passed else 1


def cmd_sessions(args: argparse.Namespace) -> int:
    """List sessions from a JSONL store."""
    path = Path(args.path).expanduser()
    if not path.exists():
        print(f"No session store at {path}", file=sys.stderr)
        return 1

    sessions = list(JsonlSessionStore(path).iter_all())

    if args.json:
        print(json.dumps([s.model_dump(mode="json") for s in sessions], indent=2))
        return 0

    print(f"{len(sessions)} sessions in {path}")
    for s in sessions:
        duration = s.duration_seconds
        duration_str = f"{duration:.0f}s" if duration is not None else "open"
        feedback = f"  \"{s.user_feedback}\"" if s.user_feedback else ""
        print(f"  #{s.episode_number:<3} {s.id}  peak={s.peak_level:<9} "
              f"{s.outcome.value:<11} {duration_str:>6}{feedback}")
    return 0


def cmd_config_show(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    config = load_engine_config(args.config)
    print(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False), end="")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="crisis-engine",
        description="Behavioral crisis detection engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=None,
                        help="Config file (default: search standard locations)")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # classify
    p = subparsers.add_parser("classify", help="Classify a behavior record")
    p.add_argument("--clicks", type=int, default=0, help="Rapid click count")
    p.add_argument("--reversals", type=int, default=0, help="Navigation reversal count")
    p.add_argument("--errors", type=int, default=0, help="Error event count")
    p.add_argument("--duration", type=int, default=0, help="Session duration (seconds)")
    p.add_argument("--help-requests", type=int, default=0, help="Help request count")
    p.add_argument("--rating", type=int, default=None, help="Self-reported distress (1-10)")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_classify)

    # scenarios
    p = subparsers.add_parser("scenarios", help="List built-in scenarios")
    p.set_defaults(func=cmd_scenarios)

    # simulate
    p = subparsers.add_parser("simulate", help="Run a stress scenario")
    p.add_argument("scenario", help="Built-in scenario name or YAML file")
    p.add_argument("--seed", type=int, default=None, help="Random seed for jitter")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_simulate)

    # sessions
    p = subparsers.add_parser("sessions", help="List recorded crisis sessions")
    p.add_argument("path", help="JSONL session store")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_sessions)

    # config
    p = subparsers.add_parser("config", help="Configuration")
    config_sub = p.add_subparsers(dest="config_command")

    pp = config_sub.add_parser("show", help="Show effective configuration")
    pp.set_defaults(func=cmd_config_show)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    if hasattr(args, "func"):
        try:
            return args.func(args)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
