"""Standalone CLI for the battle engine.

Usage:
    # Simulate a dungeon run from a roster file
    python -m battlesim --roster roster.json --seed 7 --verbose

    # Replay a recorded event log
    python -m battlesim --replay events.json

    # Simulate, then save the event log for later replay
    python -m battlesim --roster roster.json --save-events run.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from battlesim.config import DEFAULT_CONFIG, EngineConfig, config_hash, load_config
from battlesim.engine import BattleResult
from battlesim.rules import DEFAULT_RULES, RuleTable, load_rules
from battlesim.session import BattleSession


def _read_json(path: str) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        raise ValueError(f"File not found: {path}")
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}")


def _load_events(path: str) -> list[Any]:
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("events")
    if not isinstance(data, list):
        raise ValueError(f"{path} must hold a list of events or an object with an 'events' list")
    return data


def _format_unit(unit: dict[str, Any]) -> str:
    stats = unit["stats"]
    return (
        f"{unit['name']} HP {unit['hp']}/{unit['maxHp']} "
        f"(atk={stats['attack']}, vit={stats['vitality']}, spd={stats['speed']})"
    )


def _print_verbose_log(lines: list[str]) -> None:
    print("\n--- Battle Log ---")
    for line in lines:
        print(f"  {line}")
    print("--- End Battle Log ---\n")


def _print_result(result: BattleResult) -> None:
    print("Result:")
    print(f"  Outcome: {'Victory' if result.victory else 'Defeat'}")
    print(f"  Stages completed: {result.completed_stages}/{result.total_stages}")
    print(f"  Turns: {result.turns} ({result.ticks} ticks)")
    print(
        f"  Rewards: {result.rewards.rogue_credits} rogue credits, "
        f"{result.rewards.forge_tokens} forge tokens"
    )
    print()
    print("Allies:")
    for unit in result.allies:
        print(f"  {_format_unit(unit)}")


def _run_simulate(args: argparse.Namespace, config: EngineConfig, rules: RuleTable) -> None:
    roster = _read_json(args.roster)
    if not isinstance(roster, dict):
        raise ValueError(f"{args.roster} must hold an object with 'allies' and 'enemies'")

    stage_log: list[str] = []
    session = BattleSession.simulate(
        roster,
        match_seed=args.seed,
        rules=rules,
        config=config,
        playback_speed=args.speed,
        on_stage_cleared=lambda stage, rewards: stage_log.append(
            f"  Stage {stage + 1} cleared (+{rewards.rogue_credits} credits so far)"
        ),
    )

    if not args.json:
        print("Forge Battle: Simulator")
        print(f"Config: config.json (hash: {config_hash(args.config)})")
        print()
        for unit in session.units():
            side = "Ally " if unit["side"] == "ally" else "Enemy"
            print(f"{side}: {_format_unit(unit)}")
        print()
        print(f"Simulating (seed={args.seed}, speed={args.speed}x)...")
        print()

    result = session.run()
    if result is None:
        raise ValueError("Battle did not finish")

    if args.save_events:
        Path(args.save_events).write_text(
            json.dumps({"seed": args.seed, "events": result.events}, indent=2),
            encoding="utf-8",
        )

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return
    if args.verbose:
        _print_verbose_log(result.action_log)
    for line in stage_log:
        print(line)
    if stage_log:
        print()
    _print_result(result)
    if args.save_events:
        print(f"\nEvent log saved to {args.save_events}")


def _run_replay(args: argparse.Namespace, config: EngineConfig) -> None:
    events = _load_events(args.replay)
    session = BattleSession.replay(events, config=config, playback_speed=args.speed)
    result = session.run()
    skipped = session.skipped

    if args.json:
        payload = result.to_dict() if result else {"actionLog": session.action_log}
        payload["skipped"] = skipped
        print(json.dumps(payload, indent=2))
        return

    print("Forge Battle: Replay")
    print(f"Events: {len(events)} ({skipped} skipped)")
    print()
    if args.verbose:
        _print_verbose_log(session.action_log)
    if result is None:
        print("Log ended without a battle_end event.")
        return
    _print_result(result)


def main() -> None:
    """Entry point for the battle CLI."""
    parser = argparse.ArgumentParser(
        description="Forge Battle: battle simulator and log replayer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            'Examples:\n'
            '  python -m battlesim --roster roster.json --seed 7 --verbose\n'
            '  python -m battlesim --replay events.json\n'
            '  python -m battlesim --roster roster.json --save-events run.json\n'
        ),
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--roster", type=str,
        help="Roster JSON with 'allies' and 'enemies' arrays to simulate",
    )
    source.add_argument(
        "--replay", type=str,
        help="Event log JSON to replay",
    )

    parser.add_argument(
        "--seed", type=int, default=42,
        help="Match seed for reproducibility (default: 42)",
    )
    parser.add_argument(
        "--speed", type=int, default=1, choices=DEFAULT_CONFIG.playback_speeds,
        help="Playback speed multiplier (default: 1)",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Alternative engine config JSON (default: bundled config.json)",
    )
    parser.add_argument(
        "--rules", type=str, default=None,
        help="Skill rule overrides JSON",
    )
    parser.add_argument(
        "--save-events", type=str, default=None,
        help="Write the simulated event log to this file",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print the full result as JSON",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Print the turn-by-turn combat log",
    )
    parser.add_argument(
        "--log-level", type=str, default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Diagnostic log level (default: WARNING)",
    )

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = load_config(args.config)
        rules = DEFAULT_RULES
        if args.rules:
            data = _read_json(args.rules)
            if not isinstance(data, dict):
                raise ValueError(f"{args.rules} must hold an object")
            rules = load_rules(data)
        if args.roster:
            _run_simulate(args, config, rules)
        else:
            _run_replay(args, config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
