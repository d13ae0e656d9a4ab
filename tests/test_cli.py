from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from battlesim.__main__ import main
from tests.helpers.builders import easy_roster, hopeless_roster, unit_payload


def _run(monkeypatch: pytest.MonkeyPatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["battlesim", *args])
    main()


def _write(path: Path, data: object) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_simulate_prints_summary(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    roster = _write(tmp_path / "roster.json", easy_roster())

    _run(monkeypatch, "--roster", roster, "--seed", "7")

    out = capsys.readouterr().out
    assert "Forge Battle: Simulator" in out
    assert "Config: config.json (hash: " in out
    assert "Outcome: Victory" in out
    assert "Stages completed: 8/8" in out
    assert "Rewards: 179 rogue credits, 94 forge tokens" in out


def test_verbose_prints_battle_log(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    roster = _write(tmp_path / "roster.json", hopeless_roster())

    _run(monkeypatch, "--roster", roster, "--verbose")

    out = capsys.readouterr().out
    assert "--- Battle Log ---" in out
    assert "Squire has been defeated!" in out
    assert "Outcome: Defeat" in out


def test_json_output(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    roster = _write(tmp_path / "roster.json", easy_roster())

    _run(monkeypatch, "--roster", roster, "--json", "--speed", "4")

    data = json.loads(capsys.readouterr().out)
    assert data["victory"] is True
    assert data["rewards"] == {"rogueCredits": 179, "forgeTokens": 94}


def test_saved_events_replay(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    roster = _write(tmp_path / "roster.json", easy_roster())
    saved = tmp_path / "run.json"

    _run(monkeypatch, "--roster", roster, "--save-events", str(saved))
    capsys.readouterr()
    event_count = len(json.loads(saved.read_text(encoding="utf-8"))["events"])

    _run(monkeypatch, "--replay", str(saved))

    out = capsys.readouterr().out
    assert "Forge Battle: Replay" in out
    assert f"Events: {event_count} (0 skipped)" in out
    assert "Outcome: Victory" in out


def test_replay_without_end_reports_it(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    log = _write(tmp_path / "log.json", [{"type": "system_message", "message": "hello"}, {"type": "oops"}])

    _run(monkeypatch, "--replay", log, "--verbose")

    out = capsys.readouterr().out
    assert "Events: 2 (1 skipped)" in out
    assert "System: hello" in out
    assert "Log ended without a battle_end event." in out


def test_missing_file_exits_with_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "--roster", str(tmp_path / "missing.json"))

    assert exc.value.code == 1
    assert "Error: File not found" in capsys.readouterr().err


def test_empty_roster_exits_with_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    roster = _write(tmp_path / "roster.json", {"allies": [], "enemies": []})

    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "--roster", roster)

    assert exc.value.code == 1
    assert "at least one ally" in capsys.readouterr().err


def test_rules_file_is_applied(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys) -> None:
    roster = {
        "allies": [unit_payload("Caster", attack=5, vitality=10, speed=80, skill="Mega Gust")],
        "enemies": [unit_payload("Ogre", attack=100, vitality=100, speed=10)],
    }
    rules = {"skills": {"Mega Gust": {"effect": {"chance": 1.0, "kind": "reduce_speed", "magnitude": 10, "turns": 1}}}}

    _run(
        monkeypatch,
        "--roster", _write(tmp_path / "roster.json", roster),
        "--rules", _write(tmp_path / "rules.json", rules),
        "--json",
    )

    data = json.loads(capsys.readouterr().out)
    slows = [e for e in data["events"] if e["type"] == "status"]
    assert slows
    assert slows[0]["effect"] == "reduce_speed"
    assert slows[0]["applied"] is True
