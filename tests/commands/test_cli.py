"""
CLI Command Tests

Drive main() end to end against a SQLite store under a temporary instance root.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from signal_triage.__main__ import main
from signal_triage.core.config import reset_settings


@pytest.fixture
def instance_root(tmp_path: Path, monkeypatch) -> Path:
    """Point settings at a fresh instance root."""
    monkeypatch.setenv("TRIAGE_INSTANCE_ROOT", str(tmp_path))
    monkeypatch.delenv("TRIAGE_STORE_BACKEND", raising=False)
    reset_settings()
    return tmp_path


@pytest.fixture
def run(instance_root, capsys):
    """Run a CLI command and return (exit_code, parsed JSON output)."""

    def _run(*argv: str) -> tuple[int, dict]:
        code = main(list(argv))
        out = capsys.readouterr().out
        return code, json.loads(out) if out.strip() else {}

    return _run


@pytest.fixture
def critical_file(instance_root) -> Path:
    path = instance_root / "critical.json"
    path.write_text(
        json.dumps(
            {
                "id": "sig-fda",
                "domain": "REGULATORY",
                "priority": "critical",
                "relevance_score": 0.9,
                "title": "FDA issues new guidance",
            }
        ),
        encoding="utf-8",
    )
    return path


class TestSignalCommands:
    def test_process_delivers_critical(self, run, critical_file, instance_root):
        code, result = run("process", str(critical_file))

        assert code == 0
        assert result["status"] == "ok"
        assert result["received"] == 1
        assert result["delivered"][0]["signal_id"] == "sig-fda"
        assert result["delivered"][0]["sis"] == 86
        assert (instance_root / "cache" / "triage.db").exists()

    def test_process_counts_rejected(self, run, instance_root):
        path = instance_root / "bad.json"
        path.write_text(json.dumps([{"id": "sig-1"}, {"domain": "NEWS"}]), encoding="utf-8")

        code, result = run("process", str(path))

        assert code == 0
        assert result["received"] == 2
        assert result["rejected"] == 2
        assert result["delivered"] == []

    def test_process_missing_file(self, run, instance_root):
        code, result = run("process", str(instance_root / "absent.json"))

        assert code == 1
        assert result["error"] == "not_found"

    def test_process_invalid_json(self, run, instance_root):
        path = instance_root / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        code, result = run("process", str(path))

        assert code == 1
        assert result["error"] == "invalid"

    def test_state_persists_between_commands(self, run, critical_file):
        _, processed = run("process", str(critical_file))
        signal_id = processed["delivered"][0]["id"]

        code, status = run("status")
        assert code == 0
        assert status["unread_count"] == 1

        code, read = run("read", signal_id)
        assert code == 0
        assert read["signal"]["read_at"] is not None

        _, status = run("status")
        assert status["unread_count"] == 0

    def test_read_requires_target(self, run):
        code, result = run("read")

        assert code == 1
        assert result["error"] == "invalid"

    def test_dismiss_unknown(self, run):
        code, result = run("dismiss", "isig_missing")

        assert code == 1
        assert result["error"] == "not_found"

    def test_feedback_and_learning(self, run, critical_file):
        _, processed = run("process", str(critical_file))
        signal_id = processed["delivered"][0]["id"]

        code, _ = run("feedback", signal_id, "1")
        assert code == 0

        _, learning = run("learning")
        assert learning["learning_enabled"] is True
        assert learning["behavior"]["helpful_count"] == 1

        _, cleared = run("learning", "--clear")
        assert cleared["cleared"] is True

    def test_explain(self, run, critical_file):
        code, result = run("explain", str(critical_file))

        assert code == 0
        assert result["signals"][0]["sis"] == 86
        assert result["signals"][0]["urgency"] == "immediate"

    def test_queue_and_digest(self, run, instance_root):
        run("persona", "set", "monitor")
        path = instance_root / "batch.json"
        path.write_text(
            json.dumps(
                [
                    {"id": f"sig-{n}", "domain": "MARKET", "priority": "low", "relevance_score": 0.4}
                    for n in range(3)
                ]
            ),
            encoding="utf-8",
        )

        _, processed = run("process", str(path))
        assert processed["queued"] == 3

        _, queue = run("queue")
        assert queue["count"] == 3

        _, digest = run("digest")
        assert [c["title"] for c in digest["clusters"]] == ["3 market signals"]

        _, cleared = run("queue", "--clear")
        assert cleared["cleared"] == 3


class TestPreferenceCommands:
    def test_persona_set_unknown(self, run):
        code, result = run("persona", "set", "night-owl")

        assert code == 1
        assert result["error"] == "not_found"

    def test_persona_list(self, run):
        run("persona", "set", "livewire")

        _, result = run("persona", "list")

        assert result["active_persona_id"] == "livewire"
        assert {p["id"] for p in result["personas"]} >= {"executive", "zen"}

    def test_snooze(self, run):
        code, result = run("snooze", "30")
        assert code == 0
        assert result["snoozed_until"].endswith("Z")

        _, status = run("status")
        assert status["snoozed_until"] == result["snoozed_until"]

        run("unsnooze")
        _, status = run("status")
        assert status["snoozed_until"] is None

    def test_snooze_rejects_non_positive(self, run):
        code, result = run("snooze", "0")

        assert code == 1
        assert result["error"] == "invalid"

    @pytest.mark.parametrize("minutes", ["1e12", "inf", "nan"])
    def test_snooze_rejects_out_of_range(self, run, minutes):
        code, result = run("snooze", minutes)

        assert code == 1
        assert result["error"] == "invalid"

        _, status = run("status")
        assert status["snoozed_until"] is None

    def test_focus_activate_rejects_out_of_range(self, run):
        _, created = run("focus", "create", "Deal prep", "--domains", "COMPETITIVE")

        code, result = run("focus", "activate", created["zone"]["id"], "--minutes", "1e12")

        assert code == 1
        assert result["error"] == "invalid"

    def test_quiet_hours_update(self, run):
        code, result = run(
            "quiet-hours", "--start", "21:30", "--timezone", "Europe/Paris", "--weekends-only"
        )

        assert code == 0
        assert result["quiet_hours"]["start"] == "21:30"
        assert result["quiet_hours"]["timezone"] == "Europe/Paris"
        assert result["quiet_hours"]["weekends_only"] is True

    def test_quiet_hours_rejects_bad_timezone(self, run):
        code, result = run("quiet-hours", "--timezone", "Mars/Olympus_Mons")

        assert code == 1
        assert result["error"] == "invalid"

    def test_focus_lifecycle(self, run):
        code, created = run("focus", "create", "Deal prep", "--domains", "competitive", "MARKET")
        assert code == 0
        zone_id = created["zone"]["id"]
        assert created["zone"]["domains"] == ["COMPETITIVE", "MARKET"]

        code, activated = run("focus", "activate", zone_id, "--minutes", "60")
        assert code == 0
        assert activated["active_focus"]["ends_at"] is not None

        _, status = run("status")
        assert status["active_focus"] == "Deal prep"

        code, summary = run("focus", "deactivate")
        assert code == 0
        assert summary["signals_collected"] == 0

        code, result = run("focus", "deactivate")
        assert code == 1
        assert result["error"] == "not_active"

    def test_focus_unknown_domain(self, run):
        code, result = run("focus", "create", "Bad", "--domains", "SPORTS")

        assert code == 1
        assert result["error"] == "invalid"

    def test_rules_add_toggle_delete(self, run):
        code, added = run(
            "rules", "add", "Acme watch",
            "--when", "competitor~=acme",
            "--when", "priority!=low",
            "--then", "urgency=immediate",
            "--then", "sound=true",
        )
        assert code == 0
        rule = added["rule"]
        assert [c["operator"] for c in rule["conditions"]] == ["contains", "not_equals"]
        assert rule["actions"][1]["value"] is True

        _, toggled = run("rules", "toggle", rule["id"])
        assert toggled["rule"]["enabled"] is False

        _, listed = run("rules", "list")
        assert listed["count"] == 1

        code, _ = run("rules", "delete", rule["id"])
        assert code == 0

        code, _ = run("rules", "delete", rule["id"])
        assert code == 1

    def test_rules_add_json(self, run):
        document = {
            "conditions": [{"type": "domain", "operator": "equals", "value": "REGULATORY"}],
            "actions": [{"type": "override_quiet_hours", "value": True}],
        }

        code, added = run("rules", "add", "Regulatory", "--json", json.dumps(document))

        assert code == 0
        assert added["rule"]["condition_logic"] == "AND"

    def test_rules_add_invalid(self, run):
        code, result = run("rules", "add", "Broken", "--when", "weather=rain")

        assert code == 1
        assert result["error"] == "invalid"

    def test_preferences_reset(self, run):
        run("persona", "set", "zen")

        _, result = run("preferences", "--reset")

        assert result["reset"] is True
        assert result["preferences"]["active_persona_id"] == "executive"


class TestHelp:
    def test_no_command_prints_help(self, instance_root, capsys):
        code = main([])

        assert code == 0
        assert "Signal Triage" in capsys.readouterr().out

    def test_help_command(self, instance_root, capsys):
        assert main(["help"]) == 0
        assert "persona set <id>" in capsys.readouterr().out
