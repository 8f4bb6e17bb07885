"""
Tests for the NotificationEngine pipeline.

End-to-end flows over a MemoryStore with a frozen clock.
"""

from __future__ import annotations

import logging

import pytest

from signal_triage.notifications import NotificationEngine
from signal_triage.notifications.models import Domain, Urgency
from signal_triage.notifications.rules import RuleAction, RuleCondition


def _deliver_many(engine, clock, signal_factory, count: int, step_minutes: int = 3):
    results = []
    for _ in range(count):
        results.append(engine.process_signal(signal_factory()))
        clock.advance(minutes=step_minutes)
    return results


# =============================================================================
# Delivery
# =============================================================================


class TestDelivery:
    """Tests for the happy path."""

    def test_critical_regulatory_delivered_immediately(self, engine, signal_factory):
        delivered = engine.process_signal(
            signal_factory(domain="REGULATORY", priority="critical", relevance_score=0.9)
        )

        assert delivered is not None
        assert delivered.sis == 86
        assert delivered.urgency == Urgency.IMMEDIATE
        assert delivered.domain == Domain.REGULATORY
        assert not delivered.overrides_quiet_hours
        assert engine.get_unread_count() == 1

    def test_delivered_signal_persisted(self, engine, signal_factory, clock):
        raw = signal_factory()
        delivered = engine.process_signal(raw)

        stored = engine.get_signals()
        assert [s.id for s in stored] == [delivered.id]
        assert stored[0].signal_id == raw["id"]
        assert stored[0].created_at == clock.now
        assert stored[0].source_url == raw["url"]
        assert stored[0].companies == ["Acme"]

    def test_budget_consumed(self, engine, signal_factory):
        engine.process_signal(signal_factory())

        budget = engine.get_budget_status()
        assert (budget.hourly, budget.daily) == (7, 29)


class TestFatigue:
    """Tests for budget exhaustion and queue drain."""

    def test_ninth_signal_in_an_hour_is_queued(self, engine, clock, signal_factory, caplog):
        with caplog.at_level(logging.DEBUG, logger="signal_triage"):
            results = _deliver_many(engine, clock, signal_factory, 9)

        assert all(r is not None for r in results[:8])
        assert results[8] is None
        assert engine.queue.size() == 1
        assert "Hourly limit reached (8)" in caplog.text
        assert engine.get_budget_status().hourly == 0

    def test_queue_drains_after_hourly_reset(self, engine, clock, signal_factory):
        _deliver_many(engine, clock, signal_factory, 9)

        clock.set(clock.now.replace(hour=11, minute=0))
        assert engine.process_queue() == []

        clock.advance(seconds=1)
        drained = engine.process_queue()

        assert len(drained) == 1
        assert engine.queue.size() == 0
        assert len(engine.get_signals()) == 9

    def test_minimum_gap_defers(self, engine, signal_factory):
        assert engine.process_signal(signal_factory()) is not None
        assert engine.process_signal(signal_factory()) is None
        assert engine.get_queue()[0].urgency == Urgency.TIMELY

    def test_persona_budgets(self, store, clock, signal_factory, caplog):
        """With persona budgets on, the executive persona caps at 3 per hour."""
        engine = NotificationEngine(store, persona_budgets=True, clock=clock)

        with caplog.at_level(logging.DEBUG, logger="signal_triage"):
            results = _deliver_many(engine, clock, signal_factory, 4)

        assert [r is not None for r in results] == [True, True, True, False]
        assert "Hourly limit reached (3)" in caplog.text


class TestValidation:
    def test_invalid_signal_rejected(self, engine, caplog):
        with caplog.at_level(logging.WARNING):
            assert engine.process_signal({"id": "sig-x", "priority": "high"}) is None

        assert "Rejected signal" in caplog.text
        assert engine.queue.size() == 0

    @pytest.mark.parametrize("overrides", [{"companies": 5}, {"topics": 3.5}])
    def test_malformed_list_fields_rejected(self, engine, signal_factory, caplog, overrides):
        with caplog.at_level(logging.WARNING):
            assert engine.process_signal(signal_factory(**overrides)) is None

        assert "Rejected signal" in caplog.text
        assert engine.queue.size() == 0

    def test_unexpected_errors_logged(self, engine, signal_factory, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise RuntimeError("scorer exploded")

        monkeypatch.setattr(engine.scorer, "calculate_sis", boom)

        with caplog.at_level(logging.ERROR):
            assert engine.process_signal(signal_factory(id="sig-boom")) is None

        assert "Failed to process signal sig-boom" in caplog.text


# =============================================================================
# Preference Gates
# =============================================================================


class TestPreferenceGates:
    """Tests for gate outcomes routed through the engine."""

    def test_snooze_queues_non_critical(self, engine, signal_factory):
        engine.preferences.snooze(30)

        assert engine.process_signal(signal_factory()) is None
        assert engine.queue.size() == 1

        critical = engine.process_signal(signal_factory(priority="critical"))
        assert critical is not None

    def test_focus_deferral_counted(self, engine, signal_factory):
        zone = engine.preferences.create_focus_zone("Tech deep dive", [Domain.TECHNOLOGY])
        engine.preferences.activate_focus_zone(zone.id)

        assert engine.process_signal(signal_factory()) is None

        assert engine.get_queue()[0].urgency == Urgency.BATCHED
        assert engine.preferences.get_active_focus().signals_collected == 1

    def test_quiet_hours_defers(self, engine, clock, signal_factory):
        clock.set(clock.now.replace(hour=23))

        assert engine.process_signal(signal_factory()) is None
        status = engine.get_status()
        assert status.quiet_hours_active
        assert status.to_dict()["quiet_hours_end"] == "2026-01-15T08:00:00Z"

    def test_deferral_logged_with_gate(self, engine, clock, signal_factory, caplog):
        clock.set(clock.now.replace(hour=23))

        with caplog.at_level(logging.DEBUG):
            engine.process_signal(signal_factory(id="sig-night"))

        record = next(r for r in caplog.records if getattr(r, "signal_id", None) == "sig-night")
        assert record.gate == "quiet_hours"
        assert record.urgency == "timely"
        assert record.sis == 71

    def test_disabled_domain_queued(self, engine, signal_factory):
        assert engine.process_signal(signal_factory(domain="NEWS")) is None
        assert engine.queue.size() == 1

    def test_below_threshold_goes_to_digest(self, engine, signal_factory):
        assert engine.process_signal(signal_factory(priority="medium")) is None
        assert engine.get_queue()[0].urgency == Urgency.DIGEST

    @pytest.mark.parametrize("persona_id", ["monitor", "zen"])
    def test_digest_personas_hold_non_immediate(self, engine, signal_factory, persona_id):
        engine.preferences.set_active_persona(persona_id)

        assert engine.process_signal(signal_factory()) is None
        assert engine.get_queue()[0].urgency == Urgency.DIGEST

    def test_digest_persona_still_delivers_critical(self, engine, signal_factory):
        engine.preferences.set_active_persona("zen")

        delivered = engine.process_signal(
            signal_factory(domain="REGULATORY", priority="critical", relevance_score=0.9)
        )

        assert delivered is not None
        assert delivered.urgency == Urgency.IMMEDIATE

    def test_livewire_enables_sound(self, engine, signal_factory):
        engine.preferences.set_active_persona("livewire")

        assert engine.process_signal(signal_factory()).sound


class TestAlertRules:
    def test_matching_rule_escalates_and_decorates(self, engine, signal_factory):
        rule = engine.preferences.create_alert_rule(
            "Acme watch",
            [RuleCondition("competitor", "contains", "acme")],
            [
                RuleAction("urgency", "immediate"),
                RuleAction("sound", True),
                RuleAction("highlight", True),
            ],
        )

        delivered = engine.process_signal(signal_factory())

        assert delivered.sis == 71
        assert delivered.urgency == Urgency.IMMEDIATE
        assert delivered.sound
        assert delivered.highlighted

        stored_rule = engine.preferences.get_preferences().alert_rules[0]
        assert stored_rule.id == rule.id
        assert stored_rule.trigger_count == 1

    def test_single_company_string_matches_rule(self, engine, signal_factory):
        engine.preferences.create_alert_rule(
            "Acme exact",
            [RuleCondition("competitor", "equals", "Acme")],
            [RuleAction("urgency", "immediate")],
        )

        delivered = engine.process_signal(signal_factory(companies="Acme"))

        assert delivered.companies == ["Acme"]
        assert delivered.urgency == Urgency.IMMEDIATE

    def test_non_matching_rule_leaves_signal_alone(self, engine, signal_factory):
        engine.preferences.create_alert_rule(
            "Globex watch",
            [RuleCondition("competitor", "contains", "globex")],
            [RuleAction("urgency", "immediate")],
        )

        delivered = engine.process_signal(signal_factory())

        assert delivered.urgency == Urgency.TIMELY
        assert engine.preferences.get_preferences().alert_rules[0].trigger_count == 0


# =============================================================================
# Clustering
# =============================================================================


class TestClustering:
    def test_delivered_signals_clustered(self, engine, clock, signal_factory):
        _deliver_many(engine, clock, signal_factory, 8)

        clusters = engine.get_clusters()

        assert [c.size for c in clusters] == [5, 3]
        assert clusters[0].title == "5 competitive signals"
        assert {s.cluster_id for s in engine.get_signals()} == {c.id for c in clusters}

    def test_digest_groups_queue(self, engine, signal_factory):
        engine.preferences.set_active_persona("monitor")
        for domain in ("COMPETITIVE", "COMPETITIVE", "MARKET"):
            engine.process_signal(signal_factory(domain=domain))

        digest = engine.build_digest()

        assert sorted(c.size for c in digest) == [1, 2]


# =============================================================================
# User Actions
# =============================================================================


class TestUserActions:
    """Tests for read, dismiss and feedback."""

    @pytest.fixture
    def delivered(self, engine, signal_factory):
        return engine.process_signal(signal_factory())

    def test_read(self, engine, delivered, clock):
        updated = engine.read(delivered.id)

        assert updated.read_at == clock.now
        assert engine.get_unread_count() == 0

        behavior = engine.get_behavior()
        assert behavior.total_interactions == 1
        assert behavior.read_rates[Domain.COMPETITIVE] > 0.5

    def test_dismiss(self, engine, delivered):
        engine.dismiss(delivered.id)

        assert engine.get_active_signals() == []
        assert engine.get_behavior().dismiss_rates[Domain.COMPETITIVE] > 0.5

    def test_read_signal_stays_active(self, engine, delivered):
        engine.read(delivered.id)

        assert [s.id for s in engine.get_active_signals()] == [delivered.id]

    def test_feedback(self, engine, delivered):
        updated = engine.feedback(delivered.id, 1)

        assert updated.feedback_score == 1
        assert engine.get_behavior().helpful_count == 1

    def test_invalid_feedback_score(self, engine, delivered):
        assert engine.feedback(delivered.id, 5) is None
        assert engine.get_behavior() is None

    def test_unknown_signal(self, engine, caplog):
        with caplog.at_level(logging.WARNING):
            assert engine.read("isig_missing") is None

        assert "isig_missing" in caplog.text

    def test_learning_disabled(self, engine, delivered):
        engine.preferences.set_learning_enabled(False)

        assert engine.read(delivered.id) is not None
        assert engine.get_behavior() is None

    def test_clear_learning_data(self, engine, delivered):
        engine.read(delivered.id)

        engine.clear_learning_data()

        assert engine.get_behavior() is None

    def test_mark_all_as_read(self, engine, clock, signal_factory):
        _deliver_many(engine, clock, signal_factory, 3)

        assert engine.mark_all_as_read() == 3
        assert engine.mark_all_as_read() == 0
        assert engine.get_unread_signals() == []


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    def test_explain(self, engine, signal_factory):
        result = engine.explain(signal_factory(id="sig-explain"))

        assert result["signal_id"] == "sig-explain"
        assert result["sis"] == 71
        assert result["urgency"] == "timely"
        assert result["decision"]["allowed"] is True
        assert set(result["components"]) == {"base_relevance", "priority", "recency", "user_history"}

    def test_explain_does_not_deliver(self, engine, signal_factory):
        engine.explain(signal_factory())

        assert engine.get_signals() == []
        assert engine.get_budget_status().hourly == 8

    def test_explain_invalid(self, engine):
        assert engine.explain({"domain": "NEWS"}) is None

    def test_status(self, engine, signal_factory):
        engine.process_signal(signal_factory())
        engine.process_signal(signal_factory())

        status = engine.get_status().to_dict()

        assert status["unread_count"] == 1
        assert status["queue_depth"] == 1
        assert status["persona_id"] == "executive"
        assert status["active_focus"] is None
        assert status["snoozed_until"] is None
        assert status["quiet_hours_active"] is False
        assert status["quiet_hours_end"] is None
        assert status["next_digest_at"] == "2026-01-15T09:00:00Z"

    def test_clear_queue(self, engine, signal_factory):
        engine.process_signal(signal_factory(domain="NEWS"))

        assert engine.clear_queue() == 1
        assert engine.get_queue() == []
