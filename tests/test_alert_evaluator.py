"""Tests for one-shot alert evaluation."""

from unittest.mock import Mock

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import FIXED_NOW, make_snapshot
from src.models.price_alert import AlertRule
from src.services.alert_evaluator import AlertEvaluator, MalformedRule, matches
from src.services.alert_service import AlertService
from src.services.errors import StoreUnavailable
from src.utils.event_store import ALERT_TRIGGERED, EventStore


def _rule(kind="price_above", target=100.0, asset_id="bitcoin", rule_id="rule-1", **kwargs):
    return AlertRule(
        id=rule_id,
        owner_id="user-1",
        asset_id=asset_id,
        kind=kind,
        target_value=target,
        **kwargs,
    )


class TestMatches:
    """Tests for the trigger predicate."""

    @given(price=st.floats(min_value=0, max_value=1e9, allow_nan=False, allow_infinity=False))
    @settings(max_examples=50)
    def test_price_rules_trigger_at_exact_equality(self, price):
        """For any price, both price_above and price_below trigger when target == price."""
        snapshot = make_snapshot(price=price)

        assert matches(_rule("price_above", price), snapshot)
        assert matches(_rule("price_below", price), snapshot)

    def test_price_above(self):
        assert matches(_rule("price_above", 100.0), make_snapshot(price=100.01))
        assert not matches(_rule("price_above", 100.0), make_snapshot(price=99.99))

    def test_price_below(self):
        assert matches(_rule("price_below", 100.0), make_snapshot(price=99.99))
        assert not matches(_rule("price_below", 100.0), make_snapshot(price=100.01))

    @pytest.mark.parametrize("change,expected", [(5.0, True), (-5.0, True), (-4.99, False), (7.5, True)])
    def test_percentage_change_uses_absolute_value(self, change, expected):
        snapshot = make_snapshot(price_change_percentage_24h=change)
        assert matches(_rule("percentage_change", 5.0), snapshot) is expected

    def test_unknown_kind_is_malformed(self):
        with pytest.raises(MalformedRule):
            matches(_rule("price_sideways"), make_snapshot())

    @pytest.mark.parametrize("target", [float("nan"), float("inf"), "abc", None])
    def test_bad_target_is_malformed(self, target):
        with pytest.raises(MalformedRule):
            matches(_rule(target=target), make_snapshot())

    def test_percentage_rule_without_change_is_malformed(self):
        with pytest.raises(MalformedRule):
            matches(_rule("percentage_change", 1.0), make_snapshot(price_change_percentage_24h=None))


class TestAlertEvaluator:
    """Tests for AlertEvaluator.evaluate."""

    def test_triggers_matching_rule(self):
        store = Mock()
        store.mark_triggered.return_value = True
        event_store = EventStore()
        evaluator = AlertEvaluator(store, event_store=event_store, clock=lambda: FIXED_NOW)

        triggered = evaluator.evaluate([make_snapshot(price=150.0)], [_rule("price_above", 100.0)])

        assert triggered == ["rule-1"]
        store.mark_triggered.assert_called_once_with("rule-1", FIXED_NOW)
        assert len(event_store.get_events_by_type(ALERT_TRIGGERED)) == 1

    def test_non_matching_and_unrelated_rules_untouched(self):
        store = Mock()
        evaluator = AlertEvaluator(store)
        rules = [
            _rule("price_above", 1000.0, rule_id="too-high"),
            _rule("price_below", 1.0, asset_id="ethereum", rule_id="other-asset"),
        ]

        assert evaluator.evaluate([make_snapshot(price=150.0)], rules) == []
        store.mark_triggered.assert_not_called()

    def test_already_triggered_rule_is_skipped(self):
        store = Mock()
        evaluator = AlertEvaluator(store)
        rule = _rule("price_above", 1.0, is_triggered=True, triggered_at=FIXED_NOW)

        assert evaluator.evaluate([make_snapshot()], [rule]) == []
        store.mark_triggered.assert_not_called()

    def test_malformed_rule_does_not_block_others(self):
        store = Mock()
        store.mark_triggered.return_value = True
        evaluator = AlertEvaluator(store)
        rules = [_rule("bogus", rule_id="bad"), _rule("price_above", 1.0, rule_id="good")]

        assert evaluator.evaluate([make_snapshot()], rules) == ["good"]

    def test_store_failure_on_one_rule_continues(self):
        store = Mock()
        store.mark_triggered.side_effect = [StoreUnavailable("locked"), True]
        evaluator = AlertEvaluator(store)
        rules = [_rule(rule_id="first", target=1.0), _rule(rule_id="second", target=1.0)]

        assert evaluator.evaluate([make_snapshot()], rules) == ["second"]

    def test_evaluation_is_idempotent_against_store(self, store, test_session):
        """
        Running evaluate twice with the same (stale) rule objects triggers the
        rule once and raises nothing the second time.
        """
        AlertService(test_session).create_alert("user-1", "bitcoin", "price_above", 100.0)
        rules = store.list_active_rules()
        batch = [make_snapshot(price=150.0)]
        evaluator = AlertEvaluator(store, clock=lambda: FIXED_NOW)

        first = evaluator.evaluate(batch, rules)
        second = evaluator.evaluate(batch, rules)

        assert first == [rules[0].id]
        assert second == []
        assert store.list_active_rules() == []

    def test_triggered_rule_is_never_reset(self, store, test_session):
        AlertService(test_session).create_alert("user-1", "bitcoin", "price_below", 100.0)
        evaluator = AlertEvaluator(store, clock=lambda: FIXED_NOW)

        evaluator.evaluate([make_snapshot(price=50.0)], store.list_active_rules())
        # Price recovers above the target: nothing moves back to active
        evaluator.evaluate([make_snapshot(price=500.0)], store.list_active_rules())

        assert store.list_active_rules() == []
