"""
Tests for the pure rule matcher.

Tests cover:
- fold_conditions: strict left-to-right combination, no precedence
- select_matching_rule: entity-type filtering, inactive rules, zero
  conditions, first-match tie-break, stale rules failing closed
"""

from decimal import Decimal

import pytest

from governance_engines.matcher import (
    candidate_rules,
    fold_conditions,
    rule_matches,
    select_matching_rule,
)
from governance_kernel.domain.values import NumberValue, TextValue
from governance_kernel.exceptions import StaleRuleError
from tests.factories import cond, make_rule

A = cond("price", "greater_than", 1000)
B = cond("category", "equals", "Electronics", connector="and")
C = cond("brand", "equals", "Apple", connector="or")


def payload(price=500, category="Books", brand="Google"):
    return {
        "price": NumberValue(Decimal(price)),
        "category": TextValue(category),
        "brand": TextValue(brand),
    }


# =========================================================================
# Left-to-right fold
# =========================================================================


class TestFoldConditions:
    def test_empty_list_holds(self):
        assert fold_conditions((), payload()) == (True, ())

    def test_and_then_or_groups_left(self):
        # [A AND B OR C] is (A AND B) OR C: true whenever C holds.
        result, outcomes = fold_conditions((A, B, C), payload(price=500, brand="Apple"))
        assert result is True
        assert [o.result for o in outcomes] == [False, False, True]

    def test_or_then_and_groups_left(self):
        # [A OR B AND C] is (A OR B) AND C, not A OR (B AND C).
        conditions = (
            A,
            cond("category", "equals", "Electronics", connector="or"),
            cond("brand", "equals", "Apple", connector="and"),
        )
        assert fold_conditions(conditions, payload(price=1500, brand="Google"))[0] is False
        assert fold_conditions(conditions, payload(price=1500, brand="Apple"))[0] is True

    def test_every_condition_is_evaluated(self):
        _, outcomes = fold_conditions((A, B, C), payload(price=2000, category="Electronics"))
        assert [o.position for o in outcomes] == [0, 1, 2]
        assert outcomes[1].connector.value == "and"

    def test_single_condition(self):
        assert fold_conditions((A,), payload(price=1001))[0] is True
        assert fold_conditions((A,), payload(price=1000))[0] is False


# =========================================================================
# Rule selection
# =========================================================================


class TestSelectMatchingRule:
    def test_no_rules_means_no_match(self):
        result = select_matching_rule([], "Category", payload())
        assert not result.matched
        assert result.candidates_evaluated == 0

    def test_filters_by_entity_type(self):
        geography = make_rule("g", entity_type="Geography")
        result = select_matching_rule([geography], "Category", payload())
        assert result.rule is None

    def test_inactive_rules_are_skipped(self):
        inactive = make_rule("off", active=False)
        active = make_rule("on")
        result = select_matching_rule([inactive, active], "Category", payload())
        assert result.rule.rule_id == "on"
        assert result.candidates_evaluated == 1

    def test_zero_conditions_match_unconditionally(self):
        rule = make_rule("always")
        assert select_matching_rule([rule], "Category", {}).rule is rule

    def test_first_matching_rule_wins(self):
        first = make_rule("first", conditions=(A,))
        second = make_rule("second")
        third = make_rule("third")
        result = select_matching_rule([first, second, third], "Category", payload(price=2000))
        assert result.rule.rule_id == "first"
        assert [o.result for o in result.outcomes] == [True]

    def test_falls_through_to_later_rule(self):
        first = make_rule("first", conditions=(A,))
        second = make_rule("second")
        result = select_matching_rule([first, second], "Category", payload(price=10))
        assert result.rule.rule_id == "second"
        assert result.candidates_evaluated == 2

    def test_order_decides_between_overlapping_rules(self):
        broad = make_rule("broad")
        narrow = make_rule("narrow", conditions=(A,))
        assert select_matching_rule([broad, narrow], "Category", payload(price=2000)).rule is broad
        assert select_matching_rule([narrow, broad], "Category", payload(price=2000)).rule is narrow

    def test_stale_candidate_fails_closed(self):
        stale = make_rule("stale", conditions=(A,))
        fallback = make_rule("fallback")
        with pytest.raises(StaleRuleError) as exc_info:
            select_matching_rule(
                [stale, fallback], "Category", payload(),
                stale={"stale": ("condition 1 (price): gone",)},
            )
        assert exc_info.value.rule_id == "stale"
        assert exc_info.value.issues == ["condition 1 (price): gone"]

    def test_stale_rule_after_the_match_is_not_reached(self):
        winner = make_rule("winner")
        stale = make_rule("stale")
        result = select_matching_rule(
            [winner, stale], "Category", payload(), stale={"stale": ("x",)},
        )
        assert result.rule is winner

    def test_stale_rule_for_other_entity_type_is_ignored(self):
        stale = make_rule("stale", entity_type="Geography")
        rule = make_rule("rule")
        result = select_matching_rule([stale, rule], "Category", payload(), stale={"stale": ("x",)})
        assert result.rule is rule


class TestHelpers:
    def test_candidate_rules_preserve_order(self):
        rules = [make_rule("1"), make_rule("2", active=False), make_rule("3", entity_type="User"), make_rule("4")]
        assert [r.rule_id for r in candidate_rules(rules, "Category")] == ["1", "4"]

    def test_rule_matches(self):
        rule = make_rule(conditions=(A, B))
        assert rule_matches(rule, payload(price=2000, category="Electronics"))
        assert not rule_matches(rule, payload(price=2000, category="Books"))
