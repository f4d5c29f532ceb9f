"""
Tests for the pure workflow-rule matcher.

Tests cover:
- evaluate_condition: operator semantics, type mixing, missing fields
- rule_matches: left-to-right AND/OR fold, empty rules
- select_rule: priority ordering, tie order, inactive rules, fail-closed skip
"""

from decimal import Decimal

import pytest

import procure_engines.rules as rules_module
from procure_engines.rules import evaluate_condition, resolve_field, rule_matches, select_rule
from procure_kernel.domain.policy import (
    ApproveAction,
    ConditionOperator,
    LogicalOperator,
    RuleCondition,
    WorkflowRule,
    parse_rule,
)
from procure_kernel.exceptions import ValidationError


FIELDS = {
    "amount": Decimal("1200"),
    "currency": "USD",
    "urgency_level": "URGENT",
    "criticality_level": "SAFETY_CRITICAL",
    "item_categories": ["ENGINE_SPARES", "LUBRICANTS"],
    "metadata": {"port": "Rotterdam", "dry_dock": True},
}


def cond(field, operator, value, logical=LogicalOperator.AND) -> RuleCondition:
    return RuleCondition(
        field=field,
        operator=ConditionOperator(operator),
        value=value,
        logical_operator=logical,
    )


def make_rule(rule_id="r1", priority=10, conditions=(), is_active=True) -> WorkflowRule:
    return WorkflowRule(
        rule_id=rule_id,
        name=rule_id,
        priority=priority,
        conditions=tuple(conditions),
        actions=(ApproveAction(reason=rule_id),),
        is_active=is_active,
    )


# =========================================================================
# evaluate_condition
# =========================================================================


class TestConditionOperators:

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            ("eq", 1200, True),
            ("eq", "1200", False),
            ("gt", 1000, True),
            ("gt", 1200, False),
            ("gte", 1200, True),
            ("lt", 1200.5, True),
            ("lte", 1199, False),
        ],
    )
    def test_numeric_comparisons(self, operator, value, expected):
        assert evaluate_condition(cond("amount", operator, value), FIELDS) is expected

    def test_string_comparison_is_lexicographic(self):
        assert evaluate_condition(cond("currency", "gt", "EUR"), FIELDS) is True
        assert evaluate_condition(cond("currency", "lt", "EUR"), FIELDS) is False

    def test_mixed_types_never_match(self):
        assert evaluate_condition(cond("currency", "gt", 5), FIELDS) is False
        assert evaluate_condition(cond("amount", "lt", "9999"), FIELDS) is False

    def test_in_is_set_membership(self):
        assert evaluate_condition(
            cond("urgency_level", "in", ("URGENT", "EMERGENCY")), FIELDS
        ) is True
        assert evaluate_condition(cond("urgency_level", "in", ("ROUTINE",)), FIELDS) is False

    def test_in_on_list_field_matches_any_element(self):
        assert evaluate_condition(
            cond("item_categories", "in", ("LUBRICANTS", "PAINT")), FIELDS
        ) is True

    def test_contains_substring(self):
        assert evaluate_condition(cond("criticality_level", "contains", "SAFETY"), FIELDS) is True

    def test_contains_list_membership(self):
        assert evaluate_condition(cond("item_categories", "contains", "ENGINE_SPARES"), FIELDS) is True
        assert evaluate_condition(cond("item_categories", "contains", "PAINT"), FIELDS) is False

    def test_dotted_path_reaches_metadata(self):
        assert evaluate_condition(cond("metadata.port", "eq", "Rotterdam"), FIELDS) is True
        assert evaluate_condition(cond("metadata.dry_dock", "eq", True), FIELDS) is True

    def test_missing_field_is_false(self):
        assert evaluate_condition(cond("vendor_id", "eq", "V1"), FIELDS) is False
        assert evaluate_condition(cond("metadata.berth", "eq", "B4"), FIELDS) is False

    def test_resolve_field_returns_sentinel_for_missing(self):
        assert resolve_field("amount", FIELDS) == Decimal("1200")
        assert resolve_field("amount.value", FIELDS) is rules_module._MISSING
        assert resolve_field("metadata.port", FIELDS) == "Rotterdam"

    def test_in_without_list_is_malformed(self):
        with pytest.raises(ValidationError):
            evaluate_condition(cond("urgency_level", "in", "URGENT"), FIELDS)


# =========================================================================
# rule_matches
# =========================================================================


class TestRuleFold:

    def test_empty_conditions_never_match(self):
        assert rule_matches(make_rule(conditions=()), FIELDS) is False

    def test_and_chain(self):
        rule = make_rule(conditions=[
            cond("amount", "gte", 1000),
            cond("currency", "eq", "USD"),
        ])
        assert rule_matches(rule, FIELDS) is True

    def test_or_rescues_false_prefix(self):
        rule = make_rule(conditions=[
            cond("currency", "eq", "EUR"),
            cond("urgency_level", "eq", "URGENT", LogicalOperator.OR),
        ])
        assert rule_matches(rule, FIELDS) is True

    def test_fold_has_no_precedence(self):
        # (true OR false) AND false -> false; precedence grouping would give true
        rule = make_rule(conditions=[
            cond("currency", "eq", "USD"),
            cond("amount", "gt", 10_000, LogicalOperator.OR),
            cond("urgency_level", "eq", "ROUTINE", LogicalOperator.AND),
        ])
        assert rule_matches(rule, FIELDS) is False

    def test_logical_operator_of_first_condition_is_ignored(self):
        rule = make_rule(conditions=[cond("currency", "eq", "USD", LogicalOperator.OR)])
        assert rule_matches(rule, FIELDS) is True

    def test_defective_rule_raises(self):
        rule = parse_rule(
            {"rule_id": "bad", "conditions": [{"field": "amount"}], "actions": []},
            strict=False,
        )
        assert rule.defect
        with pytest.raises(ValidationError):
            rule_matches(rule, FIELDS)


# =========================================================================
# select_rule
# =========================================================================


class TestSelectRule:

    def test_higher_priority_wins(self):
        low = make_rule("low", priority=1, conditions=[cond("currency", "eq", "USD")])
        high = make_rule("high", priority=50, conditions=[cond("currency", "eq", "USD")])

        rule, skipped = select_rule([low, high], FIELDS)

        assert rule.rule_id == "high"
        assert skipped == ()

    def test_ties_keep_declaration_order(self):
        first = make_rule("first", priority=5, conditions=[cond("currency", "eq", "USD")])
        second = make_rule("second", priority=5, conditions=[cond("currency", "eq", "USD")])

        rule, _ = select_rule([first, second], FIELDS)

        assert rule.rule_id == "first"

    def test_inactive_rules_are_ignored(self):
        inactive = make_rule(
            "off", priority=99, conditions=[cond("currency", "eq", "USD")], is_active=False
        )
        active = make_rule("on", priority=1, conditions=[cond("currency", "eq", "USD")])

        rule, _ = select_rule([inactive, active], FIELDS)

        assert rule.rule_id == "on"

    def test_no_match_returns_none(self):
        rule, skipped = select_rule(
            [make_rule(conditions=[cond("currency", "eq", "NOK")])], FIELDS
        )
        assert rule is None
        assert skipped == ()

    def test_malformed_rule_fails_closed_and_is_reported(self, captured_logs):
        broken = parse_rule(
            {
                "rule_id": "broken",
                "priority": 100,
                "conditions": [{"field": "amount", "operator": "between", "value": 1}],
                "actions": [{"type": "APPROVE"}],
            },
            strict=False,
        )
        fallback = make_rule("fallback", priority=1, conditions=[cond("currency", "eq", "USD")])

        rule, skipped = select_rule([broken, fallback], FIELDS)

        assert rule.rule_id == "fallback"
        assert [s.rule_id for s in skipped] == ["broken"]
        logs = captured_logs()
        assert any(
            r["message"] == "workflow_rule_skipped" and r["rule_id"] == "broken"
            for r in logs
        )
