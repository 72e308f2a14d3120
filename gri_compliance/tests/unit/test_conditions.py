"""
tests/unit/test_conditions.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for transition-condition evaluation.

Verifies:
  • Each operator over answered and unanswered fields
  • Booleans never equal integers
  • Empty condition lists hold
  • The AND→OR mode flip reduces left-to-right without grouping
"""
from __future__ import annotations

import pytest

from gri_compliance.domain.models import Logic, Operator
from gri_compliance.domain.rules import Condition
from gri_compliance.services.conditions import (
    ConditionEvaluator,
    evaluate_condition,
    evaluate_conditions,
)


def _resolver(values: dict):
    return lambda field: values.get(field)


class TestEvaluateCondition:
    def test_equals_matches_exact_answer(self):
        assert evaluate_condition("Yes - Single heading", Operator.EQUALS, "Yes - Single heading")

    def test_equals_does_not_coerce_bool_to_int(self):
        assert not evaluate_condition(1, Operator.EQUALS, True)
        assert not evaluate_condition(True, Operator.EQUALS, 1)
        assert evaluate_condition(False, Operator.EQUALS, False)

    def test_contains_substring(self):
        assert evaluate_condition("Yes - Steel dominates", Operator.CONTAINS, "Yes")

    def test_contains_over_list_items(self):
        assert evaluate_condition(["Exclusion notes", "Scope notes"], Operator.CONTAINS, "Scope")

    def test_contains_unanswered_is_false(self):
        assert not evaluate_condition(None, Operator.CONTAINS, "Yes")

    @pytest.mark.parametrize("left, right, expected", [
        (5, 3, True),
        ("5", 3, True),
        (2, 3, False),
        ("abc", 3, False),
        (None, 3, False),
    ])
    def test_greater_than(self, left, right, expected):
        assert evaluate_condition(left, Operator.GREATER_THAN, right) is expected

    def test_less_than_with_numeric_strings(self):
        assert evaluate_condition("2.5", Operator.LESS_THAN, "10")

    def test_in_requires_membership(self):
        assert evaluate_condition("Unfinished", Operator.IN, ("Unfinished", "Unassembled"))
        assert not evaluate_condition("Finished", Operator.IN, ("Unfinished", "Unassembled"))

    def test_unanswered_is_never_in_and_always_not_in(self):
        assert not evaluate_condition(None, Operator.IN, ("a", "b"))
        assert evaluate_condition(None, Operator.NOT_IN, ("a", "b"))

    def test_not_in_excludes_listed_value(self):
        assert not evaluate_condition("None found", Operator.NOT_IN, ("None found",))


class TestEvaluateConditions:
    def test_empty_list_holds(self):
        assert evaluate_conditions([], _resolver({}))

    def test_and_requires_all(self):
        conditions = [
            Condition("a", Operator.EQUALS, True),
            Condition("b", Operator.EQUALS, True, Logic.AND),
        ]
        assert evaluate_conditions(conditions, _resolver({"a": True, "b": True}))
        assert not evaluate_conditions(conditions, _resolver({"a": True, "b": False}))

    def test_or_tag_switches_reduction(self):
        conditions = [
            Condition("a", Operator.EQUALS, True),
            Condition("b", Operator.EQUALS, True, Logic.OR),
        ]
        assert evaluate_conditions(conditions, _resolver({"a": False, "b": True}))
        assert not evaluate_conditions(conditions, _resolver({"a": False, "b": False}))

    def test_or_mode_persists_for_untagged_conditions(self):
        # [A, B(OR), C] reduces as ((A or B) or C)
        conditions = [
            Condition("a", Operator.EQUALS, True),
            Condition("b", Operator.EQUALS, True, Logic.OR),
            Condition("c", Operator.EQUALS, True),
        ]
        assert evaluate_conditions(conditions, _resolver({"a": False, "b": False, "c": True}))

    def test_evaluator_uses_resolver(self):
        evaluator = ConditionEvaluator(_resolver({"named_product": "Yes"}))
        assert evaluator.holds([Condition("named_product", Operator.EQUALS, "Yes")])
        assert not evaluator.holds([Condition("named_product", Operator.EQUALS, "No")])
