"""
services/conditions.py
──────────────────────────────────────────────────────────────────────────────
Transition-condition evaluation.

Architecture:
  • evaluate_condition() dispatches one comparison over the closed Operator
    enum — pure, no I/O, easily unit-tested.
  • evaluate_conditions() reduces a NextStep's condition list.
  • ConditionEvaluator binds the reduction to a field resolver (the engine
    passes "latest answer to this criterion").

Reduction semantics:
  Conditions combine left-to-right starting from True.  The accumulator
  AND-reduces until the first condition tagged OR is reached; that tag
  switches the whole remaining reduction to OR.  Conditions are not grouped, so
  [A, B(OR), C] means ((A or B) or C), not (A or (B and C)).  An empty
  list is True.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from gri_compliance.domain.models import Logic, Operator
from gri_compliance.domain.rules import Condition

logger = logging.getLogger(__name__)

FieldResolver = Callable[[str], Any]


# ── Single comparison ──────────────────────────────────────────────────────

def _strict_equals(field_value: Any, value: Any) -> bool:
    # True == 1 in Python; a boolean answer only equals a boolean.
    if isinstance(field_value, bool) or isinstance(value, bool):
        return type(field_value) is type(value) and field_value == value
    return field_value == value


def _as_number(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def evaluate_condition(field_value: Any, operator: Operator, value: Any) -> bool:
    """Compare one resolved field value against a condition's value.

    Args:
        field_value: Latest answer for the condition's field (None if unanswered).
        operator:    One of the six Operator variants.
        value:       The condition's comparison value.

    Returns:
        Whether the comparison holds.  Non-numeric operands make
        greater_than / less_than false; an unanswered field never
        ``contains`` anything and is never ``in`` a list, so it always
        satisfies ``not_in``.
    """
    if operator is Operator.EQUALS:
        return _strict_equals(field_value, value)
    elif operator is Operator.CONTAINS:
        if field_value is None:
            return False
        if _is_collection(field_value):
            return any(str(value) in str(item) for item in field_value)
        return str(value) in str(field_value)
    elif operator is Operator.GREATER_THAN:
        left, right = _as_number(field_value), _as_number(value)
        return left is not None and right is not None and left > right
    elif operator is Operator.LESS_THAN:
        left, right = _as_number(field_value), _as_number(value)
        return left is not None and right is not None and left < right
    elif operator is Operator.IN:
        return _is_collection(value) and field_value in value
    elif operator is Operator.NOT_IN:
        return not _is_collection(value) or field_value not in value
    raise ValueError(f"Unsupported operator: {operator!r}")


# ── Condition lists ────────────────────────────────────────────────────────

def evaluate_conditions(conditions: Iterable[Condition], resolve: FieldResolver) -> bool:
    """Reduce a NextStep's conditions with the AND→OR mode flip."""
    result = True
    use_or = False
    for condition in conditions:
        met = evaluate_condition(resolve(condition.field), condition.operator, condition.value)
        if condition.logic is Logic.OR:
            use_or = True
            result = result or met
        else:
            result = (result or met) if use_or else (result and met)
    return result


class ConditionEvaluator:
    """Evaluates NextStep conditions against a field resolver.

    Args:
        resolve: Callable mapping a criterion id to its current value.
    """

    def __init__(self, resolve: FieldResolver) -> None:
        self._resolve = resolve

    def holds(self, conditions: Iterable[Condition]) -> bool:
        conditions = tuple(conditions)
        result = evaluate_conditions(conditions, self._resolve)
        logger.debug(
            "Conditions evaluated | fields=%s result=%s",
            [c.field for c in conditions],
            result,
        )
        return result
