"""
Condition evaluation for Mandate policies.

A condition compares one decision field against a literal. Conditions
are strict: no type coercion, booleans are never numbers, and a
condition that cannot be evaluated raises instead of quietly failing
to match.

Field resolution order:
    1. "context.<name>" and "scope.<name>" namespaces
    2. Top-level decision attributes (decision_id, intent, stage, ...)
    3. A bare signal name, looked up in the decision context
"""

from typing import Any

from mandate.errors import (
    ConditionEvaluationError,
    FieldNotFoundError,
    InvalidFieldTypeError,
    OperatorTypeError,
)
from mandate.schema import DecisionEvent, Operator, PolicyCondition, Scope


CONTEXT_PREFIX = "context."
SCOPE_PREFIX = "scope."

TOP_LEVEL_FIELDS = frozenset({
    "decision_id",
    "intent",
    "stage",
    "actor",
    "target",
    "timestamp",
})

_MISSING = object()


# =============================================================================
# Field Resolution
# =============================================================================


def _lookup(field: str, decision: DecisionEvent) -> Any:
    if field.startswith(CONTEXT_PREFIX):
        return decision.context.get(field[len(CONTEXT_PREFIX):], _MISSING)

    if field.startswith(SCOPE_PREFIX):
        key = field[len(SCOPE_PREFIX):]
        if key not in Scope.model_fields:
            return _MISSING
        value = getattr(decision.scope, key)
        return _MISSING if value is None else value

    if field in TOP_LEVEL_FIELDS:
        value = getattr(decision, field)
        # Enums compare by their wire value
        return getattr(value, "value", value)

    value = decision.context.get(field, _MISSING)
    if value is _MISSING and field in Scope.model_fields:
        # Scope-sourced signals resolve by bare name without pre-population
        scoped = getattr(decision.scope, field)
        return _MISSING if scoped is None else scoped
    return value


def resolve_field(field: str, decision: DecisionEvent, operator: str = "") -> Any:
    """
    Resolve a condition field to a primitive value.

    Args:
        field: Field path from the condition
        decision: Decision being evaluated
        operator: Operator of the condition (for error context only)

    Returns:
        The resolved str, int, float or bool

    Raises:
        FieldNotFoundError: If the field does not exist on the decision
        InvalidFieldTypeError: If the field is not a primitive
    """
    value = _lookup(field, decision)
    if value is _MISSING:
        raise FieldNotFoundError(field=field, operator=operator)
    if not isinstance(value, (str, int, float, bool)):
        raise InvalidFieldTypeError(
            field=field,
            operator=operator,
            actual_type=type(value).__name__,
        )
    return value


# =============================================================================
# Comparison
# =============================================================================


def is_number(value: Any) -> bool:
    """True for int and float, never for bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """
    Type-aware equality.

    1 == 1.0 holds, but 1 == True and "1" == 1 do not.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) and is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _compare_ordered(operator: Operator, actual: Any, expected: Any, field: str) -> bool:
    if not (is_number(actual) and is_number(expected)):
        raise OperatorTypeError(
            field=field,
            operator=operator.value,
            expected="numbers on both sides",
        )
    if operator == Operator.GT:
        return actual > expected
    if operator == Operator.LT:
        return actual < expected
    if operator == Operator.GE:
        return actual >= expected
    return actual <= expected


def evaluate_condition(condition: PolicyCondition, decision: DecisionEvent) -> bool:
    """
    Evaluate a single condition against a decision.

    Returns:
        True if the condition holds

    Raises:
        ConditionEvaluationError: If the condition is malformed for this
            decision (missing field, wrong types, unknown operator)
    """
    operator = condition.operator
    op_label = getattr(operator, "value", str(operator))
    actual = resolve_field(condition.field, decision, op_label)
    expected = condition.value

    if operator == Operator.EQ:
        return strict_equals(actual, expected)
    if operator == Operator.NE:
        return not strict_equals(actual, expected)
    if operator in (Operator.GT, Operator.LT, Operator.GE, Operator.LE):
        return _compare_ordered(operator, actual, expected, condition.field)
    if operator == Operator.IN:
        if not isinstance(expected, list):
            raise OperatorTypeError(
                field=condition.field,
                operator=op_label,
                expected="a list on the right-hand side",
            )
        return any(strict_equals(actual, item) for item in expected)

    raise ConditionEvaluationError(
        message=f"Unknown operator {op_label!r} on field {condition.field!r}",
        field=condition.field,
        operator=op_label,
    )


def evaluate_all_conditions(
    conditions: list[PolicyCondition],
    decision: DecisionEvent,
) -> bool:
    """
    Evaluate conditions with AND semantics.

    An empty list holds. Evaluation stops at the first false condition;
    the first malformed condition raises.
    """
    for condition in conditions:
        if not evaluate_condition(condition, decision):
            return False
    return True
