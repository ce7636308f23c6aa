"""
Policy evaluation module for Mandate.

This module decides which verdict an attempted action receives.

Key concepts:
    - Scope matching: organization and domain must match, other keys are wildcards
    - Conditions: strict, AND'd comparisons over decision fields and signals
    - Binding: a policy only applies to the spec it is bound to
    - Precedence: BLOCK > PAUSE > ALLOW > OBSERVE, ALLOW when nothing matches

The evaluator must be:
    - Pure: Same inputs always produce the same verdict
    - Fail-loud: Malformed policies raise instead of silently not matching
    - Isolated: A decision is never evaluated across boundaries
"""

from mandate.policy.binding import validate_policies_against_spec
from mandate.policy.conditions import evaluate_all_conditions, evaluate_condition
from mandate.policy.engine import DecisionEvaluator, evaluate_decision
from mandate.policy.scope import matches_scope, scope_specificity
from mandate.policy.verdicts import resolve_verdict, verdict_rank

__all__ = [
    "DecisionEvaluator",
    "evaluate_all_conditions",
    "evaluate_condition",
    "evaluate_decision",
    "matches_scope",
    "resolve_verdict",
    "scope_specificity",
    "validate_policies_against_spec",
    "verdict_rank",
]
