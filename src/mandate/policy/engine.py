"""
Decision evaluator for Mandate.

The evaluator is the governance boundary: it decides which verdict an
attempted action receives under a given spec and policy snapshot.

Design Principles:
    - Pure: no I/O, no clock, no shared state; same inputs, same verdict
    - Fail-loud: isolation and binding violations raise, and a malformed
      condition is reported rather than treated as a non-match
    - Auditable: every matched policy id is returned in match order

How it works:
    1. Check the decision, spec and snapshot share one isolation boundary
    2. Keep only policies bound to the spec
    3. Validate those policies against the spec
    4. Match each policy's scope and conditions
    5. Resolve the matches into one verdict
"""

import logging
from dataclasses import replace

from mandate.errors import ConditionEvaluationError, DomainMismatchError
from mandate.policy.binding import validate_policies_against_spec
from mandate.policy.conditions import evaluate_all_conditions
from mandate.policy.scope import matches_scope
from mandate.policy.verdicts import resolve_verdict
from mandate.schema import (
    DecisionEvent,
    DecisionSpec,
    EvaluationResult,
    Policy,
    PolicyMatch,
    PolicySnapshot,
)


logger = logging.getLogger(__name__)


class DecisionEvaluator:
    """
    Evaluates decisions against one spec and one policy snapshot.

    Usage:
        evaluator = DecisionEvaluator(spec, snapshot)
        result = evaluator.evaluate(decision)
        if result.verdict == Verdict.BLOCK:
            # refuse the action

    Attributes:
        spec: The spec decisions are evaluated under
        snapshot: The policy snapshot in force
    """

    def __init__(self, spec: DecisionSpec, snapshot: PolicySnapshot) -> None:
        """
        Initialize the evaluator.

        Args:
            spec: The decision spec constraining evaluation
            snapshot: The policy snapshot to evaluate against
        """
        self.spec = spec
        self.snapshot = snapshot

    def evaluate(self, decision: DecisionEvent) -> EvaluationResult:
        """
        Evaluate a decision.

        Args:
            decision: The decision to evaluate

        Returns:
            EvaluationResult with the verdict and matched policy ids

        Raises:
            DomainMismatchError: If decision, spec and snapshot are not in
                the same (organization_id, domain) boundary
            PolicyBindingError: If a bound policy violates the spec
            ConditionEvaluationError: If a condition cannot be evaluated;
                policy_id names the offending policy
        """
        self._check_boundary(decision)

        applicable = self.applicable_policies()
        logger.debug(
            "Spec %s: %d of %d policies applicable",
            self.spec.label, len(applicable), len(self.snapshot.policies),
        )

        validate_policies_against_spec(applicable, self.spec)

        matches: list[PolicyMatch] = []
        for policy in applicable:
            scope_result = matches_scope(decision.scope, policy.scope)
            if not scope_result.matches:
                logger.debug("Policy %s: scope skipped (%s)", policy.id, scope_result.reason)
                continue

            try:
                conditions_hold = evaluate_all_conditions(policy.conditions, decision)
            except ConditionEvaluationError as e:
                raise replace(
                    e,
                    policy_id=policy.id,
                    context=dict(e.context),
                    message=f"Policy {policy.id!r}: {e.message}",
                ) from e

            logger.debug("Policy %s: conditions=%s", policy.id, conditions_hold)
            if conditions_hold:
                matches.append(PolicyMatch(policy_id=policy.id, verdict=policy.verdict))

        return resolve_verdict(matches)

    def applicable_policies(self) -> list[Policy]:
        """Policies of the snapshot bound to this evaluator's spec, in order."""
        return [p for p in self.snapshot.policies if p.spec_id == self.spec.spec_id]

    def _check_boundary(self, decision: DecisionEvent) -> None:
        spec = self.spec
        if decision.organization_id != spec.organization_id:
            raise DomainMismatchError(
                attribute="organization_id",
                expected=spec.organization_id,
                actual=decision.organization_id,
                organization_id=decision.organization_id,
                domain=decision.domain,
            )
        if decision.domain != spec.domain:
            raise DomainMismatchError(
                attribute="domain",
                expected=spec.domain,
                actual=decision.domain,
                organization_id=decision.organization_id,
                domain=decision.domain,
            )
        if self.snapshot.organization_id != spec.organization_id:
            raise DomainMismatchError(
                message=(
                    f"Snapshot {self.snapshot.snapshot_id!r} belongs to organization "
                    f"{self.snapshot.organization_id!r}, not {spec.organization_id!r}"
                ),
                attribute="organization_id",
                expected=spec.organization_id,
                actual=self.snapshot.organization_id,
                organization_id=self.snapshot.organization_id,
                domain=self.snapshot.domain,
            )
        if self.snapshot.domain != spec.domain:
            raise DomainMismatchError(
                message=(
                    f"Snapshot {self.snapshot.snapshot_id!r} belongs to domain "
                    f"{self.snapshot.domain!r}, not {spec.domain!r}"
                ),
                attribute="domain",
                expected=spec.domain,
                actual=self.snapshot.domain,
                organization_id=self.snapshot.organization_id,
                domain=self.snapshot.domain,
            )


def evaluate_decision(
    decision: DecisionEvent,
    spec: DecisionSpec,
    snapshot: PolicySnapshot,
) -> EvaluationResult:
    """Evaluate a decision against a spec and snapshot (see DecisionEvaluator)."""
    return DecisionEvaluator(spec, snapshot).evaluate(decision)
