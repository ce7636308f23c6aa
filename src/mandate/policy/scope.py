"""
Scope matching for Mandate policies.

organization_id and domain are mandatory on both sides and must be equal.
Every other selector key is a wildcard when absent and an exact match
when present.
"""

from mandate.schema import Scope, ScopeMatchResult


OPTIONAL_SCOPE_KEYS = ("service", "agent", "system", "environment")


def matches_scope(decision_scope: Scope, selector: Scope) -> ScopeMatchResult:
    """
    Check whether a decision's scope satisfies a policy selector.

    Args:
        decision_scope: Scope carried by the decision
        selector: Scope selector of the policy

    Returns:
        ScopeMatchResult with a reason naming the first failing key
    """
    if not decision_scope.organization_id:
        return ScopeMatchResult(matches=False, reason="decision scope missing organization_id")
    if not selector.organization_id:
        return ScopeMatchResult(matches=False, reason="selector missing organization_id")
    if decision_scope.organization_id != selector.organization_id:
        return ScopeMatchResult(matches=False, reason="organization_id mismatch")

    if not decision_scope.domain:
        return ScopeMatchResult(matches=False, reason="decision scope missing domain")
    if not selector.domain:
        return ScopeMatchResult(matches=False, reason="selector missing domain")
    if decision_scope.domain != selector.domain:
        return ScopeMatchResult(matches=False, reason="domain mismatch")

    for key in OPTIONAL_SCOPE_KEYS:
        wanted = getattr(selector, key)
        if wanted is None:
            continue
        if getattr(decision_scope, key) != wanted:
            return ScopeMatchResult(matches=False, reason=f"{key} mismatch")

    return ScopeMatchResult(matches=True)


def scope_specificity(selector: Scope) -> int:
    """
    Rank a selector by how narrowly it targets.

    agent-level selectors outrank service-level ones, which outrank
    domain-wide ones. Extra system/environment keys break ties.
    """
    if selector.agent is not None:
        rank = 300
    elif selector.service is not None:
        rank = 200
    else:
        rank = 100
    if selector.system is not None:
        rank += 10
    if selector.environment is not None:
        rank += 1
    return rank
