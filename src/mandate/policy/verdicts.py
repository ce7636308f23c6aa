"""Verdict precedence: BLOCK > PAUSE > ALLOW > OBSERVE."""

from mandate.schema import EvaluationResult, PolicyMatch, Verdict


# Lower rank wins
VERDICT_PRECEDENCE: dict[Verdict, int] = {
    Verdict.BLOCK: 0,
    Verdict.PAUSE: 1,
    Verdict.ALLOW: 2,
    Verdict.OBSERVE: 3,
}


def verdict_rank(verdict: Verdict) -> int:
    """Return the precedence rank of a verdict (0 is strongest)."""
    return VERDICT_PRECEDENCE[verdict]


def resolve_verdict(matches: list[PolicyMatch]) -> EvaluationResult:
    """
    Collapse policy matches into one verdict.

    No matches resolves to ALLOW. Otherwise the strongest verdict wins
    and every matched policy id is reported in match order.
    """
    if not matches:
        return EvaluationResult(verdict=Verdict.ALLOW, matched_policy_ids=())

    winner = min(matches, key=lambda m: verdict_rank(m.verdict))
    return EvaluationResult(
        verdict=winner.verdict,
        matched_policy_ids=tuple(m.policy_id for m in matches),
    )
