"""
Isolation boundary for Mandate.

Every read and every write happens inside exactly one
(organization_id, domain) boundary. Nothing is defaulted: a context
missing either half is rejected before any data is touched.
"""

from dataclasses import dataclass

from mandate.errors import AttributionError, IsolationViolationError
from mandate.schema import DecisionEvent


@dataclass(frozen=True)
class IsolationContext:
    """
    An (organization_id, domain) pair that scopes all data access.

    Attributes:
        organization_id: Owning organization
        domain: Governance domain
    """

    organization_id: str
    domain: str

    @classmethod
    def for_decision(cls, decision: DecisionEvent) -> "IsolationContext":
        """
        Derive the boundary a decision is attributed to.

        Raises:
            AttributionError: If the decision lacks organization_id or domain
        """
        ctx = cls(organization_id=decision.organization_id, domain=decision.domain)
        if not _is_present(ctx.organization_id) or not _is_present(ctx.domain):
            raise AttributionError(
                decision_id=decision.decision_id,
                organization_id=decision.organization_id,
                domain=decision.domain,
            )
        return ctx

    def __str__(self) -> str:
        return f"{self.organization_id}/{self.domain}"


def _is_present(value: str | None) -> bool:
    return bool(value and value.strip())


def validate_isolation_context(ctx: IsolationContext) -> None:
    """
    Check that both halves of the boundary are present.

    Raises:
        IsolationViolationError: If organization_id or domain is empty
    """
    if not _is_present(ctx.organization_id) or not _is_present(ctx.domain):
        raise IsolationViolationError(
            organization_id=ctx.organization_id or "",
            domain=ctx.domain or "",
        )


def create_isolation_context(organization_id: str, domain: str) -> IsolationContext:
    """Build and validate an isolation context."""
    ctx = IsolationContext(organization_id=organization_id, domain=domain)
    validate_isolation_context(ctx)
    return ctx
