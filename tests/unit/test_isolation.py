"""Unit tests for isolation contexts."""

import pytest

from mandate.errors import AttributionError, IsolationViolationError
from mandate.isolation import (
    IsolationContext,
    create_isolation_context,
    validate_isolation_context,
)
from mandate.schema import DecisionEvent, Scope, Stage


def _decision(organization_id: str, domain: str) -> DecisionEvent:
    return DecisionEvent(
        decision_id="d1",
        organization_id=organization_id,
        intent="approve-expense",
        stage=Stage.PROPOSED,
        actor="agent",
        target="invoice",
        scope=Scope(organization_id=organization_id, domain=domain),
    )


class TestIsolationContext:
    """Tests for building and validating boundaries."""

    def test_create_valid_context(self) -> None:
        ctx = create_isolation_context("acme", "finance")
        assert ctx == IsolationContext(organization_id="acme", domain="finance")
        assert str(ctx) == "acme/finance"

    @pytest.mark.parametrize(
        "organization_id,domain",
        [("", "finance"), ("acme", ""), ("   ", "finance"), ("acme", "\t"), ("", "")],
    )
    def test_incomplete_context_rejected(self, organization_id: str, domain: str) -> None:
        with pytest.raises(IsolationViolationError):
            create_isolation_context(organization_id, domain)

    def test_validate_accepts_complete_context(self, ctx: IsolationContext) -> None:
        validate_isolation_context(ctx)

    def test_context_is_immutable(self, ctx: IsolationContext) -> None:
        with pytest.raises(AttributeError):
            ctx.domain = "hr"


class TestForDecision:
    """Tests for attributing decisions to a boundary."""

    def test_attributed_decision(self) -> None:
        ctx = IsolationContext.for_decision(_decision("acme", "finance"))
        assert ctx.organization_id == "acme"
        assert ctx.domain == "finance"

    def test_missing_domain_not_attributed(self) -> None:
        with pytest.raises(AttributionError) as exc_info:
            IsolationContext.for_decision(_decision("acme", ""))
        assert exc_info.value.decision_id == "d1"
        assert "domain" in exc_info.value.context

    def test_missing_organization_not_attributed(self) -> None:
        with pytest.raises(AttributionError):
            IsolationContext.for_decision(_decision("", "finance"))
