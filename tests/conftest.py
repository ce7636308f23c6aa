"""
Pytest configuration and fixtures for Mandate tests.

This module provides shared fixtures used across unit, integration,
and security tests: a finance spec, a policy snapshot bound to it, and
decisions inside and outside its boundary.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from mandate.isolation import IsolationContext
from mandate.schema import (
    DecisionEvent,
    DecisionSpec,
    Policy,
    PolicyCondition,
    PolicySnapshot,
    Scope,
    SignalDefinition,
    SignalSource,
    SignalType,
    Stage,
    Verdict,
)


ORG = "acme"
DOMAIN = "finance"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path for a fresh SQLite database."""
    return temp_dir / "mandate.db"


@pytest.fixture
def ctx() -> IsolationContext:
    """The acme/finance boundary."""
    return IsolationContext(organization_id=ORG, domain=DOMAIN)


@pytest.fixture
def spec() -> DecisionSpec:
    """Spec for approve-expense at the proposed stage."""
    return DecisionSpec(
        spec_id="expense",
        version="1.0.0",
        organization_id=ORG,
        domain=DOMAIN,
        intent="approve-expense",
        stage=Stage.PROPOSED,
        allowed_verdicts=[Verdict.ALLOW, Verdict.PAUSE, Verdict.BLOCK],
        signals=[
            SignalDefinition(name="amount", type=SignalType.NUMBER, required=True),
            SignalDefinition(name="priority", type=SignalType.ENUM, values=["low", "medium", "high"]),
            SignalDefinition(name="approved", type=SignalType.BOOLEAN),
            SignalDefinition(name="environment", type=SignalType.STRING, source=SignalSource.SCOPE),
        ],
        created_at="2026-01-01T00:00:00+00:00",
    )


def make_policy(
    policy_id: str,
    verdict: Verdict,
    conditions: list[PolicyCondition] | None = None,
    **scope_keys: str,
) -> Policy:
    """Build a policy bound to the expense spec in acme/finance."""
    return Policy(
        id=policy_id,
        organization_id=ORG,
        name=policy_id.replace("-", " "),
        spec_id="expense",
        scope_id=f"scope-{policy_id}",
        scope=Scope(organization_id=ORG, domain=DOMAIN, **scope_keys),
        conditions=conditions or [],
        verdict=verdict,
    )


@pytest.fixture
def policy_factory():
    """Factory for policies bound to the expense spec."""
    return make_policy


@pytest.fixture
def snapshot() -> PolicySnapshot:
    """Snapshot pausing large expenses and blocking huge ones."""
    return PolicySnapshot(
        snapshot_id="snap-1",
        organization_id=ORG,
        domain=DOMAIN,
        policies=[
            make_policy(
                "large-expense",
                Verdict.PAUSE,
                [PolicyCondition(field="amount", operator=">", value=1000)],
            ),
            make_policy(
                "huge-expense",
                Verdict.BLOCK,
                [PolicyCondition(field="amount", operator=">=", value=10000)],
            ),
        ],
    )


@pytest.fixture
def decision() -> DecisionEvent:
    """A 250 expense in acme/finance."""
    return DecisionEvent(
        decision_id="dec-001",
        organization_id=ORG,
        intent="approve-expense",
        stage=Stage.PROPOSED,
        actor="expense-agent",
        target="invoice-42",
        context={"amount": 250},
        scope=Scope(organization_id=ORG, domain=DOMAIN, environment="production"),
        timestamp="2026-03-01T12:00:00+00:00",
    )


@pytest.fixture
def spec_yaml() -> str:
    """The expense spec as YAML."""
    return """
spec_id: expense
version: 1.0.0
organization_id: acme
domain: finance
intent: approve-expense
stage: proposed
allowed_verdicts: [ALLOW, PAUSE, BLOCK]
signals:
  - name: amount
    type: number
    required: true
  - name: priority
    type: enum
    values: [low, medium, high]
created_at: 2026-01-01T00:00:00Z
"""


@pytest.fixture
def snapshot_yaml() -> str:
    """A snapshot pausing expenses over 1000, as YAML."""
    return """
snapshot_id: snap-1
organization_id: acme
domain: finance
policies:
  - id: large-expense
    organization_id: acme
    name: Large expense
    spec_id: expense
    scope_id: finance-wide
    scope:
      organization_id: acme
      domain: finance
    conditions:
      - field: amount
        operator: ">"
        value: 1000
    verdict: PAUSE
"""


@pytest.fixture
def decision_yaml() -> str:
    """A decision with no amount, to be derived from text."""
    return """
decision_id: dec-100
organization_id: acme
intent: approve-expense
stage: proposed
actor: expense-agent
target: invoice-7
scope:
  organization_id: acme
  domain: finance
timestamp: "2026-03-01T12:00:00+00:00"
"""
