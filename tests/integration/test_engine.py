"""
Integration tests for the submission engine.

These tests run the whole flow against a real SQLite database:
attribution, spec resolution, the Observe phase, signal validation,
evaluation and the audit trail.
"""

from pathlib import Path

import pytest

from mandate.engine import Engine
from mandate.errors import (
    DecisionNotFoundError,
    MissingRequiredSignalError,
    PolicyBindingError,
    SignalTypeError,
    SnapshotNotFoundError,
    SpecNotFoundError,
)
from mandate.isolation import IsolationContext
from mandate.observe import PopulationConfig, SignalEstimate
from mandate.schema import (
    Authority,
    DecisionEvent,
    DecisionSpec,
    PolicyCondition,
    PolicySnapshot,
    Scope,
    TimelineSeverity,
    Verdict,
)


@pytest.fixture
def engine(db_path: Path, spec: DecisionSpec, snapshot: PolicySnapshot, ctx: IsolationContext):
    with Engine(db_path=db_path) as eng:
        eng.db.insert_spec(spec, ctx)
        eng.db.insert_snapshot(snapshot, ctx)
        yield eng


def without_amount(decision: DecisionEvent) -> DecisionEvent:
    return decision.model_copy(update={"context": {}})


class TestSubmit:
    """Tests for the happy path."""

    def test_allow_recorded(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        result = engine.submit(decision)

        assert result.attributed
        assert result.verdict == Verdict.ALLOW
        assert result.matched_policy_ids == ()
        assert result.decision.spec_id == "expense"
        assert result.decision.spec_version == "1.0.0"

        stored = engine.db.get_verdict_for_decision("dec-001", ctx)
        assert stored == result.verdict_event
        assert stored.snapshot_id == "snap-1"
        assert stored.owning_team is None

    def test_signals_derived_from_text(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        result = engine.submit(without_amount(decision), text="Approve $2500 for the offsite")

        assert result.verdict == Verdict.PAUSE
        assert result.matched_policy_ids == ("large-expense",)
        assert result.decision.context["amount"] == 2500
        assert engine.db.get_decision_event("dec-001", ctx).context["amount"] == 2500

    def test_text_is_not_stored(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        secret = "amount: 20000 card 4111-1111-1111-1111"
        engine.submit(without_amount(decision), text=secret)

        stored = engine.db.get_decision_event("dec-001", ctx)
        assert secret not in stored.model_dump_json()
        for entry in engine.db.list_timeline_entries("dec-001", ctx):
            assert "4111" not in str(entry.details)

    def test_block_precedence(self, engine: Engine, decision: DecisionEvent) -> None:
        result = engine.submit(decision.model_copy(update={"context": {"amount": 25000}}))
        assert result.verdict == Verdict.BLOCK
        assert result.matched_policy_ids == ("large-expense", "huge-expense")
        assert result.verdict_event.matched_policy_ids == ["large-expense", "huge-expense"]

    def test_timeline(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        engine.submit(decision)
        entries = engine.db.list_timeline_entries("dec-001", ctx)
        assert [e.summary for e in entries] == [
            "Decision received: approve-expense",
            "Verdict issued: ALLOW",
        ]
        assert entries[1].scope_id is not None
        assert entries[1].details["snapshot_version"] == 1

    def test_same_scope_same_scope_id(self, engine: Engine, decision: DecisionEvent) -> None:
        first = engine.submit(decision)
        second = engine.submit(decision.model_copy(update={"decision_id": "dec-002"}))
        assert first.verdict_event.scope_id == second.verdict_event.scope_id

    @pytest.mark.parametrize("text", [None, "", "please proceed"])
    def test_scope_signal_resolves_without_text(
        self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext, policy_factory, text
    ) -> None:
        production = PolicySnapshot(
            snapshot_id="snap-prod",
            organization_id="acme",
            domain="finance",
            policies=[
                policy_factory(
                    "production-block",
                    Verdict.BLOCK,
                    [PolicyCondition(field="environment", operator="==", value="production")],
                ),
            ],
        )
        engine.db.insert_snapshot(production, ctx)

        result = engine.submit(decision, text=text)
        assert result.verdict == Verdict.BLOCK
        assert result.matched_policy_ids == ("production-block",)

    def test_assisted_extraction(self, db_path: Path, spec, snapshot, ctx, decision: DecisionEvent) -> None:
        def extractor(text, defs):
            return {"priority": SignalEstimate(value="high", confidence=0.95)}

        config = PopulationConfig(enable_assisted_extraction=True, extractor=extractor)
        with Engine(db_path=db_path, population_config=config) as eng:
            eng.db.insert_spec(spec, ctx)
            eng.db.insert_snapshot(snapshot, ctx)
            result = eng.submit(decision, text="please handle quickly")
        assert result.decision.context["priority"] == "high"

    def test_list_decisions(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        engine.submit(decision)
        engine.submit(decision.model_copy(update={
            "decision_id": "dec-002",
            "context": {"amount": 5000},
            "timestamp": "2026-03-02T00:00:00+00:00",
        }))

        rows = engine.list_decisions(ctx)
        assert [r["decision_id"] for r in rows] == ["dec-002", "dec-001"]
        assert rows[0]["verdict"] == "PAUSE"
        assert rows[0]["spec"] == "expense@1.0.0"

        paused = engine.list_decisions(ctx, verdict=Verdict.PAUSE)
        assert [r["decision_id"] for r in paused] == ["dec-002"]


class TestSubmitFailures:
    """Tests for submissions that cannot be evaluated."""

    def test_unattributed_decision_observed(self, engine: Engine, decision: DecisionEvent) -> None:
        orphan = decision.model_copy(update={"scope": Scope(organization_id="acme")})
        result = engine.submit(orphan)

        assert result.verdict == Verdict.OBSERVE
        assert not result.attributed
        assert result.verdict_event is None
        [failure] = engine.db.list_attribution_failures_unscoped()
        assert failure.decision_id == "dec-001"

    def test_missing_required_signal(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        with pytest.raises(MissingRequiredSignalError):
            engine.submit(without_amount(decision), text="")
        assert engine.db.get_decision_event("dec-001", ctx) is None

    def test_wrongly_typed_signal(self, engine: Engine, decision: DecisionEvent) -> None:
        with pytest.raises(SignalTypeError):
            engine.submit(decision.model_copy(update={"context": {"amount": 1, "priority": "extreme"}}))

    def test_no_spec(self, engine: Engine, decision: DecisionEvent) -> None:
        with pytest.raises(SpecNotFoundError) as exc_info:
            engine.submit(decision.model_copy(update={"intent": "approve-refund"}))
        assert exc_info.value.intent == "approve-refund"

    def test_no_snapshot(self, db_path: Path, spec: DecisionSpec, ctx: IsolationContext, decision) -> None:
        with Engine(db_path=db_path) as eng:
            eng.db.insert_spec(spec, ctx)
            with pytest.raises(SnapshotNotFoundError):
                eng.submit(decision)

    def test_binding_failure_recorded(
        self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext, policy_factory
    ) -> None:
        broken = PolicySnapshot(
            snapshot_id="snap-bad",
            organization_id="acme",
            domain="finance",
            policies=[policy_factory("observe-all", Verdict.OBSERVE)],
        )
        engine.db.insert_snapshot(broken, ctx)

        with pytest.raises(PolicyBindingError):
            engine.submit(decision)

        entries = engine.db.list_timeline_entries("dec-001", ctx)
        assert entries[-1].summary == "Evaluation failed: PolicyBindingError"
        assert entries[-1].severity == TimelineSeverity.ERROR
        assert entries[-1].details["context"]["policy_id"] == "observe-all"
        assert engine.db.get_verdict_for_decision("dec-001", ctx) is None


class TestReportOutcome:
    """Tests for outcome reporting."""

    def test_success(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        result = engine.submit(decision)
        entry = engine.report_outcome("dec-001", ctx, success=True, details={"ref": "tx-9"})

        assert entry.summary == "Outcome reported: success"
        assert entry.source == Authority.AGENT
        assert entry.severity == TimelineSeverity.INFO
        assert entry.scope_id == result.verdict_event.scope_id
        assert engine.db.list_timeline_entries("dec-001", ctx)[-1] == entry

    def test_failure_is_warning(self, engine: Engine, decision: DecisionEvent, ctx: IsolationContext) -> None:
        engine.submit(decision)
        entry = engine.report_outcome("dec-001", ctx, success=False)
        assert entry.severity == TimelineSeverity.WARNING

    def test_unknown_decision(self, engine: Engine, ctx: IsolationContext) -> None:
        with pytest.raises(DecisionNotFoundError):
            engine.report_outcome("nope", ctx, success=True)

    def test_decision_in_other_boundary_not_found(self, engine: Engine, decision: DecisionEvent) -> None:
        engine.submit(decision)
        with pytest.raises(DecisionNotFoundError):
            engine.report_outcome("dec-001", IsolationContext("acme", "hr"), success=True)
