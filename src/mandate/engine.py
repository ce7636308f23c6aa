"""
Submission service for Mandate.

The Engine is the orchestration layer that takes a submitted decision
all the way to a recorded verdict. It coordinates between:
- Storage: Resolves the active spec and latest snapshot, records the trail
- Observe phase: Derives signals from unstructured text
- Decision evaluator: Produces the verdict

Submission Flow:
    1. Attribute the decision to an (organization, domain) boundary
    2. Resolve the active spec for its intent and stage
    3. Run the Observe phase over the unstructured text, if any
    4. Validate required and typed signals
    5. Load the boundary's latest policy snapshot
    6. Record the decision, evaluate it, record the verdict

Design Principles:
    - Fail-loud: Missing specs, snapshots or signals stop the submission
    - Full audit: Every received decision and issued verdict is on the timeline
    - Isolated: Every read and write goes through the decision's boundary
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mandate.errors import (
    AttributionError,
    DecisionNotFoundError,
    MandateError,
    SnapshotNotFoundError,
    SpecNotFoundError,
)
from mandate.isolation import IsolationContext, validate_isolation_context
from mandate.observe import PopulationConfig, create_observe_phase_executor
from mandate.policy import evaluate_decision
from mandate.schema import (
    Authority,
    DecisionEvent,
    DecisionSpec,
    TimelineEntry,
    TimelineSeverity,
    Verdict,
    VerdictEvent,
)
from mandate.store import MandateDB, generate_id
from mandate.validation import validate_signals


logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """
    Result of submitting a decision.

    Attributes:
        decision: The decision as evaluated (enriched with derived signals)
        verdict: The verdict issued
        matched_policy_ids: Matched policies in match order
        verdict_event: The stored verdict (None on attribution failure)
        attribution_error: Set when the decision had no complete boundary
    """

    decision: DecisionEvent
    verdict: Verdict
    matched_policy_ids: tuple[str, ...] = ()
    verdict_event: VerdictEvent | None = None
    attribution_error: AttributionError | None = None

    @property
    def attributed(self) -> bool:
        """Whether the decision was attributed to a boundary and evaluated."""
        return self.attribution_error is None


class Engine:
    """
    Main submission service for Mandate.

    Usage:
        with Engine(db_path="mandate.db") as engine:
            result = engine.submit(decision, text=agent_response)
            print(f"{result.decision.decision_id}: {result.verdict.value}")

    Attributes:
        db: Database connection for specs, snapshots and the audit trail
        population_config: Observe phase settings
    """

    def __init__(
        self,
        db_path: str | Path = "mandate.db",
        population_config: PopulationConfig | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            db_path: Path to SQLite database
            population_config: Observe phase settings (deterministic only if None)
        """
        self.db = MandateDB(db_path)
        self.population_config = population_config or PopulationConfig()
        self._observe = create_observe_phase_executor(self.population_config)

    def close(self) -> None:
        """Close database connection."""
        self.db.close()

    def __enter__(self) -> "Engine":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    def submit(self, decision: DecisionEvent, text: str | None = None) -> SubmissionResult:
        """
        Submit a decision for governance.

        Args:
            decision: The attempted action
            text: Unstructured text to derive signals from (never stored)

        Returns:
            SubmissionResult; OBSERVE with attribution_error set when the
            decision lacks organization_id or domain

        Raises:
            SpecNotFoundError: No active spec for the intent and stage
            MissingRequiredSignalError: A required signal is still missing
            SignalTypeError: A signal does not fit its declaration
            SnapshotNotFoundError: The boundary has no policy snapshot
            PolicyBindingError: A bound policy violates the spec
            ConditionEvaluationError: A policy condition is malformed
        """
        try:
            ctx = IsolationContext.for_decision(decision)
        except AttributionError as e:
            self.db.record_attribution_failure(decision, e.message)
            logger.warning("Decision %s not attributed: %s", decision.decision_id, e.message)
            return SubmissionResult(
                decision=decision,
                verdict=Verdict.OBSERVE,
                attribution_error=e,
            )

        spec = self.db.resolve_active_spec(ctx, decision.intent, decision.stage)
        if spec is None:
            raise SpecNotFoundError(
                organization_id=ctx.organization_id,
                domain=ctx.domain,
                intent=decision.intent,
                stage=decision.stage.value,
            )

        enriched = self._observe(decision, spec, text)
        enriched = enriched.model_copy(update={
            "spec_id": spec.spec_id,
            "spec_version": spec.version,
        })
        validate_signals(spec, enriched)

        snapshot = self.db.get_latest_snapshot(ctx)
        if snapshot is None:
            raise SnapshotNotFoundError(
                organization_id=ctx.organization_id,
                domain=ctx.domain,
            )

        self.db.insert_decision_event(enriched, ctx)
        self._append(
            enriched, ctx, spec,
            summary=f"Decision received: {enriched.intent}",
            details={"context": enriched.context, "spec_version": spec.version},
        )

        try:
            result = evaluate_decision(enriched, spec, snapshot)
        except MandateError as e:
            self._append(
                enriched, ctx, spec,
                summary=f"Evaluation failed: {e.__class__.__name__}",
                details=e.to_dict(),
                severity=TimelineSeverity.ERROR,
            )
            raise

        scope_id = self.db.resolve_scope_id(enriched.scope, ctx)
        verdict_event = VerdictEvent(
            verdict_id=generate_id(),
            decision_id=enriched.decision_id,
            snapshot_id=snapshot.snapshot_id,
            spec_id=spec.spec_id,
            spec_version=spec.version,
            scope_id=scope_id,
            domain=ctx.domain,
            verdict=result.verdict,
            matched_policy_ids=list(result.matched_policy_ids),
        )
        self.db.insert_verdict_event(verdict_event, ctx)
        self._append(
            enriched, ctx, spec,
            summary=f"Verdict issued: {result.verdict.value}",
            details={
                "verdict_id": verdict_event.verdict_id,
                "matched_policy_ids": list(result.matched_policy_ids),
                "snapshot_id": snapshot.snapshot_id,
                "snapshot_version": snapshot.version,
            },
            scope_id=scope_id,
        )

        logger.info(
            "Decision %s in %s: %s (matched: %s)",
            enriched.decision_id, ctx, result.verdict.value,
            ", ".join(result.matched_policy_ids) or "none",
        )
        return SubmissionResult(
            decision=enriched,
            verdict=result.verdict,
            matched_policy_ids=result.matched_policy_ids,
            verdict_event=verdict_event,
        )

    def report_outcome(
        self,
        decision_id: str,
        ctx: IsolationContext,
        success: bool,
        details: dict[str, Any] | None = None,
    ) -> TimelineEntry:
        """
        Record what happened after the agent acted on a verdict.

        Raises:
            DecisionNotFoundError: If the decision is not in this boundary
        """
        validate_isolation_context(ctx)
        decision = self.db.get_decision_event(decision_id, ctx)
        if decision is None:
            raise DecisionNotFoundError(decision_id=decision_id)

        verdict = self.db.get_verdict_for_decision(decision_id, ctx)
        return self._append(
            decision, ctx, None,
            summary=f"Outcome reported: {'success' if success else 'failure'}",
            details=details or {},
            severity=TimelineSeverity.INFO if success else TimelineSeverity.WARNING,
            source=Authority.AGENT,
            spec_id=decision.spec_id,
            scope_id=verdict.scope_id if verdict else None,
        )

    def _append(
        self,
        decision: DecisionEvent,
        ctx: IsolationContext,
        spec: DecisionSpec | None,
        summary: str,
        details: dict[str, Any],
        severity: TimelineSeverity = TimelineSeverity.INFO,
        source: Authority = Authority.SYSTEM,
        spec_id: str | None = None,
        scope_id: str | None = None,
    ) -> TimelineEntry:
        entry = TimelineEntry(
            entry_id=generate_id(),
            decision_id=decision.decision_id,
            intent=decision.intent,
            stage=decision.stage,
            actor=decision.actor,
            target=decision.target,
            summary=summary,
            details=details,
            severity=severity,
            source=source,
            authority_level=source,
            spec_id=spec.spec_id if spec else spec_id,
            scope_id=scope_id,
            domain=ctx.domain,
        )
        self.db.insert_timeline_entry(entry, ctx)
        return entry

    def list_decisions(
        self,
        ctx: IsolationContext,
        verdict: Verdict | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """
        List decisions with their verdicts in a boundary.

        Returns:
            List of decision summaries, most recent first
        """
        records = self.db.list_decisions_with_verdicts(ctx, verdict=verdict, limit=limit)
        return [
            {
                "decision_id": r.decision.decision_id,
                "intent": r.decision.intent,
                "stage": r.decision.stage.value,
                "actor": r.decision.actor,
                "timestamp": r.decision.timestamp,
                "spec": f"{r.decision.spec_id}@{r.decision.spec_version}" if r.decision.spec_id else None,
                "verdict": r.verdict.verdict.value if r.verdict else None,
                "matched_policy_ids": r.verdict.matched_policy_ids if r.verdict else [],
            }
            for r in records
        ]
