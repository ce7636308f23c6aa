"""
Signal and binding validation outside the evaluation core.

Two checks live here:
    - validate_signals: a decision carries every required signal, and
      every present signal has its declared type
    - validate_snapshot_integrity: startup diagnostics reporting every
      policy whose spec or scope binding is broken
"""

from dataclasses import dataclass
from typing import Any

from mandate.errors import MissingRequiredSignalError, SignalTypeError
from mandate.policy.conditions import is_number
from mandate.schema import (
    DecisionEvent,
    DecisionSpec,
    Policy,
    PolicySnapshot,
    Scope,
    SignalDefinition,
    SignalSource,
    SignalType,
    SpecStatus,
)

_MISSING = object()


def signal_value_fits(definition: SignalDefinition, value: Any) -> bool:
    """Whether a value has the type (and, for enums, a value) the signal declares."""
    if definition.type == SignalType.NUMBER:
        return is_number(value)
    if definition.type == SignalType.BOOLEAN:
        return isinstance(value, bool)
    if definition.type == SignalType.ENUM:
        return isinstance(value, str) and value in (definition.values or [])
    return isinstance(value, str)


def scope_value(decision: DecisionEvent, name: str) -> str | None:
    """Read a scope key by name; unknown keys read as absent."""
    if name not in Scope.model_fields:
        return None
    return getattr(decision.scope, name)


def _describe(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return f"string {value!r}"
    return type(value).__name__


def collect_signals(decision: DecisionEvent, signal_defs: list[SignalDefinition]) -> dict[str, Any]:
    """
    Read each declared signal from the place its source names.

    Signals the decision does not carry are omitted.
    """
    signals: dict[str, Any] = {}
    for definition in signal_defs:
        if definition.source == SignalSource.CONTEXT:
            value = decision.context.get(definition.name, _MISSING)
        elif definition.source == SignalSource.SCOPE:
            value = scope_value(decision, definition.name)
            if value is None:
                value = _MISSING
        else:
            value = decision.timestamp
        if value is not _MISSING:
            signals[definition.name] = value
    return signals


def validate_signals(spec: DecisionSpec, decision: DecisionEvent) -> None:
    """
    Check a decision's signals against its spec.

    Raises:
        MissingRequiredSignalError: If a required signal is absent
        SignalTypeError: If a signal value does not fit its declaration
    """
    signals = collect_signals(decision, spec.signals)

    for definition in spec.signals:
        if definition.name not in signals:
            if definition.required:
                raise MissingRequiredSignalError(
                    signal=definition.name,
                    spec_id=spec.spec_id,
                    spec_version=spec.version,
                )
            continue

        value = signals[definition.name]
        if not signal_value_fits(definition, value):
            expected = definition.type.value
            if definition.type == SignalType.ENUM:
                expected = f"one of [{', '.join(definition.values or [])}]"
            raise SignalTypeError(
                signal=definition.name,
                spec_id=spec.spec_id,
                spec_version=spec.version,
                expected=expected,
                actual=_describe(value),
            )


# =============================================================================
# Startup Diagnostics
# =============================================================================


@dataclass(frozen=True)
class BindingIssue:
    """A policy whose spec or scope binding is broken."""

    policy_id: str
    policy_name: str
    reason: str

    def __str__(self) -> str:
        return f'Policy "{self.policy_name}" ({self.policy_id}): {self.reason}'


def validate_snapshot_integrity(
    snapshot: PolicySnapshot,
    specs: list[DecisionSpec],
) -> list[BindingIssue]:
    """
    Report every policy in a snapshot with a broken binding.

    Unlike the evaluator's binding check, this does not stop at the first
    problem: it returns one issue per offending policy.

    Args:
        snapshot: The snapshot to check
        specs: Specs known in the snapshot's boundary

    Returns:
        Issues found, in policy order (empty when the snapshot is sound)
    """
    active = {
        s.spec_id: s
        for s in specs
        if s.status == SpecStatus.ACTIVE
        and s.organization_id == snapshot.organization_id
        and s.domain == snapshot.domain
    }

    issues: list[BindingIssue] = []
    for policy in snapshot.policies:
        reason = _binding_problem(policy, active)
        if reason:
            issues.append(BindingIssue(policy_id=policy.id, policy_name=policy.name, reason=reason))
    return issues


def _binding_problem(policy: Policy, active: dict[str, DecisionSpec]) -> str | None:
    if not policy.spec_id:
        return "missing spec_id"
    if not policy.scope_id:
        return "missing scope_id"
    if not policy.organization_id:
        return "missing organization_id"
    if not policy.scope.domain:
        return "scope missing domain"

    spec = active.get(policy.spec_id)
    if spec is None:
        return f"spec_id {policy.spec_id!r} does not reference an active spec"
    if spec.organization_id != policy.scope.organization_id:
        return (
            f"scope organization_id {policy.scope.organization_id!r} does not match "
            f"spec organization_id {spec.organization_id!r}"
        )
    if spec.domain != policy.scope.domain:
        return f"scope domain {policy.scope.domain!r} does not match spec domain {spec.domain!r}"
    return None
