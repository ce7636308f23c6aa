"""
Schema definitions for Mandate.

This module defines all the Pydantic models used throughout Mandate:
- DecisionEvent/Scope: The attempted action an agent submits
- DecisionSpec/SignalDefinition: The contract a decision type must follow
- Policy/PolicyCondition/PolicySnapshot: What verdict applies, and when
- EvaluationResult/VerdictEvent/TimelineEntry: The outcome and its audit trail

Design Decisions:
    - All models use strict validation (no type coercion of signal values)
    - Models are immutable (frozen=True); enrichment returns copies
    - Timestamps are RFC3339 strings so conditions can compare them verbatim
    - Optional fields have sensible defaults
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)


def utc_now_iso() -> str:
    """Get current UTC timestamp in RFC3339 format."""
    return datetime.now(UTC).isoformat()


def _yaml_scalar_to_str(v: Any) -> Any:
    # YAML turns unquoted timestamps into datetime and "1.0" into float
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


# =============================================================================
# Enums
# =============================================================================


class Stage(str, Enum):
    """Lifecycle stage at which a decision is submitted."""

    PROPOSED = "proposed"
    PRE_COMMIT = "pre_commit"
    EXECUTED = "executed"


class Verdict(str, Enum):
    """
    The closed set of governance outcomes.

    Precedence when several policies match: BLOCK > PAUSE > ALLOW > OBSERVE.
    """

    ALLOW = "ALLOW"
    PAUSE = "PAUSE"
    BLOCK = "BLOCK"
    OBSERVE = "OBSERVE"


class SignalType(str, Enum):
    """Declared type of a signal."""

    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    STRING = "string"


class SignalSource(str, Enum):
    """Where a signal's value comes from."""

    CONTEXT = "context"
    SCOPE = "scope"
    TIMESTAMP = "timestamp"


class Operator(str, Enum):
    """Comparison operators available to policy conditions."""

    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    IN = "in"


class SpecStatus(str, Enum):
    """Lifecycle status of a decision spec."""

    DRAFT = "draft"
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class TimelineSeverity(str, Enum):
    """Severity of an audit timeline entry."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Authority(str, Enum):
    """Who produced an audit timeline entry."""

    SYSTEM = "system"
    AGENT = "agent"
    HUMAN = "human"


# Typed signal value: a strict primitive or a list of strict primitives.
# Order matters for pydantic's union matching: bool before int before float.
Primitive = StrictBool | StrictInt | StrictFloat | StrictStr
SignalValue = Primitive | list[Primitive]


# =============================================================================
# Decision Models
# =============================================================================


class Scope(BaseModel):
    """
    Scope selector, used both on decisions and on policies.

    organization_id and domain form the isolation boundary. The remaining
    keys are optional: on a policy, an absent key matches any value.

    Attributes:
        organization_id: Owning organization
        domain: Governance domain (e.g., "finance")
        service: Optional service name
        agent: Optional agent name
        system: Optional system name
        environment: Optional environment (e.g., "production")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    organization_id: str = Field(default="", description="Owning organization")
    domain: str = Field(default="", description="Governance domain")
    service: str | None = Field(default=None, description="Service name")
    agent: str | None = Field(default=None, description="Agent name")
    system: str | None = Field(default=None, description="System name")
    environment: str | None = Field(default=None, description="Deployment environment")


class DecisionEvent(BaseModel):
    """
    An attempted action submitted for governance.

    The context map holds typed signal values. Observe-phase enrichment
    never mutates an existing event; it returns a copy with a merged context.

    Attributes:
        decision_id: Unique identifier for this decision
        organization_id: Submitting organization
        intent: What the agent is trying to do (e.g., "approve-expense")
        stage: Lifecycle stage of the action
        actor: Who is acting (agent identity)
        target: What is acted upon
        context: Signal values keyed by signal name
        scope: Where the action happens
        timestamp: When the action was attempted (RFC3339)
        spec_id: Spec the decision was resolved against (set on submission)
        spec_version: Version of that spec (set on submission)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    decision_id: str = Field(..., description="Unique decision identifier", min_length=1)
    organization_id: str = Field(default="", description="Submitting organization")
    intent: str = Field(..., description="Intent of the action", min_length=1)
    stage: Stage = Field(..., description="Lifecycle stage")
    actor: str = Field(..., description="Acting agent")
    target: str = Field(..., description="Target of the action")
    context: dict[str, SignalValue] = Field(
        default_factory=dict,
        description="Signal values keyed by name",
    )
    scope: Scope = Field(default_factory=Scope, description="Where the action happens")
    timestamp: str = Field(default_factory=utc_now_iso, description="RFC3339 timestamp")
    spec_id: str | None = Field(default=None, description="Resolved spec id")
    spec_version: str | None = Field(default=None, description="Resolved spec version")

    @model_validator(mode="before")
    @classmethod
    def fold_domain_into_scope(cls, data: Any) -> Any:
        """Accept a top-level domain and keep it on the scope."""
        if not isinstance(data, dict) or "domain" not in data:
            return data
        data = dict(data)
        domain = data.pop("domain")
        scope = data.get("scope") or {}
        scope = dict(scope.model_dump() if isinstance(scope, Scope) else scope)
        if domain and scope.get("domain") and scope["domain"] != domain:
            msg = f"scope.domain '{scope['domain']}' does not match domain '{domain}'"
            raise ValueError(msg)
        if domain:
            scope["domain"] = domain
        data["scope"] = scope
        return data

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Any:
        """Accept timestamps YAML already parsed into datetime."""
        return _yaml_scalar_to_str(v) if isinstance(v, datetime) else v

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        """Reject timestamps that are not RFC3339."""
        try:
            datetime.fromisoformat(v)
        except ValueError as e:
            msg = f"Invalid RFC3339 timestamp: {v}"
            raise ValueError(msg) from e
        return v

    @model_validator(mode="after")
    def validate_scope_organization(self) -> "DecisionEvent":
        """A decision cannot claim a scope in another organization."""
        scope_org = self.scope.organization_id
        if scope_org and self.organization_id and scope_org != self.organization_id:
            msg = (
                f"scope.organization_id '{scope_org}' does not match "
                f"organization_id '{self.organization_id}'"
            )
            raise ValueError(msg)
        return self

    @property
    def domain(self) -> str:
        """The decision's domain is always its scope's domain."""
        return self.scope.domain


# =============================================================================
# Spec Models
# =============================================================================


class SignalDefinition(BaseModel):
    """
    A typed, named input that policies may reference.

    Attributes:
        name: Signal name (referenced by condition fields)
        type: Declared value type
        values: Allowed values (required for enum signals)
        required: Whether the signal must be present before evaluation
        source: Where the value comes from
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Signal name", min_length=1)
    type: SignalType = Field(..., description="Declared value type")
    values: list[str] | None = Field(default=None, description="Allowed values")
    required: bool = Field(default=False, description="Must be present before evaluation")
    source: SignalSource = Field(default=SignalSource.CONTEXT, description="Value source")

    @model_validator(mode="after")
    def validate_enum_values(self) -> "SignalDefinition":
        """Enum signals must declare their values."""
        if self.type == SignalType.ENUM and not self.values:
            msg = f"Enum signal '{self.name}' must declare non-empty values"
            raise ValueError(msg)
        return self


class DecisionSpec(BaseModel):
    """
    Versioned contract for one (intent, stage) inside a domain.

    Specs are append-only: a new version supersedes the old one rather
    than editing it.

    Attributes:
        spec_id: Stable identifier across versions
        version: Version label (e.g., "1.0.0")
        organization_id: Owning organization
        domain: Governance domain
        intent: Intent this spec governs
        stage: Stage this spec governs
        allowed_verdicts: Verdicts a bound policy may issue
        signals: Signals policies may reference
        status: Lifecycle status
        replaced_by: Label (spec_id@version) of the spec that supersedes this one
        created_at: When this version was published
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    spec_id: str = Field(..., description="Spec identifier", min_length=1)
    version: str = Field(..., description="Spec version", min_length=1)
    organization_id: str = Field(..., description="Owning organization", min_length=1)
    domain: str = Field(..., description="Governance domain", min_length=1)
    intent: str = Field(..., description="Governed intent", min_length=1)
    stage: Stage = Field(..., description="Governed stage")
    allowed_verdicts: list[Verdict] = Field(
        ...,
        description="Verdicts a bound policy may issue",
        min_length=1,
    )
    signals: list[SignalDefinition] = Field(
        default_factory=list,
        description="Declared signals",
    )
    status: SpecStatus = Field(default=SpecStatus.ACTIVE, description="Lifecycle status")
    replaced_by: str | None = Field(default=None, description="Superseding spec label")
    created_at: str = Field(default_factory=utc_now_iso, description="Publication time")

    @field_validator("version", "created_at", mode="before")
    @classmethod
    def coerce_yaml_scalars(cls, v: Any) -> Any:
        """Accept versions and timestamps YAML parsed as numbers or datetimes."""
        return _yaml_scalar_to_str(v)

    @field_validator("signals")
    @classmethod
    def validate_unique_signals(cls, v: list[SignalDefinition]) -> list[SignalDefinition]:
        """Signal names must be unique within a spec."""
        seen: set[str] = set()
        for signal in v:
            if signal.name in seen:
                msg = f"Duplicate signal name: {signal.name}"
                raise ValueError(msg)
            seen.add(signal.name)
        return v

    @property
    def label(self) -> str:
        """Short spec_id@version label used in messages."""
        return f"{self.spec_id}@{self.version}"

    def signal(self, name: str) -> SignalDefinition | None:
        """Look up a declared signal by name."""
        for signal in self.signals:
            if signal.name == name:
                return signal
        return None


# =============================================================================
# Policy Models
# =============================================================================


class PolicyCondition(BaseModel):
    """
    A single comparison against a decision field.

    Attributes:
        field: Field path (signal name, "context.x", "scope.x" or a top-level attribute)
        operator: Comparison operator
        value: Right-hand operand (a primitive, or a list for "in")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str = Field(..., description="Field path", min_length=1)
    operator: Operator = Field(..., description="Comparison operator")
    value: SignalValue = Field(..., description="Right-hand operand")


class Policy(BaseModel):
    """
    A rule producing a verdict when its scope and conditions match.

    spec_id and scope_id are optional here only so that the binding
    validator can report a missing binding instead of a parse error.

    Attributes:
        id: Policy identifier
        organization_id: Owning organization
        name: Human-readable name
        description: What this policy is for
        spec_id: Spec this policy is bound to
        scope_id: Scope this policy is bound to
        scope: Scope selector
        conditions: Conditions that must all hold (AND)
        verdict: Verdict issued on match
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Policy identifier", min_length=1)
    organization_id: str = Field(default="", description="Owning organization")
    name: str = Field(default="", description="Human-readable name")
    description: str = Field(default="", description="Policy purpose")
    spec_id: str | None = Field(default=None, description="Bound spec")
    scope_id: str | None = Field(default=None, description="Bound scope")
    scope: Scope = Field(..., description="Scope selector")
    conditions: list[PolicyCondition] = Field(
        default_factory=list,
        description="Conditions (all must hold)",
    )
    verdict: Verdict = Field(..., description="Verdict on match")


class PolicySnapshot(BaseModel):
    """
    A versioned, immutable set of policies for one (organization, domain).

    Attributes:
        snapshot_id: Snapshot identifier
        version: Monotonic version within the boundary
        organization_id: Owning organization
        domain: Governance domain
        created_at: When the snapshot was published
        policies: Policies in evaluation order
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    snapshot_id: str = Field(..., description="Snapshot identifier", min_length=1)
    version: int = Field(default=1, description="Version within the boundary", ge=1)
    organization_id: str = Field(..., description="Owning organization", min_length=1)
    domain: str = Field(..., description="Governance domain", min_length=1)
    created_at: str = Field(default_factory=utc_now_iso, description="Publication time")
    policies: list[Policy] = Field(default_factory=list, description="Policies")

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, v: Any) -> Any:
        """Accept timestamps YAML already parsed into datetime."""
        return _yaml_scalar_to_str(v) if isinstance(v, datetime) else v


# =============================================================================
# Evaluation Models
# =============================================================================


class PolicyMatch(BaseModel):
    """A policy that matched, with the verdict it issues."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    policy_id: str
    verdict: Verdict


class EvaluationResult(BaseModel):
    """
    Outcome of evaluating one decision.

    Attributes:
        verdict: The resolved verdict
        matched_policy_ids: Every matched policy, in match order
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    verdict: Verdict = Field(..., description="Resolved verdict")
    matched_policy_ids: tuple[str, ...] = Field(
        default=(),
        description="Matched policies in match order",
    )


class ScopeMatchResult(BaseModel):
    """Whether a decision scope satisfies a selector, and why not."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    matches: bool
    reason: str | None = None


# =============================================================================
# Audit Models
# =============================================================================


class VerdictEvent(BaseModel):
    """
    Persisted record of a verdict.

    Attributes:
        verdict_id: Unique identifier
        decision_id: Decision this verdict is for
        snapshot_id: Snapshot evaluated against
        spec_id: Spec evaluated against
        spec_version: Version of that spec
        scope_id: Resolved scope of the decision
        domain: Governance domain
        verdict: Resolved verdict
        matched_policy_ids: Matched policies in match order
        owning_team: Team accountable for the decision (unset for now)
        timestamp: When the verdict was issued
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    verdict_id: str = Field(..., description="Verdict identifier")
    decision_id: str = Field(..., description="Decision identifier")
    snapshot_id: str = Field(..., description="Evaluated snapshot")
    spec_id: str = Field(..., description="Evaluated spec")
    spec_version: str = Field(..., description="Evaluated spec version")
    scope_id: str = Field(..., description="Resolved scope")
    domain: str = Field(..., description="Governance domain")
    verdict: Verdict = Field(..., description="Resolved verdict")
    matched_policy_ids: list[str] = Field(default_factory=list, description="Matched policies")
    owning_team: str | None = Field(default=None, description="Accountable team")
    timestamp: str = Field(default_factory=utc_now_iso, description="Issue time")


class TimelineEntry(BaseModel):
    """
    One row of a decision's audit timeline.

    Timeline entries are append-only and never updated.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    entry_id: str = Field(..., description="Entry identifier")
    decision_id: str = Field(..., description="Decision identifier")
    intent: str = Field(..., description="Decision intent")
    stage: Stage = Field(..., description="Decision stage")
    actor: str = Field(..., description="Decision actor")
    target: str = Field(..., description="Decision target")
    summary: str = Field(..., description="One-line summary")
    details: dict[str, Any] = Field(default_factory=dict, description="Structured details")
    severity: TimelineSeverity = Field(default=TimelineSeverity.INFO, description="Severity")
    source: Authority = Field(default=Authority.SYSTEM, description="Who reported it")
    authority_level: Authority = Field(default=Authority.SYSTEM, description="Authority level")
    timestamp: str = Field(default_factory=utc_now_iso, description="Entry time")
    spec_id: str | None = Field(default=None, description="Spec in force")
    scope_id: str | None = Field(default=None, description="Resolved scope")
    domain: str | None = Field(default=None, description="Governance domain")
    owning_team: str | None = Field(default=None, description="Accountable team")


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def _read_yaml(path: Path | str) -> Any:
    path = Path(path)
    with path.open() as f:
        return yaml.safe_load(f)


def load_spec(path: Path | str) -> DecisionSpec:
    """
    Load a decision spec from a YAML (or JSON) file.

    Args:
        path: Path to the file

    Returns:
        Validated DecisionSpec object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the content doesn't match the schema
    """
    return DecisionSpec.model_validate(_read_yaml(path))


def load_snapshot(path: Path | str) -> PolicySnapshot:
    """
    Load a policy snapshot from a YAML (or JSON) file.

    Args:
        path: Path to the file

    Returns:
        Validated PolicySnapshot object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the content doesn't match the schema
    """
    return PolicySnapshot.model_validate(_read_yaml(path))


def load_decision(path: Path | str) -> DecisionEvent:
    """Load a decision event from a YAML (or JSON) file."""
    return DecisionEvent.model_validate(_read_yaml(path))


def load_spec_from_string(content: str) -> DecisionSpec:
    """Load a decision spec from a YAML string."""
    return DecisionSpec.model_validate(yaml.safe_load(content))


def load_snapshot_from_string(content: str) -> PolicySnapshot:
    """Load a policy snapshot from a YAML string."""
    return PolicySnapshot.model_validate(yaml.safe_load(content))


def load_decision_from_string(content: str) -> DecisionEvent:
    """Load a decision event from a YAML string."""
    return DecisionEvent.model_validate(yaml.safe_load(content))
