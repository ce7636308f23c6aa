"""
Exception hierarchy for Mandate.

All Mandate exceptions inherit from MandateError, allowing callers to catch
every governance failure with a single except clause.

Exception Categories:
    - IsolationViolationError: Missing or crossed (organization, domain) boundary
    - PolicyBindingError: Policy not bound to the spec being evaluated
    - ConditionEvaluationError: Malformed condition (not a false condition)
    - SignalValidationError: Required signal missing or wrongly typed
    - SpecNotFoundError / SnapshotNotFoundError: Nothing to evaluate against
    - ExtractorError: Assisted extraction failed (recovered by the populator)
    - StorageError: Database operation failed

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (policy id, spec id, field) where applicable
    - Messages name the offending artifact without dumping internal state
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Isolation errors: 1xxx
ERROR_ISOLATION_VIOLATION = 1001
ERROR_DOMAIN_MISMATCH = 1002
ERROR_ATTRIBUTION_MISSING = 1003

# Binding errors: 2xxx
ERROR_POLICY_BINDING = 2001

# Condition errors: 3xxx
ERROR_CONDITION_INVALID = 3001
ERROR_FIELD_NOT_FOUND = 3002
ERROR_FIELD_INVALID_TYPE = 3003
ERROR_OPERATOR_TYPE = 3004

# Signal errors: 4xxx
ERROR_SIGNAL_INVALID = 4001
ERROR_SIGNAL_MISSING = 4002
ERROR_SIGNAL_TYPE = 4003

# Resolution errors: 5xxx
ERROR_SPEC_NOT_FOUND = 5001
ERROR_SNAPSHOT_NOT_FOUND = 5002
ERROR_SPEC_CONFLICT = 5003
ERROR_DECISION_NOT_FOUND = 5004

# Assisted extraction errors: 6xxx
ERROR_EXTRACTOR_FAILED = 6001
ERROR_EXTRACTOR_CONNECTION = 6002
ERROR_EXTRACTOR_TIMEOUT = 6003
ERROR_EXTRACTOR_PARSE = 6004

# Storage errors: 7xxx
ERROR_STORAGE_CONNECTION = 7001
ERROR_STORAGE_WRITE = 7002
ERROR_STORAGE_READ = 7003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class MandateError(Exception):
    """
    Base exception for all Mandate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with the identifiers involved
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Isolation Errors
# =============================================================================


@dataclass
class IsolationViolationError(MandateError):
    """
    Raised when an operation lacks a complete isolation boundary.

    Every read and write must carry both organization_id and domain.
    This error is fatal to the request and never defaulted.

    Attributes:
        organization_id: The organization that was supplied (may be empty)
        domain: The domain that was supplied (may be empty)
    """

    organization_id: str = ""
    domain: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            missing = []
            if not self.organization_id.strip():
                missing.append("organization_id")
            if not self.domain.strip():
                missing.append("domain")
            self.message = f"Isolation context incomplete: missing {', '.join(missing) or 'boundary'}"
        if self.code == 0:
            self.code = ERROR_ISOLATION_VIOLATION
        self.context.update({
            "organization_id": self.organization_id,
            "domain": self.domain,
        })


@dataclass
class DomainMismatchError(IsolationViolationError):
    """Raised when a decision, spec or snapshot come from different boundaries."""

    expected: str = ""
    actual: str = ""
    attribute: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"{self.attribute} mismatch: decision has {self.actual!r}, "
                f"evaluation expects {self.expected!r}"
            )
        if self.code == 0:
            self.code = ERROR_DOMAIN_MISMATCH
        super().__post_init__()
        self.context.update({
            "attribute": self.attribute,
            "expected": self.expected,
            "actual": self.actual,
        })


@dataclass
class AttributionError(IsolationViolationError):
    """Raised when a submitted decision cannot be attributed to a boundary."""

    decision_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Decision {self.decision_id!r} is missing organization_id or domain"
        if self.code == 0:
            self.code = ERROR_ATTRIBUTION_MISSING
        if not self.suggestion:
            self.suggestion = "Set organization_id and scope.domain on the decision"
        super().__post_init__()
        self.context["decision_id"] = self.decision_id


# =============================================================================
# Binding Errors
# =============================================================================


@dataclass
class PolicyBindingError(MandateError):
    """
    Raised when a policy violates its spec or scope binding.

    Aborts evaluation of the whole snapshot: a partially valid snapshot
    is never evaluated.

    Attributes:
        policy_id: The offending policy
        spec_id: The spec being evaluated
        spec_version: Version of that spec
        rule: Short name of the binding rule that failed
    """

    policy_id: str = ""
    spec_id: str = ""
    spec_version: str = ""
    rule: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Policy {self.policy_id!r} violates {self.rule} "
                f"(spec: {self.spec_id}@{self.spec_version})"
            )
        if self.code == 0:
            self.code = ERROR_POLICY_BINDING
        self.context.update({
            "policy_id": self.policy_id,
            "spec_id": self.spec_id,
            "spec_version": self.spec_version,
            "rule": self.rule,
        })


# =============================================================================
# Condition Errors
# =============================================================================


@dataclass
class ConditionEvaluationError(MandateError):
    """
    Raised when a condition cannot be evaluated.

    This is distinct from a condition that evaluates to False: a malformed
    condition is surfaced, never treated as a non-match.

    Attributes:
        field: The condition field
        operator: The condition operator
        policy_id: The policy being matched (filled in by the evaluator)
    """

    field: str = ""
    operator: str = ""
    policy_id: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot evaluate condition on {self.field!r} with {self.operator!r}"
        if self.code == 0:
            self.code = ERROR_CONDITION_INVALID
        self.context.update({
            "field": self.field,
            "operator": self.operator,
            "policy_id": self.policy_id,
        })


@dataclass
class FieldNotFoundError(ConditionEvaluationError):
    """Raised when a condition field does not resolve against the decision."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Field {self.field!r} not found in decision"
        if self.code == 0:
            self.code = ERROR_FIELD_NOT_FOUND
        super().__post_init__()


@dataclass
class InvalidFieldTypeError(ConditionEvaluationError):
    """Raised when a condition field resolves to a non-primitive value."""

    actual_type: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Field {self.field!r} is not a primitive value (got {self.actual_type})"
        if self.code == 0:
            self.code = ERROR_FIELD_INVALID_TYPE
        super().__post_init__()
        self.context["actual_type"] = self.actual_type


@dataclass
class OperatorTypeError(ConditionEvaluationError):
    """Raised when operand types do not suit the operator."""

    expected: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Operator {self.operator!r} on {self.field!r} requires {self.expected}"
        if self.code == 0:
            self.code = ERROR_OPERATOR_TYPE
        super().__post_init__()
        self.context["expected"] = self.expected


# =============================================================================
# Signal Errors
# =============================================================================


@dataclass
class SignalValidationError(MandateError):
    """
    Base class for signal validation failures.

    Attributes:
        signal: Name of the signal
        spec_id: The spec that declares it
        spec_version: Version of that spec
    """

    signal: str = ""
    spec_id: str = ""
    spec_version: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_SIGNAL_INVALID
        self.context.update({
            "signal": self.signal,
            "spec_id": self.spec_id,
            "spec_version": self.spec_version,
        })


@dataclass
class MissingRequiredSignalError(SignalValidationError):
    """Raised when a required signal is still absent after the Observe phase."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Required signal {self.signal!r} not found in decision "
                f"(spec: {self.spec_id}@{self.spec_version})"
            )
        if self.code == 0:
            self.code = ERROR_SIGNAL_MISSING
        if not self.suggestion:
            self.suggestion = "Provide the signal in decision.context or in the unstructured text"
        super().__post_init__()


@dataclass
class SignalTypeError(SignalValidationError):
    """Raised when a signal value does not fit its declared type."""

    expected: str = ""
    actual: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Signal {self.signal!r} must be {self.expected}, got {self.actual} "
                f"(spec: {self.spec_id}@{self.spec_version})"
            )
        if self.code == 0:
            self.code = ERROR_SIGNAL_TYPE
        super().__post_init__()
        self.context.update({
            "expected": self.expected,
            "actual": self.actual,
        })


# =============================================================================
# Resolution Errors
# =============================================================================


@dataclass
class SpecNotFoundError(MandateError):
    """Raised when no active spec exists for (organization, domain, intent, stage)."""

    organization_id: str = ""
    domain: str = ""
    intent: str = ""
    stage: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"No active spec found for intent={self.intent!r} "
                f"stage={self.stage!r} in domain={self.domain!r}"
            )
        if self.code == 0:
            self.code = ERROR_SPEC_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Register a spec with `mandate spec-add`"
        self.context.update({
            "organization_id": self.organization_id,
            "domain": self.domain,
            "intent": self.intent,
            "stage": self.stage,
        })


@dataclass
class SnapshotNotFoundError(MandateError):
    """Raised when a boundary has no policy snapshot."""

    organization_id: str = ""
    domain: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"No policy snapshot available for domain {self.domain!r}"
        if self.code == 0:
            self.code = ERROR_SNAPSHOT_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Publish a snapshot with `mandate snapshot-add`"
        self.context.update({
            "organization_id": self.organization_id,
            "domain": self.domain,
        })


@dataclass
class SpecConflictError(MandateError):
    """Raised when a spec version is inserted twice."""

    spec_id: str = ""
    spec_version: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Spec {self.spec_id}@{self.spec_version} already exists"
        if self.code == 0:
            self.code = ERROR_SPEC_CONFLICT
        if not self.suggestion:
            self.suggestion = "Specs are append-only; publish a new version instead"
        self.context.update({
            "spec_id": self.spec_id,
            "spec_version": self.spec_version,
        })


@dataclass
class DecisionNotFoundError(MandateError):
    """Raised when a decision is not visible inside the given boundary."""

    decision_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Decision not found: {self.decision_id}"
        if self.code == 0:
            self.code = ERROR_DECISION_NOT_FOUND
        self.context["decision_id"] = self.decision_id


# =============================================================================
# Assisted Extraction Errors
# =============================================================================


@dataclass
class ExtractorError(MandateError):
    """
    Base class for assisted extraction failures.

    The signal populator always recovers from these; they surface only
    when an extractor is called directly.

    Attributes:
        extractor: Backend name (e.g., "ollama")
        model: Model identifier
    """

    extractor: str = ""
    model: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Assisted extraction failed ({self.extractor})"
        if self.code == 0:
            self.code = ERROR_EXTRACTOR_FAILED
        self.context.update({
            "extractor": self.extractor,
            "model": self.model,
        })


@dataclass
class ExtractorConnectionError(ExtractorError):
    """Raised when the extraction backend is unreachable."""

    url: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot reach {self.extractor} at {self.url}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_EXTRACTOR_CONNECTION
        super().__post_init__()
        self.context.update({
            "url": self.url,
            "underlying_error": self.underlying_error,
        })


@dataclass
class ExtractorTimeoutError(ExtractorError):
    """Raised when the extraction backend does not answer in time."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"{self.extractor} timed out after {self.timeout_seconds}s"
        if self.code == 0:
            self.code = ERROR_EXTRACTOR_TIMEOUT
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


@dataclass
class ExtractorParseError(ExtractorError):
    """Raised when the backend reply is not usable JSON."""

    raw_response: str = ""
    parse_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unparseable reply from {self.extractor}: {self.parse_error}"
        if self.code == 0:
            self.code = ERROR_EXTRACTOR_PARSE
        super().__post_init__()
        self.context.update({
            "raw_response": self.raw_response,
            "parse_error": self.parse_error,
        })


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(MandateError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "insert_spec")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
