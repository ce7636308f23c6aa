"""
SQLite storage for Mandate.

This module persists specs, policy snapshots, decisions, verdicts and the
audit timeline. Everything lives in a single SQLite database file.

Design Principles:
    - Append-only: Rows are never updated or deleted; spec supersession
      is recorded as a new row
    - Isolated: Every read and write takes an IsolationContext and filters
      by (organization_id, domain); the only exceptions end in _unscoped
      and exist for startup diagnostics
    - Integrity: Stored artifacts carry a SHA256 hash of their JSON
    - Atomic: Multi-row writes run in one transaction

Tables:
    - decision_specs: Every published spec version
    - spec_supersessions: Which spec version replaced which
    - policy_snapshots: Versioned policy sets per boundary
    - scopes: Scope ids resolved for decision scopes
    - decision_events: Submitted (enriched) decisions
    - verdict_events: Verdicts issued for decisions
    - timeline_entries: Audit timeline
    - attribution_failures: Decisions that could not be attributed to a boundary
"""

import hashlib
import json
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

from mandate.errors import (
    DomainMismatchError,
    SpecConflictError,
    StorageConnectionError,
    StorageReadError,
    StorageWriteError,
)
from mandate.isolation import IsolationContext, validate_isolation_context
from mandate.schema import (
    DecisionEvent,
    DecisionSpec,
    PolicySnapshot,
    Scope,
    SpecStatus,
    Stage,
    TimelineEntry,
    Verdict,
    VerdictEvent,
)

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Decision specs: one row per published version
CREATE TABLE IF NOT EXISTS decision_specs (
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    spec_id TEXT NOT NULL,
    version TEXT NOT NULL,
    intent TEXT NOT NULL,
    stage TEXT NOT NULL,
    status TEXT NOT NULL,
    spec_json TEXT NOT NULL,
    spec_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (organization_id, domain, spec_id, version)
);

-- Spec supersessions: append-only replacement of active versions
CREATE TABLE IF NOT EXISTS spec_supersessions (
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    spec_id TEXT NOT NULL,
    version TEXT NOT NULL,
    replaced_by TEXT NOT NULL,
    superseded_at TEXT NOT NULL,
    PRIMARY KEY (organization_id, domain, spec_id, version)
);

-- Policy snapshots: versioned per boundary
CREATE TABLE IF NOT EXISTS policy_snapshots (
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    snapshot_id TEXT NOT NULL,
    version INTEGER NOT NULL,
    snapshot_json TEXT NOT NULL,
    snapshot_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (organization_id, domain, snapshot_id),
    UNIQUE (organization_id, domain, version)
);

-- Scopes: resolved once per distinct scope
CREATE TABLE IF NOT EXISTS scopes (
    scope_id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    scope_key TEXT NOT NULL,
    scope_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (organization_id, domain, scope_key)
);

-- Decision events: enriched decisions as evaluated
CREATE TABLE IF NOT EXISTS decision_events (
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    decision_id TEXT NOT NULL,
    intent TEXT NOT NULL,
    stage TEXT NOT NULL,
    actor TEXT NOT NULL,
    target TEXT NOT NULL,
    spec_id TEXT,
    spec_version TEXT,
    timestamp TEXT NOT NULL,
    decision_json TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    PRIMARY KEY (organization_id, domain, decision_id)
);

-- Verdict events: one per evaluated decision
CREATE TABLE IF NOT EXISTS verdict_events (
    verdict_id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    decision_id TEXT NOT NULL,
    snapshot_id TEXT NOT NULL,
    spec_id TEXT NOT NULL,
    spec_version TEXT NOT NULL,
    scope_id TEXT NOT NULL,
    verdict TEXT NOT NULL,
    matched_policy_ids_json TEXT NOT NULL,
    owning_team TEXT,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (organization_id, domain, decision_id)
        REFERENCES decision_events(organization_id, domain, decision_id)
);

-- Timeline entries: audit trail
CREATE TABLE IF NOT EXISTS timeline_entries (
    entry_id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    decision_id TEXT NOT NULL,
    intent TEXT NOT NULL,
    stage TEXT NOT NULL,
    actor TEXT NOT NULL,
    target TEXT NOT NULL,
    summary TEXT NOT NULL,
    details_json TEXT NOT NULL,
    severity TEXT NOT NULL,
    source TEXT NOT NULL,
    authority_level TEXT NOT NULL,
    spec_id TEXT,
    scope_id TEXT,
    owning_team TEXT,
    timestamp TEXT NOT NULL
);

-- Attribution failures: no boundary exists for these, so they are unscoped
CREATE TABLE IF NOT EXISTS attribution_failures (
    failure_id TEXT PRIMARY KEY,
    decision_id TEXT NOT NULL,
    organization_id TEXT NOT NULL,
    domain TEXT NOT NULL,
    reason TEXT NOT NULL,
    recorded_at TEXT NOT NULL
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_specs_lookup
    ON decision_specs(organization_id, domain, intent, stage, status);
CREATE INDEX IF NOT EXISTS idx_verdicts_decision
    ON verdict_events(organization_id, domain, decision_id);
CREATE INDEX IF NOT EXISTS idx_timeline_decision
    ON timeline_entries(organization_id, domain, decision_id);
CREATE INDEX IF NOT EXISTS idx_decisions_timestamp
    ON decision_events(organization_id, domain, timestamp);
"""


def generate_id() -> str:
    """Generate a unique ID for verdicts, entries and scopes."""
    return str(uuid.uuid4())[:8]


def compute_hash(data: Any) -> str:
    """Compute SHA256 hash of data."""
    if data is None:
        return ""
    if isinstance(data, str):
        content = data.encode("utf-8")
    elif isinstance(data, bytes):
        content = data
    else:
        content = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class DecisionRecord:
    """A stored decision together with its verdict (None if never evaluated)."""

    decision: DecisionEvent
    verdict: VerdictEvent | None


@dataclass(frozen=True)
class AttributionFailure:
    """A decision rejected because it had no complete isolation boundary."""

    failure_id: str
    decision_id: str
    organization_id: str
    domain: str
    reason: str
    recorded_at: str


def _check_boundary(ctx: IsolationContext, organization_id: str, domain: str, what: str) -> None:
    validate_isolation_context(ctx)
    if organization_id != ctx.organization_id:
        raise DomainMismatchError(
            message=f"{what} belongs to organization {organization_id!r}, not {ctx.organization_id!r}",
            attribute="organization_id",
            expected=ctx.organization_id,
            actual=organization_id,
            organization_id=ctx.organization_id,
            domain=ctx.domain,
        )
    if domain != ctx.domain:
        raise DomainMismatchError(
            message=f"{what} belongs to domain {domain!r}, not {ctx.domain!r}",
            attribute="domain",
            expected=ctx.domain,
            actual=domain,
            organization_id=ctx.organization_id,
            domain=ctx.domain,
        )


class MandateDB:
    """
    SQLite database for Mandate storage.

    Usage:
        with MandateDB("mandate.db") as db:
            db.insert_spec(spec, ctx)
            spec = db.resolve_active_spec(ctx, "approve-expense", Stage.PROPOSED)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Will be created if it doesn't exist.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            if cursor.fetchone() is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for database transactions."""
        try:
            yield
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "MandateDB":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Spec Operations
    # =========================================================================

    def insert_spec(self, spec: DecisionSpec, ctx: IsolationContext) -> DecisionSpec:
        """
        Publish a spec version.

        Publishing an active version supersedes any other active spec for
        the same (intent, stage) in the boundary.

        Args:
            spec: The spec to store
            ctx: Isolation boundary (must match the spec's)

        Returns:
            The stored spec

        Raises:
            SpecConflictError: If spec_id@version already exists in the boundary
            DomainMismatchError: If the spec belongs to another boundary
        """
        _check_boundary(ctx, spec.organization_id, spec.domain, f"Spec {spec.label}")

        if self.fetch_spec(ctx, spec.spec_id, spec.version) is not None:
            raise SpecConflictError(spec_id=spec.spec_id, spec_version=spec.version)

        spec_json = spec.model_dump_json()
        try:
            with self.transaction():
                if spec.status == SpecStatus.ACTIVE:
                    self._supersede_active(ctx, spec)
                self._conn.execute(
                    """
                    INSERT INTO decision_specs (
                        organization_id, domain, spec_id, version, intent, stage,
                        status, spec_json, spec_hash, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        ctx.organization_id,
                        ctx.domain,
                        spec.spec_id,
                        spec.version,
                        spec.intent,
                        spec.stage.value,
                        spec.status.value,
                        spec_json,
                        compute_hash(spec_json),
                        spec.created_at,
                    ),
                )
            return spec
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert_spec",
                underlying_error=str(e),
            ) from e

    def _supersede_active(self, ctx: IsolationContext, spec: DecisionSpec) -> None:
        rows = self._conn.execute(
            f"""
            SELECT spec_id, version FROM decision_specs d
            WHERE {self._active_spec_filter()}
            """,
            (ctx.organization_id, ctx.domain, spec.intent, spec.stage.value),
        ).fetchall()
        for row in rows:
            self._conn.execute(
                """
                INSERT INTO spec_supersessions (
                    organization_id, domain, spec_id, version, replaced_by, superseded_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (ctx.organization_id, ctx.domain, row["spec_id"], row["version"], spec.label, now_iso()),
            )

    @staticmethod
    def _active_spec_filter() -> str:
        return """
            d.organization_id = ? AND d.domain = ? AND d.intent = ? AND d.stage = ?
            AND d.status = 'active'
            AND NOT EXISTS (
                SELECT 1 FROM spec_supersessions s
                WHERE s.organization_id = d.organization_id
                  AND s.domain = d.domain
                  AND s.spec_id = d.spec_id
                  AND s.version = d.version
            )
        """

    def _row_to_spec(self, row: sqlite3.Row) -> DecisionSpec:
        spec = DecisionSpec.model_validate_json(row["spec_json"])
        if row["replaced_by"] is not None:
            spec = spec.model_copy(update={
                "status": SpecStatus.SUPERSEDED,
                "replaced_by": row["replaced_by"],
            })
        return spec

    _SPEC_SELECT = """
        SELECT d.spec_json, s.replaced_by
        FROM decision_specs d
        LEFT JOIN spec_supersessions s
          ON s.organization_id = d.organization_id
         AND s.domain = d.domain
         AND s.spec_id = d.spec_id
         AND s.version = d.version
    """

    def resolve_active_spec(
        self,
        ctx: IsolationContext,
        intent: str,
        stage: Stage | str,
    ) -> DecisionSpec | None:
        """
        Find the active spec for an (intent, stage) in a boundary.

        Returns:
            The most recently published active spec, or None
        """
        validate_isolation_context(ctx)
        stage_value = stage.value if isinstance(stage, Stage) else stage
        try:
            row = self._conn.execute(
                f"""
                SELECT d.spec_json, NULL AS replaced_by FROM decision_specs d
                WHERE {self._active_spec_filter()}
                ORDER BY d.created_at DESC, d.rowid DESC
                LIMIT 1
                """,
                (ctx.organization_id, ctx.domain, intent, stage_value),
            ).fetchone()
            return self._row_to_spec(row) if row else None
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="resolve_active_spec",
                underlying_error=str(e),
            ) from e

    def fetch_spec(
        self,
        ctx: IsolationContext,
        spec_id: str,
        version: str,
    ) -> DecisionSpec | None:
        """Get one spec version in a boundary, or None."""
        validate_isolation_context(ctx)
        try:
            row = self._conn.execute(
                self._SPEC_SELECT + """
                WHERE d.organization_id = ? AND d.domain = ?
                  AND d.spec_id = ? AND d.version = ?
                """,
                (ctx.organization_id, ctx.domain, spec_id, version),
            ).fetchone()
            return self._row_to_spec(row) if row else None
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="fetch_spec",
                underlying_error=str(e),
            ) from e

    def list_specs(self, ctx: IsolationContext) -> list[DecisionSpec]:
        """List every spec version in a boundary, oldest first."""
        validate_isolation_context(ctx)
        try:
            rows = self._conn.execute(
                self._SPEC_SELECT + """
                WHERE d.organization_id = ? AND d.domain = ?
                ORDER BY d.created_at, d.rowid
                """,
                (ctx.organization_id, ctx.domain),
            ).fetchall()
            return [self._row_to_spec(row) for row in rows]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_specs",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Snapshot Operations
    # =========================================================================

    def insert_snapshot(self, snapshot: PolicySnapshot, ctx: IsolationContext) -> PolicySnapshot:
        """
        Publish a policy snapshot.

        The stored snapshot gets the next version number in its boundary,
        whatever version it carried.

        Returns:
            The stored snapshot, with its assigned version
        """
        _check_boundary(
            ctx, snapshot.organization_id, snapshot.domain, f"Snapshot {snapshot.snapshot_id!r}"
        )
        try:
            with self.transaction():
                row = self._conn.execute(
                    """
                    SELECT COALESCE(MAX(version), 0) AS latest FROM policy_snapshots
                    WHERE organization_id = ? AND domain = ?
                    """,
                    (ctx.organization_id, ctx.domain),
                ).fetchone()
                stored = snapshot.model_copy(update={"version": row["latest"] + 1})
                snapshot_json = stored.model_dump_json()
                self._conn.execute(
                    """
                    INSERT INTO policy_snapshots (
                        organization_id, domain, snapshot_id, version,
                        snapshot_json, snapshot_hash, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        ctx.organization_id,
                        ctx.domain,
                        stored.snapshot_id,
                        stored.version,
                        snapshot_json,
                        compute_hash(snapshot_json),
                        stored.created_at,
                    ),
                )
            return stored
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert_snapshot",
                underlying_error=str(e),
            ) from e

    def get_latest_snapshot(self, ctx: IsolationContext) -> PolicySnapshot | None:
        """Get the highest-version snapshot in a boundary, or None."""
        validate_isolation_context(ctx)
        try:
            row = self._conn.execute(
                """
                SELECT snapshot_json FROM policy_snapshots
                WHERE organization_id = ? AND domain = ?
                ORDER BY version DESC
                LIMIT 1
                """,
                (ctx.organization_id, ctx.domain),
            ).fetchone()
            return PolicySnapshot.model_validate_json(row["snapshot_json"]) if row else None
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_latest_snapshot",
                underlying_error=str(e),
            ) from e

    def list_latest_snapshots_unscoped(self) -> list[PolicySnapshot]:
        """
        Latest snapshot of every boundary.

        Bypasses isolation; reserved for startup diagnostics.
        """
        try:
            rows = self._conn.execute(
                """
                SELECT p.snapshot_json FROM policy_snapshots p
                JOIN (
                    SELECT organization_id, domain, MAX(version) AS version
                    FROM policy_snapshots
                    GROUP BY organization_id, domain
                ) latest
                  ON latest.organization_id = p.organization_id
                 AND latest.domain = p.domain
                 AND latest.version = p.version
                ORDER BY p.organization_id, p.domain
                """
            ).fetchall()
            return [PolicySnapshot.model_validate_json(row["snapshot_json"]) for row in rows]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_latest_snapshots_unscoped",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Scope Operations
    # =========================================================================

    def resolve_scope_id(self, scope: Scope, ctx: IsolationContext) -> str:
        """
        Get the scope id for a decision scope, creating it on first use.

        Returns:
            A stable scope id for identical scopes within the boundary
        """
        _check_boundary(ctx, scope.organization_id or ctx.organization_id, scope.domain, "Scope")
        scope_json = scope.model_dump_json()
        scope_key = compute_hash(scope.model_dump())
        try:
            row = self._conn.execute(
                """
                SELECT scope_id FROM scopes
                WHERE organization_id = ? AND domain = ? AND scope_key = ?
                """,
                (ctx.organization_id, ctx.domain, scope_key),
            ).fetchone()
            if row:
                return row["scope_id"]

            scope_id = generate_id()
            self._conn.execute(
                """
                INSERT INTO scopes (scope_id, organization_id, domain, scope_key, scope_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (scope_id, ctx.organization_id, ctx.domain, scope_key, scope_json, now_iso()),
            )
            self._conn.commit()
            return scope_id
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="resolve_scope_id",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Decision Operations
    # =========================================================================

    def insert_decision_event(self, decision: DecisionEvent, ctx: IsolationContext) -> None:
        """
        Store a decision as evaluated.

        Raises:
            StorageWriteError: If the decision_id already exists in the boundary
        """
        _check_boundary(
            ctx, decision.organization_id, decision.domain, f"Decision {decision.decision_id!r}"
        )
        try:
            self._conn.execute(
                """
                INSERT INTO decision_events (
                    organization_id, domain, decision_id, intent, stage, actor, target,
                    spec_id, spec_version, timestamp, decision_json, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ctx.organization_id,
                    ctx.domain,
                    decision.decision_id,
                    decision.intent,
                    decision.stage.value,
                    decision.actor,
                    decision.target,
                    decision.spec_id,
                    decision.spec_version,
                    decision.timestamp,
                    decision.model_dump_json(),
                    now_iso(),
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert_decision_event",
                underlying_error=str(e),
            ) from e

    def get_decision_event(self, decision_id: str, ctx: IsolationContext) -> DecisionEvent | None:
        """Get a decision by id within a boundary, or None."""
        validate_isolation_context(ctx)
        try:
            row = self._conn.execute(
                """
                SELECT decision_json FROM decision_events
                WHERE organization_id = ? AND domain = ? AND decision_id = ?
                """,
                (ctx.organization_id, ctx.domain, decision_id),
            ).fetchone()
            return DecisionEvent.model_validate_json(row["decision_json"]) if row else None
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_decision_event",
                underlying_error=str(e),
            ) from e

    def list_decision_events(self, ctx: IsolationContext, limit: int = 100) -> list[DecisionEvent]:
        """List decisions in a boundary, most recent first."""
        validate_isolation_context(ctx)
        try:
            rows = self._conn.execute(
                """
                SELECT decision_json FROM decision_events
                WHERE organization_id = ? AND domain = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
                """,
                (ctx.organization_id, ctx.domain, limit),
            ).fetchall()
            return [DecisionEvent.model_validate_json(row["decision_json"]) for row in rows]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_decision_events",
                underlying_error=str(e),
            ) from e

    def list_decisions_with_verdicts(
        self,
        ctx: IsolationContext,
        verdict: Verdict | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DecisionRecord]:
        """
        List decisions with their verdicts, most recent first.

        Args:
            ctx: Isolation boundary
            verdict: Only decisions that received this verdict
            start: Only decisions at or after this timestamp
            end: Only decisions at or before this timestamp
            limit: Maximum number of rows
            offset: Rows to skip
        """
        validate_isolation_context(ctx)
        clauses = ["d.organization_id = ?", "d.domain = ?"]
        params: list[Any] = [ctx.organization_id, ctx.domain]
        if verdict is not None:
            clauses.append("v.verdict = ?")
            params.append(verdict.value)
        if start is not None:
            clauses.append("d.timestamp >= ?")
            params.append(start)
        if end is not None:
            clauses.append("d.timestamp <= ?")
            params.append(end)
        params.extend([limit, offset])

        try:
            rows = self._conn.execute(
                f"""
                SELECT d.decision_json, v.*
                FROM decision_events d
                LEFT JOIN verdict_events v
                  ON v.organization_id = d.organization_id
                 AND v.domain = d.domain
                 AND v.decision_id = d.decision_id
                WHERE {' AND '.join(clauses)}
                ORDER BY d.timestamp DESC, d.rowid DESC
                LIMIT ? OFFSET ?
                """,
                params,
            ).fetchall()
            return [
                DecisionRecord(
                    decision=DecisionEvent.model_validate_json(row["decision_json"]),
                    verdict=self._row_to_verdict(row) if row["verdict_id"] else None,
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_decisions_with_verdicts",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Verdict Operations
    # =========================================================================

    def insert_verdict_event(self, event: VerdictEvent, ctx: IsolationContext) -> None:
        """Store a verdict for a decision already stored in the boundary."""
        _check_boundary(ctx, ctx.organization_id, event.domain, f"Verdict {event.verdict_id!r}")
        try:
            self._conn.execute(
                """
                INSERT INTO verdict_events (
                    verdict_id, organization_id, domain, decision_id, snapshot_id,
                    spec_id, spec_version, scope_id, verdict, matched_policy_ids_json,
                    owning_team, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.verdict_id,
                    ctx.organization_id,
                    ctx.domain,
                    event.decision_id,
                    event.snapshot_id,
                    event.spec_id,
                    event.spec_version,
                    event.scope_id,
                    event.verdict.value,
                    json.dumps(event.matched_policy_ids),
                    event.owning_team,
                    event.timestamp,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert_verdict_event",
                underlying_error=str(e),
            ) from e

    @staticmethod
    def _row_to_verdict(row: sqlite3.Row) -> VerdictEvent:
        return VerdictEvent(
            verdict_id=row["verdict_id"],
            decision_id=row["decision_id"],
            snapshot_id=row["snapshot_id"],
            spec_id=row["spec_id"],
            spec_version=row["spec_version"],
            scope_id=row["scope_id"],
            domain=row["domain"],
            verdict=Verdict(row["verdict"]),
            matched_policy_ids=json.loads(row["matched_policy_ids_json"]),
            owning_team=row["owning_team"],
            timestamp=row["timestamp"],
        )

    def get_verdict_for_decision(self, decision_id: str, ctx: IsolationContext) -> VerdictEvent | None:
        """Get the verdict issued for a decision, or None."""
        validate_isolation_context(ctx)
        try:
            row = self._conn.execute(
                """
                SELECT * FROM verdict_events
                WHERE organization_id = ? AND domain = ? AND decision_id = ?
                ORDER BY timestamp DESC
                LIMIT 1
                """,
                (ctx.organization_id, ctx.domain, decision_id),
            ).fetchone()
            return self._row_to_verdict(row) if row else None
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get_verdict_for_decision",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Timeline Operations
    # =========================================================================

    def insert_timeline_entry(self, entry: TimelineEntry, ctx: IsolationContext) -> None:
        """Append an entry to a decision's audit timeline."""
        validate_isolation_context(ctx)
        if entry.domain is not None:
            _check_boundary(ctx, ctx.organization_id, entry.domain, f"Timeline entry {entry.entry_id!r}")
        try:
            self._conn.execute(
                """
                INSERT INTO timeline_entries (
                    entry_id, organization_id, domain, decision_id, intent, stage, actor,
                    target, summary, details_json, severity, source, authority_level,
                    spec_id, scope_id, owning_team, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.entry_id,
                    ctx.organization_id,
                    ctx.domain,
                    entry.decision_id,
                    entry.intent,
                    entry.stage.value,
                    entry.actor,
                    entry.target,
                    entry.summary,
                    json.dumps(entry.details, sort_keys=True, default=str),
                    entry.severity.value,
                    entry.source.value,
                    entry.authority_level.value,
                    entry.spec_id,
                    entry.scope_id,
                    entry.owning_team,
                    entry.timestamp,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert_timeline_entry",
                underlying_error=str(e),
            ) from e

    def list_timeline_entries(self, decision_id: str, ctx: IsolationContext) -> list[TimelineEntry]:
        """List a decision's timeline in the order it was written."""
        validate_isolation_context(ctx)
        try:
            rows = self._conn.execute(
                """
                SELECT * FROM timeline_entries
                WHERE organization_id = ? AND domain = ? AND decision_id = ?
                ORDER BY rowid
                """,
                (ctx.organization_id, ctx.domain, decision_id),
            ).fetchall()
            return [
                TimelineEntry(
                    entry_id=row["entry_id"],
                    decision_id=row["decision_id"],
                    intent=row["intent"],
                    stage=Stage(row["stage"]),
                    actor=row["actor"],
                    target=row["target"],
                    summary=row["summary"],
                    details=json.loads(row["details_json"]),
                    severity=row["severity"],
                    source=row["source"],
                    authority_level=row["authority_level"],
                    timestamp=row["timestamp"],
                    spec_id=row["spec_id"],
                    scope_id=row["scope_id"],
                    domain=row["domain"],
                    owning_team=row["owning_team"],
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_timeline_entries",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Attribution Failures
    # =========================================================================

    def record_attribution_failure(self, decision: DecisionEvent, reason: str) -> str:
        """
        Record a decision that could not be attributed to a boundary.

        Unscoped by necessity: the decision has no complete boundary.

        Returns:
            The generated failure_id
        """
        failure_id = generate_id()
        try:
            self._conn.execute(
                """
                INSERT INTO attribution_failures (
                    failure_id, decision_id, organization_id, domain, reason, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    failure_id,
                    decision.decision_id,
                    decision.organization_id,
                    decision.domain,
                    reason,
                    now_iso(),
                ),
            )
            self._conn.commit()
            return failure_id
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="record_attribution_failure",
                underlying_error=str(e),
            ) from e

    def list_attribution_failures_unscoped(self, limit: int = 100) -> list[AttributionFailure]:
        """Most recent attribution failures. Bypasses isolation; diagnostics only."""
        try:
            rows = self._conn.execute(
                """
                SELECT * FROM attribution_failures
                ORDER BY recorded_at DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [
                AttributionFailure(
                    failure_id=row["failure_id"],
                    decision_id=row["decision_id"],
                    organization_id=row["organization_id"],
                    domain=row["domain"],
                    reason=row["reason"],
                    recorded_at=row["recorded_at"],
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="list_attribution_failures_unscoped",
                underlying_error=str(e),
            ) from e
