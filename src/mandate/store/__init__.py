"""
Storage module for Mandate.

This module provides SQLite-based persistence for specs, policy snapshots,
decisions, verdicts and their audit timeline.

Design principles:
    - Append-only: Historical data is never modified
    - Isolated: Every query is filtered by (organization_id, domain)
    - Atomic: Transactions ensure consistency
    - Self-contained: Single .db file holds the whole audit trail
"""

from mandate.store.db import (
    AttributionFailure,
    DecisionRecord,
    MandateDB,
    compute_hash,
    generate_id,
)

__all__ = [
    "AttributionFailure",
    "DecisionRecord",
    "MandateDB",
    "compute_hash",
    "generate_id",
]
