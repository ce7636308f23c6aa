"""
Mandate - Deterministic admission and governance for AI agent decisions.

Mandate sits between an agent deciding to act and the action happening.
It provides:
- Policy evaluation with a closed verdict set (ALLOW, PAUSE, BLOCK, OBSERVE)
- Signal derivation from unstructured agent output (the Observe phase)
- Strict (organization, domain) isolation for every read and write
- An append-only audit timeline in SQLite

Example usage:
    $ mandate spec-add expense-spec.yaml
    $ mandate snapshot-add finance-policies.yaml
    $ mandate submit decision.yaml --text "Approve $2500 for the offsite"
"""

__version__ = "0.1.0"
__author__ = "Mandate Contributors"

__all__ = [
    "__version__",
    "__author__",
]
