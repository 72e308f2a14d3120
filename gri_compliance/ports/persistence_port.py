"""
ports/persistence_port.py
──────────────────────────────────────────────────────────────────────────────
Abstract interface for the durable decision / audit sink.

Persistence is optional: with PERSISTENCE_PROVIDER=none the core runs fully
in memory.  When wired, ClassificationSession calls the port only after the
engine and ledger have returned, so the core itself never blocks on I/O.

Decisions and audit entries are insert-only; snapshots of the working
context are upserted by classification id.

Current implementation: PostgresPersistenceAdapter (psycopg2)
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from gri_compliance.domain.models import AuditEntry, ClassificationContext, GRIDecision


@runtime_checkable
class PersistencePort(Protocol):
    """Contract for storing decisions, audit entries and context snapshots."""

    def append_decision(self, classification_id: str, decision: GRIDecision) -> None:
        """Insert one decision.  Never updates an existing row.

        Raises:
            PersistenceError: On connection or write failure.
        """
        ...

    def append_audit_entry(self, entry: AuditEntry) -> None:
        """Insert one audit entry.  Never updates an existing row.

        Raises:
            PersistenceError: On connection or write failure.
        """
        ...

    def save_snapshot(self, context: ClassificationContext) -> None:
        """Store the latest working context for its classification id.

        Raises:
            PersistenceError: On connection or write failure.
        """
        ...

    def load_snapshot(self, classification_id: str) -> Optional[ClassificationContext]:
        """Load the latest stored context, or None if there is none.

        Raises:
            PersistenceError: On connection or read failure.
        """
        ...
