"""
adapters/postgres_persistence.py
──────────────────────────────────────────────────────────────────────────────
Implements PersistencePort using psycopg2.

Database layout:
  Table : gri_decisions            (insert-only)
  Cols  : id (serial PK), classification_id, rule_id, criterion_id, question,
          answer jsonb, reasoning, confidence, legal_basis jsonb,
          metadata jsonb, decided_at timestamptz, hash
  Table : gri_audit_entries        (insert-only)
  Cols  : id (PK), classification_id, action, actor, details jsonb,
          created_at timestamptz, hash
  Table : classification_snapshots (upsert by classification_id)
  Cols  : classification_id (PK), payload jsonb, updated_at timestamptz

The adapter issues INSERT for decisions and audit entries and never UPDATE
or DELETE on them; a duplicate audit id is ignored (ON CONFLICT DO NOTHING)
so replaying a session cannot rewrite history.

Connection management matches PostgresReferenceAdapter: one lazy
connection, autocommit, one reconnect on OperationalError.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import psycopg2
import psycopg2.extras

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import PersistenceError
from gri_compliance.domain.models import AuditEntry, ClassificationContext, GRIDecision

logger = logging.getLogger(__name__)

_INSERT_DECISION = """
    INSERT INTO gri_decisions
           (classification_id, rule_id, criterion_id, question, answer,
            reasoning, confidence, legal_basis, metadata, decided_at, hash)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""

_INSERT_AUDIT = """
    INSERT INTO gri_audit_entries
           (id, classification_id, action, actor, details, created_at, hash)
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    ON CONFLICT (id) DO NOTHING
"""

_UPSERT_SNAPSHOT = """
    INSERT INTO classification_snapshots (classification_id, payload, updated_at)
    VALUES (%s, %s, now())
    ON CONFLICT (classification_id)
    DO UPDATE SET payload = EXCLUDED.payload, updated_at = EXCLUDED.updated_at
"""

_SELECT_SNAPSHOT = """
    SELECT payload
    FROM   classification_snapshots
    WHERE  classification_id = %s
"""


class PostgresPersistenceAdapter:
    """psycopg2 implementation of PersistencePort.

    Injected into ClassificationSession via services/container.py.
    """

    def __init__(self, settings: Settings) -> None:
        self._dsn = settings.db_dsn
        self._conn: Any = None
        logger.debug("PostgresPersistenceAdapter ready | dsn=%s", self._dsn)

    # ── PersistencePort implementation ─────────────────────────────────────

    def append_decision(self, classification_id: str, decision: GRIDecision) -> None:
        data = decision.model_dump(mode="json")
        params = (
            classification_id,
            decision.rule_id,
            decision.criterion_id,
            decision.question,
            psycopg2.extras.Json(data["answer"]),
            decision.reasoning,
            decision.confidence,
            psycopg2.extras.Json(data["legal_basis"]),
            psycopg2.extras.Json(data["metadata"]),
            decision.timestamp,
            decision.hash,
        )
        self._write("append_decision", _INSERT_DECISION, params)

    def append_audit_entry(self, entry: AuditEntry) -> None:
        data = entry.model_dump(mode="json")
        params = (
            entry.id,
            entry.classification_id,
            entry.action,
            entry.actor,
            psycopg2.extras.Json(data["details"]),
            entry.timestamp,
            entry.hash,
        )
        self._write("append_audit_entry", _INSERT_AUDIT, params)

    def save_snapshot(self, context: ClassificationContext) -> None:
        params = (
            context.classification_id,
            psycopg2.extras.Json(context.model_dump(mode="json")),
        )
        self._write("save_snapshot", _UPSERT_SNAPSHOT, params)

    def load_snapshot(self, classification_id: str) -> Optional[ClassificationContext]:
        try:
            rows = self._execute(_SELECT_SNAPSHOT, (classification_id,), fetch=True)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"load_snapshot failed: {exc}") from exc
        if not rows:
            return None
        return ClassificationContext.model_validate(rows[0]["payload"])

    # ── Connection helpers ─────────────────────────────────────────────────

    def _write(self, operation: str, sql: str, params: tuple) -> None:
        try:
            self._execute(sql, params)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    def _get_conn(self) -> Any:
        """Return an open connection, creating or reusing one."""
        if self._conn is None or self._conn.closed:
            self._conn = self._new_conn()
        return self._conn

    def _new_conn(self) -> Any:
        try:
            conn = psycopg2.connect(self._dsn)
            conn.autocommit = True
            logger.debug("PostgresPersistenceAdapter: new connection opened")
            return conn
        except psycopg2.Error as exc:
            raise PersistenceError(f"Cannot connect to database: {exc}") from exc

    def _execute(self, sql: str, params: tuple, fetch: bool = False) -> list[dict]:
        """Execute a statement, with one auto-reconnect."""
        for attempt in (1, 2):
            conn = self._get_conn()
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(sql, params)
                    return list(cur.fetchall()) if fetch else []
            except psycopg2.OperationalError as exc:
                if attempt == 1:
                    logger.warning("DB OperationalError — reconnecting: %s", exc)
                    self._conn = None
                else:
                    raise PersistenceError(f"DB write failed after reconnect: {exc}") from exc
        return []  # unreachable

    def close(self) -> None:
        """Explicitly close the connection (optional — GC handles it otherwise)."""
        if self._conn and not self._conn.closed:
            self._conn.close()
            logger.debug("PostgresPersistenceAdapter: connection closed")
