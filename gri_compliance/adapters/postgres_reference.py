"""
adapters/postgres_reference.py
──────────────────────────────────────────────────────────────────────────────
Implements ReferenceDataPort using psycopg2.

Database layout:
  Table : hs_codes
  Cols  : code (PK, dotted), description, level, parent_code,
          notes (JSON array of text), exclusions (JSON array of text)
  Index : btree (parent_code), GIN trigram or lower(description) for search

Four methods match ReferenceDataPort:
  get_by_code          → single SELECT by primary key (cached)
  get_hierarchy        → walk parent_code up to the chapter (cached)
  get_applicable_notes → notes + exclusions of every level, root first
  search_by_keyword    → ILIKE over description, optional exclusion gate

The schedule is read-only for the lifetime of the process, so code and
hierarchy lookups are cached in memory.  The code cache is bounded and
evicts the oldest entry first.

Connection management:
  - A single connection is opened lazily and reused.
  - On OperationalError the connection is reset and one retry is attempted.
  - For multi-threaded servers: replace with a psycopg2 connection pool
    (e.g. psycopg2.pool.ThreadedConnectionPool) — change only this file.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import psycopg2
import psycopg2.extras

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import ReferenceDataError
from gri_compliance.domain.models import LegalNote, NoteType, TariffCode, TariffCodeMatch

logger = logging.getLogger(__name__)

_RECORD_COLS = (
    "code",
    "description",
    "level",
    "parent_code",
    "notes",
    "exclusions",
)
_SELECT_COLS = ", ".join(_RECORD_COLS)

_CACHE_LIMIT = 1000


def _json_list(raw: Any) -> list[str]:
    """Decode a notes/exclusions column (json/jsonb or JSON text)."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Unparseable note column (ignored): %r", raw[:80])
            return []
    return [str(item) for item in raw] if isinstance(raw, list) else []


def _like_pattern(text: str) -> str:
    """Substring ILIKE pattern with the LIKE wildcards in *text* escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _row_to_code(row: dict) -> TariffCode:
    return TariffCode(
        code=row["code"],
        description=row.get("description") or "",
        level=row.get("level") or "",
        parent_code=row.get("parent_code") or None,
        notes=_json_list(row.get("notes")),
        exclusions=_json_list(row.get("exclusions")),
    )


class PostgresReferenceAdapter:
    """psycopg2 implementation of ReferenceDataPort.

    Injected into TariffReferenceService and ComplianceValidator via
    services/container.py.
    """

    def __init__(self, settings: Settings) -> None:
        self._dsn = settings.db_dsn
        self._conn: Any = None
        self._codes: dict[str, TariffCode] = {}
        self._hierarchies: dict[str, list[TariffCode]] = {}
        logger.debug("PostgresReferenceAdapter ready | dsn=%s", self._dsn)

    # ── ReferenceDataPort implementation ───────────────────────────────────

    def get_by_code(self, code: str) -> Optional[TariffCode]:
        cached = self._codes.get(code)
        if cached is not None:
            return cached
        sql = f"""
            SELECT {_SELECT_COLS}
            FROM   hs_codes
            WHERE  code = %s
            LIMIT  1
        """
        try:
            rows = self._execute(sql, (code,))
        except ReferenceDataError:
            raise
        except Exception as exc:
            raise ReferenceDataError(f"get_by_code failed: {exc}") from exc
        if not rows:
            return None
        tariff_code = _row_to_code(rows[0])
        self._remember(tariff_code)
        return tariff_code

    def get_hierarchy(self, code: str) -> list[TariffCode]:
        """Walk parent links up to the root.  Root first, *code* last."""
        if code in self._hierarchies:
            return list(self._hierarchies[code])
        chain: list[TariffCode] = []
        seen: set[str] = set()
        current: Optional[str] = code
        while current and current not in seen:
            seen.add(current)
            node = self.get_by_code(current)
            if node is None:
                break
            chain.insert(0, node)
            current = node.parent_code
        self._hierarchies[code] = chain
        return list(chain)

    def get_applicable_notes(self, code: str) -> list[LegalNote]:
        notes: list[LegalNote] = []
        for node in self.get_hierarchy(code):
            source = f"{node.level} {node.code}"
            notes.extend(LegalNote(source=source, text=t, type=NoteType.GENERAL) for t in node.notes)
            notes.extend(
                LegalNote(source=source, text=t, type=NoteType.EXCLUSION) for t in node.exclusions
            )
        return notes

    def search_by_keyword(
        self,
        text: str,
        exclude_exclusions: bool = True,
        limit: int = 50,
    ) -> list[TariffCodeMatch]:
        """ILIKE search over descriptions, ordered by code.

        With *exclude_exclusions*, codes whose applicable exclusion notes
        mention *text* are dropped before *limit* is applied.
        """
        sql = f"""
            SELECT {_SELECT_COLS}
            FROM   hs_codes
            WHERE  description ILIKE %s ESCAPE '\\'
            ORDER  BY code
            LIMIT  %s
        """
        # Over-fetch when gating so excluded rows do not starve the result.
        fetch = limit * 2 if exclude_exclusions else limit
        try:
            rows = self._execute(sql, (_like_pattern(text), fetch))
        except ReferenceDataError:
            raise
        except Exception as exc:
            raise ReferenceDataError(f"search_by_keyword failed: {exc}") from exc

        keyword = text.lower()
        matches: list[TariffCodeMatch] = []
        for row in rows:
            node = _row_to_code(row)
            self._remember(node)
            notes = self.get_applicable_notes(node.code)
            if exclude_exclusions and any(
                n.type is NoteType.EXCLUSION and keyword in n.text.lower() for n in notes
            ):
                continue
            matches.append(TariffCodeMatch(
                code=node,
                hierarchy=self.get_hierarchy(node.code),
                notes=notes,
            ))
            if len(matches) >= limit:
                break
        logger.debug("search_by_keyword | text=%r matches=%d", text, len(matches))
        return matches

    # ── Cache helpers ──────────────────────────────────────────────────────

    def _remember(self, node: TariffCode) -> None:
        if node.code not in self._codes and len(self._codes) >= _CACHE_LIMIT:
            self._codes.pop(next(iter(self._codes)))
        self._codes[node.code] = node

    # ── Connection helpers ─────────────────────────────────────────────────

    def _get_conn(self) -> Any:
        """Return an open connection, creating or reusing one."""
        if self._conn is None or self._conn.closed:
            self._conn = self._new_conn()
        return self._conn

    def _new_conn(self) -> Any:
        try:
            conn = psycopg2.connect(self._dsn)
            conn.autocommit = True
            logger.debug("PostgresReferenceAdapter: new connection opened")
            return conn
        except psycopg2.Error as exc:
            raise ReferenceDataError(f"Cannot connect to database: {exc}") from exc

    def _execute(self, sql: str, params: tuple) -> list[dict]:
        """Execute a query and return rows as dicts, with one auto-reconnect."""
        for attempt in (1, 2):
            conn = self._get_conn()
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(sql, params)
                    return list(cur.fetchall())
            except psycopg2.OperationalError as exc:
                if attempt == 1:
                    logger.warning("DB OperationalError — reconnecting: %s", exc)
                    self._conn = None
                else:
                    raise ReferenceDataError(f"DB query failed after reconnect: {exc}") from exc
        return []  # unreachable

    def close(self) -> None:
        """Explicitly close the connection (optional — GC handles it otherwise)."""
        if self._conn and not self._conn.closed:
            self._conn.close()
            logger.debug("PostgresReferenceAdapter: connection closed")
