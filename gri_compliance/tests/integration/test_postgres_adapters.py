"""
tests/integration/test_postgres_adapters.py
──────────────────────────────────────────────────────────────────────────────
Integration tests for PostgresReferenceAdapter and PostgresPersistenceAdapter.

Requires a running PostgreSQL instance reachable through DB_DSN.  The module
fixture creates the tables if they are missing and seeds a few tariff codes.
These tests are marked @pytest.mark.integration and are SKIPPED in the
standard test run.

Run with:
  pytest -m integration gri_compliance/tests/integration/test_postgres_adapters.py -v

Environment:
  DB_DSN defaults to "dbname=gri_db"
"""
from __future__ import annotations

import json
import uuid

import pytest

from gri_compliance.domain.models import ClassificationContext, GRIDecision, NoteType

pytestmark = pytest.mark.integration

_SCHEMA = """
CREATE TABLE IF NOT EXISTS hs_codes (
    code        text PRIMARY KEY,
    description text NOT NULL,
    level       text NOT NULL,
    parent_code text,
    notes       jsonb DEFAULT '[]',
    exclusions  jsonb DEFAULT '[]'
);
CREATE TABLE IF NOT EXISTS gri_decisions (
    id                serial PRIMARY KEY,
    classification_id text NOT NULL,
    rule_id           text NOT NULL,
    criterion_id      text NOT NULL,
    question          text,
    answer            jsonb,
    reasoning         text NOT NULL,
    confidence        double precision NOT NULL,
    legal_basis       jsonb,
    metadata          jsonb,
    decided_at        timestamptz NOT NULL,
    hash              text NOT NULL
);
CREATE TABLE IF NOT EXISTS gri_audit_entries (
    id                text PRIMARY KEY,
    classification_id text NOT NULL,
    action            text NOT NULL,
    actor             text NOT NULL,
    details           jsonb,
    created_at        timestamptz NOT NULL,
    hash              text NOT NULL
);
CREATE TABLE IF NOT EXISTS classification_snapshots (
    classification_id text PRIMARY KEY,
    payload           jsonb NOT NULL,
    updated_at        timestamptz NOT NULL
);
"""

_SEED = [
    ("84", "Nuclear reactors, boilers, machinery and mechanical appliances", "chapter", None,
     [], ["Electrical machinery of chapter 85"]),
    ("8471", "Automatic data processing machines and units thereof", "heading", "84", [], []),
    ("8471.30", "Portable automatic data processing machines", "subheading", "8471",
     ["Weighing not more than 10 kg"], []),
    ("8471.41", "Other, comprising in the same housing at least 100 units", "subheading", "8471",
     [], []),
    ("8471.49", "Other, presented as systems with 100% of units", "subheading", "8471", [], []),
]


@pytest.fixture(scope="module")
def seeded_dsn():
    """Create the tables and seed tariff codes; yields the DSN."""
    import psycopg2

    from gri_compliance.config.settings import get_settings
    dsn = get_settings().db_dsn
    conn = psycopg2.connect(dsn)
    conn.autocommit = True
    with conn.cursor() as cur:
        cur.execute(_SCHEMA)
        for code, desc, level, parent, notes, exclusions in _SEED:
            cur.execute(
                """
                INSERT INTO hs_codes (code, description, level, parent_code, notes, exclusions)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (code) DO NOTHING
                """,
                (code, desc, level, parent, json.dumps(notes), json.dumps(exclusions)),
            )
    conn.close()
    return dsn


@pytest.fixture(scope="module")
def reference(seeded_dsn):
    from gri_compliance.adapters.postgres_reference import PostgresReferenceAdapter
    from gri_compliance.config.settings import get_settings
    adapter = PostgresReferenceAdapter(get_settings())
    yield adapter
    adapter.close()


@pytest.fixture(scope="module")
def persistence(seeded_dsn):
    from gri_compliance.adapters.postgres_persistence import PostgresPersistenceAdapter
    from gri_compliance.config.settings import get_settings
    adapter = PostgresPersistenceAdapter(get_settings())
    yield adapter
    adapter.close()


class TestReferenceLookups:
    def test_get_by_code(self, reference):
        node = reference.get_by_code("8471")
        assert node is not None
        assert node.level == "heading"
        assert node.parent_code == "84"

    def test_unknown_code_is_none(self, reference):
        assert reference.get_by_code("0000.00.00") is None

    def test_hierarchy_root_first(self, reference):
        assert [n.code for n in reference.get_hierarchy("8471.30")] == ["84", "8471", "8471.30"]

    def test_notes_inherited(self, reference):
        notes = reference.get_applicable_notes("8471.30")
        assert notes[0].type is NoteType.EXCLUSION
        assert notes[0].source == "chapter 84"
        assert notes[-1].text == "Weighing not more than 10 kg"

    def test_keyword_search(self, reference):
        matches = reference.search_by_keyword("portable", limit=5)
        assert [m.code.code for m in matches] == ["8471.30"]
        assert [n.code for n in matches[0].hierarchy] == ["84", "8471", "8471.30"]

    def test_wildcards_in_keyword_are_literal(self, reference):
        assert [m.code.code for m in reference.search_by_keyword("100%")] == ["8471.49"]
        assert reference.search_by_keyword("at_least") == []

    def test_exclusion_gate(self, reference):
        assert reference.search_by_keyword("machinery") == []
        ungated = reference.search_by_keyword("machinery", exclude_exclusions=False)
        assert [m.code.code for m in ungated] == ["84"]


class TestPersistence:
    def test_snapshot_round_trip(self, persistence):
        cid = f"it-{uuid.uuid4().hex[:8]}"
        context = ClassificationContext(
            classification_id=cid,
            product_description="Portable laptop computer",
            current_rule_id="gri_1",
            decisions=[GRIDecision(
                rule_id="pre_classification",
                criterion_id="physical_characteristics",
                answer=["Dimensions/weight"],
                reasoning="Weighs 1.4 kg with a 14 inch display",
                confidence=0.9,
                hash="b" * 64,
            )],
        )
        persistence.save_snapshot(context)
        context.current_rule_id = "gri_5a"
        persistence.save_snapshot(context)
        loaded = persistence.load_snapshot(cid)
        assert loaded is not None
        assert loaded.current_rule_id == "gri_5a"
        assert loaded.decisions[0].hash == "b" * 64

    def test_missing_snapshot(self, persistence):
        assert persistence.load_snapshot("does-not-exist") is None

    def test_session_writes_through(self, persistence, settings):
        from gri_compliance.services.session import ClassificationSession
        cid = f"it-{uuid.uuid4().hex[:8]}"
        session = ClassificationSession(
            ClassificationContext(classification_id=cid, product_description="Laptop computer"),
            settings,
            persistence=persistence,
        )
        session.record_decision(
            rule_id="gri_1",
            criterion_id="heading_match",
            answer="Yes - Single heading",
            reasoning="Heading 8471 covers portable computers",
            confidence=0.9,
        )
        session.advance()
        assert persistence.load_snapshot(cid).current_rule_id == session.engine.current_rule_id

    def test_duplicate_audit_entry_ignored(self, persistence, ledger):
        entry = ledger.get_audit_trail()[0]
        persistence.append_audit_entry(entry)
        persistence.append_audit_entry(entry)
