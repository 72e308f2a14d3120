"""
tests/conftest.py
──────────────────────────────────────────────────────────────────────────────
Shared pytest fixtures and mock adapter implementations.

Mock adapters implement the Port Protocols via structural subtyping — they do
NOT inherit from any base class.  pytest uses them to test service logic
without any real database connection.

Fixture hierarchy:
  settings             → Settings with explicit test values
  mock_reference       → implements ReferenceDataPort (in-memory schedule)
  mock_persistence     → implements PersistencePort (in-memory lists)
  failing_persistence  → PersistencePort whose writes always raise
  engine               → ClassificationEngine at pre_classification
  ledger               → DecisionLedger for "cls-test"
  validator            → ComplianceValidator wired with mock_reference
  analyzer             → EssentialCharacterAnalyzer
  reporter             → ReportGenerator wired with validator
  session              → ClassificationSession wired with both mocks
  registry             → SessionRegistry wired with both mocks
"""
from __future__ import annotations

from typing import Optional

import pytest

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import PersistenceError
from gri_compliance.domain.models import (
    AuditEntry,
    ClassificationContext,
    GRIDecision,
    LegalNote,
    Material,
    MaterialRole,
    NoteType,
    TariffCode,
    TariffCodeMatch,
)
from gri_compliance.services.compliance import ComplianceValidator
from gri_compliance.services.engine import ClassificationEngine
from gri_compliance.services.essential_character import EssentialCharacterAnalyzer
from gri_compliance.services.ledger import DecisionLedger
from gri_compliance.services.report import ReportGenerator
from gri_compliance.services.session import ClassificationSession, SessionRegistry

PRODUCT_DESCRIPTION = (
    "Portable laptop computer with aluminium housing, 14 inch display, "
    "keyboard and rechargeable battery, weighing 1.4 kg"
)


# ── Settings fixture ───────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def settings() -> Settings:
    """Return a Settings instance with sane test defaults."""
    return Settings(
        reference_provider="none",
        persistence_provider="none",
        db_dsn="dbname=gri_db",
        expert_review_threshold=0.7,
        min_reasoning_length=10,
        material_tolerance=0.01,
        precedent_limit=3,
        heading_search_limit=50,
        report_version="1.0.0",
        report_validity_days=90,
        ledger_version="1.0.0",
    )


# ── In-memory tariff schedule ──────────────────────────────────────────────

_SCHEDULE: dict[str, TariffCode] = {
    node.code: node
    for node in (
        TariffCode(
            code="84",
            description="Nuclear reactors, boilers, machinery and mechanical appliances",
            level="chapter",
            notes=["This chapter does not cover millstones or grindstones"],
        ),
        TariffCode(
            code="8471",
            description="Automatic data processing machines and units thereof",
            level="heading",
            parent_code="84",
        ),
        TariffCode(
            code="8471.30",
            description="Portable automatic data processing machines, weighing not more than 10 kg",
            level="subheading",
            parent_code="8471",
        ),
        TariffCode(
            code="8471.30.00",
            description="Portable automatic data processing machines, laptop and notebook computers",
            level="tariff_item",
            parent_code="8471.30",
        ),
        TariffCode(
            code="61",
            description="Articles of apparel and clothing accessories, knitted or crocheted",
            level="chapter",
            exclusions=["Worn clothing of heading 6309"],
        ),
        TariffCode(
            code="6109",
            description="T-shirts, singlets and other vests, knitted or crocheted",
            level="heading",
            parent_code="61",
        ),
        TariffCode(
            code="62",
            description="Articles of apparel and clothing accessories, not knitted or crocheted",
            level="chapter",
            exclusions=["Knitted shirts are classified in chapter 61"],
        ),
        TariffCode(
            code="6205",
            description="Men's or boys' shirts",
            level="heading",
            parent_code="62",
        ),
    )
}


class MockReferenceAdapter:
    """In-memory fake tariff schedule."""

    def get_by_code(self, code: str) -> Optional[TariffCode]:
        return _SCHEDULE.get(code)

    def get_hierarchy(self, code: str) -> list[TariffCode]:
        chain: list[TariffCode] = []
        current = _SCHEDULE.get(code)
        while current is not None:
            chain.insert(0, current)
            current = _SCHEDULE.get(current.parent_code or "")
        return chain

    def get_applicable_notes(self, code: str) -> list[LegalNote]:
        notes: list[LegalNote] = []
        for node in self.get_hierarchy(code):
            source = f"{node.level} {node.code}"
            notes += [LegalNote(source=source, text=t, type=NoteType.GENERAL) for t in node.notes]
            notes += [
                LegalNote(source=source, text=t, type=NoteType.EXCLUSION) for t in node.exclusions
            ]
        return notes

    def search_by_keyword(
        self,
        text: str,
        exclude_exclusions: bool = True,
        limit: int = 50,
    ) -> list[TariffCodeMatch]:
        keyword = text.lower()
        matches: list[TariffCodeMatch] = []
        for code in sorted(_SCHEDULE):
            node = _SCHEDULE[code]
            if keyword not in node.description.lower():
                continue
            notes = self.get_applicable_notes(code)
            if exclude_exclusions and any(
                n.type is NoteType.EXCLUSION and keyword in n.text.lower() for n in notes
            ):
                continue
            matches.append(TariffCodeMatch(
                code=node, hierarchy=self.get_hierarchy(code), notes=notes,
            ))
        return matches[:limit]


class MockPersistenceAdapter:
    """Records every write in memory; snapshots keyed by classification id."""

    def __init__(self) -> None:
        self.decisions: list[tuple[str, GRIDecision]] = []
        self.audit_entries: list[AuditEntry] = []
        self.snapshots: dict[str, ClassificationContext] = {}

    def append_decision(self, classification_id: str, decision: GRIDecision) -> None:
        self.decisions.append((classification_id, decision))

    def append_audit_entry(self, entry: AuditEntry) -> None:
        self.audit_entries.append(entry)

    def save_snapshot(self, context: ClassificationContext) -> None:
        self.snapshots[context.classification_id] = context.model_copy(deep=True)

    def load_snapshot(self, classification_id: str) -> Optional[ClassificationContext]:
        snapshot = self.snapshots.get(classification_id)
        return snapshot.model_copy(deep=True) if snapshot is not None else None


class FailingPersistenceAdapter:
    """Simulates a database outage on every call."""

    def append_decision(self, classification_id: str, decision: GRIDecision) -> None:
        raise PersistenceError("append_decision failed: connection refused")

    def append_audit_entry(self, entry: AuditEntry) -> None:
        raise PersistenceError("append_audit_entry failed: connection refused")

    def save_snapshot(self, context: ClassificationContext) -> None:
        raise PersistenceError("save_snapshot failed: connection refused")

    def load_snapshot(self, classification_id: str) -> Optional[ClassificationContext]:
        raise PersistenceError("load_snapshot failed: connection refused")


# ── pytest fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def product_description() -> str:
    return PRODUCT_DESCRIPTION


@pytest.fixture
def housing_materials() -> list[Material]:
    """Steel / plastic split used across essential-character tests."""
    return [
        Material(name="Steel", percentage=60, role=MaterialRole.FUNCTIONAL),
        Material(name="Plastic", percentage=40, role=MaterialRole.DECORATIVE),
    ]


@pytest.fixture
def mock_reference():
    return MockReferenceAdapter()


@pytest.fixture
def mock_persistence():
    return MockPersistenceAdapter()


@pytest.fixture
def failing_persistence():
    return FailingPersistenceAdapter()


@pytest.fixture
def engine(settings, product_description):
    return ClassificationEngine.start("cls-test", product_description, settings)


@pytest.fixture
def ledger(settings):
    return DecisionLedger("cls-test", settings)


@pytest.fixture
def validator(settings, mock_reference):
    return ComplianceValidator(settings, reference=mock_reference)


@pytest.fixture
def analyzer(settings):
    return EssentialCharacterAnalyzer(settings)


@pytest.fixture
def reporter(settings, validator):
    return ReportGenerator(settings, validator)


@pytest.fixture
def session(settings, product_description, mock_reference, mock_persistence):
    context = ClassificationContext(
        classification_id="cls-session",
        product_description=product_description,
        technical_specifications={"display": "14 inch", "weight": "1.4 kg"},
    )
    return ClassificationSession(
        context,
        settings,
        reference=mock_reference,
        persistence=mock_persistence,
    )


@pytest.fixture
def registry(settings, mock_reference, mock_persistence):
    return SessionRegistry(settings, reference=mock_reference, persistence=mock_persistence)
