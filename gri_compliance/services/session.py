"""
services/session.py
──────────────────────────────────────────────────────────────────────────────
ClassificationSession: one engine, one ledger and one validator for a single
classification id, serialised behind a re-entrant lock.

This is the entry point for all interfaces (CLI, future API).  The session
keeps the engine and ledger in step:
  • every decision goes engine → ledger → persistence sink
  • every rule change is a StepRecord plus a ``rule_changed`` audit event
  • entering GRI 3(b), by advance() or jump_to(), runs the essential-character analysis
    when the context holds a usable material list

Persistence is called after the core has returned.  A PersistenceError is
logged and does not undo the in-memory state.

SessionRegistry hands out one RLock per classification id; its own dict is
guarded by a plain Lock held only for lookups, so distinct ids never contend.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import (
    AnalysisError,
    ConfigurationError,
    PersistenceError,
    SessionNotFoundError,
)
from gri_compliance.domain.hs_codes import is_valid_hs_code
from gri_compliance.domain.models import (
    AuditEntry,
    ClassificationContext,
    ClassificationRecord,
    ClassificationStatus,
    CompletionResult,
    ComplianceReport,
    DecisionInput,
    ExcludedHeading,
    GRIDecision,
    HSHeading,
    LegalRecord,
    LegalReport,
    Material,
    StepRecord,
    StepStatus,
)
from gri_compliance.domain.rules import GRIRule
from gri_compliance.ports.persistence_port import PersistencePort
from gri_compliance.ports.reference_data_port import ReferenceDataPort
from gri_compliance.services.compliance import ComplianceValidator
from gri_compliance.services.engine import ClassificationEngine
from gri_compliance.services.essential_character import (
    EssentialCharacterAnalyzer,
    validate_material_percentages,
)
from gri_compliance.services.ledger import SYSTEM_ACTOR, DecisionLedger
from gri_compliance.services.report import ReportGenerator
from gri_compliance.services.tariff_reference import TariffReferenceService

logger = logging.getLogger(__name__)

ESSENTIAL_CHARACTER_RULE = "gri_3b"


class ClassificationSession:
    """Serialised access to one classification.

    Args:
        context:     Working context (new, or restored from a snapshot).
        settings:    Shared application settings.
        reference:   Optional tariff reference port.
        persistence: Optional decision / audit sink.
        lock:        Per-id lock from SessionRegistry (a private RLock if omitted).
    """

    def __init__(
        self,
        context: ClassificationContext,
        settings: Settings,
        reference: Optional[ReferenceDataPort] = None,
        persistence: Optional[PersistencePort] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._lock = lock or threading.RLock()
        self._settings = settings
        self._persistence = persistence
        self._engine = ClassificationEngine(context, settings)
        self._ledger = DecisionLedger(context.classification_id, settings)
        self._validator = ComplianceValidator(settings, reference)
        self._analyzer = EssentialCharacterAnalyzer(settings)
        self._reporter = ReportGenerator(settings, self._validator)
        self._tariff = TariffReferenceService(reference, settings) if reference is not None else None
        self._record = ClassificationRecord(
            id=context.classification_id,
            product_description=context.product_description,
            created_at=context.created_at,
        )
        self._steps = [StepRecord(rule_id=context.current_rule_id)]

        # A restored context already carries decisions; mirror them in the ledger.
        for decision in context.decisions:
            self._ledger.log_decision(decision)
        self._persist_audit(self._ledger.get_audit_trail())
        logger.info(
            "Session opened | id=%s rule=%s restored_decisions=%d",
            context.classification_id,
            context.current_rule_id,
            len(context.decisions),
        )

    # ── Accessors ──────────────────────────────────────────────────────────

    @property
    def classification_id(self) -> str:
        return self._engine.classification_id

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def engine(self) -> ClassificationEngine:
        return self._engine

    @property
    def ledger(self) -> DecisionLedger:
        return self._ledger

    @property
    def validator(self) -> ComplianceValidator:
        return self._validator

    @property
    def steps(self) -> list[StepRecord]:
        with self._lock:
            return [s.model_copy() for s in self._steps]

    @property
    def classification(self) -> ClassificationRecord:
        with self._lock:
            return self._record.model_copy()

    # ── Decisions and movement ─────────────────────────────────────────────

    def record_decision(
        self,
        decision: DecisionInput | Mapping[str, Any] | None = None,
        actor: str = SYSTEM_ACTOR,
        **fields: Any,
    ) -> GRIDecision:
        """Record a decision on the engine and log it in the ledger."""
        with self._lock:
            recorded = self._engine.record_decision(decision, **fields)
            entry = self._ledger.log_decision(recorded, actor)
        self._persist_decision(recorded, entry)
        return recorded

    def advance(self) -> Optional[str]:
        """Determine the next rule and move to it, as one locked step.

        Returns:
            The new rule id, or None if no transition is eligible or the
            current rule is terminal (the session stays where it is).
        """
        with self._lock:
            target = self._engine.determine_next_step()
            if target is None:
                logger.info(
                    "No eligible transition | id=%s rule=%s",
                    self.classification_id,
                    self._engine.current_rule_id,
                )
                return None
            self._move(target)
            return target

    def jump_to(self, rule_id: str) -> GRIRule:
        """Move to any catalog rule; the compliance report audits the sequence.

        Raises:
            InvalidRuleReference: If *rule_id* is not in the catalog.
        """
        with self._lock:
            return self._move(rule_id)

    def set_materials(self, materials: list[Material]) -> None:
        with self._lock:
            self._engine.update_materials(materials)
            entry = self._ledger.log_audit_event("materials_updated", SYSTEM_ACTOR, {
                "materials": [m.model_dump(mode="json") for m in materials],
            })
        self._persist_audit([entry])

    def suggest_headings(
        self,
        keyword: str,
        limit: Optional[int] = None,
    ) -> tuple[list[HSHeading], list[ExcludedHeading]]:
        """Look up headings for *keyword* and store them on the context.

        Raises:
            ConfigurationError: If no reference-data provider is wired.
            ReferenceDataError: If the lookup fails.
        """
        if self._tariff is None:
            raise ConfigurationError(
                "No reference data provider configured (set REFERENCE_PROVIDER)"
            )
        suggested, excluded = self._tariff.suggest_headings(keyword, limit)
        with self._lock:
            self._engine.update_headings(suggested, excluded)
            entry = self._ledger.log_audit_event("headings_suggested", SYSTEM_ACTOR, {
                "keyword": keyword,
                "suggested": [h.code for h in suggested],
                "excluded": [h.code for h in excluded],
            })
        self._persist_audit([entry])
        return suggested, excluded

    # ── Outcomes ───────────────────────────────────────────────────────────

    def compliance_report(self) -> ComplianceReport:
        with self._lock:
            return self._validator.generate_compliance_report(self._engine.export_context())

    def complete(self, final_code: str, confidence: Optional[float] = None) -> CompletionResult:
        """Close the classification.  Never refuses: problems are flagged.

        Args:
            final_code: The determined HS code.
            confidence: Overall confidence (default: mean decision confidence).
        """
        with self._lock:
            if confidence is None:
                confidence = self._ledger.get_overall_confidence()
            compliance = self._validator.generate_compliance_report(self._engine.export_context())
            entry = self._ledger.complete_classification(final_code, confidence)
            integrity = self._ledger.verify_integrity()

            needs_review = (
                self._engine.needs_expert_review()
                or confidence < self._settings.expert_review_threshold
                or not compliance.compliant
                or not integrity
            )
            if not is_valid_hs_code(final_code):
                logger.warning("Completed with malformed HS code %r | id=%s",
                               final_code, self.classification_id)
                needs_review = True

            now = datetime.now(timezone.utc)
            self._close_current_step(now)
            self._record.final_hs_code = final_code
            self._record.confidence = confidence
            self._record.completed_at = now
            self._record.status = (
                ClassificationStatus.NEEDS_REVIEW if needs_review else ClassificationStatus.COMPLETED
            )
            result = CompletionResult(
                classification_id=self.classification_id,
                final_hs_code=final_code,
                confidence=confidence,
                needs_expert_review=needs_review,
                compliance=compliance,
                integrity_verified=integrity,
            )
            snapshot = self._engine.export_context()
        self._persist_audit([entry])
        self._persist_snapshot(snapshot)
        return result

    def build_report(self) -> LegalReport:
        with self._lock:
            report = self._reporter.generate_report(
                self._record.model_copy(),
                self._ledger.get_decisions(),
                [s.model_copy() for s in self._steps],
                self._engine.export_context(),
            )
            entry = self._ledger.log_audit_event("report_generated", SYSTEM_ACTOR, {
                "reportId": report.id,
                "reportHash": report.hash,
                "complianceScore": report.compliance_score,
            })
        self._persist_audit([entry])
        return report

    def export_legal_record(self) -> LegalRecord:
        with self._lock:
            return self._ledger.export_for_legal_record()

    # ── Internal helpers (caller holds the lock) ───────────────────────────

    def _move(self, rule_id: str) -> GRIRule:
        previous = self._engine.current_rule_id
        rule = self._engine.move_to_next_rule(rule_id)
        now = datetime.now(timezone.utc)
        self._close_current_step(now)
        self._steps.append(StepRecord(rule_id=rule.id, started_at=now))
        entry = self._ledger.log_audit_event("rule_changed", SYSTEM_ACTOR, {
            "from": previous,
            "to": rule.id,
        })
        self._persist_audit([entry])
        self._persist_snapshot(self._engine.export_context())
        if rule.id == ESSENTIAL_CHARACTER_RULE:
            self._run_essential_character()
        return rule

    def _close_current_step(self, when: datetime) -> None:
        current = self._steps[-1]
        if current.status is StepStatus.ACTIVE:
            current.status = StepStatus.COMPLETED
            current.completed_at = when

    def _run_essential_character(self) -> None:
        materials = self._engine.materials
        problems = validate_material_percentages(materials, self._settings.material_tolerance)
        if problems:
            logger.warning(
                "Essential character analysis skipped | id=%s reason=%s",
                self.classification_id,
                "; ".join(problems),
            )
            return
        try:
            recorded = self._engine.apply_essential_character(self._analyzer)
        except AnalysisError as exc:
            logger.warning("Essential character analysis skipped | id=%s reason=%s",
                           self.classification_id, exc)
            return
        entry = self._ledger.log_decision(recorded)
        self._persist_decision(recorded, entry)

    # ── Persistence ────────────────────────────────────────────────────────

    def _persist_decision(self, decision: GRIDecision, entry: AuditEntry) -> None:
        if self._persistence is None:
            return
        self._persist(self._persistence.append_decision, self.classification_id, decision)
        self._persist_audit([entry])

    def _persist_audit(self, entries: list[AuditEntry]) -> None:
        if self._persistence is None:
            return
        for entry in entries:
            self._persist(self._persistence.append_audit_entry, entry)

    def _persist_snapshot(self, context: ClassificationContext) -> None:
        if self._persistence is not None:
            self._persist(self._persistence.save_snapshot, context)

    def _persist(self, write: Callable[..., None], *args: Any) -> None:
        try:
            write(*args)
        except PersistenceError as exc:
            logger.error("Persistence failed | id=%s error=%s", self.classification_id, exc)


class SessionRegistry:
    """Opens and looks up sessions by classification id.

    Args:
        settings:    Shared application settings.
        reference:   Optional tariff reference port shared by all sessions.
        persistence: Optional sink shared by all sessions; when given,
                     open() restores the latest snapshot for a known id.
    """

    def __init__(
        self,
        settings: Settings,
        reference: Optional[ReferenceDataPort] = None,
        persistence: Optional[PersistencePort] = None,
    ) -> None:
        self._settings = settings
        self._reference = reference
        self._persistence = persistence
        self._sessions: dict[str, ClassificationSession] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, classification_id: str) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(classification_id, threading.RLock())

    def open(
        self,
        classification_id: str,
        product_description: str = "",
        materials: Optional[list[Material]] = None,
        physical_characteristics: Optional[dict[str, Any]] = None,
        technical_specifications: Optional[dict[str, Any]] = None,
    ) -> ClassificationSession:
        """Return the session for *classification_id*, creating it if needed."""
        lock = self.lock_for(classification_id)
        with lock:
            with self._guard:
                existing = self._sessions.get(classification_id)
            if existing is not None:
                return existing

            context = self._restore(classification_id)
            if context is None:
                context = ClassificationContext(
                    classification_id=classification_id,
                    product_description=product_description,
                    materials=materials,
                    physical_characteristics=physical_characteristics,
                    technical_specifications=technical_specifications,
                )
            session = ClassificationSession(
                context,
                self._settings,
                reference=self._reference,
                persistence=self._persistence,
                lock=lock,
            )
            with self._guard:
                self._sessions[classification_id] = session
            return session

    def get(self, classification_id: str) -> ClassificationSession:
        """Raises SessionNotFoundError if the id was never opened."""
        with self._guard:
            session = self._sessions.get(classification_id)
        if session is None:
            raise SessionNotFoundError(f"No session for classification {classification_id}")
        return session

    def close(self, classification_id: str) -> None:
        """Forget the session.  The id keeps its lock so a reopen serialises
        against callers still holding it."""
        with self.lock_for(classification_id):
            with self._guard:
                self._sessions.pop(classification_id, None)

    def __contains__(self, classification_id: object) -> bool:
        with self._guard:
            return classification_id in self._sessions

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def _restore(self, classification_id: str) -> Optional[ClassificationContext]:
        if self._persistence is None:
            return None
        try:
            context = self._persistence.load_snapshot(classification_id)
        except PersistenceError as exc:
            logger.error("Snapshot load failed | id=%s error=%s", classification_id, exc)
            return None
        if context is not None:
            logger.info("Session restored from snapshot | id=%s", classification_id)
        return context
