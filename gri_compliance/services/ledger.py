"""
services/ledger.py
──────────────────────────────────────────────────────────────────────────────
DecisionLedger: append-only decision and audit log for one classification.

Every audit entry carries a SHA-256 hash of its canonical content
(action, actor, details, timestamp).  verify_integrity() recomputes them;
nothing is ever repaired, compacted or deleted.

Known limitation: hashes are per entry, not chained.  Editing an entry's
content is detected, removing or reordering whole entries is not.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import IntegrityError
from gri_compliance.domain.hashing import content_hash
from gri_compliance.domain.models import (
    AuditEntry,
    GRIDecision,
    LegalRecord,
    LegalRecordMetadata,
    LegalSummary,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def audit_hash(action: str, actor: str, details: dict[str, Any], timestamp: datetime) -> str:
    return content_hash({
        "action": action,
        "actor": actor,
        "details": details,
        "timestamp": timestamp.isoformat(),
    })


class DecisionLedger:
    """Append-only store of decisions and audit events.

    Logs ``classification_started`` on construction.

    Args:
        classification_id: The classification every entry belongs to.
        settings:          Shared application settings (review threshold,
                           legal-record version).
    """

    def __init__(self, classification_id: str, settings: Settings) -> None:
        self._classification_id = classification_id
        self._settings = settings
        self._decisions: list[GRIDecision] = []
        self._audit: list[AuditEntry] = []
        self.log_audit_event(
            "classification_started",
            SYSTEM_ACTOR,
            {"timestamp": datetime.now(timezone.utc).isoformat()},
        )

    @property
    def classification_id(self) -> str:
        return self._classification_id

    # ── Writes ─────────────────────────────────────────────────────────────

    def log_decision(self, decision: GRIDecision, actor: str = SYSTEM_ACTOR) -> AuditEntry:
        """Append *decision* and a correlated ``decision_made`` audit entry.

        Returns:
            The audit entry recorded for the decision.
        """
        self._decisions.append(decision)
        return self.log_audit_event("decision_made", actor, {
            "ruleId": decision.rule_id,
            "criterionId": decision.criterion_id,
            "confidence": decision.confidence,
            "decisionHash": decision.hash,
        })

    def log_audit_event(
        self,
        action: str,
        actor: str,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        details = dict(details or {})
        timestamp = datetime.now(timezone.utc)
        entry = AuditEntry(
            id=f"audit_{uuid.uuid4().hex[:16]}",
            classification_id=self._classification_id,
            action=action,
            actor=actor,
            details=details,
            timestamp=timestamp,
            hash=audit_hash(action, actor, details, timestamp),
        )
        self._audit.append(entry)
        logger.debug(
            "Audit event | id=%s action=%s actor=%s",
            self._classification_id,
            action,
            actor,
        )
        return entry

    def complete_classification(self, final_code: str, confidence: float) -> AuditEntry:
        """Append the ``classification_completed`` event."""
        entry = self.log_audit_event("classification_completed", SYSTEM_ACTOR, {
            "finalHsCode": final_code,
            "confidence": confidence,
            "totalDecisions": len(self._decisions),
            "duration": self._duration(),
        })
        logger.info(
            "Classification completed | id=%s code=%s confidence=%.2f decisions=%d",
            self._classification_id,
            final_code,
            confidence,
            len(self._decisions),
        )
        return entry

    # ── Reads ──────────────────────────────────────────────────────────────

    def get_decisions(self) -> list[GRIDecision]:
        return list(self._decisions)

    def get_decisions_for_rule(self, rule_id: str) -> list[GRIDecision]:
        return [d for d in self._decisions if d.rule_id == rule_id]

    def get_audit_trail(self) -> list[AuditEntry]:
        """Shallow copy: the list is new, the entries are the ledger's own."""
        return list(self._audit)

    def get_overall_confidence(self) -> float:
        if not self._decisions:
            return 0.0
        return sum(d.confidence for d in self._decisions) / len(self._decisions)

    def generate_legal_summary(self) -> LegalSummary:
        threshold = self._settings.expert_review_threshold
        low = [d for d in self._decisions if d.confidence < threshold]
        overall = self.get_overall_confidence()
        return LegalSummary(
            classification_id=self._classification_id,
            start_time=self._audit[0].timestamp if self._audit else None,
            end_time=self._audit[-1].timestamp if self._audit else None,
            total_decisions=len(self._decisions),
            overall_confidence=overall,
            low_confidence_decisions=low,
            audit_event_count=len(self._audit),
            requires_expert_review=bool(low) or (bool(self._decisions) and overall < threshold),
        )

    def export_for_legal_record(self) -> LegalRecord:
        return LegalRecord(
            metadata=LegalRecordMetadata(
                classification_id=self._classification_id,
                version=self._settings.ledger_version,
            ),
            decisions=self.get_decisions(),
            audit_trail=self.get_audit_trail(),
            summary=self.generate_legal_summary(),
        )

    # ── Integrity ──────────────────────────────────────────────────────────

    def verify_integrity(self) -> bool:
        """True iff every audit entry's stored hash matches its content."""
        for entry in self._audit:
            expected = audit_hash(entry.action, entry.actor, entry.details, entry.timestamp)
            if entry.hash != expected:
                logger.warning(
                    "Audit hash mismatch | id=%s entry=%s action=%s",
                    self._classification_id,
                    entry.id,
                    entry.action,
                )
                return False
        return True

    def assert_integrity(self) -> None:
        """Raise IntegrityError if verify_integrity() fails."""
        if not self.verify_integrity():
            raise IntegrityError(
                f"Audit trail for classification {self._classification_id} failed verification"
            )

    # ── Internal helpers ───────────────────────────────────────────────────

    def _duration(self) -> str:
        if len(self._audit) < 2:
            return "0 minutes"
        elapsed = self._audit[-1].timestamp - self._audit[0].timestamp
        return f"{int(elapsed.total_seconds() // 60)} minutes"
