"""
services/compliance.py
──────────────────────────────────────────────────────────────────────────────
ComplianceValidator: audits a classification against the three-phase
compliance workflow (domain/phases.py) and evaluates the defense checklist.

Two views of the same classification:
  • validate_phase_completion()   — the *current* phase, including the
    mandatory steps marked complete so far.  Drives phase-by-phase progress.
  • generate_compliance_report()  — every phase at once, judged only by the
    phase's own predicates, plus the global sequence checks.  Drives reports.

Findings are returned as data, never raised.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import ReferenceDataError
from gri_compliance.domain.hs_codes import format_code
from gri_compliance.domain.models import (
    ChecklistCategory,
    ChecklistSeverity,
    ClassificationContext,
    ClassificationRecord,
    ComplianceChecklistItem,
    ComplianceReport,
    GRIDecision,
    PhaseReport,
    PhaseStatus,
    StepRecord,
    ValidationResult,
)
from gri_compliance.domain.phases import (
    GRI_1_FIRST_MESSAGE,
    PHASES,
    SEQUENCE_MESSAGE,
    AuditLimits,
    CompliancePhase,
    DecisionPoint,
    DocumentationRequirement,
    gri1_applied_first,
    sequence_violations,
)
from gri_compliance.domain.rules import material_total, rule_order
from gri_compliance.ports.reference_data_port import ReferenceDataPort

logger = logging.getLogger(__name__)

CHECKLIST_WEIGHTS = {
    ChecklistSeverity.CRITICAL:    3,
    ChecklistSeverity.IMPORTANT:   2,
    ChecklistSeverity.RECOMMENDED: 1,
}


def compliance_score(checklist: Sequence[ComplianceChecklistItem]) -> int:
    """Weighted share of satisfied checklist items, 0–100 (rounded)."""
    total = sum(CHECKLIST_WEIGHTS[item.severity] for item in checklist)
    if total == 0:
        return 0
    achieved = sum(CHECKLIST_WEIGHTS[item.severity] for item in checklist if item.satisfied)
    return round(achieved / total * 100)


def steps_in_order(steps: Sequence[StepRecord]) -> bool:
    """True if the visited rules never move to a lower catalog order."""
    last = float("-inf")
    for step in steps:
        order = rule_order(step.rule_id)
        if order is None:
            continue
        if order < last:
            return False
        last = order
    return True


class ComplianceValidator:
    """Phase-by-phase compliance audit of one classification.

    Args:
        settings:  Shared application settings.
        reference: Optional tariff reference port; when given, the checklist
                   confirms the final code exists in the schedule.
    """

    def __init__(
        self,
        settings: Settings,
        reference: Optional[ReferenceDataPort] = None,
    ) -> None:
        self._settings = settings
        self._reference = reference
        self._limits = AuditLimits(min_reasoning_length=settings.min_reasoning_length)
        self._phase_index = 0
        self._completed_steps: set[str] = set()

    # ── Current phase ──────────────────────────────────────────────────────

    def get_current_phase(self) -> CompliancePhase:
        return PHASES[self._phase_index]

    @property
    def completed_steps(self) -> frozenset[str]:
        return frozenset(self._completed_steps)

    def mark_step_complete(self, step_id: str) -> None:
        self._completed_steps.add(step_id)

    def mark_steps_from_decisions(self, context: ClassificationContext) -> list[str]:
        """Mark every step of the current phase whose rules have a decision.

        Returns:
            Ids of the steps newly marked.
        """
        decided = {d.rule_id for d in context.decisions}
        marked = []
        for step in self.get_current_phase().steps:
            if step.id not in self._completed_steps and decided.intersection(step.rule_ids):
                self._completed_steps.add(step.id)
                marked.append(step.id)
        return marked

    def validate_phase_completion(self, context: ClassificationContext) -> ValidationResult:
        """Check the current phase's mandatory steps and predicates.

        Returns:
            ValidationResult with ``"Mandatory step not completed: <name>"``
            per missing step and ``"<SEVERITY>: <message>"`` per failing
            predicate.
        """
        phase = self.get_current_phase()
        errors = [
            f"Mandatory step not completed: {step.name}"
            for step in phase.steps
            if step.mandatory and step.id not in self._completed_steps
        ]
        errors.extend(
            v.formatted_error() for v in phase.validators if not v.passes(context, self._limits)
        )
        return ValidationResult(valid=not errors, errors=errors)

    def can_proceed_to_next_phase(self, context: ClassificationContext) -> bool:
        return self.validate_phase_completion(context).valid

    def move_to_next_phase(self) -> bool:
        """Advance one phase and clear completed steps; False at the last phase."""
        if self._phase_index >= len(PHASES) - 1:
            return False
        self._phase_index += 1
        self._completed_steps.clear()
        logger.info("Compliance phase -> %s", self.get_current_phase().id)
        return True

    def get_required_documentation(self) -> list[DocumentationRequirement]:
        return [req for req in self.get_current_phase().documentation if req.mandatory]

    # ── Whole workflow ─────────────────────────────────────────────────────

    @staticmethod
    def get_all_decision_points() -> list[DecisionPoint]:
        return [dp for phase in PHASES for step in phase.steps for dp in step.decision_points]

    def validate_decision_coverage(self, decisions: Sequence[GRIDecision]) -> dict[str, list[str]]:
        """Split decision points into covered and missing.

        A decision point is covered once any decision references a rule of
        the step it belongs to.
        """
        decided = {d.rule_id for d in decisions}
        covered: list[str] = []
        missing: list[str] = []
        for phase in PHASES:
            for step in phase.steps:
                bucket = covered if decided.intersection(step.rule_ids) else missing
                bucket.extend(dp.id for dp in step.decision_points)
        return {"covered": covered, "missing": missing}

    def generate_compliance_report(self, context: ClassificationContext) -> ComplianceReport:
        """Audit every phase and the global rule sequence.

        A phase is ``not_started`` until a decision references one of its
        rules; a started phase is ``complete`` when all of its own
        predicates hold.
        """
        phases: list[PhaseReport] = []
        for phase in PHASES:
            if not phase.is_started(context.decisions):
                phases.append(PhaseReport(
                    phase_id=phase.id, name=phase.name, status=PhaseStatus.NOT_STARTED,
                ))
                continue
            errors = [
                v.formatted_error() for v in phase.validators
                if not v.passes(context, self._limits)
            ]
            phases.append(PhaseReport(
                phase_id=phase.id,
                name=phase.name,
                status=PhaseStatus.INCOMPLETE if errors else PhaseStatus.COMPLETE,
                errors=errors,
            ))

        overall: list[str] = []
        if not gri1_applied_first(context):
            overall.append(GRI_1_FIRST_MESSAGE)
        if sequence_violations(context.decisions):
            overall.append(SEQUENCE_MESSAGE)

        compliant = not overall and all(p.status is not PhaseStatus.INCOMPLETE for p in phases)
        logger.debug(
            "Compliance report | id=%s compliant=%s overall_errors=%s",
            context.classification_id,
            compliant,
            overall,
        )
        return ComplianceReport(compliant=compliant, phases=phases, overall_errors=overall)

    # ── Defense checklist ──────────────────────────────────────────────────

    def build_checklist(
        self,
        classification: ClassificationRecord,
        decisions: Sequence[GRIDecision],
        steps: Sequence[StepRecord],
        context: ClassificationContext,
    ) -> list[ComplianceChecklistItem]:
        """Evaluate the 12 defense-checklist requirements."""
        threshold = self._settings.expert_review_threshold
        min_reasoning = self._settings.min_reasoning_length
        critical, important, recommended = (
            ChecklistSeverity.CRITICAL, ChecklistSeverity.IMPORTANT, ChecklistSeverity.RECOMMENDED,
        )
        doc, process, technical, legal = (
            ChecklistCategory.DOCUMENTATION, ChecklistCategory.PROCESS,
            ChecklistCategory.TECHNICAL, ChecklistCategory.LEGAL,
        )

        description = classification.product_description
        applied = " → ".join(s.rule_id for s in steps) or "none"
        in_sequence = not sequence_violations(decisions) and steps_in_order(steps)
        code_ok, code_evidence = self._code_in_schedule(classification.final_hs_code)
        excluded = context.excluded_headings or []
        notes_checked = not excluded or any(
            d.criterion_id == "section_chapter_notes" or "exclusion" in d.reasoning.lower()
            for d in decisions
        )
        character = [
            d for d in decisions
            if d.rule_id == "gri_3b" or "essential character" in d.reasoning.lower()
        ]
        reasoned = [d for d in decisions if len(d.reasoning) > min_reasoning]
        average = sum(d.confidence for d in decisions) / len(decisions) if decisions else 0.0
        alternatives = context.suggested_headings or []
        specs = context.technical_specifications or {}

        return [
            ComplianceChecklistItem(
                requirement="Product description is complete and accurate",
                satisfied=len(description) > 20,
                evidence=f"Description length: {len(description)} characters",
                severity=critical, category=doc,
            ),
            ComplianceChecklistItem(
                requirement="All GRI rules applied in correct sequence",
                satisfied=in_sequence,
                evidence=f"Applied rules: {applied}",
                severity=critical, category=process,
            ),
            self._materials_item(context, decisions),
            ComplianceChecklistItem(
                requirement="HS code exists in official tariff schedule",
                satisfied=code_ok,
                evidence=code_evidence,
                severity=critical, category=legal,
            ),
            ComplianceChecklistItem(
                requirement="All exclusion notes have been checked",
                satisfied=notes_checked,
                evidence=f"{len(excluded)} exclusions checked",
                severity=critical, category=legal,
            ),
            ComplianceChecklistItem(
                requirement="Essential character determination documented",
                satisfied=bool(character),
                evidence=str(character[-1].answer) if character else "Not documented",
                severity=important, category=technical,
            ),
            ComplianceChecklistItem(
                requirement="Decision reasoning provided for each step",
                satisfied=len(reasoned) == len(decisions),
                evidence=f"{len(reasoned)}/{len(decisions)} decisions have reasoning",
                severity=important, category=doc,
            ),
            ComplianceChecklistItem(
                requirement=f"Confidence level above {threshold * 100:.0f}% threshold",
                satisfied=average >= threshold,
                evidence=f"Average confidence: {average * 100:.1f}%",
                severity=important, category=technical,
            ),
            ComplianceChecklistItem(
                requirement="Alternative classifications considered",
                satisfied=len(alternatives) > 1,
                evidence=(
                    f"{len(alternatives)} alternatives considered"
                    if alternatives else "No alternatives documented"
                ),
                severity=important, category=process,
            ),
            ComplianceChecklistItem(
                requirement="Similar products referenced for consistency",
                satisfied=any(self._references_similar(d) for d in decisions),
                severity=recommended, category=doc,
            ),
            ComplianceChecklistItem(
                requirement="Technical specifications included",
                satisfied=bool(specs),
                evidence=f"{len(specs)} specs documented" if specs else "No specs provided",
                severity=recommended, category=technical,
            ),
            ComplianceChecklistItem(
                requirement="Packaging considerations documented",
                satisfied=any(
                    d.rule_id in ("gri_5a", "gri_5b") or d.criterion_id == "packaging_present"
                    for d in decisions
                ),
                severity=recommended, category=process,
            ),
        ]

    # ── Internal helpers ───────────────────────────────────────────────────

    def _materials_item(
        self,
        context: ClassificationContext,
        decisions: Sequence[GRIDecision],
    ) -> ComplianceChecklistItem:
        materials = context.materials or []
        if len(materials) <= 1:
            satisfied, evidence = True, "Not a composite product"
        else:
            total = material_total(list(materials)) or 0.0
            analysed = any(
                d.criterion_id == "component_analysis" or d.rule_id == "gri_2b" for d in decisions
            )
            balanced = abs(total - 100) <= self._settings.material_tolerance
            satisfied = analysed and balanced
            if not balanced:
                evidence = f"Material percentages total {total:g}%"
            elif analysed:
                evidence = "Composite analysis completed"
            else:
                evidence = "Missing composite analysis"
        return ComplianceChecklistItem(
            requirement="Material composition documented (if composite)",
            satisfied=satisfied,
            evidence=evidence,
            severity=ChecklistSeverity.CRITICAL,
            category=ChecklistCategory.TECHNICAL,
        )

    def _code_in_schedule(self, final_code: Optional[str]) -> tuple[bool, str]:
        if not final_code:
            return False, "No HS code assigned"
        if self._reference is None:
            return True, final_code
        try:
            code = format_code(final_code)
        except ValueError:
            return False, f"{final_code} is not a valid HS code"
        try:
            found = self._reference.get_by_code(code) is not None
        except ReferenceDataError as exc:
            logger.warning("Reference lookup failed for %s: %s", code, exc)
            return False, f"{final_code} could not be verified: {exc}"
        return found, final_code if found else f"{final_code} not found in tariff schedule"

    @staticmethod
    def _references_similar(decision: GRIDecision) -> bool:
        reasoning = decision.reasoning.lower()
        if "similar" in reasoning or "precedent" in reasoning:
            return True
        analysis = decision.metadata.get("analysis")
        return isinstance(analysis, dict) and bool(analysis.get("precedents"))
