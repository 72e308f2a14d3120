"""
tests/unit/test_compliance.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for ComplianceValidator.

Verifies:
  • Phase-by-phase completion, step marking and phase advance
  • Compliance report phase statuses and global sequence errors
  • Decision-point coverage
  • Defense checklist items and the weighted compliance score
"""
from __future__ import annotations

import dataclasses

import pytest

from gri_compliance.domain.models import (
    ChecklistCategory,
    ChecklistSeverity,
    ClassificationContext,
    ClassificationRecord,
    ComplianceChecklistItem,
    ExcludedHeading,
    GRIDecision,
    HSHeading,
    Material,
    PhaseStatus,
    StepRecord,
)
from gri_compliance.domain.phases import GRI_1_FIRST_MESSAGE, SEQUENCE_MESSAGE
from gri_compliance.services.compliance import (
    ComplianceValidator,
    compliance_score,
    steps_in_order,
)


def _decision(rule_id, criterion_id="c", reasoning="Reasoning documented in full", confidence=0.9, **kw):
    return GRIDecision(
        rule_id=rule_id,
        criterion_id=criterion_id,
        answer=kw.pop("answer", True),
        reasoning=reasoning,
        confidence=confidence,
        **kw,
    )


def _context(product_description, decisions=(), current="pre_classification", **kw):
    return ClassificationContext(
        classification_id="cls-test",
        product_description=product_description,
        decisions=list(decisions),
        current_rule_id=current,
        **kw,
    )


def _item(checklist, prefix):
    return next(i for i in checklist if i.requirement.startswith(prefix))


class TestPhaseNavigation:
    def test_starts_in_phase_0(self, validator):
        assert validator.get_current_phase().id == "phase_0"

    def test_mandatory_steps_reported(self, validator, product_description):
        result = validator.validate_phase_completion(_context(product_description))
        assert not result.valid
        assert "Mandatory step not completed: Product Information Collection" in result.errors
        assert "Mandatory step not completed: Commercial Context Analysis" in result.errors
        assert "WARNING: Physical characteristics missing" in result.errors

    def test_marking_from_decisions(self, validator, product_description):
        ctx = _context(product_description, [
            _decision("pre_classification", "physical_characteristics"),
        ])
        marked = validator.mark_steps_from_decisions(ctx)
        assert marked == ["step_0.1", "step_0.3"]
        assert validator.can_proceed_to_next_phase(ctx)

    def test_short_description_is_critical(self, validator):
        validator.mark_step_complete("step_0.1")
        validator.mark_step_complete("step_0.3")
        result = validator.validate_phase_completion(
            _context("Laptop", physical_characteristics={"weight": "1.4 kg"})
        )
        assert result.errors == ["CRITICAL: Product description too brief for accurate classification"]

    def test_move_to_next_phase_clears_steps(self, validator):
        validator.mark_step_complete("step_0.1")
        assert validator.move_to_next_phase()
        assert validator.get_current_phase().id == "phase_1"
        assert validator.completed_steps == frozenset()

    def test_cannot_move_past_last_phase(self, validator):
        assert validator.move_to_next_phase()
        assert validator.move_to_next_phase()
        assert not validator.move_to_next_phase()
        assert validator.get_current_phase().id == "phase_2"

    def test_required_documentation_is_mandatory_only(self, validator):
        docs = validator.get_required_documentation()
        assert [d.id for d in docs] == ["dr_0.2"]


class TestComplianceReport:
    def test_nothing_started(self, validator, product_description):
        report = validator.generate_compliance_report(_context(product_description))
        assert report.compliant
        assert all(p.status is PhaseStatus.NOT_STARTED for p in report.phases)

    def test_clean_walk_is_compliant(self, validator, product_description):
        ctx = _context(product_description, [
            _decision("pre_classification", "physical_characteristics"),
            _decision("gri_1", "heading_match"),
            _decision("gri_5a", "container_present", answer=False),
            _decision("gri_6", "heading_determined", answer="8471"),
            _decision("validate_heading", "documentation_complete"),
        ], current="validate_heading")
        report = validator.generate_compliance_report(ctx)
        assert report.compliant
        assert [p.status for p in report.phases] == [PhaseStatus.COMPLETE] * 3
        assert report.overall_errors == []

    def test_skipping_gri_1_is_flagged(self, validator, product_description):
        ctx = _context(
            product_description,
            [_decision("pre_classification", "physical_characteristics")],
            current="gri_5a",
        )
        report = validator.generate_compliance_report(ctx)
        assert GRI_1_FIRST_MESSAGE in report.overall_errors
        assert not report.compliant

    def test_backwards_sequence_is_flagged(self, validator, product_description):
        ctx = _context(product_description, [
            _decision("gri_1"),
            _decision("gri_5a"),
            _decision("gri_3a"),
        ], current="gri_3a")
        report = validator.generate_compliance_report(ctx)
        assert report.overall_errors == [SEQUENCE_MESSAGE]
        phase_1 = report.phases[1]
        assert phase_1.status is PhaseStatus.INCOMPLETE
        assert f"CRITICAL: {SEQUENCE_MESSAGE}" in phase_1.errors

    def test_undocumented_decision_fails_phase_2(self, validator, product_description):
        ctx = _context(product_description, [
            _decision("gri_1"),
            _decision("validate_heading", reasoning="ok"),
        ], current="validate_heading")
        report = validator.generate_compliance_report(ctx)
        assert report.phases[2].errors == ["CRITICAL: Some decisions lack proper documentation"]
        assert not report.compliant

    def test_reasoning_length_follows_settings(self, settings, validator, product_description):
        ctx = _context(product_description, [
            _decision("gri_1"),
            _decision("validate_heading"),
        ], current="validate_heading")
        strict = ComplianceValidator(dataclasses.replace(settings, min_reasoning_length=40))
        assert validator.generate_compliance_report(ctx).phases[2].status is PhaseStatus.COMPLETE
        phase_2 = strict.generate_compliance_report(ctx).phases[2]
        assert phase_2.errors == ["CRITICAL: Some decisions lack proper documentation"]


class TestDecisionCoverage:
    def test_all_decision_points_listed(self, validator):
        points = validator.get_all_decision_points()
        assert points[0].id == "dp_0.1.1"
        assert len({p.id for p in points}) == len(points)

    def test_coverage_by_rule(self, validator):
        coverage = validator.validate_decision_coverage([_decision("gri_1")])
        assert "dp_1.1.1" in coverage["covered"]
        assert "dp_0.1.1" in coverage["missing"]
        total = len(validator.get_all_decision_points())
        assert len(coverage["covered"]) + len(coverage["missing"]) == total


class TestChecklist:
    def _record(self, product_description, final_code="8471.30.00"):
        return ClassificationRecord(
            id="cls-test", product_description=product_description, final_hs_code=final_code,
        )

    def test_twelve_items(self, validator, product_description):
        checklist = validator.build_checklist(
            self._record(product_description), [], [], _context(product_description),
        )
        assert len(checklist) == 12

    def test_code_in_schedule(self, validator, product_description):
        checklist = validator.build_checklist(
            self._record(product_description), [], [], _context(product_description),
        )
        assert _item(checklist, "HS code exists").satisfied

    def test_unknown_code_fails(self, validator, product_description):
        checklist = validator.build_checklist(
            self._record(product_description, "9999.99.99"), [], [], _context(product_description),
        )
        item = _item(checklist, "HS code exists")
        assert not item.satisfied
        assert item.evidence == "9999.99.99 not found in tariff schedule"

    def test_missing_code_fails_without_reference(self, settings, product_description):
        checklist = ComplianceValidator(settings).build_checklist(
            self._record(product_description, None), [], [], _context(product_description),
        )
        assert _item(checklist, "HS code exists").evidence == "No HS code assigned"

    def test_out_of_order_steps_fail_sequence(self, validator, product_description):
        steps = [StepRecord(rule_id="gri_1"), StepRecord(rule_id="gri_5a"), StepRecord(rule_id="gri_3a")]
        checklist = validator.build_checklist(
            self._record(product_description), [], steps, _context(product_description),
        )
        item = _item(checklist, "All GRI rules applied")
        assert not item.satisfied
        assert item.evidence == "Applied rules: gri_1 → gri_5a → gri_3a"

    def test_composite_requires_analysis(self, validator, product_description):
        materials = [Material(name="Steel", percentage=60), Material(name="Plastic", percentage=40)]
        ctx = _context(product_description, materials=materials)
        checklist = validator.build_checklist(self._record(product_description), [], [], ctx)
        assert _item(checklist, "Material composition").evidence == "Missing composite analysis"

        decisions = [_decision("gri_3b", "component_analysis", answer="Steel")]
        checklist = validator.build_checklist(self._record(product_description), decisions, [], ctx)
        item = _item(checklist, "Material composition")
        assert item.satisfied
        assert _item(checklist, "Essential character").evidence == "Steel"

    def test_exclusions_need_notes_check(self, validator, product_description):
        ctx = _context(
            product_description,
            excluded_headings=[ExcludedHeading(code="6205", reason="Excluded by chapter 62")],
        )
        checklist = validator.build_checklist(self._record(product_description), [], [], ctx)
        assert not _item(checklist, "All exclusion notes").satisfied

        decisions = [_decision("gri_1", "section_chapter_notes", answer=["Exclusion notes"])]
        checklist = validator.build_checklist(self._record(product_description), decisions, [], ctx)
        assert _item(checklist, "All exclusion notes").satisfied

    def test_confidence_threshold_wording(self, validator, product_description):
        decisions = [_decision("gri_1", confidence=0.6)]
        checklist = validator.build_checklist(
            self._record(product_description), decisions, [], _context(product_description),
        )
        item = _item(checklist, "Confidence level")
        assert item.requirement == "Confidence level above 70% threshold"
        assert not item.satisfied

    def test_alternatives_and_specs(self, validator, product_description):
        ctx = _context(
            product_description,
            suggested_headings=[HSHeading(code="8471"), HSHeading(code="8473")],
            technical_specifications={"display": "14 inch"},
        )
        checklist = validator.build_checklist(self._record(product_description), [], [], ctx)
        assert _item(checklist, "Alternative classifications").satisfied
        assert _item(checklist, "Technical specifications").evidence == "1 specs documented"

    def test_precedent_reference_from_reasoning(self, validator, product_description):
        decisions = [_decision("gri_4", reasoning="Most similar product is a tablet computer")]
        checklist = validator.build_checklist(
            self._record(product_description), decisions, [], _context(product_description),
        )
        assert _item(checklist, "Similar products").satisfied


class TestScore:
    def _item(self, severity, satisfied):
        return ComplianceChecklistItem(
            requirement="r", satisfied=satisfied, severity=severity,
            category=ChecklistCategory.PROCESS,
        )

    def test_empty_checklist_scores_zero(self):
        assert compliance_score([]) == 0

    def test_weighted(self):
        checklist = [
            self._item(ChecklistSeverity.CRITICAL, True),
            self._item(ChecklistSeverity.IMPORTANT, False),
            self._item(ChecklistSeverity.RECOMMENDED, True),
        ]
        # (3 + 1) / (3 + 2 + 1)
        assert compliance_score(checklist) == 67

    @pytest.mark.parametrize("rule_ids, expected", [
        (["pre_classification", "gri_1", "gri_5a"], True),
        (["gri_3a", "gri_3b"], True),
        (["gri_5a", "gri_1"], False),
    ])
    def test_steps_in_order(self, rule_ids, expected):
        assert steps_in_order([StepRecord(rule_id=r) for r in rule_ids]) is expected
