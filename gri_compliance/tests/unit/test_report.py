"""
tests/unit/test_report.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for ReportGenerator.

Verifies:
  • Report id, version, validity window and hash
  • Content sections appear in order
  • Executive summary recommendation follows confidence and critical issues
  • Tampered content fails hash verification
  • PDF export is refused
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from gri_compliance.domain.exceptions import ExportNotSupportedError
from gri_compliance.domain.models import (
    ClassificationContext,
    ClassificationRecord,
    GRIDecision,
    Material,
    StepRecord,
)


def _decision(rule_id, criterion_id, answer, confidence=0.9):
    return GRIDecision(
        rule_id=rule_id,
        criterion_id=criterion_id,
        answer=answer,
        reasoning=f"Documented reasoning for {criterion_id}",
        confidence=confidence,
        hash="a" * 64,
    )


@pytest.fixture
def walk(product_description):
    decisions = [
        _decision("pre_classification", "physical_characteristics", ["Dimensions/weight"]),
        _decision("gri_1", "heading_match", "Yes - Single heading"),
        _decision("gri_5a", "container_present", False),
        _decision("gri_6", "heading_determined", "8471"),
    ]
    steps = [StepRecord(rule_id=d.rule_id) for d in decisions]
    context = ClassificationContext(
        classification_id="cls-test",
        product_description=product_description,
        decisions=decisions,
        current_rule_id="gri_6",
        materials=[Material(name="Aluminium", percentage=100)],
    )
    record = ClassificationRecord(
        id="cls-test", product_description=product_description, final_hs_code="8471.30.00",
    )
    return record, decisions, steps, context


class TestGenerateReport:
    def test_metadata(self, reporter, walk, settings):
        report = reporter.generate_report(*walk)
        assert report.id.startswith("LR-")
        assert report.classification_id == "cls-test"
        assert report.version == settings.report_version
        assert report.expires_at - report.generated_at == timedelta(days=settings.report_validity_days)
        assert 0 <= report.compliance_score <= 100

    def test_hash_verifies(self, reporter, walk):
        report = reporter.generate_report(*walk)
        assert len(report.hash) == 64
        assert reporter.verify_report_hash(report)

    def test_tampered_content_fails(self, reporter, walk):
        report = reporter.generate_report(*walk)
        tampered = report.model_copy(update={"content": report.content + "\nedited"})
        assert not reporter.verify_report_hash(tampered)

    def test_sections_in_order(self, reporter, walk):
        content = reporter.generate_report(*walk).content
        headings = [
            "# HS Classification Legal Report",
            "## Executive Summary",
            "### Product Information",
            "- Aluminium: 100% (by weight)",
            "graph TD",
            "### Decision Log",
            "### Compliance Audit",
            "### Defense Checklist Validation",
            "### Legal Basis",
            "## Document Verification",
        ]
        positions = [content.index(h) for h in headings]
        assert positions == sorted(positions)

    def test_decision_log_entries(self, reporter, walk):
        content = reporter.generate_report(*walk).content
        assert "#### Decision 1: pre_classification" in content
        assert "#### Decision 4: gri_6" in content
        assert f"`{'a' * 64}`" in content

    def test_mermaid_follows_steps(self, reporter, walk):
        content = reporter.generate_report(*walk).content
        assert "    Start --> pre_classification" in content
        assert "    gri_5a --> gri_6" in content
        assert "class gri_1 high" in content

    def test_confident_walk_recommends_standard_procedure(self, reporter, walk):
        report = reporter.generate_report(*walk)
        assert "can proceed with standard verification procedures" in report.executive_summary
        assert "### Critical Issues" not in report.executive_summary

    def test_low_confidence_requires_review(self, reporter, walk):
        record, decisions, steps, context = walk
        low = [d.model_copy(update={"confidence": 0.4}) for d in decisions]
        report = reporter.generate_report(record, low, steps, context)
        assert "requires expert review due to low confidence" in report.executive_summary

    def test_critical_issue_listed(self, reporter, walk):
        record, decisions, steps, context = walk
        record = record.model_copy(update={"final_hs_code": "9999.99.99"})
        report = reporter.generate_report(record, decisions, steps, context)
        assert "### Critical Issues" in report.executive_summary
        assert "- HS code exists in official tariff schedule" in report.executive_summary
        assert "requires expert review due to critical issues" in report.executive_summary

    def test_to_dict_is_json_ready(self, reporter, walk):
        as_dict = reporter.generate_report(*walk).to_dict()
        assert isinstance(as_dict["generated_at"], str)
        assert as_dict["checklist"][0]["severity"] == "critical"


class TestExports:
    def test_markdown_is_content(self, reporter, walk):
        markdown = reporter.export_to_markdown(*walk)
        assert markdown.startswith("# HS Classification Legal Report")

    def test_pdf_not_supported(self, reporter, walk):
        with pytest.raises(ExportNotSupportedError, match="PDF export not yet implemented"):
            reporter.export_to_pdf(*walk)
