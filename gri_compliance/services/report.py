"""
services/report.py
──────────────────────────────────────────────────────────────────────────────
ReportGenerator: renders the legal classification report.

A report bundles:
  • executive summary    — outcome, key findings, critical issues, advice
  • markdown body        — product information, mermaid decision tree,
                           decision log, compliance audit, defense checklist,
                           legal basis, verification footer
  • defense checklist    — evaluated by ComplianceValidator.build_checklist()
  • SHA-256 hash         — over content + version + generation timestamp

The hash cannot appear inside the content it covers; it travels on the
LegalReport and verify_report_hash() recomputes it.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import ExportNotSupportedError
from gri_compliance.domain.hashing import sha256_hex
from gri_compliance.domain.models import (
    ChecklistSeverity,
    ClassificationContext,
    ClassificationRecord,
    ComplianceChecklistItem,
    ComplianceReport,
    GRIDecision,
    LegalReport,
    StepRecord,
)
from gri_compliance.domain.phases import applied_rule_sequence
from gri_compliance.services.compliance import ComplianceValidator, compliance_score
from gri_compliance.services.engine import collect_legal_basis

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%B %d, %Y"
_DATETIME_FORMAT = "%B %d, %Y %H:%M:%S UTC"


def report_hash(content: str, version: str, generated_at: datetime) -> str:
    return sha256_hex(content + version + generated_at.isoformat())


def _average_confidence(decisions: Sequence[GRIDecision]) -> float:
    if not decisions:
        return 0.0
    return sum(d.confidence for d in decisions) / len(decisions)


def _processing_time(classification: ClassificationRecord) -> str:
    if classification.completed_at is None:
        return "In progress"
    minutes = int((classification.completed_at - classification.created_at).total_seconds() // 60)
    if minutes < 1:
        return "Less than 1 minute"
    if minutes == 1:
        return "1 minute"
    if minutes < 60:
        return f"{minutes} minutes"
    return f"{minutes // 60}h {minutes % 60}m"


def _confidence_class(confidence: float) -> str:
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.6:
        return "medium"
    return "low"


def _mermaid_label(text: Any) -> str:
    return str(text).replace('"', "'").replace("\n", " ")


class ReportGenerator:
    """Builds LegalReports from a classification's decisions and steps.

    Args:
        settings:  Shared application settings (version, validity, threshold).
        validator: ComplianceValidator used for the checklist and phase audit.
    """

    def __init__(self, settings: Settings, validator: ComplianceValidator) -> None:
        self._settings = settings
        self._validator = validator

    # ── Public API ─────────────────────────────────────────────────────────

    def generate_report(
        self,
        classification: ClassificationRecord,
        decisions: Sequence[GRIDecision],
        steps: Sequence[StepRecord],
        context: ClassificationContext,
    ) -> LegalReport:
        """Generate the full legal report.

        Args:
            classification: The classification being reported on.
            decisions:      Recorded decisions, in order.
            steps:          Rule visits, in order.
            context:        Working context (materials, headings, specs).

        Returns:
            LegalReport with content, checklist, compliance audit and hash.
        """
        generated_at = datetime.now(timezone.utc)
        report_id = f"LR-{generated_at:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6].upper()}"
        version = self._settings.report_version

        checklist = self._validator.build_checklist(classification, decisions, steps, context)
        compliance = self._validator.generate_compliance_report(context)
        summary = self._executive_summary(classification, decisions, context, checklist, generated_at)
        content = self._render(
            report_id, classification, decisions, steps, context,
            checklist, compliance, summary, generated_at,
        )

        report = LegalReport(
            id=report_id,
            classification_id=classification.id,
            content=content,
            hash=report_hash(content, version, generated_at),
            checklist=checklist,
            executive_summary=summary,
            compliance_score=compliance_score(checklist),
            compliance=compliance,
            generated_at=generated_at,
            expires_at=generated_at + timedelta(days=self._settings.report_validity_days),
            version=version,
        )
        logger.info(
            "Report generated | id=%s classification=%s score=%d compliant=%s",
            report.id,
            classification.id,
            report.compliance_score,
            compliance.compliant,
        )
        return report

    def export_to_markdown(
        self,
        classification: ClassificationRecord,
        decisions: Sequence[GRIDecision],
        steps: Sequence[StepRecord],
        context: ClassificationContext,
    ) -> str:
        return self.generate_report(classification, decisions, steps, context).content

    def export_to_pdf(self, *args: Any, **kwargs: Any) -> bytes:
        raise ExportNotSupportedError("PDF export not yet implemented. Use markdown export instead.")

    @staticmethod
    def verify_report_hash(report: LegalReport) -> bool:
        return report.hash == report_hash(report.content, report.version, report.generated_at)

    # ── Sections ───────────────────────────────────────────────────────────

    def _executive_summary(
        self,
        classification: ClassificationRecord,
        decisions: Sequence[GRIDecision],
        context: ClassificationContext,
        checklist: Sequence[ComplianceChecklistItem],
        generated_at: datetime,
    ) -> str:
        threshold = self._settings.expert_review_threshold
        average = _average_confidence(decisions)
        lines = [
            "## Executive Summary",
            "",
            f"**Product:** {classification.product_description}",
            f"**Classification Date:** {generated_at.strftime(_DATE_FORMAT)}",
            f"**Final HS Code:** {classification.final_hs_code or 'Pending'}",
            f"**Confidence Level:** {average * 100:.1f}%",
            "",
            "### Key Findings",
            "",
        ]
        if context.materials and len(context.materials) > 1:
            lines.append("- **Material Composition:** Multiple materials (composite product)")
            dominant = [d for d in decisions if d.criterion_id == "component_analysis"]
            if dominant:
                lines.append(f"- **Dominant Material:** {dominant[-1].answer}")
        elif context.materials:
            lines.append(f"- **Material Composition:** {context.materials[0].name}")
        else:
            lines.append("- No material composition recorded")

        applied = [r for r in applied_rule_sequence(decisions) if r.startswith("gri_")]
        applied = list(dict.fromkeys(applied))
        lines += [
            "",
            "### Classification Process",
            f"- **GRI Rules Applied:** {', '.join(applied) or 'None'}",
            f"- **Total Decisions Made:** {len(decisions)}",
            f"- **Time to Complete:** {_processing_time(classification)}",
        ]

        critical = [
            item for item in checklist
            if item.severity is ChecklistSeverity.CRITICAL and not item.satisfied
        ]
        if critical:
            lines += ["", "### Critical Issues"]
            lines += [f"- {item.requirement}" for item in critical]

        low = average < threshold
        lines += ["", "### Recommendation"]
        if low or critical:
            reason = "low confidence" if low else "critical issues"
            lines.append(f"This classification requires expert review due to {reason}.")
        else:
            lines.append("This classification can proceed with standard verification procedures.")
        return "\n".join(lines)

    def _render(
        self,
        report_id: str,
        classification: ClassificationRecord,
        decisions: Sequence[GRIDecision],
        steps: Sequence[StepRecord],
        context: ClassificationContext,
        checklist: Sequence[ComplianceChecklistItem],
        compliance: ComplianceReport,
        summary: str,
        generated_at: datetime,
    ) -> str:
        timestamp = generated_at.strftime(_DATETIME_FORMAT)
        lines = [
            "# HS Classification Legal Report",
            "",
            f"**Report ID:** {report_id}",
            f"**Generated:** {timestamp}",
            f"**Version:** {self._settings.report_version}",
            "",
            "---",
            "",
            summary,
            "",
            "---",
            "",
            "## Classification Details",
            "",
            "### Product Information",
            f"- **Description:** {classification.product_description}",
            f"- **Classification ID:** {classification.id}",
            f"- **Status:** {classification.status.value}",
            f"- **Final HS Code:** {classification.final_hs_code or 'Pending determination'}",
            "",
        ]
        if context.materials:
            lines.append("**Material Composition:**")
            lines += [
                f"- {m.name}: {m.percentage:g}% (by {m.basis.value})" for m in context.materials
            ]
            lines.append("")

        lines += [
            "### GRI Rule Application",
            "",
            "```mermaid",
            "graph TD",
            *self._mermaid_tree(steps, decisions),
            "```",
            "",
            "### Decision Log",
            "",
        ]
        for index, d in enumerate(decisions, start=1):
            lines += [
                f"#### Decision {index}: {d.rule_id}",
                f"- **Question:** {d.question or d.criterion_id}",
                f"- **Answer:** {d.answer}",
                f"- **Reasoning:** {d.reasoning}",
                f"- **Confidence:** {d.confidence * 100:.1f}%",
                f"- **Timestamp:** {d.timestamp.strftime(_DATETIME_FORMAT)}",
                f"- **Hash:** `{d.hash}`",
                "",
            ]

        lines += ["### Compliance Audit", ""]
        lines += [f"- **{p.name}:** {p.status.value}" for p in compliance.phases]
        for phase in compliance.phases:
            lines += [f"  - {phase.phase_id}: {error}" for error in phase.errors]
        if compliance.overall_errors:
            lines += ["", "**Overall Errors:**"]
            lines += [f"- {error}" for error in compliance.overall_errors]
        lines += [
            "",
            f"**Compliant:** {'Yes' if compliance.compliant else 'No'}",
            "",
            "### Defense Checklist Validation",
            "",
            f"**Overall Compliance:** {compliance_score(checklist)}%",
            "",
            *self._format_checklist(checklist),
        ]

        legal_basis = collect_legal_basis(decisions)
        if legal_basis:
            lines += ["### Legal Basis", ""]
            lines += [f"- {citation}" for citation in legal_basis]
            lines.append("")

        lines += [
            "---",
            "",
            "## Document Verification",
            "",
            "This document is hashed (SHA-256 over content, version and timestamp) "
            "and timestamped.",
            "",
            f"**Timestamp:** {timestamp}",
            f"**Valid Until:** "
            f"{(generated_at + timedelta(days=self._settings.report_validity_days)).strftime(_DATE_FORMAT)}",
            "",
        ]
        return "\n".join(lines)

    @staticmethod
    def _mermaid_tree(
        steps: Sequence[StepRecord],
        decisions: Sequence[GRIDecision],
    ) -> list[str]:
        rule_ids = [s.rule_id for s in steps] or applied_rule_sequence(decisions)
        latest: dict[str, GRIDecision] = {d.rule_id: d for d in decisions}
        lines: list[str] = []
        previous = "Start"
        for rule_id in rule_ids:
            decision = latest.get(rule_id)
            if decision is not None:
                label = f'{rule_id}["{rule_id}<br/>{_mermaid_label(decision.answer)}"]'
            else:
                label = f'{rule_id}["{rule_id}"]'
            lines.append(f"    {previous} --> {label}")
            if decision is not None:
                lines.append(f"    class {rule_id} {_confidence_class(decision.confidence)}")
            previous = rule_id
        lines += [
            "    classDef high fill:#90EE90,stroke:#333,stroke-width:2px",
            "    classDef medium fill:#FFD700,stroke:#333,stroke-width:2px",
            "    classDef low fill:#FFB6C1,stroke:#333,stroke-width:2px",
        ]
        return lines

    @staticmethod
    def _format_checklist(checklist: Sequence[ComplianceChecklistItem]) -> list[str]:
        lines: list[str] = []
        for severity in ChecklistSeverity:
            items = [i for i in checklist if i.severity is severity]
            if not items:
                continue
            lines += [f"#### {severity.value.capitalize()} Requirements", ""]
            for item in items:
                mark = "[x]" if item.satisfied else "[ ]"
                lines.append(f"- {mark} **{item.requirement}**")
                if item.evidence:
                    lines.append(f"  - Evidence: {item.evidence}")
            lines.append("")
        return lines
