"""
domain/phases.py
──────────────────────────────────────────────────────────────────────────────
The compliance workflow: three ordered phases, each with steps, validator
predicates over a ClassificationContext, and documentation requirements.

  phase_0  Pre-Classification Analysis
  phase_1  GRI Rule Application
  phase_2  Classification Validation

A phase counts as started once any decision references a rule id of one of
its steps.  The predicates below are pure functions so they can be tested
without a validator instance.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from gri_compliance.domain.models import ClassificationContext, GRIDecision, Severity
from gri_compliance.domain.rules import rule_order

GRI_1_FIRST_MESSAGE = "GRI 1 must be applied before other rules"
SEQUENCE_MESSAGE = "GRI rules not applied in correct sequence"


@dataclass(frozen=True)
class AuditLimits:
    """Tunable thresholds the predicates judge against.

    ComplianceValidator builds one from Settings; the defaults serve
    direct calls.
    """

    min_description_length: int = 50
    # Reasoning must be longer than this to count as documented.
    min_reasoning_length: int = 10


DEFAULT_LIMITS = AuditLimits()


# ── Structure ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Outcome:
    value: str
    next_action: str
    reasoning: str


@dataclass(frozen=True)
class DecisionPoint:
    id: str
    question: str
    outcomes: tuple[Outcome, ...]
    documentation: tuple[str, ...]
    legal_reference: str


@dataclass(frozen=True)
class PhaseStep:
    id: str
    name: str
    description: str
    rule_ids: tuple[str, ...]
    mandatory: bool
    decision_points: tuple[DecisionPoint, ...]
    legal_basis: str


@dataclass(frozen=True)
class PhaseValidator:
    id: str
    description: str
    error_message: str
    severity: Severity
    check: Callable[[ClassificationContext, AuditLimits], bool]

    def passes(self, context: ClassificationContext, limits: AuditLimits = DEFAULT_LIMITS) -> bool:
        return self.check(context, limits)

    def formatted_error(self) -> str:
        return f"{self.severity.value.upper()}: {self.error_message}"


@dataclass(frozen=True)
class DocumentationRequirement:
    id: str
    type: str  # decision | evidence | reasoning | reference
    description: str
    mandatory: bool
    template: str = ""


@dataclass(frozen=True)
class CompliancePhase:
    id: str
    name: str
    description: str
    steps: tuple[PhaseStep, ...]
    validators: tuple[PhaseValidator, ...]
    documentation: tuple[DocumentationRequirement, ...]

    @property
    def rule_ids(self) -> frozenset[str]:
        return frozenset(rule_id for step in self.steps for rule_id in step.rule_ids)

    def is_started(self, decisions: Iterable[GRIDecision]) -> bool:
        ids = self.rule_ids
        return any(d.rule_id in ids for d in decisions)


# ── Predicates ─────────────────────────────────────────────────────────────

def description_is_comprehensive(
    context: ClassificationContext,
    limits: AuditLimits = DEFAULT_LIMITS,
) -> bool:
    return len(context.product_description) >= limits.min_description_length


def physical_characteristics_documented(
    context: ClassificationContext,
    limits: AuditLimits = DEFAULT_LIMITS,
) -> bool:
    if context.physical_characteristics is not None:
        return True
    return any(d.criterion_id == "physical_characteristics" for d in context.decisions)


def gri1_applied_first(
    context: ClassificationContext,
    limits: AuditLimits = DEFAULT_LIMITS,
) -> bool:
    """True unless GRI 1 was bypassed.

    Pre-classification steps (catalog order below 1) may precede GRI 1.  Any
    other rule decided before the first GRI 1 decision is a violation, and
    so is a classification that has advanced past GRI 1 without one.
    """
    for decision in context.decisions:
        if decision.rule_id == "gri_1":
            return True
        order = rule_order(decision.rule_id)
        if order is None or order >= 1:
            return False
    current = rule_order(context.current_rule_id)
    return current is None or current <= 1


def applied_rule_sequence(decisions: Iterable[GRIDecision]) -> list[str]:
    """Rule ids in the order they were first decided, consecutive repeats collapsed."""
    sequence: list[str] = []
    for decision in decisions:
        if not sequence or sequence[-1] != decision.rule_id:
            sequence.append(decision.rule_id)
    return sequence


def sequence_violations(decisions: Iterable[GRIDecision]) -> list[tuple[str, str]]:
    """(previous, current) rule id pairs where catalog order went backwards."""
    violations: list[tuple[str, str]] = []
    last_id: str | None = None
    last_order = float("-inf")
    for rule_id in applied_rule_sequence(decisions):
        order = rule_order(rule_id)
        if order is None:
            continue
        if order < last_order and last_id is not None:
            violations.append((last_id, rule_id))
        last_id, last_order = rule_id, order
    return violations


def rules_in_sequence(
    context: ClassificationContext,
    limits: AuditLimits = DEFAULT_LIMITS,
) -> bool:
    return not sequence_violations(context.decisions)


def decisions_documented(
    context: ClassificationContext,
    limits: AuditLimits = DEFAULT_LIMITS,
) -> bool:
    return all(len(d.reasoning) > limits.min_reasoning_length for d in context.decisions)


# ── Phase table ────────────────────────────────────────────────────────────

PHASES: tuple[CompliancePhase, ...] = (
    CompliancePhase(
        id="phase_0",
        name="Pre-Classification Analysis",
        description="Initial product analysis and information gathering phase",
        steps=(
            PhaseStep(
                id="step_0.1",
                name="Product Information Collection",
                description="Gather comprehensive product information",
                rule_ids=("pre_classification",),
                mandatory=True,
                decision_points=(
                    DecisionPoint(
                        id="dp_0.1.1",
                        question="Is the product description complete?",
                        outcomes=(
                            Outcome("Yes", "Proceed to material analysis",
                                    "Sufficient information for classification"),
                            Outcome("No", "Request additional information",
                                    "Incomplete information risks misclassification"),
                        ),
                        documentation=("Product specifications", "Technical datasheets",
                                       "Commercial invoices"),
                        legal_reference="Pre-classification requirement for accurate determination",
                    ),
                ),
                legal_basis=(
                    "Comprehensive product analysis is prerequisite for defensible classification"
                ),
            ),
            PhaseStep(
                id="step_0.2",
                name="Material Composition Analysis",
                description="Determine material composition and percentages",
                rule_ids=("product_analysis",),
                mandatory=False,
                decision_points=(
                    DecisionPoint(
                        id="dp_0.2.1",
                        question="Is the product composed of multiple materials?",
                        outcomes=(
                            Outcome("Single material", "Document material and proceed",
                                    "Simple classification by material"),
                            Outcome("Multiple materials", "Analyze composition percentages",
                                    "May require GRI 2(b) or 3(b) application"),
                        ),
                        documentation=("Material test reports", "Composition certificates"),
                        legal_reference="Material composition affects GRI application",
                    ),
                ),
                legal_basis="Material composition determines applicable GRI rules",
            ),
            PhaseStep(
                id="step_0.3",
                name="Commercial Context Analysis",
                description="Understand commercial designation and use",
                rule_ids=("pre_classification",),
                mandatory=True,
                decision_points=(
                    DecisionPoint(
                        id="dp_0.3.1",
                        question="What is the commercial designation?",
                        outcomes=(
                            Outcome("Trade name exists", "Document trade name and industry usage",
                                    "Trade names may indicate specific classification"),
                            Outcome("Generic product", "Focus on functional characteristics",
                                    "Classification by function and composition"),
                        ),
                        documentation=("Trade catalogs", "Industry standards",
                                       "Marketing materials"),
                        legal_reference="Commercial designation influences classification",
                    ),
                ),
                legal_basis="Commercial reality principle in classification",
            ),
        ),
        validators=(
            PhaseValidator(
                id="vr_0.1",
                description="Product description must be comprehensive",
                error_message="Product description too brief for accurate classification",
                severity=Severity.CRITICAL,
                check=description_is_comprehensive,
            ),
            PhaseValidator(
                id="vr_0.2",
                description="Physical characteristics must be documented",
                error_message="Physical characteristics missing",
                severity=Severity.WARNING,
                check=physical_characteristics_documented,
            ),
        ),
        documentation=(
            DocumentationRequirement(
                id="dr_0.1",
                type="evidence",
                description="Product samples or detailed photos",
                mandatory=False,
                template="Physical evidence supporting product description",
            ),
            DocumentationRequirement(
                id="dr_0.2",
                type="reference",
                description="Technical specifications or datasheets",
                mandatory=True,
                template="Official product documentation from manufacturer",
            ),
        ),
    ),
    CompliancePhase(
        id="phase_1",
        name="GRI Rule Application",
        description="Sequential application of General Rules for Interpretation",
        steps=(
            PhaseStep(
                id="step_1.1",
                name="GRI 1 - Heading and Notes Analysis",
                description="Classification by terms of headings and section/chapter notes",
                rule_ids=("gri_1",),
                mandatory=True,
                decision_points=(
                    DecisionPoint(
                        id="dp_1.1.1",
                        question="Do any section or chapter notes exclude this product?",
                        outcomes=(
                            Outcome("Yes - Excluded", "Document exclusion and find alternative",
                                    "Legal notes take precedence over heading descriptions"),
                            Outcome("No - Not excluded", "Proceed to heading analysis",
                                    "Product not excluded by legal notes"),
                        ),
                        documentation=("Relevant section notes", "Chapter notes",
                                       "Exclusion analysis"),
                        legal_reference="GRI 1 - Legal notes have binding force",
                    ),
                    DecisionPoint(
                        id="dp_1.1.2",
                        question="Does the product match a specific heading?",
                        outcomes=(
                            Outcome("Single heading match", "Validate and proceed to GRI 6",
                                    "Clear heading match found"),
                            Outcome("Multiple headings possible", "Apply GRI 3 for resolution",
                                    "Multiple headings require specificity analysis"),
                            Outcome("No clear match", "Detailed product analysis required",
                                    "No obvious heading - analyze characteristics"),
                        ),
                        documentation=("Heading analysis", "Match reasoning"),
                        legal_reference="GRI 1 - Terms of headings",
                    ),
                ),
                legal_basis="GRI 1 is the primary rule - headings and notes determine classification",
            ),
            PhaseStep(
                id="step_1.2",
                name="Product State Analysis",
                description="Determine if GRI 2 rules apply",
                rule_ids=("analyze_product",),
                mandatory=False,
                decision_points=(
                    DecisionPoint(
                        id="dp_1.2.1",
                        question="What is the state of the product?",
                        outcomes=(
                            Outcome("Complete", "Continue with standard classification",
                                    "No GRI 2(a) consideration needed"),
                            Outcome("Incomplete/Unfinished", "Apply GRI 2(a)",
                                    "Must determine if has essential character"),
                            Outcome("Multiple materials", "Apply GRI 2(b)",
                                    "Mixture/composite requires analysis"),
                        ),
                        documentation=("Assembly state", "Completeness assessment"),
                        legal_reference="Determines GRI 2 applicability",
                    ),
                ),
                legal_basis="Product state determines classification approach",
            ),
            PhaseStep(
                id="step_1.3",
                name="Conflict Resolution (GRI 2 to 4)",
                description="Resolve incomplete, composite or multi-heading goods",
                rule_ids=("gri_2a", "gri_2b", "parts_classification",
                          "gri_3a", "gri_3b", "gri_3c", "gri_4"),
                mandatory=False,
                decision_points=(
                    DecisionPoint(
                        id="dp_1.3.1",
                        question="Which rule resolved the heading?",
                        outcomes=(
                            Outcome("GRI 2", "Document state or composition analysis",
                                    "Incomplete or mixed goods"),
                            Outcome("GRI 3", "Document specificity or essential character",
                                    "Goods prima facie classifiable under several headings"),
                            Outcome("GRI 4", "Document the most akin goods",
                                    "No heading covers the goods"),
                        ),
                        documentation=("Rule application record", "Essential character analysis"),
                        legal_reference="GRI 2 to 4 - Applied in order",
                    ),
                ),
                legal_basis="Later rules apply only where earlier rules do not resolve classification",
            ),
            PhaseStep(
                id="step_1.4",
                name="Packing and Subheading Classification",
                description="Apply GRI 5 to containers and packing, then GRI 6 to subheadings",
                rule_ids=("gri_5a", "gri_5b", "gri_6"),
                mandatory=False,
                decision_points=(
                    DecisionPoint(
                        id="dp_1.4.1",
                        question="Is the heading refined to the full tariff item?",
                        outcomes=(
                            Outcome("Yes", "Proceed to validation",
                                    "All subheading levels compared"),
                            Outcome("No", "Continue subheading comparison",
                                    "Only subheadings at the same level are comparable"),
                        ),
                        documentation=("Subheading analysis", "Packing assessment"),
                        legal_reference="GRI 5 and GRI 6",
                    ),
                ),
                legal_basis="Subheadings are determined by GRI 6 once the heading is fixed",
            ),
        ),
        validators=(
            PhaseValidator(
                id="vr_1.1",
                description="Section/chapter notes must be checked first",
                error_message=GRI_1_FIRST_MESSAGE,
                severity=Severity.CRITICAL,
                check=gri1_applied_first,
            ),
            PhaseValidator(
                id="vr_1.2",
                description="Rules must be applied sequentially",
                error_message=SEQUENCE_MESSAGE,
                severity=Severity.CRITICAL,
                check=rules_in_sequence,
            ),
        ),
        documentation=(
            DocumentationRequirement(
                id="dr_1.1",
                type="decision",
                description="Document each GRI rule application",
                mandatory=True,
                template="Rule: [X], Decision: [Y], Reasoning: [Z]",
            ),
            DocumentationRequirement(
                id="dr_1.2",
                type="reasoning",
                description="Explain why each rule was applied or skipped",
                mandatory=True,
            ),
        ),
    ),
    CompliancePhase(
        id="phase_2",
        name="Classification Validation",
        description="Validate and document the final classification",
        steps=(
            PhaseStep(
                id="step_2.1",
                name="Legal Note Compliance",
                description="Verify compliance with all applicable legal notes",
                rule_ids=("validate_heading",),
                mandatory=True,
                decision_points=(
                    DecisionPoint(
                        id="dp_2.1.1",
                        question="Does the classification comply with all legal notes?",
                        outcomes=(
                            Outcome("Yes - Compliant", "Proceed to final validation",
                                    "No legal note violations"),
                            Outcome("No - Non-compliant", "Review and correct classification",
                                    "Legal note violation must be resolved"),
                        ),
                        documentation=("Legal note checklist", "Compliance verification"),
                        legal_reference="Legal notes are binding",
                    ),
                ),
                legal_basis="Final classification must comply with all legal notes",
            ),
            PhaseStep(
                id="step_2.2",
                name="Documentation Completeness",
                description="Ensure all required documentation is complete",
                rule_ids=("validate_heading",),
                mandatory=True,
                decision_points=(
                    DecisionPoint(
                        id="dp_2.2.1",
                        question="Is all required documentation complete?",
                        outcomes=(
                            Outcome("Yes - Complete", "Generate final report",
                                    "Documentation sufficient for defense"),
                            Outcome("No - Incomplete", "Identify and complete missing documentation",
                                    "Incomplete documentation risks dispute"),
                        ),
                        documentation=("Documentation checklist", "Audit trail"),
                        legal_reference="Documentation required for legal defensibility",
                    ),
                ),
                legal_basis="Complete documentation essential for customs compliance",
            ),
        ),
        validators=(
            PhaseValidator(
                id="vr_2.1",
                description="All decisions must be documented",
                error_message="Some decisions lack proper documentation",
                severity=Severity.CRITICAL,
                check=decisions_documented,
            ),
        ),
        documentation=(
            DocumentationRequirement(
                id="dr_2.1",
                type="reference",
                description="Complete audit trail of classification process",
                mandatory=True,
            ),
        ),
    ),
)
