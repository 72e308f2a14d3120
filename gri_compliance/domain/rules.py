"""
domain/rules.py
──────────────────────────────────────────────────────────────────────────────
The GRI rule catalog: the WCO General Rules for Interpretation plus the
analysis and validation steps a classification walks through around them.

The catalog is pure data, built once at import time and shared read-only by
every classification (frozen dataclasses behind a MappingProxyType).  Each
rule's ``order`` is the expected position in the workflow; the engine does
not enforce it, the ComplianceValidator audits it after the fact.  Rules
sharing an integer order (gri_3a / gri_3b / gri_3c) are alternative
resolutions of GRI 3, not a sequence.  Fractional orders mark analysis steps
that sit between two official rules.

Every NextStep target is a catalog id or None (terminal), and no declared
transition leads to a lower order, so following the catalog's own branching
always yields a monotonic rule sequence.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping

from gri_compliance.domain.exceptions import InvalidRuleReference
from gri_compliance.domain.models import AnswerType, ClassificationContext, Logic, Operator

INITIAL_RULE_ID = "pre_classification"

# Materials for GRI 2(b)/3(b) must total 100 % within this tolerance.
PERCENTAGE_TOLERANCE = 0.01

_HEADING_RE = re.compile(r"^\d{4}$")


# ── Rule structure ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Condition:
    """One comparison against the latest answer to a decision criterion."""

    field: str
    operator: Operator
    value: Any
    logic: Logic | None = None


@dataclass(frozen=True)
class NextStep:
    conditions: tuple[Condition, ...]
    next_rule: str | None
    reasoning: str


@dataclass(frozen=True)
class ValidationRule:
    field: str
    rule: str
    error_message: str
    validator: Callable[[Any, ClassificationContext], bool]


@dataclass(frozen=True)
class DecisionCriterion:
    id: str
    question: str
    type: AnswerType
    options: tuple[str, ...] = ()
    required: bool = True
    help_text: str = ""
    legal_reference: str = ""


@dataclass(frozen=True)
class RuleExample:
    product: str
    decision: str
    reasoning: str


@dataclass(frozen=True)
class GRIRule:
    id: str
    name: str
    description: str
    legal_text: str
    order: float
    required_inputs: tuple[str, ...] = ()
    validation_rules: tuple[ValidationRule, ...] = ()
    decision_criteria: tuple[DecisionCriterion, ...] = ()
    next_steps: tuple[NextStep, ...] = ()
    legal_notes: tuple[str, ...] = ()
    examples: tuple[RuleExample, ...] = ()

    def criterion(self, criterion_id: str) -> DecisionCriterion | None:
        for criterion in self.decision_criteria:
            if criterion.id == criterion_id:
                return criterion
        return None

    @property
    def targets(self) -> tuple[str | None, ...]:
        return tuple(step.next_rule for step in self.next_steps)


# ── Validation predicates ──────────────────────────────────────────────────

def _min_length(length: int) -> Callable[[Any, ClassificationContext], bool]:
    def check(value: Any, context: ClassificationContext) -> bool:
        return isinstance(value, str) and len(value) >= length
    return check


def _non_empty_list(value: Any, context: ClassificationContext) -> bool:
    return isinstance(value, list) and len(value) > 0


def _at_least_two(value: Any, context: ClassificationContext) -> bool:
    return isinstance(value, list) and len(value) >= 2


def _four_digit_heading(value: Any, context: ClassificationContext) -> bool:
    return isinstance(value, str) and bool(_HEADING_RE.match(value))


def material_total(value: Any) -> float | None:
    """Sum of the percentages in *value*, or None if it is not a material list.

    Accepts Material models, ``{"percentage": ...}`` dicts and bare numbers.
    """
    if not isinstance(value, list):
        return None
    total = 0.0
    for item in value:
        if isinstance(item, dict):
            pct = item.get("percentage") or 0
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            pct = item
        else:
            pct = getattr(item, "percentage", 0) or 0
        try:
            total += float(pct)
        except (TypeError, ValueError):
            return None
    return total


def _percentages_total_100(value: Any, context: ClassificationContext) -> bool:
    total = material_total(value)
    return total is not None and abs(total - 100) <= PERCENTAGE_TOLERANCE


# ── Catalog ────────────────────────────────────────────────────────────────

def _c(field: str, operator: Operator, value: Any, logic: Logic | None = None) -> Condition:
    return Condition(field=field, operator=operator, value=value, logic=logic)


_INCOMPLETE_STATES = ("Incomplete but functional", "Unfinished", "Unassembled")
_FULL_TARIFF_LEVELS = ("8-digit tariff item", "10-digit statistical")

_RULES: tuple[GRIRule, ...] = (
    GRIRule(
        id="pre_classification",
        name="Pre-Classification Product Analysis",
        description="Comprehensive product analysis before applying GRI rules",
        legal_text="Gather complete product information to ensure accurate classification",
        order=0,
        required_inputs=("product_name", "product_description"),
        validation_rules=(
            ValidationRule(
                field="product_description",
                rule="comprehensive",
                error_message=(
                    "Product description must include physical, functional, "
                    "and commercial characteristics"
                ),
                validator=_min_length(50),
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="physical_characteristics",
                question="What are the physical characteristics of the product?",
                type=AnswerType.MULTISELECT,
                options=("Material composition", "Physical state", "Dimensions/weight",
                         "Color/texture", "Assembly status", "Processing level"),
                help_text="Select all applicable physical characteristics",
                legal_reference="Pre-classification requirement",
            ),
            DecisionCriterion(
                id="functional_characteristics",
                question="What is the primary function and use of the product?",
                type=AnswerType.TEXT,
                help_text="Describe what the product does and how it is used",
                legal_reference="Essential for GRI application",
            ),
            DecisionCriterion(
                id="commercial_characteristics",
                question="What are the commercial characteristics?",
                type=AnswerType.MULTISELECT,
                options=("Trade name", "Industry classification", "Target market",
                         "Packaging type", "Retail/bulk presentation"),
                help_text="Commercial context affects classification",
                legal_reference="Commercial designation consideration",
            ),
            DecisionCriterion(
                id="material_composition_detail",
                question="If multiple materials, provide composition percentages",
                type=AnswerType.TEXT,
                required=False,
                help_text="E.g., 60% cotton, 40% polyester - specify by weight/value/volume",
                legal_reference="Required for GRI 2(b) and 3(b) application",
            ),
            DecisionCriterion(
                id="requires_detailed_analysis",
                question="Does the product need a structured function and composition analysis?",
                type=AnswerType.BOOLEAN,
                required=False,
                help_text="Multi-function or composite products benefit from a separate analysis step",
                legal_reference="Pre-classification requirement",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("requires_detailed_analysis", Operator.EQUALS, True),),
                next_rule="product_analysis",
                reasoning="Complex product - analyse function and composition before GRI 1",
            ),
            NextStep(
                conditions=(_c("physical_characteristics", Operator.NOT_IN, ()),),
                next_rule="gri_1",
                reasoning="Product analysis complete - proceed to GRI 1",
            ),
        ),
        legal_notes=(
            "Complete product analysis is essential for defensible classification",
            "Document all characteristics even if they seem minor",
            "Physical evidence (photos, samples) should supplement descriptions",
        ),
    ),

    GRIRule(
        id="product_analysis",
        name="Product Function and Composition Analysis",
        description="Structured analysis of the principal function, composition and presentation",
        legal_text=(
            "The principal function, composition and presentation of the goods must be "
            "established before the terms of the headings are applied"
        ),
        order=0.5,
        required_inputs=("primary_function", "material_composition"),
        decision_criteria=(
            DecisionCriterion(
                id="primary_function",
                question="What is the principal function of the product?",
                type=AnswerType.TEXT,
                help_text="The function that defines what the product is used for",
                legal_reference="Section XVI Note 3 - Principal function",
            ),
            DecisionCriterion(
                id="secondary_functions",
                question="Does the product perform any secondary functions?",
                type=AnswerType.TEXT,
                required=False,
                help_text="List additional functions in order of importance",
                legal_reference="Section XVI Note 3 - Composite machines",
            ),
            DecisionCriterion(
                id="composite_product",
                question="Is the product made of more than one material or component?",
                type=AnswerType.BOOLEAN,
                help_text="Composite goods may later require GRI 2(b) or 3(b)",
                legal_reference="GRI 2(b) - Mixtures and combinations",
            ),
            DecisionCriterion(
                id="packaging_present",
                question="Is the product presented with a case, container or packing?",
                type=AnswerType.BOOLEAN,
                help_text="Determines whether GRI 5 will need to be considered",
                legal_reference="GRI 5 - Containers and packing",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(),
                next_rule="gri_1",
                reasoning="Function and composition documented - proceed to GRI 1",
            ),
        ),
        legal_notes=(
            "Principal function governs classification of multi-function machines",
            "Record composition now so GRI 2(b) and 3(b) can rely on it",
        ),
    ),

    GRIRule(
        id="gri_1",
        name="Classification by terms of headings and notes",
        description=(
            "For legal purposes, classification shall be determined according to the "
            "terms of the headings and any relative section or chapter notes"
        ),
        legal_text=(
            "The titles of sections, chapters and sub-chapters are provided for ease of "
            "reference only; for legal purposes, classification shall be determined "
            "according to the terms of the headings and any relative section or chapter "
            "notes and, provided such headings or notes do not otherwise require, "
            "according to the following provisions."
        ),
        order=1,
        required_inputs=("product_description", "primary_function", "physical_characteristics"),
        validation_rules=(
            ValidationRule(
                field="product_description",
                rule="min_length",
                error_message=(
                    "Product description must be at least 20 characters for accurate "
                    "classification"
                ),
                validator=_min_length(20),
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="section_identification",
                question="Which HS Sections (I-XXI) could potentially cover this product?",
                type=AnswerType.MULTISELECT,
                options=(
                    "I-Live animals/products", "II-Vegetable products", "III-Fats and oils",
                    "IV-Prepared foodstuffs", "V-Mineral products", "VI-Chemical products",
                    "VII-Plastics/rubber", "VIII-Leather/fur", "IX-Wood/cork",
                    "X-Paper/pulp", "XI-Textiles", "XII-Footwear/headgear",
                    "XIII-Stone/ceramic", "XIV-Precious metals", "XV-Base metals",
                    "XVI-Machinery/electrical", "XVII-Transport", "XVIII-Instruments",
                    "XIX-Arms/ammunition", "XX-Miscellaneous", "XXI-Works of art",
                ),
                help_text=(
                    "Section titles are for reference only, but help navigate to relevant "
                    "chapters. Select all that might apply."
                ),
                legal_reference="Systematic approach to classification",
            ),
            DecisionCriterion(
                id="chapter_analysis",
                question="Which chapters within the selected sections are most relevant?",
                type=AnswerType.TEXT,
                help_text=(
                    "List chapter numbers and review their notes carefully - chapter notes "
                    "ARE legally binding"
                ),
                legal_reference="GRI 1 - Chapter notes are legally binding",
            ),
            DecisionCriterion(
                id="section_chapter_notes",
                question="Are there any Section or Chapter Notes that apply?",
                type=AnswerType.MULTISELECT,
                options=("Exclusion notes", "Inclusion notes", "Definition notes",
                         "Scope notes", "None apply"),
                help_text=(
                    "These notes have legal priority - check exclusions FIRST before "
                    "considering headings"
                ),
                legal_reference="GRI 1 - Section and Chapter Notes",
            ),
            DecisionCriterion(
                id="heading_match",
                question="After considering notes, does the product match specific heading(s)?",
                type=AnswerType.SELECT,
                options=("Yes - Single heading", "Yes - Multiple headings",
                         "No - No clear match", "Uncertain - Need more info",
                         "Excluded by notes"),
                help_text="Consider the exact wording of headings within non-excluded chapters only",
                legal_reference="GRI 1 - Terms of headings",
            ),
            DecisionCriterion(
                id="heading_specificity",
                question="If heading(s) found, how specific is the description?",
                type=AnswerType.SELECT,
                options=("Names the product specifically", "Describes the product type",
                         "General category only", "Not applicable"),
                required=False,
                help_text="Document specificity level for potential GRI 3(a) application",
                legal_reference="GRI 1 leading to GRI 3(a)",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(
                    _c("heading_match", Operator.EQUALS, "Yes - Single heading"),
                    _c("section_chapter_notes", Operator.NOT_IN, ("Exclusion notes",), Logic.AND),
                ),
                next_rule="gri_5a",
                reasoning=(
                    "Single heading found with no exclusions - check containers and packing "
                    "before subheading classification"
                ),
            ),
            NextStep(
                conditions=(_c("heading_match", Operator.EQUALS, "Yes - Multiple headings"),),
                next_rule="gri_3a",
                reasoning="Multiple headings possible - must apply GRI 3 to determine most specific",
            ),
            NextStep(
                conditions=(
                    _c("heading_match", Operator.IN,
                       ("No - No clear match", "Uncertain - Need more info")),
                ),
                next_rule="analyze_product",
                reasoning="No clear heading match - need detailed product analysis",
            ),
        ),
        legal_notes=(
            "Section and Chapter Notes are legally binding and override heading descriptions",
            "Heading terms must be interpreted in their legal/technical sense, not colloquial",
            "Consider Explanatory Notes for interpretation guidance "
            "(not legally binding but authoritative)",
        ),
        examples=(
            RuleExample(
                product="Smartphone",
                decision="Heading 8517 - Telephone sets",
                reasoning='Product specifically named in heading as "smartphones"',
            ),
            RuleExample(
                product="Wooden chair",
                decision="Heading 9401 - Seats",
                reasoning="Clear match to heading terms, no exclusion notes apply",
            ),
        ),
    ),

    GRIRule(
        id="analyze_product",
        name="Detailed Product Analysis",
        description=(
            "When no clear heading match exists, analyze product characteristics to "
            "determine classification approach"
        ),
        legal_text="Systematic analysis required when heading terms are not immediately applicable",
        order=1.5,
        required_inputs=("detailed_description", "material_composition", "assembly_state"),
        decision_criteria=(
            DecisionCriterion(
                id="product_state",
                question="What is the state of the product?",
                type=AnswerType.SELECT,
                options=("Complete and finished", "Incomplete but functional", "Unfinished",
                         "Unassembled", "Parts only"),
                help_text="Determines whether GRI 2(a) applies",
                legal_reference="GRI 2(a) - Incomplete articles",
            ),
            DecisionCriterion(
                id="material_complexity",
                question="Is the product made of multiple materials?",
                type=AnswerType.SELECT,
                options=("Single material", "Multiple materials - one dominant",
                         "Multiple materials - equal importance", "Composite material"),
                help_text="Determines whether GRI 2(b) or 3(b) applies",
                legal_reference="GRI 2(b) - Mixtures",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("product_state", Operator.IN, _INCOMPLETE_STATES),),
                next_rule="gri_2a",
                reasoning="Product is incomplete/unfinished - apply GRI 2(a)",
            ),
            NextStep(
                conditions=(_c("material_complexity", Operator.NOT_IN, ("Single material",)),),
                next_rule="gri_2b",
                reasoning="Product has multiple materials - apply GRI 2(b)",
            ),
            NextStep(
                conditions=(_c("product_state", Operator.EQUALS, "Parts only"),),
                next_rule="parts_classification",
                reasoning="Only parts are presented - classify as parts",
            ),
            NextStep(
                conditions=(_c("product_state", Operator.EQUALS, "Complete and finished"),),
                next_rule="gri_4",
                reasoning=(
                    "Complete single-material article with no matching heading - "
                    "classify by similarity"
                ),
            ),
        ),
    ),

    GRIRule(
        id="gri_2a",
        name="Incomplete or unfinished articles",
        description=(
            "Any reference in a heading to an article shall be taken to include a reference "
            "to that article incomplete or unfinished, provided that, as presented, the "
            "incomplete or unfinished article has the essential character of the complete "
            "or finished article"
        ),
        legal_text=(
            "It shall also be taken to include a reference to that article complete or "
            "finished (or failing to be classified as complete or finished by virtue of "
            "this rule), presented unassembled or disassembled."
        ),
        order=2,
        required_inputs=("missing_components", "functionality_assessment", "assembly_state"),
        validation_rules=(
            ValidationRule(
                field="missing_components",
                rule="required_list",
                error_message="Must specify what components are missing",
                validator=_non_empty_list,
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="essential_character_present",
                question=(
                    "Does the incomplete article have the essential character of the "
                    "complete article?"
                ),
                type=AnswerType.BOOLEAN,
                help_text=(
                    "Essential character means it is recognizable as the complete article "
                    "and/or can perform the main function"
                ),
                legal_reference="GRI 2(a) - Essential character test",
            ),
            DecisionCriterion(
                id="missing_components_critical",
                question="Are the missing components critical to the product's identity?",
                type=AnswerType.SELECT,
                options=("No - Minor/accessory parts", "Yes - Major components",
                         "Mixed - Some critical, some minor"),
                help_text="Minor accessories missing typically don't affect essential character",
                legal_reference="GRI 2(a) - Essential character",
            ),
            DecisionCriterion(
                id="assembly_presentation",
                question="How is the product presented?",
                type=AnswerType.SELECT,
                options=("Assembled", "Unassembled - all parts present",
                         "Unassembled - parts missing", "Partially assembled"),
                help_text="Unassembled articles with all parts are classified as complete",
                legal_reference="GRI 2(a) - Unassembled articles",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("essential_character_present", Operator.EQUALS, True),),
                next_rule="gri_5a",
                reasoning=(
                    "Has essential character - classified as the complete article; "
                    "check containers and packing"
                ),
            ),
            NextStep(
                conditions=(_c("essential_character_present", Operator.EQUALS, False),),
                next_rule="parts_classification",
                reasoning="Lacks essential character - classify as parts or materials",
            ),
        ),
        legal_notes=(
            "Essential character is determined by what makes the article recognizable",
            "Functionality is key - can it perform its intended purpose?",
            "Unassembled articles are classified as complete if all parts are present",
        ),
        examples=(
            RuleExample(
                product="Car without wheels",
                decision="Still classified as a car",
                reasoning=(
                    "Has essential character despite missing wheels - recognizable and "
                    "main structure intact"
                ),
            ),
            RuleExample(
                product="Bicycle frame only",
                decision="Classified as bicycle parts",
                reasoning="Frame alone lacks essential character of complete bicycle",
            ),
        ),
    ),

    GRIRule(
        id="gri_2b",
        name="Mixtures and composite goods",
        description=(
            "Any reference in a heading to goods of a given material or substance shall "
            "include mixtures or combinations of that material with other materials"
        ),
        legal_text=(
            "Any reference to goods consisting of more than one material or substance shall "
            "be regarded as referring to goods consisting wholly or partly of such materials "
            "or substances. Classification of goods consisting of more than one material or "
            "substance shall be according to the principles of rule 3."
        ),
        order=2,
        required_inputs=("material_composition", "material_percentages", "material_function"),
        validation_rules=(
            ValidationRule(
                field="material_percentages",
                rule="total_100",
                error_message="Material percentages must total 100%",
                validator=_percentages_total_100,
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="mixture_type",
                question="What type of material combination is this?",
                type=AnswerType.SELECT,
                options=("Simple mixture", "Composite good",
                         "Assembled from different materials", "Chemical combination"),
                help_text="Determines classification approach",
                legal_reference="GRI 2(b) - Types of combinations",
            ),
            DecisionCriterion(
                id="dominant_material",
                question="Is there a clearly dominant material?",
                type=AnswerType.SELECT,
                options=("Yes - By weight", "Yes - By value", "Yes - By function",
                         "No - Materials roughly equal"),
                help_text="If one material clearly dominates, may classify by that material",
                legal_reference="GRI 2(b) leading to GRI 3(b)",
            ),
            DecisionCriterion(
                id="heading_coverage",
                question="Do any headings specifically cover this combination?",
                type=AnswerType.BOOLEAN,
                help_text="Some headings explicitly cover mixtures or composite goods",
                legal_reference="GRI 2(b) - Specific mixture headings",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("heading_coverage", Operator.EQUALS, True),),
                next_rule="gri_5a",
                reasoning=(
                    "Specific heading exists for this mixture/composite - classify there "
                    "and check containers and packing"
                ),
            ),
            NextStep(
                conditions=(_c("dominant_material", Operator.CONTAINS, "Yes"),),
                next_rule="gri_3b",
                reasoning="One material dominates - proceed to essential character analysis",
            ),
            NextStep(
                conditions=(
                    _c("dominant_material", Operator.EQUALS, "No - Materials roughly equal"),
                ),
                next_rule="gri_3a",
                reasoning="No dominant material - apply GRI 3 principles",
            ),
        ),
        legal_notes=(
            "Mixtures may be classified under heading for dominant material if it gives "
            "essential character",
            "Composite goods are classified by GRI 3 principles",
            "Some headings specifically provide for mixtures",
        ),
        examples=(
            RuleExample(
                product="Plastic chair with metal legs",
                decision="Apply GRI 3 principles",
                reasoning="Composite good with multiple materials requiring GRI 3 analysis",
            ),
        ),
    ),

    GRIRule(
        id="parts_classification",
        name="Parts and accessories classification",
        description=(
            "Articles lacking the essential character of the complete article are "
            "classified as parts where a heading or note provides for them"
        ),
        legal_text=(
            "Parts suitable for use solely or principally with a particular kind of machine "
            "or article are classified with that machine or article unless a section or "
            "chapter note provides otherwise."
        ),
        order=2.5,
        required_inputs=("part_description", "parent_article"),
        decision_criteria=(
            DecisionCriterion(
                id="parts_heading_identified",
                question="Does a heading or note provide specifically for these parts?",
                type=AnswerType.BOOLEAN,
                help_text="Check the parts notes of the section before the headings",
                legal_reference="Section XVI Note 2 / Section XVII Note 3",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("parts_heading_identified", Operator.EQUALS, True),),
                next_rule="gri_5a",
                reasoning="Parts heading identified - check containers and packing",
            ),
            NextStep(
                conditions=(_c("parts_heading_identified", Operator.EQUALS, False),),
                next_rule="gri_4",
                reasoning="No parts provision applies - classify by similarity",
            ),
        ),
        legal_notes=(
            "Parts of general use are excluded from parts headings by Section XV Note 2",
            "Parts notes take precedence over heading terms",
        ),
    ),

    GRIRule(
        id="gri_3a",
        name="Most specific description prevails",
        description=(
            "When goods are prima facie classifiable under two or more headings, the heading "
            "which provides the most specific description shall be preferred"
        ),
        legal_text=(
            "When by application of rule 2(b) or for any other reason, goods are prima facie "
            "classifiable under two or more headings, classification shall be effected as "
            "follows: The heading which provides the most specific description shall be "
            "preferred to headings providing a more general description."
        ),
        order=3,
        required_inputs=("possible_headings", "specificity_analysis"),
        validation_rules=(
            ValidationRule(
                field="possible_headings",
                rule="minimum_two",
                error_message="GRI 3 only applies when multiple headings are possible",
                validator=_at_least_two,
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="specificity_comparison",
                question="Which heading provides the most specific description?",
                type=AnswerType.TEXT,
                help_text="Consider: named products > product types > general categories",
                legal_reference="GRI 3(a) - Specificity hierarchy",
            ),
            DecisionCriterion(
                id="named_product",
                question="Does any heading mention the product by its specific name?",
                type=AnswerType.SELECT,
                options=("Yes", "No", "Partially"),
                help_text="A heading that names the product is most specific",
                legal_reference="GRI 3(a) - Named products",
            ),
            DecisionCriterion(
                id="description_completeness",
                question="Which heading most completely describes the product?",
                type=AnswerType.TEXT,
                help_text="More complete descriptions are more specific",
                legal_reference="GRI 3(a) - Description completeness",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("named_product", Operator.EQUALS, "Yes"),),
                next_rule="gri_5a",
                reasoning="Heading specifically names product - most specific description found",
            ),
            NextStep(
                conditions=(
                    _c("specificity_comparison", Operator.EQUALS, "Equal specificity"),
                    _c("named_product", Operator.EQUALS, "No", Logic.OR),
                ),
                next_rule="gri_3b",
                reasoning="Headings equally specific - proceed to essential character test",
            ),
        ),
        legal_notes=(
            "Specificity is relative - compare headings against each other",
            "A heading that identifies products by name is more specific than by class",
            "If headings are equally specific, GRI 3(a) fails and proceed to 3(b)",
        ),
        examples=(
            RuleExample(
                product="Electric toothbrush",
                decision=(
                    "Heading 8509 (electromechanical domestic appliances) over 9603 (brushes)"
                ),
                reasoning="Heading 8509 more specifically describes the electric nature",
            ),
        ),
    ),

    GRIRule(
        id="gri_3b",
        name="Essential character determination",
        description=(
            "Mixtures, composite goods, and goods put up in sets shall be classified "
            "according to the material or component which gives them their essential character"
        ),
        legal_text=(
            "However, when two or more headings each refer to part only of the materials or "
            "substances contained in mixed or composite goods or to part only of the items "
            "in a set put up for retail sale, those headings are to be regarded as equally "
            "specific in relation to those goods, even if one of them gives a more complete "
            "or precise description of the goods."
        ),
        order=3,
        required_inputs=("components_analysis", "character_factors"),
        decision_criteria=(
            DecisionCriterion(
                id="character_factor",
                question="What factor determines the essential character?",
                type=AnswerType.MULTISELECT,
                options=("Bulk/quantity", "Weight", "Value", "Role in use",
                         "Marketability", "Visual impact"),
                help_text="Multiple factors may apply - identify the most important",
                legal_reference="GRI 3(b) - Essential character factors",
            ),
            DecisionCriterion(
                id="component_analysis",
                question="Which component/material gives the product its essential character?",
                type=AnswerType.TEXT,
                help_text="Consider what makes the product what it is in the eyes of consumers",
                legal_reference="GRI 3(b) - Essential character",
            ),
            DecisionCriterion(
                id="character_reasoning",
                question="Explain why this component gives essential character",
                type=AnswerType.TEXT,
                help_text="Provide clear reasoning for legal documentation",
                legal_reference="GRI 3(b) - Documentation requirement",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(
                    _c("component_analysis", Operator.NOT_IN, ("Cannot determine", "None")),
                ),
                next_rule="gri_5a",
                reasoning="Essential character determined - classify by that component",
            ),
            NextStep(
                conditions=(_c("component_analysis", Operator.EQUALS, "Cannot determine"),),
                next_rule="gri_3c",
                reasoning="No essential character determinable - proceed to GRI 3(c)",
            ),
        ),
        legal_notes=(
            "Essential character is what gives the goods their identity",
            "No single factor always determines essential character",
            "Consider commercial reality and consumer perception",
        ),
        examples=(
            RuleExample(
                product="Leather wallet with metal clasp",
                decision="Leather gives essential character",
                reasoning="Leather provides main function, value, and marketability",
            ),
        ),
    ),

    GRIRule(
        id="gri_3c",
        name="Last heading in numerical order",
        description=(
            "When goods cannot be classified by reference to 3(a) or 3(b), they shall be "
            "classified under the heading which occurs last in numerical order"
        ),
        legal_text=(
            "When goods cannot be classified by reference to 3(a) or 3(b), they shall be "
            "classified under the heading which occurs last in numerical order among those "
            "which equally merit consideration."
        ),
        order=3,
        required_inputs=("confirmed_headings",),
        validation_rules=(
            ValidationRule(
                field="confirmed_headings",
                rule="all_equal_merit",
                error_message="Confirm all headings equally merit consideration",
                validator=_at_least_two,
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="confirm_3a_failed",
                question="Confirm that no heading is more specific (GRI 3a failed)?",
                type=AnswerType.BOOLEAN,
                help_text="Must document why specificity test failed",
                legal_reference="GRI 3(c) - Prerequisite",
            ),
            DecisionCriterion(
                id="confirm_3b_failed",
                question=(
                    "Confirm that no essential character could be determined (GRI 3b failed)?"
                ),
                type=AnswerType.BOOLEAN,
                help_text="Must document why essential character test failed",
                legal_reference="GRI 3(c) - Prerequisite",
            ),
            DecisionCriterion(
                id="numerical_order",
                question="List all equally applicable headings in numerical order",
                type=AnswerType.TEXT,
                help_text="The last heading in numerical order will be selected",
                legal_reference="GRI 3(c) - Last in order",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(
                    _c("confirm_3a_failed", Operator.EQUALS, True),
                    _c("confirm_3b_failed", Operator.EQUALS, True),
                ),
                next_rule="gri_5a",
                reasoning="Last heading in numerical order selected per GRI 3(c)",
            ),
        ),
        legal_notes=(
            "This is a rule of last resort when other methods fail",
            "Must document why 3(a) and 3(b) could not resolve classification",
            "Ensures consistent classification when other factors are equal",
        ),
        examples=(
            RuleExample(
                product="Product equally described by headings 3920 and 3921",
                decision="Classify under 3921",
                reasoning="3921 occurs last in numerical order",
            ),
        ),
    ),

    GRIRule(
        id="gri_4",
        name="Classification by similarity",
        description=(
            "Goods which cannot be classified in accordance with the above rules shall be "
            "classified under the heading appropriate to the goods to which they are most akin"
        ),
        legal_text=(
            "Goods which cannot be classified in accordance with the above rules shall be "
            "classified under the heading appropriate to the goods to which they are most akin."
        ),
        order=4,
        required_inputs=("similar_products", "similarity_analysis"),
        decision_criteria=(
            DecisionCriterion(
                id="no_heading_confirmation",
                question="Confirm that no heading specifically covers this product?",
                type=AnswerType.BOOLEAN,
                help_text="GRI 4 only applies when no heading exists for the product",
                legal_reference="GRI 4 - Prerequisite",
            ),
            DecisionCriterion(
                id="similarity_factors",
                question="What factors make other products similar?",
                type=AnswerType.MULTISELECT,
                options=("Function", "Physical properties", "Composition", "Use",
                         "Manufacturing process", "Commercial designation"),
                help_text="Consider multiple factors for similarity",
                legal_reference="GRI 4 - Similarity factors",
            ),
            DecisionCriterion(
                id="most_similar_product",
                question="Which classified product is most similar and why?",
                type=AnswerType.TEXT,
                help_text="Identify specific product and heading for classification",
                legal_reference="GRI 4 - Most akin",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("most_similar_product", Operator.NOT_IN, ("None found",)),),
                next_rule="gri_5a",
                reasoning="Similar product identified - classify under same heading",
            ),
        ),
        legal_notes=(
            "Rarely used - most products fit somewhere in the nomenclature",
            "Requires comprehensive search for similar products",
            "Consider function, composition, and use",
        ),
        examples=(
            RuleExample(
                product="New invention with no specific heading",
                decision="Classify with most functionally similar product",
                reasoning="No heading exists, find most similar by function and use",
            ),
        ),
    ),

    GRIRule(
        id="gri_5a",
        name="Specially shaped containers",
        description=(
            "Camera cases, musical instrument cases, gun cases, drawing instrument cases, "
            "necklace cases and similar containers, specially shaped or fitted to contain "
            "a specific article"
        ),
        legal_text=(
            "Camera cases, musical instrument cases, gun cases, drawing instrument cases, "
            "necklace cases and similar containers, specially shaped or fitted to contain a "
            "specific article or set of articles, suitable for long-term use and entered "
            "with the articles for which they are intended, shall be classified with such "
            "articles when of a kind normally sold therewith. This rule does not, however, "
            "apply to containers which give the whole its essential character."
        ),
        order=5,
        required_inputs=("container_description", "product_container_relationship"),
        decision_criteria=(
            DecisionCriterion(
                id="container_present",
                question="Is the article entered with a case or container?",
                type=AnswerType.BOOLEAN,
                help_text="If not, GRI 5(a) does not apply",
                legal_reference="GRI 5(a) - Scope",
            ),
            DecisionCriterion(
                id="specially_shaped",
                question="Is the container specially shaped or fitted for the specific article?",
                type=AnswerType.BOOLEAN,
                help_text='Generic boxes or bags are not "specially shaped"',
                legal_reference="GRI 5(a) - Specially shaped requirement",
            ),
            DecisionCriterion(
                id="long_term_use",
                question="Is the container suitable for long-term use?",
                type=AnswerType.BOOLEAN,
                help_text="Disposable packaging does not qualify",
                legal_reference="GRI 5(a) - Long-term use requirement",
            ),
            DecisionCriterion(
                id="normally_sold_together",
                question="Is this type of container normally sold with the article?",
                type=AnswerType.BOOLEAN,
                help_text="Consider commercial practice",
                legal_reference="GRI 5(a) - Normal commercial practice",
            ),
            DecisionCriterion(
                id="essential_character_test",
                question="Does the container give the whole its essential character?",
                type=AnswerType.BOOLEAN,
                help_text="If yes, classify by the container, not the contents",
                legal_reference="GRI 5(a) - Essential character exception",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("container_present", Operator.EQUALS, False),),
                next_rule="gri_5b",
                reasoning="No case or container entered with the article - GRI 5(a) not applicable",
            ),
            NextStep(
                conditions=(
                    _c("specially_shaped", Operator.EQUALS, True),
                    _c("long_term_use", Operator.EQUALS, True),
                    _c("normally_sold_together", Operator.EQUALS, True),
                    _c("essential_character_test", Operator.EQUALS, False),
                ),
                next_rule="gri_5b",
                reasoning="Container meets all criteria - classify with the article",
            ),
            NextStep(
                conditions=(_c("essential_character_test", Operator.EQUALS, True),),
                next_rule="gri_5b",
                reasoning="Container gives essential character - classify by container",
            ),
        ),
        legal_notes=(
            "Applies to cases designed for specific articles",
            "Container must be suitable for repetitive use",
            "Does not apply if container is more important than contents",
        ),
        examples=(
            RuleExample(
                product="Violin in a fitted case",
                decision="Classify together as violin",
                reasoning="Case is specially shaped, long-term use, normally sold together",
            ),
        ),
    ),

    GRIRule(
        id="gri_5b",
        name="Packing materials and containers",
        description=(
            "Packing materials and packing containers entered with the goods therein shall "
            "be classified with the goods if they are of a kind normally used for packing "
            "such goods"
        ),
        legal_text=(
            "Subject to the provisions of rule 5(a) above, packing materials and packing "
            "containers entered with the goods therein shall be classified with the goods "
            "if they are of a kind normally used for packing such goods. However, this "
            "provision is not binding when such packing materials or packing containers are "
            "clearly suitable for repetitive use."
        ),
        order=5,
        required_inputs=("packing_description", "reusability_assessment"),
        decision_criteria=(
            DecisionCriterion(
                id="packing_present",
                question="Are the goods entered with packing materials or packing containers?",
                type=AnswerType.BOOLEAN,
                help_text="If not, GRI 5(b) does not apply",
                legal_reference="GRI 5(b) - Scope",
            ),
            DecisionCriterion(
                id="normal_packing",
                question="Is this packing material/container normally used for such goods?",
                type=AnswerType.BOOLEAN,
                help_text="Consider industry standard packaging",
                legal_reference="GRI 5(b) - Normal use test",
            ),
            DecisionCriterion(
                id="repetitive_use",
                question="Is the packing clearly suitable for repetitive use?",
                type=AnswerType.BOOLEAN,
                help_text="Reusable containers may be classified separately",
                legal_reference="GRI 5(b) - Repetitive use exception",
            ),
            DecisionCriterion(
                id="packing_value",
                question="Is the packing material significant in value relative to the goods?",
                type=AnswerType.SELECT,
                options=("Negligible", "Minor", "Significant", "Exceeds goods value"),
                required=False,
                help_text="High-value packaging may warrant separate classification",
                legal_reference="GRI 5(b) - Value consideration",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("packing_present", Operator.EQUALS, False),),
                next_rule="gri_6",
                reasoning="No packing entered with the goods - proceed to subheading classification",
            ),
            NextStep(
                conditions=(
                    _c("normal_packing", Operator.EQUALS, True),
                    _c("repetitive_use", Operator.EQUALS, False),
                ),
                next_rule="gri_6",
                reasoning="Normal packing not suitable for reuse - classify with goods",
            ),
            NextStep(
                conditions=(_c("repetitive_use", Operator.EQUALS, True),),
                next_rule="gri_6",
                reasoning="Packing suitable for repetitive use - may classify separately",
            ),
        ),
        legal_notes=(
            "Normal packing materials are classified with the goods",
            "Reusable containers may be classified separately",
            "Consider commercial practice and value",
        ),
        examples=(
            RuleExample(
                product="Shoes in a cardboard box",
                decision="Classify together as shoes",
                reasoning="Cardboard box is normal packing, not reusable",
            ),
            RuleExample(
                product="Chemicals in returnable metal drums",
                decision="May classify drums separately",
                reasoning="Metal drums clearly suitable for repetitive use",
            ),
        ),
    ),

    GRIRule(
        id="gri_6",
        name="Subheading classification",
        description=(
            "For legal purposes, the classification of goods in the subheadings of a heading "
            "shall be determined according to the terms of those subheadings and any related "
            "subheading notes"
        ),
        legal_text=(
            "For legal purposes, the classification of goods in the subheadings of a heading "
            "shall be determined according to the terms of those subheadings and any related "
            "subheading notes and, mutatis mutandis, to the above rules, on the understanding "
            "that only subheadings at the same level are comparable. For the purposes of this "
            "rule, the relative section and chapter notes also apply, unless the context "
            "otherwise requires."
        ),
        order=6,
        required_inputs=("heading_determined", "subheading_analysis"),
        validation_rules=(
            ValidationRule(
                field="heading_determined",
                rule="valid_heading",
                error_message="Must have determined 4-digit heading before applying GRI 6",
                validator=_four_digit_heading,
            ),
        ),
        decision_criteria=(
            DecisionCriterion(
                id="heading_determined",
                question="Which 4-digit heading has been determined?",
                type=AnswerType.TEXT,
                help_text="The heading reached by GRI 1 to 5",
                legal_reference="GRI 6 - Prerequisite",
            ),
            DecisionCriterion(
                id="subheading_level",
                question="What level of classification are you determining?",
                type=AnswerType.SELECT,
                options=("6-digit subheading", "8-digit tariff item", "10-digit statistical"),
                help_text="Work through each level sequentially",
                legal_reference="GRI 6 - Level by level",
            ),
            DecisionCriterion(
                id="subheading_notes",
                question="Are there any subheading notes that apply?",
                type=AnswerType.BOOLEAN,
                help_text="Subheading notes have same legal force as heading notes",
                legal_reference="GRI 6 - Subheading notes",
            ),
            DecisionCriterion(
                id="gri_application",
                question="Which GRI principle applies at this subheading level?",
                type=AnswerType.SELECT,
                options=("GRI 1 - Clear match", "GRI 3(a) - Most specific",
                         "GRI 3(b) - Essential character", "GRI 3(c) - Last in order"),
                help_text="Apply GRI 1-5 within each level",
                legal_reference="GRI 6 - Mutatis mutandis",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(_c("subheading_level", Operator.IN, _FULL_TARIFF_LEVELS),),
                next_rule="validate_heading",
                reasoning="Full classification code determined - validate the classification",
            ),
            NextStep(
                conditions=(
                    _c("subheading_level", Operator.NOT_IN, _FULL_TARIFF_LEVELS),
                ),
                next_rule="gri_6",
                reasoning="Continue to next subheading level",
            ),
        ),
        legal_notes=(
            "Only compare subheadings at the same level",
            "Apply GRI 1-5 at each level independently",
            "Work from 4-digit to 6-digit to 8-digit sequentially",
        ),
        examples=(
            RuleExample(
                product="Within heading 8471 (computers)",
                decision="Apply GRI to choose between 8471.30 (portable) vs 8471.41 (other)",
                reasoning="Compare only one-dash subheadings first",
            ),
        ),
    ),

    GRIRule(
        id="validate_heading",
        name="Validate Classification",
        description="Final validation of the determined classification",
        legal_text="Ensure classification complies with all applicable rules and notes",
        order=7,
        required_inputs=("proposed_classification", "validation_checklist"),
        decision_criteria=(
            DecisionCriterion(
                id="section_notes_check",
                question="Have all applicable section and chapter notes been considered?",
                type=AnswerType.BOOLEAN,
                help_text="Review all exclusions and inclusions",
                legal_reference="Validation requirement",
            ),
            DecisionCriterion(
                id="gri_sequence_check",
                question="Were GRI rules applied in correct sequence?",
                type=AnswerType.BOOLEAN,
                help_text="Confirm rules were not skipped",
                legal_reference="Sequential application requirement",
            ),
            DecisionCriterion(
                id="documentation_complete",
                question="Is all reasoning and evidence documented?",
                type=AnswerType.BOOLEAN,
                help_text="Required for legal defensibility",
                legal_reference="Documentation requirement",
            ),
        ),
        next_steps=(
            NextStep(
                conditions=(
                    _c("section_notes_check", Operator.EQUALS, True),
                    _c("gri_sequence_check", Operator.EQUALS, True),
                    _c("documentation_complete", Operator.EQUALS, True),
                ),
                next_rule=None,
                reasoning="Classification validated - ready for completion",
            ),
        ),
        legal_notes=(
            "Final check ensures defensible classification",
            "All decisions must be traceable",
            "Documentation is crucial for disputes",
        ),
    ),
)

RULE_CATALOG: Mapping[str, GRIRule] = MappingProxyType({rule.id: rule for rule in _RULES})

MAX_ORDER: float = max(rule.order for rule in _RULES)


# ── Lookup ─────────────────────────────────────────────────────────────────

def get_rule(rule_id: str) -> GRIRule:
    """Return the catalog entry for *rule_id*.

    Raises:
        InvalidRuleReference: If *rule_id* is not in the catalog.
    """
    try:
        return RULE_CATALOG[rule_id]
    except KeyError:
        raise InvalidRuleReference(rule_id) from None


def has_rule(rule_id: str) -> bool:
    return rule_id in RULE_CATALOG


def iter_rules() -> Iterator[GRIRule]:
    """Iterate the catalog in declared (workflow) order."""
    return iter(_RULES)


def rule_order(rule_id: str) -> float | None:
    rule = RULE_CATALOG.get(rule_id)
    return rule.order if rule is not None else None
