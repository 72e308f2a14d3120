"""
services/engine.py
──────────────────────────────────────────────────────────────────────────────
ClassificationEngine: walks one classification through the rule catalog.

The engine owns a single ClassificationContext.  It validates the current
rule's inputs, records decisions (hashed, append-only), and works out which
rule comes next from the catalog's declared transitions.

The engine permits a move to any rule in the catalog.  Whether the resulting
rule sequence is legal is audited afterwards by the ComplianceValidator, so a
jump is recorded rather than refused.

Field resolution:
  A field's current value is the answer of the most recent decision whose
  criterion id equals the field name.  When no such decision exists, a few
  fields fall back to the context attribute holding the same information:

    product_description  → context.product_description
    material_percentages → context.materials
    possible_headings    → codes of context.suggested_headings

Not thread-safe: sessions serialise access (services/session.py).
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional

from gri_compliance.config.settings import Settings
from gri_compliance.domain.exceptions import AnalysisError
from gri_compliance.domain.hashing import content_hash
from gri_compliance.domain.models import (
    ClassificationContext,
    DecisionInput,
    ExcludedHeading,
    GRIDecision,
    HSHeading,
    Material,
    ValidationResult,
)
from gri_compliance.domain.rules import (
    INITIAL_RULE_ID,
    MAX_ORDER,
    GRIRule,
    NextStep,
    get_rule,
    has_rule,
)
from gri_compliance.services.conditions import ConditionEvaluator

if TYPE_CHECKING:
    from gri_compliance.services.essential_character import EssentialCharacterAnalyzer

logger = logging.getLogger(__name__)


def _description(ctx: ClassificationContext) -> Any:
    return ctx.product_description or None


def _materials(ctx: ClassificationContext) -> Any:
    return list(ctx.materials) if ctx.materials is not None else None


def _headings(ctx: ClassificationContext) -> Any:
    if not ctx.suggested_headings:
        return None
    return [h.code for h in ctx.suggested_headings]


_CONTEXT_FALLBACKS: Mapping[str, Callable[[ClassificationContext], Any]] = {
    "product_description":  _description,
    "material_percentages": _materials,
    "possible_headings":    _headings,
}


def decision_hash(decision: DecisionInput, classification_id: str) -> str:
    """Content hash binding a decision to its classification."""
    return content_hash({
        "ruleId":           decision.rule_id,
        "criterionId":      decision.criterion_id,
        "answer":           decision.answer,
        "reasoning":        decision.reasoning,
        "classificationId": classification_id,
    })


def collect_legal_basis(decisions: Iterable[GRIDecision]) -> list[str]:
    """Deduplicated citations in decision order.

    For each decision on a catalog rule: the rule's name and legal text,
    then the decision's own citations.
    """
    seen: dict[str, None] = {}
    for decision in decisions:
        if not has_rule(decision.rule_id):
            continue
        rule = get_rule(decision.rule_id)
        seen.setdefault(f"{rule.name}: {rule.legal_text}", None)
        for citation in decision.legal_basis:
            seen.setdefault(citation, None)
    return list(seen)


class ClassificationEngine:
    """State machine over the GRI rule catalog for one classification.

    Args:
        context:  Working state; the engine takes ownership of it.
        settings: Shared application settings (expert-review threshold).

    Raises:
        InvalidRuleReference: If the context's current rule is not in the catalog.
    """

    def __init__(self, context: ClassificationContext, settings: Settings) -> None:
        get_rule(context.current_rule_id)
        self._context = context
        self._settings = settings
        self._evaluator = ConditionEvaluator(self.resolve_field)
        logger.debug(
            "ClassificationEngine ready | id=%s rule=%s decisions=%d",
            context.classification_id,
            context.current_rule_id,
            len(context.decisions),
        )

    @classmethod
    def start(
        cls,
        classification_id: str,
        product_description: str,
        settings: Settings,
        materials: Optional[list[Material]] = None,
        physical_characteristics: Optional[dict[str, Any]] = None,
        technical_specifications: Optional[dict[str, Any]] = None,
    ) -> "ClassificationEngine":
        """Create an engine positioned at the first rule of the catalog."""
        context = ClassificationContext(
            classification_id=classification_id,
            product_description=product_description,
            current_rule_id=INITIAL_RULE_ID,
            materials=materials,
            physical_characteristics=physical_characteristics,
            technical_specifications=technical_specifications,
        )
        return cls(context, settings)

    # ── Accessors ──────────────────────────────────────────────────────────

    @property
    def classification_id(self) -> str:
        return self._context.classification_id

    @property
    def current_rule_id(self) -> str:
        return self._context.current_rule_id

    @property
    def decisions(self) -> list[GRIDecision]:
        """Shallow copy of the decision list."""
        return list(self._context.decisions)

    @property
    def materials(self) -> list[Material]:
        return list(self._context.materials or [])

    @property
    def product_description(self) -> str:
        return self._context.product_description

    def get_current_rule(self) -> GRIRule:
        return get_rule(self._context.current_rule_id)

    def resolve_field(self, field: str) -> Any:
        """Current value of *field* (latest matching answer, else context fallback)."""
        for decision in reversed(self._context.decisions):
            if decision.criterion_id == field:
                return decision.answer
        fallback = _CONTEXT_FALLBACKS.get(field)
        return fallback(self._context) if fallback is not None else None

    # ── Validation ─────────────────────────────────────────────────────────

    def validate_rule(self, rule: Optional[GRIRule] = None) -> ValidationResult:
        """Run *rule*'s validation predicates (default: the current rule).

        Returns:
            ValidationResult with one error message per failing predicate.
            Never mutates the context.
        """
        rule = rule or self.get_current_rule()
        errors = [
            v.error_message
            for v in rule.validation_rules
            if not v.validator(self.resolve_field(v.field), self._context)
        ]
        return ValidationResult(valid=not errors, errors=errors)

    def can_proceed(self) -> bool:
        return self.validate_rule().valid

    # ── Decisions ──────────────────────────────────────────────────────────

    def record_decision(
        self,
        decision: DecisionInput | Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> GRIDecision:
        """Append a decision with a fresh timestamp and content hash.

        Accepts a DecisionInput, a mapping of its fields, or keyword
        arguments.  The rule id is not checked against the catalog.

        Returns:
            The appended GRIDecision.

        Raises:
            pydantic.ValidationError: On blank ids or reasoning, or confidence
                outside [0, 1].
        """
        if decision is None:
            decision = DecisionInput(**fields)
        elif not isinstance(decision, DecisionInput):
            decision = DecisionInput(**dict(decision))

        question = decision.question
        if not question and has_rule(decision.rule_id):
            criterion = get_rule(decision.rule_id).criterion(decision.criterion_id)
            question = criterion.question if criterion else ""

        recorded = GRIDecision(
            rule_id=decision.rule_id,
            criterion_id=decision.criterion_id,
            question=question,
            answer=decision.answer,
            reasoning=decision.reasoning,
            confidence=decision.confidence,
            legal_basis=list(decision.legal_basis),
            metadata=dict(decision.metadata),
            hash=decision_hash(decision, self._context.classification_id),
        )
        self._context.decisions.append(recorded)
        logger.debug(
            "Decision recorded | id=%s rule=%s criterion=%s confidence=%.2f",
            self._context.classification_id,
            recorded.rule_id,
            recorded.criterion_id,
            recorded.confidence,
        )
        return recorded

    def apply_essential_character(self, analyzer: "EssentialCharacterAnalyzer") -> GRIDecision:
        """Run the GRI 3(b) analysis over the context materials and record it.

        Raises:
            AnalysisError: If the context has no materials.
        """
        if not self._context.materials:
            raise AnalysisError(
                f"No materials recorded for classification {self._context.classification_id}"
            )
        analysis = analyzer.analyze(self._context.materials, self._context.product_description)
        return self.record_decision(analyzer.to_decision(analysis))

    # ── Transitions ────────────────────────────────────────────────────────

    def find_next_step(self) -> Optional[NextStep]:
        """First declared NextStep of the current rule whose conditions hold."""
        for step in self.get_current_rule().next_steps:
            if self._evaluator.holds(step.conditions):
                return step
        return None

    def determine_next_step(self) -> Optional[str]:
        """Target rule id of find_next_step(), or None.

        None means either that no transition is eligible yet or that the
        eligible transition is terminal.
        """
        step = self.find_next_step()
        return step.next_rule if step is not None else None

    def move_to_next_rule(self, rule_id: str) -> GRIRule:
        """Set the current rule.  Sequence legality is not checked here.

        Raises:
            InvalidRuleReference: If *rule_id* is not in the catalog.
        """
        rule = get_rule(rule_id)
        previous = self._context.current_rule_id
        self._context.current_rule_id = rule.id
        logger.info(
            "Rule move | id=%s %s -> %s",
            self._context.classification_id,
            previous,
            rule.id,
        )
        return rule

    # ── Reporting helpers ──────────────────────────────────────────────────

    def get_progress(self) -> float:
        return self.get_current_rule().order / MAX_ORDER * 100

    def needs_expert_review(self) -> bool:
        threshold = self._settings.expert_review_threshold
        return any(d.confidence < threshold for d in self._context.decisions)

    def export_context(self) -> ClassificationContext:
        """Deep copy of the context; edits to it never reach the engine."""
        return self._context.model_copy(deep=True)

    def generate_legal_basis(self) -> list[str]:
        return collect_legal_basis(self._context.decisions)

    def get_decision_trail(self) -> dict[str, list[GRIDecision]]:
        """Decisions grouped by rule id, rules in first-decided order."""
        trail: dict[str, list[GRIDecision]] = {}
        for decision in self._context.decisions:
            trail.setdefault(decision.rule_id, []).append(decision)
        return trail

    def get_decision_tree(self) -> dict[str, Any]:
        return {
            "id": "root",
            "label": "Classification Start",
            "type": "gri_rule",
            "children": [
                {
                    "id": f"decision_{index}",
                    "label": d.question or d.criterion_id,
                    "type": "decision",
                    "rule_id": d.rule_id,
                    "metadata": {
                        "answer": d.answer,
                        "confidence": d.confidence,
                        "reasoning": d.reasoning,
                        "hash": d.hash,
                    },
                }
                for index, d in enumerate(self._context.decisions)
            ],
        }

    def update_headings(
        self,
        suggested: Optional[list[HSHeading]] = None,
        excluded: Optional[list[ExcludedHeading]] = None,
    ) -> None:
        if suggested is not None:
            self._context.suggested_headings = list(suggested)
        if excluded is not None:
            self._context.excluded_headings = list(excluded)

    def update_materials(self, materials: list[Material]) -> None:
        self._context.materials = list(materials)
