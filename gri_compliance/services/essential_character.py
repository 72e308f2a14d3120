"""
services/essential_character.py
──────────────────────────────────────────────────────────────────────────────
GRI 3(b) essential-character scoring.

Architecture:
  • detect_industry(), score_material() and find_precedents() are pure
    functions — no I/O, easily unit-tested.
  • EssentialCharacterAnalyzer.analyze() is the single public entry point;
    weight vectors and confidence constants come from Settings.scoring.

Algorithm:
  1. Detect the product's industry by keyword (or none).
  2. Score every material on six 0–100 factors, each derived from its
     percentage and adjusted by name keywords and its declared role.
  3. Overall score = industry weight vector · factor scores.
  4. The highest overall score gives the essential character.
  5. Confidence grows with the gap to the runner-up, an industry match and
     the best matching precedent; it is capped (0.95 by default).
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Sequence

from gri_compliance.config.settings import Settings
from gri_compliance.config.weights import FactorWeights
from gri_compliance.domain.exceptions import AnalysisError
from gri_compliance.domain.models import (
    CharacterFactor,
    DecisionInput,
    EssentialCharacterAnalysis,
    FactorEvidence,
    Industry,
    IndustryMethod,
    Material,
    MaterialAnalysis,
    MaterialRole,
    MeasurementBasis,
    Precedent,
)
from gri_compliance.domain.rules import get_rule, material_total

logger = logging.getLogger(__name__)

GRI_3B_BASIS = "GRI 3(b) - Essential character determination"


# ── Reference tables ───────────────────────────────────────────────────────

# First match wins, in this order.
_INDUSTRY_KEYWORDS: tuple[tuple[Industry, tuple[str, ...]], ...] = (
    (Industry.TEXTILES,    ("shirt", "dress", "textile")),
    (Industry.ELECTRONICS, ("electronic", "computer", "phone")),
    (Industry.FURNITURE,   ("chair", "table", "furniture")),
    (Industry.JEWELRY,     ("ring", "necklace", "jewelry")),
    (Industry.MACHINERY,   ("machine", "motor", "pump")),
    (Industry.FOOTWEAR,    ("shoe", "boot", "sandal")),
    (Industry.TOYS,        ("toy", "game", "doll")),
)

INDUSTRY_METHODS: Mapping[Industry, IndustryMethod] = MappingProxyType({
    Industry.TEXTILES: IndustryMethod(
        industry=Industry.TEXTILES,
        method="Weight-based determination for fabric composition",
        reference="WCO Explanatory Note XI",
    ),
    Industry.ELECTRONICS: IndustryMethod(
        industry=Industry.ELECTRONICS,
        method="Function and value-based determination",
        reference="Section XVI Note 3",
    ),
    Industry.FURNITURE: IndustryMethod(
        industry=Industry.FURNITURE,
        method="Primary material by visual impact and function",
        reference="Chapter 94 principles",
    ),
    Industry.JEWELRY: IndustryMethod(
        industry=Industry.JEWELRY,
        method="Value-based determination for precious metals",
        reference="Chapter 71 Note 5",
    ),
    Industry.MACHINERY: IndustryMethod(
        industry=Industry.MACHINERY,
        method="Principal function determination",
        reference="Section XVI Note 3",
    ),
    Industry.FOOTWEAR: IndustryMethod(
        industry=Industry.FOOTWEAR,
        method="Outer sole and upper material analysis",
        reference="Chapter 64 Note 4",
    ),
    Industry.TOYS: IndustryMethod(
        industry=Industry.TOYS,
        method="Play value and safety considerations",
        reference="Chapter 95 principles",
    ),
})

CHARACTER_PRECEDENTS: tuple[Precedent, ...] = (
    Precedent(
        product="Leather wallet with metal clasp",
        decision="Leather gives essential character - classified under leather goods",
        authority="WCO Opinion 4202.31",
        relevance=100,
    ),
    Precedent(
        product="Plastic chair with metal legs",
        decision="Plastic seat gives essential character - classified as plastic furniture",
        authority="BTI EU/2018/1234",
        relevance=95,
    ),
    Precedent(
        product="Cotton shirt with polyester trim",
        decision="Cotton gives essential character by weight and function",
        authority="Chapter 61 Note 2",
        relevance=90,
    ),
    Precedent(
        product="Steel watch with leather strap",
        decision="Watch mechanism gives essential character, not the strap",
        authority="Classification Opinion 9102",
        relevance=100,
    ),
    Precedent(
        product="Wooden table with glass top",
        decision="Wood gives essential character as structural component",
        authority="SARS Ruling 456",
        relevance=85,
    ),
)

# (keywords, multiplier, cap at 100); first matching group applies.
_VALUE_KEYWORDS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("gold", "platinum"), 5.0),
    (("silver", "diamond"), 3.0),
    (("leather", "silk"), 1.5),
    (("carbon fiber", "titanium"), 2.0),
)
_FUNCTION_KEYWORDS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("steel", "aluminum", "wood", "frame"), 1.3),
    (("motor", "circuit", "processor", "mechanism"), 1.5),
    (("case", "housing", "cover"), 1.1),
    (("trim", "ornament", "decoration"), 0.7),
)
_MARKETABILITY_KEYWORDS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("leather", "genuine", "solid wood", "premium"), 1.4),
    (("carbon", "titanium", "ceramic"), 1.3),
    (("plastic", "synthetic"), 0.9),
)
_VISUAL_KEYWORDS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("outer", "surface", "covering"), 1.5),
    (("inner", "internal", "core"), 0.6),
)

_ROLE_FUNCTION_FACTOR: Mapping[MaterialRole, float] = MappingProxyType({
    MaterialRole.FUNCTIONAL: 1.2,
    MaterialRole.STRUCTURAL: 1.2,
    MaterialRole.PROTECTIVE: 1.1,
    MaterialRole.DECORATIVE: 0.7,
    MaterialRole.AESTHETIC:  0.7,
})
_ROLE_VISUAL_FACTOR: Mapping[MaterialRole, float] = MappingProxyType({
    MaterialRole.DECORATIVE: 1.2,
    MaterialRole.AESTHETIC:  1.2,
})


# ── Pure helpers ───────────────────────────────────────────────────────────

def _keyword_multiplier(
    name: str,
    table: tuple[tuple[tuple[str, ...], float], ...],
    default: float = 1.0,
) -> float:
    lowered = name.lower()
    for keywords, multiplier in table:
        if any(k in lowered for k in keywords):
            return multiplier
    return default


def _pct(value: float) -> str:
    return f"{value:g}"


def detect_industry(product_type: str) -> Industry | None:
    """Keyword-match the product type to an industry, or None."""
    lowered = product_type.lower()
    for industry, keywords in _INDUSTRY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return industry
    return None


def find_precedents(product_type: str, limit: int = 3) -> list[Precedent]:
    """Precedents sharing a word longer than three characters with *product_type*.

    Sorted by relevance (highest first), at most *limit* returned.
    """
    words = [w for w in product_type.lower().split() if len(w) > 3]
    matches = [
        p for p in CHARACTER_PRECEDENTS
        if any(w in p.product.lower() for w in words)
    ]
    matches.sort(key=lambda p: p.relevance, reverse=True)
    return matches[:limit]


def score_material(material: Material, weights: FactorWeights) -> MaterialAnalysis:
    """Compute the six factor scores and the weighted overall score."""
    pct = material.percentage
    name = material.name

    weight_score = pct if material.basis is MeasurementBasis.WEIGHT else pct * 0.8
    if material.basis is MeasurementBasis.VALUE:
        value_score = pct
    else:
        multiplier = _keyword_multiplier(name, _VALUE_KEYWORDS, default=0.8)
        value_score = min(pct * multiplier, 100.0)
    volume_score = pct if material.basis is MeasurementBasis.VOLUME else pct * 0.9

    function_score = pct * _keyword_multiplier(name, _FUNCTION_KEYWORDS)
    visual_score = pct * _keyword_multiplier(name, _VISUAL_KEYWORDS)
    if material.role is not None:
        function_score *= _ROLE_FUNCTION_FACTOR.get(material.role, 1.0)
        visual_score *= _ROLE_VISUAL_FACTOR.get(material.role, 1.0)
    function_score = min(function_score, 100.0)
    visual_score = min(visual_score, 100.0)
    marketability_score = min(pct * _keyword_multiplier(name, _MARKETABILITY_KEYWORDS), 100.0)

    w = weights
    overall = (
        weight_score * w.weight
        + value_score * w.value
        + volume_score * w.volume
        + function_score * w.function
        + marketability_score * w.marketability
        + visual_score * w.visual_impact
    )
    return MaterialAnalysis(
        material=name,
        percentage=pct,
        basis=material.basis,
        weight_score=weight_score,
        value_score=value_score,
        volume_score=volume_score,
        function_score=function_score,
        marketability_score=marketability_score,
        visual_score=visual_score,
        overall_score=overall,
    )


def validate_material_percentages(
    materials: Sequence[Material],
    tolerance: float = 0.01,
) -> list[str]:
    """Human-readable problems with a material list; empty when it is usable."""
    if not materials:
        return ["At least one material is required"]
    total = material_total(list(materials)) or 0.0
    if abs(total - 100) > tolerance:
        return [f"Material percentages must total 100% (got {_pct(round(total, 4))}%)"]
    return []


def _primary_factor(dominant: MaterialAnalysis) -> FactorEvidence:
    # Volume is never reported as the determining factor.
    candidates = [
        (CharacterFactor.WEIGHT, dominant.weight_score),
        (CharacterFactor.VALUE, dominant.value_score),
        (CharacterFactor.FUNCTION, dominant.function_score),
        (CharacterFactor.MARKETABILITY, dominant.marketability_score),
        (CharacterFactor.VISUAL_IMPACT, dominant.visual_score),
    ]
    factor, score = max(candidates, key=lambda pair: pair[1])
    return FactorEvidence(
        type=factor,
        description=f"{factor.value.replace('_', ' ')} of {dominant.material}",
        importance=score,
        evidence=f"{_pct(dominant.percentage)}% by {dominant.basis.value}",
    )


def _supporting_factors(dominant: MaterialAnalysis) -> list[FactorEvidence]:
    factors: list[FactorEvidence] = []
    name = dominant.material
    if dominant.weight_score > 50:
        factors.append(FactorEvidence(
            type=CharacterFactor.WEIGHT,
            description=f"{name} comprises majority by weight",
            importance=dominant.weight_score,
            evidence=f"{_pct(dominant.percentage)}% by weight",
        ))
    if dominant.function_score > 60:
        factors.append(FactorEvidence(
            type=CharacterFactor.FUNCTION,
            description=f"{name} provides primary function",
            importance=dominant.function_score,
            evidence="Essential for product operation",
        ))
    if dominant.value_score > 70:
        factors.append(FactorEvidence(
            type=CharacterFactor.VALUE,
            description=f"{name} represents highest value",
            importance=dominant.value_score,
            evidence="Dominant commercial value",
        ))
    if dominant.visual_score > 50:
        factors.append(FactorEvidence(
            type=CharacterFactor.VISUAL_IMPACT,
            description=f"{name} dominates appearance",
            importance=dominant.visual_score,
            evidence="Primary visible material",
        ))
    return factors


def _reasoning(
    ranked: list[MaterialAnalysis],
    method: IndustryMethod | None,
) -> str:
    dominant = ranked[0]
    parts = [f"{dominant.material} gives the product its essential character."]
    if dominant.weight_score > 50:
        parts.append(
            f"This material comprises {_pct(dominant.percentage)}% of the product by weight."
        )
    if dominant.function_score > 60:
        parts.append(
            "It provides the primary function and is essential for the product's intended use."
        )
    if dominant.value_score > 70:
        parts.append("This component represents the highest commercial value.")
    if method is not None:
        parts.append(f"Per {method.reference}, {method.method.lower()}.")
    if len(ranked) > 1:
        secondary = ranked[1]
        role = "secondary" if secondary.function_score < 50 else "supporting"
        parts.append(
            f"While {secondary.material} comprises {_pct(secondary.percentage)}%, "
            f"it serves a {role} role."
        )
    return " ".join(parts)


# ── Service class ──────────────────────────────────────────────────────────

class EssentialCharacterAnalyzer:
    """Determines which material gives a composite good its essential character.

    Args:
        settings: Shared application settings (scoring weights, precedent limit).
    """

    def __init__(self, settings: Settings) -> None:
        self._scoring = settings.scoring
        self._precedent_limit = settings.precedent_limit
        self._tolerance = settings.material_tolerance

    # ── Public API ─────────────────────────────────────────────────────────

    def analyze(
        self,
        materials: Sequence[Material],
        product_type: str,
    ) -> EssentialCharacterAnalysis:
        """Run the essential-character determination.

        Args:
            materials:    Constituent materials with percentages and basis.
            product_type: Free-text product type used for industry and
                          precedent matching.

        Returns:
            EssentialCharacterAnalysis for the highest-scoring material.

        Raises:
            AnalysisError: If *materials* is empty.
        """
        if not materials:
            raise AnalysisError("Essential character analysis requires at least one material")
        problems = validate_material_percentages(materials, self._tolerance)
        if problems:
            logger.warning("Analysing materials with inconsistent percentages: %s", problems)

        industry = detect_industry(product_type)
        weights = self._scoring.weights_for(industry)
        scored = [score_material(m, weights) for m in materials]
        ranked = sorted(scored, key=lambda a: a.overall_score, reverse=True)
        dominant = ranked[0]

        method = INDUSTRY_METHODS.get(industry) if industry is not None else None
        precedents = find_precedents(product_type, self._precedent_limit)
        confidence = self._confidence(ranked, industry, precedents)

        logger.info(
            "Essential character | product=%r industry=%s component=%s confidence=%.2f",
            product_type[:80],
            industry.value if industry else "none",
            dominant.material,
            confidence,
        )
        return EssentialCharacterAnalysis(
            determined_by=_primary_factor(dominant),
            component=dominant.material,
            reasoning=_reasoning(ranked, method),
            confidence=confidence,
            supporting_factors=_supporting_factors(dominant),
            industry_method=method,
            precedents=precedents,
            material_scores=scored,
        )

    def to_decision(self, analysis: EssentialCharacterAnalysis) -> DecisionInput:
        """Build the GRI 3(b) ``component_analysis`` decision for an analysis."""
        legal_basis = [GRI_3B_BASIS]
        if analysis.industry_method is not None:
            legal_basis.append(analysis.industry_method.reference)
        legal_basis.extend(p.authority for p in analysis.precedents)
        criterion = get_rule("gri_3b").criterion("component_analysis")
        return DecisionInput(
            rule_id="gri_3b",
            criterion_id="component_analysis",
            question=criterion.question if criterion else "",
            answer=analysis.component,
            reasoning=analysis.reasoning,
            confidence=analysis.confidence,
            legal_basis=legal_basis,
            metadata={
                "source": "essential_character_analyzer",
                "analysis": analysis.model_dump(mode="json"),
            },
        )

    def analyze_for_gri_3b(
        self,
        materials: Sequence[Material],
        product_type: str,
    ) -> DecisionInput:
        return self.to_decision(self.analyze(materials, product_type))

    def detailed_report(
        self,
        materials: Sequence[Material],
        product_type: str,
    ) -> str:
        """Markdown breakdown of the analysis and every material's scores."""
        analysis = self.analyze(materials, product_type)
        industry = detect_industry(product_type)
        lines = [
            "# Essential Character Analysis Report",
            "",
            f"**Product:** {product_type}",
            f"**Industry:** {industry.value.title() if industry else 'General'}",
            f"**Analysis Date:** {datetime.now(timezone.utc).isoformat()}",
            "",
            "## Material Composition",
        ]
        lines += [f"- {m.name}: {_pct(m.percentage)}% (by {m.basis.value})" for m in materials]
        lines += [
            "",
            "## Analysis Results",
            f"**Essential Character:** {analysis.component}",
            f"**Determined By:** {analysis.determined_by.type.value.replace('_', ' ')}",
            f"**Confidence:** {analysis.confidence * 100:.1f}%",
            "",
            "## Detailed Scoring",
        ]
        for ma in analysis.material_scores:
            lines += [
                f"### {ma.material}",
                f"- Weight Score: {ma.weight_score:.1f}",
                f"- Value Score: {ma.value_score:.1f}",
                f"- Volume Score: {ma.volume_score:.1f}",
                f"- Functional Score: {ma.function_score:.1f}",
                f"- Marketability Score: {ma.marketability_score:.1f}",
                f"- Visual Impact Score: {ma.visual_score:.1f}",
                f"- **Overall Score: {ma.overall_score:.1f}**",
                "",
            ]
        lines.append("## Supporting Factors")
        lines += [
            f"- {f.description} (Importance: {f.importance:.0f}%)"
            for f in analysis.supporting_factors
        ]
        lines += ["", "## Reasoning", analysis.reasoning, "", "## Relevant Precedents"]
        lines += [f"- {p.product}: {p.decision} ({p.authority})" for p in analysis.precedents]
        return "\n".join(lines)

    # ── Internal helpers ───────────────────────────────────────────────────

    def _confidence(
        self,
        ranked: list[MaterialAnalysis],
        industry: Industry | None,
        precedents: list[Precedent],
    ) -> float:
        cfg = self._scoring
        confidence = cfg.base_confidence
        if len(ranked) > 1:
            gap = ranked[0].overall_score - ranked[1].overall_score
            confidence += min(gap / 100, cfg.gap_bonus_cap)
        else:
            confidence += cfg.gap_bonus_cap
        if industry is not None:
            confidence += cfg.industry_bonus
        if precedents:
            confidence += min(
                precedents[0].relevance / 100 * cfg.precedent_bonus_cap,
                cfg.precedent_bonus_cap,
            )
        return round(min(confidence, cfg.max_confidence), 4)
