"""
config/weights.py
──────────────────────────────────────────────────────────────────────────────
All essential-character scoring parameters in one place.

Why centralise weights?
  • Tuning a weight vector is a reviewable diff, not a code change
  • The analyzer receives them explicitly, so tests are deterministic
  • Per-deployment overrides go through Settings, never module globals

Each FactorWeights vector must sum to 1.  Industries without their own
vector (footwear, toys) and products with no detected industry use
DEFAULT_WEIGHTS.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from gri_compliance.domain.exceptions import ConfigurationError
from gri_compliance.domain.models import CharacterFactor, Industry

_SUM_TOLERANCE = 1e-6


@dataclass(frozen=True)
class FactorWeights:
    """Relative importance of the six character factors."""

    weight: float
    value: float
    volume: float
    function: float
    marketability: float
    visual_impact: float

    def __post_init__(self) -> None:
        values = self.as_dict().values()
        if any(v < 0 for v in values):
            raise ConfigurationError(f"Factor weights must be non-negative: {self}")
        total = sum(values)
        if abs(total - 1.0) > _SUM_TOLERANCE:
            raise ConfigurationError(f"Factor weights must sum to 1, got {total:.4f}: {self}")

    def as_dict(self) -> dict[CharacterFactor, float]:
        return {
            CharacterFactor.WEIGHT:        self.weight,
            CharacterFactor.VALUE:         self.value,
            CharacterFactor.VOLUME:        self.volume,
            CharacterFactor.FUNCTION:      self.function,
            CharacterFactor.MARKETABILITY: self.marketability,
            CharacterFactor.VISUAL_IMPACT: self.visual_impact,
        }


# ── Weight vectors ─────────────────────────────────────────────────────────────

DEFAULT_WEIGHTS = FactorWeights(
    weight=0.2, value=0.2, volume=0.1, function=0.25, marketability=0.15, visual_impact=0.1,
)

INDUSTRY_WEIGHTS: Mapping[Industry, FactorWeights] = MappingProxyType({
    # Fabric composition is decided by weight
    Industry.TEXTILES: FactorWeights(
        weight=0.4, value=0.2, volume=0.05, function=0.2, marketability=0.1, visual_impact=0.05,
    ),
    Industry.ELECTRONICS: FactorWeights(
        weight=0.1, value=0.3, volume=0.05, function=0.4, marketability=0.1, visual_impact=0.05,
    ),
    Industry.JEWELRY: FactorWeights(
        weight=0.05, value=0.5, volume=0.05, function=0.1, marketability=0.2, visual_impact=0.1,
    ),
    Industry.FURNITURE: FactorWeights(
        weight=0.15, value=0.15, volume=0.1, function=0.2, marketability=0.15, visual_impact=0.25,
    ),
    # Principal function determination (Section XVI Note 3)
    Industry.MACHINERY: FactorWeights(
        weight=0.2, value=0.2, volume=0.05, function=0.35, marketability=0.1, visual_impact=0.1,
    ),
})


# ── Confidence model ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScoringConfig:
    """Weight vectors plus the confidence formula's constants.

    confidence = base
               + min(score gap / 100, gap_bonus_cap)   (full cap for one material)
               + industry_bonus                        (if an industry matched)
               + min(top precedent relevance / 100 * precedent_bonus_cap,
                     precedent_bonus_cap)
    capped at max_confidence.
    """

    default_weights: FactorWeights = DEFAULT_WEIGHTS
    industry_weights: Mapping[Industry, FactorWeights] = field(
        default_factory=lambda: INDUSTRY_WEIGHTS
    )
    base_confidence: float = 0.5
    gap_bonus_cap: float = 0.3
    industry_bonus: float = 0.1
    precedent_bonus_cap: float = 0.1
    max_confidence: float = 0.95

    def __post_init__(self) -> None:
        if not 0 <= self.base_confidence <= self.max_confidence <= 1:
            raise ConfigurationError(
                "Confidence bounds must satisfy 0 <= base_confidence <= max_confidence <= 1"
            )

    def weights_for(self, industry: Industry | None) -> FactorWeights:
        if industry is None:
            return self.default_weights
        return self.industry_weights.get(industry, self.default_weights)
