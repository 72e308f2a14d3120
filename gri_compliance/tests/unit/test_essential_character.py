"""
tests/unit/test_essential_character.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for the GRI 3(b) essential-character analyzer.

Verifies:
  • Industry detection and precedent matching by keyword
  • Factor scores respond to basis, name keywords and role
  • The dominant material and the confidence formula
  • Decision construction for gri_3b / component_analysis
  • Empty and unbalanced material lists
"""
from __future__ import annotations

import pytest

from gri_compliance.config.weights import DEFAULT_WEIGHTS, INDUSTRY_WEIGHTS, FactorWeights
from gri_compliance.domain.exceptions import AnalysisError, ConfigurationError
from gri_compliance.domain.models import (
    CharacterFactor,
    Industry,
    Material,
    MaterialRole,
    MeasurementBasis,
)
from gri_compliance.services.essential_character import (
    GRI_3B_BASIS,
    detect_industry,
    find_precedents,
    score_material,
    validate_material_percentages,
)


class TestDetectIndustry:
    @pytest.mark.parametrize("product, industry", [
        ("Cotton shirt with polyester trim", Industry.TEXTILES),
        ("machine housing", Industry.MACHINERY),
        ("Wooden table with glass top", Industry.FURNITURE),
        ("Gold ring", Industry.JEWELRY),
        ("Leather boot", Industry.FOOTWEAR),
    ])
    def test_keyword_match(self, product, industry):
        assert detect_industry(product) is industry

    def test_first_match_wins(self):
        # "phone" (electronics) is listed before "toy"
        assert detect_industry("toy phone") is Industry.ELECTRONICS

    def test_no_match(self):
        assert detect_industry("ceramic vase") is None


class TestPrecedents:
    def test_matches_on_long_words(self):
        found = find_precedents("wallet")
        assert [p.authority for p in found] == ["WCO Opinion 4202.31"]

    def test_shared_word_matches_several(self):
        found = find_precedents("leather")
        assert {p.product for p in found} == {
            "Leather wallet with metal clasp",
            "Steel watch with leather strap",
        }

    def test_sorted_by_relevance_and_limited(self):
        found = find_precedents("steel table with plastic chair", limit=2)
        assert len(found) == 2
        assert found[0].relevance >= found[1].relevance

    def test_short_words_ignored(self):
        assert find_precedents("a cap") == []


class TestScoreMaterial:
    def test_weight_basis_scores(self):
        scores = score_material(Material(name="Cotton", percentage=60), DEFAULT_WEIGHTS)
        assert scores.weight_score == 60
        assert scores.value_score == pytest.approx(48)
        assert scores.volume_score == pytest.approx(54)

    def test_value_keyword_capped_at_100(self):
        scores = score_material(Material(name="Gold", percentage=30), DEFAULT_WEIGHTS)
        assert scores.value_score == 100

    def test_value_basis_uses_percentage(self):
        scores = score_material(
            Material(name="Gold", percentage=30, basis=MeasurementBasis.VALUE), DEFAULT_WEIGHTS,
        )
        assert scores.value_score == 30
        assert scores.weight_score == pytest.approx(24)

    def test_decorative_role_lowers_function_raises_visual(self):
        plain = score_material(Material(name="Plastic", percentage=40), DEFAULT_WEIGHTS)
        decorative = score_material(
            Material(name="Plastic", percentage=40, role=MaterialRole.DECORATIVE), DEFAULT_WEIGHTS,
        )
        assert decorative.function_score < plain.function_score
        assert decorative.visual_score > plain.visual_score

    def test_overall_is_weighted_sum(self):
        scores = score_material(Material(name="Cotton", percentage=50), DEFAULT_WEIGHTS)
        expected = sum(
            scores.factor_scores()[factor] * weight
            for factor, weight in DEFAULT_WEIGHTS.as_dict().items()
        )
        assert scores.overall_score == pytest.approx(expected)


class TestWeights:
    def test_vectors_sum_to_one(self):
        for weights in (DEFAULT_WEIGHTS, *INDUSTRY_WEIGHTS.values()):
            assert sum(weights.as_dict().values()) == pytest.approx(1.0)

    def test_bad_vector_rejected(self):
        with pytest.raises(ConfigurationError):
            FactorWeights(
                weight=0.5, value=0.5, volume=0.5, function=0, marketability=0, visual_impact=0,
            )

    def test_machinery_is_function_led(self, settings):
        machinery = settings.scoring.weights_for(Industry.MACHINERY)
        assert machinery is not DEFAULT_WEIGHTS
        assert machinery.function > DEFAULT_WEIGHTS.function
        assert machinery.function == max(machinery.as_dict().values())

    def test_footwear_uses_default(self, settings):
        assert settings.scoring.weights_for(Industry.FOOTWEAR) is DEFAULT_WEIGHTS
        assert settings.scoring.weights_for(None) is DEFAULT_WEIGHTS


class TestAnalyze:
    def test_steel_housing(self, analyzer, housing_materials):
        analysis = analyzer.analyze(housing_materials, "machine housing")
        assert analysis.component == "Steel"
        assert analysis.confidence >= 0.6
        assert analysis.confidence == pytest.approx(0.9)
        assert analysis.determined_by.type is CharacterFactor.FUNCTION
        assert analysis.industry_method is not None
        assert analysis.industry_method.reference == "Section XVI Note 3"

    def test_reasoning_mentions_both_materials(self, analyzer, housing_materials):
        analysis = analyzer.analyze(housing_materials, "machine housing")
        assert analysis.reasoning.startswith("Steel gives the product its essential character.")
        assert "While Plastic comprises 40%" in analysis.reasoning

    def test_single_material_gets_full_gap_bonus(self, analyzer):
        analysis = analyzer.analyze([Material(name="Wool", percentage=100)], "ceramic vase")
        assert analysis.confidence == pytest.approx(0.8)

    def test_confidence_capped(self, analyzer):
        analysis = analyzer.analyze(
            [Material(name="Leather", percentage=90), Material(name="Metal clasp", percentage=10)],
            "leather wallet",
        )
        assert analysis.confidence <= 0.95

    def test_scores_kept_in_input_order(self, analyzer):
        materials = [Material(name="Plastic", percentage=20), Material(name="Steel", percentage=80)]
        analysis = analyzer.analyze(materials, "pump")
        assert [s.material for s in analysis.material_scores] == ["Plastic", "Steel"]
        assert analysis.component == "Steel"

    def test_empty_materials_raise(self, analyzer):
        with pytest.raises(AnalysisError):
            analyzer.analyze([], "anything")

    def test_unbalanced_materials_still_analysed(self, analyzer):
        analysis = analyzer.analyze(
            [Material(name="Cotton", percentage=50), Material(name="Wool", percentage=20)], "shirt",
        )
        assert analysis.component == "Cotton"


class TestDecision:
    def test_to_decision(self, analyzer, housing_materials):
        decision = analyzer.analyze_for_gri_3b(housing_materials, "machine housing")
        assert decision.rule_id == "gri_3b"
        assert decision.criterion_id == "component_analysis"
        assert decision.answer == "Steel"
        assert decision.legal_basis[:2] == [GRI_3B_BASIS, "Section XVI Note 3"]
        assert decision.metadata["source"] == "essential_character_analyzer"
        assert decision.metadata["analysis"]["component"] == "Steel"

    def test_detailed_report(self, analyzer, housing_materials):
        report = analyzer.detailed_report(housing_materials, "machine housing")
        assert report.startswith("# Essential Character Analysis Report")
        assert "**Industry:** Machinery" in report
        assert "### Steel" in report and "### Plastic" in report


class TestValidatePercentages:
    def test_balanced(self, housing_materials):
        assert validate_material_percentages(housing_materials) == []

    def test_unbalanced(self):
        problems = validate_material_percentages(
            [Material(name="A", percentage=60), Material(name="B", percentage=30)]
        )
        assert problems == ["Material percentages must total 100% (got 90%)"]

    def test_empty(self):
        assert validate_material_percentages([]) == ["At least one material is required"]

    @pytest.mark.parametrize("percentages", [
        (99.995,),
        (100.005,),
        (60.005, 40),
        (59.995, 40),
    ])
    def test_within_tolerance(self, percentages):
        materials = [Material(name=f"M{i}", percentage=p) for i, p in enumerate(percentages)]
        assert validate_material_percentages(materials, 0.01) == []

    def test_just_outside_tolerance(self):
        problems = validate_material_percentages([Material(name="Steel", percentage=100.02)], 0.01)
        assert problems == ["Material percentages must total 100% (got 100.02%)"]

    @pytest.mark.parametrize("percentage", [99.995, 100.005])
    def test_analyzer_accepts_tolerance_edges(self, analyzer, percentage):
        analysis = analyzer.analyze([Material(name="Steel", percentage=percentage)], "machine")
        assert analysis.component == "Steel"
