"""
tests/unit/test_models.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for domain models (Pydantic validation, immutability, serialisation).
"""
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from gri_compliance.domain.models import (
    AuditEntry,
    ClassificationContext,
    DecisionInput,
    GRIDecision,
    Material,
    MeasurementBasis,
)


class TestMaterial:
    def test_defaults_to_weight_basis(self):
        m = Material(name="  Steel ", percentage=60)
        assert m.name == "Steel"
        assert m.basis is MeasurementBasis.WEIGHT
        assert m.role is None

    def test_negative_percentage_rejected(self):
        with pytest.raises(ValidationError):
            Material(name="Steel", percentage=-1)

    def test_percentage_above_100_left_to_list_check(self):
        assert Material(name="Steel", percentage=100.005).percentage == 100.005

    def test_role_from_string(self):
        assert Material(name="Trim", percentage=5, role="decorative").role.value == "decorative"


class TestDecisionInput:
    def test_strips_ids(self):
        d = DecisionInput(
            rule_id=" gri_1 ", criterion_id=" heading_match", reasoning=" Names the goods ",
            confidence=0.8,
        )
        assert d.rule_id == "gri_1"
        assert d.criterion_id == "heading_match"
        assert d.reasoning == "Names the goods"

    @pytest.mark.parametrize("field", ["rule_id", "criterion_id", "reasoning"])
    def test_blank_rejected(self, field):
        data = {"rule_id": "gri_1", "criterion_id": "c", "reasoning": "r", "confidence": 0.5}
        data[field] = "  "
        with pytest.raises(ValidationError):
            DecisionInput(**data)

    def test_confidence_required(self):
        with pytest.raises(ValidationError):
            DecisionInput(rule_id="gri_1", criterion_id="c", reasoning="r")


class TestFrozenRecords:
    def test_decision_is_frozen(self):
        d = GRIDecision(rule_id="gri_1", criterion_id="c", reasoning="r", confidence=0.5)
        with pytest.raises(ValidationError):
            d.answer = "changed"

    def test_audit_entry_is_frozen(self):
        e = AuditEntry(
            id="audit_1", classification_id="c", action="a", actor="x",
            timestamp="2024-01-01T00:00:00+00:00", hash="h",
        )
        with pytest.raises(ValidationError):
            e.action = "b"


class TestContext:
    def test_defaults(self):
        ctx = ClassificationContext(classification_id="c")
        assert ctx.current_rule_id == "pre_classification"
        assert ctx.decisions == []
        assert ctx.materials is None

    def test_round_trips_through_json(self):
        ctx = ClassificationContext(
            classification_id="c",
            materials=[Material(name="Steel", percentage=100)],
            decisions=[GRIDecision(rule_id="gri_1", criterion_id="c", reasoning="r", confidence=0.5)],
        )
        restored = ClassificationContext.model_validate(json.loads(ctx.model_dump_json()))
        assert restored == ctx
