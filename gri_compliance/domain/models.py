"""
domain/models.py
──────────────────────────────────────────────────────────────────────────────
Pure domain objects — Pydantic models with no imports from adapters or ports.

These models are the lingua franca of the entire system:
  • the engine and ledger produce and consume them
  • the compliance validator and report generator read them
  • adapters persist them and interfaces serialise them

Records that are written once and never edited (GRIDecision, AuditEntry) are
frozen.  Their ``details`` / ``answer`` payloads are plain containers, so an
in-place edit is still possible; the ledger's integrity check is what
detects it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────────────

class Operator(str, Enum):
    """Closed set of comparison operators used by transition conditions."""
    EQUALS       = "equals"
    CONTAINS     = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN    = "less_than"
    IN           = "in"
    NOT_IN       = "not_in"


class Logic(str, Enum):
    AND = "AND"
    OR  = "OR"


class AnswerType(str, Enum):
    BOOLEAN     = "boolean"
    SELECT      = "select"
    MULTISELECT = "multiselect"
    TEXT        = "text"
    NUMBER      = "number"


class MeasurementBasis(str, Enum):
    """Which quantity a material percentage is measured by."""
    WEIGHT = "weight"
    VALUE  = "value"
    VOLUME = "volume"


class MaterialRole(str, Enum):
    FUNCTIONAL = "functional"
    STRUCTURAL = "structural"
    DECORATIVE = "decorative"
    AESTHETIC  = "aesthetic"
    PROTECTIVE = "protective"


class Industry(str, Enum):
    TEXTILES    = "textiles"
    ELECTRONICS = "electronics"
    FURNITURE   = "furniture"
    JEWELRY     = "jewelry"
    MACHINERY   = "machinery"
    FOOTWEAR    = "footwear"
    TOYS        = "toys"


class CharacterFactor(str, Enum):
    """The factor an essential-character determination is attributed to."""
    WEIGHT        = "weight"
    VALUE         = "value"
    VOLUME        = "volume"
    FUNCTION      = "function"
    MARKETABILITY = "marketability"
    VISUAL_IMPACT = "visual_impact"


class Severity(str, Enum):
    """Severity of a compliance validator finding."""
    CRITICAL = "critical"
    WARNING  = "warning"
    INFO     = "info"


class ChecklistSeverity(str, Enum):
    CRITICAL    = "critical"
    IMPORTANT   = "important"
    RECOMMENDED = "recommended"


class ChecklistCategory(str, Enum):
    DOCUMENTATION = "documentation"
    PROCESS       = "process"
    TECHNICAL     = "technical"
    LEGAL         = "legal"


class NoteType(str, Enum):
    INCLUSION = "inclusion"
    EXCLUSION = "exclusion"
    GENERAL   = "general"


class PhaseStatus(str, Enum):
    NOT_STARTED = "not_started"
    INCOMPLETE  = "incomplete"
    COMPLETE    = "complete"


class ClassificationStatus(str, Enum):
    IN_PROGRESS  = "in_progress"
    COMPLETED    = "completed"
    NEEDS_REVIEW = "needs_review"


class StepStatus(str, Enum):
    ACTIVE    = "active"
    COMPLETED = "completed"


# ── Product input ──────────────────────────────────────────────────────────────

class Material(BaseModel):
    """One constituent material of a composite good.

    No upper bound on *percentage*: the list total is checked against the
    configured tolerance by validate_material_percentages().
    """

    name:       str = Field(..., min_length=1)
    percentage: float = Field(..., ge=0)
    basis:      MeasurementBasis = MeasurementBasis.WEIGHT
    role:       Optional[MaterialRole] = None
    hs_code:    Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class HSHeading(BaseModel):
    """A heading the classification may fall under."""

    code:          str
    description:   str = ""
    confidence:    float = Field(0.0, ge=0, le=1)
    match_reasons: list[str] = Field(default_factory=list)


class ExcludedHeading(BaseModel):
    """A heading ruled out by a legal note."""

    code:       str
    reason:     str
    legal_note: str = ""


# ── Decisions ──────────────────────────────────────────────────────────────────

class DecisionInput(BaseModel):
    """Validated input to ClassificationEngine.record_decision()."""

    rule_id:      str = Field(..., min_length=1)
    criterion_id: str = Field(..., min_length=1)
    question:     str = ""
    answer:       Any = None
    reasoning:    str = Field(..., min_length=1)
    confidence:   float = Field(..., ge=0, le=1)
    legal_basis:  list[str] = Field(default_factory=list)
    metadata:     dict[str, Any] = Field(default_factory=dict)

    @field_validator("rule_id", "criterion_id", "reasoning")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class GRIDecision(BaseModel):
    """A recorded answer to one decision criterion.  Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    rule_id:      str
    criterion_id: str
    question:     str = ""
    answer:       Any = None
    reasoning:    str
    confidence:   float = Field(..., ge=0, le=1)
    legal_basis:  list[str] = Field(default_factory=list)
    metadata:     dict[str, Any] = Field(default_factory=dict)
    timestamp:    datetime = Field(default_factory=_utcnow)
    hash:         str = ""


class ClassificationContext(BaseModel):
    """Working state of one classification, owned by exactly one engine."""

    classification_id:        str = Field(..., min_length=1)
    product_description:      str = ""
    current_rule_id:          str = "pre_classification"
    decisions:                list[GRIDecision] = Field(default_factory=list)
    materials:                Optional[list[Material]] = None
    suggested_headings:       Optional[list[HSHeading]] = None
    excluded_headings:        Optional[list[ExcludedHeading]] = None
    physical_characteristics: Optional[dict[str, Any]] = None
    technical_specifications: Optional[dict[str, Any]] = None
    created_at:               datetime = Field(default_factory=_utcnow)


class AuditEntry(BaseModel):
    """A single append-only audit event."""

    model_config = ConfigDict(frozen=True)

    id:                str
    classification_id: str
    action:            str
    actor:             str
    details:           dict[str, Any] = Field(default_factory=dict)
    timestamp:         datetime
    hash:              str


class ValidationResult(BaseModel):
    valid:  bool
    errors: list[str] = Field(default_factory=list)


# ── Essential character ────────────────────────────────────────────────────────

class MaterialAnalysis(BaseModel):
    """Per-material sub-scores (0–100) and the weighted overall score."""

    material:            str
    percentage:          float
    basis:               MeasurementBasis
    weight_score:        float
    value_score:         float
    volume_score:        float
    function_score:      float
    marketability_score: float
    visual_score:        float
    overall_score:       float

    def factor_scores(self) -> dict[CharacterFactor, float]:
        return {
            CharacterFactor.WEIGHT:        self.weight_score,
            CharacterFactor.VALUE:         self.value_score,
            CharacterFactor.VOLUME:        self.volume_score,
            CharacterFactor.FUNCTION:      self.function_score,
            CharacterFactor.MARKETABILITY: self.marketability_score,
            CharacterFactor.VISUAL_IMPACT: self.visual_score,
        }


class FactorEvidence(BaseModel):
    """A character factor with its score and the evidence behind it."""

    type:        CharacterFactor
    description: str
    importance:  float
    evidence:    Optional[str] = None


class IndustryMethod(BaseModel):
    industry:  Industry
    method:    str
    reference: str


class Precedent(BaseModel):
    """A historical ruling matched against the product type."""

    product:   str
    decision:  str
    authority: str
    relevance: int = Field(..., ge=0, le=100)


class EssentialCharacterAnalysis(BaseModel):
    """Result of EssentialCharacterAnalyzer.analyze()."""

    determined_by:      FactorEvidence
    component:          str
    reasoning:          str
    confidence:         float = Field(..., ge=0, le=1)
    supporting_factors: list[FactorEvidence] = Field(default_factory=list)
    industry_method:    Optional[IndustryMethod] = None
    precedents:         list[Precedent] = Field(default_factory=list)
    material_scores:    list[MaterialAnalysis] = Field(default_factory=list)


# ── Compliance ─────────────────────────────────────────────────────────────────

class PhaseReport(BaseModel):
    phase_id: str
    name:     str
    status:   PhaseStatus
    errors:   list[str] = Field(default_factory=list)


class ComplianceReport(BaseModel):
    """Result of ComplianceValidator.generate_compliance_report()."""

    compliant:      bool
    phases:         list[PhaseReport] = Field(default_factory=list)
    overall_errors: list[str] = Field(default_factory=list)


class ComplianceChecklistItem(BaseModel):
    """One defense-checklist requirement.  Always derived, never persisted."""

    requirement: str
    satisfied:   bool
    evidence:    Optional[str] = None
    severity:    ChecklistSeverity
    category:    ChecklistCategory


# ── Ledger output ──────────────────────────────────────────────────────────────

class LegalSummary(BaseModel):
    classification_id:        str
    start_time:               Optional[datetime] = None
    end_time:                 Optional[datetime] = None
    total_decisions:          int
    overall_confidence:       float
    low_confidence_decisions: list[GRIDecision] = Field(default_factory=list)
    audit_event_count:        int
    requires_expert_review:   bool = False


class LegalRecordMetadata(BaseModel):
    classification_id: str
    exported_at:       datetime = Field(default_factory=_utcnow)
    version:           str


class LegalRecord(BaseModel):
    """Versioned snapshot produced by DecisionLedger.export_for_legal_record()."""

    metadata:    LegalRecordMetadata
    decisions:   list[GRIDecision]
    audit_trail: list[AuditEntry]
    summary:     LegalSummary

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


# ── Report input / output ──────────────────────────────────────────────────────

class ClassificationRecord(BaseModel):
    """The classification a report is generated for."""

    id:                  str
    product_description: str
    status:              ClassificationStatus = ClassificationStatus.IN_PROGRESS
    final_hs_code:       Optional[str] = None
    confidence:          Optional[float] = None
    created_at:          datetime = Field(default_factory=_utcnow)
    completed_at:        Optional[datetime] = None


class StepRecord(BaseModel):
    """One visit to a rule during the classification walk."""

    rule_id:      str
    status:       StepStatus = StepStatus.ACTIVE
    started_at:   datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None


class LegalReport(BaseModel):
    """Complete output of ReportGenerator.generate_report()."""

    id:                str
    classification_id: str
    content:           str
    hash:              str
    checklist:         list[ComplianceChecklistItem]
    executive_summary: str
    compliance_score:  int
    compliance:        Optional[ComplianceReport] = None
    generated_at:      datetime
    expires_at:        datetime
    version:           str

    def to_dict(self) -> dict:
        """Serialise to a plain dict (JSON-safe datetimes and enums)."""
        return self.model_dump(mode="json")


class CompletionResult(BaseModel):
    """Returned by ClassificationSession.complete()."""

    classification_id:   str
    final_hs_code:       str
    confidence:          float
    needs_expert_review: bool
    compliance:          ComplianceReport
    integrity_verified:  bool


# ── Tariff reference data ──────────────────────────────────────────────────────

class LegalNote(BaseModel):
    source: str
    text:   str
    type:   NoteType


class TariffCode(BaseModel):
    """A node of the tariff hierarchy (chapter → heading → subheading → item)."""

    code:        str
    description: str
    level:       str
    parent_code: Optional[str] = None
    notes:       list[str] = Field(default_factory=list)
    exclusions:  list[str] = Field(default_factory=list)


class TariffCodeMatch(BaseModel):
    """A keyword search hit with its ancestry and applicable notes."""

    code:      TariffCode
    hierarchy: list[TariffCode] = Field(default_factory=list)
    notes:     list[LegalNote] = Field(default_factory=list)
