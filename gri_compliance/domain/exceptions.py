"""
domain/exceptions.py
──────────────────────────────────────────────────────────────────────────────
Custom exception hierarchy.

All exceptions are rooted at GRIError so callers can catch broadly
(except GRIError) or narrowly (except InvalidRuleReference).

Only conditions that must abort the current request are raised.  Findings
that an operator is expected to read and correct are returned as data:
  rule validation failures  → ValidationResult.errors
  compliance findings       → ComplianceReport.overall_errors / phase errors
  no eligible transition    → determine_next_step() returns None

When adding an HTTP layer, map these to appropriate status codes:
  InvalidRuleReference    → 400
  SessionNotFoundError    → 404
  IntegrityError          → 409
  ExportNotSupportedError → 501
  ReferenceDataError      → 503
  PersistenceError        → 503
  ValidationError         → 422 (Pydantic handles this automatically)
"""
from __future__ import annotations


class GRIError(Exception):
    """Base exception for all application errors."""


class ConfigurationError(GRIError):
    """Raised when required configuration is missing or invalid."""


class InvalidRuleReference(GRIError):
    """Raised when a rule id is not present in the rule catalog."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Invalid rule ID: {rule_id}")
        self.rule_id = rule_id


class IntegrityError(GRIError):
    """Raised when a ledger's stored hashes no longer match its content.

    Never auto-corrected: the ledger must be investigated.
    """


class AnalysisError(GRIError):
    """Raised when the essential-character analysis cannot be run at all."""


class ExportNotSupportedError(GRIError):
    """Raised for report export formats that are not implemented."""


class ReferenceDataError(GRIError):
    """Raised when the tariff reference-data lookup fails."""


class PersistenceError(GRIError):
    """Raised when writing decisions, audit entries or snapshots fails."""


class SessionNotFoundError(GRIError):
    """Raised when no classification session exists for an id."""
