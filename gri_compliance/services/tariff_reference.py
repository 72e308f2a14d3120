"""
services/tariff_reference.py
──────────────────────────────────────────────────────────────────────────────
Heading suggestions and classification sanity checks over ReferenceDataPort.

The service holds no data of its own: every lookup goes through the port,
which the container wires to PostgresReferenceAdapter (or which tests
replace with an in-memory mock).

Exclusion notes gate suggestions: a keyword hit whose applicable exclusion
notes mention the same keyword is returned as an ExcludedHeading, not as a
suggestion.
"""
from __future__ import annotations

import logging
from typing import Optional

from gri_compliance.config.settings import Settings
from gri_compliance.domain.hs_codes import format_code, normalize_code
from gri_compliance.domain.models import (
    ExcludedHeading,
    HSHeading,
    NoteType,
    TariffCodeMatch,
    ValidationResult,
)
from gri_compliance.ports.reference_data_port import ReferenceDataPort

logger = logging.getLogger(__name__)

# More specific hits are better starting points for GRI 1.
_LEVEL_CONFIDENCE = {
    "chapter":     0.4,
    "heading":     0.6,
    "subheading":  0.7,
    "tariff_item": 0.8,
}


def lookup_key(code: str) -> str:
    """Dotted form used by the reference port (chapters stay two digits).

    Raises:
        ValueError: If *code* is not a 2, 4, 6 or 8 digit code.
    """
    digits = normalize_code(code)
    if len(digits) == 2 and digits.isdigit():
        return digits
    return format_code(digits)


class TariffReferenceService:
    """Read-only tariff lookups for the classification workflow.

    Args:
        reference: Any ReferenceDataPort implementation.
        settings:  Shared application settings (default search limit).
    """

    def __init__(self, reference: ReferenceDataPort, settings: Settings) -> None:
        self._reference = reference
        self._settings = settings

    def suggest_headings(
        self,
        keyword: str,
        limit: Optional[int] = None,
    ) -> tuple[list[HSHeading], list[ExcludedHeading]]:
        """Split keyword matches into suggestions and exclusions.

        Args:
            keyword: Search keyword (matched case-insensitively).
            limit:   Maximum matches to consider (default: settings).

        Returns:
            (suggested, excluded) in the order the port returned them.

        Raises:
            ReferenceDataError: If the lookup fails.
        """
        limit = limit or self._settings.heading_search_limit
        matches = self._reference.search_by_keyword(keyword, exclude_exclusions=False, limit=limit)
        needle = keyword.lower()

        suggested: list[HSHeading] = []
        excluded: list[ExcludedHeading] = []
        for match in matches:
            hit = next(
                (n for n in match.notes
                 if n.type is NoteType.EXCLUSION and needle in n.text.lower()),
                None,
            )
            if hit is not None:
                excluded.append(ExcludedHeading(
                    code=match.code.code,
                    reason=f"Excluded by {hit.source}",
                    legal_note=hit.text,
                ))
            else:
                suggested.append(self._to_heading(match, keyword))

        logger.info(
            "Heading suggestions | keyword=%r suggested=%d excluded=%d",
            keyword,
            len(suggested),
            len(excluded),
        )
        return suggested, excluded

    def validate_classification(self, description: str, code: str) -> ValidationResult:
        """Check a proposed code against the product description.

        Reports an unknown code, exclusion notes whose words appear in the
        description, and a description sharing no keyword with the code.
        """
        try:
            key = lookup_key(code)
        except ValueError:
            return ValidationResult(valid=False, errors=["Invalid HS code"])
        tariff_code = self._reference.get_by_code(key)
        if tariff_code is None:
            return ValidationResult(valid=False, errors=["Invalid HS code"])

        issues: list[str] = []
        text = description.lower()
        for note in self._reference.get_applicable_notes(key):
            if note.type is not NoteType.EXCLUSION:
                continue
            words = [w for w in note.text.lower().split() if len(w) > 3]
            if any(w in text for w in words):
                issues.append(f"Product may be excluded by: {note.text} (from {note.source})")

        code_words = [w for w in tariff_code.description.lower().split() if len(w) > 3]
        if not any(w in text for w in code_words):
            issues.append(
                "Product description does not match any keywords from the HS code description"
            )
        return ValidationResult(valid=not issues, errors=issues)

    def code_exists(self, code: str) -> bool:
        try:
            key = lookup_key(code)
        except ValueError:
            return False
        return self._reference.get_by_code(key) is not None

    # ── Internal helpers ───────────────────────────────────────────────────

    @staticmethod
    def _to_heading(match: TariffCodeMatch, keyword: str) -> HSHeading:
        reasons = [f"Description contains '{keyword}'"]
        if match.hierarchy:
            reasons.append("Path: " + " > ".join(node.code for node in match.hierarchy))
        if match.notes:
            reasons.append(f"{len(match.notes)} applicable notes")
        return HSHeading(
            code=match.code.code,
            description=match.code.description,
            confidence=_LEVEL_CONFIDENCE.get(match.code.level, 0.5),
            match_reasons=reasons,
        )
