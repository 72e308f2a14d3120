"""
ports/reference_data_port.py
──────────────────────────────────────────────────────────────────────────────
Abstract interface for the read-only tariff reference data.

The core never acquires reference data itself (no crawling, no PDF parsing);
it only looks codes up.  The port separates four lookups:
  1. get_by_code           — a single node of the hierarchy
  2. get_hierarchy         — the node and all of its ancestors
  3. get_applicable_notes  — legal notes inherited down the hierarchy
  4. search_by_keyword     — description search, optionally gated by
                             exclusion notes

Codes are passed and returned in dotted form (``8471``, ``8471.30``,
``8471.30.00``); chapters are two digits.

Current implementation: PostgresReferenceAdapter (psycopg2)
To swap: write a new adapter implementing this Protocol and change ONE
function in services/container.py.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from gri_compliance.domain.models import LegalNote, TariffCode, TariffCodeMatch


@runtime_checkable
class ReferenceDataPort(Protocol):
    """Contract for the tariff-code hierarchy lookup."""

    def get_by_code(self, code: str) -> Optional[TariffCode]:
        """Fetch one tariff code.

        Args:
            code: Dotted code at any level.

        Returns:
            The TariffCode, or None if the code is not in the schedule.

        Raises:
            ReferenceDataError: On connection or query failure.
        """
        ...

    def get_hierarchy(self, code: str) -> list[TariffCode]:
        """Return *code* and its ancestors, root (chapter) first.

        Returns:
            Empty list if *code* is unknown.

        Raises:
            ReferenceDataError: On connection or query failure.
        """
        ...

    def get_applicable_notes(self, code: str) -> list[LegalNote]:
        """Collect the notes and exclusions of *code* and all its ancestors.

        Returns:
            Notes ordered root first; general notes before exclusions at
            each level.

        Raises:
            ReferenceDataError: On connection or query failure.
        """
        ...

    def search_by_keyword(
        self,
        text: str,
        exclude_exclusions: bool = True,
        limit: int = 50,
    ) -> list[TariffCodeMatch]:
        """Search code descriptions for *text*.

        Args:
            text:               Case-insensitive search keyword.
            exclude_exclusions: Drop codes whose applicable exclusion notes
                                mention *text*.
            limit:              Maximum number of matches.

        Returns:
            Matches with hierarchy and applicable notes attached.

        Raises:
            ReferenceDataError: On connection or query failure.
        """
        ...
