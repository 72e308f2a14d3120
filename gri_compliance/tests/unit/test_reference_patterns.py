"""
tests/unit/test_reference_patterns.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for the ILIKE pattern built by PostgresReferenceAdapter.

No database connection is opened.
"""
from __future__ import annotations

import pytest

from gri_compliance.adapters.postgres_reference import _like_pattern


class TestLikePattern:
    @pytest.mark.parametrize("text, pattern", [
        ("laptop", "%laptop%"),
        ("100%", "%100\\%%"),
        ("at_least", "%at\\_least%"),
        ("C:\\dir", "%C:\\\\dir%"),
    ])
    def test_escapes_wildcards(self, text, pattern):
        assert _like_pattern(text) == pattern
