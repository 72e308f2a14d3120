"""
domain/hs_codes.py
──────────────────────────────────────────────────────────────────────────────
Harmonized System code utilities: format validation, normalisation, dotted
formatting and the national-tariff check digit.

Accepted forms:
  8471          4-digit heading
  8471.30       6-digit subheading
  8471.30.00    8-digit national tariff item

The check digit for an 8-digit tariff item is a weighted modulo-10 sum:
digits at even positions weigh 1, odd positions weigh 3, and the check digit
is ``(10 - sum % 10) % 10``.
"""
from __future__ import annotations

import re

HS_CODE_RE = re.compile(r"^\d{4}(\.\d{2})?(\.\d{2})?$")

_LEVELS = {2: "chapter", 4: "heading", 6: "subheading", 8: "tariff_item"}


def is_valid_hs_code(code: str) -> bool:
    """True for ``dddd``, ``dddd.dd`` and ``dddd.dd.dd``."""
    return bool(HS_CODE_RE.match(code or ""))


def normalize_code(code: str) -> str:
    """Strip dots and whitespace: ``"8471.30.00"`` → ``"84713000"``."""
    return re.sub(r"[\s.]", "", code or "")


def code_level(code: str) -> str | None:
    """Hierarchy level implied by the number of digits, or None."""
    digits = normalize_code(code)
    if not digits.isdigit():
        return None
    return _LEVELS.get(len(digits))


def format_code(code: str) -> str:
    """Render a 4/6/8-digit code in dotted form.

    Raises:
        ValueError: If *code* does not normalise to 4, 6 or 8 digits.
    """
    digits = normalize_code(code)
    if not digits.isdigit() or len(digits) not in (4, 6, 8):
        raise ValueError(f"Cannot format HS code {code!r}")
    parts = [digits[:4]] + [digits[i:i + 2] for i in range(4, len(digits), 2)]
    return ".".join(parts)


def heading_of(code: str) -> str:
    """The 4-digit heading a code belongs to."""
    return normalize_code(code)[:4]


def calculate_check_digit(code8: str) -> str:
    """Check digit for an 8-digit national tariff code.

    Args:
        code8: Eight digits, dotted or not (``"8471.30.00"`` or ``"84713000"``).

    Returns:
        A single-character string ``"0"``–``"9"``.

    Raises:
        ValueError: If *code8* is not exactly eight digits.
    """
    digits = normalize_code(code8)
    if len(digits) != 8 or not digits.isdigit():
        raise ValueError(f"Code must be 8 digits, got {code8!r}")
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits))
    return str((10 - total % 10) % 10)


def with_check_digit(code8: str) -> str:
    """``"8471.30.00"`` → ``"8471.30.00-7"``."""
    return f"{format_code(code8)}-{calculate_check_digit(code8)}"
