"""
config/settings.py
──────────────────────────────────────────────────────────────────────────────
Single source of truth for all tuneable parameters.

All values can be overridden via environment variables or a .env file placed
at the project root.  The frozen dataclass ensures settings are never mutated
at runtime.

To swap providers, change the relevant env var — no code edits required:
  REFERENCE_PROVIDER    → tariff reference-data lookup ("none" | "postgres")
  PERSISTENCE_PROVIDER  → decision / audit sink ("none" | "postgres")
  DB_DSN                → swap database
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from gri_compliance.config.weights import ScoringConfig

# Load .env from project root (two levels up from this file)
load_dotenv(Path(__file__).parent.parent.parent / ".env")


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


def _env_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _env_float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _build_scoring() -> ScoringConfig:
    return ScoringConfig(
        base_confidence=_env_float("EC_BASE_CONFIDENCE", 0.5),
        gap_bonus_cap=_env_float("EC_GAP_BONUS_CAP", 0.3),
        industry_bonus=_env_float("EC_INDUSTRY_BONUS", 0.1),
        precedent_bonus_cap=_env_float("EC_PRECEDENT_BONUS_CAP", 0.1),
        max_confidence=_env_float("EC_MAX_CONFIDENCE", 0.95),
    )


@dataclass(frozen=True)
class Settings:
    """Immutable application settings loaded from environment variables."""

    # ── Provider selection ──────────────────────────────────────────────────
    # Valid values: "none" | "postgres"
    reference_provider: str = field(
        default_factory=lambda: _env("REFERENCE_PROVIDER", "none")
    )
    persistence_provider: str = field(
        default_factory=lambda: _env("PERSISTENCE_PROVIDER", "none")
    )

    # ── Database ───────────────────────────────────────────────────────────
    db_dsn: str = field(
        default_factory=lambda: _env("DB_DSN", "dbname=gri_db")
    )

    # ── Review thresholds ──────────────────────────────────────────────────
    # Decisions below this confidence flag the classification for expert review.
    expert_review_threshold: float = field(
        default_factory=lambda: _env_float("EXPERT_REVIEW_THRESHOLD", 0.7)
    )
    # Reasoning at or below this length does not count as documented.
    min_reasoning_length: int = field(
        default_factory=lambda: _env_int("MIN_REASONING_LENGTH", 10)
    )
    # Material percentages must total 100 within this tolerance.
    material_tolerance: float = field(
        default_factory=lambda: _env_float("MATERIAL_TOLERANCE", 0.01)
    )

    # ── Essential character ────────────────────────────────────────────────
    precedent_limit: int = field(
        default_factory=lambda: _env_int("PRECEDENT_LIMIT", 3)
    )
    scoring: ScoringConfig = field(default_factory=_build_scoring)

    # ── Reference data ─────────────────────────────────────────────────────
    heading_search_limit: int = field(
        default_factory=lambda: _env_int("HEADING_SEARCH_LIMIT", 50)
    )

    # ── Reports and legal records ──────────────────────────────────────────
    report_version: str = field(
        default_factory=lambda: _env("REPORT_VERSION", "1.0.0")
    )
    report_validity_days: int = field(
        default_factory=lambda: _env_int("REPORT_VALIDITY_DAYS", 90)
    )
    ledger_version: str = field(
        default_factory=lambda: _env("LEDGER_VERSION", "1.0.0")
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Returns a cached singleton Settings instance.

    Use this everywhere instead of instantiating Settings() directly —
    it guarantees a single object is shared across the entire process.
    """
    return Settings()
