"""
services/container.py
──────────────────────────────────────────────────────────────────────────────
Dependency Injection container.

THIS IS THE ONLY FILE THAT NAMES CONCRETE ADAPTER CLASSES.

Provider selection is driven entirely by environment variables — no code
changes are needed to switch between providers:

  REFERENCE_PROVIDER=none      (default) → no reference lookups; heading
                                           suggestions are unavailable and
                                           the checklist trusts the final code
  REFERENCE_PROVIDER=postgres            → PostgresReferenceAdapter

  PERSISTENCE_PROVIDER=none    (default) → in-memory only
  PERSISTENCE_PROVIDER=postgres          → PostgresPersistenceAdapter

Both Postgres adapters read DB_DSN.

Thread safety:
  @lru_cache(maxsize=1) makes each getter return the same instance across
  calls.  The registry serialises work per classification id; each worker
  process gets its own adapters (one per process — correct behaviour for
  psycopg2 connections).
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from gri_compliance.config.settings import Settings, get_settings
from gri_compliance.domain.exceptions import ConfigurationError
from gri_compliance.ports.persistence_port import PersistencePort
from gri_compliance.ports.reference_data_port import ReferenceDataPort
from gri_compliance.services.session import SessionRegistry

logger = logging.getLogger(__name__)


def _build_reference(settings: Settings) -> Optional[ReferenceDataPort]:
    """Instantiate the ReferenceDataPort adapter selected by REFERENCE_PROVIDER."""
    provider = settings.reference_provider.lower()
    if provider == "none":
        logger.info("Reference provider: none")
        return None
    if provider == "postgres":
        from gri_compliance.adapters.postgres_reference import PostgresReferenceAdapter
        logger.info("Reference provider: PostgreSQL")
        return PostgresReferenceAdapter(settings)
    raise ConfigurationError(
        f"Unknown REFERENCE_PROVIDER '{settings.reference_provider}'. "
        "Valid values: 'none', 'postgres'."
    )


def _build_persistence(settings: Settings) -> Optional[PersistencePort]:
    """Instantiate the PersistencePort adapter selected by PERSISTENCE_PROVIDER."""
    provider = settings.persistence_provider.lower()
    if provider == "none":
        logger.info("Persistence provider: none (in-memory)")
        return None
    if provider == "postgres":
        from gri_compliance.adapters.postgres_persistence import PostgresPersistenceAdapter
        logger.info("Persistence provider: PostgreSQL")
        return PostgresPersistenceAdapter(settings)
    raise ConfigurationError(
        f"Unknown PERSISTENCE_PROVIDER '{settings.persistence_provider}'. "
        "Valid values: 'none', 'postgres'."
    )


@lru_cache(maxsize=1)
def get_reference_port() -> Optional[ReferenceDataPort]:
    return _build_reference(get_settings())


@lru_cache(maxsize=1)
def get_persistence_port() -> Optional[PersistencePort]:
    return _build_persistence(get_settings())


@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    """Build and return the fully wired SessionRegistry singleton.

    Returns:
        SessionRegistry sharing the configured reference and persistence
        adapters across all sessions.

    Raises:
        ConfigurationError: If an unknown provider name is given.
    """
    settings = get_settings()
    logger.info(
        "Building SessionRegistry | reference_provider=%s persistence_provider=%s",
        settings.reference_provider,
        settings.persistence_provider,
    )
    return SessionRegistry(
        settings,
        reference=get_reference_port(),
        persistence=get_persistence_port(),
    )
