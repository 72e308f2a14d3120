"""
GRI Customs Classification Compliance Core — Production Package
================================================================
Hexagonal (Ports & Adapters) architecture.

Layer map
─────────────────────────────────────────────────────
  config/       Settings and essential-character scoring weights
  domain/       Pure business objects (models, rule catalog, compliance
                phases, HS code utilities, hashing, exceptions) — no I/O
  ports/        Abstract interfaces (Python Protocols)
  adapters/     Concrete implementations of each Port (Postgres)
  services/     Engine, ledger, validator, analyzer, report generator and
                sessions; depends only on Ports, never Adapters
  interfaces/   Delivery layer: CLI, (future) API
  tests/        Full test suite: unit / integration / e2e

Swapping the reference data or persistence backend:
  1. Write a new adapter in adapters/ implementing the relevant Port
  2. Change the single wiring function in services/container.py
  3. Done — zero other files touched
"""
__version__ = "1.0.0"
