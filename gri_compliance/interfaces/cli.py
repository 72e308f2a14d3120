"""
interfaces/cli.py
──────────────────────────────────────────────────────────────────────────────
Command-line interface: replay a recorded classification and print its
legal report.

Usage:
  # Replay a session file and print the markdown report
  python -m gri_compliance.interfaces.cli --session session.json

  # JSON output (report, completion result and legal record)
  python -m gri_compliance.interfaces.cli --session session.json --json

  # Write the report to a file instead of stdout
  python -m gri_compliance.interfaces.cli --session session.json --output report.md

  # Check digit for an 8-digit national tariff code
  python -m gri_compliance.interfaces.cli --check-digit 8471.30.00

  # Via installed entry-point (pyproject.toml [project.scripts])
  gri-report --session session.json

Session file format:
  {
    "classification_id": "cls-001",
    "product_description": "...",
    "materials": [{"name": "Steel", "percentage": 60, "basis": "weight"}],
    "physical_characteristics": {...},          (optional)
    "technical_specifications": {...},          (optional)
    "steps": [
      {"rule_id": "pre_classification",
       "decisions": [{"criterion_id": "...", "answer": ..., "reasoning": "...",
                      "confidence": 0.9, "legal_basis": ["..."]}]},
      ...
    ],
    "final_hs_code": "8471.30.00",              (optional)
    "confidence": 0.85                          (optional)
  }

  Steps are visited in order.  When the catalog's own branching leads to the
  next step's rule the session advances; otherwise it jumps there and the
  compliance audit records the deviation.

Exit codes:
  0 — success
  1 — fatal error (invalid decision data, database, etc.)
  2 — argument error
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from gri_compliance.domain.exceptions import GRIError
from gri_compliance.domain.hs_codes import calculate_check_digit, format_code
from gri_compliance.domain.models import Material
from gri_compliance.services.container import get_registry
from gri_compliance.services.session import ClassificationSession

logger = logging.getLogger(__name__)


# ── Argument parser ────────────────────────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gri-report",
        description="Replay a GRI classification session and generate its legal report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument(
        "--session", "-s",
        metavar="FILE",
        type=Path,
        help="JSON session file to replay.",
    )
    p.add_argument(
        "--output", "-o",
        metavar="FILE",
        type=Path,
        help="Write the report to FILE instead of stdout.",
    )
    p.add_argument(
        "--check-digit",
        metavar="CODE",
        dest="check_digit",
        help="Print the check digit for an 8-digit tariff code and exit.",
    )
    p.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output report, completion result and legal record as JSON.",
    )
    p.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return p


# ── Replay ─────────────────────────────────────────────────────────────────

def _load_session_file(path: Path) -> dict[str, Any] | None:
    """Read and parse a session file; None (after printing why) on failure."""
    if not path.exists():
        print(f"ERROR: File not found: {path}", file=sys.stderr)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        print(f"ERROR: {path} is not valid JSON: {exc}", file=sys.stderr)
        return None
    if not isinstance(data, dict) or not data.get("classification_id"):
        print(f"ERROR: {path} must be an object with a classification_id", file=sys.stderr)
        return None
    return data


def replay(data: dict[str, Any]) -> ClassificationSession:
    """Drive a session through the steps and decisions of *data*."""
    materials = [Material(**m) for m in data.get("materials") or []] or None
    session = get_registry().open(
        data["classification_id"],
        product_description=data.get("product_description", ""),
        materials=materials,
        physical_characteristics=data.get("physical_characteristics"),
        technical_specifications=data.get("technical_specifications"),
    )

    for step in data.get("steps") or []:
        rule_id = step["rule_id"]
        if session.engine.current_rule_id != rule_id:
            if session.engine.determine_next_step() == rule_id:
                session.advance()
            else:
                logger.info("Replay jumps %s -> %s", session.engine.current_rule_id, rule_id)
                session.jump_to(rule_id)
        for decision in step.get("decisions") or []:
            session.record_decision({"rule_id": rule_id, **decision})

    final_code = data.get("final_hs_code")
    if final_code:
        session.complete(final_code, data.get("confidence"))
    return session


# ── Formatting helpers ─────────────────────────────────────────────────────

def _emit(text: str, output: Path | None) -> None:
    if output is None:
        print(text)
        return
    output.write_text(text, encoding="utf-8")
    print(f"Report written to {output}", file=sys.stderr)


# ── Main logic ─────────────────────────────────────────────────────────────

def run(args: argparse.Namespace) -> int:
    """Execute the requested command.

    Returns:
        Exit code (0 = success, 1 = error, 2 = bad arguments).
    """
    if args.check_digit:
        try:
            digit = calculate_check_digit(args.check_digit)
        except ValueError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 2
        print(f"{format_code(args.check_digit)}-{digit}")
        return 0

    if not args.session:
        print("ERROR: provide --session or --check-digit", file=sys.stderr)
        return 2

    data = _load_session_file(args.session)
    if data is None:
        return 2

    try:
        session = replay(data)
        report = session.build_report()
    except (GRIError, ValidationError, KeyError) as exc:
        logger.exception("Replay failed for %s", args.session)
        print(f"ERROR: Replay failed: {exc}", file=sys.stderr)
        return 1

    if args.json_output:
        payload = {
            "report": report.to_dict(),
            "classification": session.classification.model_dump(mode="json"),
            "legal_record": session.export_legal_record().to_dict(),
        }
        _emit(json.dumps(payload, indent=2, ensure_ascii=False), args.output)
    else:
        _emit(report.content, args.output)
    return 0


def main() -> None:
    """Entry point for the gri-report console script."""
    parser = _build_parser()
    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    if not args.session and not args.check_digit:
        parser.print_help()
        sys.exit(2)

    sys.exit(run(args))


if __name__ == "__main__":
    main()
