#!/usr/bin/env python3
"""
Rota CLI: batch operations against the rota database.

The database is the one the web backend uses (ROTA_DATABASE_URL, or
webapp/backend/rota.db).

Usage:
  # Check both on-call cycle definitions
  python run_rota.py validate-cycles

  # Export a month to Excel
  python run_rota.py export --from 2025-03-01 --to 2025-03-31 --out "Rota March.xlsx"

  # Re-run coverage detection for everyone with leave in a range
  python run_rota.py detect --from 2025-03-01 --to 2025-03-31

  # Give every pending coverage request its top-ranked candidate
  python run_rota.py auto-assign
"""

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "webapp" / "backend"))

from database import SessionLocal, Base, engine
from coverage_service import detect_coverage_needs
from suggest import bulk_auto_assign
from oncall_service import cycle_issues
from snapshot import load_snapshot
from settings import ENGINE_CONFIG, LOG_LEVEL
from rota.compositor import compose_schedule
from rota.dates import parse_date
from rota.models import ROLES
from rota.validate import validate_schedule
from rota.write_schedule import write_schedule


def _resolve(p: str) -> Path:
    path = Path(p)
    return path if path.is_absolute() else Path.cwd() / path


def cmd_validate_cycles(args, db) -> int:
    """Print every cycle configuration problem; non-zero exit when there are any."""
    failed = 0
    for role in ROLES:
        problems = cycle_issues(db, role)
        if problems:
            failed += 1
            print(f"{role}: {len(problems)} issue(s)")
            for p in problems:
                print(f"  {p}")
        else:
            print(f"{role}: OK")
    return 1 if failed else 0


def cmd_export(args, db) -> int:
    start, end = parse_date(args.from_date), parse_date(args.to_date)
    if end < start:
        print("--to must not be before --from")
        return 2
    issues = []
    entries = compose_schedule(load_snapshot(db, start, end), start, end, ENGINE_CONFIG, issues)
    ok, violations = validate_schedule(entries)
    if not ok:
        print(f"Validation: {len(violations)} issue(s)")
        for v in violations[:15]:
            print(f"  {v}")
        if len(violations) > 15:
            print(f"  ... and {len(violations) - 15} more")
    out_path = write_schedule(str(_resolve(args.out)), entries, issues)
    print(f"Wrote {len(entries)} cells to: {out_path}")
    if issues:
        print(f"On-call could not be resolved on some dates ({len(issues)} issue(s)); see the ISSUES sheet")
    return 0


def cmd_detect(args, db) -> int:
    start, end = parse_date(args.from_date), parse_date(args.to_date)
    created, freed = detect_coverage_needs(db, start, end)
    db.commit()
    print(f"Coverage requests created: {len(created)}")
    print(f"Registrars freed: {freed}")
    return 0


def cmd_auto_assign(args, db) -> int:
    result = bulk_auto_assign(db)
    db.commit()
    print(f"Assigned: {result['assigned']}")
    print(f"Still pending: {result['failed']}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Rota: schedule export, coverage detection and auto-assignment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", help="Command")

    sub.add_parser("validate-cycles", help="Check on-call cycle definitions")

    p_export = sub.add_parser("export", help="Write the composed rota to Excel")
    p_export.add_argument("--from", dest="from_date", required=True, help="First date (YYYY-MM-DD)")
    p_export.add_argument("--to", dest="to_date", required=True, help="Last date (YYYY-MM-DD)")
    p_export.add_argument("--out", default="rota.xlsx")

    p_detect = sub.add_parser("detect", help="Detect coverage needs for leave in a range")
    p_detect.add_argument("--from", dest="from_date", required=True)
    p_detect.add_argument("--to", dest="to_date", required=True)

    sub.add_parser("auto-assign", help="Auto-assign all pending coverage requests")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    Base.metadata.create_all(bind=engine)

    dispatch = {
        "validate-cycles": cmd_validate_cycles,
        "export": cmd_export,
        "detect": cmd_detect,
        "auto-assign": cmd_auto_assign,
    }
    db = SessionLocal()
    try:
        return dispatch[args.command](args, db)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
