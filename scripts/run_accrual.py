"""
Scheduled ledger jobs: accrual, year close and carry-forward expiry.

Every job is idempotent, so the scheduler may re-run it after a failure.

Usage:
  python scripts/run_accrual.py --as-of 2026-02-01
  python scripts/run_accrual.py --as-of 2026-02-01 --org 3
  python scripts/run_accrual.py --as-of 2026-01-01 --year-close 2025
  python scripts/run_accrual.py --as-of 2026-04-01 --expire
"""
import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Add project root so hr_leave is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy.orm import Session
from hr_leave.core.logging import setup_logging
from hr_leave.db import session as db_session
from hr_leave.models.organization import Organization
from hr_leave.services import ledger_service

logger = logging.getLogger("run_accrual")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value}. Use YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run scheduled leave ledger jobs")
    parser.add_argument("--as-of", type=_parse_date, default=date.today(), help="Run date (YYYY-MM-DD, default today)")
    parser.add_argument("--org", type=int, default=None, help="Organization ID (default: all active organizations)")
    parser.add_argument("--year-close", type=int, default=None, metavar="YEAR", help="Also close the given year")
    parser.add_argument("--expire", action="store_true", help="Also expire carried-forward days due by --as-of")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run (e.g. DEBUG)")
    return parser


def run(db: Session, as_of: date, organization_ids, year_close=None, expire=False) -> int:
    """Run the jobs for each organization; returns the number of failed rows"""
    failed = 0
    for organization_id in organization_ids:
        if year_close is not None:
            summary = ledger_service.run_year_close(db, organization_id, year_close)
            failed += summary["failed"]
            print(
                f"org {organization_id}: year {year_close} closed for {summary['processed']} rows, "
                f"carried {summary['total_carried_forward']}, forfeited {summary['total_forfeited']}"
            )
        if expire:
            summary = ledger_service.expire_carry_forward(db, organization_id, as_of)
            failed += summary["failed"]
            print(f"org {organization_id}: {summary['total_expired']} carried days expired")

        summary = ledger_service.run_accrual(db, organization_id, as_of)
        failed += summary["failed"]
        print(
            f"org {organization_id}: accrual as of {as_of}: {summary['credited']} credited, "
            f"{summary['skipped']} skipped, {summary['failed']} failed"
        )
    return failed


def main() -> int:
    args = build_parser().parse_args()
    setup_logging(args.log_level)

    db: Session = db_session.SessionLocal()
    try:
        if args.org is not None:
            organization_ids = [args.org]
        else:
            organization_ids = [
                org_id for (org_id,) in db.query(Organization.id)
                .filter(Organization.active_flag == True)  # noqa: E712
                .order_by(Organization.id)
                .all()
            ]
        failed = run(db, args.as_of, organization_ids, year_close=args.year_close, expire=args.expire)
    finally:
        db.close()

    if failed:
        logger.error("%s ledger rows failed, see log above", failed)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
