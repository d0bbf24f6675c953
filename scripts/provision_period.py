#!/usr/bin/env python3
"""Provision leave allocations for a new period.

Creates one allocation per (employee, leave type) at the leave type's
default days. Existing allocations are left untouched, so the script is safe
to re-run.

Usage:
    python -m scripts.provision_period --period 2027 --employee <uuid> --employee <uuid>
    python -m scripts.provision_period --period 2027 --file employees.txt
    python -m scripts.provision_period --file employees.txt --dry-run

Requires DATABASE_URL and JWT_SECRET in the environment (or .env).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from leave_ledger.database import async_session_factory, engine  # noqa: E402
from leave_ledger.leave.ledger import AllocationLedger  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("provision_period")


def parse_employee_ids(values: Iterable[str]) -> List[uuid.UUID]:
    """Parse UUIDs, skipping blanks and ``#`` comments; de-duplicate in order."""
    seen: dict[uuid.UUID, None] = {}
    for raw in values:
        value = raw.split("#", 1)[0].strip()
        if not value:
            continue
        try:
            seen.setdefault(uuid.UUID(value), None)
        except ValueError:
            raise SystemExit(f"Not a valid employee id: {value!r}")
    return list(seen)


async def provision(period: int, employee_ids: List[uuid.UUID], *, dry_run: bool = False) -> int:
    async with async_session_factory() as session:
        try:
            created = await AllocationLedger.provision_period(session, period, employee_ids)
            if dry_run:
                logger.info("Dry run: rolling back %d allocation(s)", created)
                await session.rollback()
            else:
                await session.commit()
        except Exception:
            await session.rollback()
            raise
    await engine.dispose()
    return created


# ══════════════════════════════════════════════════════════════════════
# Main
# ══════════════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(
        description="Provision leave allocations for a period",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --period 2027 --employee 7f1c...      # one employee
  %(prog)s --file employees.txt                  # current year, ids from file
  %(prog)s --file employees.txt --dry-run        # count only, don't write
        """,
    )
    parser.add_argument("--period", type=int, default=datetime.now(timezone.utc).year,
                        help="Calendar year to provision (default: current year)")
    parser.add_argument("--employee", dest="employees", action="append", default=[],
                        help="Employee id (repeatable)")
    parser.add_argument("--file", type=Path,
                        help="File with one employee id per line")
    parser.add_argument("--dry-run", action="store_true",
                        help="Compute allocations but roll back instead of committing")
    args = parser.parse_args()

    raw_ids = list(args.employees)
    if args.file:
        raw_ids.extend(args.file.read_text().splitlines())
    employee_ids = parse_employee_ids(raw_ids)
    if not employee_ids:
        parser.error("no employee ids given (use --employee or --file)")

    logger.info(
        "Provisioning period %d for %d employee(s)%s",
        args.period, len(employee_ids), " [dry run]" if args.dry_run else "",
    )
    created = asyncio.run(provision(args.period, employee_ids, dry_run=args.dry_run))
    logger.info("Done: %d allocation(s) created", created)


if __name__ == "__main__":
    main()
