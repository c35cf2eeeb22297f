"""
VAST Sync — operational entry point.

Runs one reconciliation job against the relational store and prints a
summary.

Usage:
    python main.py migrate-excel [--workbook PATH]
    python main.py import-window --start 2025-12-01 --end 2025-12-11 [--target TABLE]
    python main.py assign-promoters
    python main.py populate-hierarchy
    python main.py provision-users accounts.csv
    python main.py verify [--start ... --end ...]
    python main.py cleanup-images --authorization "Bearer $CRON_SECRET"

DATABASE_URL (and IMPORT_CREATED_BY_USER_ID for import-window) are read from
the environment or a .env file.
"""

import argparse
import logging
import os
import sys

from vast_sync.config import WORKBOOK_FILE, Settings, get_settings
from vast_sync.db import Database, connect
from vast_sync.exceptions import ConfigurationError, StoreError, WorkbookFormatError
from vast_sync.partition import FACT_TABLES
from vast_sync.pipeline import (
    run_assign,
    run_cleanup,
    run_import_window,
    run_migrate_excel,
    run_populate_hierarchy,
    run_provision,
    run_verify,
)
from vast_sync.reports import (
    assignment_table,
    check_lines,
    cleanup_lines,
    discard_table,
    entity_table,
    hierarchy_table,
    provision_table,
    reconcile_lines,
)
from vast_sync.transforms import DateWindow

logger = logging.getLogger("vast_sync")


def _banner(title: str) -> None:
    print("=" * 70)
    print(f"  VAST SYNC — {title}")
    print("=" * 70)
    print()


def _section(title: str) -> None:
    print(f"\n{title}")
    print("-" * 40)


def _window(args: argparse.Namespace) -> DateWindow | None:
    if args.start is None and args.end is None:
        return None
    if args.start is None or args.end is None:
        raise ValueError("--start and --end must be given together")
    return DateWindow(args.start, args.end)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_migrate_excel(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    _banner("Workbook migration")
    result = run_migrate_excel(db, args.workbook, actor_id=settings.import_created_by_user_id)

    _section("[ 1 ] STORES & PROMOTERS")
    print(entity_table(result.entities).to_string(index=False))
    print(f"\nStores:    {result.stores.inserted} inserted, {result.stores.updated} updated, "
          f"{result.stores.failed} failed")
    print(f"Promoters: {result.promoters.inserted} inserted, {result.promoters.updated} updated, "
          f"{result.promoters.failed} failed")

    _section("[ 2 ] LEGACY SALES")
    print(discard_table(result.sales.sales).to_string(index=False))
    print()
    print("\n".join(reconcile_lines(result.sales.reconcile)))


def cmd_import_window(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    actor_id = settings.require_actor_id()
    window = _window(args)
    if window is None:
        raise ValueError("import-window needs --start and --end")
    target = FACT_TABLES[args.target] if args.target else None

    _banner(f"Import window {window}")
    result = run_import_window(
        db, args.workbook, window, actor_id,
        target=target, source=args.source, chunk_size=args.chunk_size,
    )

    _section("[ 1 ] EXTRACTION")
    print(discard_table(result.sales).to_string(index=False))
    _section("[ 2 ] RECONCILIATION")
    print("\n".join(reconcile_lines(result.reconcile)))


def cmd_assign_promoters(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    _banner("Promoter account assignment")
    report = run_assign(db, settings)

    table = assignment_table(report)
    if not table.empty:
        print(table.to_string(index=False))
    _section("SUMMARY")
    print(f"Total promoters: {report.total}")
    print(f"Successful:      {len(report.succeeded)}")
    print(f"Failed:          {len(report.failed)}")
    print(f"Skipped:         {len(report.skipped)}")
    print("\nBy area:")
    for area, count in report.area_counts.items():
        print(f"  {area:10s} {count} promoters")


def cmd_populate_hierarchy(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    _banner("Area hierarchy")
    report = run_populate_hierarchy(db)
    print(hierarchy_table(report).to_string(index=False))
    if report.error:
        print(f"\nRebuild failed: {report.error}")
    else:
        print(f"\n{report.deleted} rows removed, {report.inserted} rows inserted")


def cmd_provision_users(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    _banner("Account provisioning")
    results = run_provision(db, args.accounts, settings)
    print(provision_table(results).to_string(index=False))


def cmd_verify(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    window = _window(args)
    target = FACT_TABLES[args.target] if args.target else None
    _banner("Partition verification")
    report = run_verify(db, window=window, target=target)
    print("\n".join(check_lines(report)))
    print(f"\nPartition {'OK' if report.ok else 'VIOLATED'}")


def cmd_cleanup_images(db: Database, settings: Settings, args: argparse.Namespace) -> None:
    _banner("Image cleanup")
    result = run_cleanup(db, settings, args.authorization)
    print("\n".join(cleanup_lines(result)))


COMMANDS = {
    "migrate-excel": cmd_migrate_excel,
    "import-window": cmd_import_window,
    "assign-promoters": cmd_assign_promoters,
    "populate-hierarchy": cmd_populate_hierarchy,
    "provision-users": cmd_provision_users,
    "verify": cmd_verify,
    "cleanup-images": cmd_cleanup_images,
}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile the VAST sales workbook into the relational store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    parser.add_argument(
        "--create-tables", action="store_true", help="Create missing tables before running"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def window_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--start", help="First day of the window (YYYY-MM-DD)")
        p.add_argument("--end", help="Last day of the window (YYYY-MM-DD)")
        p.add_argument("--target", choices=sorted(FACT_TABLES), help="Fact table owning the window")

    p = sub.add_parser("migrate-excel", help="Stores, promoters and legacy sales history")
    p.add_argument("--workbook", default=str(WORKBOOK_FILE))

    p = sub.add_parser("import-window", help="Replay a date window into its fact table")
    p.add_argument("--workbook", default=str(WORKBOOK_FILE))
    p.add_argument("--source", choices=["legacy", "finance"], help="Sales sheet to read")
    p.add_argument("--chunk-size", type=int, default=None)
    window_args(p)

    sub.add_parser("assign-promoters", help="Create accounts for unlinked promoters")
    sub.add_parser("populate-hierarchy", help="Rebuild the area_hierarchy table")

    p = sub.add_parser("provision-users", help="Create or update accounts from a CSV")
    p.add_argument("accounts", help="CSV with name, role, area, secret, email, employee_id, sator_name")

    p = sub.add_parser("verify", help="Check the seam between the fact tables")
    window_args(p)

    p = sub.add_parser("cleanup-images", help="Delete hosted images of long soft-deleted rows")
    p.add_argument(
        "--authorization",
        default=os.environ.get("CLEANUP_AUTHORIZATION"),
        help="Trigger header value, \"Bearer <CRON_SECRET>\" (default: $CLEANUP_AUTHORIZATION)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        settings = get_settings()
        if args.database_url:
            settings.database_url = args.database_url
        db = connect(settings.require_database_url(), create_tables=args.create_tables)
        db.ping()
        COMMANDS[args.command](db, settings, args)
    except (ConfigurationError, WorkbookFormatError) as exc:
        logger.error("%s", exc)
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1
    except StoreError as exc:
        logger.error("Store unavailable: %s", exc)
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1
    except (ValueError, FileNotFoundError) as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1

    print("\n" + "=" * 70)
    print("  Done.")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())
