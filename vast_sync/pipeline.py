"""
Run orchestration: one function per operational job.

Every ``run_*`` function takes an open :class:`~vast_sync.db.Database` and
returns a result object; printing is left to ``main.py``. Configuration is
resolved before the first write so a missing setting never leaves a job half
done.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pandas as pd

from .config import (
    CUTOVER_DATE,
    FINANCE_LOOKUP_COLUMNS,
    FINANCE_LOOKUP_SHEET,
    FINANCE_MASTER_COLUMNS,
    FINANCE_MASTER_SHEET,
    LEGACY_HISTORY_START,
    LEGACY_SALES_COLUMNS,
    LEGACY_SALES_SHEET,
    PROMOTER_COLUMNS,
    PROMOTERS_SHEET,
    STORE_COLUMNS,
    STORES_SHEET,
    Settings,
)
from .cleanup import (
    AssetStore,
    CleanupResult,
    CloudinaryAssets,
    cleanup_deleted_images,
    is_authorized_trigger,
)
from .credentials import ProvisionResult, hash_pin, load_account_specs, provision_accounts
from .db.store import Database
from .exceptions import ConfigurationError, StoreError
from .hierarchy import AssignmentReport, HierarchyReport, assign_promoters, rebuild_hierarchy
from .loaders.workbook import load_sheet
from .partition import (
    LEGACY,
    SUCCESSOR,
    FactTable,
    PartitionReport,
    ReconcileReport,
    reconcile_window,
    verify_partition,
)
from .transforms import (
    FINANCE_SALES_LAYOUT,
    LEGACY_SALES_LAYOUT,
    DateWindow,
    DiscardSummary,
    EntitySummary,
    build_sales_lookup,
    extract_promoters,
    extract_sales,
    extract_stores,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

def legacy_window(start: str = LEGACY_HISTORY_START, cutover: str = CUTOVER_DATE) -> DateWindow:
    """Everything from ``start`` up to the day before the cutover."""
    last_day = date.fromisoformat(cutover) - timedelta(days=1)
    return DateWindow(start, last_day.isoformat())


def target_for_window(window: DateWindow, cutover: str = CUTOVER_DATE) -> FactTable:
    """The fact table a window belongs to; a window across the seam is refused."""
    if window.end < cutover:
        return LEGACY
    if window.start >= cutover:
        return SUCCESSOR
    raise ValueError(
        f"window {window} straddles the cutover {cutover}; pass the target table explicitly"
    )


# ---------------------------------------------------------------------------
# Stores and promoters
# ---------------------------------------------------------------------------

@dataclass
class SyncSummary:
    inserted: int = 0
    updated: int = 0
    failed: int = 0


def sync_stores(db: Database, stores: pd.DataFrame) -> SyncSummary:
    """Upsert stores by id."""
    coll = db.stores
    summary = SyncSummary()
    for store in stores.to_dict("records"):
        try:
            if coll.first(coll.c.id == store["id"], columns=["id"]):
                coll.update(
                    {"name": store["name"], "area_detail": store["area_detail"] or None},
                    coll.c.id == store["id"],
                )
                summary.updated += 1
            else:
                coll.insert(
                    {"id": store["id"], "name": store["name"], "area_detail": store["area_detail"] or None}
                )
                summary.inserted += 1
        except StoreError:
            logger.exception("Could not write store %s", store["id"])
            summary.failed += 1
    logger.info(
        "Stores: %d inserted, %d updated, %d failed",
        summary.inserted, summary.updated, summary.failed,
    )
    return summary


def sync_promoters(db: Database, promoters: pd.DataFrame, now: datetime | None = None) -> SyncSummary:
    """Upsert promoters by (name, store_id).

    Existing rows keep their account links, employee id and area; only
    sator, target and the active flag are refreshed.
    """
    coll = db.promoters
    now = now or datetime.now(timezone.utc)
    summary = SyncSummary()
    for promoter in promoters.to_dict("records"):
        store_id = promoter["store_id"] or None
        store_match = coll.c.store_id.is_(None) if store_id is None else coll.c.store_id == store_id
        values = {
            "sator": promoter["sator"],
            "target": int(promoter["target"]),
            "is_active": bool(promoter["is_active"]),
        }
        try:
            existing = coll.first(coll.c.name == promoter["name"], store_match, columns=["id"])
            if existing:
                coll.update(dict(values, updated_at=now), coll.c.id == existing["id"])
                summary.updated += 1
            else:
                coll.insert(dict(values, name=promoter["name"], store_id=store_id))
                summary.inserted += 1
        except StoreError:
            logger.exception("Could not write promoter %s", promoter["name"])
            summary.failed += 1
    logger.info(
        "Promoters: %d inserted, %d updated, %d failed",
        summary.inserted, summary.updated, summary.failed,
    )
    return summary


# ---------------------------------------------------------------------------
# Sales windows
# ---------------------------------------------------------------------------

def extract_window_sales(
    workbook: str | Path,
    window: DateWindow,
    source: str = "legacy",
) -> tuple[pd.DataFrame, DiscardSummary]:
    """Read one sales source of the workbook, restricted to ``window``.

    ``source`` is ``"legacy"`` for Sheet21 or ``"finance"`` for the
    credit-application sheet joined with the cleaned sales sheet.
    """
    if source == "legacy":
        raw = load_sheet(workbook, LEGACY_SALES_SHEET, LEGACY_SALES_COLUMNS.values())
        return extract_sales(raw, LEGACY_SALES_LAYOUT, window=window)
    if source == "finance":
        master = load_sheet(
            workbook,
            FINANCE_MASTER_SHEET,
            (FINANCE_MASTER_COLUMNS["date"], FINANCE_MASTER_COLUMNS["status"]),
        )
        lookup = build_sales_lookup(
            load_sheet(
                workbook,
                FINANCE_LOOKUP_SHEET,
                (FINANCE_LOOKUP_COLUMNS["key"], FINANCE_LOOKUP_COLUMNS["store_id"]),
            )
        )
        return extract_sales(master, FINANCE_SALES_LAYOUT, window=window, lookup=lookup)
    raise ValueError(f"unknown sales source {source!r}")


@dataclass
class ImportResult:
    sales: DiscardSummary
    reconcile: ReconcileReport


def run_import_window(
    db: Database,
    workbook: str | Path,
    window: DateWindow,
    actor_id: str | None,
    target: FactTable | None = None,
    source: str | None = None,
    chunk_size: int | None = None,
) -> ImportResult:
    """Replay ``window`` from the workbook into its fact table and verify."""
    target = target or target_for_window(window)
    source = source or ("finance" if target is SUCCESSOR else "legacy")
    sales, summary = extract_window_sales(workbook, window, source)
    report = reconcile_window(db, window, target, sales, actor_id=actor_id, chunk_size=chunk_size)
    return ImportResult(sales=summary, reconcile=report)


@dataclass
class MigrationResult:
    entities: dict[str, EntitySummary] = field(default_factory=dict)
    stores: SyncSummary | None = None
    promoters: SyncSummary | None = None
    sales: ImportResult | None = None


def run_migrate_excel(
    db: Database,
    workbook: str | Path,
    actor_id: str | None = None,
) -> MigrationResult:
    """Full workbook migration: stores, promoters, then legacy sales history."""
    result = MigrationResult()

    raw_stores = load_sheet(workbook, STORES_SHEET, (STORE_COLUMNS["id"], STORE_COLUMNS["name"]))
    raw_promoters = load_sheet(
        workbook, PROMOTERS_SHEET, (PROMOTER_COLUMNS["name"], PROMOTER_COLUMNS["sator"])
    )

    stores, result.entities["stores"] = extract_stores(raw_stores)
    promoters, result.entities["promoters"] = extract_promoters(raw_promoters)

    result.stores = sync_stores(db, stores)
    result.promoters = sync_promoters(db, promoters)
    result.sales = run_import_window(db, workbook, legacy_window(), actor_id, target=LEGACY)
    return result


# ---------------------------------------------------------------------------
# Hierarchy, accounts, verification
# ---------------------------------------------------------------------------

def run_assign(db: Database, settings: Settings) -> AssignmentReport:
    try:
        pin_hash = hash_pin(settings.default_promoter_pin)
    except ValueError as exc:
        raise ConfigurationError(f"DEFAULT_PROMOTER_PIN is invalid: {exc}") from exc
    return assign_promoters(db, pin_hash)


def run_populate_hierarchy(db: Database) -> HierarchyReport:
    return rebuild_hierarchy(db)


def run_provision(db: Database, accounts_csv: str | Path, settings: Settings) -> list[ProvisionResult]:
    specs = load_account_specs(accounts_csv)
    return provision_accounts(db, specs, rounds=settings.bcrypt_rounds)


def run_verify(
    db: Database,
    window: DateWindow | None = None,
    target: FactTable | None = None,
) -> PartitionReport:
    if window is not None and target is None:
        target = target_for_window(window)
    return verify_partition(db, window=window, target=target)


def run_cleanup(
    db: Database,
    settings: Settings,
    authorization: str | None,
    assets: AssetStore | None = None,
) -> CleanupResult:
    """Periodic image cleanup, gated on the trigger's bearer secret."""
    if not settings.cron_secret:
        raise ConfigurationError("CRON_SECRET is not set; refusing to run image cleanup")
    if not is_authorized_trigger(authorization, settings.cron_secret):
        raise ConfigurationError("cleanup trigger rejected: Authorization does not match CRON_SECRET")
    if assets is None:
        assets = CloudinaryAssets(*settings.require_cloudinary())
    return cleanup_deleted_images(db, assets)
