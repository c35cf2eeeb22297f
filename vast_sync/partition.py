"""
Partition enforcement between the two sales fact tables.

``sales`` holds history strictly before the cutover date and
``vast_finance_applications`` holds everything from the cutover on. Together
they behave as one date-partitioned log with a movable seam. Re-homing a date
window is a replay from the workbook:

1. delete the live rows of the *conflicting* table inside the window,
2. delete the live rows of the *target* table inside the window,
3. insert the freshly extracted rows into the target table.

Each phase is idempotent on its own. The store exposes no cross-table
transaction, so a run is always followed by :func:`verify_partition`, which
reports violations instead of repairing them.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Callable

import pandas as pd

from .config import (
    CUTOVER_DATE,
    FINANCE_BATCH_SIZE,
    LEGACY_TABLE,
    SALES_BATCH_SIZE,
    SUCCESSOR_TABLE,
)
from .db.store import Collection, Database
from .exceptions import StoreError
from .loaders.utils import is_blank
from .normalizers import (
    FINANCE_STATUS_LABELS,
    SaleStatus,
    classify_status,
    normalise_occupation,
    normalise_status,
)
from .transforms import DateWindow
from .writer import BatchWriteResult, write_in_batches

logger = logging.getLogger(__name__)


def _value(record: dict, key: str, default: Any = None) -> Any:
    value = record.get(key)
    return default if is_blank(value) else value


def _legacy_row(record: dict, actor_id: str | None) -> dict:
    return {
        "sale_date": date.fromisoformat(record["sale_date"]),
        "promoter_name": record["promoter_name"],
        "store_id": _value(record, "store_id"),
        "status": normalise_status(_value(record, "status", "")),
        "phone_type": _value(record, "phone_type"),
        "created_by_user_id": actor_id,
    }


def _finance_status(raw: Any) -> str:
    status = classify_status(raw)
    if status is not None:
        return FINANCE_STATUS_LABELS[status]
    return raw if not is_blank(raw) else FINANCE_STATUS_LABELS[SaleStatus.REJECT]


def _finance_row(record: dict, actor_id: str | None) -> dict:
    sale_date = date.fromisoformat(record["sale_date"])
    stamped = datetime.combine(sale_date, time.min, tzinfo=timezone.utc)
    return {
        "sale_date": sale_date,
        "status_pengajuan": _finance_status(_value(record, "status")),
        "customer_name": _value(record, "customer_name", "Unknown"),
        "customer_phone": _value(record, "customer_phone", "0000000000"),
        "pekerjaan": normalise_occupation(_value(record, "pekerjaan")),
        "penghasilan": _value(record, "penghasilan"),
        "has_npwp": bool(_value(record, "has_npwp", False)),
        "limit_amount": _value(record, "limit_amount"),
        "promoter_name": _value(record, "promoter_name"),
        "store_id": _value(record, "store_id"),
        "phone_type": _value(record, "phone_type"),
        "proof_image_url": _value(record, "proof_image_url"),
        "created_by_user_id": actor_id,
        "created_at": stamped,
        "updated_at": stamped,
    }


@dataclass(frozen=True)
class FactTable:
    """One side of the seam and how rows are written and removed there."""

    name: str
    before_cutover: bool
    soft_delete: bool
    chunk_size: int
    row_builder: Callable[[dict, str | None], dict] = field(compare=False)

    def build_rows(self, sales: pd.DataFrame, actor_id: str | None) -> list[dict]:
        return [self.row_builder(record, actor_id) for record in sales.to_dict("records")]


LEGACY = FactTable(
    name=LEGACY_TABLE,
    before_cutover=True,
    soft_delete=False,
    chunk_size=SALES_BATCH_SIZE,
    row_builder=_legacy_row,
)

SUCCESSOR = FactTable(
    name=SUCCESSOR_TABLE,
    before_cutover=False,
    soft_delete=True,
    chunk_size=FINANCE_BATCH_SIZE,
    row_builder=_finance_row,
)

FACT_TABLES: dict[str, FactTable] = {LEGACY.name: LEGACY, SUCCESSOR.name: SUCCESSOR}


def other_table(table: FactTable) -> FactTable:
    return SUCCESSOR if table is LEGACY else LEGACY


def _live(coll: Collection):
    return coll.c.deleted_at.is_(None)


def _in_window(coll: Collection, window: DateWindow):
    return coll.c.sale_date.between(window.start_date, window.end_date)


def delete_window(
    db: Database,
    table: FactTable,
    window: DateWindow,
    now: datetime | None = None,
) -> int:
    """Remove live rows of ``table`` inside ``window`` using the table's convention."""
    coll = db.table(table.name)
    where = (_live(coll), _in_window(coll, window))
    if table.soft_delete:
        count = coll.update({"deleted_at": now or datetime.now(timezone.utc)}, *where)
    else:
        count = coll.delete(*where)
    logger.info(
        "%s %d live rows from %s in %s",
        "Soft-deleted" if table.soft_delete else "Deleted", count, table.name, window,
    )
    return count


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

@dataclass
class Check:
    name: str
    passed: bool
    detail: str = ""


@dataclass
class PartitionReport:
    window: DateWindow | None
    target: str | None
    cutover: str
    checks: list[Check] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def failures(self) -> list[Check]:
        return [check for check in self.checks if not check.passed]


def _check(report: PartitionReport, name: str, probe: Callable[[], tuple[bool, str]]) -> None:
    try:
        passed, detail = probe()
    except StoreError as exc:
        passed, detail = False, f"read failed: {exc}"
    report.checks.append(Check(name, passed, detail))
    if not passed:
        logger.warning("Partition check failed: %s (%s)", name, detail)


def verify_partition(
    db: Database,
    window: DateWindow | None = None,
    target: FactTable | None = None,
    expected_count: int | None = None,
    cutover: str = CUTOVER_DATE,
) -> PartitionReport:
    """Check the seam between the fact tables.

    Always checks that the live legacy range ends before the live successor
    range starts and that each table stays on its side of ``cutover``. With a
    window and target it also checks the window is empty in the other table
    and, given ``expected_count``, that the target holds exactly that many
    live rows in the window.
    """
    report = PartitionReport(window=window, target=target.name if target else None, cutover=cutover)
    legacy = db.table(LEGACY.name)
    successor = db.table(SUCCESSOR.name)
    seam = date.fromisoformat(cutover)

    if window is not None and target is not None:
        other = db.table(other_table(target).name)
        tgt = db.table(target.name)

        def other_empty():
            n = other.count(_live(other), _in_window(other, window))
            return n == 0, f"{n} live rows in {other.name} within {window}"

        _check(report, "window empty in non-target table", other_empty)

        if expected_count is not None:
            def target_count():
                n = tgt.count(_live(tgt), _in_window(tgt, window))
                return n == expected_count, f"{n} live rows in {tgt.name}, expected {expected_count}"

            _check(report, "target row count matches inserted", target_count)

    def no_overlap():
        latest_legacy = legacy.max("sale_date", _live(legacy))
        earliest_successor = successor.min("sale_date", _live(successor))
        if latest_legacy is None or earliest_successor is None:
            return True, f"legacy max={latest_legacy}, successor min={earliest_successor}"
        return (
            latest_legacy < earliest_successor,
            f"legacy max={latest_legacy}, successor min={earliest_successor}",
        )

    def legacy_before_seam():
        n = legacy.count(_live(legacy), legacy.c.sale_date >= seam)
        return n == 0, f"{n} live legacy rows on/after {cutover}"

    def successor_after_seam():
        n = successor.count(_live(successor), successor.c.sale_date < seam)
        return n == 0, f"{n} live successor rows before {cutover}"

    _check(report, "legacy range ends before successor range", no_overlap)
    _check(report, "legacy rows before cutover", legacy_before_seam)
    _check(report, "successor rows on/after cutover", successor_after_seam)

    logger.info(
        "Partition verification: %d/%d checks passed",
        len(report.checks) - len(report.failures), len(report.checks),
    )
    return report


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

@dataclass
class ReconcileReport:
    window: DateWindow
    target: str
    conflicting_deleted: int | None = None
    target_deleted: int | None = None
    write: BatchWriteResult | None = None
    errors: list[str] = field(default_factory=list)
    verification: PartitionReport | None = None

    @property
    def inserted(self) -> int:
        return self.write.inserted if self.write else 0

    @property
    def ok(self) -> bool:
        return (
            not self.errors
            and self.write is not None
            and self.write.complete
            and self.verification is not None
            and self.verification.ok
        )


def reconcile_window(
    db: Database,
    window: DateWindow,
    target: FactTable,
    sales: pd.DataFrame,
    actor_id: str | None = None,
    chunk_size: int | None = None,
    cutover: str = CUTOVER_DATE,
    now: datetime | None = None,
) -> ReconcileReport:
    """Make ``target`` the only holder of ``window``, replaying ``sales`` into it.

    ``sales`` is an extraction frame already restricted to ``window``. A failed
    phase skips the phases after it; verification always runs.
    """
    report = ReconcileReport(window=window, target=target.name)
    conflicting = other_table(target)

    seam = date.fromisoformat(cutover)
    if target.before_cutover and window.end_date >= seam:
        logger.warning("Window %s reaches past the cutover %s for %s", window, cutover, target.name)
    if not target.before_cutover and window.start_date < seam:
        logger.warning("Window %s starts before the cutover %s for %s", window, cutover, target.name)

    rows = target.build_rows(sales, actor_id)
    logger.info("Reconciling %s into %s with %d rows", window, target.name, len(rows))

    try:
        report.conflicting_deleted = delete_window(db, conflicting, window, now)
        report.target_deleted = delete_window(db, target, window, now)
    except StoreError as exc:
        logger.exception("Delete phase failed for %s", window)
        report.errors.append(str(exc))
    else:
        report.write = write_in_batches(
            db.table(target.name), rows, chunk_size or target.chunk_size
        )
        if report.write.error:
            report.errors.append(report.write.error)

    report.verification = verify_partition(
        db,
        window=window,
        target=target,
        expected_count=report.inserted if report.write else None,
        cutover=cutover,
    )
    return report
