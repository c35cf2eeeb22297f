"""
Extraction transforms: turn raw sheet frames into validated, deduplicated
store, promoter and sale frames.

Every extractor returns ``(frame, summary)``. The summary counts each reason a
row was dropped so partial data loss is quantified per run rather than only
logged; nothing here is process-wide state.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Callable

import pandas as pd

from .config import (
    FINANCE_LOOKUP_COLUMNS,
    FINANCE_MASTER_COLUMNS,
    FINANCE_PROMOTER_COLUMNS,
    LEGACY_SALES_COLUMNS,
    PROMOTER_COLUMNS,
    STORE_COLUMNS,
)
from .loaders.utils import clean_text, is_blank, normalise_date, safe_float
from .normalizers import normalise_occupation, normalise_status

logger = logging.getLogger(__name__)

STORE_SCHEMA = ["id", "name", "area_detail"]
PROMOTER_SCHEMA = ["name", "sator", "target", "store_id", "is_active"]
SALES_SCHEMA = ["sale_date", "promoter_name", "store_id", "status", "phone_type"]
FINANCE_DETAIL_SCHEMA = [
    "customer_name",
    "customer_phone",
    "pekerjaan",
    "penghasilan",
    "has_npwp",
    "limit_amount",
    "proof_image_url",
    "sator",
    "area",
]


@dataclass(frozen=True)
class DateWindow:
    """Inclusive [start, end] window of ISO calendar dates."""

    start: str
    end: str

    def __post_init__(self):
        start = date.fromisoformat(self.start)
        end = date.fromisoformat(self.end)
        if start > end:
            raise ValueError(f"window start {self.start} is after end {self.end}")

    def contains(self, iso_date: str) -> bool:
        return self.start <= iso_date <= self.end

    @property
    def start_date(self) -> date:
        return date.fromisoformat(self.start)

    @property
    def end_date(self) -> date:
        return date.fromisoformat(self.end)

    def __str__(self) -> str:
        return f"{self.start}..{self.end}"


@dataclass
class EntitySummary:
    """Row accounting for store and promoter extraction."""

    total_rows: int = 0
    incomplete: int = 0
    duplicates: int = 0
    kept: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class DiscardSummary:
    """Row accounting for sales extraction; each reason counts independently."""

    total_rows: int = 0
    blank_rows: int = 0
    failed_date_parse: int = 0
    empty_promoter_name: int = 0
    empty_store_id: int = 0
    out_of_window: int = 0
    kept: int = 0

    @property
    def dropped(self) -> int:
        return (
            self.blank_rows
            + self.failed_date_parse
            + self.empty_promoter_name
            + self.empty_store_id
            + self.out_of_window
        )

    def as_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Stores and promoters
# ---------------------------------------------------------------------------

def deduplicate(df: pd.DataFrame, keys: list[str]) -> tuple[pd.DataFrame, int]:
    """Keep the first row for each natural key; return (frame, duplicates dropped)."""
    if df.empty:
        return df, 0
    mask = df.duplicated(subset=keys, keep="first")
    return df[~mask].reset_index(drop=True), int(mask.sum())


def extract_stores(raw: pd.DataFrame) -> tuple[pd.DataFrame, EntitySummary]:
    """Stores keyed on ID Toko; rows without id or name are dropped.

    Returns
    -------
    DataFrame with columns: id, name, area_detail
    """
    summary = EntitySummary(total_rows=len(raw))
    rows = []
    for record in raw.to_dict("records"):
        store = {
            "id": clean_text(record.get(STORE_COLUMNS["id"])),
            "name": clean_text(record.get(STORE_COLUMNS["name"])),
            "area_detail": clean_text(record.get(STORE_COLUMNS["area_detail"])),
        }
        if not store["id"] or not store["name"]:
            summary.incomplete += 1
            continue
        rows.append(store)

    df, summary.duplicates = deduplicate(pd.DataFrame(rows, columns=STORE_SCHEMA), ["id"])
    summary.kept = len(df)
    logger.info(
        "Extracted %d unique stores from %d rows (%d incomplete, %d duplicates)",
        summary.kept, summary.total_rows, summary.incomplete, summary.duplicates,
    )
    return df, summary


def extract_promoters(raw: pd.DataFrame) -> tuple[pd.DataFrame, EntitySummary]:
    """Promoters need a name and a sator; duplicates on (name, store_id) dropped.

    Returns
    -------
    DataFrame with columns: name, sator, target, store_id, is_active
    """
    summary = EntitySummary(total_rows=len(raw))
    rows = []
    for record in raw.to_dict("records"):
        promoter = {
            "name": clean_text(record.get(PROMOTER_COLUMNS["name"])),
            "sator": clean_text(record.get(PROMOTER_COLUMNS["sator"])),
            "target": int(safe_float(record.get(PROMOTER_COLUMNS["target"])) or 0),
            "store_id": clean_text(record.get(PROMOTER_COLUMNS["store_id"])),
            "is_active": True,
        }
        if not promoter["name"] or not promoter["sator"]:
            summary.incomplete += 1
            continue
        rows.append(promoter)

    df, summary.duplicates = deduplicate(
        pd.DataFrame(rows, columns=PROMOTER_SCHEMA), ["name", "store_id"]
    )
    summary.kept = len(df)
    logger.info(
        "Extracted %d promoters from %d rows (%d incomplete, %d duplicates)",
        summary.kept, summary.total_rows, summary.incomplete, summary.duplicates,
    )
    return df, summary


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SalesLayout:
    """Where a sales sheet keeps each field.

    ``promoter_columns`` are tried in order and the first non-blank wins.
    Layouts without a store column take the store (and other gaps) from a
    lookup built over a companion sheet. ``terminal_status`` folds unknown
    status text into Reject instead of keeping the raw text.
    """

    name: str
    date_column: str
    promoter_columns: tuple[str, ...]
    status_column: str
    store_column: str | None = None
    phone_type_column: str | None = None
    terminal_status: bool = True
    details: Callable[[dict], dict] | None = field(default=None, compare=False)


def _has_npwp(raw: Any) -> bool:
    text = clean_text(raw).lower()
    return "ada" in text and not any(neg in text for neg in ("tidak", "belum"))


def finance_details(record: dict) -> dict:
    """Applicant columns of the credit-application master sheet."""
    cols = FINANCE_MASTER_COLUMNS
    return {
        "customer_name": clean_text(record.get(cols["customer_name"])) or "Unknown",
        "customer_phone": clean_text(record.get(cols["customer_phone"])) or "0000000000",
        "pekerjaan": normalise_occupation(record.get(cols["pekerjaan"])),
        "penghasilan": safe_float(record.get(cols["penghasilan"])),
        "has_npwp": _has_npwp(record.get(cols["npwp"])),
        "limit_amount": safe_float(record.get(cols["limit_amount"])),
        "proof_image_url": clean_text(record.get(cols["proof_image_url"])) or None,
        "area": clean_text(record.get(cols["area"])) or None,
    }


LEGACY_SALES_LAYOUT = SalesLayout(
    name="legacy",
    date_column=LEGACY_SALES_COLUMNS["date"],
    promoter_columns=(LEGACY_SALES_COLUMNS["promoter"],),
    status_column=LEGACY_SALES_COLUMNS["status"],
    store_column=LEGACY_SALES_COLUMNS["store_id"],
)

FINANCE_SALES_LAYOUT = SalesLayout(
    name="finance",
    date_column=FINANCE_MASTER_COLUMNS["date"],
    promoter_columns=FINANCE_PROMOTER_COLUMNS,
    status_column=FINANCE_MASTER_COLUMNS["status"],
    phone_type_column=FINANCE_MASTER_COLUMNS["phone_type"],
    terminal_status=False,
    details=finance_details,
)


def build_sales_lookup(raw: pd.DataFrame) -> dict[Any, dict]:
    """Index the cleaned sales sheet by its raw Timestamp cell.

    The master sheet shares the Timestamp value with this sheet, which is
    the only join key between the two.
    """
    cols = FINANCE_LOOKUP_COLUMNS
    lookup: dict[Any, dict] = {}
    for record in raw.to_dict("records"):
        key = record.get(cols["key"])
        if is_blank(key):
            continue
        lookup[key] = {
            "store_id": clean_text(record.get(cols["store_id"])),
            "sator": clean_text(record.get(cols["sator"])) or None,
            "area": clean_text(record.get(cols["area"])) or None,
            "phone_type": clean_text(record.get(cols["phone_type"])) or None,
            "promoter_name": clean_text(record.get(cols["promoter"])),
            "status": clean_text(record.get(cols["status"])),
        }
    logger.info("Built sales lookup with %d keys", len(lookup))
    return lookup


def _first_filled(record: dict, columns: tuple[str, ...]) -> str:
    for col in columns:
        value = clean_text(record.get(col))
        if value:
            return value
    return ""


def extract_sales(
    raw: pd.DataFrame,
    layout: SalesLayout = LEGACY_SALES_LAYOUT,
    window: DateWindow | None = None,
    lookup: dict[Any, dict] | None = None,
) -> tuple[pd.DataFrame, DiscardSummary]:
    """Normalise one sales sheet.

    Rows are checked in order: completely blank, unparseable date, blank
    promoter, blank store, outside ``window``. The first failing check is the
    reason counted for that row.

    Returns
    -------
    DataFrame with columns:
        sale_date, promoter_name, store_id, status, phone_type
        (+ applicant detail columns when the layout defines them)
    """
    summary = DiscardSummary(total_rows=len(raw))
    lookup = lookup or {}
    columns = SALES_SCHEMA + (FINANCE_DETAIL_SCHEMA if layout.details else [])
    rows = []

    for index, record in enumerate(raw.to_dict("records")):
        raw_date = record.get(layout.date_column)
        extra = lookup.get(raw_date, {}) if not is_blank(raw_date) else {}

        promoter = _first_filled(record, layout.promoter_columns) or extra.get(
            "promoter_name", ""
        )
        if layout.store_column:
            store_id = clean_text(record.get(layout.store_column))
        else:
            store_id = extra.get("store_id", "")

        if is_blank(raw_date) and not promoter and not store_id:
            summary.blank_rows += 1
            continue

        sale_date = normalise_date(raw_date)
        if sale_date is None:
            summary.failed_date_parse += 1
            if summary.failed_date_parse <= 5:
                logger.debug("Row %d: unparseable date %r", index, raw_date)
            continue
        if not promoter:
            summary.empty_promoter_name += 1
            continue
        if not store_id:
            summary.empty_store_id += 1
            continue
        if window is not None and not window.contains(sale_date):
            summary.out_of_window += 1
            continue

        raw_status = record.get(layout.status_column)
        if is_blank(raw_status):
            raw_status = extra.get("status", "")
        phone_type = None
        if layout.phone_type_column:
            phone_type = clean_text(record.get(layout.phone_type_column)) or None
        phone_type = phone_type or extra.get("phone_type")

        sale = {
            "sale_date": sale_date,
            "promoter_name": promoter,
            "store_id": store_id,
            "status": normalise_status(raw_status, passthrough=not layout.terminal_status)
            or None,
            "phone_type": phone_type,
        }
        if layout.details:
            sale.update(layout.details(record))
            sale["sator"] = extra.get("sator")
            sale["area"] = extra.get("area") or sale.get("area")
        rows.append(sale)

    summary.kept = len(rows)
    df = pd.DataFrame(rows, columns=columns)
    logger.info(
        "Extracted %d %s sales from %d rows: blank=%d bad_date=%d "
        "no_promoter=%d no_store=%d out_of_window=%d",
        summary.kept, layout.name, summary.total_rows, summary.blank_rows,
        summary.failed_date_parse, summary.empty_promoter_name,
        summary.empty_store_id, summary.out_of_window,
    )
    return df, summary
