"""
Synthetic workbook generator.

Builds a workbook with the same sheets and headers as the hand-maintained
source, including its quirks: dates typed three different ways, free-text
status and occupation, blank rows, duplicated store ids and a repeated
``Nama Promotor`` header on the credit-application sheet. All names and
numbers are synthetic.
"""

from datetime import date, datetime, timedelta
from pathlib import Path

import numpy as np
import pandas as pd
from openpyxl import Workbook

from .config import (
    FINANCE_LOOKUP_COLUMNS,
    FINANCE_LOOKUP_SHEET,
    FINANCE_MASTER_COLUMNS,
    FINANCE_MASTER_SHEET,
    HIERARCHY_SATORS,
    LEGACY_SALES_COLUMNS,
    LEGACY_SALES_SHEET,
    PROMOTER_COLUMNS,
    PROMOTERS_SHEET,
    STORE_COLUMNS,
    STORES_SHEET,
)
from .loaders.utils import date_to_serial, is_blank

# ---------------------------------------------------------------------------
# Vocabulary seen in the real sheets
# ---------------------------------------------------------------------------
_AREA_LABELS = {
    "KUPANG": ["Kota Kupang", "Kupang Tengah"],
    "KABUPATEN": ["Kab. Timor Tengah", "Kec. Kabupaten Timur"],
    "SUMBA": ["Sumba Barat", "Sumba Timur"],
}

_STATUS_TEXT = [
    "ACC",
    "acc",
    "Dapat Limit Tapi Belum Ambil HP",
    "Pending",
    "Reject",
    "Belum disetujui",
    "Tidak dapat limit",
    "Eror sistem",
]

_OCCUPATION_TEXT = [
    "PNS", "Pegawai swasta", "Buruh harian", "Mahasiswa", "Ibu Rumah Tangga", "Petani", None,
]

_NPWP_TEXT = ["Ada", "Tidak ada", "Belum ada", None]

_PHONE_TYPES = ["Y19s", "Y28", "V40 Lite", "Y04", "V50"]

_FIRST_NAMES = [
    "Maria", "Yohanes", "Agustina", "Fransiskus", "Yuliana", "Petrus", "Ermelinda",
    "Dominggus", "Sarlota", "Kornelis", "Veronika", "Melkianus",
]
_LAST_NAMES = ["Bani", "Tefa", "Nenobais", "Lay", "Manafe", "Dethan", "Riwu", "Kana"]


def _name(rng: np.random.Generator) -> str:
    return f"{rng.choice(_FIRST_NAMES)} {rng.choice(_LAST_NAMES)}"


def _encode_date(day: date, rng: np.random.Generator):
    """Write a date the way a person typing into the sheet might."""
    style = rng.integers(3)
    if style == 0:
        return datetime(day.year, day.month, day.day)
    if style == 1:
        return date_to_serial(day)
    return f"{day.day}-{day.month}-{day.year}"


def generate_stores(n_per_area: int = 4, seed: int = 42) -> pd.DataFrame:
    """Stores across the three areas, with one duplicated id and one nameless row."""
    rng = np.random.default_rng(seed)
    rows = []
    for area, labels in _AREA_LABELS.items():
        for i in range(n_per_area):
            store_id = f"{area[:3]}-{i + 1:02d}"
            rows.append({
                STORE_COLUMNS["id"]: store_id,
                STORE_COLUMNS["name"]: f"Toko {rng.choice(_LAST_NAMES)} {store_id}",
                STORE_COLUMNS["city"]: labels[0].split()[-1],
                STORE_COLUMNS["area_detail"]: labels[i % len(labels)],
            })
    rows.append(dict(rows[0], **{STORE_COLUMNS["name"]: "Duplicate entry"}))
    rows.append({STORE_COLUMNS["id"]: "XXX-99", STORE_COLUMNS["name"]: None})
    return pd.DataFrame(rows, dtype=object)


def generate_promoters(stores: pd.DataFrame, seed: int = 42) -> pd.DataFrame:
    """One promoter per store, grouped under the sators of the store's area."""
    rng = np.random.default_rng(seed)
    sators_by_area: dict[str, list[str]] = {}
    for area, sator in HIERARCHY_SATORS:
        sators_by_area.setdefault(area, []).append(sator)

    rows = []
    seen = set()
    for record in stores.to_dict("records"):
        store_id = record[STORE_COLUMNS["id"]]
        if store_id in seen or is_blank(record.get(STORE_COLUMNS["name"])):
            continue
        seen.add(store_id)
        area = next(a for a in _AREA_LABELS if store_id.startswith(a[:3]))
        rows.append({
            PROMOTER_COLUMNS["name"]: f"{_name(rng)} {len(rows) + 1}",
            PROMOTER_COLUMNS["sator"]: rng.choice(sators_by_area[area]),
            PROMOTER_COLUMNS["target"]: int(rng.integers(10, 40)),
            PROMOTER_COLUMNS["store_id"]: store_id,
        })
    return pd.DataFrame(rows, dtype=object)


def generate_legacy_sales(
    promoters: pd.DataFrame,
    start: str = "2025-08-25",
    end: str = "2025-11-30",
    n_rows: int = 200,
    seed: int = 42,
) -> pd.DataFrame:
    """Sheet21-style sales with mixed date encodings and a few broken rows."""
    rng = np.random.default_rng(seed)
    days = pd.date_range(start, end, freq="D").date
    agents = promoters.to_dict("records")
    cols = LEGACY_SALES_COLUMNS

    rows = []
    for _ in range(n_rows):
        agent = agents[rng.integers(len(agents))]
        rows.append({
            cols["date"]: _encode_date(days[rng.integers(len(days))], rng),
            cols["promoter"]: agent[PROMOTER_COLUMNS["name"]],
            cols["status"]: rng.choice(_STATUS_TEXT),
            cols["store_id"]: agent[PROMOTER_COLUMNS["store_id"]],
        })

    # a status typed into an otherwise empty row
    rows.append({cols["date"]: None, cols["promoter"]: None, cols["status"]: "Pending", cols["store_id"]: None})
    rows.append({cols["date"]: "31-02-2025", cols["promoter"]: "Bad Date", cols["status"]: "ACC",
                 cols["store_id"]: "KUP-01"})
    rows.append({cols["date"]: date_to_serial(days[-1]), cols["promoter"]: "No Store",
                 cols["status"]: "ACC", cols["store_id"]: None})
    return pd.DataFrame(rows, dtype=object)


def generate_finance_sheets(
    promoters: pd.DataFrame,
    start: str = "2025-12-01",
    end: str = "2025-12-12",
    n_rows: int = 80,
    seed: int = 42,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Master Data All plus Data Penjualan Bersih, joined on the Timestamp cell."""
    rng = np.random.default_rng(seed)
    days = pd.date_range(start, end, freq="D").date
    agents = promoters.to_dict("records")
    mcols, lcols = FINANCE_MASTER_COLUMNS, FINANCE_LOOKUP_COLUMNS

    master_rows, lookup_rows = [], []
    for i in range(n_rows):
        agent = agents[rng.integers(len(agents))]
        day = days[rng.integers(len(days))]
        stamp = datetime(day.year, day.month, day.day, 8) + timedelta(minutes=7 * i)
        status = rng.choice(_STATUS_TEXT)

        # the form writes the promoter into one of nine same-named columns
        slots = [None] * 9
        slots[rng.integers(9)] = agent[PROMOTER_COLUMNS["name"]]
        master_rows.append([
            stamp,
            *slots,
            status,
            agent[PROMOTER_COLUMNS["store_id"]][:3],
            rng.choice(_PHONE_TYPES),
            _name(rng),
            f"08{rng.integers(10**9, 10**10)}",
            rng.choice(_OCCUPATION_TEXT),
            float(rng.integers(15, 80) * 100_000),
            rng.choice(_NPWP_TEXT),
            float(rng.integers(0, 30) * 500_000),
            None,
        ])
        lookup_rows.append({
            lcols["key"]: stamp,
            lcols["store_id"]: agent[PROMOTER_COLUMNS["store_id"]],
            lcols["sator"]: agent[PROMOTER_COLUMNS["sator"]],
            lcols["area"]: agent[PROMOTER_COLUMNS["store_id"]][:3],
            lcols["phone_type"]: rng.choice(_PHONE_TYPES),
            lcols["promoter"]: agent[PROMOTER_COLUMNS["name"]],
            lcols["status"]: status,
        })

    headers = [
        mcols["date"],
        *(["Nama Promotor"] * 9),
        mcols["status"],
        mcols["area"],
        mcols["phone_type"],
        mcols["customer_name"],
        mcols["customer_phone"],
        mcols["pekerjaan"],
        mcols["penghasilan"],
        mcols["npwp"],
        mcols["limit_amount"],
        mcols["proof_image_url"],
    ]
    master = pd.DataFrame(master_rows, columns=headers, dtype=object)
    lookup = pd.DataFrame(lookup_rows, dtype=object)
    return master, lookup


def generate_workbook_sheets(seed: int = 42) -> dict[str, pd.DataFrame]:
    """Every sheet the engine reads, keyed by sheet name."""
    stores = generate_stores(seed=seed)
    promoters = generate_promoters(stores, seed=seed)
    master, lookup = generate_finance_sheets(promoters, seed=seed)
    return {
        STORES_SHEET: stores,
        PROMOTERS_SHEET: promoters,
        LEGACY_SALES_SHEET: generate_legacy_sales(promoters, seed=seed),
        FINANCE_MASTER_SHEET: master,
        FINANCE_LOOKUP_SHEET: lookup,
    }


def _cell(value):
    if is_blank(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def write_workbook(path: str | Path, sheets: dict[str, pd.DataFrame]) -> Path:
    """Write each frame to its own sheet, header row first."""
    path = Path(path)
    wb = Workbook()
    wb.remove(wb.active)
    for name, df in sheets.items():
        ws = wb.create_sheet(title=name)
        ws.append([str(col) for col in df.columns])
        for row in df.itertuples(index=False, name=None):
            ws.append([_cell(v) for v in row])
    wb.save(path)
    return path
