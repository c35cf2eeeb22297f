"""
Loader for the sales workbook.

Each sheet has a single header row (row 1) followed by one record per row.
Cells are read with ``data_only=True`` so formula cells yield their cached
values. Dates may arrive as datetime objects, serial numbers or D-M-YYYY
text; they are left raw here and normalised during extraction.
"""

import logging
from collections.abc import Iterable

import openpyxl
import pandas as pd

from ..exceptions import WorkbookFormatError
from .utils import is_blank

logger = logging.getLogger(__name__)


def _dedupe_headers(raw_headers: Iterable) -> list[str | None]:
    """Stringify headers, suffixing repeats with _1, _2, ... in column order."""
    seen: dict[str, int] = {}
    headers: list[str | None] = []
    for raw in raw_headers:
        if is_blank(raw):
            headers.append(None)
            continue
        name = str(raw).strip()
        if name in seen:
            seen[name] += 1
            headers.append(f"{name}_{seen[name]}")
        else:
            seen[name] = 0
            headers.append(name)
    return headers


def list_sheets(path: str) -> list[str]:
    """Sheet names in workbook order."""
    try:
        wb = openpyxl.load_workbook(path, read_only=True)
    except Exception as exc:
        logger.exception("Failed to open workbook: %s", path)
        raise WorkbookFormatError(f"cannot open workbook: {exc}", path=str(path)) from exc
    try:
        return list(wb.sheetnames)
    finally:
        wb.close()


def load_sheet(
    path: str,
    sheet_name: str,
    required_columns: Iterable[str] = (),
) -> pd.DataFrame:
    """Load one sheet as an object-dtype DataFrame keyed by header name.

    Fully blank rows and columns without a header are dropped. A missing
    sheet or a missing required header raises WorkbookFormatError.
    """
    try:
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:
        logger.exception("Failed to open workbook: %s", path)
        raise WorkbookFormatError(f"cannot open workbook: {exc}", path=str(path)) from exc

    try:
        if sheet_name not in wb.sheetnames:
            raise WorkbookFormatError(
                f"sheet not found; available: {wb.sheetnames}",
                path=str(path),
                sheet=sheet_name,
            )
        rows_iter = wb[sheet_name].iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if header_row is None:
            raise WorkbookFormatError("sheet is empty", path=str(path), sheet=sheet_name)

        headers = _dedupe_headers(header_row)
        keep = [i for i, name in enumerate(headers) if name is not None]
        columns = [headers[i] for i in keep]

        records = []
        for values in rows_iter:
            cells = [values[i] if i < len(values) else None for i in keep]
            if all(is_blank(cell) for cell in cells):
                continue
            records.append(cells)
    finally:
        wb.close()

    missing = [col for col in required_columns if col not in columns]
    if missing:
        raise WorkbookFormatError(
            f"missing columns {missing}", path=str(path), sheet=sheet_name
        )

    df = pd.DataFrame(records, columns=columns, dtype=object)
    logger.info("Loaded %d rows from %s [%s]", len(df), path, sheet_name)
    return df
