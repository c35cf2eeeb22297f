"""
Shared utilities for workbook ingestion: cell cleaning, date normalisation,
numeric coercion.
"""

import logging
import math
import numbers
import re
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd

from ..config import EXCEL_EPOCH

logger = logging.getLogger(__name__)

_DMY_PATTERN = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_EPOCH_ORDINAL = date.fromisoformat(EXCEL_EPOCH).toordinal()


def is_blank(val: Any) -> bool:
    """True for None, NaN/NaT and strings that are empty after trimming."""
    if val is None:
        return True
    if isinstance(val, str):
        return not val.strip()
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


def clean_text(val: Any) -> str:
    """Trimmed string form of a cell; blank cells become ''.

    Whole floats (an id typed as a number) lose their trailing ``.0``.
    """
    if is_blank(val):
        return ""
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val).strip()


def _is_number(val: Any) -> bool:
    return isinstance(val, numbers.Real) and not isinstance(val, (bool, np.bool_))


def normalise_date(val: Any) -> str | None:
    """Convert a raw date cell to a ``YYYY-MM-DD`` string.

    Accepts native dates, spreadsheet serial numbers (day offsets from the
    1899-12-30 epoch, fractional time of day discarded) and ``D-M-YYYY``
    strings. Returns None for anything else; callers drop the row.
    """
    if is_blank(val):
        return None

    if isinstance(val, (datetime, date)):
        return f"{val.year:04d}-{val.month:02d}-{val.day:02d}"

    if _is_number(val):
        if not math.isfinite(val) or val < 1:
            logger.debug("Serial %s is outside the calendar range", val)
            return None
        try:
            return date.fromordinal(_EPOCH_ORDINAL + int(val)).isoformat()
        except (ValueError, OverflowError):
            logger.warning("Could not convert serial number %s to date", val)
            return None

    if isinstance(val, str):
        match = _DMY_PATTERN.match(val.strip())
        if not match:
            return None
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            logger.debug("String %r is not a calendar date", val)
            return None

    return None


def date_to_serial(val: str | date) -> int:
    """Re-encode a date (or ISO date string) as a day offset from the epoch."""
    if isinstance(val, str):
        val = date.fromisoformat(val)
    return val.toordinal() - _EPOCH_ORDINAL


def safe_float(val: Any) -> float | None:
    """Coerce a value to float, returning None for non-numeric values.

    Strings keep only digits, the decimal point and a leading minus sign, so
    "Rp 3.500.000" style amounts are not supported; "3500000" and "3,500,000"
    are.
    """
    if is_blank(val):
        return None
    if isinstance(val, str):
        val = val.strip().replace(",", "")
        if val.endswith("%"):
            val = val[:-1]
        try:
            return float(val)
        except ValueError:
            digits = re.sub(r"[^0-9.]", "", val)
            try:
                return float(digits) if digits else None
            except ValueError:
                return None
    if _is_number(val):
        result = float(val)
        return result if math.isfinite(result) else None
    return None
