"""Workbook loaders for the sales spreadsheet."""

from .utils import clean_text, date_to_serial, is_blank, normalise_date, safe_float
from .workbook import list_sheets, load_sheet

__all__ = [
    "clean_text",
    "date_to_serial",
    "is_blank",
    "list_sheets",
    "load_sheet",
    "normalise_date",
    "safe_float",
]
