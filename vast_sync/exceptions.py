"""
Exceptions raised by the reconciliation engine.

Only configuration failures and an unreadable workbook stop a run. Store
failures are raised per call and caught by the stage that issued the call,
which records them in its report and moves on.
"""


class VastSyncError(Exception):
    """Base exception for all engine errors."""

    pass


class ConfigurationError(VastSyncError):
    """Required credentials or endpoints are missing."""

    pass


class WorkbookFormatError(VastSyncError):
    """The workbook lacks a sheet or header the engine depends on."""

    def __init__(self, message: str, path: str | None = None, sheet: str | None = None):
        self.path = path
        self.sheet = sheet
        if sheet:
            message = f"[{sheet}] {message}"
        if path:
            message = f"{message} (workbook: {path})"
        super().__init__(message)


class StoreError(VastSyncError):
    """A select, insert, update or delete against the relational store failed."""

    def __init__(
        self,
        message: str,
        table: str | None = None,
        original_error: Exception | None = None,
    ):
        self.table = table
        self.original_error = original_error
        if table:
            message = f"{table}: {message}"
        if original_error:
            message = f"{message} (Original error: {original_error})"
        super().__init__(message)
