from __future__ import annotations


class LedgerSyncError(Exception):
    """Base class for failures reported to the caller of a reconciliation run."""


class AccessDeniedError(LedgerSyncError):
    """The ledger cannot be opened for writing (usually open in another program)."""


class ReadFailureError(LedgerSyncError):
    """The ledger file is not a readable workbook."""


class MissingSheetError(LedgerSyncError):
    """The workbook has no worksheet to reconcile against."""


class EmptyInputError(LedgerSyncError):
    """No records were submitted."""


class PersistFailureError(LedgerSyncError):
    """Writing the reconciled workbook back to disk failed."""
