"""Ledger error taxonomy.

``SchemaValidationError`` is fatal to a whole decision batch, but raised for
a single malformed fill it only skips that trade. ``PersistenceError`` is
fatal to a cycle. The three ledger invariant errors (``TRADE_ERRORS``) only
skip the offending trade.
"""

from __future__ import annotations

from typing import Any, Optional

from models.report import ErrorKind


class LedgerError(Exception):
    """Base class; ``kind`` identifies the error without isinstance checks."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SchemaValidationError(LedgerError):
    """First violated constraint of a decision batch.

    ``path`` locates the field (e.g. ``decisions[2].ticker``); ``index`` is the
    position inside ``decisions``/``stopLossUpdates`` when applicable.
    """

    kind = ErrorKind.SCHEMA_VALIDATION

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        index: Optional[int] = None,
        field: Optional[str] = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.index = index
        self.field = field
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


class InsufficientFunds(LedgerError):
    kind = ErrorKind.INSUFFICIENT_FUNDS


class PositionNotFound(LedgerError):
    kind = ErrorKind.POSITION_NOT_FOUND


class InsufficientShares(LedgerError):
    kind = ErrorKind.INSUFFICIENT_SHARES


class PersistenceError(LedgerError):
    kind = ErrorKind.PERSISTENCE


TRADE_ERRORS: tuple[type[LedgerError], ...] = (
    InsufficientFunds,
    PositionNotFound,
    InsufficientShares,
)
