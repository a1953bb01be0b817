"""Cycle reporting models.

- ``ErrorKind``: closed set of ledger error kinds.
- ``TradeApplication``: what happened to one trade outcome in a cycle.
- ``CycleReport``: per-cycle counts, outcomes and the persisted snapshot.
- ``StopLossReport``: which stop-loss updates matched a position.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from models.portfolio import Portfolio
from models.trade import TradeRecord


class ErrorKind(str, Enum):
    SCHEMA_VALIDATION = "SchemaValidationError"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    POSITION_NOT_FOUND = "PositionNotFound"
    INSUFFICIENT_SHARES = "InsufficientShares"
    PERSISTENCE = "PersistenceError"


class TradeApplication(BaseModel):
    """Result value for one outcome passed to the ledger.

    ``applied``: the ledger changed and a trade record was written.
    ``skipped``: the ledger rejected the trade (``error_kind`` says why).
    ``failed``: the brokerage reported the order as not filled.
    """

    ticker: str
    action: Literal["BUY", "SELL"]
    shares: int
    status: Literal["applied", "skipped", "failed"]
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    record_id: Optional[str] = None
    pnl: Optional[float] = None


class StopLossReport(BaseModel):
    """Tickers whose stop-loss was overwritten vs. tickers with no position."""

    updated: list[str] = Field(default_factory=list)
    unmatched: list[str] = Field(default_factory=list)


class CycleReport(BaseModel):
    """Summary of one update cycle, returned to the scheduling glue."""

    applications: list[TradeApplication] = Field(default_factory=list)
    stop_losses: Optional[StopLossReport] = None
    portfolio: Optional[Portfolio] = None
    records: list[TradeRecord] = Field(default_factory=list)

    @property
    def applied(self) -> int:
        return sum(1 for a in self.applications if a.status == "applied")

    @property
    def skipped(self) -> int:
        return sum(1 for a in self.applications if a.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for a in self.applications if a.status == "failed")

    @property
    def skip_reasons(self) -> list[str]:
        return [a.message for a in self.applications if a.status == "skipped"]

    def summary(self) -> dict:
        """Flat dict for logging and CLI output."""
        portfolio = self.portfolio
        return {
            "tradesProcessed": len(self.applications),
            "tradesApplied": self.applied,
            "tradesSkipped": self.skipped,
            "tradesFailed": self.failed,
            "skipReasons": self.skip_reasons,
            "stopLossesUpdated": self.stop_losses.updated if self.stop_losses else [],
            "stopLossesUnmatched": self.stop_losses.unmatched if self.stop_losses else [],
            "portfolioValue": portfolio.total_value if portfolio else None,
            "cash": portfolio.cash if portfolio else None,
            "equity": portfolio.equity if portfolio else None,
        }
