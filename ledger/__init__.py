"""Portfolio ledger engine.

Validates AI decision batches, applies trade outcomes to the position ledger,
recomputes valuation, and persists the snapshot through a gateway.
"""

from ledger.applier import TradeApplicationResult, apply_trade
from ledger.errors import (
    TRADE_ERRORS,
    InsufficientFunds,
    InsufficientShares,
    LedgerError,
    PersistenceError,
    PositionNotFound,
    SchemaValidationError,
)
from ledger.gateway import InMemoryLedgerGateway, JsonFileLedgerGateway, LedgerGateway
from ledger.service import LedgerService
from ledger.stop_loss import (
    StopLossTrigger,
    apply_stop_loss_updates,
    find_stop_loss_triggers,
    unmatched_stop_loss_tickers,
)
from ledger.totals import apply_market_prices, recalculate_totals
from ledger.validator import normalize_decision_batch, validate_decision_batch

__all__ = [
    "InMemoryLedgerGateway",
    "InsufficientFunds",
    "InsufficientShares",
    "JsonFileLedgerGateway",
    "LedgerError",
    "LedgerGateway",
    "LedgerService",
    "PersistenceError",
    "PositionNotFound",
    "SchemaValidationError",
    "StopLossTrigger",
    "TRADE_ERRORS",
    "TradeApplicationResult",
    "apply_market_prices",
    "apply_stop_loss_updates",
    "apply_trade",
    "find_stop_loss_triggers",
    "normalize_decision_batch",
    "recalculate_totals",
    "unmatched_stop_loss_tickers",
    "validate_decision_batch",
]
