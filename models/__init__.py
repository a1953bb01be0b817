"""Data models for the portfolio ledger.

The ledger engine, the execution layer, and the CLI all import from models.
"""

from models.config import DEFAULT_SCHEMA_VERSION, LedgerConfig
from models.decision import Action, Decision, DecisionBatch, OrderType, StopLossUpdate, TimeInForce
from models.market import Quote
from models.portfolio import Portfolio, PortfolioSummary, Position, PositionSummary
from models.report import CycleReport, ErrorKind, StopLossReport, TradeApplication
from models.trade import TradeOutcome, TradeRecord

__all__ = [
    # config
    "DEFAULT_SCHEMA_VERSION",
    "LedgerConfig",
    # decision
    "Action",
    "Decision",
    "DecisionBatch",
    "OrderType",
    "StopLossUpdate",
    "TimeInForce",
    # market
    "Quote",
    # portfolio
    "Portfolio",
    "PortfolioSummary",
    "Position",
    "PositionSummary",
    # report
    "CycleReport",
    "ErrorKind",
    "StopLossReport",
    "TradeApplication",
    # trade
    "TradeOutcome",
    "TradeRecord",
]
