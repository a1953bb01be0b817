"""Execution layer: brokerage/market data collaborators and the trading cycle."""

from execution.brokers import (
    BrokerageExecutor,
    MarketDataProvider,
    PaperBroker,
    StaticPriceProvider,
    select_executor,
)
from execution.cycle import TradingCycle

__all__ = [
    "BrokerageExecutor",
    "MarketDataProvider",
    "PaperBroker",
    "StaticPriceProvider",
    "TradingCycle",
    "select_executor",
]
