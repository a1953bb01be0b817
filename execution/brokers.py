"""Brokerage and market data collaborators.

The ledger only sees ``TradeOutcome`` objects. Real brokerages and market
data feeds implement the two protocols below; ``PaperBroker`` and
``StaticPriceProvider`` fill orders and serve quotes in-process for paper
trading and tests.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Mapping, Optional, Protocol, Union

from models.config import LedgerConfig
from models.decision import Action, Decision, OrderType
from models.market import Quote
from models.trade import TradeOutcome

logger = logging.getLogger(__name__)


class BrokerageExecutor(Protocol):
    """Turns one BUY/SELL decision into an order and reports the fill."""

    async def execute(self, decision: Decision) -> TradeOutcome:
        """Execute *decision*; unfilled orders come back with ``success=False``."""


class MarketDataProvider(Protocol):
    """Supplies the latest quote per ticker."""

    async def get_quotes(self, tickers: Iterable[str]) -> dict[str, Quote]:
        """Quotes for the tickers that could be priced; others are omitted."""


# ------------------------------------------------------------------
# In-process implementations
# ------------------------------------------------------------------

class StaticPriceProvider:
    """Serves quotes from a fixed mapping of ticker -> price or ``Quote``."""

    def __init__(self, prices: Mapping[str, Union[float, Quote]]) -> None:
        self._quotes: dict[str, Quote] = {}
        for ticker, value in prices.items():
            if isinstance(value, Quote):
                self._quotes[ticker] = value
            else:
                self._quotes[ticker] = Quote(ticker=ticker, price=float(value))

    async def get_quotes(self, tickers: Iterable[str]) -> dict[str, Quote]:
        return {t: self._quotes[t] for t in tickers if t in self._quotes}


class PaperBroker:
    """Fills decisions at the market data provider's current price.

    Market orders always fill. Limit BUYs fill only at or below the limit
    price and limit SELLs only at or above it. Tickers without a quote are
    reported as unfilled.
    """

    def __init__(self, market_data: MarketDataProvider) -> None:
        self._market_data = market_data

    async def execute(self, decision: Decision) -> TradeOutcome:
        if decision.action is Action.HOLD:
            raise ValueError(f"HOLD decision for {decision.ticker} cannot be executed.")

        quotes = await self._market_data.get_quotes([decision.ticker])
        quote = quotes.get(decision.ticker)
        if quote is None:
            return self._unfilled(decision, f"No price available for {decision.ticker}.")

        price = quote.price
        if decision.order_type is OrderType.LIMIT and decision.limit_price is not None:
            if decision.action is Action.BUY and price > decision.limit_price:
                return self._unfilled(
                    decision,
                    f"Limit BUY {decision.ticker} at ${decision.limit_price:.2f} not reached "
                    f"(price ${price:.2f}).",
                )
            if decision.action is Action.SELL and price < decision.limit_price:
                return self._unfilled(
                    decision,
                    f"Limit SELL {decision.ticker} at ${decision.limit_price:.2f} not reached "
                    f"(price ${price:.2f}).",
                )

        logger.info(
            "SIMULATION: filled %s %d %s at $%.2f",
            decision.action.value,
            decision.shares,
            decision.ticker,
            price,
        )
        return TradeOutcome(
            ticker=decision.ticker,
            action=decision.action.value,
            shares=decision.shares,
            filled_price=price,
            stop_loss=decision.stop_loss,
            success=True,
            reasoning=decision.reasoning,
            order_id=uuid.uuid4().hex[:12],
            simulated=True,
        )

    @staticmethod
    def _unfilled(decision: Decision, message: str) -> TradeOutcome:
        logger.info("SIMULATION: %s", message)
        return TradeOutcome(
            ticker=decision.ticker,
            action=decision.action.value,
            shares=decision.shares,
            stop_loss=decision.stop_loss,
            success=False,
            reasoning=decision.reasoning,
            error=message,
            simulated=True,
        )


def select_executor(
    config: LedgerConfig,
    market_data: MarketDataProvider,
    live: Optional[BrokerageExecutor] = None,
) -> BrokerageExecutor:
    """Pick the executor for *config*.

    With ``execute_trades`` off, orders go to a ``PaperBroker`` even when a
    live executor is available. With it on, a live executor is required.
    """
    if not config.execute_trades:
        logger.info("EXECUTE_TRADES is off: orders are filled by the paper broker")
        return PaperBroker(market_data)
    if live is None:
        raise ValueError("execute_trades is enabled but no live brokerage executor is configured.")
    logger.warning("EXECUTE_TRADES is on: orders go to %s", type(live).__name__)
    return live
