"""Stop-loss maintenance: AI-issued level updates and trigger detection."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from pydantic import BaseModel

from models.decision import Action, Decision, OrderType, StopLossUpdate
from models.market import Quote
from models.portfolio import Portfolio

logger = logging.getLogger(__name__)


class StopLossTrigger(BaseModel):
    """A held position whose stop-loss level was breached."""

    ticker: str
    shares: int
    stop_loss: float
    low_of_day: float
    current_price: float
    execution_price: float

    def to_decision(self) -> Decision:
        """Market SELL of the whole position."""
        return Decision(
            action=Action.SELL,
            ticker=self.ticker,
            shares=self.shares,
            order_type=OrderType.MARKET,
            stop_loss=self.stop_loss,
            reasoning=f"AUTOMATED SELL - STOPLOSS TRIGGERED at ${self.stop_loss:.2f}",
        )


def apply_stop_loss_updates(portfolio: Portfolio, updates: Iterable[StopLossUpdate]) -> Portfolio:
    """Return a copy of *portfolio* with matching positions' stop-loss overwritten.

    Updates for tickers that are not held change nothing.
    """
    updated = portfolio.model_copy(deep=True)
    for update in updates:
        position = updated.find_position(update.ticker)
        if position is None:
            continue
        position.stop_loss = update.stop_loss
        logger.debug("Updated stop loss for %s: $%.2f", update.ticker, update.stop_loss)
    return updated


def unmatched_stop_loss_tickers(portfolio: Portfolio, updates: Iterable[StopLossUpdate]) -> list[str]:
    """Tickers in *updates* with no position in *portfolio*, in update order."""
    held = set(portfolio.tickers)
    return [u.ticker for u in updates if u.ticker not in held]


def find_stop_loss_triggers(portfolio: Portfolio, quotes: Mapping[str, Quote]) -> list[StopLossTrigger]:
    """Positions whose low of day reached their stop-loss level.

    Positions without a stop-loss, or without a quote carrying both a price
    and a low, are not checked.
    """
    triggers: list[StopLossTrigger] = []
    for position in portfolio.positions:
        if not position.stop_loss or position.stop_loss <= 0:
            continue
        quote = quotes.get(position.ticker)
        if quote is None or quote.low is None:
            continue

        if quote.low <= position.stop_loss:
            execution_price = min(quote.price, position.stop_loss)
            logger.warning(
                "Stop-loss triggered for %s: stop $%.2f, low $%.2f, price $%.2f",
                position.ticker,
                position.stop_loss,
                quote.low,
                quote.price,
            )
            triggers.append(
                StopLossTrigger(
                    ticker=position.ticker,
                    shares=position.shares,
                    stop_loss=position.stop_loss,
                    low_of_day=quote.low,
                    current_price=quote.price,
                    execution_price=execution_price,
                )
            )
        else:
            logger.debug(
                "Stop-loss not triggered for %s (stop $%.2f, low $%.2f)",
                position.ticker,
                position.stop_loss,
                quote.low,
            )
    return triggers
