"""Portfolio valuation: market prices and totals recalculation."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from models.portfolio import Portfolio

logger = logging.getLogger(__name__)


def apply_market_prices(portfolio: Portfolio, prices: Mapping[str, Optional[float]]) -> Portfolio:
    """Return a copy of *portfolio* with ``current_price`` set from *prices*.

    Tickers without a positive price keep whatever price they had.
    """
    updated = portfolio.model_copy(deep=True)
    for position in updated.positions:
        price = prices.get(position.ticker)
        if price is None or price <= 0:
            logger.debug("No usable price for %s, keeping %s", position.ticker, position.current_price)
            continue
        position.current_price = price
        logger.debug("Updated %s: $%.2f", position.ticker, price)
    return updated


def recalculate_totals(portfolio: Portfolio) -> Portfolio:
    """Derive position and portfolio valuation. Pure and idempotent.

    Positions with a known current price get fresh ``market_value``,
    ``unrealized_pnl`` and ``unrealized_pnl_percent`` (``None`` when the cost
    basis is zero). Positions without one keep their prior market value.
    Afterwards ``total_value == equity + cash`` with ``equity`` the sum of
    position market values.
    """
    updated = portfolio.model_copy(deep=True)

    equity = 0.0
    for position in updated.positions:
        if position.current_price:
            position.market_value = position.shares * position.current_price
            position.unrealized_pnl = position.market_value - position.cost_basis
            if position.cost_basis == 0:
                position.unrealized_pnl_percent = None
            else:
                position.unrealized_pnl_percent = position.unrealized_pnl / position.cost_basis * 100
        equity += position.market_value or 0.0

    updated.equity = equity
    updated.total_value = equity + updated.cash
    return updated
