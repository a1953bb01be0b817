"""Trade applier: applies one filled trade outcome to a portfolio snapshot.

``apply_trade`` works on a deep copy of the portfolio, so when it raises one
of the ledger invariant errors the caller's snapshot is untouched. BUYs
recompute the weighted-average buy price; SELLs realize P&L against the
pro-rated cost basis and remove fully-sold positions.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ledger.errors import InsufficientFunds, InsufficientShares, PositionNotFound, SchemaValidationError
from ledger.validator import TICKER_PATTERN
from models.portfolio import Portfolio, Position
from models.trade import TradeOutcome, TradeRecord

_id_lock = threading.Lock()
_last_id_ns = 0


@dataclass(frozen=True)
class TradeApplicationResult:
    """New portfolio state plus the ledger entry the trade produced."""

    portfolio: Portfolio
    record: TradeRecord
    realized_pnl: float = 0.0


def new_trade_id(now: datetime) -> str:
    """``trade#<date>#<creation instant in ns>``, strictly increasing per process."""
    global _last_id_ns
    with _id_lock:
        stamp = max(time.time_ns(), _last_id_ns + 1)
        _last_id_ns = stamp
    return f"trade#{now.date().isoformat()}#{stamp}"


def apply_trade(
    portfolio: Portfolio,
    outcome: TradeOutcome,
    *,
    now: Optional[datetime] = None,
) -> TradeApplicationResult:
    """Apply a successful *outcome* and return the new portfolio and trade record.

    Raises ``InsufficientFunds``, ``PositionNotFound`` or
    ``InsufficientShares`` without modifying *portfolio*, and
    ``SchemaValidationError`` for a fill the ledger cannot book (no fill
    price, malformed ticker, non-positive stop-loss). Outcomes the brokerage
    did not fill must be filtered out by the caller.
    """
    if not outcome.success:
        raise ValueError(f"Cannot apply unfilled {outcome.action} for {outcome.ticker}.")
    check_fill(outcome)

    now = now or datetime.now(timezone.utc)
    updated = portfolio.model_copy(deep=True)

    if outcome.action == "BUY":
        pnl = 0.0
        _apply_buy(updated, outcome)
    else:
        pnl = _apply_sell(updated, outcome)

    record = TradeRecord(
        id=new_trade_id(now),
        date=now.isoformat(),
        ticker=outcome.ticker,
        action=outcome.action,
        shares=outcome.shares,
        price=outcome.filled_price,
        ai_reasoning=outcome.reasoning,
        pnl=pnl,
    )
    return TradeApplicationResult(portfolio=updated, record=record, realized_pnl=pnl)


def check_fill(outcome: TradeOutcome) -> None:
    """Reject a reported fill that would corrupt the snapshot.

    A market order can be accepted by the brokerage before it is filled, in
    which case ``success`` is true but no ``filledPrice`` is known yet.
    """
    if not isinstance(outcome.ticker, str) or not TICKER_PATTERN.fullmatch(outcome.ticker):
        raise SchemaValidationError(
            f"Fill has malformed ticker {outcome.ticker!r}.",
            path="ticker",
            field="ticker",
            expected=TICKER_PATTERN.pattern,
            actual=outcome.ticker,
        )
    if outcome.filled_price is None or outcome.filled_price <= 0:
        raise SchemaValidationError(
            f"Filled {outcome.action} for {outcome.ticker} has no filledPrice.",
            path="filledPrice",
            field="filledPrice",
            expected="> 0",
            actual=outcome.filled_price,
        )
    if outcome.stop_loss is not None and outcome.stop_loss <= 0:
        raise SchemaValidationError(
            f"Fill for {outcome.ticker} carries non-positive stopLoss.",
            path="stopLoss",
            field="stopLoss",
            expected="> 0",
            actual=outcome.stop_loss,
        )


# ------------------------------------------------------------------
# BUY / SELL
# ------------------------------------------------------------------

def _apply_buy(portfolio: Portfolio, outcome: TradeOutcome) -> None:
    price = outcome.filled_price
    cost = price * outcome.shares

    if cost > portfolio.cash:
        raise InsufficientFunds(
            f"Insufficient cash for {outcome.ticker} purchase: "
            f"need ${cost:.2f}, have ${portfolio.cash:.2f}"
        )

    position = portfolio.find_position(outcome.ticker)
    if position is not None:
        total_shares = position.shares + outcome.shares
        total_cost = position.shares * position.buy_price + cost
        position.shares = total_shares
        position.buy_price = total_cost / total_shares
        position.cost_basis = total_cost
    else:
        portfolio.positions.append(
            Position(
                ticker=outcome.ticker,
                shares=outcome.shares,
                buy_price=price,
                cost_basis=cost,
                stop_loss=outcome.stop_loss or None,
                current_price=price,
                market_value=cost,
            )
        )

    portfolio.cash -= cost


def _apply_sell(portfolio: Portfolio, outcome: TradeOutcome) -> float:
    position = portfolio.find_position(outcome.ticker)
    if position is None:
        raise PositionNotFound(f"Cannot sell {outcome.ticker}: position not found")

    if outcome.shares > position.shares:
        raise InsufficientShares(
            f"Cannot sell {outcome.shares} shares of {outcome.ticker}: "
            f"only {position.shares} available"
        )

    revenue = outcome.filled_price * outcome.shares
    cost_basis_sold = (outcome.shares / position.shares) * position.cost_basis
    pnl = revenue - cost_basis_sold

    if outcome.shares == position.shares:
        portfolio.positions = [p for p in portfolio.positions if p.ticker != outcome.ticker]
    else:
        remaining = position.shares - outcome.shares
        position.cost_basis = (remaining / position.shares) * position.cost_basis
        position.shares = remaining
        position.market_value = remaining * outcome.filled_price

    portfolio.cash += revenue
    return pnl
