"""Portfolio state models.

The portfolio is persisted as a single snapshot (cash + positions). Field
names on the wire are camelCase; Python code uses the snake_case attributes.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Position(BaseModel):
    """A ticker's current holding: share count, weighted-average cost, live valuation.

    ``cost_basis`` is the total paid for the shares still held, so
    ``cost_basis ~= shares * buy_price`` at all times. A position with zero
    shares is removed from the portfolio, never kept at zero.
    """

    ticker: str = Field(pattern=r"^[A-Z0-9-]+$")
    shares: int = Field(gt=0)
    buy_price: float = Field(alias="buyPrice", ge=0)
    cost_basis: float = Field(alias="costBasis", ge=0)
    stop_loss: Optional[float] = Field(None, alias="stopLoss", gt=0)
    current_price: Optional[float] = Field(None, alias="currentPrice")
    market_value: float = Field(0.0, alias="marketValue")
    unrealized_pnl: Optional[float] = Field(None, alias="unrealizedPnL")
    # None when cost_basis is zero (ratio undefined).
    unrealized_pnl_percent: Optional[float] = Field(None, alias="unrealizedPnLPercent")

    model_config = {"populate_by_name": True}


class Portfolio(BaseModel):
    """The single authoritative portfolio snapshot.

    Right after ``recalculate_totals`` the invariant
    ``total_value == sum(p.market_value for p in positions) + cash`` holds.
    """

    cash: float = Field(ge=0)
    total_value: float = Field(0.0, alias="totalValue")
    equity: float = 0.0
    positions: list[Position] = Field(default_factory=list)
    last_updated: Optional[str] = Field(None, alias="lastUpdated")  # ISO 8601

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _unique_tickers(self) -> Portfolio:
        seen: set[str] = set()
        for position in self.positions:
            if position.ticker in seen:
                raise ValueError(f"Duplicate position for ticker {position.ticker}.")
            seen.add(position.ticker)
        return self

    def find_position(self, ticker: str) -> Optional[Position]:
        """Return the position held for *ticker*, or ``None``."""
        for position in self.positions:
            if position.ticker == ticker:
                return position
        return None

    @property
    def tickers(self) -> list[str]:
        return [p.ticker for p in self.positions]

    @classmethod
    def empty(cls, starting_cash: float, last_updated: str | None = None) -> Portfolio:
        """Fresh snapshot holding only *starting_cash*."""
        return cls(
            cash=starting_cash,
            total_value=starting_cash,
            equity=0.0,
            positions=[],
            last_updated=last_updated,
        )


class PositionSummary(BaseModel):
    """Compact per-position view handed to the decision prompt."""

    ticker: str
    shares: int
    buy_price: float = Field(alias="buyPrice")
    current_price: Optional[float] = Field(None, alias="currentPrice")
    stop_loss: Optional[float] = Field(None, alias="stopLoss")
    unrealized_pnl: Optional[float] = Field(None, alias="unrealizedPnL")
    unrealized_pnl_percent: Optional[float] = Field(None, alias="unrealizedPnLPercent")

    model_config = {"populate_by_name": True}


class PortfolioSummary(BaseModel):
    """Cash, total value and per-position summaries."""

    total_value: float = Field(alias="totalValue")
    cash: float
    positions: list[PositionSummary] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @classmethod
    def from_portfolio(cls, portfolio: Portfolio) -> PortfolioSummary:
        return cls(
            total_value=portfolio.total_value,
            cash=portfolio.cash,
            positions=[
                PositionSummary(
                    ticker=p.ticker,
                    shares=p.shares,
                    buy_price=p.buy_price,
                    current_price=p.current_price,
                    stop_loss=p.stop_loss,
                    unrealized_pnl=p.unrealized_pnl,
                    unrealized_pnl_percent=p.unrealized_pnl_percent,
                )
                for p in portfolio.positions
            ],
        )
