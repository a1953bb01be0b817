"""Execution models: TradeOutcome (brokerage fill) and TradeRecord (ledger entry)."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TradeOutcome(BaseModel):
    """Result of sending one decision to the brokerage.

    Only outcomes with ``success=True`` reach the trade applier; failed ones
    are counted and reported by the ledger service.
    """

    ticker: str
    action: Literal["BUY", "SELL"]
    shares: int = Field(gt=0)
    filled_price: Optional[float] = Field(None, alias="filledPrice", gt=0)
    stop_loss: Optional[float] = Field(None, alias="stopLoss")
    success: bool
    reasoning: str = ""
    order_id: Optional[str] = Field(None, alias="orderId")
    error: Optional[str] = None
    simulated: bool = False

    model_config = {"populate_by_name": True}


class TradeRecord(BaseModel):
    """Append-only ledger entry, immutable once written.

    ``pnl`` is zero for BUY and the realized gain/loss for SELL.
    """

    id: str
    date: str  # ISO 8601
    ticker: str
    action: Literal["BUY", "SELL"]
    shares: int
    price: float
    ai_reasoning: str = Field("", alias="aiReasoning")
    pnl: float = 0.0

    model_config = {"populate_by_name": True, "frozen": True}
