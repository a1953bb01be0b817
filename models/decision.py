"""AI decision batch models: Decision, StopLossUpdate, DecisionBatch.

These are the strongly-typed values produced by ``ledger.validator`` once a
raw (JSON-decoded) batch has passed validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Action(str, Enum):
    """Trading action requested for a ticker."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class TimeInForce(str, Enum):
    DAY = "day"
    GTC = "gtc"


class Decision(BaseModel):
    """Single AI trading decision. HOLD decisions are never sent to the broker."""

    action: Action
    ticker: str
    shares: int = Field(ge=0)
    order_type: Optional[OrderType] = Field(None, alias="orderType")
    limit_price: Optional[float] = Field(None, alias="limitPrice")
    time_in_force: Optional[TimeInForce] = Field(None, alias="timeInForce")
    stop_loss: Optional[float] = Field(None, alias="stopLoss")
    reasoning: str = ""
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)

    model_config = {"populate_by_name": True}

    @property
    def is_trade(self) -> bool:
        return self.action is not Action.HOLD


class StopLossUpdate(BaseModel):
    """New stop-loss level for an existing position."""

    ticker: str
    stop_loss: float = Field(alias="stopLoss", gt=0)

    model_config = {"populate_by_name": True}


class DecisionBatch(BaseModel):
    """One AI-produced set of trading instructions plus stop-loss adjustments."""

    version: str
    generated_at: str = Field(alias="generatedAt")
    decisions: list[Decision] = Field(default_factory=list)
    stop_loss_updates: list[StopLossUpdate] = Field(default_factory=list, alias="stopLossUpdates")
    risk_assessment: Optional[Any] = Field(None, alias="riskAssessment")
    notes: Optional[Any] = None

    model_config = {"populate_by_name": True}

    @property
    def trades(self) -> list[Decision]:
        """Decisions that require an order (BUY/SELL), in batch order."""
        return [d for d in self.decisions if d.is_trade]
