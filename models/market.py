"""Market data models."""

from typing import Optional

from pydantic import BaseModel, Field


class Quote(BaseModel):
    """Latest bar for a ticker as supplied by the market data provider."""

    ticker: str
    price: float = Field(gt=0)  # close, or adjusted close when close is missing
    low: Optional[float] = None  # low of day, used for stop-loss triggers
