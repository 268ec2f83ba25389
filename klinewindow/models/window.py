from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from klinewindow.models.market import Candle, WindowKey


class CandleOut(BaseModel):
    timestamp: int
    open: float
    high: float
    low: float
    close: float

    @classmethod
    def from_candle(cls, candle: Candle) -> "CandleOut":
        return cls(
            timestamp=candle.timestamp,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
        )


class WindowOut(BaseModel):
    """
    One window as handed to the rendering side.

    generation is only meaningful for the active window; it lets a client
    ignore frames that belong to a selection it already moved away from.
    """

    instrument: Optional[str] = None
    interval: Optional[str] = None
    generation: int = 0
    candles: List[CandleOut] = []

    @classmethod
    def build(cls, key: Optional[WindowKey], generation: int, candles: List[Candle]) -> "WindowOut":
        return cls(
            instrument=key.instrument if key else None,
            interval=key.interval if key else None,
            generation=generation,
            candles=[CandleOut.from_candle(c) for c in candles],
        )


class SelectRequest(BaseModel):
    instrument: str
    interval: str


class SelectionOut(BaseModel):
    instrument: Optional[str] = None
    interval: Optional[str] = None
    generation: int = 0
    changed: bool = False


class WindowStatus(BaseModel):
    instrument: str
    interval: str
    count: int
    last_updated: Optional[datetime] = None
    fresh: bool = False
