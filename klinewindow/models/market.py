from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from klinewindow.config import INSTRUMENTS, INTERVALS


@dataclass(frozen=True)
class WindowKey:
    """
    WindowKey = which window we are talking about.

    instrument: stream symbol in lower case (e.g., ethusdt)
    interval: bucket granularity (e.g., 1m)
    """
    instrument: str
    interval: str

    def __post_init__(self) -> None:
        instrument = str(self.instrument).strip().lower()
        if instrument not in INSTRUMENTS:
            raise ValueError(f"Unknown instrument {self.instrument!r}. Expected one of {INSTRUMENTS}")
        if self.interval not in INTERVALS:
            raise ValueError(f"Unknown interval {self.interval!r}. Expected one of {INTERVALS}")
        object.__setattr__(self, "instrument", instrument)

    def __str__(self) -> str:
        return f"{self.instrument}@{self.interval}"


@dataclass(frozen=True)
class KlineUpdate:
    """
    KlineUpdate = one partial bar pushed by the stream.

    timestamp: bucket start (epoch millis)
    open/high/low/close: prices seen so far for that bucket
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float


@dataclass
class Candle:
    """
    Candle (OHLC) for one time bucket of a window.

    timestamp: the start of the bucket (epoch millis)
    open/high/low/close: prices for the bucket; the last candle of a window
    may still be in progress and gets updated in place.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float

    @classmethod
    def from_update(cls, update: KlineUpdate) -> "Candle":
        return cls(
            timestamp=update.timestamp,
            open=update.open,
            high=update.high,
            low=update.low,
            close=update.close,
        )

    def apply(self, update: KlineUpdate) -> None:
        """Fold a partial update for the same bucket into this candle."""
        self.open = update.open
        self.high = max(self.high, update.high)
        self.low = min(self.low, update.low)
        self.close = update.close


@dataclass(frozen=True)
class ActiveSelection:
    """The single active key plus the generation it was selected under."""
    key: Optional[WindowKey] = None
    generation: int = 0
