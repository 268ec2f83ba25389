from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Dict, Iterable, List, Optional

from klinewindow.config import WINDOW_CAPACITY
from klinewindow.models.market import Candle, KlineUpdate, WindowKey


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WindowStore:
    """
    In-memory candle windows + freshness tracking.

    windows[key]      -> ordered candles for (instrument, interval), oldest first,
                         never longer than `capacity`
    last_updated[key] -> when we last merged into / replaced that window

    Windows are created lazily (first merge or first backfill) and are kept
    after the key stops being active, so switching back shows data at once.
    """
    capacity: int = WINDOW_CAPACITY
    windows: Dict[WindowKey, List[Candle]] = field(default_factory=dict)
    last_updated: Dict[WindowKey, datetime] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")

    def touch(self, key: WindowKey) -> None:
        """Mark this window as updated right now."""
        self.last_updated[key] = utcnow()

    def get_window(self, key: WindowKey) -> List[Candle]:
        return self.windows.get(key, [])

    def has_window(self, key: WindowKey) -> bool:
        return key in self.windows

    def keys(self) -> List[WindowKey]:
        return list(self.windows)

    def merge(self, key: WindowKey, update: KlineUpdate) -> Candle:
        """
        Merge one partial bar into the window for `key`.

        - same bucket as the last candle -> update it in place
          (open is taken from the update too, high/low widen, close follows)
        - anything else -> append at the tail, no sorting; if that pushes the
          window over capacity, drop the oldest candle

        Returns the candle that was touched.
        """
        window = self.windows.setdefault(key, [])
        last = window[-1] if window else None

        if last is not None and last.timestamp == update.timestamp:
            last.apply(update)
            self.touch(key)
            return last

        candle = Candle.from_update(update)
        window.append(candle)

        if len(window) > self.capacity:
            del window[0]

        self.touch(key)
        return candle

    def replace(self, key: WindowKey, candles: Iterable[Candle]) -> None:
        """
        Replace a window in one shot (backfill result).
        Whatever was merged from the stream before is discarded.
        """
        self.windows[key] = list(candles)[-self.capacity:]
        self.touch(key)

    def get_last_updated(self, key: WindowKey) -> Optional[datetime]:
        return self.last_updated.get(key)

    def is_fresh(self, key: WindowKey, max_age_seconds: int) -> bool:
        """
        Freshness check:
        - Must have some candles
        - last_updated must be within max_age_seconds
        """
        if not self.get_window(key):
            return False

        last = self.get_last_updated(key)
        if last is None:
            return False

        return (utcnow() - last) <= timedelta(seconds=max_age_seconds)

    def clear(self) -> None:
        """Drop every window (process teardown)."""
        self.windows.clear()
        self.last_updated.clear()
