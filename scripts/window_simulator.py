from __future__ import annotations

import random

from klinewindow.candles.store import WindowStore
from klinewindow.models.market import KlineUpdate, WindowKey


def run(instrument: str = "ethusdt", interval: str = "1m", buckets: int = 150, updates_per_bucket: int = 5) -> None:
    """
    Feeds fake partial bars into a WindowStore and prints what it holds.

    - Each bucket gets several partial updates with the same timestamp,
      like the live stream sends while a bar is forming.
    - Price does a random walk.
    - More buckets than the window capacity are sent, so the oldest
      candles get evicted.
    """
    store = WindowStore()
    key = WindowKey(instrument, interval)

    ts = 1_700_000_040_000
    price = 100.0

    print(f"Simulating {buckets} buckets for {key}...\n")

    for _ in range(buckets):
        o = price
        h = l = price
        for _ in range(updates_per_bucket):
            price += random.uniform(-0.2, 0.2)
            h = max(h, price)
            l = min(l, price)
            store.merge(key, KlineUpdate(timestamp=ts, open=round(o, 2), high=round(h, 2), low=round(l, 2), close=round(price, 2)))
        ts += 60_000

    window = store.get_window(key)
    for candle in window[-5:]:
        print(f"{candle.timestamp} O={candle.open} H={candle.high} L={candle.low} C={candle.close}")

    print("\nDone.")
    print(f"Candles held: {len(window)} (capacity {store.capacity})")
    print(f"Oldest bucket: {window[0].timestamp}")


if __name__ == "__main__":
    run()
