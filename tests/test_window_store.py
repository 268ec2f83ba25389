import unittest

from klinewindow.candles.store import WindowStore
from klinewindow.config import WINDOW_CAPACITY
from klinewindow.models.market import Candle, KlineUpdate, WindowKey

KEY = WindowKey("ethusdt", "1m")
OTHER = WindowKey("bnbusdt", "1m")


def upd(t, o=1.0, h=2.0, l=0.5, c=1.5):
    return KlineUpdate(timestamp=t, open=o, high=h, low=l, close=c)


class TestWindowStore(unittest.TestCase):
    def test_first_merge_creates_window(self):
        store = WindowStore()
        self.assertFalse(store.has_window(KEY))

        store.merge(KEY, upd(1000))

        self.assertTrue(store.has_window(KEY))
        self.assertEqual(store.get_window(KEY), [Candle(1000, 1.0, 2.0, 0.5, 1.5)])
        self.assertIsNotNone(store.get_last_updated(KEY))

    def test_same_timestamp_merges_in_place(self):
        store = WindowStore()
        store.merge(KEY, upd(1000, o=10.0, h=12.0, l=9.0, c=11.0))
        store.merge(KEY, upd(1000, o=10.5, h=11.5, l=8.0, c=9.5))

        window = store.get_window(KEY)
        self.assertEqual(len(window), 1)
        candle = window[0]
        self.assertEqual(candle.high, 12.0)
        self.assertEqual(candle.low, 8.0)
        self.assertEqual(candle.close, 9.5)
        # open follows the latest partial update
        self.assertEqual(candle.open, 10.5)

    def test_new_timestamp_appends(self):
        store = WindowStore()
        store.merge(KEY, upd(1000))
        store.merge(KEY, upd(2000))

        self.assertEqual([c.timestamp for c in store.get_window(KEY)], [1000, 2000])

    def test_fifo_eviction_order(self):
        store = WindowStore(capacity=3)
        for t in [1, 2, 3, 4]:
            store.merge(KEY, upd(t))

        self.assertEqual([c.timestamp for c in store.get_window(KEY)], [2, 3, 4])

    def test_append_at_capacity_keeps_length(self):
        store = WindowStore(capacity=3)
        for t in [1, 2, 3]:
            store.merge(KEY, upd(t))
        store.merge(KEY, upd(3, c=9.0))
        self.assertEqual(len(store.get_window(KEY)), 3)

        store.merge(KEY, upd(4))
        self.assertEqual(len(store.get_window(KEY)), 3)
        self.assertEqual(store.get_window(KEY)[0].timestamp, 2)

    def test_window_never_exceeds_capacity(self):
        store = WindowStore()
        for i in range(350):
            # mix of repeats and new buckets, including going backwards
            t = (i // 2) * 60_000 if i % 7 else 5
            store.merge(KEY, upd(t))
            self.assertLessEqual(len(store.get_window(KEY)), WINDOW_CAPACITY)

    def test_out_of_order_timestamp_appended_at_tail(self):
        store = WindowStore()
        store.merge(KEY, upd(3000))
        store.merge(KEY, upd(1000))

        self.assertEqual([c.timestamp for c in store.get_window(KEY)], [3000, 1000])

    def test_replace_discards_merged_candles(self):
        store = WindowStore()
        for t in range(5):
            store.merge(KEY, upd(t))

        fetched = [Candle(100, 1, 2, 0, 1), Candle(200, 1, 3, 1, 2)]
        store.replace(KEY, fetched)

        self.assertEqual(store.get_window(KEY), fetched)

    def test_replace_keeps_newest_up_to_capacity(self):
        store = WindowStore(capacity=2)
        store.replace(KEY, [Candle(t, 1, 1, 1, 1) for t in (1, 2, 3)])

        self.assertEqual([c.timestamp for c in store.get_window(KEY)], [2, 3])

    def test_windows_are_independent_per_key(self):
        store = WindowStore()
        store.merge(KEY, upd(1000))
        store.merge(OTHER, upd(5000))

        self.assertEqual([c.timestamp for c in store.get_window(KEY)], [1000])
        self.assertEqual([c.timestamp for c in store.get_window(OTHER)], [5000])
        self.assertCountEqual(store.keys(), [KEY, OTHER])

    def test_is_fresh(self):
        store = WindowStore()
        self.assertFalse(store.is_fresh(KEY, 60))

        store.merge(KEY, upd(1000))
        self.assertTrue(store.is_fresh(KEY, 60))

    def test_clear(self):
        store = WindowStore()
        store.merge(KEY, upd(1000))
        store.clear()

        self.assertEqual(store.get_window(KEY), [])
        self.assertIsNone(store.get_last_updated(KEY))

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            WindowStore(capacity=0)


class TestWindowKey(unittest.TestCase):
    def test_instrument_is_lower_cased(self):
        self.assertEqual(WindowKey("ETHUSDT", "1m"), KEY)

    def test_unknown_values_rejected(self):
        with self.assertRaises(ValueError):
            WindowKey("btcusdt", "1m")
        with self.assertRaises(ValueError):
            WindowKey("ethusdt", "1h")


if __name__ == "__main__":
    unittest.main()
