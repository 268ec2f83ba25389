from __future__ import annotations

import logging
from typing import Any, List

import httpx

from klinewindow.config import BACKFILL_LIMIT
from klinewindow.errors import MalformedMessageError, NetworkError
from klinewindow.models.market import Candle, WindowKey
from klinewindow.providers.base import MarketDataProvider

log = logging.getLogger("backfill")


def parse_kline_row(row: Any) -> Candle:
    """
    Convert one REST kline row into a Candle.

    Only the first five fields are used:
      [openTime, open, high, low, close, ...]
    Prices come as strings from Binance; numbers are accepted too.
    """
    if not isinstance(row, (list, tuple)) or len(row) < 5:
        raise MalformedMessageError(f"kline row needs 5 fields, got {row!r}")

    try:
        return Candle(
            timestamp=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
        )
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"bad kline row {row!r}: {e}") from e


async def fetch_history(
    provider: MarketDataProvider,
    key: WindowKey,
    limit: int = BACKFILL_LIMIT,
) -> List[Candle]:
    """
    One-shot fetch of the most recent `limit` bars for `key`.

    Raises NetworkError if the request fails or the payload is not a list of
    rows. Individual rows that cannot be parsed are skipped.
    """
    try:
        rows = await provider.fetch_klines(key, limit)
    except httpx.HTTPStatusError as e:
        raise NetworkError(
            f"backfill for {key} failed with HTTP {e.response.status_code}",
            status_code=e.response.status_code,
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        # ValueError covers a body that is not valid JSON.
        raise NetworkError(f"backfill for {key} failed: {e!r}") from e

    if not isinstance(rows, list):
        raise NetworkError(f"unexpected backfill payload for {key}: {type(rows).__name__}")

    candles: List[Candle] = []
    for row in rows:
        try:
            candles.append(parse_kline_row(row))
        except MalformedMessageError as e:
            log.warning("Skipping kline row key=%s error=%s", key, e.message)

    log.info("Backfill fetched key=%s rows=%d candles=%d", key, len(rows), len(candles))
    return candles[-limit:] if limit else candles
