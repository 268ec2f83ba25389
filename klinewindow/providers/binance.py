from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx
import websockets

from klinewindow.models.market import WindowKey
from klinewindow.providers.base import MarketDataProvider

log = logging.getLogger("binance_provider")

_KLINES_ENDPOINT = "/api/v3/klines"


class BinanceProvider(MarketDataProvider):
    """
    Binance spot provider (REST + WS).

    REST:
    - GET {rest_url}/api/v3/klines?symbol=ETHUSDT&interval=1m&limit=100
      returns rows [openTime, open, high, low, close, volume, closeTime, ...]

    WS:
    - {ws_url}/ethusdt@kline_1m, one raw stream per key; each message carries
      the in-progress bar under "k"
    """

    def __init__(
        self,
        rest_url: str = "https://api.binance.com",
        ws_url: str = "wss://stream.binance.com:9443/ws",
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rest_url = rest_url.rstrip("/")
        self.ws_url = ws_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.rest_url, timeout=timeout_s)

    def stream_url(self, key: WindowKey) -> str:
        return f"{self.ws_url}/{key.instrument}@kline_{key.interval}"

    # -------------------------
    # Public interface used by the app
    # -------------------------
    async def fetch_klines(self, key: WindowKey, limit: int) -> List[Any]:
        """
        Returns the raw kline rows as decoded from JSON.
        Raises httpx.HTTPError on transport failures and non-2xx responses.
        """
        params = {
            "symbol": key.instrument.upper(),
            "interval": key.interval,
            "limit": limit,
        }
        resp = await self._client.get(_KLINES_ENDPOINT, params=params)
        resp.raise_for_status()

        data = resp.json()
        log.debug("Fetched klines key=%s rows=%s", key, len(data) if isinstance(data, list) else "?")
        return data

    def open_stream(self, key: WindowKey):
        url = self.stream_url(key)
        log.info("Opening kline stream url=%s", url)
        return websockets.connect(url, ping_interval=20, ping_timeout=20)

    async def aclose(self) -> None:
        await self._client.aclose()
