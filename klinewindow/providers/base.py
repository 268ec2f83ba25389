from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, AsyncIterable, List

from klinewindow.models.market import WindowKey


class MarketDataProvider(ABC):
    """
    Provider contract (interface).

    Any provider must implement:
    - fetch_klines(): most recent bars via REST, raw rows oldest first
    - open_stream(): live kline subscription for one key; an async context
      manager yielding an async-iterable connection of raw messages
    - aclose(): release HTTP resources
    """

    @abstractmethod
    async def fetch_klines(self, key: WindowKey, limit: int) -> List[Any]:
        raise NotImplementedError

    @abstractmethod
    def open_stream(self, key: WindowKey) -> AsyncContextManager[AsyncIterable[Any]]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
