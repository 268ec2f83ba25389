from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

from klinewindow.errors import MalformedMessageError, StreamError
from klinewindow.models.events import Event, StreamClosed, StreamUpdate
from klinewindow.models.market import KlineUpdate, WindowKey
from klinewindow.providers.base import MarketDataProvider

log = logging.getLogger("stream_client")

_REQUIRED_FIELDS = ("t", "o", "h", "l", "c")


def parse_kline_message(raw: Any) -> KlineUpdate:
    """
    Parse one kline stream message into a KlineUpdate.

    Accepts the raw text/bytes frame or an already decoded dict. The bar lives
    under "k" (raw stream) or under "data" -> "k" (combined stream). Only
    t/o/h/l/c are read; the "x" (bar closed) flag is ignored on purpose, every
    message is treated as an update to the bar starting at "t".
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MalformedMessageError(f"not JSON: {e}") from e

    if not isinstance(raw, dict):
        raise MalformedMessageError(f"expected an object, got {type(raw).__name__}")

    if "k" not in raw and isinstance(raw.get("data"), dict):
        raw = raw["data"]

    k = raw.get("k")
    if not isinstance(k, dict):
        raise MalformedMessageError("missing kline payload 'k'")

    missing = [f for f in _REQUIRED_FIELDS if k.get(f) is None]
    if missing:
        raise MalformedMessageError(f"kline payload missing {', '.join(missing)}")

    try:
        return KlineUpdate(
            timestamp=int(k["t"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
        )
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"bad kline values: {e}") from e


class StreamClient:
    """
    Live kline subscription for the active key.

    At most one subscription is open at a time. Each subscription runs as its
    own task, stamped with the (key, generation) it was opened for, and posts
    parsed updates to the engine queue in arrival order. It never touches the
    window store itself.

    When the transport errors or closes on its own the task posts a
    StreamClosed event and ends; deciding whether to reconnect is the
    controller's job. close() cancels the task, which posts nothing.
    """

    def __init__(self, provider: MarketDataProvider, post: Callable[[Event], None]) -> None:
        self.provider = provider
        self._post = post
        self._task: Optional[asyncio.Task] = None
        self._key: Optional[WindowKey] = None
        self._generation: Optional[int] = None

    @property
    def key(self) -> Optional[WindowKey]:
        return self._key

    @property
    def generation(self) -> Optional[int]:
        return self._generation

    @property
    def is_open(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, key: WindowKey, generation: int) -> None:
        """Open a subscription for `key`, replacing any current one."""
        self.close()
        self._key = key
        self._generation = generation
        self._task = asyncio.create_task(
            self._run(key, generation),
            name=f"kline-stream-{key}-g{generation}",
        )

    def close(self) -> Optional[asyncio.Task]:
        """
        Tear down the current subscription, if any.
        Returns the cancelled task so a caller shutting down can await it.
        """
        task = self._task
        self._task = None
        if task is None or task.done():
            return None
        log.info("Closing kline stream key=%s generation=%s", self._key, self._generation)
        task.cancel()
        return task

    async def _run(self, key: WindowKey, generation: int) -> None:
        error: Optional[BaseException] = None
        try:
            async with self.provider.open_stream(key) as conn:
                log.info("Kline stream connected key=%s generation=%d", key, generation)
                async for raw in conn:
                    try:
                        update = parse_kline_message(raw)
                    except MalformedMessageError as e:
                        log.debug("Dropping message key=%s error=%s", key, e.message)
                        continue

                    self._post(StreamUpdate(key=key, generation=generation, update=update))

            error = StreamError(f"stream for {key} closed by remote")
        except asyncio.CancelledError:
            log.debug("Kline stream task cancelled key=%s generation=%d", key, generation)
            raise
        except Exception as e:
            # Transport failures of any kind end this subscription; the
            # controller decides whether to retry.
            error = StreamError(f"stream for {key} failed: {e!r}")
            error.__cause__ = e

        log.warning("Kline stream ended key=%s generation=%d error=%s", key, generation, error)
        self._post(StreamClosed(key=key, generation=generation, error=error))
