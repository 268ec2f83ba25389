from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from klinewindow.candles.store import WindowStore
from klinewindow.config import BACKFILL_LIMIT, RECONNECT_DELAY_MS
from klinewindow.errors import NetworkError
from klinewindow.jobs.backfill import fetch_history
from klinewindow.jobs.stream_client import StreamClient
from klinewindow.models.events import (
    BackfillFailed,
    BackfillLoaded,
    Event,
    ReconnectDue,
    StreamClosed,
    StreamUpdate,
)
from klinewindow.models.market import ActiveSelection, Candle, WindowKey
from klinewindow.providers.base import MarketDataProvider

log = logging.getLogger("selection_controller")

ChangeListener = Callable[[WindowKey, List[Candle]], None]


class SelectionController:
    """
    Owns the active (instrument, interval) key and the single event queue
    that every store mutation goes through.

    Producers (stream task, backfill tasks, reconnect timer) only post events.
    run() drains the queue in arrival order and is the only place the store
    is written. Each event carries the generation it was created under; an
    event whose generation is not the current one is dropped, which is how a
    closed stream, a late backfill or an old reconnect timer is neutralised.
    """

    def __init__(
        self,
        store: WindowStore,
        provider: MarketDataProvider,
        reconnect_delay: float = RECONNECT_DELAY_MS / 1000.0,
        backfill_limit: int = BACKFILL_LIMIT,
    ) -> None:
        self.store = store
        self.provider = provider
        self.reconnect_delay = reconnect_delay
        self.backfill_limit = backfill_limit

        self.queue: asyncio.Queue = asyncio.Queue()
        self.stream = StreamClient(provider, self.post)

        self._active = ActiveSelection()
        self._listeners: List[ChangeListener] = []
        self._backfills: Set[asyncio.Task] = set()
        self._reconnect: Optional[asyncio.TimerHandle] = None
        self._runner: Optional[asyncio.Task] = None

        self._handlers: Dict[type, Callable] = {
            StreamUpdate: self._on_stream_update,
            StreamClosed: self._on_stream_closed,
            ReconnectDue: self._on_reconnect_due,
            BackfillLoaded: self._on_backfill_loaded,
            BackfillFailed: self._on_backfill_failed,
        }

    # -------------------------
    # Selection
    # -------------------------
    @property
    def active(self) -> ActiveSelection:
        return self._active

    def is_current(self, key: WindowKey, generation: int) -> bool:
        return self._active.generation == generation and self._active.key == key

    def active_window(self) -> List[Candle]:
        if self._active.key is None:
            return []
        return self.store.get_window(self._active.key)

    def select(self, key: WindowKey) -> bool:
        """
        Make `key` the active selection.

        Returns False when `key` is already active. Otherwise the old stream is
        closed and the generation bumped before anything new is opened, then
        backfill (in the background) and a fresh subscription are started.
        """
        if key == self._active.key:
            return False

        # Raises outside the event loop, before any state has changed.
        asyncio.get_running_loop()

        generation = self._active.generation + 1
        self._active = ActiveSelection(key=key, generation=generation)

        self.stream.close()
        self._cancel_reconnect()

        log.info("Selected key=%s generation=%d", key, generation)
        self._launch_backfill(key, generation)
        self.stream.subscribe(key, generation)
        return True

    def refresh(self) -> bool:
        """Re-run backfill for the active key (user-triggered retry)."""
        key = self._active.key
        if key is None:
            return False
        log.info("Refreshing key=%s generation=%d", key, self._active.generation)
        self._launch_backfill(key, self._active.generation)
        return True

    # -------------------------
    # Change notification
    # -------------------------
    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, key: WindowKey) -> None:
        if key != self._active.key:
            return
        window = self.store.get_window(key)
        for listener in list(self._listeners):
            try:
                listener(key, window)
            except Exception:
                log.exception("Window listener failed key=%s", key)

    # -------------------------
    # Event queue
    # -------------------------
    def post(self, event: Event) -> None:
        self.queue.put_nowait(event)

    async def run(self) -> None:
        """Drain the event queue forever."""
        while True:
            event = await self.queue.get()
            try:
                self.dispatch(event)
            finally:
                self.queue.task_done()

    def process_pending(self) -> int:
        """Dispatch everything queued right now; returns how many events ran."""
        count = 0
        while True:
            try:
                event = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            try:
                self.dispatch(event)
            finally:
                self.queue.task_done()
            count += 1

    def dispatch(self, event: Event) -> None:
        if not self.is_current(event.key, event.generation):
            log.debug(
                "Dropping stale %s key=%s generation=%d (active generation=%d)",
                type(event).__name__,
                event.key,
                event.generation,
                self._active.generation,
            )
            return

        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unknown event type {type(event).__name__}")
        handler(event)

    # -------------------------
    # Handlers
    # -------------------------
    def _on_stream_update(self, event: StreamUpdate) -> None:
        self.store.merge(event.key, event.update)
        self._notify(event.key)

    def _on_stream_closed(self, event: StreamClosed) -> None:
        log.warning(
            "Stream closed key=%s generation=%d error=%s; reconnecting in %.3fs",
            event.key,
            event.generation,
            event.error,
            self.reconnect_delay,
        )
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect = loop.call_later(
            self.reconnect_delay,
            self.post,
            ReconnectDue(key=event.key, generation=event.generation),
        )

    def _on_reconnect_due(self, event: ReconnectDue) -> None:
        self._reconnect = None
        log.info("Reconnecting key=%s generation=%d", event.key, event.generation)
        self.stream.subscribe(event.key, event.generation)

    def _on_backfill_loaded(self, event: BackfillLoaded) -> None:
        self.store.replace(event.key, event.candles)
        log.info("Backfill applied key=%s candles=%d", event.key, len(event.candles))
        self._notify(event.key)

    def _on_backfill_failed(self, event: BackfillFailed) -> None:
        log.error("Backfill failed key=%s error=%s", event.key, event.error)

    # -------------------------
    # Background work
    # -------------------------
    def _launch_backfill(self, key: WindowKey, generation: int) -> None:
        task = asyncio.create_task(
            self._backfill(key, generation),
            name=f"backfill-{key}-g{generation}",
        )
        self._backfills.add(task)
        task.add_done_callback(self._backfills.discard)

    async def _backfill(self, key: WindowKey, generation: int) -> None:
        try:
            candles = await fetch_history(self.provider, key, self.backfill_limit)
        except NetworkError as e:
            self.post(BackfillFailed(key=key, generation=generation, error=e))
            return
        except Exception as e:
            # Anything else the provider raises is reported as a failed fetch too.
            error = NetworkError(f"backfill for {key} failed: {e!r}")
            error.__cause__ = e
            self.post(BackfillFailed(key=key, generation=generation, error=error))
            return
        self.post(BackfillLoaded(key=key, generation=generation, candles=tuple(candles)))

    def _cancel_reconnect(self) -> None:
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None

    # -------------------------
    # Lifecycle
    # -------------------------
    def start(self) -> asyncio.Task:
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self.run(), name="selection-controller")
        return self._runner

    async def stop(self) -> None:
        """Close the stream, cancel timers and pending work, stop draining."""
        # Bump the generation so anything still in flight is stale, and forget
        # the key so a later select() of the same key subscribes again.
        self._active = ActiveSelection(key=None, generation=self._active.generation + 1)

        stream_task = self.stream.close()
        self._cancel_reconnect()

        tasks = list(self._backfills)
        if stream_task is not None:
            tasks.append(stream_task)
        if self._runner is not None:
            tasks.append(self._runner)
            self._runner = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info("Selection controller stopped")
