from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from klinewindow.models.market import Candle, KlineUpdate, WindowKey


@dataclass(frozen=True)
class StreamUpdate:
    key: WindowKey
    generation: int
    update: KlineUpdate


@dataclass(frozen=True)
class StreamClosed:
    key: WindowKey
    generation: int
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ReconnectDue:
    key: WindowKey
    generation: int


@dataclass(frozen=True)
class BackfillLoaded:
    key: WindowKey
    generation: int
    candles: Tuple[Candle, ...]


@dataclass(frozen=True)
class BackfillFailed:
    key: WindowKey
    generation: int
    error: BaseException


Event = Union[StreamUpdate, StreamClosed, ReconnectDue, BackfillLoaded, BackfillFailed]
