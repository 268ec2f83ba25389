# klinewindow/config.py
import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Loads variables from a local .env file into environment variables (dev only).
load_dotenv()

# Fixed enumerations and engine constants (not runtime-tunable).
INSTRUMENTS = ("ethusdt", "bnbusdt", "dotusdt")
INTERVALS = ("1m", "3m", "5m")

WINDOW_CAPACITY = 100
BACKFILL_LIMIT = 100
RECONNECT_DELAY_MS = 1000


@dataclass(frozen=True)
class Settings:
    # App config
    app_env: str
    log_level: str
    provider: str
    default_instrument: str
    default_interval: str

    # Provider config (Binance)
    binance_rest_url: str
    binance_ws_url: str
    http_timeout_seconds: float


def get_settings() -> Settings:
    """
    Reads env vars and returns a Settings object.
    """
    instrument = os.getenv("DEFAULT_INSTRUMENT", INSTRUMENTS[0]).strip().lower()
    if instrument not in INSTRUMENTS:
        raise RuntimeError(f"DEFAULT_INSTRUMENT={instrument!r} is not one of {INSTRUMENTS}")

    interval = os.getenv("DEFAULT_INTERVAL", INTERVALS[0]).strip()
    if interval not in INTERVALS:
        raise RuntimeError(f"DEFAULT_INTERVAL={interval!r} is not one of {INTERVALS}")

    return Settings(
        app_env=os.getenv("APP_ENV", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        provider=os.getenv("PROVIDER", "BINANCE"),
        default_instrument=instrument,
        default_interval=interval,
        binance_rest_url=os.getenv("BINANCE_REST_URL", "https://api.binance.com"),
        binance_ws_url=os.getenv("BINANCE_WS_URL", "wss://stream.binance.com:9443/ws"),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
    )
