import logging
from typing import Optional

from fastapi import FastAPI

from klinewindow.api.broadcaster import WindowBroadcaster
from klinewindow.api.routes import router as api_router
from klinewindow.candles.store import WindowStore
from klinewindow.config import Settings, get_settings
from klinewindow.controller import SelectionController
from klinewindow.models.market import WindowKey
from klinewindow.providers.base import MarketDataProvider
from klinewindow.providers.loader import get_provider

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[MarketDataProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="Kline Window API", version="0.1.0")
    app.include_router(api_router)
    app.state.settings = settings

    @app.on_event("startup")
    async def _startup():
        logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

        # One store for the process, handed to the controller by reference.
        store = WindowStore()
        controller = SelectionController(store, provider or get_provider(settings))
        broadcaster = WindowBroadcaster(controller)
        broadcaster.attach()

        app.state.store = store
        app.state.controller = controller
        app.state.broadcaster = broadcaster

        controller.start()
        controller.select(WindowKey(settings.default_instrument, settings.default_interval))

    @app.on_event("shutdown")
    async def _shutdown():
        controller: SelectionController = app.state.controller
        app.state.broadcaster.detach()
        await controller.stop()
        await controller.provider.aclose()
        app.state.store.clear()

    @app.get("/health")
    def health():
        controller: SelectionController = app.state.controller
        active = controller.active
        return {
            "status": "ok",
            "app_env": settings.app_env,
            "provider_config": settings.provider,
            "provider_loaded": controller.provider.__class__.__name__,
            "active": str(active.key) if active.key else None,
            "generation": active.generation,
        }

    return app


app = create_app()
