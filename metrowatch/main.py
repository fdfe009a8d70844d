from contextlib import asynccontextmanager

import dotenv
from fastapi import FastAPI

from metrowatch.config import logger, settings
from metrowatch.core.database import MongoReportsBackend
from metrowatch.core.geocoder import NominatimGeocoder
from metrowatch.core.live_view import LiveReportView
from metrowatch.routers import reports, search, websocket
from metrowatch.websockets.manager import MapClientManager

dotenv.load_dotenv()


def default_live_view(map_clients: MapClientManager) -> LiveReportView:
    backend = MongoReportsBackend()
    geocoder = NominatimGeocoder(
        settings.GEOCODER_URL,
        settings.GEOCODER_USER_AGENT,
        timeout=settings.GEOCODER_TIMEOUT,
    )
    return LiveReportView(backend, geocoder, map_clients, settings)


def create_app(live_view_factory=default_live_view) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        map_clients = MapClientManager()
        live_view = live_view_factory(map_clients)
        app.state.map_clients = map_clients
        app.state.live_view = live_view
        await live_view.start()
        try:
            yield
        finally:
            await live_view.close()
            map_clients.close()
            app.state.live_view = None

    app = FastAPI(title="MetroWatch Live Reports", lifespan=lifespan)
    app.include_router(reports.router, prefix="/reports", tags=["Reports"])
    app.include_router(search.router, prefix="/search", tags=["Search"])
    app.include_router(websocket.router, prefix="/ws", tags=["ws"])

    @app.get("/")
    async def read_root():
        live_view = getattr(app.state, "live_view", None)
        return {
            "service": "MetroWatch",
            "status": live_view.status.value if live_view else "stopped",
            "reports": len(live_view.reports) if live_view else 0,
            "dropped": live_view.store.dropped if live_view else 0,
            "diagnostics": list(live_view.diagnostics) if live_view else [],
            "map": {"center": list(settings.MAP_CENTER), "zoom": settings.MAP_ZOOM},
        }

    logger.info("MetroWatch app created")
    return app


app = create_app()

# to start: uvicorn metrowatch.main:app --reload
