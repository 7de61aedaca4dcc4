from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request

from app.api.installation import router as installation_router
from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.services.backend_client import BackendClient
from app.services.installation import InstallationService
from app.services.live_data import MqttLiveDataFeed
from app.services.session_store import build_session_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)

    session_factory = None
    if settings.session_store == "database":
        from app.db.session import get_session_factory

        session_factory = get_session_factory()
    session_store = build_session_store(settings, session_factory=session_factory)
    backend_client = BackendClient(
        base_url=settings.backend_base_url,
        rpc_path=settings.backend_rpc_path,
        timeout_seconds=settings.backend_http_timeout_seconds,
    )
    live_data_feed = MqttLiveDataFeed(settings=settings)
    installation_service = InstallationService(
        settings=settings,
        session_store=session_store,
        backend_client=backend_client,
        live_data_feed=live_data_feed,
    )

    app.state.settings = settings
    app.state.backend_client = backend_client
    app.state.live_data_feed = live_data_feed
    app.state.installation_service = installation_service

    live_data_feed.start()
    try:
        yield
    finally:
        live_data_feed.stop()


app = FastAPI(title="Installation Assistant Backend", lifespan=lifespan)
app.include_router(installation_router)


@app.get("/health")
def health():
    return {"status": "ok", "service": "installation-assistant"}


@app.get("/status")
def status(request: Request):
    settings: Settings | None = getattr(request.app.state, "settings", None)
    installation_service: InstallationService | None = getattr(
        request.app.state,
        "installation_service",
        None,
    )
    live_data_feed: MqttLiveDataFeed | None = getattr(request.app.state, "live_data_feed", None)

    db_status: dict[str, object] = {"enabled": False}
    if settings is not None and settings.session_store == "database":
        from app.db.session import check_db_connection, get_session_factory

        with get_session_factory()() as db:
            db_ok, db_error = check_db_connection(db)
        db_status = {"enabled": True, "ok": db_ok}
        if db_error:
            db_status["error"] = db_error

    if installation_service is None:
        installation_status: dict[str, object] = {
            "available": False,
            "error": "Installation service not initialized",
        }
    else:
        installation_status = {"available": True, **installation_service.get_status()}

    if live_data_feed is None:
        live_data_status: dict[str, object] = {
            "connected": False,
            "error": "Live data feed not initialized",
        }
    else:
        live_data_status = live_data_feed.get_status()

    return {
        "status": "working",
        "service": "installation-assistant",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_status,
        "installation": installation_status,
        "live_data": live_data_status,
        "config": {
            "session_store": settings.session_store if settings else None,
            "live_data_timeout_seconds": settings.live_data_timeout_seconds if settings else None,
            "backend_base_url": settings.backend_base_url if settings else None,
            "mqtt_broker_host": settings.mqtt_broker_host if settings else None,
            "mqtt_broker_port": settings.mqtt_broker_port if settings else None,
        },
    }
