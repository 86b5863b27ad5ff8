import os

import structlog
from fastapi import FastAPI

from shared.config.database import AsyncSessionLocal, init_db
from shared.observability import bind_store_context
from shared.config.settings import (
    API_BASE_URL,
    POLL_INTERVAL_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    STORE_OPS_PASSWORD,
    STORE_OPS_USERNAME,
)

# IMPORTANT: import models so they register with Base
from services.auth_service import models as auth_models  # noqa: F401
from services.sync_service import models as sync_models  # noqa: F401

from services.auth_service.service import AuthSession
from services.notification_service.main import create_notification_app
from services.notification_service.service import PushTokenService
from services.sync_service.api_client import StoreApiClient
from services.sync_service.engine import SyncEngine

logger = structlog.get_logger(__name__)

api = StoreApiClient(base_url=API_BASE_URL, timeout=REQUEST_TIMEOUT_SECONDS)
auth = AuthSession(api, session_factory=AsyncSessionLocal)
api.credentials = auth

app: FastAPI = create_notification_app(observability=os.getenv("STORE_OPS_OBSERVABILITY", "1") == "1")


async def _stop_engine():
    engine = app.state.sync_engine
    if engine is not None:
        await engine.stop()


auth.add_logout_listener(_stop_engine)


@app.on_event("startup")
async def startup_event():
    await init_db()

    if not await auth.restore():
        if not (STORE_OPS_USERNAME and STORE_OPS_PASSWORD):
            logger.warning("no_session_and_no_credentials")
            return
        await auth.login(STORE_OPS_USERNAME, STORE_OPS_PASSWORD)

    bind_store_context(auth.manager.store_id, auth.manager.id)

    engine = SyncEngine(
        api,
        store_id=auth.manager.store_id,
        session_factory=AsyncSessionLocal,
        poll_interval=POLL_INTERVAL_SECONDS,
    )
    app.state.sync_engine = engine
    engine.start()

    push_token = os.getenv("STORE_OPS_PUSH_TOKEN")
    if push_token:
        await PushTokenService.register(api, auth.manager, push_token)


@app.on_event("shutdown")
async def shutdown_event():
    await _stop_engine()
    await api.aclose()
