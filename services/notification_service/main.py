from fastapi import FastAPI

from shared.observability import setup_observability
from .router import router, public_router


def create_notification_app(engine=None, observability: bool = True) -> FastAPI:
    notification_app = FastAPI(title="Store Ops Notification Receiver", version="1.0.0")
    notification_app.state.sync_engine = engine

    # --- OBSERVABILITY BOOTSTRAP ---
    if observability:
        setup_observability(notification_app, "store_ops")

    notification_app.include_router(public_router)
    notification_app.include_router(router)
    return notification_app
