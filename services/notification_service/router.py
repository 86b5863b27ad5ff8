from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from shared.security.dependencies import verify_relay_key

from .schemas import NotificationAck, NotificationEvent

# Every delivery must carry the relay's shared key
router = APIRouter(dependencies=[Depends(verify_relay_key)])
public_router = APIRouter()


@public_router.get("/health")
async def health_check(request: Request):
    engine = getattr(request.app.state, "sync_engine", None)
    return {
        "service": "store_ops",
        "status": "running",
        "polling": bool(engine and engine.poller.running),
        "orders": len(engine.orders) if engine else 0,
    }


@router.post("/notifications", response_model=NotificationAck, status_code=status.HTTP_202_ACCEPTED)
async def receive_notification(event: NotificationEvent, request: Request, background_tasks: BackgroundTasks):
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Order sync is not running")
    # Acknowledge the relay right away; the order fetch happens after the response
    background_tasks.add_task(engine.handle_notification, event.model_dump(by_alias=True))
    return NotificationAck(accepted=True, type=event.type)
