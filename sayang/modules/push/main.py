"""Push module - FastAPI service with the background tick scheduler."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from modules.push.catalog import FILLER_MESSAGES, SCHEDULED_LOCAL, WELCOME_MESSAGES
from modules.push.dispatcher import Dispatcher
from modules.push.registry import JsonFileStore, SubscriberRegistry, dump_destinations
from modules.push.schedule import FillerPool, build_schedule_table
from modules.push.sender import WebPushSender
from modules.push.worker import TickScheduler, next_message_info
from shared.auth import require_service_auth
from shared.config import Settings, get_settings, parse_list
from shared.schemas.common import HealthResponse, SuccessResponse
from shared.schemas.push import Destination, UnsubscribeRequest

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Push Module", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_list(get_settings().cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

registry: SubscriberRegistry | None = None
scheduler: TickScheduler | None = None
_worker_task: asyncio.Task | None = None


def build_scheduler(
    settings: Settings,
    registry: SubscriberRegistry,
    sender: WebPushSender,
    rng: random.Random | None = None,
) -> TickScheduler:
    """Wire table, pools and dispatcher from settings."""
    table = build_schedule_table(SCHEDULED_LOCAL, settings.schedule_utc_offset_hours)
    dispatcher = Dispatcher(
        sender,
        registry,
        max_attempts=settings.push_max_attempts,
        retry_delay=settings.push_retry_delay_seconds,
        auth_failure_limit=settings.auth_failure_limit,
    )
    return TickScheduler(
        registry,
        dispatcher,
        table,
        FillerPool(FILLER_MESSAGES),
        FillerPool(WELCOME_MESSAGES),
        title=settings.notification_title,
        configured=sender.configured,
        rng=rng,
    )


@app.on_event("startup")
async def startup():
    global registry, scheduler, _worker_task
    settings = get_settings()

    registry = SubscriberRegistry(
        JsonFileStore(settings.subscriptions_file, settings.subscriptions_data)
    )
    count = await registry.load()

    sender = WebPushSender(
        settings.vapid_private_key,
        settings.vapid_subject,
        timeout=settings.push_timeout_seconds,
        vapid_public_key=settings.vapid_public_key,
    )
    if not sender.configured:
        logger.warning(
            "vapid_keys_missing",
            hint="Set VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY; ticks are skipped until then",
        )

    scheduler = build_scheduler(settings, registry, sender)
    _worker_task = asyncio.create_task(scheduler.run())
    logger.info("push_module_ready", subscriptions=count, configured=sender.configured)


@app.on_event("shutdown")
async def shutdown():
    global _worker_task
    if scheduler is not None:
        scheduler.stop()
    if _worker_task and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass
    if scheduler is not None:
        await scheduler.drain()
    logger.info("push_module_shutdown")


def _ready() -> tuple[SubscriberRegistry, TickScheduler]:
    if registry is None or scheduler is None:
        raise HTTPException(status_code=503, detail="Module not ready")
    return registry, scheduler


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        vapid_configured=get_settings().vapid_configured,
        subscription_count=len(registry) if registry is not None else 0,
    )


@app.get("/vapidPublicKey")
async def vapid_public_key():
    return {"publicKey": get_settings().vapid_public_key}


@app.post("/subscribe")
async def subscribe(destination: Destination):
    reg, _ = _ready()
    created = await reg.add(destination)
    return {"success": True, "created": created, "total": len(reg)}


@app.post("/unsubscribe", response_model=SuccessResponse)
async def unsubscribe(body: UnsubscribeRequest):
    reg, _ = _ready()
    if await reg.remove(body.endpoint):
        return SuccessResponse(success=True)
    logger.info("unsubscribe_not_found", endpoint=body.endpoint[:60])
    return SuccessResponse(success=False, error="not found")


@app.post("/sendWelcome")
async def send_welcome(destination: Destination):
    """Welcome a freshly subscribed browser and tell it when the next message lands."""
    _, sched = _ready()
    task = sched.trigger_welcome(destination)
    info = next_message_info(sched.clock(), sched.table, destination)
    logger.info("welcome_next_message", **info)
    return {"success": True, "welcomeSent": task is not None, "nextMessage": info}


@app.post("/sendNow")
async def send_now(_=Depends(require_service_auth)):
    """Out-of-band filler to every subscriber (health checks, manual testing)."""
    _, sched = _ready()
    recipients = sched.trigger_immediate_filler()
    return {"sent": recipients > 0, "recipients": recipients}


@app.get("/scheduled")
async def scheduled():
    """UTC-keyed fixed messages (used by the client and for debugging)."""
    _, sched = _ready()
    return {"success": True, "scheduledMessages": sched.schedule_snapshot()}


@app.get("/subscriptions")
async def subscriptions(_=Depends(require_service_auth)):
    reg, _ = _ready()
    return {
        "count": len(reg),
        "subscriptions": [
            {
                "endpoint": d.short_endpoint,
                "timezone": d.timezone,
                "utc_offset_minutes": d.utc_offset_minutes,
                "failure_count": d.failure_count,
            }
            for d in reg.snapshot()
        ],
    }


@app.get("/debug/state")
async def debug_state(_=Depends(require_service_auth)):
    _, sched = _ready()
    return sched.state_snapshot()


@app.get("/debug/send-scheduled/{hour}")
async def debug_send_scheduled(hour: int, _=Depends(require_service_auth)):
    """Force the fixed message keyed at UTC ``hour`` to every subscriber."""
    _, sched = _ready()
    try:
        recipients = sched.trigger_fixed(hour)
    except KeyError:
        raise HTTPException(status_code=400, detail="No scheduled message for that hour")
    return {"success": True, "triggered": recipients > 0, "hour": hour, "recipients": recipients}


@app.get("/debug/export-subscriptions")
async def debug_export_subscriptions(_=Depends(require_service_auth)):
    """Current subscribers in the form SUBSCRIPTIONS_DATA accepts."""
    reg, _ = _ready()
    data = dump_destinations(reg.snapshot())
    return {
        "count": len(reg),
        "subscriptionsData": data,
        "envVarFormat": f"SUBSCRIPTIONS_DATA='{data}'",
    }
