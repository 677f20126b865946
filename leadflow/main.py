import asyncio
import os
from datetime import datetime, timezone

from fastapi import FastAPI

from leadflow.config import APP_NAME, settings
from leadflow.database import SessionLocal, init_db
from leadflow.dependencies import get_engine, get_queue_processor
from leadflow.logging_config import get_logger, setup_logging
from leadflow.routers import internal, webhook
from leadflow.services.alert_service import alert_error

setup_logging(settings.log_level)

app = FastAPI(
    title="Leadflow API",
    description="WhatsApp lead qualification bot for housing-credit brokers",
    version="0.1.0",
)

app.include_router(webhook.router)
app.include_router(internal.router)

worker_logger = get_logger("delayed_queue_worker")
_queue_worker_task: asyncio.Task | None = None


def _is_queue_worker_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.delayed_queue_enabled


def _drain_once() -> int:
    db = SessionLocal()
    try:
        return get_queue_processor().drain_due(db)
    finally:
        db.close()


async def _queue_worker_loop() -> None:
    while True:
        try:
            await asyncio.sleep(max(settings.delayed_queue_poll_seconds, 0.1))
            processed = await asyncio.to_thread(_drain_once)
            evicted = get_engine().sessions.evict_idle()
            if processed or evicted:
                worker_logger.info(
                    "Delayed queue worker pass",
                    extra={"context": {"processed": processed, "evicted_sessions": evicted}},
                )
        except asyncio.CancelledError:
            break
        except Exception as exc:
            worker_logger.error(
                "Delayed queue worker loop failed",
                extra={"context": {"error": str(exc)}},
            )
            alert_error("Delayed queue worker loop failed", {"error": str(exc)})


@app.on_event("startup")
async def start_queue_worker() -> None:
    global _queue_worker_task
    init_db()
    if not _is_queue_worker_enabled():
        return
    if _queue_worker_task is None or _queue_worker_task.done():
        _queue_worker_task = asyncio.create_task(_queue_worker_loop())
        worker_logger.info("Delayed queue worker started")


@app.on_event("shutdown")
async def stop_queue_worker() -> None:
    global _queue_worker_task
    get_engine().buffer.cancel_all()
    if _queue_worker_task is None:
        return
    _queue_worker_task.cancel()
    try:
        await _queue_worker_task
    except asyncio.CancelledError:
        pass
    _queue_worker_task = None


@app.get("/api/health")
async def health():
    return {"ok": True, "app": APP_NAME, "time": datetime.now(timezone.utc).isoformat()}
