#!/usr/bin/env python3
"""
ContainerPulse Backend - Container Auto-Update Engine

One process hosts the dashboard API, the webhook receiver and the scheduled
update loop. Both triggers share the same UpdateExecutor, so manual/webhook
updates and scheduled cycles are serialized per container.
"""

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api import routes as api_routes
from api import webhooks as webhook_routes
from config.settings import AppConfig, HealthCheckFilter, setup_logging
from event_bus import Event, EventType
from notifications import NotificationService
from services import build_updater

setup_logging()
logger = logging.getLogger(__name__)

# Seconds between scheduling a self-update and terminating this process
EXIT_GRACE_SECONDS = 1


def _handle_task_exception(task: asyncio.Task):
    """Handle exceptions from background tasks"""
    try:
        task.result()  # Raises exception if task failed
    except asyncio.CancelledError:
        pass  # Normal shutdown, don't log
    except Exception as e:
        logger.error(f"Background task failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Validate configuration early to fail fast on misconfiguration
    AppConfig.validate()

    logger.info(f"Starting ContainerPulse {AppConfig.VERSION}...")

    # Reapply health check filter to uvicorn access logger (must be done after uvicorn starts)
    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.addFilter(HealthCheckFilter())

    loop = asyncio.get_running_loop()

    def request_exit():
        # The restart worker removes this container after its grace period
        logger.warning("Self-update scheduled, shutting down")
        loop.call_later(EXIT_GRACE_SECONDS, os.kill, os.getpid(), signal.SIGTERM)

    services = await build_updater(request_exit=request_exit)
    app.state.services = services
    app.state.started_at = services.started_at

    notification_service = NotificationService(AppConfig.EMAIL)
    notification_service.register(services.event_bus)

    services.loop.install_signal_handler(loop)

    await services.event_bus.emit(Event(
        EventType.SYSTEM_STARTUP, 'system', 'containerpulse', 'ContainerPulse',
        data={'version': AppConfig.VERSION, 'interval': AppConfig.UPDATE_INTERVAL},
    ))

    update_task = asyncio.create_task(services.loop.run_forever())
    update_task.add_done_callback(_handle_task_exception)

    yield

    # Shutdown
    logger.info("Shutting down ContainerPulse...")
    services.loop.stop()
    if not update_task.done():
        update_task.cancel()
        try:
            await update_task
        except asyncio.CancelledError:
            logger.info("Update loop task cancelled successfully")
        except Exception as e:
            logger.error(f"Error during update loop shutdown: {e}")

    await services.event_bus.emit(Event(EventType.SYSTEM_SHUTDOWN, 'system', 'containerpulse', 'ContainerPulse'))


app = FastAPI(
    title="ContainerPulse API",
    version=AppConfig.VERSION,
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Field-level details for invalid request data"""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(x) for x in error['loc'])
        errors.append({
            "field": field,
            "message": error['msg'],
            "type": error['type']
        })

    logger.warning(f"Validation failed for {request.url.path}: {errors}")

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request data",
            "errors": errors
        }
    )


app.include_router(api_routes.router)
app.include_router(webhook_routes.router)


@app.get("/")
async def root():
    return {"message": "ContainerPulse API", "version": AppConfig.VERSION, "docs": "/docs"}
