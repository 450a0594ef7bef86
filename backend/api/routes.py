"""
ContainerPulse dashboard API

Read side: liveness, inventory with the last known update status.
Write side: manual update, single check, run-now.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from docker.errors import APIError, NotFound
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_services
from config.settings import AppConfig
from services import UpdaterServices
from updates.types import UpdateAction, UpdateResult

logger = logging.getLogger(__name__)
router = APIRouter(tags=["containers"])


def _health_payload(request: Request) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    started_at = getattr(request.app.state, 'started_at', None) or now
    return {
        "status": "healthy",
        "service": "containerpulse",
        "timestamp": now.isoformat(),
        "uptime": int((now - started_at).total_seconds()),
        "version": AppConfig.VERSION,
    }


@router.get("/health")
async def health_check(request: Request):
    """Liveness for Docker health checks and the release controller"""
    return _health_payload(request)


@router.get("/api/health")
async def api_health_check(request: Request):
    return _health_payload(request)


@router.get("/api/containers")
async def list_containers(services: UpdaterServices = Depends(get_services)):
    """Inventory plus the last update status of each container"""
    snapshot = services.current_inventory()
    statuses = services.loop.statuses

    containers = []
    for record in snapshot:
        entry = record.to_inventory()
        status = statuses.get(record.name)
        entry['updateStatus'] = status.to_dict() if status else None
        entry['updating'] = services.executor.is_container_updating(record.name)
        containers.append(entry)

    last_cycle = services.loop.last_cycle_at
    return {
        "containers": containers,
        "count": len(containers),
        "lastCycle": last_cycle.isoformat() if last_cycle else None,
        "cycleRunning": services.loop.cycle_running,
    }


def _is_known(services: UpdaterServices, name: str) -> bool:
    if services.current_inventory().get(name) is not None:
        return True
    return services.identity.resolved and services.identity.name == name.lstrip('/')


async def trigger_update(services: UpdaterServices, name: str) -> UpdateResult:
    """Shared by the manual update route and the webhook receiver"""
    try:
        result = await services.executor.update_by_name(name)
    except NotFound:
        raise HTTPException(status_code=404, detail=f"Container not found: {name}")
    except APIError as e:
        logger.error(f"Update of {name} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if result.status is not None:
        services.loop.statuses[result.container_name] = result.status
    return result


@router.post("/api/containers/{name}/update")
async def update_container(name: str, services: UpdaterServices = Depends(get_services)):
    if not _is_known(services, name):
        raise HTTPException(status_code=404, detail=f"Container not in inventory: {name}")
    logger.info(f"Manual update requested for {name}")
    result = await trigger_update(services, name)
    if result.action == UpdateAction.FAILED:
        return JSONResponse(status_code=500, content=result.to_dict())
    return result.to_dict()


@router.post("/api/containers/{container_id}/check-update")
async def check_container_update(container_id: str, services: UpdaterServices = Depends(get_services)):
    snapshot = services.current_inventory()
    status = await services.checker.check_one(container_id, snapshot)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Container not in inventory: {container_id}")
    services.loop.statuses[status.container_name] = status
    return status.to_dict()


@router.get("/api/containers/{container_id}/inspect")
async def inspect_container(container_id: str, services: UpdaterServices = Depends(get_services)):
    try:
        return await services.inspector.inspect(container_id)
    except NotFound:
        raise HTTPException(status_code=404, detail=f"Container not found: {container_id}")
    except APIError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/api/run-now")
async def run_now(services: UpdaterServices = Depends(get_services)):
    services.loop.wake()
    return {"status": "scheduled", "cycleRunning": services.loop.cycle_running}
