"""
Webhook receiver for registry push notifications.

POST /webhook/{containerName} triggers the same path as a manual update.
The body only carries hints (repository, tag) and is parsed best-effort from
the Docker Hub, GitHub and GitLab payload shapes. Verifying the caller is
the job of a WebhookVerifier; the default one accepts and logs.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_services
from api.routes import trigger_update
from services import UpdaterServices
from updates.types import UpdateAction
from updates.update_executor import NOT_ELIGIBLE_MESSAGE

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


@dataclass(frozen=True)
class WebhookHints:
    repository: Optional[str] = None
    tag: Optional[str] = None
    source: str = 'generic'


def _name_of(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ('repo_name', 'full_name', 'path_with_namespace', 'name'):
            if isinstance(value.get(key), str):
                return value[key]
    return None


def parse_webhook_body(body: Any) -> WebhookHints:
    """Extract repository/tag hints; unknown shapes yield empty hints"""
    if not isinstance(body, dict):
        return WebhookHints()

    # Docker Hub
    push_data = body.get('push_data')
    if isinstance(push_data, dict):
        return WebhookHints(_name_of(body.get('repository')), push_data.get('tag'), 'dockerhub')

    # GitHub package events
    package = body.get('package')
    if isinstance(package, dict):
        version = package.get('package_version') or {}
        tag = None
        if isinstance(version, dict):
            tag = ((version.get('container_metadata') or {}).get('tag') or {}).get('name') \
                or version.get('version')
        return WebhookHints(_name_of(body.get('repository')) or package.get('name'), tag, 'github')

    # GitLab
    if isinstance(body.get('project'), dict):
        ref = body.get('ref')
        tag = ref[len('refs/tags/'):] if isinstance(ref, str) and ref.startswith('refs/tags/') else None
        return WebhookHints(_name_of(body['project']), tag, 'gitlab')

    tag = body.get('tag')
    return WebhookHints(_name_of(body.get('repository')), tag if isinstance(tag, str) else None)


class WebhookVerifier:
    """
    Decides whether a webhook caller may trigger an update.

    Subclass and override verify() to plug in token or signature checks.
    """

    async def verify(self, request: Request, raw_body: bytes) -> bool:
        client = request.client.host if request.client else 'unknown'
        logger.info(f"Unauthenticated webhook request from: {client}")
        return True


def get_verifier(request: Request) -> WebhookVerifier:
    return getattr(request.app.state, 'webhook_verifier', None) or WebhookVerifier()


@router.post("/webhook/{container_name}")
async def receive_webhook(
    container_name: str,
    request: Request,
    services: UpdaterServices = Depends(get_services),
    verifier: WebhookVerifier = Depends(get_verifier),
):
    raw_body = await request.body()
    if not await verifier.verify(request, raw_body):
        raise HTTPException(status_code=401, detail="Webhook caller not verified")

    try:
        body = json.loads(raw_body) if raw_body else {}
    except ValueError:
        body = {}
    hints = parse_webhook_body(body)
    logger.info(
        f"Webhook received for container: {container_name} "
        f"(source: {hints.source}, repository: {hints.repository}, tag: {hints.tag})"
    )

    # A fresh inspect decides: 404 when the engine has no such container,
    # 403 when it exists without the auto-update label
    result = await trigger_update(services, container_name)
    if result.action == UpdateAction.SKIPPED and result.message == NOT_ELIGIBLE_MESSAGE:
        raise HTTPException(status_code=403, detail=f"Container {container_name} is not labeled for auto-update")

    payload = {
        "success": result.success,
        "message": f"Update triggered for {container_name}",
        "result": result.to_dict(),
    }
    if result.action == UpdateAction.FAILED:
        return JSONResponse(status_code=500, content=payload)
    return payload
