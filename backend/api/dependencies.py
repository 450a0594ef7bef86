"""Request-scoped access to the wired services."""

from fastapi import HTTPException, Request

from services import UpdaterServices


def get_services(request: Request) -> UpdaterServices:
    services = getattr(request.app.state, 'services', None)
    if services is None:
        raise HTTPException(status_code=503, detail="Updater is starting")
    return services
