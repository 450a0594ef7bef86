"""
Fallback deployment for the updater's own container.

Used when no compose file is available: a fixed configuration matching the
shipped production compose file, carrying the security-sensitive settings
from the current environment.
"""

import logging
import os
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Values taken from the environment, with the shipped placeholders as defaults
SECRET_ENV_DEFAULTS = {
    'SESSION_SECRET': 'change-this-session-secret',
    'JWT_SECRET': 'change-this-jwt-secret',
    'WEBHOOK_SECRET': 'change-this-webhook-secret',
    'ADMIN_USERNAME': 'admin',
    'ADMIN_PASSWORD': 'change-this-password',
}

DOCKER_SOCKET = '/var/run/docker.sock'


def fallback_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    env = {
        'UPDATE_INTERVAL': environ.get('UPDATE_INTERVAL', '86400'),
        'LOG_LEVEL': environ.get('LOG_LEVEL', 'info'),
    }
    for key, default in SECRET_ENV_DEFAULTS.items():
        env[key] = environ.get(key) or default
    return env


def fallback_run_kwargs(name: str, image: str, port: int = 3000,
                        environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Keyword arguments for client.containers.run() of the fallback deployment"""
    return {
        'image': image,
        'name': name,
        'restart_policy': {'Name': 'unless-stopped'},
        'ports': {f'{port}/tcp': port},
        'volumes': {
            DOCKER_SOCKET: {'bind': DOCKER_SOCKET, 'mode': 'ro'},
            'containerpulse-data': {'bind': '/var/lib/containerpulse', 'mode': 'rw'},
            'containerpulse-logs': {'bind': '/var/log/containerpulse', 'mode': 'rw'},
        },
        'environment': fallback_environment(environ),
        'labels': {'auto-update': 'true'},
    }


async def deploy_fallback(inspector, name: str, image: str, port: int = 3000,
                          environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Start the updater from the fixed fallback configuration.

    Returns:
        Id of the started container
    """
    kwargs = fallback_run_kwargs(name, image, port=port, environ=environ)
    image = kwargs.pop('image')
    logger.warning(f"No compose file available, deploying {name} from fallback configuration")
    container = await inspector.run_detached(image, **kwargs)
    logger.info(f"Fallback deployment of {name} started ({container.id[:12]})")
    return container.id
