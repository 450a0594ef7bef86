"""
Shared pytest fixtures for ContainerPulse tests.

Fixtures provided:
- make_inspect: factory for raw `docker inspect` payloads
- mock_inspector: ContainerInspector double with AsyncMock engine calls
- event_bus: fresh EventBus per test
- data_dir: temporary data directory layout

The docker SDK is never contacted; engine errors are real docker.errors
instances raised from the mocks.
"""

import os
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from event_bus import EventBus
from inventory.models import ContainerRecord

WEB_ID = 'a1b2c3d4e5f6' + '0' * 52
DB_ID = 'f6e5d4c3b2a1' + '1' * 52
SELF_ID = '0123456789ab' + '2' * 52
OLD_IMAGE_ID = 'sha256:' + 'a' * 64
NEW_IMAGE_ID = 'sha256:' + 'b' * 64


def build_inspect(
    name='web',
    container_id=WEB_ID,
    image='nginx:latest',
    image_id=OLD_IMAGE_ID,
    labels=None,
    running=True,
    env=None,
    cmd=None,
    entrypoint=None,
    ports=None,
    mounts=None,
    networks=None,
    restart_policy=None,
    host_config=None,
):
    """Raw inspect payload shaped like the engine's"""
    if labels is None:
        labels = {'auto-update': 'true'}
    if networks is None:
        networks = {'bridge': {'IPAMConfig': None, 'Aliases': None, 'IPAddress': '172.17.0.2'}}
    hc = {
        'RestartPolicy': restart_policy or {'Name': 'unless-stopped', 'MaximumRetryCount': 0},
        'LogConfig': {'Type': 'json-file', 'Config': {}},
        'Privileged': False,
        'CapAdd': None,
        'CapDrop': None,
        'Dns': [],
        'DnsSearch': [],
        'ExtraHosts': None,
        'Devices': [],
    }
    hc.update(host_config or {})
    return {
        'Id': container_id,
        'Name': f'/{name}',
        'Image': image_id,
        'Created': '2024-01-01T00:00:00.000000000Z',
        'State': {'Status': 'running' if running else 'exited', 'Running': running},
        'Config': {
            'Image': image,
            'Labels': labels,
            'Env': env if env is not None else ['PATH=/usr/bin', 'MODE=prod'],
            'Cmd': cmd,
            'Entrypoint': entrypoint,
        },
        'HostConfig': hc,
        'Mounts': mounts or [],
        'NetworkSettings': {
            'Ports': ports or {},
            'Networks': networks,
        },
    }


@pytest.fixture
def ids():
    """Container and image ids used by build_inspect defaults"""
    return SimpleNamespace(
        web=WEB_ID, db=DB_ID, self_id=SELF_ID, old_image=OLD_IMAGE_ID, new_image=NEW_IMAGE_ID
    )


@pytest.fixture
def make_inspect():
    return build_inspect


@pytest.fixture
def web_record():
    return ContainerRecord.from_inspect(build_inspect())


@pytest.fixture
def mock_inspector():
    """
    ContainerInspector double.

    Every engine call is an AsyncMock; tests set return values or
    side effects for the calls they exercise.
    """
    inspector = MagicMock()
    for method in (
        'list_running', 'inspect', 'image_id', 'image_attrs', 'pull',
        'create', 'start', 'stop', 'remove', 'remove_image', 'list_images', 'logs',
        'run_detached',
    ):
        setattr(inspector, method, AsyncMock())
    inspector.list_running.return_value = []
    inspector.logs.return_value = ''
    inspector.list_images.return_value = []
    return inspector


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def data_dir(tmp_path):
    """Temporary data directory with the production layout"""
    root = tmp_path / 'containerpulse'
    (root / 'container-inventory').mkdir(parents=True)
    (root / 'backups').mkdir()
    (root / 'deployment-backups').mkdir()
    return root
