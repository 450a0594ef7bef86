"""
Self Identity

Resolves, once at startup, which container this process runs in. Every later
"is this me?" decision compares engine ids, never names, so a renamed
deployment is still recognised and a same-named stranger is not.

Resolution order:
    1. CONTAINERPULSE_SELF_ID environment override
    2. /proc/self/cgroup, then /proc/self/mountinfo (/docker/containers/<id>/)
    3. hostname, when it looks like a container id
The candidate is confirmed by inspecting it through the engine.
"""

import logging
import re
import socket
from dataclasses import dataclass
from typing import Iterable, Optional

from docker.errors import NotFound, APIError

from utils.container_id import looks_like_container_id, same_container

logger = logging.getLogger(__name__)

_CGROUP_ID_RE = re.compile(r'([0-9a-f]{64})')
_MOUNTINFO_ID_RE = re.compile(r'/(?:docker/)?containers/([0-9a-f]{64})/')

CGROUP_PATH = '/proc/self/cgroup'
MOUNTINFO_PATH = '/proc/self/mountinfo'


@dataclass(frozen=True)
class SelfIdentity:
    """The updater's own container, or an empty identity when not containerized"""
    container_id: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return bool(self.container_id)

    def matches(self, container_id: str) -> bool:
        """True when container_id (full or 12-char short) is this process's container"""
        if not self.container_id:
            return False
        return same_container(self.container_id, container_id)


def _read_lines(path: str) -> Iterable[str]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.readlines()
    except OSError:
        return []


def _candidate_from_cgroup(path: str = CGROUP_PATH) -> Optional[str]:
    for line in _read_lines(path):
        if 'docker' not in line and 'containerd' not in line:
            continue
        match = _CGROUP_ID_RE.search(line)
        if match:
            return match.group(1)
    return None


def _candidate_from_mountinfo(path: str = MOUNTINFO_PATH) -> Optional[str]:
    for line in _read_lines(path):
        match = _MOUNTINFO_ID_RE.search(line)
        if match:
            return match.group(1)
    return None


def find_candidates(env_override: Optional[str] = None) -> list:
    """Ordered, de-duplicated candidate ids from every local source"""
    candidates = []
    for candidate in (
        env_override,
        _candidate_from_cgroup(),
        _candidate_from_mountinfo(),
        socket.gethostname(),
    ):
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


async def resolve_self_identity(inspector, env_override: Optional[str] = None) -> SelfIdentity:
    """
    Resolve and confirm the current container through the engine.

    Args:
        inspector: ContainerInspector
        env_override: explicit id or name (CONTAINERPULSE_SELF_ID)

    Returns:
        SelfIdentity; unresolved when running outside a container
    """
    for candidate in find_candidates(env_override):
        # Hostnames are only trusted when they look like an id
        if candidate != env_override and not looks_like_container_id(candidate):
            continue
        try:
            attrs = await inspector.inspect(candidate)
        except NotFound:
            logger.debug(f"Self identity candidate {candidate[:12]} not known to the engine")
            continue
        except APIError as e:
            logger.warning(f"Could not confirm self identity candidate {candidate[:12]}: {e}")
            continue

        identity = SelfIdentity(
            container_id=attrs.get('Id'),
            name=(attrs.get('Name') or '').lstrip('/'),
            image=(attrs.get('Config') or {}).get('Image'),
        )
        logger.info(f"Running inside container {identity.name} ({identity.container_id[:12]})")
        return identity

    logger.info("Not running inside a known container; self-update and self-exclusion disabled")
    return SelfIdentity()
