"""
Deployment module for ContainerPulse

Redeploys the updater's own service with backup, health check and rollback.

Components:
    - state_machine: release state transitions
    - backups: deployment backups (inspect, logs, compose file, image info)
    - compose: docker compose CLI runner
    - fallback: fixed configuration used when no compose file exists
    - release_controller: deploy / rollback orchestration
"""

from .state_machine import ReleaseStateMachine
from .release_controller import ReleaseController, ReleaseResult

__all__ = [
    "ReleaseStateMachine",
    "ReleaseController",
    "ReleaseResult",
]
