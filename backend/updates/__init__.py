"""
Updates Module

Update detection and execution.

Architecture:
- UpdateChecker: pulls and compares image ids (provenance-aware)
- UpdateExecutor: router to notification, self-update or recreation
- RecreationExecutor: stop/backup/remove/create/start of one container
- SelfUpdateHandler: deferred restart of the updater's own container
"""

from updates.update_checker import UpdateChecker
from updates.update_executor import UpdateExecutor
from updates.recreation_executor import RecreationExecutor
from updates.self_update import SelfUpdateHandler
from updates.types import UpdateStatus, UpdateResult, RecreationResult, UpdateAction

__all__ = [
    'UpdateChecker',
    'UpdateExecutor',
    'RecreationExecutor',
    'SelfUpdateHandler',
    'UpdateStatus',
    'UpdateResult',
    'RecreationResult',
    'UpdateAction',
]
