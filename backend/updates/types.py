"""
Shared types for the update pipeline.

UpdateStatus is produced by the checker every cycle; RecreationResult and
UpdateResult are returned by executors to the router and the scheduler.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UpdateState(str, Enum):
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    LOCALLY_BUILT = "locally_built"
    CANNOT_DETERMINE = "cannot_determine"


class RecreationStep(str, Enum):
    """Steps of a recreation, in order"""
    BACKUP = "backup"
    SYNTHESIZE = "synthesize"
    STOP = "stop"
    REMOVE = "remove"
    CREATE = "create"
    START = "start"
    CLEANUP = "cleanup"


class UpdateAction(str, Enum):
    """What the router did with an update request"""
    NONE = "none"
    NOTIFIED = "notified"
    RECREATED = "recreated"
    SELF_UPDATE_SCHEDULED = "self_update_scheduled"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class UpdateStatus:
    """
    Result of one update check. Never merged with an earlier status.
    """
    container_name: str
    current_image_id: str
    latest_image_id: Optional[str] = None
    update_available: bool = False
    locally_built: bool = False
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=_utcnow)

    @property
    def state(self) -> UpdateState:
        if self.locally_built:
            return UpdateState.LOCALLY_BUILT
        if self.error:
            return UpdateState.CANNOT_DETERMINE
        if self.update_available:
            return UpdateState.UPDATE_AVAILABLE
        return UpdateState.UP_TO_DATE

    @classmethod
    def cannot_determine(cls, container_name: str, current_image_id: str, error: str) -> 'UpdateStatus':
        return cls(
            container_name=container_name,
            current_image_id=current_image_id,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'containerName': self.container_name,
            'currentImageId': self.current_image_id,
            'latestImageId': self.latest_image_id,
            'updateAvailable': self.update_available,
            'locallyBuilt': self.locally_built,
            'error': self.error,
            'lastChecked': self.checked_at.isoformat(),
            'state': self.state.value,
        }


@dataclass
class RecreationResult:
    """
    Outcome of one recreation.

    container_lost is True when the old container is gone and no
    replacement exists (remove succeeded, create did not, or remove failed
    part-way).
    """
    success: bool
    container_name: str
    new_container_id: Optional[str] = None
    failed_step: Optional[RecreationStep] = None
    error_message: Optional[str] = None
    container_lost: bool = False
    backup_path: Optional[str] = None

    @classmethod
    def success_result(cls, container_name: str, new_container_id: str,
                       backup_path: Optional[str] = None) -> 'RecreationResult':
        return cls(
            success=True,
            container_name=container_name,
            new_container_id=new_container_id,
            backup_path=backup_path,
        )

    @classmethod
    def failure_result(cls, container_name: str, step: RecreationStep, error_message: str,
                       container_lost: bool = False,
                       new_container_id: Optional[str] = None,
                       backup_path: Optional[str] = None) -> 'RecreationResult':
        return cls(
            success=False,
            container_name=container_name,
            failed_step=step,
            error_message=error_message,
            container_lost=container_lost,
            new_container_id=new_container_id,
            backup_path=backup_path,
        )


@dataclass
class UpdateResult:
    """What the router did for one container"""
    container_name: str
    action: UpdateAction
    status: Optional[UpdateStatus] = None
    recreation: Optional[RecreationResult] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.action != UpdateAction.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'container': self.container_name,
            'action': self.action.value,
            'success': self.success,
            'message': self.message,
        }
        if self.status is not None:
            data['status'] = self.status.to_dict()
        if self.recreation is not None:
            data['newContainerId'] = self.recreation.new_container_id
            data['failedStep'] = self.recreation.failed_step.value if self.recreation.failed_step else None
            data['containerLost'] = self.recreation.container_lost
        return data
