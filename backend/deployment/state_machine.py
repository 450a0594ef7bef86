"""
Release state machine for ContainerPulse

Tracks a redeploy of the updater's own service through backup, deploy,
health check and, when needed, rollback.

State Flow:
    idle -> backing_up -> deploying -> health_checking -> healthy
                              |               |
                              +---------------+-> rolling_back
                                                   -> rollback_health_checking
                                                        -> rolled_back
                                                        -> failed

healthy, rolled_back and failed are terminal. failed means the rollback
itself did not come back healthy; nothing further is attempted.

Usage:
    sm = ReleaseStateMachine()

    if sm.can_transition(release.state, 'deploying'):
        sm.transition(release, 'deploying')
"""

from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

IDLE = 'idle'
BACKING_UP = 'backing_up'
DEPLOYING = 'deploying'
HEALTH_CHECKING = 'health_checking'
HEALTHY = 'healthy'
ROLLING_BACK = 'rolling_back'
ROLLBACK_HEALTH_CHECKING = 'rollback_health_checking'
ROLLED_BACK = 'rolled_back'
FAILED = 'failed'


class ReleaseStateMachine:
    """
    Enforces valid release state transitions.
    """

    # Valid state transitions (from_state -> to_state)
    VALID_TRANSITIONS = {
        IDLE: [BACKING_UP, ROLLING_BACK],
        BACKING_UP: [DEPLOYING, FAILED],
        DEPLOYING: [HEALTH_CHECKING, HEALTHY, ROLLING_BACK, FAILED],
        HEALTH_CHECKING: [HEALTHY, ROLLING_BACK, FAILED],
        ROLLING_BACK: [ROLLBACK_HEALTH_CHECKING, FAILED],
        ROLLBACK_HEALTH_CHECKING: [ROLLED_BACK, FAILED],
        HEALTHY: [],  # Terminal state
        ROLLED_BACK: [],  # Terminal state
        FAILED: [],  # Terminal state
    }

    VALID_STATES = set(VALID_TRANSITIONS)
    TERMINAL_STATES = {HEALTHY, ROLLED_BACK, FAILED}

    def can_transition(self, from_state: str, to_state: str) -> bool:
        """
        Check if a state transition is valid.

        Examples:
            >>> sm = ReleaseStateMachine()
            >>> sm.can_transition('idle', 'backing_up')
            True
            >>> sm.can_transition('idle', 'deploying')
            False
            >>> sm.can_transition('healthy', 'rolling_back')  # healthy is terminal
            False
        """
        if from_state not in self.VALID_STATES:
            logger.warning(f"Invalid from_state: {from_state}")
            return False

        if to_state not in self.VALID_STATES:
            logger.warning(f"Invalid to_state: {to_state}")
            return False

        return to_state in self.VALID_TRANSITIONS.get(from_state, [])

    def transition(self, release, to_state: str) -> bool:
        """
        Move `release` (anything with .state, .history, .finished_at) to a new state.

        Returns:
            True if transition succeeded, False if invalid
        """
        from_state = release.state

        if not self.can_transition(from_state, to_state):
            logger.error(f"Invalid release state transition: {from_state} -> {to_state}")
            return False

        release.state = to_state
        now = datetime.now(timezone.utc)
        release.history.append((to_state, now))

        if to_state in self.TERMINAL_STATES:
            release.finished_at = now

        logger.info(f"Release transitioned: {from_state} -> {to_state}")
        return True

    def is_terminal(self, state: str) -> bool:
        return state in self.TERMINAL_STATES

    def get_valid_next_states(self, current_state: str) -> list:
        """
        Examples:
            >>> sm = ReleaseStateMachine()
            >>> sm.get_valid_next_states('health_checking')
            ['healthy', 'rolling_back', 'failed']
        """
        return list(self.VALID_TRANSITIONS.get(current_state, []))
