"""
Unit tests for the service watchdog.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, AsyncMock

import pytest
from docker.errors import APIError, NotFound

from exceptions import ComposeCommandError, ImagePullError
from service_watchdog import Watchdog, WatchdogOutcome
from updates.handoff import HandoffMarker


@pytest.fixture
def handoff(tmp_path):
    return HandoffMarker(str(tmp_path / 'self-update.json'))


@pytest.fixture
def compose():
    compose = MagicMock()
    compose.available = True
    compose.compose_file = '/opt/containerpulse/docker-compose.yml'
    compose.up = AsyncMock()
    return compose


def _watchdog(mock_inspector, handoff, compose=None):
    return Watchdog(
        mock_inspector, handoff, 'containerpulse', 'containerpulse/containerpulse:latest',
        compose=compose, interval=1,
    )


@pytest.mark.unit
class TestCheckOnce:

    @pytest.mark.asyncio
    async def test_running_container_is_present(self, mock_inspector, handoff, make_inspect):
        mock_inspector.inspect.return_value = make_inspect(name='containerpulse')

        assert await _watchdog(mock_inspector, handoff).check_once() == WatchdogOutcome.PRESENT
        mock_inspector.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_live_handoff_waits(self, mock_inspector, handoff):
        mock_inspector.inspect.side_effect = NotFound("No such container")
        handoff.claim('restart-worker', lease_seconds=300)

        outcome = await _watchdog(mock_inspector, handoff).check_once()

        assert outcome == WatchdogOutcome.HANDOFF_PENDING
        mock_inspector.pull.assert_not_called()
        mock_inspector.run_detached.assert_not_called()

    @pytest.mark.asyncio
    async def test_stopped_container_is_started(self, mock_inspector, handoff, make_inspect, ids):
        mock_inspector.inspect.return_value = make_inspect(
            name='containerpulse', container_id=ids.self_id, running=False
        )

        outcome = await _watchdog(mock_inspector, handoff).check_once()

        assert outcome == WatchdogOutcome.STARTED
        mock_inspector.start.assert_awaited_once_with(ids.self_id)

    @pytest.mark.asyncio
    async def test_start_failure_redeploys_via_compose(self, mock_inspector, handoff, compose, make_inspect, ids):
        mock_inspector.inspect.return_value = make_inspect(
            name='containerpulse', container_id=ids.self_id, running=False
        )
        mock_inspector.start.side_effect = APIError("cannot start")

        outcome = await _watchdog(mock_inspector, handoff, compose).check_once()

        assert outcome == WatchdogOutcome.REDEPLOYED
        mock_inspector.remove.assert_awaited_once_with(ids.self_id, force=True)
        compose.up.assert_awaited_once_with('containerpulse')

    @pytest.mark.asyncio
    async def test_absent_without_compose_uses_fallback(self, mock_inspector, handoff):
        mock_inspector.inspect.side_effect = NotFound("No such container")
        mock_inspector.pull.side_effect = ImagePullError('containerpulse/containerpulse:latest',
                                                         ImagePullError.TIMEOUT)
        mock_inspector.run_detached.return_value = SimpleNamespace(id='c' * 64)

        outcome = await _watchdog(mock_inspector, handoff).check_once()

        assert outcome == WatchdogOutcome.REDEPLOYED
        kwargs = mock_inspector.run_detached.call_args.kwargs
        assert kwargs['name'] == 'containerpulse'
        assert kwargs['restart_policy'] == {'Name': 'unless-stopped'}
        mock_inspector.remove.assert_not_called()

    @pytest.mark.asyncio
    async def test_compose_failure_falls_back(self, mock_inspector, handoff, compose):
        mock_inspector.inspect.side_effect = NotFound("No such container")
        compose.up.side_effect = ComposeCommandError(['docker', 'compose', 'up'], 1, 'network not found')
        mock_inspector.run_detached.return_value = SimpleNamespace(id='c' * 64)

        outcome = await _watchdog(mock_inspector, handoff, compose).check_once()

        assert outcome == WatchdogOutcome.REDEPLOYED
        mock_inspector.run_detached.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redeploy_failure(self, mock_inspector, handoff):
        mock_inspector.inspect.side_effect = NotFound("No such container")
        mock_inspector.run_detached.side_effect = APIError("Conflict")

        assert await _watchdog(mock_inspector, handoff).check_once() == WatchdogOutcome.FAILED


@pytest.mark.unit
class TestRunForever:

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_loop(self, mock_inspector, handoff):
        watchdog = _watchdog(mock_inspector, handoff)
        calls = []

        async def flaky_check():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("engine unavailable")
            watchdog.stop()
            return WatchdogOutcome.PRESENT

        watchdog.check_once = flaky_check
        watchdog.interval = 0

        await watchdog.run_forever()

        assert len(calls) == 2
