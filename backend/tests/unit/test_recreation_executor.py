"""
Unit tests for RecreationExecutor.

Tests verify:
- Step order: backup, stop, remove (volumes kept), create, start
- Failures before remove leave the original container alone
- Failures after remove report the container as lost
- Start failure keeps the created container
- Old image cleanup is best effort
"""

from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, NotFound

from inventory.backups import BackupStore
from inventory.models import ContainerRecord
from updates.recreation_executor import RecreationExecutor
from updates.types import RecreationStep

NEW_CONTAINER_ID = 'd' * 64


@pytest.fixture
def backups(data_dir):
    return BackupStore(str(data_dir / 'backups'))


@pytest.fixture
def executor(mock_inspector, backups):
    mock_inspector.create.return_value = NEW_CONTAINER_ID
    return RecreationExecutor(mock_inspector, backups, stop_timeout=15)


@pytest.mark.unit
class TestRecreate:

    @pytest.mark.asyncio
    async def test_successful_recreation(self, executor, mock_inspector, web_record, backups, ids):
        calls = []
        mock_inspector.stop.side_effect = lambda *a, **k: calls.append('stop')
        mock_inspector.remove.side_effect = lambda *a, **k: calls.append('remove')
        mock_inspector.start.side_effect = lambda *a, **k: calls.append('start')

        def create(params):
            calls.append('create')
            return NEW_CONTAINER_ID

        mock_inspector.create.side_effect = create

        result = await executor.recreate(web_record, new_image_id=ids.new_image)

        assert result.success is True
        assert result.new_container_id == NEW_CONTAINER_ID
        assert calls == ['stop', 'remove', 'create', 'start']
        mock_inspector.stop.assert_awaited_once_with(ids.web, timeout=15)
        mock_inspector.remove.assert_awaited_once_with(ids.web, v=False)
        mock_inspector.start.assert_awaited_once_with(NEW_CONTAINER_ID)

        params = mock_inspector.create.call_args.args[0]
        assert params.name == 'web'
        assert params.image == 'nginx:latest'

        assert len(backups.list_pre_update('web')) == 1
        assert result.backup_path == backups.list_pre_update('web')[0]

    @pytest.mark.asyncio
    async def test_backup_failure_touches_nothing(self, mock_inspector, web_record):
        backups = MagicMock()
        backups.write_pre_update.side_effect = OSError("disk full")
        executor = RecreationExecutor(mock_inspector, backups)

        result = await executor.recreate(web_record)

        assert result.success is False
        assert result.failed_step == RecreationStep.BACKUP
        assert result.container_lost is False
        mock_inspector.stop.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_params_abort_before_stop(self, executor, mock_inspector, make_inspect):
        attrs = make_inspect(ports={'http': [{'HostIp': '', 'HostPort': '80'}]})
        record = ContainerRecord.from_inspect(attrs)

        result = await executor.recreate(record)

        assert result.failed_step == RecreationStep.SYNTHESIZE
        mock_inspector.stop.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_failure_leaves_container(self, executor, mock_inspector, web_record):
        mock_inspector.stop.side_effect = APIError("cannot stop")

        result = await executor.recreate(web_record)

        assert result.failed_step == RecreationStep.STOP
        assert result.container_lost is False
        mock_inspector.remove.assert_not_called()

    @pytest.mark.asyncio
    async def test_remove_failure_is_container_lost(self, executor, mock_inspector, web_record):
        mock_inspector.remove.side_effect = APIError("removal in progress")

        result = await executor.recreate(web_record)

        assert result.failed_step == RecreationStep.REMOVE
        assert result.container_lost is True
        mock_inspector.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_auto_remove_container_is_recreated(self, executor, mock_inspector, make_inspect):
        """
        An --rm container is deleted by the engine on stop; the replacement
        must still be created and keep the setting.
        """
        record = ContainerRecord.from_inspect(make_inspect(host_config={'AutoRemove': True}))
        mock_inspector.remove.side_effect = NotFound("No such container")

        result = await executor.recreate(record)

        assert result.success is True
        assert result.container_lost is False
        mock_inspector.create.assert_awaited_once()
        mock_inspector.start.assert_awaited_once_with(NEW_CONTAINER_ID)
        params = mock_inspector.create.call_args.args[0]
        assert params.host_config_kwargs()['auto_remove'] is True

    @pytest.mark.asyncio
    async def test_create_failure_is_container_lost(self, executor, mock_inspector, web_record, backups):
        mock_inspector.create.side_effect = NotFound("network backend not found")

        result = await executor.recreate(web_record)

        assert result.failed_step == RecreationStep.CREATE
        assert result.container_lost is True
        assert result.backup_path is not None
        mock_inspector.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_failure_keeps_created_container(self, executor, mock_inspector, web_record):
        mock_inspector.start.side_effect = APIError("port is already allocated")

        result = await executor.recreate(web_record)

        assert result.failed_step == RecreationStep.START
        assert result.container_lost is False
        assert result.new_container_id == NEW_CONTAINER_ID
        mock_inspector.remove.assert_awaited_once()


@pytest.mark.unit
class TestCleanup:

    @pytest.mark.asyncio
    async def test_old_image_removed_when_enabled(self, mock_inspector, backups, web_record, ids):
        mock_inspector.create.return_value = NEW_CONTAINER_ID
        executor = RecreationExecutor(mock_inspector, backups, cleanup_old_images=True)

        await executor.recreate(web_record, new_image_id=ids.new_image)

        mock_inspector.remove_image.assert_awaited_once_with(ids.old_image)

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_fail_update(self, mock_inspector, backups, web_record, ids):
        mock_inspector.create.return_value = NEW_CONTAINER_ID
        mock_inspector.remove_image.side_effect = APIError("image is in use")
        executor = RecreationExecutor(mock_inspector, backups, cleanup_old_images=True)

        result = await executor.recreate(web_record, new_image_id=ids.new_image)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_cleanup_disabled_by_default(self, executor, mock_inspector, web_record, ids):
        await executor.recreate(web_record, new_image_id=ids.new_image)

        mock_inspector.remove_image.assert_not_called()
