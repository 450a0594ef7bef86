"""
Unit tests for self identity resolution.
"""

from unittest.mock import patch

import pytest
from docker.errors import NotFound

from inventory import self_identity
from inventory.self_identity import SelfIdentity, resolve_self_identity


@pytest.mark.unit
class TestSelfIdentity:

    def test_matches_full_and_short_ids(self, ids):
        identity = SelfIdentity(container_id=ids.self_id, name='containerpulse')

        assert identity.matches(ids.self_id)
        assert identity.matches(ids.self_id[:12])
        assert not identity.matches(ids.web)

    def test_unresolved_matches_nothing(self, ids):
        identity = SelfIdentity()

        assert not identity.resolved
        assert not identity.matches(ids.web)
        assert not identity.matches('')


@pytest.mark.unit
class TestCandidates:

    def test_cgroup_v1_line(self, tmp_path, ids):
        cgroup = tmp_path / 'cgroup'
        cgroup.write_text(f"12:memory:/docker/{ids.self_id}\n")

        assert self_identity._candidate_from_cgroup(str(cgroup)) == ids.self_id

    def test_cgroup_v2_has_no_id(self, tmp_path):
        cgroup = tmp_path / 'cgroup'
        cgroup.write_text("0::/\n")

        assert self_identity._candidate_from_cgroup(str(cgroup)) is None

    def test_mountinfo_line(self, tmp_path, ids):
        mountinfo = tmp_path / 'mountinfo'
        mountinfo.write_text(
            f"1234 1200 0:52 /docker/containers/{ids.self_id}/hostname /etc/hostname rw - ext4 /dev/sda1 rw\n"
        )

        assert self_identity._candidate_from_mountinfo(str(mountinfo)) == ids.self_id

    def test_unreadable_source_yields_nothing(self, tmp_path):
        assert self_identity._candidate_from_cgroup(str(tmp_path / 'missing')) is None


@pytest.mark.unit
class TestResolve:

    @pytest.mark.asyncio
    async def test_env_override_may_be_a_name(self, mock_inspector, make_inspect, ids):
        mock_inspector.inspect.return_value = make_inspect(
            name='containerpulse', container_id=ids.self_id, image='harrisyn/containerpulse:latest'
        )

        with patch.object(self_identity, 'find_candidates', return_value=['containerpulse']):
            identity = await resolve_self_identity(mock_inspector, env_override='containerpulse')

        assert identity.container_id == ids.self_id
        assert identity.name == 'containerpulse'
        assert identity.image == 'harrisyn/containerpulse:latest'

    @pytest.mark.asyncio
    async def test_non_id_hostname_is_not_trusted(self, mock_inspector):
        with patch.object(self_identity, 'find_candidates', return_value=['my-laptop']):
            identity = await resolve_self_identity(mock_inspector)

        assert not identity.resolved
        mock_inspector.inspect.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_through_unknown_candidates(self, mock_inspector, make_inspect, ids):
        def inspect(candidate):
            if candidate == ids.web[:12]:
                raise NotFound("No such container")
            return make_inspect(name='containerpulse', container_id=ids.self_id)

        mock_inspector.inspect.side_effect = inspect

        with patch.object(self_identity, 'find_candidates', return_value=[ids.web[:12], ids.self_id[:12]]):
            identity = await resolve_self_identity(mock_inspector)

        assert identity.container_id == ids.self_id
