"""
Unit tests for creation parameter synthesis.

Tests verify:
- Ports, mounts, env, labels, restart policy and networks carry over
- The default bridge is dropped when other networks exist
- host/none network modes attach no endpoints; container:/service: modes pass through
- Container-id aliases are dropped
- Invalid parameters are rejected before anything is submitted
"""

import pytest
from docker.types import LogConfig

from exceptions import CreationParamsError
from inventory.models import ContainerRecord
from updates.creation_params import CreationParams, VolumeMount, synthesize


def _record(make_inspect, **kwargs):
    return ContainerRecord.from_inspect(make_inspect(**kwargs))


@pytest.mark.unit
class TestSynthesize:

    def test_preserves_configuration(self, make_inspect):
        record = _record(
            make_inspect,
            env=['A=1', 'B=2'],
            labels={'auto-update': 'true', 'traefik.enable': 'true'},
            cmd=['serve', '--port', '80'],
            ports={
                '80/tcp': [{'HostIp': '0.0.0.0', 'HostPort': '8080'}, {'HostIp': '::', 'HostPort': '8080'}],
                '9000/udp': None,
            },
            mounts=[
                {'Type': 'volume', 'Name': 'webdata', 'Source': '/var/lib/docker/volumes/webdata/_data',
                 'Destination': '/data', 'Mode': 'z', 'RW': True},
                {'Type': 'bind', 'Source': '/etc/web', 'Destination': '/etc/nginx', 'Mode': '', 'RW': False},
            ],
            restart_policy={'Name': 'always', 'MaximumRetryCount': 0},
        )

        params = synthesize(record)
        create = params.create_kwargs()
        host = params.host_config_kwargs()

        assert create['image'] == 'nginx:latest'
        assert create['name'] == 'web'
        assert create['environment'] == ['A=1', 'B=2']
        assert create['labels'] == {'auto-update': 'true', 'traefik.enable': 'true'}
        assert create['command'] == ['serve', '--port', '80']
        assert sorted(create['ports']) == [(80, 'tcp'), (9000, 'udp')]
        assert host['port_bindings'] == {'80/tcp': [('0.0.0.0', '8080'), ('::', '8080')]}
        assert host['binds'] == ['webdata:/data:z', '/etc/web:/etc/nginx:ro']
        assert host['restart_policy'] == {'Name': 'always', 'MaximumRetryCount': 0}

    def test_explicit_image_reference(self, make_inspect):
        params = synthesize(_record(make_inspect), image='nginx:1.27')

        assert params.image == 'nginx:1.27'

    def test_bridge_dropped_with_other_networks(self, make_inspect):
        record = _record(make_inspect, networks={
            'bridge': {'IPAMConfig': None, 'Aliases': None},
            'backend': {'IPAMConfig': {'IPv4Address': '10.1.0.7'}, 'Aliases': ['api', 'a1b2c3d4e5f6']},
            'frontend': {'IPAMConfig': None, 'Aliases': ['api-public']},
        })

        params = synthesize(record)

        assert [n.name for n in params.networks] == ['backend', 'frontend']
        assert params.host_config_kwargs()['network_mode'] == 'backend'
        assert params.endpoint_configs() == {'backend': {'ipv4_address': '10.1.0.7', 'aliases': ['api']}}
        assert params.extra_network_connects() == {'frontend': {'aliases': ['api-public']}}

    def test_bridge_only_has_no_aliases(self, make_inspect):
        params = synthesize(_record(make_inspect))

        assert [n.name for n in params.networks] == ['bridge']
        assert params.endpoint_configs() == {'bridge': {}}
        assert params.extra_network_connects() == {}

    @pytest.mark.parametrize('mode', ['host', 'none'])
    def test_exclusive_network_mode(self, make_inspect, mode):
        record = _record(make_inspect, networks={mode: {'IPAMConfig': None, 'Aliases': None}})

        params = synthesize(record)

        assert params.networks == []
        assert params.host_config_kwargs()['network_mode'] == mode
        assert params.endpoint_configs() == {}

    @pytest.mark.parametrize('mode', ['container:' + 'c' * 64, 'service:vpn'])
    def test_shared_network_namespace_passes_through(self, make_inspect, mode):
        """
        Joined namespaces report no networks of their own; the replacement
        must join the same namespace rather than the default bridge.
        """
        record = _record(make_inspect, networks={}, host_config={'NetworkMode': mode})

        params = synthesize(record)

        assert params.networks == []
        assert params.host_config_kwargs()['network_mode'] == mode
        assert params.endpoint_configs() == {}
        assert params.extra_network_connects() == {}

    def test_plain_network_mode_not_recorded(self, make_inspect):
        record = _record(make_inspect, host_config={'NetworkMode': 'default'})

        assert record.host_extras.network_mode is None
        assert synthesize(record).host_config_kwargs()['network_mode'] == 'bridge'

    def test_auto_remove_only_when_set(self, make_inspect):
        assert 'auto_remove' not in synthesize(_record(make_inspect)).host_config_kwargs()

        params = synthesize(_record(make_inspect, host_config={'AutoRemove': True}))

        assert params.host_config_kwargs()['auto_remove'] is True

    def test_retry_count_only_for_on_failure(self, make_inspect):
        on_failure = synthesize(_record(
            make_inspect, restart_policy={'Name': 'on-failure', 'MaximumRetryCount': 5}
        ))
        always = synthesize(_record(
            make_inspect, restart_policy={'Name': 'always', 'MaximumRetryCount': 5}
        ))

        assert on_failure.restart_policy == {'Name': 'on-failure', 'MaximumRetryCount': 5}
        assert always.restart_policy == {'Name': 'always', 'MaximumRetryCount': 0}

    def test_tmpfs_and_host_extras(self, make_inspect):
        record = _record(
            make_inspect,
            mounts=[{'Type': 'tmpfs', 'Source': '', 'Destination': '/run', 'Mode': '', 'RW': True}],
            host_config={
                'Privileged': True,
                'CapAdd': ['NET_ADMIN'],
                'Dns': ['1.1.1.1'],
                'LogConfig': {'Type': 'syslog', 'Config': {'tag': 'web'}},
            },
        )

        host = synthesize(record).host_config_kwargs()

        assert host['tmpfs'] == {'/run': ''}
        assert 'binds' not in host
        assert host['privileged'] is True
        assert host['cap_add'] == ['NET_ADMIN']
        assert host['dns'] == ['1.1.1.1']
        assert isinstance(host['log_config'], LogConfig)

    def test_default_log_driver_not_passed(self, make_inspect):
        host = synthesize(_record(make_inspect)).host_config_kwargs()

        assert 'log_config' not in host
        assert 'privileged' not in host


@pytest.mark.unit
class TestValidate:

    def test_valid_params_pass(self):
        params = CreationParams(image='nginx:latest', name='web', ports={'80/tcp': []})

        assert params.validate() is params

    @pytest.mark.parametrize('kwargs, fragment', [
        ({'image': '', 'name': 'web'}, 'no image'),
        ({'image': 'nginx', 'name': ''}, 'no container name'),
        ({'image': 'nginx', 'name': 'web', 'ports': {'http': []}}, "malformed port key 'http'"),
        ({'image': 'nginx', 'name': 'web', 'mounts': [VolumeMount(source='/a', destination='')]},
         'has no destination'),
    ])
    def test_invalid_params_rejected(self, kwargs, fragment):
        with pytest.raises(CreationParamsError) as exc_info:
            CreationParams(**kwargs).validate()

        assert fragment in str(exc_info.value)
