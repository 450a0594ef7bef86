"""
Inventory models for ContainerPulse

A ContainerRecord is the full-fidelity description of one update-eligible
container, taken from engine inspection data. The on-disk inventory uses the
camelCase keys read by the dashboard (id, name, image, imageId, command,
entrypoint, created, state, restartPolicy, network, mounts, ports, labels,
env, hostConfig); nested objects keep the engine's own key names.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from utils.container_id import same_container

logger = logging.getLogger(__name__)

# Network modes that join another container's namespace
SHARED_NETWORK_MODE_PREFIXES = ('container:', 'service:')


def _shared_network_mode(mode: Optional[str]) -> Optional[str]:
    if mode and mode.startswith(SHARED_NETWORK_MODE_PREFIXES):
        return mode
    return None


class _InventoryModel(BaseModel):
    """Base for inventory models: accepts field names or on-disk aliases, immutable"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_inventory(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True)


class PortBinding(_InventoryModel):
    host_ip: str = Field('', alias='HostIp')
    host_port: str = Field('', alias='HostPort')

    @property
    def is_bound(self) -> bool:
        """False when the port was exposed without a host-side mapping"""
        return bool(self.host_port)


class MountSpec(_InventoryModel):
    type: str = Field('bind', alias='Type')
    name: Optional[str] = Field(None, alias='Name')
    source: str = Field('', alias='Source')
    destination: str = Field('', alias='Destination')
    mode: str = Field('', alias='Mode')
    rw: bool = Field(True, alias='RW')


class NetworkAttachment(_InventoryModel):
    # Static IPAM addresses only; engine-assigned addresses are not reapplied
    ip_address: Optional[str] = Field(None, alias='IPAddress')
    ipv6_address: Optional[str] = Field(None, alias='IPv6Address')
    aliases: List[str] = Field(default_factory=list, alias='Aliases')


class RestartPolicy(_InventoryModel):
    name: str = Field('no', alias='Name')
    maximum_retry_count: int = Field(0, alias='MaximumRetryCount')


class LogConfig(_InventoryModel):
    type: str = Field('json-file', alias='Type')
    config: Dict[str, str] = Field(default_factory=dict, alias='Config')


class HostExtras(_InventoryModel):
    privileged: bool = False
    devices: List[Dict[str, str]] = Field(default_factory=list)
    cap_add: List[str] = Field(default_factory=list, alias='capAdd')
    cap_drop: List[str] = Field(default_factory=list, alias='capDrop')
    dns: List[str] = Field(default_factory=list)
    dns_search: List[str] = Field(default_factory=list, alias='dnsSearch')
    extra_hosts: List[str] = Field(default_factory=list, alias='extraHosts')
    log_config: LogConfig = Field(default_factory=LogConfig, alias='logConfig')
    auto_remove: bool = Field(False, alias='autoRemove')
    # Only recorded for namespace-sharing modes (container:<id>, service:<name>)
    network_mode: Optional[str] = Field(None, alias='networkMode')


class ContainerRecord(_InventoryModel):
    """One update-eligible container at inventory time"""

    id: str
    name: str
    image: str
    image_id: str = Field(..., alias='imageId')
    state: str = 'running'
    created: str = ''
    command: Optional[List[str]] = None
    entrypoint: Optional[List[str]] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    env: List[str] = Field(default_factory=list)
    ports: Dict[str, List[PortBinding]] = Field(default_factory=dict)
    mounts: List[MountSpec] = Field(default_factory=list)
    networks: Dict[str, NetworkAttachment] = Field(default_factory=dict, alias='network')
    restart_policy: RestartPolicy = Field(default_factory=RestartPolicy, alias='restartPolicy')
    host_extras: HostExtras = Field(default_factory=HostExtras, alias='hostConfig')

    @property
    def short_id(self) -> str:
        return self.id[:12]

    def label(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.labels.get(key, default)

    @classmethod
    def from_inspect(cls, attrs: Dict[str, Any]) -> 'ContainerRecord':
        """
        Build a record from raw `docker inspect` data (container.attrs).

        Null lists and maps in the inspect payload become empty collections;
        command and entrypoint stay None when unset.
        """
        config = attrs.get('Config') or {}
        host_config = attrs.get('HostConfig') or {}
        network_settings = attrs.get('NetworkSettings') or {}
        state = attrs.get('State') or {}

        ports: Dict[str, List[PortBinding]] = {}
        for port_key, bindings in (network_settings.get('Ports') or {}).items():
            ports[port_key] = [
                PortBinding(host_ip=b.get('HostIp') or '', host_port=b.get('HostPort') or '')
                for b in (bindings or [])
            ]

        mounts = [
            MountSpec(
                type=m.get('Type') or 'bind',
                name=m.get('Name'),
                source=m.get('Source') or '',
                destination=m.get('Destination') or '',
                mode=m.get('Mode') or '',
                rw=m.get('RW', True),
            )
            for m in (attrs.get('Mounts') or [])
        ]

        networks: Dict[str, NetworkAttachment] = {}
        for net_name, net_data in (network_settings.get('Networks') or {}).items():
            net_data = net_data or {}
            ipam = net_data.get('IPAMConfig') or {}
            networks[net_name] = NetworkAttachment(
                ip_address=ipam.get('IPv4Address') or None,
                ipv6_address=ipam.get('IPv6Address') or None,
                aliases=list(net_data.get('Aliases') or []),
            )

        restart = host_config.get('RestartPolicy') or {}
        log_config = host_config.get('LogConfig') or {}

        return cls(
            id=attrs.get('Id', ''),
            name=(attrs.get('Name') or '').lstrip('/'),
            image=config.get('Image') or '',
            image_id=attrs.get('Image') or '',
            state=state.get('Status') or '',
            created=attrs.get('Created') or '',
            command=list(config['Cmd']) if config.get('Cmd') else None,
            entrypoint=list(config['Entrypoint']) if config.get('Entrypoint') else None,
            labels=dict(config.get('Labels') or {}),
            env=list(config.get('Env') or []),
            ports=ports,
            mounts=mounts,
            networks=networks,
            restart_policy=RestartPolicy(
                name=restart.get('Name') or 'no',
                maximum_retry_count=restart.get('MaximumRetryCount') or 0,
            ),
            host_extras=HostExtras(
                privileged=bool(host_config.get('Privileged')),
                devices=list(host_config.get('Devices') or []),
                cap_add=list(host_config.get('CapAdd') or []),
                cap_drop=list(host_config.get('CapDrop') or []),
                dns=list(host_config.get('Dns') or []),
                dns_search=list(host_config.get('DnsSearch') or []),
                extra_hosts=list(host_config.get('ExtraHosts') or []),
                log_config=LogConfig(
                    type=log_config.get('Type') or 'json-file',
                    config=dict(log_config.get('Config') or {}),
                ),
                auto_remove=bool(host_config.get('AutoRemove')),
                network_mode=_shared_network_mode(host_config.get('NetworkMode')),
            ),
        )


@dataclass(frozen=True)
class InventorySnapshot:
    """
    Ordered, immutable set of ContainerRecords from one inventory pass.

    Passed by value between the inventory builder, the update checker and the
    executors; the inventory file is only a durable copy for other readers.
    """
    records: Tuple[ContainerRecord, ...] = ()
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __iter__(self) -> Iterator[ContainerRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.records]

    def get(self, name: str) -> Optional[ContainerRecord]:
        """Find a record by container name (leading slash tolerated)"""
        name = name.lstrip('/')
        for record in self.records:
            if record.name == name:
                return record
        return None

    def find(self, id_or_name: str) -> Optional[ContainerRecord]:
        """Find a record by full id, short id or name"""
        if not id_or_name:
            return None
        for record in self.records:
            if same_container(record.id, id_or_name) or (len(id_or_name) >= 12 and record.id.startswith(id_or_name)):
                return record
        return self.get(id_or_name)

    def to_inventory(self) -> List[Dict[str, Any]]:
        return [record.to_inventory() for record in self.records]

    @classmethod
    def from_inventory(cls, data: Any, built_at: Optional[datetime] = None) -> 'InventorySnapshot':
        """
        Parse the on-disk inventory array.

        Entries that do not validate are skipped with a warning.
        """
        if not isinstance(data, list):
            raise ValueError("Inventory must be a JSON array")

        records = []
        for entry in data:
            try:
                if isinstance(entry, dict) and isinstance(entry.get('name'), str):
                    entry = {**entry, 'name': entry['name'].lstrip('/')}
                records.append(ContainerRecord.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping malformed inventory entry: {e}")

        return cls(
            records=tuple(records),
            built_at=built_at or datetime.now(timezone.utc),
        )
