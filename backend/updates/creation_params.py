"""
Creation parameter synthesis.

Turns a ContainerRecord into a typed CreationParams describing an equivalent
container bound to the freshly pulled image, then renders it into the
keyword arguments of the low-level Docker API (create_container,
create_host_config, create_endpoint_config).

Rules:
- Networks: every recorded network, except "bridge" when the container is
  attached to at least one other network. Static IPs go through endpoint
  IPAM config. Aliases equal to a container id are dropped.
- Ports: each binding reproduced; an exposed port without a host mapping is
  declared without a binding.
- Mounts, environment and labels: verbatim.
- Restart policy: verbatim; the retry count is only kept for on-failure.
- Host extras are only passed when they differ from engine defaults.
- Shared network namespaces (container:<id>, service:<name>) pass through.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from docker.types import LogConfig as DockerLogConfig

from exceptions import CreationParamsError
from inventory.models import ContainerRecord
from utils.container_id import looks_like_container_id

logger = logging.getLogger(__name__)

DEFAULT_LOG_DRIVER = 'json-file'
DEFAULT_NETWORK = 'bridge'
# Modes that take over the network namespace; no endpoints can be attached
_EXCLUSIVE_NETWORK_MODES = ('host', 'none')

_PORT_KEY_RE = re.compile(r'^\d{1,5}/(tcp|udp|sctp)$')


@dataclass
class NetworkEndpoint:
    name: str
    ipv4_address: Optional[str] = None
    ipv6_address: Optional[str] = None
    aliases: List[str] = field(default_factory=list)

    def endpoint_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if self.ipv4_address:
            kwargs['ipv4_address'] = self.ipv4_address
        if self.ipv6_address:
            kwargs['ipv6_address'] = self.ipv6_address
        if self.aliases:
            kwargs['aliases'] = list(self.aliases)
        return kwargs


@dataclass
class VolumeMount:
    source: str
    destination: str
    mode: str = ''
    type: str = 'bind'

    def bind_spec(self) -> str:
        if self.mode:
            return f"{self.source}:{self.destination}:{self.mode}"
        return f"{self.source}:{self.destination}"


@dataclass
class CreationParams:
    """Everything needed to create an equivalent container"""
    image: str
    name: str
    command: Optional[List[str]] = None
    entrypoint: Optional[List[str]] = None
    env: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    # "80/tcp" -> [(host_ip, host_port), ...]; empty list means exposed only
    ports: Dict[str, List[Tuple[str, str]]] = field(default_factory=dict)
    mounts: List[VolumeMount] = field(default_factory=list)
    tmpfs: Dict[str, str] = field(default_factory=dict)
    networks: List[NetworkEndpoint] = field(default_factory=list)
    network_mode: Optional[str] = None
    restart_policy: Dict[str, Any] = field(default_factory=lambda: {'Name': 'no', 'MaximumRetryCount': 0})
    privileged: bool = False
    cap_add: List[str] = field(default_factory=list)
    cap_drop: List[str] = field(default_factory=list)
    dns: List[str] = field(default_factory=list)
    dns_search: List[str] = field(default_factory=list)
    extra_hosts: List[str] = field(default_factory=list)
    log_driver: Optional[str] = None
    log_options: Dict[str, str] = field(default_factory=dict)
    devices: List[Dict[str, str]] = field(default_factory=list)
    auto_remove: bool = False

    def validate(self) -> 'CreationParams':
        """
        Reject parameters the engine would refuse or misinterpret.

        Raises:
            CreationParamsError
        """
        errors = []
        if not self.image:
            errors.append("no image")
        if not self.name:
            errors.append("no container name")
        for port_key in self.ports:
            if not _PORT_KEY_RE.match(port_key):
                errors.append(f"malformed port key '{port_key}'")
        for mount in self.mounts:
            if not mount.destination:
                errors.append(f"mount '{mount.source}' has no destination")
            if not mount.source:
                errors.append(f"mount at '{mount.destination}' has no source")
        if self.network_mode in _EXCLUSIVE_NETWORK_MODES and self.networks:
            errors.append(f"network mode '{self.network_mode}' cannot attach endpoints")

        if errors:
            raise CreationParamsError(
                f"Invalid creation parameters for '{self.name or '?'}': {'; '.join(errors)}"
            )
        return self

    @property
    def primary_network(self) -> Optional[NetworkEndpoint]:
        return self.networks[0] if self.networks else None

    def create_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for APIClient.create_container (minus host/networking config)"""
        exposed = []
        for port_key in self.ports:
            port, proto = port_key.split('/')
            exposed.append((int(port), proto))

        kwargs: Dict[str, Any] = {
            'image': self.image,
            'name': self.name,
            'environment': list(self.env),
            'labels': dict(self.labels),
            'detach': True,
        }
        if exposed:
            kwargs['ports'] = exposed
        if self.command:
            kwargs['command'] = list(self.command)
        if self.entrypoint:
            kwargs['entrypoint'] = list(self.entrypoint)
        return kwargs

    def host_config_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for APIClient.create_host_config"""
        kwargs: Dict[str, Any] = {
            'restart_policy': dict(self.restart_policy),
        }

        port_bindings = {
            port_key: list(bindings)
            for port_key, bindings in self.ports.items()
            if bindings
        }
        if port_bindings:
            kwargs['port_bindings'] = port_bindings

        if self.mounts:
            kwargs['binds'] = [m.bind_spec() for m in self.mounts]
        if self.tmpfs:
            kwargs['tmpfs'] = dict(self.tmpfs)

        if self.network_mode:
            kwargs['network_mode'] = self.network_mode
        elif self.primary_network:
            kwargs['network_mode'] = self.primary_network.name

        if self.auto_remove:
            kwargs['auto_remove'] = True
        if self.privileged:
            kwargs['privileged'] = True
        if self.cap_add:
            kwargs['cap_add'] = list(self.cap_add)
        if self.cap_drop:
            kwargs['cap_drop'] = list(self.cap_drop)
        if self.dns:
            kwargs['dns'] = list(self.dns)
        if self.dns_search:
            kwargs['dns_search'] = list(self.dns_search)
        if self.extra_hosts:
            kwargs['extra_hosts'] = list(self.extra_hosts)
        if self.log_driver:
            kwargs['log_config'] = DockerLogConfig(type=self.log_driver, config=dict(self.log_options))
        if self.devices:
            kwargs['devices'] = [dict(d) for d in self.devices]
        return kwargs

    def endpoint_configs(self) -> Dict[str, Dict[str, Any]]:
        """Endpoint config kwargs for the network attached at creation time"""
        primary = self.primary_network
        if primary is None or self.network_mode:
            return {}
        return {primary.name: primary.endpoint_kwargs()}

    def extra_network_connects(self) -> Dict[str, Dict[str, Any]]:
        """Networks to connect after creation, with connect_container_to_network kwargs"""
        if self.network_mode:
            return {}
        return {n.name: n.endpoint_kwargs() for n in self.networks[1:]}


def _synthesize_networks(record: ContainerRecord) -> Tuple[List[NetworkEndpoint], Optional[str]]:
    # container:<id> and service:<name> carry no endpoints of their own
    if record.host_extras.network_mode:
        return [], record.host_extras.network_mode

    names = list(record.networks.keys())

    for mode in _EXCLUSIVE_NETWORK_MODES:
        if mode in names:
            return [], mode

    if DEFAULT_NETWORK in names and len(names) > 1:
        names.remove(DEFAULT_NETWORK)

    endpoints = []
    for name in names:
        attachment = record.networks[name]
        aliases = [
            a for a in attachment.aliases
            if not looks_like_container_id(a) and a != record.short_id
        ]
        if name == DEFAULT_NETWORK:
            # The default bridge supports neither aliases nor static addresses
            endpoints.append(NetworkEndpoint(name=name))
            continue
        endpoints.append(NetworkEndpoint(
            name=name,
            ipv4_address=attachment.ip_address,
            ipv6_address=attachment.ipv6_address,
            aliases=aliases,
        ))
    return endpoints, None


def _synthesize_mounts(record: ContainerRecord) -> Tuple[List[VolumeMount], Dict[str, str]]:
    mounts = []
    tmpfs = {}
    for mount in record.mounts:
        if mount.type == 'tmpfs':
            tmpfs[mount.destination] = ''
            continue
        # Named volumes are reattached by name
        source = mount.name if mount.type == 'volume' and mount.name else mount.source
        mode = mount.mode
        if not mode and not mount.rw:
            mode = 'ro'
        mounts.append(VolumeMount(
            source=source,
            destination=mount.destination,
            mode=mode,
            type=mount.type,
        ))
    return mounts, tmpfs


def synthesize(record: ContainerRecord, image: Optional[str] = None) -> CreationParams:
    """
    Build validated CreationParams for recreating `record`.

    Args:
        record: the container as inventoried
        image: image reference for the new container (defaults to the
            reference the container was created with, which now resolves
            to the freshly pulled image)

    Raises:
        CreationParamsError: the synthesized parameters are invalid
    """
    networks, network_mode = _synthesize_networks(record)
    mounts, tmpfs = _synthesize_mounts(record)

    policy = record.restart_policy
    restart_policy = {
        'Name': policy.name,
        'MaximumRetryCount': policy.maximum_retry_count if policy.name == 'on-failure' else 0,
    }

    extras = record.host_extras
    log_driver = None
    log_options = {}
    if extras.log_config.type and extras.log_config.type != DEFAULT_LOG_DRIVER:
        log_driver = extras.log_config.type
        log_options = dict(extras.log_config.config)

    params = CreationParams(
        image=image or record.image,
        name=record.name,
        command=list(record.command) if record.command else None,
        entrypoint=list(record.entrypoint) if record.entrypoint else None,
        env=list(record.env),
        labels=dict(record.labels),
        ports={
            port_key: [(b.host_ip, b.host_port) for b in bindings if b.is_bound]
            for port_key, bindings in record.ports.items()
        },
        mounts=mounts,
        tmpfs=tmpfs,
        networks=networks,
        network_mode=network_mode,
        restart_policy=restart_policy,
        privileged=extras.privileged,
        cap_add=list(extras.cap_add),
        cap_drop=list(extras.cap_drop),
        dns=list(extras.dns),
        dns_search=list(extras.dns_search),
        extra_hosts=list(extras.extra_hosts),
        log_driver=log_driver,
        log_options=log_options,
        devices=list(extras.devices),
        auto_remove=extras.auto_remove,
    )

    logger.debug(
        f"Synthesized creation params for {record.name}: "
        f"{len(params.ports)} port(s), {len(params.mounts)} mount(s), "
        f"networks={[n.name for n in params.networks] or params.network_mode}"
    )
    return params.validate()
