"""Network plugin that attaches pods to an LXD managed bridge."""

from __future__ import annotations

import dataclasses
import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from lxe.cloudinit import NetworkConfigEntryPhysical, NetworkConfigEntryPhysicalSubnet
from lxe.network.base import (
    DEFAULT_INTERFACE,
    Nic,
    NoopContainerNetwork,
    NoopPlugin,
    NoopPodNetwork,
    Properties,
    PropertiesRunning,
    Result,
    Status,
)
from lxe.network.iputil import find_free_ip

DEFAULT_LXD_BRIDGE = "lxdbr0"


class NetworkNotFoundError(Exception):
    """Raised by a server when the requested network does not exist."""


class NotBridgeError(Exception):
    """Raised when the configured network exists but is not a bridge."""


class FeatureNotImplementedError(Exception):
    """Raised for configurations the plugin cannot handle yet."""


@dataclass
class ConfLXDBridge:
    """Options of the bridge plugin; empty values get defaults."""

    lxd_bridge: str = ""
    cidr: str = ""
    nat: bool = False
    create_only: bool = False


def _lease_address(lease: Any) -> str:
    if isinstance(lease, Mapping):
        return lease.get("address", "")
    if isinstance(lease, str):
        return lease
    return getattr(lease, "address", "")


def _bridge_address(cidr: str) -> str:
    """Return the first address of ``cidr`` in CIDR notation."""
    network = ipaddress.ip_network(cidr, strict=False)
    if network.version != 4:
        raise ValueError(f"not an IPv4 cidr: {cidr}")
    packed = bytearray(network.network_address.packed)
    packed[3] = (packed[3] + 1) % 256
    return f"{ipaddress.IPv4Address(bytes(packed))}/{network.prefixlen}"


class LXDBridgePlugin(NoopPlugin):
    """Manages pod networks on an LXD bridge.

    The server provides ``get_network(name)`` returning ``(network, etag)``
    and raising NetworkNotFoundError when missing, ``create_network(post)``,
    ``update_network(name, put, etag)`` and ``get_network_leases(name)``.
    Networks are mappings with ``type``, ``description`` and ``config``.
    """

    def __init__(self, server: Any, conf: ConfLXDBridge) -> None:
        self.server = server
        self.conf = conf

    def pod_network(
        self, id: str, annotations: dict[str, str] | None
    ) -> LXDBridgePodNetwork:
        """Enter a pod network context."""
        return LXDBridgePodNetwork(plugin=self, pod_id=id, annotations=annotations)

    def update_runtime_config(self, pod_cidr: str | None) -> None:
        """Apply a new pod cidr to the bridge if one is given."""
        if pod_cidr:
            self.conf.cidr = pod_cidr
            self.ensure_bridge()

    def ensure_bridge(self) -> None:
        """Create the bridge, or bring its settings up to date."""
        address = _bridge_address(self.conf.cidr) if self.conf.cidr else "auto"
        config = {
            "ipv4.address": address,
            "ipv4.dhcp": "true",
            "ipv4.nat": "true" if self.conf.nat else "false",
            "ipv6.address": "none",
            # DNS comes from the mounted resolv.conf; disable it in dnsmasq.
            "raw.dnsmasq": "port=0",
        }
        description = "managed by LXE, default bridge"

        try:
            network, etag = self.server.get_network(self.conf.lxd_bridge)
        except NetworkNotFoundError:
            self.server.create_network(
                {
                    "name": self.conf.lxd_bridge,
                    "type": "bridge",
                    "description": description,
                    "config": config,
                }
            )
            return

        network_type = network.get("type", "")
        if network_type != "bridge":
            raise NotBridgeError(
                f"not a bridge: {self.conf.lxd_bridge}, but is {network_type}"
            )

        if self.conf.create_only:
            return

        merged = dict(network.get("config") or {})
        merged.update(config)
        self.server.update_network(
            self.conf.lxd_bridge,
            {"description": network.get("description", ""), "config": merged},
            etag,
        )

    def find_free_ip(self) -> ipaddress.IPv4Address:
        """Pick an address of the bridge's range that has no lease."""
        network, _ = self.server.get_network(self.conf.lxd_bridge)
        config = network.get("config") or {}
        if config.get("ipv4.dhcp.ranges"):
            raise FeatureNotImplementedError(
                "not implemented to find an IP with explicitly set ip ranges "
                f"`ipv4.dhcp.ranges` in bridge {self.conf.lxd_bridge}"
            )

        leases = []
        for lease in self.server.get_network_leases(self.conf.lxd_bridge):
            try:
                leases.append(ipaddress.ip_address(_lease_address(lease)))
            except ValueError:
                continue

        interface = ipaddress.ip_interface(config.get("ipv4.address", ""))
        leases.append(interface.ip)
        return find_free_ip(interface.network, leases)


@dataclass
class LXDBridgeContainerNetwork(NoopContainerNetwork):
    """Container network context on the bridge."""

    pod: LXDBridgePodNetwork
    cid: str
    annotations: dict[str, str] | None = None


@dataclass
class LXDBridgePodNetwork(NoopPodNetwork):
    """Pod network context on the bridge."""

    plugin: LXDBridgePlugin
    pod_id: str
    annotations: dict[str, str] | None = field(default=None)

    def container_network(
        self, id: str, annotations: dict[str, str] | None
    ) -> LXDBridgeContainerNetwork:
        """Enter a container network context."""
        return LXDBridgeContainerNetwork(pod=self, cid=id, annotations=annotations)

    def status(self, prop: PropertiesRunning | None) -> Status:
        """Report the address saved when the pod was created."""
        data = prop.data if prop is not None and prop.data else {}
        address = data.get("interface-address", "")
        if not address:
            raise ValueError("interface address missing")
        try:
            ip = ipaddress.ip_address(address)
        except ValueError as exc:
            raise ValueError(f"invalid IP address: {address}") from exc
        return Status(ips=[ip])

    def when_created(self, prop: Properties | None) -> Result:
        """Reserve an address and describe the interface to attach."""
        ip = str(self.plugin.find_free_ip())
        return Result(
            data={"interface-address": ip},
            nics=[
                Nic(
                    name=DEFAULT_INTERFACE,
                    nic_type="bridged",
                    parent=self.plugin.conf.lxd_bridge,
                    ipv4_address=ip,
                )
            ],
            network_config_entries=[
                NetworkConfigEntryPhysical(
                    name=DEFAULT_INTERFACE,
                    subnets=[NetworkConfigEntryPhysicalSubnet(type="dhcp")],
                )
            ],
        )


def init_plugin_lxd_bridge(
    server: Any, conf: ConfLXDBridge | None = None
) -> LXDBridgePlugin:
    """Create the bridge plugin and make sure its bridge exists."""
    conf = dataclasses.replace(conf) if conf is not None else ConfLXDBridge()
    if not conf.lxd_bridge:
        conf.lxd_bridge = DEFAULT_LXD_BRIDGE
    plugin = LXDBridgePlugin(server, conf)
    plugin.ensure_bridge()
    return plugin