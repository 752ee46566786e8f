"""Network plugin that manages pod networks through CNI."""

from __future__ import annotations

import dataclasses
import ipaddress
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TextIO

from lxe.network.base import (
    DEFAULT_INTERFACE,
    NoopContainerNetwork,
    NoopPlugin,
    NoopPodNetwork,
    Properties,
    PropertiesRunning,
    Result,
    Status,
)

DEFAULT_CNI_BIN_PATH = "/opt/cni/bin"
DEFAULT_CNI_CONF_PATH = "/etc/cni/net.d"
DEFAULT_CNI_NETNS_PATH = "/run/netns"

CURRENT_CNI_VERSION = "1.0.0"
_VERSIONS_020 = frozenset({"0.1.0", "0.2.0"})
_VERSIONS_040 = frozenset({"0.3.0", "0.3.1", "0.4.0", CURRENT_CNI_VERSION})
_CONF_EXTENSIONS = (".conf", ".conflist", ".json")

_log = logging.getLogger(__name__)


class NoNetworksFoundError(Exception):
    """Raised when no usable CNI network configuration exists."""


class CNIExecutor(Protocol):
    """Runs the CNI plugins of a network configuration list."""

    def add_network_list(self, net_list: NetworkConfigList, runtime_conf: RuntimeConf) -> Any:
        ...

    def del_network_list(self, net_list: NetworkConfigList, runtime_conf: RuntimeConf) -> None:
        ...


@dataclass
class ConfCNI:
    """Options of the CNI plugin; empty values get defaults."""

    bin_path: str = ""
    conf_path: str = ""
    netns_path: str = ""
    output_writer: TextIO | None = None


@dataclass
class RuntimeConf:
    """Per-call runtime information handed to the CNI plugins."""

    container_id: str
    net_ns: str = ""
    if_name: str = DEFAULT_INTERFACE
    args: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class NetworkConfigList:
    """A named list of CNI plugin configurations."""

    name: str
    cni_version: str = ""
    plugins: list[dict[str, Any]] = field(default_factory=list)


def _parse_json_object(raw: bytes, what: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"error parsing {what}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"error parsing {what}: not a JSON object")
    return data


def _conf_from_bytes(raw: bytes) -> dict[str, Any]:
    conf = _parse_json_object(raw, "configuration")
    for key in ("name", "type", "cniVersion"):
        if key in conf and not isinstance(conf[key], str):
            raise ValueError(f"error parsing configuration: invalid {key!r} type")
    return conf


def _conf_list_from_bytes(raw: bytes) -> NetworkConfigList:
    data = _parse_json_object(raw, "configuration list")
    if "name" not in data:
        raise ValueError("error parsing configuration list: no name")
    name = data["name"]
    if not isinstance(name, str):
        raise ValueError(f"error parsing configuration list: invalid name type {type(name).__name__}")
    version = data.get("cniVersion", "")
    if not isinstance(version, str):
        raise ValueError(
            f"error parsing configuration list: invalid cniVersion type {type(version).__name__}"
        )
    if "plugins" not in data:
        raise ValueError("error parsing configuration list: no 'plugins' key")
    plugins = data["plugins"]
    if not isinstance(plugins, list):
        raise ValueError(
            f"error parsing configuration list: invalid 'plugins' type {type(plugins).__name__}"
        )
    if not plugins:
        raise ValueError("error parsing configuration list: no plugins in list")
    parsed = []
    for index, plugin in enumerate(plugins):
        try:
            parsed.append(_conf_from_bytes(json.dumps(plugin).encode()))
        except ValueError as exc:
            raise ValueError(f"failed to parse plugin config {index}: {exc}") from exc
    return NetworkConfigList(name=name, cni_version=version, plugins=parsed)


def _conf_files(conf_dir: Path) -> list[Path]:
    if not conf_dir.exists():
        return []
    return sorted(
        (p for p in conf_dir.iterdir() if p.is_file() and p.suffix in _CONF_EXTENSIONS),
        key=str,
    )


def load_network_config_list(conf_dir: str | Path) -> NetworkConfigList:
    """Load the first usable network configuration from ``conf_dir``.

    Files are tried in sorted order; broken ones are skipped with a warning.
    Raises NoNetworksFoundError if none can be used.
    """
    conf_dir = Path(conf_dir)
    files = _conf_files(conf_dir)
    if not files:
        raise NoNetworksFoundError(f"no valid networks found in {conf_dir}")

    warnings: list[str] = []
    for conf_file in files:
        try:
            raw = conf_file.read_bytes()
        except OSError as exc:
            warnings.append(f"{exc}, error reading CNI config file {conf_file}")
            continue

        if conf_file.suffix == ".conflist":
            try:
                conf_list = _conf_list_from_bytes(raw)
            except ValueError as exc:
                warnings.append(f"{exc}, error loading CNI config list file {conf_file}")
                continue
        else:
            try:
                conf = _conf_from_bytes(raw)
            except ValueError as exc:
                warnings.append(f"{exc}, error loading CNI config file {conf_file}")
                continue
            # A missing type also catches a conflist written into a conf file.
            if not conf.get("type"):
                warnings.append(
                    f"error loading CNI config file {conf_file}: no 'type'; perhaps this is a .conflist?"
                )
                continue
            conf_list = NetworkConfigList(
                name=conf.get("name", ""),
                cni_version=conf.get("cniVersion", ""),
                plugins=[conf],
            )

        if not conf_list.plugins:
            warnings.append(f"CNI config list {conf_file} has no networks, skipping")
            continue

        for warning in warnings:
            _log.warning(warning)
        return conf_list

    detail = "; ".join(warnings)
    raise NoNetworksFoundError(f"no valid networks found in {conf_dir}: {detail}")


def _checked_cidr(value: Any) -> str:
    if not isinstance(value, str) or "/" not in value:
        raise ValueError(f"invalid CIDR address: {value!r}")
    try:
        ipaddress.ip_interface(value)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR address: {value!r}") from exc
    return value


def _checked_ip(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"invalid IP address: {value!r}")
    try:
        ipaddress.ip_address(value)
    except ValueError as exc:
        raise ValueError(f"invalid IP address: {value!r}") from exc
    return value


def _ip_config(entry: Any, address_key: str) -> dict[str, Any]:
    if not isinstance(entry, Mapping):
        raise ValueError(f"invalid IP config: {entry!r}")
    config: dict[str, Any] = {}
    if entry.get("interface") is not None:
        config["interface"] = entry["interface"]
    if entry.get(address_key) is not None:
        config["address"] = _checked_cidr(entry[address_key])
    if entry.get("gateway"):
        config["gateway"] = _checked_ip(entry["gateway"])
    return config


def _assemble(interfaces: Any, ips: list[dict[str, Any]], routes: Any, dns: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"cniVersion": CURRENT_CNI_VERSION}
    if interfaces:
        result["interfaces"] = list(interfaces)
    if ips:
        result["ips"] = ips
    if routes:
        result["routes"] = list(routes)
    result["dns"] = dict(dns) if isinstance(dns, Mapping) else {}
    return result


def _from_020(raw: Mapping[str, Any]) -> dict[str, Any]:
    ips = []
    routes: list[Any] = []
    for key in ("ip4", "ip6"):
        entry = raw.get(key)
        if entry is None:
            continue
        ips.append(_ip_config(entry, "ip"))
        routes.extend(entry.get("routes") or [])
    return _assemble(None, ips, routes, raw.get("dns"))


def _from_040(raw: Mapping[str, Any]) -> dict[str, Any]:
    ips = [_ip_config(entry, "address") for entry in raw.get("ips") or []]
    return _assemble(raw.get("interfaces"), ips, raw.get("routes"), raw.get("dns"))


def convert_result(data: Mapping[str, Any] | str | bytes | None) -> dict[str, Any]:
    """Convert a CNI result of any supported version to the current version."""
    if isinstance(data, Mapping):
        raw: Any = dict(data)
    else:
        try:
            raw = json.loads(data if data is not None else b"")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError(f"decoding version from network config: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("decoding version from network config: not a JSON object")

    version = raw.get("cniVersion") or "0.1.0"
    if not isinstance(version, str):
        raise ValueError(f"invalid cniVersion: {version!r}")
    if version in _VERSIONS_020:
        return _from_020(raw)
    if version in _VERSIONS_040:
        return _from_040(raw)
    raise ValueError(f"unsupported CNI result version {version!r}")


class CNIPlugin(NoopPlugin):
    """Manages pod networks using CNI."""

    def __init__(self, cni: CNIExecutor, conf: ConfCNI) -> None:
        self.cni = cni
        self.conf = conf

    def pod_network(self, id: str, annotations: dict[str, str] | None) -> CNIPodNetwork:
        """Enter a pod network context using the current configuration."""
        net_list = load_network_config_list(self.conf.conf_path)
        return CNIPodNetwork(
            plugin=self,
            net_list=net_list,
            runtime_conf=self.get_runtime_conf(id),
            annotations=annotations,
        )

    def update_runtime_config(self, conf: Any) -> None:
        """Accept runtime config updates; nothing needs to be applied."""
        return None

    def get_runtime_conf(self, id: str) -> RuntimeConf:
        """Return the runtime conf used to call the plugins for ``id``."""
        return RuntimeConf(container_id=id, net_ns="", if_name=DEFAULT_INTERFACE, args=[])


@dataclass
class CNIContainerNetwork(NoopContainerNetwork):
    """Container network context backed by CNI."""

    pod: CNIPodNetwork
    cid: str
    annotations: dict[str, str] | None = None

    def when_started(self, prop: PropertiesRunning) -> Result:
        """Attach the network inside the started container's namespace."""
        result = self.pod.setup(f"/proc/{int(prop.pid)}/ns/net")
        return Result(data={"result": json.dumps(result, separators=(",", ":"))})

    def when_deleted(self, prop: Properties | None) -> None:
        """Tear the network down as well as possible."""
        self.pod.teardown()


@dataclass
class CNIPodNetwork(NoopPodNetwork):
    """Pod network context backed by CNI."""

    plugin: CNIPlugin
    net_list: NetworkConfigList | None
    runtime_conf: RuntimeConf
    annotations: dict[str, str] | None = None

    def container_network(
        self, id: str, annotations: dict[str, str] | None
    ) -> CNIContainerNetwork:
        """Enter a container network context."""
        return CNIContainerNetwork(pod=self, cid=id, annotations=annotations)

    def status(self, prop: PropertiesRunning | None) -> Status:
        """Report the IP recorded in the saved CNI result."""
        data = prop.data if prop is not None and prop.data else {}
        return Status(ips=self.ips(data.get("result", "")))

    def setup(self, netfile: str) -> dict[str, Any]:
        """Create the network interface in ``netfile`` and return the result."""
        self.runtime_conf.net_ns = netfile
        previous = self.plugin.cni.add_network_list(self.net_list, self.runtime_conf)
        return convert_result(previous)

    def teardown(self) -> None:
        """Remove the network as completely as possible."""
        self.runtime_conf.net_ns = ""
        self.plugin.cni.del_network_list(self.net_list, self.runtime_conf)

    def ips(
        self, previous_result: Mapping[str, Any] | str | bytes | None
    ) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
        """Return the first address of a saved CNI result."""
        result = convert_result(previous_result if previous_result is not None else b"")
        ips = result.get("ips") or []
        container_id = self.runtime_conf.container_id
        if not ips:
            raise ValueError(f"missing address: for {container_id}")
        address = ips[0].get("address")
        if not address:
            raise ValueError(f"invalid address: for {container_id}")
        return [ipaddress.ip_interface(address).ip]


def init_plugin_cni(conf: ConfCNI | None, cni: CNIExecutor) -> CNIPlugin:
    """Create the CNI plugin, filling in default paths."""
    conf = dataclasses.replace(conf) if conf is not None else ConfCNI()
    if not conf.bin_path:
        conf.bin_path = DEFAULT_CNI_BIN_PATH
    if not conf.conf_path:
        conf.conf_path = DEFAULT_CNI_CONF_PATH
    if not conf.netns_path:
        conf.netns_path = DEFAULT_CNI_NETNS_PATH
    return CNIPlugin(cni, conf)