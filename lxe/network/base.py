"""Common network plugin types and the plugin that does nothing."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any

DEFAULT_INTERFACE = "eth0"


class NotSupportedError(Exception):
    """Raised when an operation is not supported."""


class NoopError(Exception):
    """Raised by the noop plugin for operations it refuses."""


@dataclass
class Nic:
    """A network interface device to attach to a resource."""

    name: str = ""
    nic_type: str = ""
    parent: str = ""
    ipv4_address: str = ""


@dataclass
class Properties:
    """Properties of a resource at the time of a call."""

    data: dict[str, str] = field(default_factory=dict)


@dataclass
class PropertiesRunning(Properties):
    """Properties of a running resource."""

    pid: int = 0


@dataclass
class Result:
    """Information returned by a network lifecycle call."""

    data: dict[str, str] | None = None
    nics: list[Nic] = field(default_factory=list)
    network_config_entries: list[Any] = field(default_factory=list)


@dataclass
class Status:
    """Addresses of a pod network."""

    ips: list[ipaddress.IPv4Address | ipaddress.IPv6Address] = field(
        default_factory=list
    )


def _expect(prop: Any, kind: type) -> None:
    """Reject properties that are neither absent nor of the expected kind."""
    if prop is not None and not isinstance(prop, kind):
        raise TypeError(
            f"expected {kind.__name__} or None, got {type(prop).__name__}"
        )


class NoopContainerNetwork:
    """Container network context that does nothing."""

    def when_created(self, prop: Properties | None) -> Result | None:
        """Accept the creation without producing a result."""
        _expect(prop, Properties)
        return None

    def when_started(self, prop: PropertiesRunning | None) -> Result | None:
        """Accept the start without producing a result."""
        _expect(prop, PropertiesRunning)
        return None

    def when_stopped(self, prop: Properties | None) -> None:
        """Accept the stop; there is nothing to tear down."""
        _expect(prop, Properties)

    def when_deleted(self, prop: Properties | None) -> None:
        """Accept the deletion; there is nothing to tear down."""
        _expect(prop, Properties)


class NoopPodNetwork:
    """Pod network context that does nothing."""

    def container_network(
        self, id: str, annotations: dict[str, str] | None
    ) -> NoopContainerNetwork:
        return NoopContainerNetwork()

    def status(self, prop: PropertiesRunning | None) -> Status | None:
        """Report no status: this network has no addresses."""
        _expect(prop, PropertiesRunning)
        return None

    def when_created(self, prop: Properties | None) -> Result | None:
        """Accept the creation without producing a result."""
        _expect(prop, Properties)
        return None

    def when_started(self, prop: PropertiesRunning | None) -> Result | None:
        """Accept the start without producing a result."""
        _expect(prop, PropertiesRunning)
        return None

    def when_stopped(self, prop: Properties | None) -> None:
        """Accept the stop; there is nothing to tear down."""
        _expect(prop, Properties)

    def when_deleted(self, prop: Properties | None) -> None:
        """Accept the deletion; there is nothing to tear down."""
        _expect(prop, Properties)


class NoopPlugin:
    """Network plugin that does nothing."""

    name = "noop"

    def _refuse(self, reason: str) -> None:
        raise NoopError(f"{self.name} plugin {reason}")

    def pod_network(self, id: str, annotations: dict[str, str] | None) -> NoopPodNetwork:
        return NoopPodNetwork()

    def status(self) -> None:
        """Always fail: this plugin never runs."""
        self._refuse("is never running")

    def update_runtime_config(self, conf: Any) -> None:
        """Always fail: this plugin cannot apply runtime config."""
        self._refuse("can't update runtime config")


def init_plugin_noop() -> NoopPlugin:
    """Create the noop plugin."""
    return NoopPlugin()