"""Cloud-init v1 network configuration documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class NetworkConfigEntryPhysicalSubnet:
    """A subnet of a physical device entry."""

    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the entry as a serialisable mapping."""
        return {"type": self.type}


@dataclass
class NetworkConfigEntryNameserver:
    """A nameserver entry of the v1 network config."""

    address: list[str] = field(default_factory=list)
    search: list[str] = field(default_factory=list)
    type: str = "nameserver"

    def to_dict(self) -> dict[str, Any]:
        """Return the entry as a serialisable mapping."""
        return {
            "type": self.type,
            "address": list(self.address),
            "search": list(self.search),
        }


@dataclass
class NetworkConfigEntryPhysical:
    """A physical device entry of the v1 network config."""

    name: str = ""
    subnets: list[NetworkConfigEntryPhysicalSubnet] = field(default_factory=list)
    type: str = "physical"

    def to_dict(self) -> dict[str, Any]:
        """Return the entry as a serialisable mapping."""
        return {
            "type": self.type,
            "name": self.name,
            "subnets": [subnet.to_dict() for subnet in self.subnets],
        }


@dataclass
class NetworkConfig:
    """Root element of a cloud-init network config."""

    version: int = 1
    config: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the document as a serialisable mapping."""
        return {
            "version": self.version,
            "config": [
                entry.to_dict() if hasattr(entry, "to_dict") else entry
                for entry in self.config
            ],
        }