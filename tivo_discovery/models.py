"""
Data models for discovered devices.

These are plain dataclasses. A Device is owned by the DeviceRegistry;
everything handed out to readers is a copy.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Lifecycle of a DiscoverySession. STOPPED is terminal."""

    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class Device:
    """One discovered service instance."""

    name: str
    domain: Optional[str] = None

    # Filled in by resolution
    address: Optional[str] = None
    identifier: Optional[str] = None
    host_name: Optional[str] = None
    port: Optional[int] = None

    discovered_at: datetime = field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.address is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "domain": self.domain,
            "address": self.address,
            "identifier": self.identifier,
            "host_name": self.host_name,
            "port": self.port,
            "discovered_at": self.discovered_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


def format_device(device: Device) -> str:
    """Render a device as ``name, identifier, address``."""
    return f"{device.name}, {device.identifier or '-'}, {device.address or '-'}"
