"""
mDNS discovery of TiVo devices.

Browses the local network for DNS-SD instances of one service type,
resolves each to an address and the identifier carried in its TXT
record, and keeps a thread-safe registry of the devices currently
present.
"""

from .models import Device, SessionState, format_device
from .registry import DeviceRegistry
from .session import DiscoverySession, run_discovery

__all__ = [
    "Device",
    "DeviceRegistry",
    "DiscoverySession",
    "SessionState",
    "format_device",
    "run_discovery",
]
