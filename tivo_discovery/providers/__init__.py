"""
Service discovery providers.

A provider owns the mDNS protocol machinery and reports browse, resolve
and connection events to the discovery session:
- zeroconf: python-zeroconf on the session's event loop
"""

from .base import DiscoveryProvider, EventSink, ResolverHandle
from .mdns import ZeroconfProvider

__all__ = [
    "DiscoveryProvider",
    "EventSink",
    "ResolverHandle",
    "ZeroconfProvider",
]
