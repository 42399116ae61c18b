"""
Discovery event types.

The provider delivers every browse, resolve and connection notification
as one of these variants. They all go through a single dispatch function
on the event-loop thread.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from .providers.base import ResolverHandle

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class ServiceInstance:
    """
    Identity of an advertised service instance.

    Carries no interface or protocol hints: zeroconf browses and resolves
    on every configured interface at once.
    """

    name: str
    service_type: str
    domain: str = "local"
    # Provider-specific fully-qualified name, if it differs from name
    full_name: Optional[str] = None


@dataclass(frozen=True)
class ServiceAdded:
    instance: ServiceInstance


@dataclass(frozen=True)
class ServiceRemoved:
    instance: ServiceInstance


@dataclass(frozen=True)
class CacheExhausted:
    """Provider has delivered everything it had cached."""


@dataclass(frozen=True)
class AllForNow:
    """Initial burst of known instances has been delivered."""


@dataclass(frozen=True)
class BrowseFailure:
    reason: str


@dataclass(frozen=True)
class ConnectionFailure:
    reason: str


@dataclass(frozen=True)
class ResolveSucceeded:
    instance: ServiceInstance
    resolver: ResolverHandle
    context: Any
    address: IPAddress
    host_name: Optional[str] = None
    port: Optional[int] = None
    # Ordered TXT key/value pairs; value is None for a bare key
    txt: tuple[tuple[str, Optional[str]], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ResolveFailed:
    instance: ServiceInstance
    resolver: ResolverHandle
    context: Any
    reason: str


BrowseEvent = Union[ServiceAdded, ServiceRemoved, CacheExhausted, AllForNow, BrowseFailure]
ResolveEvent = Union[ResolveSucceeded, ResolveFailed]
DiscoveryEvent = Union[BrowseEvent, ResolveEvent, ConnectionFailure]
