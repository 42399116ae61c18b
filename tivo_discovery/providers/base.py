"""
Base provider protocol for service discovery.

A provider owns the mDNS machinery (sockets, caches, query scheduling)
and turns network activity into discovery events. All provider methods
are called on the session's event-loop thread, and the provider delivers
every event on that same thread.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ..events import DiscoveryEvent, ServiceInstance

logger = logging.getLogger("tivo.discovery.providers.base")

EventSink = Callable[[DiscoveryEvent], None]


class ResolverHandle:
    """
    One-shot handle for a pending resolve request.

    ``release`` frees the request exactly once; later calls do nothing.
    Both the resolution handler (after its callback) and the provider
    (on teardown) may call it.
    """

    def __init__(self, instance: ServiceInstance, on_release: Optional[Callable[[], None]] = None):
        self.instance = instance
        self._on_release = on_release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Release the request. Returns False if it was already released."""
        if self._released:
            return False
        self._released = True
        if self._on_release is not None:
            self._on_release()
        return True

    def __repr__(self) -> str:
        state = "released" if self._released else "pending"
        return f"<ResolverHandle {self.instance.name!r} {state}>"


class DiscoveryProvider(ABC):
    """
    Abstract base class for discovery providers.

    Lifecycle: ``connect``, ``browse``, any number of ``resolve`` calls, then
    ``close_browser`` and ``disconnect``. Both close methods must be safe
    to call when the matching open step never happened.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging (e.g., 'zeroconf')."""
        ...

    @abstractmethod
    async def connect(self, on_event: EventSink) -> None:
        """
        Open the provider connection.

        Every event produced afterwards is delivered through ``on_event``.

        Raises:
            ProviderError: If the connection cannot be opened
        """
        ...

    @abstractmethod
    async def browse(self, service_type: str) -> None:
        """
        Create the service browser for ``service_type``.

        Raises:
            ProviderError: If the browser cannot be created
        """
        ...

    @abstractmethod
    def resolve(self, instance: ServiceInstance, context: Any) -> ResolverHandle:
        """
        Issue one asynchronous resolve request for ``instance``.

        The outcome arrives later as exactly one ResolveSucceeded or
        ResolveFailed event carrying ``context`` and the returned handle,
        unless the handle is released first.

        Raises:
            ProviderError: If the request cannot be issued
        """
        ...

    @abstractmethod
    async def close_browser(self) -> None:
        """Release the service browser."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection and release every pending resolve request."""
        ...
