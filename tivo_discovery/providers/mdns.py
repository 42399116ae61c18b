"""
mDNS (Multicast DNS) provider backed by python-zeroconf.

Runs AsyncZeroconf on the session's event loop, browses a single service
type and resolves instances with AsyncServiceInfo.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Optional

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ..events import (
    AllForNow,
    CacheExhausted,
    IPAddress,
    ResolveFailed,
    ResolveSucceeded,
    ServiceAdded,
    ServiceInstance,
    ServiceRemoved,
)
from ..exceptions import ProviderError
from .base import DiscoveryProvider, EventSink, ResolverHandle

logger = logging.getLogger("tivo.discovery.providers.mdns")

IP_VERSIONS = {
    "v4": IPVersion.V4Only,
    "v6": IPVersion.V6Only,
    "all": IPVersion.All,
}


def qualify_service_type(service_type: str) -> str:
    """Turn ``_tivo-device._tcp`` into ``_tivo-device._tcp.local.``."""
    qualified = service_type.rstrip(".")
    if not qualified.endswith(".local"):
        qualified += ".local"
    return qualified + "."


def instance_from_name(full_name: str, service_type: str) -> ServiceInstance:
    """Split a zeroconf full name into instance name and domain."""
    suffix = "." + service_type
    name = full_name[: -len(suffix)] if full_name.endswith(suffix) else full_name
    domain = service_type.rstrip(".").rsplit(".", 1)[-1]
    return ServiceInstance(
        name=name,
        service_type=service_type,
        domain=domain,
        full_name=full_name,
    )


def decode_txt(properties: Optional[dict]) -> tuple[tuple[str, Optional[str]], ...]:
    """Convert zeroconf TXT properties into ordered string pairs."""
    pairs = []
    for key, value in (properties or {}).items():
        if isinstance(key, bytes):
            key = key.decode("utf-8", errors="ignore")
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        pairs.append((key, value))
    return tuple(pairs)


def pick_address(info: AsyncServiceInfo, ip_version: IPVersion) -> Optional[IPAddress]:
    """Return the first address of the instance, IPv4 first."""
    addresses = info.ip_addresses_by_version(ip_version)
    if not addresses:
        return None
    return sorted(addresses, key=lambda addr: addr.version)[0]


class ZeroconfProvider(DiscoveryProvider):
    """
    Discovery provider for python-zeroconf.

    Zeroconf has no connection-state or browser-failure notifications, so
    this provider never emits ConnectionFailure or BrowseFailure; failures
    to open surface as ProviderError from connect/browse instead.
    """

    def __init__(
        self,
        ip_version: str = "v4",
        resolve_timeout_ms: int = 3000,
        all_for_now_delay: float = 1.0,
    ):
        if ip_version not in IP_VERSIONS:
            raise ValueError(f"Unknown ip_version: '{ip_version}'. Available: {list(IP_VERSIONS)}")
        self._ip_version = IP_VERSIONS[ip_version]
        self._resolve_timeout_ms = resolve_timeout_ms
        self._all_for_now_delay = all_for_now_delay

        self._aiozc: Optional[AsyncZeroconf] = None
        self._browser: Optional[AsyncServiceBrowser] = None
        self._on_event: Optional[EventSink] = None
        self._pending: dict[ResolverHandle, asyncio.Task] = {}
        self._markers: list[asyncio.Handle] = []

    @property
    def name(self) -> str:
        return "zeroconf"

    @property
    def pending_resolves(self) -> int:
        return len(self._pending)

    async def connect(self, on_event: EventSink) -> None:
        if self._aiozc is not None:
            return
        try:
            self._aiozc = AsyncZeroconf(ip_version=self._ip_version)
        except OSError as e:
            raise ProviderError(f"Unable to create client: {e}") from e
        self._on_event = on_event
        logger.debug("Zeroconf client created")

    async def browse(self, service_type: str) -> None:
        if self._aiozc is None:
            raise ProviderError("Cannot browse before connecting")
        if self._browser is not None:
            raise ProviderError("Service browser already exists")

        qualified = qualify_service_type(service_type)
        try:
            self._browser = AsyncServiceBrowser(
                self._aiozc.zeroconf,
                [qualified],
                handlers=[self._on_service_state_change],
            )
        except Exception as e:
            raise ProviderError(f"Unable to create service browser: {e}") from e

        loop = asyncio.get_running_loop()
        self._markers = [
            loop.call_soon(self._emit, CacheExhausted()),
            loop.call_later(self._all_for_now_delay, self._emit, AllForNow()),
        ]
        logger.info("Browsing for %s", qualified)

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        # zeroconf calls handlers with keyword arguments
        instance = instance_from_name(name, service_type)
        if state_change == ServiceStateChange.Added:
            self._emit(ServiceAdded(instance))
        elif state_change == ServiceStateChange.Removed:
            self._emit(ServiceRemoved(instance))
        else:
            logger.debug("Ignoring %s for %s", state_change.name, name)

    def resolve(self, instance: ServiceInstance, context: Any) -> ResolverHandle:
        if self._aiozc is None:
            raise ProviderError("Cannot resolve before connecting")
        try:
            loop = asyncio.get_running_loop()
            info = AsyncServiceInfo(instance.service_type, instance.full_name or instance.name)
        except Exception as e:
            raise ProviderError(str(e)) from e

        task = loop.create_task(info.async_request(self._aiozc.zeroconf, self._resolve_timeout_ms))
        handle = ResolverHandle(instance, on_release=partial(self._cancel_resolve, task))
        self._pending[handle] = task
        task.add_done_callback(partial(self._on_resolve_done, handle, context, info))
        return handle

    @staticmethod
    def _cancel_resolve(task: asyncio.Task) -> None:
        if not task.done():
            task.cancel()

    def _on_resolve_done(
        self,
        handle: ResolverHandle,
        context: Any,
        info: AsyncServiceInfo,
        task: asyncio.Task,
    ) -> None:
        self._pending.pop(handle, None)
        if task.cancelled() or handle.released:
            return

        instance = handle.instance
        error = task.exception()
        if error is not None:
            self._emit(ResolveFailed(instance, handle, context, reason=str(error) or type(error).__name__))
            return
        if not task.result():
            self._emit(ResolveFailed(instance, handle, context, reason="timed out"))
            return

        address = pick_address(info, self._ip_version)
        if address is None:
            self._emit(ResolveFailed(instance, handle, context, reason="no address"))
            return

        self._emit(
            ResolveSucceeded(
                instance,
                handle,
                context,
                address=address,
                host_name=info.server,
                port=info.port,
                txt=decode_txt(info.properties),
            )
        )

    def _emit(self, event) -> None:
        if self._on_event is not None:
            self._on_event(event)

    async def close_browser(self) -> None:
        for marker in self._markers:
            marker.cancel()
        self._markers = []
        if self._browser is None:
            return
        browser, self._browser = self._browser, None
        await browser.async_cancel()
        logger.debug("Service browser released")

    async def disconnect(self) -> None:
        tasks = list(self._pending.values())
        for handle in list(self._pending):
            handle.release()
        self._pending.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("Released %d pending resolves", len(tasks))

        self._on_event = None
        if self._aiozc is None:
            return
        aiozc, self._aiozc = self._aiozc, None
        await aiozc.async_close()
        logger.debug("Zeroconf client closed")
