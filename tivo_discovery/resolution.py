"""
Resolution of discovered instances.

Turns a just-inserted placeholder Device into a resolved one: issues one
resolve request per instance and consumes the provider's single result
callback for it.
"""

import ipaddress
import logging
from typing import Iterable, Optional, Union

from .events import IPAddress, ResolveEvent, ResolveFailed, ServiceInstance
from .exceptions import ProviderError
from .models import Device
from .providers.base import DiscoveryProvider, ResolverHandle
from .registry import DeviceRegistry

logger = logging.getLogger("tivo.discovery.resolution")


def format_address(address: Union[IPAddress, str]) -> str:
    """Render an address in display form."""
    return str(ipaddress.ip_address(address))


def find_txt_value(txt: Iterable[tuple[str, Optional[str]]], key: str) -> Optional[str]:
    """Return the value of the first TXT entry named ``key`` (case-insensitive)."""
    wanted = key.lower()
    for entry_key, value in txt:
        if entry_key.lower() == wanted:
            return value
    return None


class ResolutionHandler:
    """Issues resolve requests and applies their results to the registry."""

    def __init__(
        self,
        provider: DiscoveryProvider,
        registry: DeviceRegistry,
        identifier_key: str = "TSN",
    ):
        self._provider = provider
        self._registry = registry
        self._identifier_key = identifier_key

    def request(self, instance: ServiceInstance, device: Device) -> Optional[ResolverHandle]:
        """
        Ask the provider to resolve ``instance``.

        The handle is not kept: it comes back with the result event and is
        released there. Returns None if the request could not be issued;
        the device then stays registered but unresolved.
        """
        try:
            return self._provider.resolve(instance, device)
        except ProviderError as e:
            logger.error("Failed to resolve service '%s': %s", instance.name, e)
            return None

    def handle(self, event: ResolveEvent) -> None:
        """Consume a resolve result. Releases the resolver in every case."""
        try:
            if isinstance(event, ResolveFailed):
                instance = event.instance
                logger.error(
                    "Failed to resolve service '%s' of type '%s' in domain '%s': %s",
                    instance.name,
                    instance.service_type,
                    instance.domain,
                    event.reason,
                )
            else:
                self._apply(event)
        finally:
            event.resolver.release()

    def _apply(self, event) -> None:
        device: Device = event.context
        address = format_address(event.address)
        identifier = find_txt_value(event.txt, self._identifier_key)

        updated = self._registry.update_resolved(
            device,
            address=address,
            identifier=identifier,
            host_name=event.host_name,
            port=event.port,
        )
        if not updated:
            logger.debug("Discarding resolve for '%s': device no longer registered", device.name)
            return

        logger.info(
            "Resolved '%s' to %s '%s' at %s",
            device.name,
            self._identifier_key,
            identifier,
            address,
        )
