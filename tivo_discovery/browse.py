"""
Browse event handling.

Keeps the registry in step with the service browser: new instances get a
placeholder and a resolve request, removed instances are dropped.
"""

import logging
from typing import Callable

from .events import (
    AllForNow,
    BrowseEvent,
    BrowseFailure,
    CacheExhausted,
    ServiceAdded,
    ServiceRemoved,
)
from .registry import DeviceRegistry
from .resolution import ResolutionHandler

logger = logging.getLogger("tivo.discovery.browse")


class BrowseHandler:
    """
    Consumes events from the live service browser.

    A browser failure is fatal for the session: it is reported through
    ``on_failure`` and the browser is not recreated.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        resolution: ResolutionHandler,
        on_failure: Callable[[str], None],
    ):
        self._registry = registry
        self._resolution = resolution
        self._on_failure = on_failure
        self._handlers = {
            ServiceAdded: self._on_added,
            ServiceRemoved: self._on_removed,
            CacheExhausted: self._on_cache_exhausted,
            AllForNow: self._on_all_for_now,
            BrowseFailure: self._on_browse_failure,
        }

    def handle(self, event: BrowseEvent) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("Unhandled browse event: %r", event)
            return
        handler(event)

    def _on_added(self, event: ServiceAdded) -> None:
        instance = event.instance
        logger.debug("Found service '%s' in domain '%s'", instance.name, instance.domain)

        device = self._registry.insert(instance.name, domain=instance.domain)
        # On failure the placeholder stays registered but unresolved
        self._resolution.request(instance, device)

    def _on_removed(self, event: ServiceRemoved) -> None:
        logger.info("Device '%s' disappeared from network", event.instance.name)
        self._registry.remove(event.instance.name)

    def _on_cache_exhausted(self, event: CacheExhausted) -> None:
        logger.info("(Browser) cache exhausted")

    def _on_all_for_now(self, event: AllForNow) -> None:
        logger.info("(Browser) all for now: %d devices known", len(self._registry))

    def _on_browse_failure(self, event: BrowseFailure) -> None:
        logger.error("(Browser) %s", event.reason)
        self._on_failure(event.reason)
