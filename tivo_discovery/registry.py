"""
Registry of currently-present devices.

Written from the event-loop thread and read from any other thread.
Every structural change, every in-place resolution fill, and every
snapshot happen under one lock.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from .models import Device

logger = logging.getLogger("tivo.discovery.registry")


class DeviceRegistry:
    """
    Thread-safe collection of Device, keyed by instance name.

    The registry owns its Device objects. ``insert`` hands back the linked
    Device only as a correlation handle for ``update_resolved``; readers
    get copies from ``snapshot`` and ``get``.
    """

    def __init__(self):
        self._devices: dict[str, Device] = {}
        self._lock = Lock()

    def insert(self, name: str, domain: Optional[str] = None) -> Device:
        """Link a placeholder Device for ``name`` and return it."""
        device = Device(name=name, domain=domain)
        with self._lock:
            replaced = self._devices.get(name)
            self._devices[name] = device
        if replaced is not None:
            logger.warning("Replacing existing device entry: %s", name)
        return device

    def remove(self, name: str) -> bool:
        """Unlink the Device named ``name``. Unknown names are a no-op."""
        with self._lock:
            device = self._devices.pop(name, None)
        if device is None:
            logger.debug("Remove for unknown device ignored: %s", name)
            return False
        return True

    def update_resolved(
        self,
        device: Device,
        address: str,
        identifier: Optional[str] = None,
        host_name: Optional[str] = None,
        port: Optional[int] = None,
    ) -> bool:
        """
        Fill in the resolved fields of a linked Device.

        Returns False (and writes nothing) when ``device`` is no longer the
        entry registered under its name, e.g. it was removed, or replaced by
        a newer announcement, before its resolve completed.
        """
        with self._lock:
            if self._devices.get(device.name) is not device:
                return False
            device.address = address
            device.identifier = identifier
            device.host_name = host_name
            device.port = port
            device.resolved_at = datetime.now(timezone.utc)
        return True

    def get(self, name: str) -> Optional[Device]:
        """Return a copy of the Device named ``name``, if present."""
        with self._lock:
            device = self._devices.get(name)
            return replace(device) if device is not None else None

    def snapshot(self) -> list[Device]:
        """Return a point-in-time copy of every registered Device."""
        with self._lock:
            return [replace(device) for device in self._devices.values()]

    def names(self) -> list[str]:
        with self._lock:
            return list(self._devices.keys())

    def clear(self) -> None:
        """Remove all devices."""
        with self._lock:
            count = len(self._devices)
            self._devices.clear()
        if count:
            logger.info("Cleared %d devices", count)

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._devices
