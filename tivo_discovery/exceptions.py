"""Exceptions raised by the discovery core."""


class DiscoveryError(Exception):
    """Base class for discovery errors."""


class ProviderError(DiscoveryError):
    """The discovery provider could not perform an operation."""
