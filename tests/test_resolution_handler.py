"""Tests for ResolutionHandler.

Covers:
- TXT identifier lookup (present, missing, case, bare key)
- failure leaves the placeholder untouched
- the resolver handle is released exactly once
- stale results for removed devices
"""

from ipaddress import ip_address
from unittest.mock import MagicMock

import pytest

from tivo_discovery.events import ResolveFailed, ResolveSucceeded, ServiceInstance
from tivo_discovery.exceptions import ProviderError
from tivo_discovery.providers.base import ResolverHandle
from tivo_discovery.registry import DeviceRegistry
from tivo_discovery.resolution import ResolutionHandler, find_txt_value, format_address

SERVICE_TYPE = "_tivo-device._tcp.local."


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _instance(name: str) -> ServiceInstance:
    return ServiceInstance(name=name, service_type=SERVICE_TYPE, domain="local")


def _success(device, address="192.168.1.50", txt=(("TSN", "A94-0000123"),)):
    instance = _instance(device.name)
    return ResolveSucceeded(
        instance,
        ResolverHandle(instance),
        device,
        address=ip_address(address),
        host_name="DVR-0123.local.",
        port=443,
        txt=tuple(txt),
    )


def _failure(device, reason="timed out"):
    instance = _instance(device.name)
    return ResolveFailed(instance, ResolverHandle(instance), device, reason=reason)


@pytest.fixture
def registry():
    return DeviceRegistry()


@pytest.fixture
def provider():
    return MagicMock()


@pytest.fixture
def handler(provider, registry):
    return ResolutionHandler(provider, registry, identifier_key="TSN")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestHelpers:

    def test_find_txt_value(self):
        txt = [("platform", "tcd/Series5"), ("TSN", "A94-0000123")]
        assert find_txt_value(txt, "TSN") == "A94-0000123"

    def test_find_txt_value_case_insensitive(self):
        assert find_txt_value([("tsn", "X")], "TSN") == "X"

    def test_find_txt_value_first_match_wins(self):
        assert find_txt_value([("TSN", "first"), ("TSN", "second")], "TSN") == "first"

    def test_find_txt_value_missing(self):
        assert find_txt_value([("platform", "tcd")], "TSN") is None
        assert find_txt_value([], "TSN") is None

    def test_find_txt_value_bare_key(self):
        assert find_txt_value([("TSN", None)], "TSN") is None

    def test_format_address(self):
        assert format_address(ip_address("192.168.1.50")) == "192.168.1.50"
        assert format_address("fe80:0:0:0:0:0:0:1") == "fe80::1"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequest:

    def test_issues_resolve_with_device_as_context(self, handler, provider, registry):
        device = registry.insert("Living Room")
        instance = _instance("Living Room")

        handle = handler.request(instance, device)

        provider.resolve.assert_called_once_with(instance, device)
        assert handle is provider.resolve.return_value

    def test_provider_error_keeps_placeholder(self, handler, provider, registry):
        provider.resolve.side_effect = ProviderError("cannot allocate")
        device = registry.insert("Den")

        assert handler.request(_instance("Den"), device) is None
        assert registry.get("Den").address is None
        assert len(registry) == 1


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestResults:

    def test_success_sets_address_and_identifier(self, handler, registry):
        device = registry.insert("Living Room")

        handler.handle(_success(device))

        stored = registry.get("Living Room")
        assert stored.address == "192.168.1.50"
        assert stored.identifier == "A94-0000123"
        assert stored.host_name == "DVR-0123.local."
        assert stored.port == 443

    def test_success_without_key_sets_address_only(self, handler, registry):
        device = registry.insert("Office")

        handler.handle(_success(device, txt=[("platform", "tcd/Series4")]))

        stored = registry.get("Office")
        assert stored.address == "192.168.1.50"
        assert stored.identifier is None

    def test_uses_configured_key(self, provider, registry):
        handler = ResolutionHandler(provider, registry, identifier_key="serial")
        device = registry.insert("Office")

        handler.handle(_success(device, txt=[("TSN", "nope"), ("serial", "S-1")]))

        assert registry.get("Office").identifier == "S-1"

    def test_failure_leaves_placeholder(self, handler, registry):
        device = registry.insert("Bedroom")
        before = registry.get("Bedroom")

        handler.handle(_failure(device))

        after = registry.get("Bedroom")
        assert after == before
        assert after.address is None
        assert after.identifier is None

    def test_failure_is_logged_at_error(self, handler, registry, caplog):
        device = registry.insert("Bedroom")

        with caplog.at_level("ERROR", logger="tivo.discovery.resolution"):
            handler.handle(_failure(device, reason="network unreachable"))

        assert "Bedroom" in caplog.text
        assert "network unreachable" in caplog.text

    @pytest.mark.parametrize("make_event", [_success, _failure])
    def test_releases_resolver_once(self, handler, registry, make_event):
        device = registry.insert("Den")
        released = []
        event = make_event(device)
        event.resolver._on_release = lambda: released.append(True)

        handler.handle(event)

        assert event.resolver.released
        assert released == [True]
        # provider teardown releasing again is a no-op
        assert event.resolver.release() is False
        assert released == [True]

    def test_stale_result_does_not_reinsert(self, handler, registry):
        device = registry.insert("Kitchen")
        registry.remove("Kitchen")

        event = _success(device)
        handler.handle(event)

        assert "Kitchen" not in registry
        assert event.resolver.released

    def test_stale_result_does_not_touch_newer_entry(self, handler, registry):
        stale = registry.insert("Den")
        registry.insert("Den")

        handler.handle(_success(stale, address="10.0.0.1"))

        assert registry.get("Den").address is None
