"""
Discovery Session - owns the event-loop thread and the provider.

Sequences provider connection, the service browser and teardown, and
routes every provider event through a single dispatch function.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Optional

from .browse import BrowseHandler
from .config import DiscoveryConfig, settings
from .events import ConnectionFailure, DiscoveryEvent, ResolveFailed, ResolveSucceeded
from .exceptions import DiscoveryError
from .models import Device, SessionState, format_device
from .providers import DiscoveryProvider, ZeroconfProvider
from .registry import DeviceRegistry
from .resolution import ResolutionHandler

logger = logging.getLogger("tivo.discovery.session")


class DiscoverySession:
    """
    Live discovery of one service type.

    State machine: CREATED -> RUNNING -> STOPPED (terminal). A failed
    ``start`` leaves the session in CREATED with everything released.

    Threading:
    - One dedicated thread runs the asyncio event loop. The provider, the
      browse handler and the resolution handler only ever run there.
    - ``start``, ``stop``, ``wait``, ``report`` and ``registry.snapshot``
      may be called from any other thread.
    """

    def __init__(
        self,
        provider: Optional[DiscoveryProvider] = None,
        config: Optional[DiscoveryConfig] = None,
        registry: Optional[DeviceRegistry] = None,
    ):
        self._config = config or settings.discovery
        self._provider = provider or ZeroconfProvider(
            ip_version=self._config.ip_version,
            resolve_timeout_ms=self._config.resolve_timeout_ms,
            all_for_now_delay=self._config.all_for_now_delay,
        )
        self.registry = registry or DeviceRegistry()

        self._resolution = ResolutionHandler(
            self._provider,
            self.registry,
            identifier_key=self._config.identifier_key,
        )
        self._browse = BrowseHandler(self.registry, self._resolution, on_failure=self._halt)

        self._state = SessionState.CREATED
        self._state_lock = threading.Lock()

        # Event-loop thread resources
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._opened = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def service_type(self) -> str:
        return self._config.service_type

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Connect to the provider, create the browser and start the loop thread.

        Returns:
            True if discovery is running
        """
        with self._state_lock:
            if self._state is SessionState.RUNNING:
                logger.warning("Discovery already running")
                return True
            if self._state is SessionState.STOPPED:
                logger.warning("Discovery session already stopped; create a new session")
                return False
            if self._loop is not None:
                logger.warning("Discovery is already starting")
                return False

            ready: concurrent.futures.Future = concurrent.futures.Future()
            try:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._run,
                    args=(ready,),
                    name="tivo-discovery",
                    daemon=True,
                )
                self._thread.start()
            except (OSError, RuntimeError) as e:
                logger.error("Failed to create discovery event loop: %s", e)
                self._release()
                return False

        try:
            ready.result(timeout=self._config.startup_timeout)
        except concurrent.futures.TimeoutError:
            logger.error("Discovery startup timed out after %.1fs", self._config.startup_timeout)
            self._abort_start()
            return False
        except Exception as e:
            logger.error("Failed to start discovery: %s", e)
            self._abort_start()
            return False

        logger.info("Discovery started for %s via %s", self.service_type, self._provider.name)
        return True

    def stop(self) -> None:
        """
        Stop discovery and release the browser, connection and loop.

        Safe to call at any time, repeatedly, and while resolves are in
        flight. Waits for the loop thread to finish before releasing.
        """
        with self._state_lock:
            if self._loop is None:
                return
            self._state = SessionState.STOPPED

        if threading.current_thread() is self._thread:
            # Cannot join ourselves; a later stop() from another thread releases
            logger.warning("stop() called from the discovery thread; halting only")
            self._request_halt()
            return

        self._release()
        self.registry.clear()
        logger.info("Discovery stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the session halts or ``timeout`` elapses.

        Returns:
            True if the event loop is no longer running
        """
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def report(self) -> list[str]:
        """Current registry contents as ``name, identifier, address`` lines."""
        return [format_device(device) for device in self.registry.snapshot()]

    # ------------------------------------------------------------------
    # Event dispatch (event-loop thread)
    # ------------------------------------------------------------------

    def dispatch(self, event: DiscoveryEvent) -> None:
        """Route one provider event. Everything is dropped unless RUNNING."""
        if self._state is not SessionState.RUNNING:
            logger.debug("Ignoring %s: session is %s", type(event).__name__, self._state.value)
            return

        if isinstance(event, (ResolveSucceeded, ResolveFailed)):
            self._resolution.handle(event)
        elif isinstance(event, ConnectionFailure):
            logger.error("Server connection failure: %s", event.reason)
            self._halt(event.reason)
        else:
            self._browse.handle(event)

    def _halt(self, reason: str) -> None:
        """Fatal provider failure: stop processing and let the loop wind down."""
        with self._state_lock:
            if self._state is not SessionState.RUNNING:
                return
            self._state = SessionState.STOPPED
        logger.error("Discovery halted: %s", reason)
        self._request_halt()

    # ------------------------------------------------------------------
    # Event-loop thread
    # ------------------------------------------------------------------

    def _run(self, ready: concurrent.futures.Future) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._serve(ready))
        except asyncio.CancelledError:
            logger.debug("Discovery startup cancelled")
        except Exception as e:
            logger.error("Discovery event loop crashed: %s", e)
        finally:
            if not ready.done():
                ready.set_exception(DiscoveryError("event loop exited during startup"))
            logger.debug("Discovery event loop exited")

    async def _serve(self, ready: concurrent.futures.Future) -> None:
        self._task = asyncio.current_task()
        self._stop_event = asyncio.Event()
        try:
            try:
                await self._provider.connect(self.dispatch)
                await self._provider.browse(self.service_type)
            except Exception as e:
                ready.set_exception(e)
                return

            # Nothing awaits between browse() and RUNNING, so callbacks
            # queued by browse() are dispatched only once RUNNING
            with self._state_lock:
                if self._state is not SessionState.CREATED:
                    ready.set_exception(DiscoveryError("stopped during startup"))
                    return
                self._state = SessionState.RUNNING
            self._opened = True
            ready.set_result(None)
            await self._stop_event.wait()
        finally:
            await self._close()

    async def _close(self) -> None:
        """Release browser, then connection. Each step tolerates never having opened."""
        try:
            await self._provider.close_browser()
        except Exception as e:
            logger.warning("Error releasing service browser: %s", e)
        try:
            await self._provider.disconnect()
        except Exception as e:
            logger.warning("Error closing provider connection: %s", e)

    def _wake(self) -> None:
        if self._opened:
            self._stop_event.set()
        elif self._task is not None:
            self._task.cancel()

    def _request_halt(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._wake)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def _abort_start(self) -> None:
        self._release()
        with self._state_lock:
            # A late RUNNING from a timed-out startup does not count
            if self._state is SessionState.RUNNING:
                self._state = SessionState.CREATED

    def _release(self) -> None:
        """Halt the loop, wait for the thread to finish, then close the loop."""
        loop, thread = self._loop, self._thread
        if thread is not None and thread.is_alive():
            self._request_halt()
            thread.join(timeout=self._config.shutdown_timeout)
            if thread.is_alive():
                logger.error(
                    "Discovery thread did not exit within %.1fs",
                    self._config.shutdown_timeout,
                )
                return
        if loop is not None:
            loop.close()

        self._loop = None
        self._thread = None
        self._task = None
        self._stop_event = None
        self._opened = False


def run_discovery(
    window: Optional[float] = None,
    provider: Optional[DiscoveryProvider] = None,
    config: Optional[DiscoveryConfig] = None,
) -> Optional[list[Device]]:
    """
    Discover for ``window`` seconds and return what was found.

    Returns None if discovery could not be started.
    """
    config = config or settings.discovery
    if window is None:
        window = config.observation_window

    session = DiscoverySession(provider=provider, config=config)
    if not session.start():
        return None
    try:
        if session.wait(window):
            logger.warning("Discovery halted before the observation window ended")
        return session.registry.snapshot()
    finally:
        session.stop()
