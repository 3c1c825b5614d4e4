"""
DeviceManager - Renderer lifecycle manager

This module manages the lifecycle of monitored renderers:
- Owns the shared HTTP session and the GENA callback server
- Builds UPnP devices for renderers found by the scanner
- Creates a RendererSession and a RendererSubscription per renderer
- Publishes device events (DEVICE_ADDED, DEVICE_REMOVED)
"""
import asyncio
from typing import Dict, List, Optional, Any, TYPE_CHECKING

import aiohttp
from async_upnp_client.aiohttp import AiohttpNotifyServer, AiohttpSessionRequester
from async_upnp_client.client import UpnpDevice, UpnpService
from async_upnp_client.client_factory import UpnpFactory
from async_upnp_client.exceptions import UpnpError

from core.utils import log_info, log_debug, log_warning, log_error
from core.event_bus import event_bus as default_event_bus, EventBus
from core.events import EventType, Event, device_added, device_removed
from config import LOCAL_IP, NOTIFY_PORT, HTTP_TIMEOUT, AVTRANSPORT_SERVICE_TYPE
from source.upnp_subscription import RendererSubscription
from .renderer_session import RendererSession
from .renderer_scanner import RendererScanner

if TYPE_CHECKING:
    from async_upnp_client.event_handler import UpnpEventHandler


def find_av_transport(device: UpnpDevice) -> Optional[UpnpService]:
    """
    Find the AVTransport service of a device (embedded devices included).

    Any version of the service type is accepted.
    """
    prefix = AVTRANSPORT_SERVICE_TYPE.rsplit(":", 1)[0] + ":"
    for service in device.all_services:
        if (service.service_type or "").startswith(prefix):
            return service
    return None


class DeviceManager:
    """
    Renderer manager.

    Manages the lifecycle of monitored renderers:
    - Turning scanner results into UPnP devices
    - Subscribing to AVTransport LastChange events
    - Tearing subscriptions down when a renderer disappears
    """

    def __init__(
        self,
        bind_ip: str = LOCAL_IP,
        renderer_filter: Optional[str] = None,
        bus: Optional[EventBus] = None,
        factory: Optional[UpnpFactory] = None,
        event_handler: Optional["UpnpEventHandler"] = None,
    ):
        """
        Initialize device manager.

        Args:
            bind_ip: Local address for discovery and event callbacks
            renderer_filter: Only monitor the renderer with this friendly name or UDN
            factory/event_handler: Pre-built UPnP collaborators (created in start() otherwise)
        """
        self._bind_ip = bind_ip
        self._renderer_filter = renderer_filter
        self._bus = bus or default_event_bus

        self._sessions: Dict[str, RendererSession] = {}  # udn -> RendererSession
        self._subscriptions: Dict[str, RendererSubscription] = {}  # udn -> RendererSubscription

        self._scanner = RendererScanner(
            on_device_found=self._on_renderer_found,
            on_device_lost=self._on_renderer_lost,
            bind_ip=bind_ip,
        )

        self._http_session: Optional[aiohttp.ClientSession] = None
        self._notify_server: Optional[AiohttpNotifyServer] = None
        self._factory = factory
        self._event_handler = event_handler
        self._running = False

        self._bus.subscribe(EventType.SUBSCRIPTION_LOST, self._on_subscription_lost)
        self._bus.subscribe(EventType.SUBSCRIPTION_RESTORED, self._on_subscription_restored)

    # ===== Subscription Events =====

    def _find_by_device_id(self, device_id: Optional[str]) -> Optional[RendererSession]:
        for session in self._sessions.values():
            if session.device_id == device_id:
                return session
        return None

    def _on_subscription_lost(self, event: Event):
        session = self._find_by_device_id(event.device_id)
        if session:
            session.connected = False

    def _on_subscription_restored(self, event: Event):
        session = self._find_by_device_id(event.device_id)
        if session:
            session.connected = True

    # ===== Renderer Discovery =====

    def _matches_filter(self, device: UpnpDevice) -> bool:
        if not self._renderer_filter:
            return True
        wanted = self._renderer_filter.strip().lower()
        return wanted in ((device.name or "").strip().lower(), (device.udn or "").lower())

    async def _on_renderer_found(self, device_info: Dict[str, Any]):
        """
        Handle renderer discovery.

        Args:
            device_info: Scanner information (udn, location)
        """
        udn = device_info.get("udn")
        location = device_info.get("location")
        if not udn or not location or udn in self._sessions:
            return

        try:
            device = await self._factory.async_create_device(location)
        except (UpnpError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log_warning("DeviceManager", f"Cannot read description of {udn} at {location}: {e}")
            # Retry on the next scan
            self._scanner.forget(udn)
            return

        if not self._matches_filter(device):
            log_debug("DeviceManager", f"Ignoring renderer {device.name} ({udn}): filtered")
            return

        service = find_av_transport(device)
        if service is None:
            log_debug("DeviceManager", f"Ignoring {device.name} ({udn}): no AVTransport service")
            return

        session = RendererSession.create_from_device_info({
            "udn": udn,
            "name": device.name,
            "location": location,
            "model_name": device.model_name,
            "manufacturer": device.manufacturer,
        }, bus=self._bus)

        subscription = RendererSubscription(
            service,
            self._event_handler,
            session.on_event,
            session.device_id,
            session.device_name,
            bus=self._bus,
        )

        self._sessions[udn] = session
        self._subscriptions[udn] = subscription

        session.connected = await subscription.start()
        log_info("DeviceManager", f"Monitoring renderer: {session.device_name} "
                                  f"({session.model_name or 'unknown model'}, id: {session.device_id})")

        # Publish device added event
        self._bus.publish(device_added(session.device_id, session.to_dict()))

    async def _on_renderer_lost(self, udn: str):
        """
        Handle renderer loss: stop its subscription and drop the session.

        Args:
            udn: Renderer UDN
        """
        session = self._sessions.pop(udn, None)
        subscription = self._subscriptions.pop(udn, None)
        if not session:
            return

        if subscription:
            await subscription.stop()
        session.connected = False

        log_info("DeviceManager", f"Renderer removed: {session.device_name} (id: {session.device_id})")
        self._bus.publish(device_removed(session.device_id))

    # ===== Lifecycle =====

    async def start(self):
        """
        Start device manager.

        Raises:
            OSError: The event callback server could not be started
        """
        if self._running:
            return

        self._running = True
        self._bus.set_loop(asyncio.get_running_loop())

        if self._factory is None or self._event_handler is None:
            self._http_session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT))
            requester = AiohttpSessionRequester(self._http_session, with_sleep=True, timeout=HTTP_TIMEOUT)
            if self._factory is None:
                self._factory = UpnpFactory(requester, non_strict=True)
            if self._event_handler is None:
                self._notify_server = AiohttpNotifyServer(requester, source=(self._bind_ip, NOTIFY_PORT))
                await self._notify_server.async_start_server()
                self._event_handler = self._notify_server.event_handler
                log_info("DeviceManager", f"Event callback server listening at {self._notify_server.callback_url}")

        log_info("DeviceManager", "Performing initial renderer search...")
        discovered = await self._scanner.scan_once()
        await self._scanner.process_scan(discovered)

        self._scanner.start()
        log_info("DeviceManager", f"Device manager started with {len(self._sessions)} renderer(s)")

    async def stop(self):
        """Stop device manager: no new events are delivered after this returns."""
        if not self._running:
            return

        self._running = False
        self._scanner.stop()

        for udn in list(self._subscriptions.keys()):
            subscription = self._subscriptions.pop(udn)
            await subscription.stop()
            session = self._sessions.get(udn)
            if session:
                session.connected = False

        if self._notify_server:
            try:
                await self._notify_server.async_stop_server()
            except Exception as e:
                log_error("DeviceManager", f"Stopping callback server failed: {e}")
            self._notify_server = None

        if self._http_session:
            await self._http_session.close()
            self._http_session = None

        log_info("DeviceManager", "Device manager stopped")

    # ===== Queries =====

    def get_session(self, device_id: str) -> Optional[RendererSession]:
        """Get renderer session by device ID."""
        return self._find_by_device_id(device_id)

    def get_session_by_udn(self, udn: str) -> Optional[RendererSession]:
        """Get renderer session by UDN."""
        return self._sessions.get(udn)

    def get_all_sessions(self) -> List[RendererSession]:
        """Get all renderer sessions."""
        return list(self._sessions.values())

    def get_subscription(self, udn: str) -> Optional[RendererSubscription]:
        return self._subscriptions.get(udn)

    def to_dict(self) -> List[Dict[str, Any]]:
        """Convert all sessions to dictionary list for status output."""
        result = []
        for udn, session in self._sessions.items():
            info = session.to_dict()
            subscription = self._subscriptions.get(udn)
            if subscription:
                info["subscription"] = subscription.to_dict()
            result.append(info)
        return result

    def is_running(self) -> bool:
        """Check if device manager is running."""
        return self._running
