"""
RendererSubscription - One live LastChange subscription on an AVTransport service

Discovery, GENA SUBSCRIBE/NOTIFY handling and the callback HTTP server are
provided by async_upnp_client. This module owns the lifecycle of a single
subscription on top of it:

- attaches the delivery callback to the UpnpService
- forwards the raw LastChange string of every event to the consumer
- renews the subscription before it expires
- detects a lost subscription and resubscribes with exponential backoff

The consumer callback runs synchronously on the event loop, so it must only
do fast work (extraction and tracking); anything slow goes through the
event bus.
"""
import asyncio
from datetime import timedelta
from typing import Any, Callable, Optional, Sequence, TYPE_CHECKING

from async_upnp_client.client import UpnpService, UpnpStateVariable
from async_upnp_client.exceptions import UpnpError

from core.utils import log_info, log_debug, log_warning, log_exception, shorten
from core.event_bus import event_bus as default_event_bus, EventBus
from core.events import subscription_lost, subscription_restored
from config import (
    LAST_CHANGE_VARIABLE,
    SUBSCRIPTION_TIMEOUT,
    SUBSCRIPTION_RENEW_INTERVAL,
    SUBSCRIPTION_RETRY_MIN,
    SUBSCRIPTION_RETRY_MAX,
)

if TYPE_CHECKING:
    from async_upnp_client.event_handler import UpnpEventHandler

# Delivery states
STATE_IDLE = "idle"
STATE_SUBSCRIBED = "subscribed"
STATE_LOST = "lost"
STATE_CLOSED = "closed"

# Consumer callback: (service_id, raw_event_xml)
RawEventCallback = Callable[[str, str], Any]


class RendererSubscription:
    """
    Subscription to the LastChange variable of one AVTransport service.

    Usage:
        subscription = RendererSubscription(service, notify_server.event_handler,
                                            session.on_event, session.device_id)
        await subscription.start()
        ...
        await subscription.stop()
    """

    def __init__(
        self,
        service: UpnpService,
        event_handler: "UpnpEventHandler",
        on_event: RawEventCallback,
        device_id: str,
        device_name: str = "",
        variable: str = LAST_CHANGE_VARIABLE,
        bus: Optional[EventBus] = None,
        timeout: float = SUBSCRIPTION_TIMEOUT,
        renew_interval: float = SUBSCRIPTION_RENEW_INTERVAL,
        retry_min: float = SUBSCRIPTION_RETRY_MIN,
        retry_max: float = SUBSCRIPTION_RETRY_MAX,
    ):
        self._service = service
        self._event_handler = event_handler
        self._on_event = on_event
        self._device_id = device_id
        self._device_name = device_name or device_id
        self._variable = variable
        self._bus = bus or default_event_bus

        self._timeout = timedelta(seconds=timeout)
        self._renew_interval = renew_interval
        self._retry_min = retry_min
        self._retry_max = retry_max

        self._state = STATE_IDLE
        self._sid: Optional[str] = None
        self._running = False
        self._renew_task: Optional[asyncio.Task] = None
        self._delivered = 0

    # ===== Properties =====

    @property
    def variable(self) -> str:
        return self._variable

    @property
    def state(self) -> str:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == STATE_SUBSCRIBED

    @property
    def sid(self) -> Optional[str]:
        return self._sid

    @property
    def delivered(self) -> int:
        """Number of events forwarded to the consumer"""
        return self._delivered

    # ===== Event Delivery =====

    def _on_service_event(self, service: UpnpService, state_variables: Sequence[UpnpStateVariable]):
        """Handle an event from async_upnp_client (runs on the event loop)"""
        if not self._running:
            log_debug("Subscription", f"Ignoring event after stop: {self._device_name}")
            return

        # Empty variable list signals a failed resubscription inside the library
        if not state_variables:
            log_debug("Subscription", f"Empty event from {self._device_name}")
            return

        raw_event = None
        for state_variable in state_variables:
            if state_variable.name == self._variable:
                raw_event = state_variable.value
                break

        if not raw_event:
            log_debug("Subscription", f"Event without {self._variable} from {self._device_name}: "
                                      f"{[v.name for v in state_variables]}")
            return

        self._delivered += 1
        log_debug("Subscription", f"{self._variable} #{self._delivered} from {self._device_name}: {shorten(raw_event)}")

        try:
            self._on_event(service.service_id, raw_event)
        except Exception as e:
            log_exception("Subscription", f"Event consumer failed for {self._device_name}: {e}")

    # ===== Subscription Lifecycle =====

    async def _subscribe(self):
        sid, timeout = await self._event_handler.async_subscribe(self._service, timeout=self._timeout)
        self._sid = sid
        self._state = STATE_SUBSCRIBED
        log_info("Subscription", f"Subscribed to {self._variable} on {self._device_name} (sid={sid}, timeout={timeout})")

    async def _renew(self):
        sid, timeout = await self._event_handler.async_resubscribe(self._service, timeout=self._timeout)
        self._sid = sid
        log_debug("Subscription", f"Renewed subscription on {self._device_name} (sid={sid}, timeout={timeout})")

    def _mark_lost(self, reason: Exception):
        if self._state == STATE_LOST:
            return
        self._state = STATE_LOST
        log_warning("Subscription", f"Subscription lost on {self._device_name}: {reason}")
        self._bus.publish(subscription_lost(self._device_id, str(reason)))

    async def _renew_loop(self):
        """Renew while subscribed, resubscribe with backoff while lost"""
        delay = self._retry_min
        attempts = 0

        while self._running:
            try:
                if self._state == STATE_SUBSCRIBED:
                    await asyncio.sleep(self._renew_interval)
                    try:
                        await self._renew()
                    except (UpnpError, KeyError) as e:
                        self._mark_lost(e)
                        delay = self._retry_min
                        attempts = 0
                    continue

                await asyncio.sleep(delay)
                attempts += 1
                try:
                    await self._subscribe()
                except (UpnpError, KeyError) as e:
                    delay = min(delay * 2, self._retry_max)
                    log_debug("Subscription", f"Resubscribe attempt {attempts} on {self._device_name} failed: {e}, "
                                              f"next in {delay}s")
                    continue

                log_info("Subscription", f"Subscription restored on {self._device_name} after {attempts} attempt(s)")
                self._bus.publish(subscription_restored(self._device_id, attempts))
                delay = self._retry_min
                attempts = 0

            except asyncio.CancelledError:
                log_debug("Subscription", f"Renewal loop cancelled: {self._device_name}")
                break

    async def start(self) -> bool:
        """
        Attach to the service and subscribe.

        A failed initial subscribe is treated like a lost subscription: the
        renewal loop keeps retrying in the background.

        Returns:
            True if the subscription is live
        """
        if self._running:
            return self.connected

        self._running = True
        self._service.on_event = self._on_service_event

        try:
            await self._subscribe()
        except (UpnpError, KeyError) as e:
            self._mark_lost(e)

        self._renew_task = asyncio.create_task(self._renew_loop())
        return self.connected

    async def stop(self):
        """Stop delivery and unsubscribe. Events already being handled complete normally."""
        if not self._running:
            return

        self._running = False
        was_subscribed = self._state == STATE_SUBSCRIBED
        self._state = STATE_CLOSED

        if self._renew_task:
            self._renew_task.cancel()
            try:
                await self._renew_task
            except asyncio.CancelledError:
                pass
            self._renew_task = None

        self._service.on_event = None

        if was_subscribed:
            try:
                await self._event_handler.async_unsubscribe(self._service)
            except (UpnpError, KeyError) as e:
                log_debug("Subscription", f"Unsubscribe failed on {self._device_name}: {e}")

        log_info("Subscription", f"Subscription closed: {self._device_name}")

    def to_dict(self):
        return {
            "variable": self._variable,
            "state": self._state,
            "sid": self._sid,
            "delivered": self._delivered,
        }
