"""
Event Bus - Publish/Subscribe event system

This module implements the event bus that decouples the event pipeline from
the sinks. Renderer sessions publish TRACK_CHANGED from the UPnP delivery
callback; coroutine handlers are scheduled as independent tasks so a slow
notification or scrobble command never delays the next event.
"""
import asyncio
import concurrent.futures
from typing import Callable, Dict, List, Optional, Set, Union
from collections import defaultdict

from .events import Event, EventType
from .utils import log_debug, log_warning


# Event handler types
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Event Bus - Publish/Subscribe pattern implementation

    Features:
    - Supports sync and async handlers
    - Subscribe by event type
    - Subscribe by device ID filter
    - Wildcard subscription (receive all events)
    - Tracks scheduled async handlers so shutdown can wait for them
    """

    def __init__(self):
        # Handlers by event type
        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)

        # Wildcard handlers (receive all events)
        self._wildcard_handlers: List[EventHandler] = []

        # Handlers by device ID + event type
        self._device_handlers: Dict[str, Dict[EventType, List[EventHandler]]] = defaultdict(lambda: defaultdict(list))

        # Event loop reference
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        # Async handlers that have not finished yet
        self._pending: Set[Union[asyncio.Future, concurrent.futures.Future]] = set()

        log_debug("EventBus", "Event bus initialized")

    def set_loop(self, loop: asyncio.AbstractEventLoop):
        """Set event loop for async handler execution"""
        self._loop = loop

    def subscribe(
        self,
        event_type: Union[EventType, str],
        handler: EventHandler,
        device_id: Optional[str] = None
    ):
        """
        Subscribe to events

        Args:
            event_type: Event type, or "*" for all events
            handler: Event handler function (plain function or coroutine function)
            device_id: Optional, only receive events for this device
        """
        handler_name = getattr(handler, '__name__', str(handler))

        if event_type == "*":
            self._wildcard_handlers.append(handler)
            log_debug("EventBus", f"Subscribed to ALL events: {handler_name}")
        elif device_id:
            self._device_handlers[device_id][event_type].append(handler)
            log_debug("EventBus", f"Subscribed to {event_type.name} for device {device_id}")
        else:
            self._handlers[event_type].append(handler)
            log_debug("EventBus", f"Subscribed to {event_type.name}: {handler_name}")

    def unsubscribe(
        self,
        event_type: Union[EventType, str],
        handler: EventHandler,
        device_id: Optional[str] = None
    ):
        """Unsubscribe from events"""
        try:
            if event_type == "*":
                self._wildcard_handlers.remove(handler)
            elif device_id:
                self._device_handlers[device_id][event_type].remove(handler)
            else:
                self._handlers[event_type].remove(handler)
        except ValueError:
            pass

    def _collect_handlers(self, event: Event) -> List[EventHandler]:
        handlers_to_call = []

        # Collect wildcard handlers
        handlers_to_call.extend(self._wildcard_handlers)

        # Collect event type handlers
        handlers_to_call.extend(self._handlers.get(event.type, []))

        # Collect device-specific handlers
        if event.device_id:
            device_handlers = self._device_handlers.get(event.device_id, {})
            handlers_to_call.extend(device_handlers.get(event.type, []))

        return handlers_to_call

    def _schedule(self, coro, event: Event, handler_name: str):
        """Run a handler coroutine as its own task on the bus loop"""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or self._loop is running):
            future = running.create_task(coro)
        elif self._loop is not None and self._loop.is_running():
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()
            log_warning("EventBus", f"[{event.trace_id}] No running event loop, dropped {handler_name}")
            return

        self._pending.add(future)
        future.add_done_callback(lambda f: self._on_handler_done(f, event, handler_name))

    def _on_handler_done(self, future, event: Event, handler_name: str):
        self._pending.discard(future)
        if future.cancelled():
            log_debug("EventBus", f"[{event.trace_id}] Handler cancelled ({handler_name})")
            return
        error = future.exception()
        if error is not None:
            log_warning("EventBus", f"[{event.trace_id}] Async handler error ({handler_name}): {error}")

    def publish(self, event: Event):
        """
        Publish event (synchronous)

        Event is dispatched to:
        1. Wildcard handlers
        2. Event type handlers
        3. Device-specific handlers (if device_id matches)

        Plain handlers run inline; coroutine handlers are scheduled and
        publish() returns without waiting for them.
        """
        device_info = event.device_id if event.device_id else "global"
        log_debug("EventBus", f"[{event.trace_id}] Publish: {event.type.name} -> {device_info}")

        for handler in self._collect_handlers(event):
            handler_name = getattr(handler, '__name__', str(handler))
            try:
                log_debug("EventBus", f"[{event.trace_id}] Handle: {event.type.name} -> {handler_name}")
                result = handler(event)
                # If coroutine, schedule to event loop
                if asyncio.iscoroutine(result):
                    self._schedule(result, event, handler_name)
            except Exception as e:
                log_warning("EventBus", f"[{event.trace_id}] Handler error ({handler_name}): {e}")

    @property
    def pending_count(self) -> int:
        """Number of async handlers still running"""
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for scheduled async handlers to finish.

        Returns:
            True if all handlers finished within the timeout
        """
        if not self._pending:
            return True

        waiters = [
            asyncio.wrap_future(f) if isinstance(f, concurrent.futures.Future) else f
            for f in list(self._pending)
        ]
        log_debug("EventBus", f"Waiting for {len(waiters)} pending handler(s)")
        _, not_done = await asyncio.wait(waiters, timeout=timeout)
        if not_done:
            log_warning("EventBus", f"{len(not_done)} handler(s) still running after {timeout}s")
            return False
        return True


# Global event bus instance
event_bus = EventBus()
