"""
 Main Entry Point

Event-driven architecture:
- DeviceManager discovers renderers and subscribes to their LastChange events
- RendererSession extracts the current track and publishes TRACK_CHANGED
- DesktopNotifier and ScrobbleCommand subscribe to TRACK_CHANGED

Features:
1. Auto-discover UPnP AVTransport renderers on the network
2. Desktop notification for every new track ("Playing <title> by <artist>")
3. Optional scrobble command per track change
"""
import asyncio
import signal
import sys
from typing import Optional

from core.utils import log_info, log_warning, log_error, set_log_level, level_from_name, LOG_LEVEL_DEBUG, LOG_LEVEL_INFO
from core.event_bus import event_bus
from core.events import EventType, Event
from core.config_store import config_store
from config import (
    APP_NAME, APP_VERSION, DEBUG, LOCAL_IP, RENDERER_FILTER,
    NOTIFY_ENABLED, NOTIFY_COMMAND, NOTIFY_ICON, NOTIFY_URGENCY, NOTIFY_EXPIRE_MS,
    SCROBBLE_COMMAND, SINK_COMMAND_TIMEOUT, SHUTDOWN_DRAIN_TIMEOUT,
)

from device.device_manager import DeviceManager
from output.desktop_notifier import DesktopNotifier
from output.scrobbler import ScrobbleCommand


class TrackNotify:
    """
    Main application for tracknotify.

    Uses event-driven architecture for decoupled communication.
    """

    def __init__(self):
        """Initialize the monitor"""
        timeout = config_store.get_number("sink", "timeout", SINK_COMMAND_TIMEOUT)

        # Renderer management
        self._device_manager = DeviceManager(
            bind_ip=config_store.get("bind_ip", default=LOCAL_IP),
            renderer_filter=config_store.get("renderer", "filter", RENDERER_FILTER),
        )

        # Sinks (communicate via events)
        self._notifier = DesktopNotifier(
            command=config_store.get("notify", "command", NOTIFY_COMMAND),
            icon=config_store.get("notify", "icon", NOTIFY_ICON),
            urgency=config_store.get("notify", "urgency", NOTIFY_URGENCY),
            expire_ms=config_store.get("notify", "expire_ms", NOTIFY_EXPIRE_MS),
            timeout=timeout,
        )
        self._scrobbler = ScrobbleCommand(
            command=config_store.get("scrobble", "command", SCROBBLE_COMMAND),
            timeout=timeout,
        )

        self._stop_event: Optional[asyncio.Event] = None

    def _setup_sinks(self):
        if not config_store.get_bool("notify", "enabled", NOTIFY_ENABLED):
            self._notifier.disable("turned off in config")
        else:
            self._notifier.ensure_available()

        if not self._scrobbler.enabled:
            log_info("Startup", "No scrobble command configured, scrobbling disabled")

        self._notifier.attach(event_bus)
        self._scrobbler.attach(event_bus)

        event_bus.subscribe(EventType.SUBSCRIPTION_LOST, self._on_subscription_event)
        event_bus.subscribe(EventType.SUBSCRIPTION_RESTORED, self._on_subscription_event)
        event_bus.subscribe(EventType.DEVICE_ADDED, self._on_device_event)
        event_bus.subscribe(EventType.DEVICE_REMOVED, self._on_device_event)

    def _on_device_event(self, event: Event):
        if event.type == EventType.DEVICE_ADDED:
            log_info("Monitor", f"Watching {event.data.get('name', event.device_id)} for track changes")
        else:
            log_info("Monitor", f"Renderer {event.device_id} is gone")

    def _on_subscription_event(self, event: Event):
        session = self._device_manager.get_session(event.device_id)
        name = session.device_name if session else event.device_id
        if event.type == EventType.SUBSCRIPTION_LOST:
            log_warning("Monitor", f"Lost event subscription on {name}, retrying in background")
        else:
            log_info("Monitor", f"Event subscription on {name} is back")

    def request_stop(self):
        """Ask run() to return (signal handler)"""
        if self._stop_event and not self._stop_event.is_set():
            print()
            self._stop_event.set()

    async def run(self):
        """Run the main application"""
        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        event_bus.set_loop(loop)

        # Print startup banner
        print(" ")
        print(f"  {APP_NAME} v{APP_VERSION}")
        print(" ")

        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_stop)

        self._setup_sinks()

        try:
            # Start device manager (searches renderers, subscribes to their events)
            await self._device_manager.start()
        except OSError as e:
            log_error("Startup", f"Cannot listen for UPnP events: {e}")
            await self._device_manager.stop()
            raise

        log_info("Monitor", "All services started. Waiting for track changes.")

        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Shutdown the application"""
        log_info("Monitor", "Shutting down...")

        # No new events after this
        await self._device_manager.stop()

        # Let notifications and scrobbles already in flight finish
        await event_bus.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)

        self._notifier.detach(event_bus)
        self._scrobbler.detach(event_bus)

        log_info("Monitor", "Shutdown complete")


def main():
    """Main entry point"""

    # Set log level based on DEBUG configuration, config.json wins
    default_level = LOG_LEVEL_DEBUG if DEBUG else LOG_LEVEL_INFO
    set_log_level(level_from_name(config_store.get("log_level"), default_level))

    app = TrackNotify()

    # Windows event loop policy
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    except OSError:
        sys.exit(1)


if __name__ == "__main__":
    main()
