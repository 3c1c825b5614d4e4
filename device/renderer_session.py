"""
RendererSession - Event pipeline for one discovered renderer

Each RendererSession:
- Holds the identity of a discovered AVTransport renderer
- Owns its own TrackTracker (previous-track state is never shared)
- Runs extraction -> tracking -> dispatch for every delivered LastChange
- Publishes TRACK_CHANGED for the sinks
"""
import hashlib
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from core.event_bus import event_bus as default_event_bus, EventBus
from core.events import track_changed
from core.exceptions import ParseError, MetadataParseError
from core.lastchange import extract_track
from core.track import Track
from core.tracker import TrackTracker
from core.utils import log_info, log_debug, log_warning, shorten


def generate_device_id(udn: str) -> str:
    """
    Generate deterministic device ID from the renderer UDN.

    Args:
        udn: Unique device name (uuid:...)

    Returns:
        16 character hex ID
    """
    return hashlib.md5(udn.encode()).hexdigest()[:16]


@dataclass
class RendererSession:
    """
    Monitoring session for one media renderer.

    on_event() is the entry point for raw events from the subscription.
    It never raises for bad events: malformed XML is logged and dropped so a
    single broken event cannot end the subscription.
    """

    # Device identification
    device_id: str = ""
    device_name: str = ""
    udn: str = ""
    location: str = ""
    model_name: str = ""
    manufacturer: str = ""

    # Connection state
    connected: bool = False
    last_seen: float = field(default_factory=time.time)

    # Statistics
    events_received: int = 0
    events_dropped: int = 0

    # Internal components (not serialized)
    tracker: TrackTracker = field(default_factory=TrackTracker, repr=False)
    _bus: Optional[EventBus] = field(default=None, repr=False)

    def __post_init__(self):
        """Post initialization processing"""
        if not self.device_id and self.udn:
            self.device_id = generate_device_id(self.udn)
        if not self.device_name:
            self.device_name = self.udn or "Unknown renderer"
        if self._bus is None:
            self._bus = default_event_bus

    # ===== Factory Methods =====

    @classmethod
    def create_from_device_info(cls, device_info: Dict[str, Any], bus: Optional[EventBus] = None) -> "RendererSession":
        """Create a session from scanner / description information."""
        udn = device_info.get("udn", "")
        return cls(
            device_id=generate_device_id(udn) if udn else "",
            device_name=device_info.get("name") or udn,
            udn=udn,
            location=device_info.get("location", ""),
            model_name=device_info.get("model_name", ""),
            manufacturer=device_info.get("manufacturer", ""),
            _bus=bus,
        )

    # ===== Event Pipeline =====

    @property
    def current_track(self) -> Track:
        return self.tracker.current

    def _dispatch(self, track: Track):
        """Publish a track change (called by the tracker under its lock)"""
        log_info("Session", f"{self.device_name}: {track}")
        self._bus.publish(track_changed(self.device_id, track, self.device_name))

    def on_event(self, service_id: str, raw_event: str) -> Optional[Track]:
        """
        Process one raw LastChange event.

        Args:
            service_id: ID of the service that sent the event
            raw_event: LastChange XML

        Returns:
            The new track if this event changed the now-playing track
        """
        self.events_received += 1
        self.last_seen = time.time()

        try:
            candidate = extract_track(raw_event)
        except MetadataParseError as e:
            self.events_dropped += 1
            log_warning("Session", f"Dropped event from {self.device_name} ({service_id}): bad track metadata, {e}")
            log_debug("Session", f"Event: {shorten(raw_event, 500)}")
            return None
        except ParseError as e:
            self.events_dropped += 1
            log_warning("Session", f"Dropped event from {self.device_name} ({service_id}): {e}")
            log_debug("Session", f"Event: {shorten(raw_event, 500)}")
            return None

        if candidate.is_empty:
            log_debug("Session", f"No track metadata in event from {self.device_name}")
            return None

        changed, effective = self.tracker.observe(candidate, on_change=self._dispatch)
        if not changed:
            log_debug("Session", f"Track unchanged on {self.device_name}: {effective}")
            return None
        return effective

    @property
    def tracks_changed(self) -> int:
        return self.tracker.changes

    # ===== Serialization =====

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for event data and status output"""
        return {
            "device_id": self.device_id,
            "name": self.device_name,
            "udn": self.udn,
            "location": self.location,
            "model_name": self.model_name,
            "manufacturer": self.manufacturer,
            "connected": self.connected,
            "last_seen": self.last_seen,
            "events_received": self.events_received,
            "events_dropped": self.events_dropped,
            "tracks_changed": self.tracks_changed,
            "current_track": self.current_track.to_dict(),
        }
