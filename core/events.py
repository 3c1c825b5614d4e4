"""
Event Definitions - Event types and event factory functions

This module defines all event types used in the event-driven architecture.
Events are the primary communication mechanism between the renderer
sessions (publishers) and the sinks (subscribers).
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum, auto
import time
import uuid

from .track import Track


class EventType(Enum):
    """Event type enumeration"""

    # ===== Track Events =====
    # Published by RendererSession
    # Subscribed by notification and scrobble sinks
    TRACK_CHANGED = auto()          # A new track started playing

    # ===== Device Events =====
    # Published by DeviceManager
    DEVICE_ADDED = auto()           # Renderer discovered and subscribed
    DEVICE_REMOVED = auto()         # Renderer gone (offline threshold reached)

    # ===== Subscription Events =====
    # Published by RendererSubscription
    SUBSCRIPTION_LOST = auto()      # Renewal failed, resubscribing
    SUBSCRIPTION_RESTORED = auto()  # Fresh subscription after a loss


def _new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class Event:
    """
    Event base class

    Attributes:
        type: Event type
        device_id: Source renderer ID (None = global)
        data: Event data dictionary
        timestamp: Event creation timestamp
        trace_id: Short ID for following one event through the logs
    """
    type: EventType
    device_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    trace_id: str = field(default_factory=_new_trace_id)

    def __repr__(self):
        return f"Event({self.type.name}, device={self.device_id if self.device_id else 'all'}, trace={self.trace_id})"


# ===== Track Event Factories =====

def track_changed(device_id: str, track: Track, device_name: str = "") -> Event:
    """Create track changed event"""
    return Event(
        type=EventType.TRACK_CHANGED,
        device_id=device_id,
        data={"track": track, "device_name": device_name}
    )


# ===== Device Event Factories =====

def device_added(device_id: str, device_info: dict) -> Event:
    """Create device added event"""
    return Event(
        type=EventType.DEVICE_ADDED,
        device_id=device_id,
        data=device_info
    )


def device_removed(device_id: str) -> Event:
    """Create device removed event"""
    return Event(type=EventType.DEVICE_REMOVED, device_id=device_id)


# ===== Subscription Event Factories =====

def subscription_lost(device_id: str, reason: str = "") -> Event:
    """Create subscription lost event"""
    return Event(
        type=EventType.SUBSCRIPTION_LOST,
        device_id=device_id,
        data={"reason": reason}
    )


def subscription_restored(device_id: str, attempts: int = 1) -> Event:
    """Create subscription restored event"""
    return Event(
        type=EventType.SUBSCRIPTION_RESTORED,
        device_id=device_id,
        data={"attempts": attempts}
    )

