"""
Track - Now-playing metadata extracted from a renderer event
"""
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from config import BROADCAST_CLASS

SCROBBLE_SOURCE_BROADCAST = "R"
SCROBBLE_SOURCE_CHOSEN = "P"


@dataclass(frozen=True)
class Track:
    """
    Immutable now-playing record.

    Every field is either a non-empty string or None. A track without title
    and artist is empty and never notified.

    Attributes:
        upnp_class: UPnP object class (e.g. object.item.audioItem.musicTrack)
        title: dc:title
        artist: upnp:artist
    """
    upnp_class: Optional[str] = None
    title: Optional[str] = None
    artist: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """True when the track carries neither title nor artist"""
        return not self.title and not self.artist

    @property
    def is_broadcast(self) -> bool:
        return self.upnp_class == BROADCAST_CLASS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for event data and status output"""
        return asdict(self)

    def __str__(self):
        return notification_text(self) or "<no track>"


EMPTY_TRACK = Track()


def notification_text(track: Track) -> Optional[str]:
    """
    Build the human readable "now playing" line.

    "Playing <title> by <artist>", "Playing <title>" or "Playing <artist>"
    depending on which fields are known. None for an empty track.
    """
    if track.title and track.artist:
        return f"Playing {track.title} by {track.artist}"
    if track.title:
        return f"Playing {track.title}"
    if track.artist:
        return f"Playing {track.artist}"
    return None


def scrobble_source(track: Track) -> str:
    """
    Audioscrobbler source code for a track.

    "R" (non-personalised broadcast) for internet radio streams,
    "P" (chosen by the user) for everything else.
    """
    if track.is_broadcast:
        return SCROBBLE_SOURCE_BROADCAST
    return SCROBBLE_SOURCE_CHOSEN
