# Core module
from .utils import log_info, log_debug, log_warning, log_error, set_log_level
from .event_bus import event_bus, EventBus
from .events import Event, EventType
from .track import Track, EMPTY_TRACK, notification_text, scrobble_source
from .tracker import TrackTracker
from .lastchange import extract_track
from .exceptions import ParseError, EventParseError, MetadataParseError, SinkFailure
