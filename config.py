"""
tracknotify - Global Configuration
"""
import socket

# ================= Application Info =================
APP_NAME = "tracknotify"
APP_VERSION = "0.3.0"

# Verbose logging (can be overridden by "log_level" in config.json)
DEBUG = False

# ================= Network Configuration =================

def get_local_ip():
    """Get local LAN IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


# Address the SSDP search and the event callback server bind to.
# Override with "bind_ip" in config.json on multi-homed hosts.
LOCAL_IP = get_local_ip()

# Port of the GENA NOTIFY callback server (0 = pick a free port)
NOTIFY_PORT = 0

# ================= UPnP Configuration =================
AVTRANSPORT_SERVICE_TYPE = "urn:schemas-upnp-org:service:AVTransport:1"

# Evented state variable carrying the batched AVTransport changes
LAST_CHANGE_VARIABLE = "LastChange"

# HTTP timeout for device description and subscription requests (seconds)
HTTP_TIMEOUT = 10

# ================= Discovery Configuration =================
# Interval between SSDP searches for renderers (seconds)
RENDERER_SCAN_INTERVAL = 60

# How long each SSDP search waits for responses (seconds)
RENDERER_SCAN_TIMEOUT = 5

# A renderer is dropped after this many consecutive scans without a response
RENDERER_OFFLINE_THRESHOLD = 3

# Only follow the renderer with this friendly name or UDN (None = all)
RENDERER_FILTER = None

# ================= Subscription Configuration =================
# Subscription lifetime requested from the renderer (seconds)
SUBSCRIPTION_TIMEOUT = 1800

# Renew well before the lifetime runs out (seconds)
SUBSCRIPTION_RENEW_INTERVAL = 600

# Resubscription backoff after a lost subscription (seconds)
SUBSCRIPTION_RETRY_MIN = 2
SUBSCRIPTION_RETRY_MAX = 120

# ================= Notification Configuration =================
NOTIFY_ENABLED = True
NOTIFY_COMMAND = "notify-send"
NOTIFY_ICON = "audio-volume-high"
NOTIFY_URGENCY = "low"

# Expiry passed to the notification daemon (milliseconds, None = daemon default)
NOTIFY_EXPIRE_MS = None

# ================= Scrobble Configuration =================
# Command run for every track change. Each argument may use the placeholders
# {artist}, {title}, {upnp_class}, {source} and {timestamp}.
# Empty list disables scrobbling.
# 例如: ["scrobbler-submit", "--artist", "{artist}", "--title", "{title}", "--source", "{source}", "--time", "{timestamp}"]
SCROBBLE_COMMAND = []

# UPnP class of internet radio streams, scrobbled with source "R"
BROADCAST_CLASS = "object.item.audioItem.audioBroadcast"

# ================= Sink Configuration =================
# Time allowed for a single sink command to finish (seconds)
SINK_COMMAND_TIMEOUT = 10

# Time allowed for pending sink tasks to finish on shutdown (seconds)
SHUTDOWN_DRAIN_TIMEOUT = 5
