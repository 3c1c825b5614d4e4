"""
DesktopNotifier - "Now playing" desktop notifications via notify-send
"""
import shutil
from typing import List, Optional

from core.track import Track, notification_text
from core.utils import log_debug
from config import APP_NAME, NOTIFY_COMMAND, NOTIFY_ICON, NOTIFY_URGENCY, NOTIFY_EXPIRE_MS
from .base import BaseSink, CommandRunner

URGENCY_LEVELS = ("low", "normal", "critical")


class DesktopNotifier(BaseSink):
    """
    Shows one low-urgency notification per track change.

    The message is the notification summary, e.g. "Playing Help! by The Beatles".
    """

    name = "Notifier"

    def __init__(
        self,
        command: str = NOTIFY_COMMAND,
        app_name: str = APP_NAME,
        icon: Optional[str] = NOTIFY_ICON,
        urgency: str = NOTIFY_URGENCY,
        expire_ms: Optional[int] = NOTIFY_EXPIRE_MS,
        runner: Optional[CommandRunner] = None,
        **kwargs,
    ):
        super().__init__(runner=runner, **kwargs)
        self._command = command
        self._app_name = app_name
        self._icon = icon
        self._urgency = urgency if urgency in URGENCY_LEVELS else "low"
        self._expire_ms = expire_ms

    def check_available(self) -> bool:
        """Check if the notification command is in PATH"""
        return shutil.which(self._command) is not None

    def ensure_available(self) -> bool:
        """Disable the sink when the configured command cannot be found"""
        if self.check_available():
            return True
        self.disable(f"{self._command} not found in PATH")
        return False

    def build_command(self, message: str) -> List[str]:
        """Build the notify-send argument list for a message"""
        argv = [
            self._command,
            f"--app-name={self._app_name}",
            f"--urgency={self._urgency}",
        ]
        if self._icon:
            argv.append(f"--icon={self._icon}")
        if self._expire_ms is not None:
            argv.append(f"--expire-time={int(self._expire_ms)}")
        # Titles may start with "-"
        argv.append("--")
        argv.append(message)
        return argv

    async def show(self, track: Track) -> bool:
        """
        Show the notification for a track. No-op for an empty track.

        Raises:
            SinkFailure: notify-send failed
        """
        message = notification_text(track)
        if message is None:
            log_debug(self.name, "Nothing to show for empty track")
            return False
        await self._run(self.build_command(message))
        return True

    async def submit(self, track: Track, timestamp: float):
        await self.show(track)
