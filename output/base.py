"""
Sink base class

A sink receives TRACK_CHANGED events from the event bus. Sinks are best
effort: BaseSink.handle() logs every failure and never lets it reach the
event pipeline.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Sequence

from core.event_bus import EventBus
from core.events import Event, EventType
from core.exceptions import SinkFailure
from core.track import Track
from core.utils import log_debug, log_warning, log_exception
from config import SINK_COMMAND_TIMEOUT

# (argv, timeout, sink name) -> stdout
CommandRunner = Callable[[Sequence[str], float, str], Awaitable[bytes]]


async def run_command(argv: Sequence[str], timeout: float, sink: str) -> bytes:
    """
    Run an external command without blocking the event loop.

    Raises:
        SinkFailure: the command could not be started, timed out or failed
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SinkFailure(sink, f"cannot run {argv[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise SinkFailure(sink, f"{argv[0]} timed out after {timeout}s")

    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise SinkFailure(sink, f"{argv[0]} exited with {process.returncode}: {detail}")
    return stdout


class BaseSink(ABC):
    """Abstract now-playing sink"""

    name = "Sink"

    def __init__(self, runner: Optional[CommandRunner] = None, timeout: float = SINK_COMMAND_TIMEOUT):
        self._runner = runner or run_command
        self._timeout = timeout
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def disable(self, reason: str):
        """Turn the sink off for the rest of the run"""
        self._enabled = False
        log_warning(self.name, f"Disabled: {reason}")

    async def _run(self, argv: Sequence[str]) -> bytes:
        log_debug(self.name, f"Running: {' '.join(argv)}")
        return await self._runner(argv, self._timeout, self.name)

    @abstractmethod
    async def submit(self, track: Track, timestamp: float):
        """Deliver the track. May raise SinkFailure."""

    async def handle(self, track: Track, timestamp: float) -> bool:
        """
        Deliver a track, swallowing failures.

        Returns:
            True if the sink delivered the track
        """
        if not self._enabled:
            return False
        try:
            await self.submit(track, timestamp)
            return True
        except SinkFailure as e:
            log_warning(self.name, str(e))
        except Exception as e:
            log_exception(self.name, f"Unexpected failure: {e}")
        return False

    async def on_track_changed(self, event: Event):
        """Event bus handler for TRACK_CHANGED"""
        track = event.data.get("track")
        if not isinstance(track, Track):
            return
        await self.handle(track, event.timestamp)

    def attach(self, bus: EventBus):
        """Subscribe to track changes on the bus"""
        bus.subscribe(EventType.TRACK_CHANGED, self.on_track_changed)

    def detach(self, bus: EventBus):
        bus.unsubscribe(EventType.TRACK_CHANGED, self.on_track_changed)
