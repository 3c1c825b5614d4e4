"""
ScrobbleCommand - Hands every track change to an external scrobble command

The command is an argument list template from the configuration. tracknotify
does not speak any scrobbling protocol itself; it only fills in:

    {artist}      upnp:artist (empty if unknown)
    {title}       dc:title (empty if unknown)
    {upnp_class}  upnp:class (empty if unknown)
    {source}      "R" for internet radio, "P" otherwise
    {timestamp}   unix time the track started
"""
import re
import shlex
from typing import Dict, List, Optional, Sequence, Union

from core.track import Track, scrobble_source
from core.utils import log_info, log_debug, log_warning
from config import SCROBBLE_COMMAND
from .base import BaseSink, CommandRunner

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def expand_placeholders(template: str, fields: Dict[str, str]) -> str:
    """Replace {name} placeholders, leaving unknown ones untouched"""
    return _PLACEHOLDER.sub(lambda m: fields.get(m.group(1), m.group(0)), template)


def parse_command(command: Union[str, Sequence[str], None]) -> List[str]:
    """
    Normalize the configured command to an argument list.

    A string is split like a shell command line ("my-scrobbler -t {title}").
    Anything else that is not a list of strings is rejected with a warning.
    """
    if not command:
        return []
    if isinstance(command, str):
        try:
            return shlex.split(command)
        except ValueError as e:
            log_warning("Scrobbler", f"Ignoring scrobble command {command!r}: {e}")
            return []
    if isinstance(command, (list, tuple)) and all(isinstance(arg, str) for arg in command):
        return list(command)
    log_warning("Scrobbler", f"Ignoring scrobble command {command!r}: expected a list of strings")
    return []


def scrobble_fields(track: Track, timestamp: float) -> Dict[str, str]:
    return {
        "artist": track.artist or "",
        "title": track.title or "",
        "upnp_class": track.upnp_class or "",
        "source": scrobble_source(track),
        "timestamp": str(int(timestamp)),
    }


class ScrobbleCommand(BaseSink):
    """Scrobble sink running a configured command per track change"""

    name = "Scrobbler"

    def __init__(
        self,
        command: Union[str, Sequence[str], None] = None,
        runner: Optional[CommandRunner] = None,
        **kwargs,
    ):
        super().__init__(runner=runner, **kwargs)
        self._command = parse_command(command if command is not None else SCROBBLE_COMMAND)
        if not self._command:
            self._enabled = False

    @property
    def command(self) -> List[str]:
        return list(self._command)

    def build_command(self, track: Track, timestamp: float) -> List[str]:
        """Expand the command template for a track"""
        fields = scrobble_fields(track, timestamp)
        return [expand_placeholders(arg, fields) for arg in self._command]

    async def submit(self, track: Track, timestamp: float):
        """
        Run the scrobble command for a track.

        Raises:
            SinkFailure: the command failed
        """
        if track.is_empty:
            log_debug(self.name, "Nothing to scrobble for empty track")
            return
        await self._run(self.build_command(track, timestamp))
        log_info(self.name, f"Scrobbled ({scrobble_source(track)}): {track}")
