"""
Exception hierarchy

ParseError subclasses describe which of the two parse phases of a LastChange
event failed. SinkFailure never leaves a sink: BaseSink.handle() logs it.
"""


class TrackNotifyError(Exception):
    """Base class for all tracknotify errors"""


class ParseError(TrackNotifyError):
    """A LastChange event could not be parsed"""

    phase = "event"

    def __init__(self, message: str, line: int = None, column: int = None):
        super().__init__(message)
        self.line = line
        self.column = column

    def __str__(self):
        message = super().__str__()
        if self.line is not None:
            return f"{self.phase} XML malformed at line {self.line}, column {self.column}: {message}"
        return f"{self.phase} XML malformed: {message}"


class EventParseError(ParseError):
    """The outer LastChange document is malformed"""

    phase = "LastChange"


class MetadataParseError(ParseError):
    """The DIDL-Lite document inside CurrentTrackMetaData is malformed"""

    phase = "DIDL-Lite"


class SinkFailure(TrackNotifyError):
    """A notification or scrobble command failed"""

    def __init__(self, sink: str, message: str):
        super().__init__(f"{sink}: {message}")
        self.sink = sink
