"""
LastChange extractor - Now-playing metadata from AVTransport events

A LastChange event is a small XML document. Its CurrentTrackMetaData element
carries the DIDL-Lite description of the current track as the escaped text of
the "val" attribute, i.e. a second XML document inside an attribute of the
first one. Both documents are parsed independently:

1. SAX scan of the event for the first CurrentTrackMetaData element
2. Unescape the attribute value (once more for double-escaping devices)
3. SAX scan of the DIDL-Lite document for upnp:class, dc:title, upnp:artist

The parser runs without namespace processing, so element names are matched
literally including their prefix ("dc:title"), and renderers that forget to
declare a prefix are still understood.

Example event:
    <Event xmlns="urn:schemas-upnp-org:metadata-1-0/AVT/">
      <InstanceID val="0">
        <CurrentTrackMetaData val="&lt;DIDL-Lite ...&gt;&lt;item&gt;
          &lt;dc:title&gt;Help!&lt;/dc:title&gt; ...&lt;/DIDL-Lite&gt;"/>
      </InstanceID>
    </Event>
"""
import html
from typing import Dict, Optional
from xml.sax import SAXException, SAXParseException
from xml.sax.handler import ContentHandler

from defusedxml import DefusedXmlException
from defusedxml.sax import parseString

from .exceptions import ParseError, EventParseError, MetadataParseError
from .track import Track, EMPTY_TRACK

METADATA_ELEMENT = "CurrentTrackMetaData"
METADATA_ATTRIBUTE = "val"

# Value renderers report for state variables they do not support
NOT_IMPLEMENTED = "NOT_IMPLEMENTED"

TAG_CLASS = "upnp:class"
TAG_TITLE = "dc:title"
TAG_ARTIST = "upnp:artist"

DIDL_TAGS = frozenset((TAG_CLASS, TAG_TITLE, TAG_ARTIST))


class _LastChangeHandler(ContentHandler):
    """Finds the first CurrentTrackMetaData element and keeps its val attribute"""

    def __init__(self):
        super().__init__()
        self.found = False
        self.metadata: Optional[str] = None

    def startElement(self, name, attrs):
        if self.found or name != METADATA_ELEMENT:
            return
        self.found = True
        self.metadata = attrs.get(METADATA_ATTRIBUTE)


class _DidlLiteHandler(ContentHandler):
    """
    Collects the text of the first occurrence of each recognized tag.

    Text is the character data up to the next start or end tag. A tag that
    was already seen is ignored, even if its first occurrence was empty.
    """

    def __init__(self):
        super().__init__()
        self.values: Dict[str, Optional[str]] = {}
        self._capturing: Optional[str] = None
        self._buffer = []

    def startElement(self, name, attrs):
        self._finish()
        if name in DIDL_TAGS and name not in self.values:
            self._capturing = name
            self._buffer = []

    def endElement(self, name):
        self._finish()

    def characters(self, content):
        if self._capturing is not None:
            self._buffer.append(content)

    def endDocument(self):
        self._finish()

    def _finish(self):
        if self._capturing is None:
            return
        text = "".join(self._buffer).strip()
        self.values[self._capturing] = text or None
        self._capturing = None
        self._buffer = []


def _parse(document: str, handler: ContentHandler, error_class):
    """Run a SAX parse, converting parser errors to the given ParseError subclass"""
    try:
        parseString(document.encode("utf-8"), handler)
    except SAXParseException as e:
        raise error_class(e.getMessage(), e.getLineNumber(), e.getColumnNumber()) from e
    except (SAXException, DefusedXmlException, UnicodeError) as e:
        raise error_class(str(e)) from e


def unescape_metadata(value: Optional[str]) -> Optional[str]:
    """
    Turn a CurrentTrackMetaData attribute value into a DIDL-Lite document.

    The XML parser already decoded one level of entities. Some renderers
    escape the fragment twice, leaving "&lt;DIDL-Lite" behind; those get a
    second pass. Returns None when the value carries no metadata.
    """
    if value is None:
        return None
    value = value.strip()
    if not value or value == NOT_IMPLEMENTED:
        return None
    if not value.startswith("<"):
        value = html.unescape(value).strip()
    return value or None


def find_track_metadata(raw: str) -> Optional[str]:
    """
    Phase 1: locate the DIDL-Lite document inside a LastChange event.

    Args:
        raw: LastChange event XML

    Returns:
        Unescaped DIDL-Lite document, or None if the event has no metadata

    Raises:
        EventParseError: the event document is malformed
    """
    handler = _LastChangeHandler()
    _parse(raw.strip(), handler, EventParseError)
    return unescape_metadata(handler.metadata)


def parse_didl_lite(didl: str) -> Track:
    """
    Phase 2: read class, title and artist from a DIDL-Lite document.

    Raises:
        MetadataParseError: the DIDL-Lite document is malformed
    """
    handler = _DidlLiteHandler()
    _parse(didl, handler, MetadataParseError)
    values = handler.values
    return Track(
        upnp_class=values.get(TAG_CLASS),
        title=values.get(TAG_TITLE),
        artist=values.get(TAG_ARTIST),
    )


def extract_track(raw: str) -> Track:
    """
    Extract the now-playing track from a LastChange event.

    Returns EMPTY_TRACK when the event carries no track metadata, which is a
    normal condition (most events only report transport state or position).

    Raises:
        EventParseError: the event document is malformed
        MetadataParseError: the embedded DIDL-Lite document is malformed
    """
    if raw is None:
        raise EventParseError("no event data")
    didl = find_track_metadata(raw)
    if didl is None:
        return EMPTY_TRACK
    return parse_didl_lite(didl)


__all__ = [
    "ParseError",
    "EventParseError",
    "MetadataParseError",
    "extract_track",
    "find_track_metadata",
    "parse_didl_lite",
    "unescape_metadata",
]
