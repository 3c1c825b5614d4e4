# test_lastchange.py
import html

import pytest

from core.exceptions import ParseError, EventParseError, MetadataParseError
from core.lastchange import extract_track, find_track_metadata, parse_didl_lite, unescape_metadata
from core.track import Track, EMPTY_TRACK
from tests.fakes import didl, last_change, DIDL_HEADER


class TestExtractTrack:
    """Tests for pulling the now-playing track out of LastChange events."""

    def test_music_track(self):
        raw = last_change(didl("Help!", "The Beatles"))
        assert extract_track(raw) == Track("object.item.audioItem.musicTrack", "Help!", "The Beatles")

    def test_radio_broadcast_without_artist(self):
        raw = last_change(didl("Radio Paradise", upnp_class="object.item.audioItem.audioBroadcast"))
        track = extract_track(raw)
        assert track.title == "Radio Paradise"
        assert track.artist is None
        assert track.is_broadcast

    def test_event_without_metadata_is_empty(self):
        assert extract_track(last_change()) is EMPTY_TRACK

    def test_not_implemented_is_empty(self):
        raw = last_change().replace(
            '<TransportState val="PLAYING"/>',
            '<TransportState val="PLAYING"/><CurrentTrackMetaData val="NOT_IMPLEMENTED"/>',
        )
        assert extract_track(raw) is EMPTY_TRACK

    def test_empty_value_is_empty(self):
        assert extract_track(last_change("")) is EMPTY_TRACK

    def test_first_metadata_element_wins(self):
        second = f'<CurrentTrackMetaData val="{html.escape(didl("Yesterday", "The Beatles"))}"/>'
        raw = last_change(didl("Help!", "The Beatles"), extra="").replace(
            "</InstanceID>", f"</InstanceID><InstanceID val=\"1\">{second}</InstanceID>"
        )
        assert extract_track(raw).title == "Help!"

    def test_first_tag_occurrence_wins(self):
        document = (DIDL_HEADER + "<item><dc:title>First</dc:title><dc:title>Second</dc:title>"
                    "<upnp:artist>Someone</upnp:artist></item></DIDL-Lite>")
        assert extract_track(last_change(document)).title == "First"

    def test_empty_first_occurrence_still_wins(self):
        document = (DIDL_HEADER + "<item><dc:title></dc:title><dc:title>Second</dc:title>"
                    "<upnp:artist>Someone</upnp:artist></item></DIDL-Lite>")
        track = extract_track(last_change(document))
        assert track.title is None
        assert track.artist == "Someone"

    def test_undeclared_prefixes_are_accepted(self):
        document = "<DIDL-Lite><item><dc:title>Help!</dc:title><upnp:artist>The Beatles</upnp:artist></item></DIDL-Lite>"
        track = extract_track(last_change(document))
        assert track == Track(None, "Help!", "The Beatles")

    def test_whitespace_is_stripped(self):
        raw = last_change(didl("  Help!\n ", "\tThe Beatles  "))
        track = extract_track(raw)
        assert track.title == "Help!"
        assert track.artist == "The Beatles"

    def test_entities_inside_metadata(self):
        raw = last_change(didl("Mrs. Robinson", "Simon &amp; Garfunkel"))
        assert extract_track(raw).artist == "Simon & Garfunkel"

    def test_double_escaped_metadata(self):
        raw = last_change(didl("Help!", "The Beatles"), escape_times=2)
        assert extract_track(raw).title == "Help!"

    def test_surrounding_whitespace_in_event(self):
        raw = "\n  " + last_change(didl("Help!", "The Beatles")) + "\n"
        assert extract_track(raw).artist == "The Beatles"

    def test_other_variables_are_ignored(self):
        raw = last_change(didl("Help!", "The Beatles"),
                          extra='<AVTransportURIMetaData val="&lt;DIDL-Lite&gt;"/>')
        assert extract_track(raw).title == "Help!"


class TestParseErrors:
    """Malformed documents are reported per phase."""

    def test_malformed_event(self):
        with pytest.raises(EventParseError) as excinfo:
            extract_track("<Event><InstanceID")
        assert isinstance(excinfo.value, ParseError)
        assert excinfo.value.line is not None
        assert str(excinfo.value).startswith("LastChange XML malformed")

    def test_malformed_metadata(self):
        raw = last_change(DIDL_HEADER + "<item><dc:title>Help!</dc:title>")
        with pytest.raises(MetadataParseError) as excinfo:
            extract_track(raw)
        assert "DIDL-Lite" in str(excinfo.value)

    def test_missing_event(self):
        with pytest.raises(EventParseError):
            extract_track(None)

    def test_entity_declarations_are_rejected(self):
        raw = '<!DOCTYPE Event [<!ENTITY boom "boom">]><Event>&boom;</Event>'
        with pytest.raises(EventParseError):
            extract_track(raw)


class TestPhases:

    def test_find_track_metadata_returns_document(self):
        document = didl("Help!", "The Beatles")
        assert find_track_metadata(last_change(document)) == document

    def test_parse_didl_lite_directly(self):
        assert parse_didl_lite(didl(None, None, None)) == EMPTY_TRACK

    def test_unescape_metadata(self):
        assert unescape_metadata(None) is None
        assert unescape_metadata("   ") is None
        assert unescape_metadata("NOT_IMPLEMENTED") is None
        assert unescape_metadata("&lt;DIDL-Lite/&gt;") == "<DIDL-Lite/>"
        assert unescape_metadata(" <DIDL-Lite/> ") == "<DIDL-Lite/>"
