# test_sinks.py
import asyncio
import sys

import pytest

from core.event_bus import EventBus
from core.events import track_changed
from core.exceptions import SinkFailure
from core.track import Track, EMPTY_TRACK
from output.base import run_command
from output.desktop_notifier import DesktopNotifier
from output.scrobbler import ScrobbleCommand, expand_placeholders, parse_command
from tests.fakes import RecordingRunner

HELP = Track("object.item.audioItem.musicTrack", "Help!", "The Beatles")
RADIO = Track("object.item.audioItem.audioBroadcast", "Radio Paradise", None)

SCROBBLE_TEMPLATE = ["scrobble", "-a", "{artist}", "-t", "{title}", "-o", "{source}", "-i", "{timestamp}"]


class TestDesktopNotifier:

    def test_command_line(self):
        notifier = DesktopNotifier(command="notify-send", icon="audio-volume-high", urgency="low")
        assert notifier.build_command("Playing Help! by The Beatles") == [
            "notify-send",
            "--app-name=tracknotify",
            "--urgency=low",
            "--icon=audio-volume-high",
            "--",
            "Playing Help! by The Beatles",
        ]

    def test_expire_time_and_bad_urgency(self):
        notifier = DesktopNotifier(icon=None, urgency="loud", expire_ms=3000)
        argv = notifier.build_command("Playing Help!")
        assert "--urgency=low" in argv
        assert "--expire-time=3000" in argv
        assert not any(arg.startswith("--icon") for arg in argv)

    def test_show_track(self):
        runner = RecordingRunner()
        notifier = DesktopNotifier(runner=runner)
        assert asyncio.run(notifier.handle(HELP, 0))
        assert runner.calls[0][-1] == "Playing Help! by The Beatles"

    def test_empty_track_is_not_shown(self):
        runner = RecordingRunner()
        notifier = DesktopNotifier(runner=runner)
        assert asyncio.run(notifier.show(EMPTY_TRACK)) is False
        assert runner.calls == []

    def test_failures_are_swallowed(self):
        notifier = DesktopNotifier(runner=RecordingRunner(error=SinkFailure("Notifier", "exited with 1")))
        assert asyncio.run(notifier.handle(HELP, 0)) is False

        notifier = DesktopNotifier(runner=RecordingRunner(error=RuntimeError("unexpected")))
        assert asyncio.run(notifier.handle(HELP, 0)) is False

    def test_disabled(self):
        runner = RecordingRunner()
        notifier = DesktopNotifier(runner=runner)
        notifier.disable("testing")
        assert asyncio.run(notifier.handle(HELP, 0)) is False
        assert runner.calls == []

    def test_missing_command(self):
        assert not DesktopNotifier(command="tracknotify-no-such-notifier").check_available()

    def test_unavailable_command_is_named_in_warning(self, capsys):
        notifier = DesktopNotifier(command="tracknotify-no-such-notifier")
        assert notifier.ensure_available() is False
        assert not notifier.enabled
        output = capsys.readouterr().out
        assert "tracknotify-no-such-notifier not found in PATH" in output
        assert "notify-send" not in output


class TestScrobbleCommand:

    def test_placeholders(self):
        assert expand_placeholders("{artist} - {title} {unknown}", {"artist": "A", "title": "T"}) == "A - T {unknown}"

    def test_chosen_track(self):
        runner = RecordingRunner()
        scrobbler = ScrobbleCommand(command=SCROBBLE_TEMPLATE, runner=runner)
        assert asyncio.run(scrobbler.handle(HELP, 1700000000.7))
        assert runner.calls == [
            ["scrobble", "-a", "The Beatles", "-t", "Help!", "-o", "P", "-i", "1700000000"],
        ]

    def test_broadcast_without_artist(self):
        runner = RecordingRunner()
        scrobbler = ScrobbleCommand(command=SCROBBLE_TEMPLATE, runner=runner)
        asyncio.run(scrobbler.handle(RADIO, 0))
        assert runner.calls[0][:7] == ["scrobble", "-a", "", "-t", "Radio Paradise", "-o", "R"]

    def test_empty_track_is_skipped(self):
        runner = RecordingRunner()
        scrobbler = ScrobbleCommand(command=SCROBBLE_TEMPLATE, runner=runner)
        asyncio.run(scrobbler.handle(EMPTY_TRACK, 0))
        assert runner.calls == []

    def test_no_command_disables(self):
        assert not ScrobbleCommand(command=[]).enabled
        assert not ScrobbleCommand().enabled

    def test_command_given_as_string(self):
        runner = RecordingRunner()
        scrobbler = ScrobbleCommand(command="my-scrobbler --title '{title}' --artist {artist}", runner=runner)
        assert scrobbler.command == ["my-scrobbler", "--title", "{title}", "--artist", "{artist}"]
        asyncio.run(scrobbler.handle(HELP, 0))
        assert runner.calls == [["my-scrobbler", "--title", "Help!", "--artist", "The Beatles"]]

    def test_invalid_command_values(self):
        assert parse_command({"cmd": "scrobble"}) == []
        assert parse_command(["scrobble", 3]) == []
        assert parse_command("scrobble 'unterminated") == []
        assert not ScrobbleCommand(command={"cmd": "scrobble"}).enabled

    def test_failure_is_swallowed(self):
        scrobbler = ScrobbleCommand(command=SCROBBLE_TEMPLATE,
                                    runner=RecordingRunner(error=SinkFailure("Scrobbler", "timed out")))
        assert asyncio.run(scrobbler.handle(HELP, 0)) is False


class TestSinksOnBus:

    def test_track_changed_reaches_both_sinks(self):
        bus = EventBus()
        notify_runner, scrobble_runner = RecordingRunner(), RecordingRunner()
        notifier = DesktopNotifier(runner=notify_runner)
        scrobbler = ScrobbleCommand(command=SCROBBLE_TEMPLATE, runner=scrobble_runner)
        notifier.attach(bus)
        scrobbler.attach(bus)

        async def scenario():
            bus.publish(track_changed("dev1", HELP, "Living Room"))
            assert await bus.drain(timeout=1)

        asyncio.run(scenario())
        assert len(notify_runner.calls) == 1
        assert len(scrobble_runner.calls) == 1

        notifier.detach(bus)
        scrobbler.detach(bus)
        asyncio.run(scenario())
        assert len(notify_runner.calls) == 1

    def test_failing_sink_does_not_block_the_other(self):
        bus = EventBus()
        scrobble_runner = RecordingRunner()
        DesktopNotifier(runner=RecordingRunner(error=SinkFailure("Notifier", "no daemon"))).attach(bus)
        ScrobbleCommand(command=SCROBBLE_TEMPLATE, runner=scrobble_runner).attach(bus)

        async def scenario():
            bus.publish(track_changed("dev1", HELP))
            await bus.drain(timeout=1)

        asyncio.run(scenario())
        assert len(scrobble_runner.calls) == 1


@pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
class TestRunCommand:

    def test_success(self):
        assert asyncio.run(run_command(["/bin/sh", "-c", "printf ok"], 5, "Test")) == b"ok"

    def test_exit_status(self):
        with pytest.raises(SinkFailure) as excinfo:
            asyncio.run(run_command(["/bin/sh", "-c", "echo nope >&2; exit 3"], 5, "Test"))
        assert "exited with 3" in str(excinfo.value)
        assert "nope" in str(excinfo.value)
        assert excinfo.value.sink == "Test"

    def test_missing_binary(self):
        with pytest.raises(SinkFailure):
            asyncio.run(run_command(["tracknotify-no-such-command"], 5, "Test"))

    def test_timeout(self):
        with pytest.raises(SinkFailure) as excinfo:
            asyncio.run(run_command(["/bin/sh", "-c", "exec sleep 5"], 0.1, "Test"))
        assert "timed out" in str(excinfo.value)
