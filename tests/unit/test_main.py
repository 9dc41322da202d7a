"""Unit tests for the command line entry point."""

import logging

import pytest
from rich.console import Console

from speakrelay.config import SpeakRelayConfig
from speakrelay.main import GuestApp, HostApp, build_parser, main, setup_logging
from speakrelay.models.messages import JoinRequest, SessionEnded, TranscriptClear, join_approved, join_request


@pytest.mark.unit
class TestParser:

    def test_host_defaults(self):
        args = build_parser().parse_args(["host"])

        assert args.command == "host"
        assert args.session is None
        assert args.backend is None
        assert args.transcriber is None

    def test_host_with_live_transcriber(self):
        args = build_parser().parse_args(["host", "--transcriber", "live", "--language", "English"])

        assert args.transcriber == "live"
        assert args.language == "English"

    def test_join_requires_session(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["join"])

    def test_join_with_backend(self):
        args = build_parser().parse_args(["--log-level", "DEBUG", "join", "abc123", "--backend", "peer"])

        assert args.session == "abc123"
        assert args.backend == "peer"
        assert args.log_level == "DEBUG"

    def test_missing_config_file_exits(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", str(tmp_path / "missing.yaml"), "host"])

        assert excinfo.value.code == 2


@pytest.mark.unit
class TestHostCommands:

    @pytest.fixture
    def app(self, temp_data_dir, recording_channel):
        config = SpeakRelayConfig()
        config.set('transcription.endpoint_url', 'http://127.0.0.1:9/asr')
        config.set('storage.data_directory', temp_data_dir)
        app = HostApp(config, "abc123", channel=recording_channel)
        app.console.console = Console(record=True, width=100)
        app.service.open()
        yield app
        app.cleanup()

    def test_quit(self, app):
        assert app.handle_command('q') is False

    def test_approve_without_request(self, app):
        assert app.handle_command('a') is True

        assert "No pending join request" in app.console.console.export_text()

    def test_approve_pending_guest(self, app, recording_channel):
        recording_channel.receive(join_request("g1"))

        app.handle_command('a')

        assert [g.id for g in app.service.coordinator.connected_guests()] == ["g1"]

    def test_clear(self, app, recording_channel):
        app.handle_command('c')

        assert isinstance(recording_channel.sent[-1], TranscriptClear)

    def test_generated_session_code(self, temp_data_dir):
        config = SpeakRelayConfig()
        config.set('transcription.endpoint_url', 'http://127.0.0.1:9/asr')
        config.set('storage.data_directory', temp_data_dir)

        app = HostApp(config, None)

        assert app.service.session_id.startswith("speakrelay-")
        assert len(app.service.session_id) == len("speakrelay-") + 6


@pytest.mark.unit
class TestGuestCommands:

    @pytest.fixture
    def app(self, temp_data_dir, recording_channel):
        config = SpeakRelayConfig()
        config.set('storage.data_directory', temp_data_dir)
        config.set('relay.join_settle_delay_seconds', 0)
        app = GuestApp(config, "abc123", channel=recording_channel)
        app.console.console = Console(record=True, width=100)
        app.service.join()
        yield app
        app.service.close()

    def test_join_again_after_session_ended(self, app, recording_channel):
        recording_channel.receive(join_approved(app.service.coordinator.guest_id))
        recording_channel.receive(SessionEnded())

        assert app.handle_join() is True

        assert [type(m) for m in recording_channel.sent] == [JoinRequest, JoinRequest]

    def test_join_while_requesting_does_nothing(self, app, recording_channel):
        assert app.handle_join() is False

        assert len(recording_channel.sent) == 1
        assert "Already requesting" in app.console.console.export_text()


@pytest.mark.unit
class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_file_and_console_handlers(self, tmp_path):
        config = SpeakRelayConfig()
        log_file = tmp_path / "logs" / "speakrelay.log"
        config.set('logging.file_path', str(log_file))

        setup_logging(config, "debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert [type(h) for h in root.handlers] == [logging.FileHandler, logging.StreamHandler]
        assert root.handlers[1].level == logging.WARNING
        assert "SpeakRelay starting up" in log_file.read_text()

    def test_console_output_can_be_disabled(self, tmp_path):
        config = SpeakRelayConfig()
        config.set('logging.file_path', str(tmp_path / "speakrelay.log"))
        config.set('logging.console_output', False)

        setup_logging(config)

        assert [type(h) for h in logging.getLogger().handlers] == [logging.FileHandler]
