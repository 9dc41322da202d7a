"""Main application entry point for SpeakRelay."""

import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

from . import __version__
from .config import SpeakRelayConfig
from .errors import SpeakRelayError
from .services import GuestService, HostService
from .session.channel import SessionChannel
from .session.ids import generate_session_code, session_code
from .ui import SessionConsole

logger = logging.getLogger(__name__)

HOST_COMMANDS = "s=start/stop microphone, a=approve, r=reject, c=clear transcript, q=quit"
GUEST_COMMANDS = "j=request to join again, q=quit"


class HostApp:

    def __init__(self, config: SpeakRelayConfig, session: Optional[str], channel: Optional[SessionChannel] = None):
        self.config = config
        self.service = HostService(config, session or generate_session_code(), channel=channel)
        self.console = SessionConsole(self.service.coordinator)

    def run(self) -> None:
        self.console.attach()
        self.service.publisher.subscribe(self.console.on_pipeline_event)
        self.service.open()
        self.console.console.print(
            f"Share this code with guests: [bold magenta]{session_code(self.service.session_id)}[/]")
        self.console.console.print(HOST_COMMANDS, style="dim")
        try:
            for line in _read_commands():
                if not self.handle_command(line):
                    break
        finally:
            self.cleanup()

    def handle_command(self, command: str) -> bool:
        """Returns False to quit."""
        if command == 'q':
            return False
        if command == 's':
            if self.service.engine.is_capturing:
                self.service.stop_capture()
            else:
                try:
                    self.service.start_capture()
                except SpeakRelayError as e:
                    logger.error(f"Could not start capture: {e}")
                    self.console.console.print(f"Error: {e}", style="bold red")
        elif command == 'a':
            if self.service.coordinator.approve() is None:
                self.console.console.print("No pending join request", style="dim")
        elif command == 'r':
            if self.service.coordinator.reject() is None:
                self.console.console.print("No pending join request", style="dim")
        elif command == 'c':
            self.service.coordinator.clear_transcript()
        elif command:
            self.console.console.print(f"Unknown command {command!r}. {HOST_COMMANDS}", style="dim")
        return True

    def cleanup(self) -> None:
        self.service.close()
        self.service.publisher.unsubscribe(self.console.on_pipeline_event)
        self.console.detach()


class GuestApp:

    def __init__(self, config: SpeakRelayConfig, session: str, channel: Optional[SessionChannel] = None):
        self.config = config
        self.service = GuestService(config, session, channel=channel)
        self.console = SessionConsole(self.service.coordinator)

    def run(self) -> None:
        self.console.attach()
        self.service.join()
        self.console.console.print(GUEST_COMMANDS, style="dim")
        try:
            for line in _read_commands():
                if line == 'q':
                    break
                if line == 'j':
                    self.handle_join()
        finally:
            self.service.close()
            self.console.detach()

    def handle_join(self) -> bool:
        if self.service.rejoin():
            return True
        state = self.service.coordinator.state.value
        self.console.console.print(f"Already {state}, nothing to do", style="dim")
        return False


def _read_commands():
    """Yields lowercased first characters of stdin lines until EOF."""
    for line in sys.stdin:
        stripped = line.strip().lower()
        yield stripped[:1]


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/speakrelay.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # transcript goes to stdout
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("SpeakRelay starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SpeakRelay - live speech transcription shared with remote guests",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults plus environment)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"SpeakRelay v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    host = subparsers.add_parser("host", help="Capture the microphone and host a session",
                                 epilog=f"Commands: {HOST_COMMANDS}")
    host.add_argument("--session", type=str, help="Session code to host (default: generate one)")
    host.add_argument("--endpoint", type=str, help="Transcription endpoint URL (overrides config)")
    host.add_argument("--transcriber", choices=["http", "live"],
                      help="Transcription backend: chunked HTTP or Gemini Live streaming (overrides config)")
    host.add_argument("--language", type=str, help="Output language enforced by the live transcriber")

    join = subparsers.add_parser("join", help="Join a hosted session as a guest",
                                 epilog=f"Commands: {GUEST_COMMANDS}")
    join.add_argument("session", type=str, help="Session code shared by the host")

    for sub in (host, join):
        sub.add_argument("--backend", choices=["log", "peer"], help="Relay backend (overrides config)")

    return parser


def main(argv=None) -> None:
    """Main entry point for the SpeakRelay application."""
    args = build_parser().parse_args(argv)

    try:
        config = SpeakRelayConfig(args.config)
    except (OSError, ValueError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(2)

    if args.backend:
        config.set('relay.backend', args.backend)
    if getattr(args, 'endpoint', None):
        config.set('transcription.endpoint_url', args.endpoint)
    if getattr(args, 'transcriber', None):
        config.set('transcription.backend', args.transcriber)
    if getattr(args, 'language', None):
        config.set('transcription.live.language', args.language)
    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    try:
        if args.command == "host":
            app = HostApp(config, args.session)
        else:
            app = GuestApp(config, args.session)
        app.run()
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except (SpeakRelayError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
