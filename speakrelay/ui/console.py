"""Rich console rendering for host and guest sessions."""

import logging
from datetime import datetime
from typing import Optional, Union

from pubsub import pub
from rich.console import Console
from rich.text import Text

from ..models.events import PipelineEvent, SessionEvent
from ..models.transcript import Sender
from ..session.coordinator import GuestCoordinator, HostCoordinator

logger = logging.getLogger(__name__)

_STATUS_STYLES = {
    "connected": ("Microphone open, waiting for backend", "yellow"),
    "warmup": ("Model warming up...", "yellow italic"),
    "ready": ("Transcribing", "bold green"),
    "disconnected": ("Capture stopped", "bold yellow"),
}


class SessionConsole:
    """Prints session events and transcript lines as they arrive.

    Holds the listener as a bound method on itself; pubsub only keeps weak
    references, so the console must stay alive for as long as it renders.
    """

    def __init__(self, coordinator: Union[HostCoordinator, GuestCoordinator], console: Optional[Console] = None):
        self.coordinator = coordinator
        self.console = console or Console()
        self._printed_ids = set()
        self._last_turn_id = None

    def attach(self) -> None:
        pub.subscribe(self.on_session_event, self.coordinator.topic)

    def detach(self) -> None:
        if pub.isSubscribed(self.on_session_event, self.coordinator.topic):
            pub.unsubscribe(self.on_session_event, self.coordinator.topic)

    def on_session_event(self, event: SessionEvent) -> None:
        try:
            self._render(event)
        except Exception as e:
            logger.error(f"Error rendering session event {event.event_type}: {e}")

    def on_pipeline_event(self, event: PipelineEvent) -> None:
        if event.kind in _STATUS_STYLES:
            message, style = _STATUS_STYLES[event.kind]
            self.console.print(message, style=style)
        elif event.kind == "error":
            style = "bold red" if event.fatal else "red"
            self.console.print(f"Error: {event.error}", style=style)

    def _render(self, event: SessionEvent) -> None:
        kind = event.event_type
        meta = event.metadata
        if kind == "transcript_updated":
            self._print_new_entries()
        elif kind == "transcript_cleared":
            self._printed_ids.clear()
            self._last_turn_id = None
            self.console.rule("transcript cleared")
        elif kind == "join_requested":
            self.console.print(
                Text.assemble(("Join request ", "bold"), f"from {meta['name']} ({meta['guest_id']})  ",
                              ("a", "bold green"), " approve  ", ("r", "bold red"), " reject"))
        elif kind == "guest_approved":
            self.console.print(f"{meta['name']} joined", style="green")
        elif kind == "guest_rejected":
            self.console.print(f"{meta['name']} was turned away", style="yellow")
        elif kind == "state_changed":
            self.console.print(f"Guest status: {meta['state']}", style="cyan")
        elif kind == "session_ended":
            self.console.print("Session ended", style="bold blue")
        elif kind == "opened":
            self.console.print(Text.assemble(("Session ", "bold"), (event.session_id, "bold magenta")))

    def _print_new_entries(self) -> None:
        for entry in self.coordinator.get_transcript():
            if entry.id in self._printed_ids:
                continue
            self._printed_ids.add(entry.id)
            continues_turn = entry.turn_id is not None and entry.turn_id == self._last_turn_id
            self._last_turn_id = entry.turn_id
            if continues_turn:
                prefix = " " * 11
            else:
                prefix = f"[{datetime.fromtimestamp(entry.timestamp / 1000).strftime('%H:%M:%S')}] "
            style = "cyan" if entry.sender is Sender.REMOTE_MODEL else ""
            self.console.print(Text.assemble((prefix, "dim"), (entry.text.strip(), style)))
