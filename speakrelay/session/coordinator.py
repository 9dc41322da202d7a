"""Host and guest state machines layered on a SessionChannel."""

import logging
import threading
from typing import Any, List, Optional

from pubsub import pub

from ..models.events import PipelineEvent, SessionEvent, TranscriptEvent
from ..models.messages import (
    JoinApproved,
    JoinRejected,
    JoinRequest,
    SessionEnded,
    SignalingMessage,
    TranscriptClear,
    TranscriptUpdate,
    join_approved,
    join_rejected,
    join_request,
    transcript_update,
)
from ..models.session import Guest, GuestState, GuestStatus, Role
from ..models.transcript import TranscriptEntry
from .channel import SessionChannel

logger = logging.getLogger(__name__)

JOIN_SETTLE_DELAY = 1.5


class _Coordinator:
    """Shared plumbing: channel ownership, transcript log, event publishing."""

    role: Role

    def __init__(self, channel: SessionChannel, topic: str):
        self.channel = channel
        self.session_id = channel.session_id
        self.topic = topic
        self.transcript: List[TranscriptEntry] = []
        self.lock = threading.RLock()
        self.is_open = False

    def open(self) -> None:
        if self.is_open:
            return
        self.channel.connect(self.role, self.handle_message)
        self.is_open = True
        self._publish("opened")

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        self.channel.close()
        self._publish("closed")

    def handle_message(self, message: SignalingMessage) -> None:
        raise NotImplementedError

    def get_transcript(self) -> List[TranscriptEntry]:
        with self.lock:
            return list(self.transcript)

    def _publish(self, event_type: str, **metadata: Any) -> None:
        pub.sendMessage(self.topic, event=SessionEvent(
            event_type=event_type, session_id=self.session_id, metadata=metadata))


class HostCoordinator(_Coordinator):
    """Host side: approves guests and fans transcript changes out to them.

    At most one join request is pending at a time. A request that arrives
    while another is pending is dropped, so the host always decides on the
    request it is looking at.
    """

    role = Role.HOST

    def __init__(self, channel: SessionChannel, topic: str = "session.host"):
        super().__init__(channel, topic)
        self.pending_guest: Optional[Guest] = None
        self.guests: List[Guest] = []

    def handle_message(self, message: SignalingMessage) -> None:
        if isinstance(message, JoinRequest):
            self._on_join_request(message)
        else:
            logger.debug(f"Host ignoring {message.type}")

    def _on_join_request(self, message: JoinRequest) -> None:
        guest_id = message.sender_id
        with self.lock:
            if any(g.id == guest_id for g in self.guests):
                logger.info(f"Guest {guest_id} is already connected, re-sending approval")
                self.channel.send(join_approved(guest_id))
                return
            if self.pending_guest is not None:
                logger.info(f"Dropping join request from {guest_id}: "
                            f"{self.pending_guest.id} is still awaiting a decision")
                return
            self.pending_guest = Guest.from_sender_id(guest_id)
            guest = self.pending_guest
        logger.info(f"Join request from {guest.name} ({guest.id})")
        self._publish("join_requested", guest_id=guest.id, name=guest.name)

    def approve(self) -> Optional[Guest]:
        """Admit the pending guest. Returns it, or None when nothing is pending."""
        with self.lock:
            guest = self.pending_guest
            if guest is None:
                logger.warning("approve() with no pending join request")
                return None
            guest.approve()
            self.guests.append(guest)
            self.pending_guest = None
            self.channel.send(join_approved(guest.id))
        logger.info(f"Approved {guest.name} ({len(self.guests)} guests)")
        self._publish("guest_approved", guest_id=guest.id, name=guest.name)
        return guest

    def reject(self) -> Optional[Guest]:
        """Turn the pending guest away. Returns it, or None when nothing is pending."""
        with self.lock:
            guest = self.pending_guest
            if guest is None:
                logger.warning("reject() with no pending join request")
                return None
            guest.reject()
            self.pending_guest = None
            self.channel.send(join_rejected(guest.id))
        logger.info(f"Rejected {guest.name}")
        self._publish("guest_rejected", guest_id=guest.id, name=guest.name)
        return guest

    def connected_guests(self) -> List[Guest]:
        with self.lock:
            return [g for g in self.guests if g.status is GuestStatus.CONNECTED]

    def add_entry(self, entry: TranscriptEntry) -> None:
        """Append a locally produced entry and broadcast it."""
        with self.lock:
            self.transcript.append(entry)
            self.channel.send(transcript_update(entry))
        self._publish("transcript_updated", entry_id=entry.id)

    def clear_transcript(self) -> None:
        with self.lock:
            self.transcript.clear()
            self.channel.send(TranscriptClear())
        self._publish("transcript_cleared")

    def end_session(self) -> None:
        """Tell every guest the session is over, then leave the channel."""
        if self.is_open:
            self.channel.send(SessionEnded())
        self._publish("session_ended")
        self.close()

    def on_pipeline_event(self, event: PipelineEvent) -> None:
        """pubsub listener for the capture pipeline topic."""
        if isinstance(event, TranscriptEvent) and event.entry is not None:
            self.add_entry(event.entry)


class GuestCoordinator(_Coordinator):
    """Guest side: idle -> requesting -> connected | rejected, rejected -> idle on retry.

    Approvals and rejections are taken at face value while requesting: the
    ``guestId`` in the payload is not compared with our own id unless
    ``verify_guest_id`` is set. With several guests asking at once, one guest
    can therefore be admitted by an approval meant for another.
    """

    role = Role.GUEST

    def __init__(self,
                 channel: SessionChannel,
                 guest_id: str,
                 settle_delay: float = JOIN_SETTLE_DELAY,
                 display_name: str = "Guest",
                 verify_guest_id: bool = False,
                 topic: str = "session.guest"):
        super().__init__(channel, topic)
        self.guest_id = guest_id
        self.display_name = display_name
        self.settle_delay = settle_delay
        self.verify_guest_id = verify_guest_id
        self.state = GuestState.IDLE
        self._join_timer: Optional[threading.Timer] = None

    def request_join(self) -> bool:
        """Ask the host to admit us. Only valid from idle."""
        with self.lock:
            if self.state is not GuestState.IDLE:
                logger.warning(f"request_join() ignored in state {self.state.value}")
                return False
            self._set_state(GuestState.REQUESTING)
            if self.settle_delay > 0:
                # Give the channel a moment to finish connecting before the first send.
                self._join_timer = threading.Timer(self.settle_delay, self._send_join_request)
                self._join_timer.daemon = True
                self._join_timer.start()
                return True
        self._send_join_request()
        return True

    def _send_join_request(self) -> None:
        with self.lock:
            self._join_timer = None
            if self.state is not GuestState.REQUESTING or not self.is_open:
                return
        self.channel.send(join_request(self.guest_id, self.display_name))
        logger.info(f"Sent join request as {self.guest_id}")

    def retry(self) -> bool:
        """User-initiated recovery after a rejection."""
        with self.lock:
            if self.state is not GuestState.REJECTED:
                logger.warning(f"retry() ignored in state {self.state.value}")
                return False
            self._set_state(GuestState.IDLE)
        return True

    def handle_message(self, message: SignalingMessage) -> None:
        with self.lock:
            if isinstance(message, SessionEnded):
                self._cancel_join_timer()
                self.transcript.clear()
                self._set_state(GuestState.IDLE)
            elif isinstance(message, (JoinApproved, JoinRejected)):
                self._on_decision(message)
            elif isinstance(message, TranscriptUpdate):
                if self.state is GuestState.CONNECTED:
                    self.transcript.append(message.payload.entry)
                    self._publish("transcript_updated", entry_id=message.payload.entry.id)
                else:
                    logger.debug(f"Ignoring transcript update in state {self.state.value}")
            elif isinstance(message, TranscriptClear):
                if self.state is GuestState.CONNECTED:
                    self.transcript.clear()
                    self._publish("transcript_cleared")
                else:
                    logger.debug(f"Ignoring transcript clear in state {self.state.value}")
            else:
                logger.debug(f"Guest ignoring {message.type}")

    def _on_decision(self, message) -> None:
        if self.state is not GuestState.REQUESTING:
            logger.debug(f"Ignoring {message.type} in state {self.state.value}")
            return
        if self.verify_guest_id and message.payload.guest_id != self.guest_id:
            logger.debug(f"Ignoring {message.type} addressed to {message.payload.guest_id}")
            return
        self._cancel_join_timer()
        if isinstance(message, JoinApproved):
            self._set_state(GuestState.CONNECTED)
        else:
            self._set_state(GuestState.REJECTED)

    def _set_state(self, state: GuestState) -> None:
        previous, self.state = self.state, state
        if previous is not state:
            logger.info(f"Guest {self.guest_id}: {previous.value} -> {state.value}")
            self._publish("state_changed", previous=previous.value, state=state.value)

    def _cancel_join_timer(self) -> None:
        if self._join_timer is not None:
            self._join_timer.cancel()
            self._join_timer = None

    def close(self) -> None:
        with self.lock:
            self._cancel_join_timer()
        super().close()
