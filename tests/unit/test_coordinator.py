"""Unit tests for the host and guest session state machines."""

import time

import pytest

from speakrelay.models.events import ReadyEvent, TranscriptEvent
from speakrelay.models.messages import (
    JoinApproved,
    JoinRejected,
    JoinRequest,
    SessionEnded,
    TranscriptClear,
    TranscriptUpdate,
    join_approved,
    join_rejected,
    join_request,
    transcript_update,
)
from speakrelay.models.session import GuestState, GuestStatus, Role
from speakrelay.models.transcript import new_entry
from speakrelay.session.coordinator import GuestCoordinator, HostCoordinator


@pytest.fixture
def host(recording_channel, topic):
    coordinator = HostCoordinator(recording_channel, topic=topic)
    coordinator.open()
    return coordinator


@pytest.fixture
def guest(recording_channel, topic):
    coordinator = GuestCoordinator(recording_channel, guest_id="ab12cd34", settle_delay=0, topic=topic)
    coordinator.open()
    yield coordinator
    coordinator.close()


def _event_types(events):
    return [e.event_type for e in events]


@pytest.mark.unit
class TestHostCoordinator:

    def test_open_connects_as_host(self, recording_channel, topic, session_events):
        host = HostCoordinator(recording_channel, topic=topic)
        host.open()

        assert recording_channel.role is Role.HOST
        assert host.is_open
        assert _event_types(session_events) == ["opened"]
        assert session_events[0].session_id == "speakrelay-abc123"

    def test_join_request_becomes_pending(self, host, recording_channel, session_events):
        recording_channel.receive(join_request("ab12cd34"))

        assert host.pending_guest.id == "ab12cd34"
        assert host.pending_guest.name == "Guest ab12"
        requested = session_events[-1]
        assert requested.event_type == "join_requested"
        assert requested.metadata == {"guest_id": "ab12cd34", "name": "Guest ab12"}

    def test_second_request_while_pending_is_dropped(self, host, recording_channel):
        recording_channel.receive(join_request("first"))
        recording_channel.receive(join_request("second"))

        assert host.pending_guest.id == "first"

    def test_approve_admits_pending_guest(self, host, recording_channel):
        recording_channel.receive(join_request("g1"))

        guest = host.approve()

        assert guest.status is GuestStatus.CONNECTED
        assert host.pending_guest is None
        assert [g.id for g in host.connected_guests()] == ["g1"]
        sent = recording_channel.sent[-1]
        assert isinstance(sent, JoinApproved)
        assert sent.payload.guest_id == "g1"

    def test_reject_turns_guest_away(self, host, recording_channel, session_events):
        recording_channel.receive(join_request("g1"))

        guest = host.reject()

        assert guest.status is GuestStatus.REJECTED
        assert host.connected_guests() == []
        assert isinstance(recording_channel.sent[-1], JoinRejected)
        assert session_events[-1].event_type == "guest_rejected"

    def test_decisions_without_pending_request(self, host, recording_channel):
        assert host.approve() is None
        assert host.reject() is None
        assert recording_channel.sent == []

    def test_next_request_accepted_after_decision(self, host, recording_channel):
        recording_channel.receive(join_request("first"))
        host.reject()
        recording_channel.receive(join_request("second"))

        assert host.pending_guest.id == "second"

    def test_connected_guest_asking_again_is_reapproved(self, host, recording_channel):
        recording_channel.receive(join_request("g1"))
        host.approve()
        recording_channel.sent.clear()

        recording_channel.receive(join_request("g1"))

        assert host.pending_guest is None
        assert len(recording_channel.sent) == 1
        assert isinstance(recording_channel.sent[0], JoinApproved)

    def test_add_entry_broadcasts_update(self, host, recording_channel, session_events):
        entry = new_entry("hello")

        host.add_entry(entry)

        assert host.get_transcript() == [entry]
        sent = recording_channel.sent[-1]
        assert isinstance(sent, TranscriptUpdate)
        assert sent.payload.entry == entry
        assert session_events[-1].metadata == {"entry_id": entry.id}

    def test_pipeline_transcripts_are_relayed(self, host, recording_channel):
        entry = new_entry("from the microphone")

        host.on_pipeline_event(ReadyEvent())
        host.on_pipeline_event(TranscriptEvent(entry=entry, sequence_number=0))

        assert host.get_transcript() == [entry]
        assert len(recording_channel.sent) == 1

    def test_clear_transcript(self, host, recording_channel):
        host.add_entry(new_entry("one"))

        host.clear_transcript()

        assert host.get_transcript() == []
        assert isinstance(recording_channel.sent[-1], TranscriptClear)

    def test_end_session_notifies_and_closes(self, host, recording_channel, session_events):
        host.end_session()

        assert isinstance(recording_channel.sent[-1], SessionEnded)
        assert recording_channel.closed
        assert not host.is_open
        assert _event_types(session_events)[-2:] == ["session_ended", "closed"]

    def test_host_ignores_guest_bound_messages(self, host, recording_channel):
        recording_channel.receive(transcript_update(new_entry("echo")))
        recording_channel.receive(join_approved("g1"))

        assert host.get_transcript() == []
        assert host.pending_guest is None


@pytest.mark.unit
class TestGuestCoordinator:

    def test_request_join_sends_request(self, guest, recording_channel):
        assert guest.request_join()

        assert guest.state is GuestState.REQUESTING
        sent = recording_channel.sent[-1]
        assert isinstance(sent, JoinRequest)
        assert sent.sender_id == "ab12cd34"

    def test_request_join_only_from_idle(self, guest, recording_channel):
        guest.request_join()

        assert guest.request_join() is False
        assert len(recording_channel.sent) == 1

    def test_approval_connects_and_transcript_flows(self, guest, recording_channel, session_events):
        guest.request_join()
        recording_channel.receive(join_approved("ab12cd34"))
        first, second = new_entry("one"), new_entry("two")

        recording_channel.receive(transcript_update(first))
        recording_channel.receive(transcript_update(second))

        assert guest.state is GuestState.CONNECTED
        assert guest.get_transcript() == [first, second]
        states = [e.metadata["state"] for e in session_events if e.event_type == "state_changed"]
        assert states == ["requesting", "connected"]

    def test_clear_empties_transcript(self, guest, recording_channel):
        guest.request_join()
        recording_channel.receive(join_approved("ab12cd34"))
        recording_channel.receive(transcript_update(new_entry("one")))

        recording_channel.receive(TranscriptClear())

        assert guest.get_transcript() == []

    def test_updates_before_approval_are_ignored(self, guest, recording_channel):
        guest.request_join()

        recording_channel.receive(transcript_update(new_entry("too early")))

        assert guest.get_transcript() == []

    def test_rejection_and_retry(self, guest, recording_channel):
        guest.request_join()
        recording_channel.receive(join_rejected("ab12cd34"))
        assert guest.state is GuestState.REJECTED

        assert guest.retry()
        assert guest.state is GuestState.IDLE
        assert guest.request_join()

        assert sum(isinstance(m, JoinRequest) for m in recording_channel.sent) == 2

    def test_retry_only_after_rejection(self, guest):
        assert guest.retry() is False
        guest.request_join()
        assert guest.retry() is False

    def test_decisions_ignored_when_not_requesting(self, guest, recording_channel):
        recording_channel.receive(join_approved("ab12cd34"))
        assert guest.state is GuestState.IDLE

        guest.request_join()
        recording_channel.receive(join_approved("ab12cd34"))
        recording_channel.receive(join_rejected("ab12cd34"))
        assert guest.state is GuestState.CONNECTED

    def test_decision_for_another_guest_is_accepted_by_default(self, guest, recording_channel):
        guest.request_join()

        recording_channel.receive(join_approved("someone-else"))

        assert guest.state is GuestState.CONNECTED

    def test_verify_guest_id_filters_foreign_decisions(self, recording_channel, topic):
        guest = GuestCoordinator(recording_channel, guest_id="me", settle_delay=0,
                                 verify_guest_id=True, topic=topic)
        guest.open()
        guest.request_join()

        recording_channel.receive(join_approved("someone-else"))
        assert guest.state is GuestState.REQUESTING

        recording_channel.receive(join_approved("me"))
        assert guest.state is GuestState.CONNECTED

    def test_session_end_resets_to_idle(self, guest, recording_channel):
        guest.request_join()
        recording_channel.receive(join_approved("ab12cd34"))
        recording_channel.receive(transcript_update(new_entry("one")))

        recording_channel.receive(SessionEnded())

        assert guest.state is GuestState.IDLE
        assert guest.get_transcript() == []

    def test_settle_delay_defers_first_send(self, recording_channel, topic):
        guest = GuestCoordinator(recording_channel, guest_id="g1", settle_delay=0.1, topic=topic)
        guest.open()

        guest.request_join()
        assert recording_channel.sent == []

        time.sleep(0.5)
        assert len(recording_channel.sent) == 1
        guest.close()

    def test_close_cancels_pending_join(self, recording_channel, topic):
        guest = GuestCoordinator(recording_channel, guest_id="g1", settle_delay=0.2, topic=topic)
        guest.open()
        guest.request_join()

        guest.close()
        time.sleep(0.4)

        assert recording_channel.sent == []
