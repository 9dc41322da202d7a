"""End-to-end host/guest sessions over the log relay."""

import time

import pytest

from speakrelay.models.session import GuestState
from speakrelay.models.transcript import new_entry
from speakrelay.session.coordinator import GuestCoordinator, HostCoordinator
from speakrelay.session.log_channel import LogSessionChannel
from speakrelay.storage.message_log import FileMessageLog


def _wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def make_guest(message_log, topic):
    guests = []

    def factory(guest_id, verify_guest_id=False):
        guest = GuestCoordinator(LogSessionChannel("Team Sync", message_log), guest_id=guest_id,
                                 settle_delay=0, verify_guest_id=verify_guest_id, topic=topic)
        guest.open()
        guests.append(guest)
        return guest

    yield factory
    for guest in guests:
        guest.close()


@pytest.fixture
def host(message_log, topic):
    host = HostCoordinator(LogSessionChannel("team-sync", message_log), topic=topic)
    host.open()
    yield host
    host.close()


@pytest.mark.integration
class TestLogRelaySession:

    def test_approved_guest_mirrors_transcript(self, host, make_guest):
        guest = make_guest("ab12cd34")

        guest.request_join()
        assert host.pending_guest.id == "ab12cd34"
        host.approve()
        assert guest.state is GuestState.CONNECTED

        entries = [new_entry(text) for text in ("one", "two", "three")]
        for entry in entries:
            host.add_entry(entry)

        assert guest.get_transcript() == entries
        assert host.get_transcript() == entries

        host.clear_transcript()
        assert guest.get_transcript() == []
        assert host.get_transcript() == []

    def test_rejected_guest_can_retry(self, host, make_guest):
        guest = make_guest("ab12cd34")

        guest.request_join()
        host.reject()
        assert guest.state is GuestState.REJECTED

        host.add_entry(new_entry("not for you"))
        assert guest.get_transcript() == []

        guest.retry()
        guest.request_join()
        host.approve()
        assert guest.state is GuestState.CONNECTED

    def test_session_end_returns_guest_to_idle(self, host, make_guest):
        guest = make_guest("ab12cd34")
        guest.request_join()
        host.approve()
        host.add_entry(new_entry("hello"))

        host.end_session()

        assert guest.state is GuestState.IDLE
        assert guest.get_transcript() == []

    def test_concurrent_requests_without_id_check(self, host, make_guest):
        first, second = make_guest("first"), make_guest("second")

        first.request_join()
        second.request_join()
        assert host.pending_guest.id == "first"
        host.approve()

        # the approval is broadcast; both requesting guests take it
        assert first.state is GuestState.CONNECTED
        assert second.state is GuestState.CONNECTED
        assert [g.id for g in host.connected_guests()] == ["first"]

    def test_concurrent_requests_with_id_check(self, host, make_guest):
        first = make_guest("first", verify_guest_id=True)
        second = make_guest("second", verify_guest_id=True)

        first.request_join()
        second.request_join()
        host.approve()

        assert first.state is GuestState.CONNECTED
        assert second.state is GuestState.REQUESTING

        # the dropped request has to be sent again once the host is free
        second.close()
        retry = make_guest("second", verify_guest_id=True)
        retry.request_join()
        host.approve()
        assert retry.state is GuestState.CONNECTED

    def test_late_joiner_sees_only_new_entries(self, host, make_guest):
        host.add_entry(new_entry("before anyone joined"))
        guest = make_guest("late")

        guest.request_join()
        host.approve()
        host.add_entry(new_entry("after"))

        assert [e.text for e in guest.get_transcript()] == ["after"]


@pytest.mark.integration
@pytest.mark.slow
class TestFileLogRelaySession:

    def test_host_and_guest_share_a_directory(self, temp_data_dir, topic):
        host = HostCoordinator(LogSessionChannel("abc", FileMessageLog(temp_data_dir, poll_interval=0.05)),
                               topic=topic)
        guest = GuestCoordinator(LogSessionChannel("abc", FileMessageLog(temp_data_dir, poll_interval=0.05)),
                                 guest_id="g1", settle_delay=0.1, topic=topic)
        host.open()
        guest.open()
        try:
            guest.request_join()
            assert _wait_for(lambda: host.pending_guest is not None)
            host.approve()
            assert _wait_for(lambda: guest.state is GuestState.CONNECTED)

            for text in ("one", "two", "three"):
                host.add_entry(new_entry(text))

            assert _wait_for(lambda: len(guest.get_transcript()) == 3)
            assert [e.text for e in guest.get_transcript()] == ["one", "two", "three"]
        finally:
            guest.close()
            host.close()
