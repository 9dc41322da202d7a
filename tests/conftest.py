"""Pytest configuration and fixtures for SpeakRelay tests."""

import itertools
import logging
from unittest.mock import Mock, patch

import numpy as np
import pytest
from pubsub import pub

from speakrelay.models.messages import encode_message
from speakrelay.session.channel import SessionChannel
from speakrelay.storage.message_log import InMemoryMessageLog


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_topic_counter = itertools.count()


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no network or audio hardware")
    config.addinivalue_line("markers", "integration: tests that wire several components together")
    config.addinivalue_line("markers", "slow: tests that take more than a second or two")


@pytest.fixture
def temp_data_dir(tmp_path):
    """Temporary directory for test data."""
    return str(tmp_path)


@pytest.fixture
def topic():
    """A pubsub topic name no other test uses."""
    return f"test.topic{next(_topic_counter)}"


@pytest.fixture
def message_log():
    return InMemoryMessageLog()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {
            'name': 'Mock Microphone',
            'defaultSampleRate': 48000.0,
        }
        mock_pyaudio_instance.get_device_info_by_index.return_value = {
            'name': 'Mock USB Microphone',
            'defaultSampleRate': 44100.0,
        }

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def audio_test_data():
    """Generate float audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000, amplitude=0.5):
        """Generate audio samples for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
            amplitude: Peak amplitude in [0, 1]

        Returns:
            np.ndarray: float32 samples
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = amplitude * np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.uniform(-amplitude, amplitude, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return wave_data.astype(np.float32)

    return generate_audio


class RecordingChannel(SessionChannel):
    """In-process channel that records outbound messages and lets tests inject inbound ones."""

    def __init__(self, session_id="abc123"):
        super().__init__(session_id)
        self.sent = []
        self.closed = False

    def connect(self, role, on_message):
        self.role = role
        self.on_message = on_message

    def send(self, message):
        self.sent.append(message)

    def close(self):
        self.closed = True
        self.on_message = None

    def receive(self, message):
        self._deliver(encode_message(message))


@pytest.fixture
def recording_channel():
    return RecordingChannel()


@pytest.fixture
def session_events(topic):
    """Collects SessionEvents published on ``topic``."""
    collected = []

    def listener(event):
        collected.append(event)

    pub.subscribe(listener, topic)
    yield collected
    pub.unsubscribe(listener, topic)
