"""Shared test fixtures."""

from datetime import datetime

import pytest
from loguru import logger

from wavetuner.keepalive import Inhibitor, KeepAliveManager
from wavetuner.loop import ManualLoop
from wavetuner.playback import MockStreamBackend, PlaybackController
from wavetuner.stations import StationDirectory

BLOCK_SIZE = 256


class FakeEncoder:
    """Encoder double that echoes its input one block late.

    The bytes returned by every ``encode()`` plus ``flush()`` concatenate to
    exactly the PCM that was pushed, so ordering bugs show up as mismatches.
    """

    def __init__(self, channels, sample_rate, bitrate):
        self.channels = channels
        self.sample_rate = sample_rate
        self.bitrate = bitrate
        self.pushed: list[bytes] = []
        self.flush_calls = 0
        self._held = b""

    def encode(self, pcm: bytes) -> bytes:
        self.pushed.append(pcm)
        out, self._held = self._held, pcm
        return out

    def flush(self) -> bytes:
        self.flush_calls += 1
        out, self._held = self._held, b""
        return out


class EncoderFactory:
    """Collects every FakeEncoder it builds."""

    def __init__(self):
        self.created: list[FakeEncoder] = []

    def __call__(self, channels, sample_rate, bitrate):
        encoder = FakeEncoder(channels, sample_rate, bitrate)
        self.created.append(encoder)
        return encoder


class FakeInhibitor(Inhibitor):
    def __init__(self, fail_acquire=False, fail_release=False):
        self.fail_acquire = fail_acquire
        self.fail_release = fail_release
        self.acquired = 0
        self.released = 0

    def acquire(self):
        if self.fail_acquire:
            raise OSError("inhibitor unavailable")
        self.acquired += 1
        return f"token-{self.acquired}"

    def release(self, token):
        self.released += 1
        if self.fail_release:
            raise OSError("release failed")


class FakeClock:
    """Wall clock for sessions and schedules; set ``now`` directly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Create a temporary wavetuner data directory structure."""
    recordings = tmp_path / "recordings"
    recordings.mkdir()
    return tmp_path


@pytest.fixture
def loop():
    return ManualLoop()


@pytest.fixture
def backend():
    return MockStreamBackend(block_size=BLOCK_SIZE)


@pytest.fixture
def stations():
    return StationDirectory()


@pytest.fixture
def inhibitor():
    return FakeInhibitor()


@pytest.fixture
def keepalive(inhibitor):
    return KeepAliveManager(inhibitor)


@pytest.fixture
def controller(backend, stations, loop, keepalive):
    return PlaybackController(backend, stations, loop, keepalive=keepalive)


@pytest.fixture
def encoder_factory():
    return EncoderFactory()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 6, 12, 0, 0))


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def start_playing(controller, backend, loop):
    """Tune a station and drive the mock stream all the way to PLAYING."""

    def _start(station_id="1"):
        controller.select_station(station_id)
        backend.ready()
        loop.run_pending()

    return _start
