"""Tests for the playback controller."""

import numpy as np
import pytest

from wavetuner.errors import NoStationSelected, StationNotFound, StreamUnavailable
from wavetuner.playback import MockStreamBackend, PlaybackController, PlaybackStatus


def test_initial_state(controller, backend):
    state = controller.state
    assert state.status == PlaybackStatus.IDLE
    assert state.station_id is None
    assert state.volume == 0.7
    assert backend.volume == 0.7


def test_state_is_a_snapshot(controller):
    snapshot = controller.state
    snapshot.volume = 0.1
    assert controller.state.volume == 0.7


# ──── station selection ────


def test_enters_loading(controller, backend, stations):
    controller.select_station("2")
    assert controller.status == PlaybackStatus.LOADING
    assert controller.station_id == "2"
    assert backend.loads == [stations.get("2").url]


def test_reaches_playing(controller, start_playing, keepalive):
    start_playing()
    assert controller.status == PlaybackStatus.PLAYING
    assert keepalive.active


def test_load_future_resolves(controller, backend, stations):
    future = controller.select_station("1")
    assert not future.done()
    backend.ready()
    assert future.result(timeout=0) == stations.get("1").url


def test_load_future_fails_on_stream_error(controller, backend):
    future = controller.select_station("1")
    backend.fail("404 Not Found")
    with pytest.raises(StreamUnavailable, match="404"):
        future.result(timeout=0)


def test_unknown_station(controller, backend):
    with pytest.raises(StationNotFound):
        controller.select_station("nope")
    assert controller.status == PlaybackStatus.IDLE
    assert backend.loads == []


def test_switch_stops_previous_stream(controller, backend, start_playing, stations):
    start_playing("1")
    controller.select_station("3")
    assert controller.status == PlaybackStatus.LOADING
    assert backend.loads[-1] == stations.get("3").url
    assert not backend.playing


def test_autoplay_failure_leaves_paused(stations, loop, keepalive):
    backend = MockStreamBackend(autoplay_error=RuntimeError("autoplay blocked"))
    controller = PlaybackController(backend, stations, loop, keepalive=keepalive)
    controller.select_station("1")
    assert controller.status == PlaybackStatus.PAUSED
    assert controller.state.last_error == "Autoplay failed: autoplay blocked"
    assert not keepalive.active


# ──── toggle ────


def test_requires_station(controller):
    with pytest.raises(NoStationSelected):
        controller.toggle_playback()
    assert controller.status == PlaybackStatus.IDLE


def test_pause_and_resume(controller, start_playing, loop, keepalive):
    start_playing()
    controller.toggle_playback()
    loop.run_pending()
    assert controller.status == PlaybackStatus.PAUSED
    assert not keepalive.active

    controller.toggle_playback()
    loop.run_pending()
    assert controller.status == PlaybackStatus.PLAYING
    assert keepalive.active


def test_pause_while_loading(controller):
    controller.select_station("1")
    controller.toggle_playback()
    assert controller.status == PlaybackStatus.PAUSED


def test_resume_failure_sets_error(stations, loop):
    backend = MockStreamBackend(autoplay_error=RuntimeError("denied"))
    controller = PlaybackController(backend, stations, loop)
    controller.select_station("1")
    controller.toggle_playback()
    assert controller.status == PlaybackStatus.PAUSED
    assert controller.state.last_error == "Stream temporarily unavailable."


def test_toggle_waits_for_retry_when_errored(controller, backend, start_playing, loop):
    start_playing()
    backend.fail()
    loop.run_pending()
    controller.toggle_playback()
    assert controller.status == PlaybackStatus.ERRORED
    assert len(backend.loads) == 1
    assert controller.retry_pending

    loop.advance(2.0)
    assert controller.status == PlaybackStatus.LOADING
    assert len(backend.loads) == 2


# ──── stream events ────


def test_waiting_buffers_then_recovers(controller, backend, start_playing, loop, keepalive):
    start_playing()
    backend.stall()
    loop.run_pending()
    assert controller.status == PlaybackStatus.BUFFERING
    assert keepalive.active
    backend.recover()
    loop.run_pending()
    assert controller.status == PlaybackStatus.PLAYING


def test_events_ignored_while_idle(controller, backend, loop):
    backend.stall()
    loop.run_pending()
    assert controller.status == PlaybackStatus.IDLE


def test_blocks_reach_live_signal(controller, backend, start_playing, loop):
    received = []
    controller.signal.connect(received.append)
    start_playing()
    block = np.zeros((backend.block_size, 2), dtype=np.float32)
    backend.feed(block)
    loop.run_pending()
    assert len(received) == 1
    assert received[0] is block


def test_status_listeners(controller, start_playing):
    changes = []
    controller.add_listener(lambda old, new: changes.append((old, new)))
    start_playing()
    assert changes == [
        (PlaybackStatus.IDLE, PlaybackStatus.LOADING),
        (PlaybackStatus.LOADING, PlaybackStatus.BUFFERING),
        (PlaybackStatus.BUFFERING, PlaybackStatus.PLAYING),
    ]


# ──── errors and retry ────


def test_error_schedules_retry(controller, backend, start_playing, loop, keepalive):
    start_playing()
    backend.fail("connection reset")
    loop.run_pending()
    state = controller.state
    assert state.status == PlaybackStatus.ERRORED
    assert state.reason == "connection reset"
    assert state.last_error == "Network / buffer error. Retrying..."
    assert controller.retry_pending
    assert not keepalive.active


def test_retry_reloads_after_backoff(controller, backend, start_playing, loop):
    start_playing()
    backend.fail()
    loop.run_pending()
    loop.advance(1.5)
    assert len(backend.loads) == 1
    loop.advance(0.5)
    assert len(backend.loads) == 2
    assert controller.status == PlaybackStatus.LOADING


def test_repeated_errors_keep_one_pending_retry(controller, backend, start_playing, loop):
    start_playing()
    for _ in range(5):
        backend.fail()
        loop.run_pending()
        assert len(loop.pending_timers) == 1
        loop.advance(0.5)

    # Each error re-armed the single slot, so exactly one reload follows.
    loop.advance(2.0)
    assert len(backend.loads) == 2


def test_recovery_clears_error(controller, backend, start_playing, loop):
    start_playing()
    backend.fail()
    loop.run_pending()
    loop.advance(2.0)
    backend.ready()
    loop.run_pending()
    state = controller.state
    assert state.status == PlaybackStatus.PLAYING
    assert state.last_error is None
    assert state.reason is None


def test_station_change_cancels_retry(controller, backend, start_playing, loop):
    start_playing()
    backend.fail()
    loop.run_pending()
    controller.select_station("2")
    assert not controller.retry_pending
    assert controller.state.last_error is None


# ──── volume ────


def test_mute_and_volume_are_independent(controller, backend):
    controller.set_muted(True)
    controller.set_volume(0.5)
    assert controller.state.effective_volume == 0.0
    assert backend.volume == 0.0

    controller.set_muted(False)
    assert controller.state.volume == 0.5
    assert backend.volume == 0.5


def test_volume_clamped(controller, backend):
    controller.set_volume(1.7)
    assert controller.state.volume == 1.0
    controller.set_volume(-0.3)
    assert backend.volume == 0.0


def test_initial_mute_applied(backend, stations, loop):
    PlaybackController(backend, stations, loop, volume=0.4, muted=True)
    assert backend.volume == 0.0


def test_shutdown(controller, backend, start_playing, loop, keepalive):
    start_playing()
    backend.fail()
    loop.run_pending()
    controller.shutdown()
    assert controller.status == PlaybackStatus.IDLE
    assert not controller.retry_pending
    assert not keepalive.active
    loop.advance(5)
    assert len(backend.loads) == 1
