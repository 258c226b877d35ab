"""Tuner facade: wires playback, recording and scheduling onto one loop."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from wavetuner.constants import DEFAULT_BITRATE, DEFAULT_VOLUME, VALID_BITRATES
from wavetuner.keepalive import Inhibitor, KeepAliveManager, NullInhibitor, default_inhibitor
from wavetuner.loop import EventLoop, Loop
from wavetuner.playback.base import StreamBackend
from wavetuner.playback.controller import PlaybackController, PlaybackStatus
from wavetuner.recorder.base import RecordingArtifact
from wavetuner.recorder.encoder import EncoderFactory
from wavetuner.recorder.session import RecordingSession
from wavetuner.scheduler import Schedule, ScheduleEvaluator
from wavetuner.stations import StationDirectory


@dataclass
class TunerState:
    """Snapshot of everything a UI needs to render."""
    playback_status: PlaybackStatus
    station_id: Optional[str]
    station_name: Optional[str]
    volume: float
    muted: bool
    is_recording: bool
    elapsed_seconds: int
    active_schedule_summary: Optional[str]
    last_error: Optional[str]


class RuntimeContext:
    """Process-scoped collaborators shared by the tuner.

    The host creates one context on first use (``RuntimeContext.create()``)
    and closes it on exit, which stops the loop thread and releases any
    suspend inhibition still held.
    """

    def __init__(self, loop: Loop, keepalive: KeepAliveManager):
        self.loop = loop
        self.keepalive = keepalive

    @classmethod
    def create(cls, keepalive: bool = True, inhibitor: Optional[Inhibitor] = None) -> RuntimeContext:
        if inhibitor is None:
            inhibitor = default_inhibitor() if keepalive else NullInhibitor()
        loop = EventLoop()
        loop.start()
        return cls(loop, KeepAliveManager(inhibitor))

    def close(self) -> None:
        self.keepalive.deactivate()
        if isinstance(self.loop, EventLoop):
            self.loop.stop()

    def __enter__(self) -> RuntimeContext:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Tuner:
    """Commands and observable state for the radio tuner.

    Every public method is safe to call from any thread: the work runs on
    the context's loop and the caller gets the result (or the exception).
    """

    def __init__(
        self,
        context: RuntimeContext,
        backend: StreamBackend,
        stations: StationDirectory,
        bitrate: int = DEFAULT_BITRATE,
        volume: float = DEFAULT_VOLUME,
        muted: bool = False,
        on_artifact: Optional[Callable[[RecordingArtifact], None]] = None,
        encoder_factory: Optional[EncoderFactory] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._loop = context.loop
        self._stations = stations
        self._on_artifact = on_artifact
        self._last_error: Optional[str] = None
        self._bitrate = bitrate
        self.set_bitrate(bitrate)

        self.playback = PlaybackController(
            backend, stations, self._loop, keepalive=context.keepalive, volume=volume, muted=muted
        )
        self.session = RecordingSession(
            self.playback,
            self._loop,
            bitrate=lambda: self._bitrate,
            on_artifact=self._deliver,
            encoder_factory=encoder_factory,
            clock=clock,
        )
        self.evaluator = ScheduleEvaluator(self.playback, self.session, stations, self._loop, clock=clock)

    @property
    def stations(self) -> StationDirectory:
        return self._stations

    def start(self) -> None:
        """Begin the once-per-second schedule evaluation."""
        self._loop.call(self.evaluator.start)

    def shutdown(self) -> None:
        """Finalize any recording in progress and stop playback."""
        self._loop.call(self._shutdown)

    # -- commands --

    def select_station(self, station_id: str) -> Future:
        return self._loop.call(self._select_station, station_id)

    def toggle_playback(self) -> None:
        self._loop.call(self.playback.toggle_playback)

    def set_volume(self, volume: float) -> None:
        self._loop.call(self.playback.set_volume, volume)

    def set_muted(self, muted: bool) -> None:
        self._loop.call(self.playback.set_muted, muted)

    def start_recording_now(self) -> bool:
        return self._loop.call(self._start_recording)

    def stop_recording_now(self) -> Optional[RecordingArtifact]:
        return self._loop.call(self._stop_recording)

    def set_schedule(self, schedule: Optional[Schedule]) -> None:
        self._loop.call(self.evaluator.set_schedule, schedule)

    def set_bitrate(self, kbps: int) -> None:
        """Takes effect at the next recording start; a live session keeps its rate."""
        if kbps not in VALID_BITRATES:
            raise ValueError(f"Invalid bitrate: {kbps}. Choose from: {', '.join(str(b) for b in VALID_BITRATES)}")
        self._bitrate = kbps

    def state(self) -> TunerState:
        return self._loop.call(self._snapshot)

    # -- loop-side implementations --

    def _select_station(self, station_id: str) -> Future:
        # The stations lookup raises before anything is torn down.
        self._stations.get(station_id)
        if self.session.is_recording:
            logger.info("Station change ends the current recording")
            # Same as a manual stop: the schedule must not switch back and re-record.
            self.evaluator.clear()
            self.session.stop()
        return self.playback.select_station(station_id)

    def _start_recording(self) -> bool:
        station_id = self.playback.station_id
        station = self._stations.find(station_id) if station_id else None
        return self.session.start(station_id, station.name if station else None)

    def _stop_recording(self) -> Optional[RecordingArtifact]:
        # A manual stop also retires the schedule so it cannot restart capture.
        self.evaluator.clear()
        return self.session.stop()

    def _shutdown(self) -> None:
        self.evaluator.stop()
        if self.session.is_recording:
            self.session.stop()
        self.playback.shutdown()

    def _deliver(self, artifact: RecordingArtifact) -> None:
        if self._on_artifact is None:
            return
        try:
            self._on_artifact(artifact)
            self._last_error = None
        except Exception as e:
            logger.exception(f"Artifact delivery failed for {artifact.filename}")
            self._last_error = f"Could not save recording: {e}"

    def _snapshot(self) -> TunerState:
        playback = self.playback.state
        station = self._stations.find(playback.station_id) if playback.station_id else None
        return TunerState(
            playback_status=playback.status,
            station_id=playback.station_id,
            station_name=station.name if station else None,
            volume=playback.volume,
            muted=playback.muted,
            is_recording=self.session.is_recording,
            elapsed_seconds=self.session.elapsed_seconds,
            active_schedule_summary=self.evaluator.summary,
            last_error=self.session.last_error or self._last_error or playback.last_error,
        )
