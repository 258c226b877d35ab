"""Recording session state machine: IDLE -> RECORDING -> FINALIZING -> IDLE."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from wavetuner.constants import TICK_SECONDS
from wavetuner.errors import PlaybackNotActive
from wavetuner.loop import Loop, ScheduledCall
from wavetuner.playback.controller import PlaybackController, PlaybackStatus
from wavetuner.recorder.base import RecordingArtifact, artifact_filename
from wavetuner.recorder.encoder import EncodeSink, EncoderFactory
from wavetuner.recorder.tap import CaptureTap

ArtifactHandler = Callable[[RecordingArtifact], None]
AbortListener = Callable[[str], None]


class SessionStatus(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


class RecordingSession:
    """Binds one encode sink, one capture tap and the elapsed ticker.

    At most one recording is live at a time: ``start()`` while recording or
    finalizing is a silent no-op, and ``stop()`` while finalizing is ignored,
    so manual controls and schedules may race without producing two
    artifacts.
    """

    def __init__(
        self,
        playback: PlaybackController,
        loop: Loop,
        bitrate: Callable[[], int],
        on_artifact: Optional[ArtifactHandler] = None,
        encoder_factory: Optional[EncoderFactory] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._playback = playback
        self._loop = loop
        self._bitrate = bitrate
        self._on_artifact = on_artifact
        self._encoder_factory = encoder_factory
        self._clock = clock
        self._tap = CaptureTap(on_frames=self._append_frames, on_error=self.abort)

        self._status = SessionStatus.IDLE
        self._stopping = False
        self._sink: Optional[EncodeSink] = None
        self._ticker: Optional[ScheduledCall] = None
        self._frames: list[bytes] = []
        self._abort_listeners: list[AbortListener] = []
        self.started_at: Optional[datetime] = None
        self.elapsed_seconds = 0
        self.station_id: Optional[str] = None
        self.station_name: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_recording(self) -> bool:
        return self._status == SessionStatus.RECORDING

    @property
    def is_finalizing(self) -> bool:
        return self._status == SessionStatus.FINALIZING

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def add_abort_listener(self, listener: AbortListener) -> None:
        """Call *listener* with the error text whenever a live recording is aborted."""
        self._abort_listeners.append(listener)

    def start(self, station_id: Optional[str] = None, station_name: Optional[str] = None) -> bool:
        """Begin capturing the live signal. Returns False if a session is already live."""
        if self._status != SessionStatus.IDLE:
            logger.debug(f"Start ignored; session is {self._status.value}")
            return False
        if self._playback.status != PlaybackStatus.PLAYING:
            raise PlaybackNotActive("Playback must be running to record")

        signal = self._playback.signal
        bitrate = self._bitrate()
        try:
            sink = EncodeSink.open(
                channels=signal.channels,
                sample_rate=signal.sample_rate,
                bitrate_kbps=bitrate,
                block_size=signal.block_size,
                encoder_factory=self._encoder_factory,
            )
        except Exception as e:
            self.last_error = f"Recording failed: {e}"
            logger.error(self.last_error)
            raise

        self._sink = sink
        self._frames = []
        self._tap.attach(signal, sink)
        self._status = SessionStatus.RECORDING
        self.elapsed_seconds = 0
        self.started_at = self._clock()
        self.station_id = station_id
        self.station_name = station_name
        self.last_error = None
        self._ticker = self._loop.call_every(TICK_SECONDS, self._tick)

        logger.info(f"Recording started: {station_name or 'unknown station'} at {bitrate} kbps")
        return True

    def stop(self) -> Optional[RecordingArtifact]:
        """Finalize and deliver the artifact. Returns None when nothing was finalized."""
        if self._stopping or self._status != SessionStatus.RECORDING:
            return None

        self._stopping = True
        self._status = SessionStatus.FINALIZING
        try:
            self._cancel_ticker()
            self._tap.detach()
            self._frames.extend(self._sink.flush())

            data = b"".join(self._frames)
            if not data:
                logger.warning("Recording stopped with no captured audio; nothing to save")
                return None

            artifact = RecordingArtifact(
                data=data,
                filename=artifact_filename(self.station_name, self._clock()),
                started_at=self.started_at,
                duration_seconds=self.elapsed_seconds,
                sample_rate=self._sink.sample_rate,
                bitrate_kbps=self._sink.bitrate_kbps,
                station_id=self.station_id,
                station_name=self.station_name,
            )
            logger.info(
                f"Recording finalized: {artifact.filename} "
                f"({len(data)} bytes, {artifact.duration_seconds}s)"
            )
            if self._on_artifact is not None:
                self._on_artifact(artifact)
            return artifact
        finally:
            self._reset()
            self._stopping = False

    def abort(self, error: Exception | str) -> None:
        """Drop the live recording without an artifact. Playback is left alone."""
        if self._status != SessionStatus.RECORDING:
            return
        self.last_error = f"Recording aborted: {error}"
        logger.error(self.last_error)
        self._cancel_ticker()
        self._tap.detach()
        self._reset()
        for listener in list(self._abort_listeners):
            listener(self.last_error)

    # -- internals --

    def _append_frames(self, frames: list[bytes]) -> None:
        self._frames.extend(frames)

    def _tick(self) -> None:
        if self._status == SessionStatus.RECORDING:
            self.elapsed_seconds += 1

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _reset(self) -> None:
        self._frames = []
        self._sink = None
        self._status = SessionStatus.IDLE
        self.elapsed_seconds = 0
