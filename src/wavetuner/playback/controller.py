"""Playback controller: station selection, stream state, volume and retry."""

from __future__ import annotations

import dataclasses
import enum
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from wavetuner.constants import DEFAULT_VOLUME, RETRY_BACKOFF_SECONDS
from wavetuner.errors import NoStationSelected
from wavetuner.events import Block, CanPlay, LoadStarted, Paused, Playing, StreamError, StreamEvent, Waiting
from wavetuner.keepalive import KeepAliveManager
from wavetuner.loop import Loop, ScheduledCall
from wavetuner.playback.base import LiveSignal, StreamBackend
from wavetuner.stations import StationDirectory


class PlaybackStatus(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"
    ERRORED = "errored"


_KEEPALIVE_OFF = (PlaybackStatus.IDLE, PlaybackStatus.PAUSED, PlaybackStatus.ERRORED)


@dataclass
class PlaybackState:
    status: PlaybackStatus = PlaybackStatus.IDLE
    station_id: Optional[str] = None
    volume: float = DEFAULT_VOLUME
    muted: bool = False
    reason: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def effective_volume(self) -> float:
        return 0.0 if self.muted else self.volume


StatusListener = Callable[[PlaybackStatus, PlaybackStatus], None]


class PlaybackController:
    """Owns the live stream and the only mutable ``PlaybackState``.

    All methods must run on the loop. Backend events arrive from backend
    threads and are posted onto the loop before they touch any state.

    State machine::

        IDLE -> LOADING -> {BUFFERING <-> PLAYING} -> PAUSED -> (select_station) -> LOADING
        any non-IDLE state -> ERRORED -> (retry after backoff | select_station) -> LOADING
    """

    def __init__(
        self,
        backend: StreamBackend,
        stations: StationDirectory,
        loop: Loop,
        keepalive: Optional[KeepAliveManager] = None,
        volume: float = DEFAULT_VOLUME,
        muted: bool = False,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
    ):
        self._backend = backend
        self._stations = stations
        self._loop = loop
        self._keepalive = keepalive
        self._retry_backoff = retry_backoff
        self._retry: Optional[ScheduledCall] = None
        self._listeners: list[StatusListener] = []
        self._state = PlaybackState(volume=_clamp(volume), muted=muted)
        self.signal = LiveSignal(backend.sample_rate, backend.channels, backend.block_size)

        backend.set_listener(self._on_backend_event)
        backend.set_volume(self._state.effective_volume)

    # -- read-only views --

    @property
    def state(self) -> PlaybackState:
        """A snapshot; mutating it has no effect on the controller."""
        return dataclasses.replace(self._state)

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    @property
    def station_id(self) -> Optional[str]:
        return self._state.station_id

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None and not self._retry.cancelled

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    # -- commands --

    def select_station(self, station_id: str) -> Future:
        """Switch to *station_id* and try to start playing it.

        Returns the backend's load future. Failure to autoplay leaves the
        controller PAUSED with ``last_error`` set.
        """
        station = self._stations.get(station_id)
        logger.info(f"Selecting station {station.name!r} ({station.id})")

        self._cancel_retry()
        self._backend.stop()
        self._state.station_id = station.id
        self._state.reason = None
        self._state.last_error = None
        return self._load_and_play(station.url)

    def toggle_playback(self) -> None:
        if self._state.station_id is None:
            raise NoStationSelected("No station selected")

        status = self._state.status
        if status in (PlaybackStatus.PLAYING, PlaybackStatus.BUFFERING, PlaybackStatus.LOADING):
            self._backend.pause()
            self._transition(PlaybackStatus.PAUSED)
        elif status == PlaybackStatus.PAUSED:
            try:
                self._backend.play()
            except Exception as e:
                logger.warning(f"Resume failed: {e}")
                self._state.last_error = "Stream temporarily unavailable."
        elif status == PlaybackStatus.ERRORED:
            # Leaves ERRORED only through the pending retry or select_station().
            logger.debug("Toggle ignored while waiting for the stream retry")
        else:
            self._cancel_retry()
            station = self._stations.get(self._state.station_id)
            self._load_and_play(station.url)

    def set_volume(self, volume: float) -> None:
        self._state.volume = _clamp(volume)
        self._backend.set_volume(self._state.effective_volume)

    def set_muted(self, muted: bool) -> None:
        self._state.muted = bool(muted)
        self._backend.set_volume(self._state.effective_volume)

    def shutdown(self) -> None:
        """Stop the stream and release keep-alive; used on process exit."""
        self._cancel_retry()
        self._backend.stop()
        self._backend.set_listener(None)
        self._transition(PlaybackStatus.IDLE)

    # -- internals --

    def _load_and_play(self, url: str) -> Future:
        self._transition(PlaybackStatus.LOADING)
        future = self._backend.load(url)
        try:
            self._backend.play()
        except Exception as e:
            logger.warning(f"Autoplay failed: {e}")
            self._state.last_error = f"Autoplay failed: {e}"
            self._transition(PlaybackStatus.PAUSED)
        return future

    def _on_backend_event(self, event: StreamEvent) -> None:
        self._loop.post(self._handle_event, event)

    def _handle_event(self, event: StreamEvent) -> None:
        if isinstance(event, Block):
            self.signal.emit(event.samples)
            return

        status = self._state.status
        if status == PlaybackStatus.IDLE:
            return

        if isinstance(event, LoadStarted):
            if status == PlaybackStatus.ERRORED:
                self._transition(PlaybackStatus.LOADING)
        elif isinstance(event, CanPlay):
            if status == PlaybackStatus.LOADING:
                self._transition(PlaybackStatus.BUFFERING)
        elif isinstance(event, Waiting):
            if status in (PlaybackStatus.PLAYING, PlaybackStatus.LOADING):
                self._transition(PlaybackStatus.BUFFERING)
        elif isinstance(event, Playing):
            self._state.reason = None
            self._state.last_error = None
            self._transition(PlaybackStatus.PLAYING)
        elif isinstance(event, Paused):
            if status != PlaybackStatus.ERRORED:
                self._transition(PlaybackStatus.PAUSED)
        elif isinstance(event, StreamError):
            self._fail(event.reason)

    def _fail(self, reason: str) -> None:
        logger.warning(f"Stream error: {reason}; retrying in {self._retry_backoff:.0f}s")
        self._state.reason = reason
        self._state.last_error = "Network / buffer error. Retrying..."
        self._transition(PlaybackStatus.ERRORED)
        # Single retry slot: a new error re-arms the backoff instead of stacking.
        self._cancel_retry()
        self._retry = self._loop.call_later(self._retry_backoff, self._retry_load)

    def _retry_load(self) -> None:
        self._retry = None
        if self._state.status != PlaybackStatus.ERRORED or self._state.station_id is None:
            return
        station = self._stations.find(self._state.station_id)
        if station is None:
            return
        logger.info(f"Reloading {station.name!r}")
        self._backend.stop()
        self._load_and_play(station.url)

    def _cancel_retry(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None

    def _transition(self, new: PlaybackStatus) -> None:
        old = self._state.status
        if old == new:
            return
        self._state.status = new
        if new != PlaybackStatus.ERRORED:
            self._state.reason = None
        logger.debug(f"Playback {old.value} -> {new.value}")

        if self._keepalive is not None:
            if new == PlaybackStatus.PLAYING:
                self._keepalive.activate()
            elif new in _KEEPALIVE_OFF:
                self._keepalive.deactivate()

        for listener in list(self._listeners):
            listener(old, new)


def _clamp(volume: float) -> float:
    return max(0.0, min(1.0, float(volume)))
