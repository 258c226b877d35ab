"""Recording schedules and the once-per-second evaluator that enforces them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Union

from loguru import logger

from wavetuner.constants import TICK_SECONDS
from wavetuner.errors import WavetunerError
from wavetuner.loop import Loop, ScheduledCall
from wavetuner.playback.controller import PlaybackController, PlaybackStatus
from wavetuner.recorder.session import RecordingSession
from wavetuner.stations import StationDirectory
from wavetuner.timeparse import format_days, format_duration

ALL_DAYS = frozenset(range(7))


def day_of_week(d: date) -> int:
    """Day number with Sunday=0 ... Saturday=6."""
    return (d.weekday() + 1) % 7


@dataclass(frozen=True)
class Timer:
    """Stop the current recording after it has run for *duration_seconds*."""
    duration_seconds: int

    def __post_init__(self):
        if self.duration_seconds <= 0:
            raise ValueError(f"duration_seconds must be positive, got {self.duration_seconds}")

    def describe(self) -> str:
        return f"Timer: stop after {format_duration(self.duration_seconds)}"


@dataclass(frozen=True)
class RecurringWindow:
    """Record between two times of day on the given days.

    ``end < start`` spans midnight: the window opens on a listed day and
    closes the next morning, whatever day that is.
    """
    start: time
    end: time
    days: frozenset[int] = field(default=ALL_DAYS)
    station_id: Optional[str] = None

    def __post_init__(self):
        if not self.days:
            raise ValueError("A recurring window needs at least one day")
        if any(d not in ALL_DAYS for d in self.days):
            raise ValueError(f"Days must be 0 (Sunday) to 6 (Saturday), got {sorted(self.days)}")

    def window_at(self, now: datetime) -> Optional[tuple[datetime, datetime]]:
        """Return the (start, end) occurrence containing *now*, if any."""
        # An occurrence that spans midnight started yesterday.
        for anchor in (now.date() - timedelta(days=1), now.date()):
            if day_of_week(anchor) not in self.days:
                continue
            start = datetime.combine(anchor, self.start)
            end = datetime.combine(anchor, self.end)
            if self.end < self.start:
                end += timedelta(days=1)
            if start <= now < end:
                return start, end
        return None

    def describe(self) -> str:
        summary = f"{format_days(self.days)} {self.start:%H:%M}-{self.end:%H:%M}"
        if self.station_id:
            summary += f" (station {self.station_id})"
        return f"Window: {summary}"


@dataclass(frozen=True)
class DateWindow:
    """Record once between two absolute instants."""
    start: datetime
    end: datetime
    station_id: Optional[str] = None

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("DateWindow end must be after its start")

    def window_at(self, now: datetime) -> Optional[tuple[datetime, datetime]]:
        if self.start <= now < self.end:
            return self.start, self.end
        return None

    def describe(self) -> str:
        summary = f"{self.start:%Y-%m-%d %H:%M}-{self.end:%H:%M}"
        if self.end.date() != self.start.date():
            summary = f"{self.start:%Y-%m-%d %H:%M}-{self.end:%Y-%m-%d %H:%M}"
        if self.station_id:
            summary += f" (station {self.station_id})"
        return f"Date: {summary}"


Schedule = Union[Timer, RecurringWindow, DateWindow]


class ScheduleEvaluator:
    """Holds zero or one schedule and drives the recording session from it.

    The evaluator only reads playback state. Its single write to playback is
    the source switch (or resume) issued before a window's recording starts;
    the recording itself then begins on a later tick, once playback reports
    PLAYING.
    """

    def __init__(
        self,
        playback: PlaybackController,
        session: RecordingSession,
        stations: StationDirectory,
        loop: Loop,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._playback = playback
        self._session = session
        self._stations = stations
        self._loop = loop
        self._clock = clock
        self._schedule: Optional[Schedule] = None
        self._window_end: Optional[datetime] = None
        self._ticker: Optional[ScheduledCall] = None
        session.add_abort_listener(self._on_session_aborted)

    @property
    def schedule(self) -> Optional[Schedule]:
        return self._schedule

    @property
    def summary(self) -> Optional[str]:
        return self._schedule.describe() if self._schedule is not None else None

    def set_schedule(self, schedule: Optional[Schedule]) -> None:
        """Replace the active schedule.

        An in-flight recording is never stopped by the swap; the new schedule
        only governs what happens from the next tick on.
        """
        self._schedule = schedule
        self._window_end = None
        if schedule is None:
            logger.info("Schedule cleared")
        else:
            logger.info(f"Schedule set: {schedule.describe()}")

    def clear(self) -> None:
        if self._schedule is not None:
            self.set_schedule(None)

    def start(self) -> None:
        if self._ticker is None:
            self._ticker = self._loop.call_every(TICK_SECONDS, self.evaluate)

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def evaluate(self, now: Optional[datetime] = None) -> None:
        schedule = self._schedule
        if schedule is None:
            return
        if isinstance(schedule, Timer):
            self._evaluate_timer(schedule)
        else:
            self._evaluate_window(schedule, now or self._clock())

    def _evaluate_timer(self, schedule: Timer) -> None:
        if self._session.is_recording and self._session.elapsed_seconds >= schedule.duration_seconds:
            self._finish(f"timer of {format_duration(schedule.duration_seconds)} elapsed")

    def _evaluate_window(self, schedule: Union[RecurringWindow, DateWindow], now: datetime) -> None:
        window = schedule.window_at(now)

        if window is None:
            if self._session.is_recording and self._window_end is not None and now >= self._window_end:
                self._finish("schedule window closed")
            return

        self._window_end = window[1]
        if self._session.is_recording or self._session.is_finalizing:
            return

        status = self._playback.status
        if status == PlaybackStatus.LOADING:
            return

        target = schedule.station_id
        if target and target != self._playback.station_id:
            if self._stations.find(target) is None:
                logger.warning(f"Scheduled station {target!r} not found; recording not started")
                self._schedule = None
                return
            logger.info(f"Switching to station {target} for scheduled recording")
            self._playback.select_station(target)
            return

        if status == PlaybackStatus.PLAYING:
            self._start_recording()
        elif status == PlaybackStatus.PAUSED:
            logger.info("Resuming playback for scheduled recording")
            self._playback.toggle_playback()
        elif status == PlaybackStatus.IDLE:
            if self._playback.station_id is None:
                logger.warning("Scheduled window open but no station is selected")
            else:
                self._playback.toggle_playback()

    def _start_recording(self) -> None:
        station_id = self._playback.station_id
        station = self._stations.find(station_id) if station_id else None
        try:
            self._session.start(station_id, station.name if station else None)
        except (WavetunerError, ValueError) as e:
            # Encode-path failures would repeat every tick; give up on this schedule.
            logger.error(f"Scheduled recording failed to start: {e}")
            self._schedule = None
            self._window_end = None

    def _finish(self, why: str) -> None:
        logger.info(f"Stopping scheduled recording: {why}")
        self._schedule = None
        self._window_end = None
        self._session.stop()

    def _on_session_aborted(self, reason: str) -> None:
        # An encode-path failure would recur on every tick of an open window.
        if self._schedule is not None:
            logger.error(f"Schedule cleared after aborted recording: {reason}")
            self._schedule = None
            self._window_end = None
