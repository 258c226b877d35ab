"""CLI entry point for wavetuner."""

import signal
import sys
import threading

import click

from wavetuner import __version__
from wavetuner.constants import VALID_BITRATES
from wavetuner.errors import PlaybackNotActive, WavetunerError


def _load_config():
    """Load config, honoring a data_dir override stored in the default location."""
    from wavetuner.config import WavetunerConfig
    from wavetuner.paths import get_config_path, get_data_dir

    cfg = WavetunerConfig.load(get_config_path(get_data_dir()))
    data_dir = get_data_dir(cfg.storage.data_dir)
    cfg = WavetunerConfig.load(get_config_path(data_dir))
    return cfg, data_dir


def _build_tuner(cfg, data_dir, volume=None, muted=None):
    """Wire the runtime context, ffmpeg backend and archive into a Tuner."""
    from wavetuner.archive import RecordingArchive
    from wavetuner.log import setup_logging
    from wavetuner.paths import ensure_dirs, get_log_path, get_recordings_dir, get_stations_path
    from wavetuner.playback.ffmpeg_backend import FfmpegStreamBackend
    from wavetuner.stations import StationDirectory
    from wavetuner.tuner import RuntimeContext, Tuner

    ensure_dirs(data_dir)
    setup_logging(get_log_path(data_dir), cfg.logging.level)

    archive = RecordingArchive(get_recordings_dir(data_dir))

    def on_artifact(artifact):
        path = archive.save(artifact)
        click.echo(f"\nRecording saved: {path} ({artifact.duration_seconds}s)")

    context = RuntimeContext.create(keepalive=cfg.keepalive.enabled)
    backend = FfmpegStreamBackend(ffmpeg=cfg.playback.ffmpeg, sample_rate=cfg.playback.sample_rate)
    tuner = Tuner(
        context,
        backend,
        StationDirectory.load(get_stations_path(data_dir)),
        bitrate=cfg.recording.bitrate,
        volume=cfg.playback.volume if volume is None else volume,
        muted=cfg.playback.muted if muted is None else muted,
        on_artifact=on_artifact,
    )
    return context, tuner


def _resolve_station(tuner, cfg, station):
    """Pick the station to tune: explicit argument, configured default, then first listed."""
    station_id = station or cfg.playback.default_station
    if not station_id:
        stations = tuner.stations.list_stations()
        if not stations:
            raise click.ClickException("No stations configured.")
        station_id = stations[0].id
    try:
        tuner.stations.get(station_id)
    except WavetunerError as e:
        raise click.ClickException(str(e))
    return station_id


def _status_line(state) -> str:
    """Render one line of tuner state for the terminal."""
    parts = []
    if state.is_recording:
        minutes, secs = divmod(state.elapsed_seconds, 60)
        hours, minutes = divmod(minutes, 60)
        led = click.style("●", fg="red", blink=True)
        parts.append(f"{led} REC {hours:02d}:{minutes:02d}:{secs:02d}")
    parts.append(state.station_name or "-")
    parts.append(state.playback_status.value.upper())
    volume = "muted" if state.muted else f"vol {round(state.volume * 100)}%"
    parts.append(volume)
    if state.active_schedule_summary:
        parts.append(state.active_schedule_summary)
    if state.last_error:
        parts.append(click.style(state.last_error, fg="yellow"))
    return "  ".join(parts)


def _install_sigint(stop_event):
    """Route Ctrl+C to *stop_event*; a second Ctrl+C exits immediately."""
    interrupt_count = 0
    original_handler = signal.getsignal(signal.SIGINT)

    def handle_sigint(sig, frame):
        nonlocal interrupt_count
        interrupt_count += 1
        if interrupt_count >= 2:
            click.echo("\nForced exit.")
            sys.exit(1)
        click.echo("\nStopping...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_sigint)
    return original_handler


def _run(tuner, stop_event, done=None):
    """Redraw the status line until interrupted or *done(state)* returns True."""
    width = 0
    while not stop_event.is_set():
        state = tuner.state()
        line = _status_line(state)
        width = max(width, len(line))
        click.echo(f"\r  {line:<{width}}", nl=False)
        if done is not None and done(state):
            break
        stop_event.wait(0.25)
    click.echo()


@click.group()
@click.version_option(version=__version__, prog_name="wavetuner")
def main():
    """Listen to internet radio and record it to MP3."""


@main.command()
@click.argument("station", required=False)
@click.option("--volume", "-v", type=click.FloatRange(0.0, 1.0), default=None, help="Volume from 0.0 to 1.0.")
@click.option("--mute/--no-mute", default=None, help="Start muted.")
@click.option("--record", "-r", is_flag=True, help="Record as soon as playback starts.")
@click.option("--duration", "-t", default=None, help="Stop recording after this long (e.g. 30m, 1h30m).")
@click.option("--bitrate", "-b", type=click.Choice([str(b) for b in VALID_BITRATES]), default=None,
              help="MP3 bitrate in kbps.")
def play(station, volume, mute, record, duration, bitrate):
    """Tune a station and optionally record it.

    STATION is a station id (see `wavetuner stations`). Defaults to the
    configured default station.

    \b
    Examples:
      wavetuner play 3
      wavetuner play 1 --record --duration 1h
    """
    from wavetuner.playback.controller import PlaybackStatus
    from wavetuner.scheduler import Timer
    from wavetuner.timeparse import parse_duration

    timer = None
    if duration:
        if not record:
            raise click.ClickException("--duration requires --record.")
        try:
            timer = Timer(parse_duration(duration))
        except ValueError as e:
            raise click.ClickException(str(e))

    cfg, data_dir = _load_config()
    context, tuner = _build_tuner(cfg, data_dir, volume=volume, muted=mute)
    stop_event = threading.Event()
    original_handler = _install_sigint(stop_event)

    try:
        if bitrate:
            tuner.set_bitrate(int(bitrate))
        station_id = _resolve_station(tuner, cfg, station)
        tuner.select_station(station_id)
        if timer is not None:
            tuner.set_schedule(timer)
        tuner.start()
        click.echo(f"Tuning {tuner.stations.get_station_name(station_id)} (Ctrl+C to stop)...")

        recording_started = False

        def done(state):
            nonlocal recording_started
            if not record:
                return False
            if not recording_started:
                if state.playback_status == PlaybackStatus.PLAYING:
                    try:
                        recording_started = tuner.start_recording_now()
                    except PlaybackNotActive:
                        # The stream dropped after the snapshot; the next redraw retries.
                        recording_started = False
                return False
            # With a timer the command ends once the recording is delivered.
            return timer is not None and not state.is_recording

        _run(tuner, stop_event, done)
    except WavetunerError as e:
        raise click.ClickException(str(e))
    finally:
        tuner.shutdown()
        context.close()
        signal.signal(signal.SIGINT, original_handler)


@main.command()
@click.argument("start")
@click.argument("end")
@click.option("--days", default=None, help="Days to record: mon,fri / weekdays / daily.")
@click.option("--date", "on_date", default=None, help="Record once on a date: today, tomorrow, 2026-02-15.")
@click.option("--station", "-s", default=None, help="Station id to record.")
def schedule(start, end, days, on_date, station):
    """Wait for a time window and record it.

    START and END are clock times (23:00, 9pm). A window whose END is before
    its START runs past midnight.

    \b
    Examples:
      wavetuner schedule 23:00 01:00 --days fri
      wavetuner schedule 9am 10am --date tomorrow --station 2
    """
    from datetime import datetime, timedelta

    from wavetuner.scheduler import DateWindow, RecurringWindow
    from wavetuner.timeparse import parse_clock, parse_date, parse_days

    if days and on_date:
        raise click.ClickException("Use either --days or --date, not both.")

    cfg, data_dir = _load_config()
    try:
        start_time = parse_clock(start)
        end_time = parse_clock(end)
        if on_date:
            day = parse_date(on_date)
            window_start = datetime.combine(day, start_time)
            window_end = datetime.combine(day, end_time)
            if window_end <= window_start:
                window_end += timedelta(days=1)
            if window_end <= datetime.now():
                raise ValueError(f"Window ending {window_end:%Y-%m-%d %H:%M} has already passed")
        else:
            day_set = parse_days(days) if days else None
    except ValueError as e:
        raise click.ClickException(str(e))

    context, tuner = _build_tuner(cfg, data_dir)
    stop_event = threading.Event()
    original_handler = _install_sigint(stop_event)

    try:
        station_id = _resolve_station(tuner, cfg, station)
        if on_date:
            plan = DateWindow(window_start, window_end, station_id=station_id)
        elif day_set is not None:
            plan = RecurringWindow(start_time, end_time, days=day_set, station_id=station_id)
        else:
            plan = RecurringWindow(start_time, end_time, station_id=station_id)
        tuner.set_schedule(plan)
        tuner.start()
        click.echo(f"{plan.describe()} (Ctrl+C to cancel)...")

        # The evaluator clears the schedule once the window's recording is done.
        _run(tuner, stop_event, lambda state: state.active_schedule_summary is None and not state.is_recording)
    except ValueError as e:
        raise click.ClickException(str(e))
    except WavetunerError as e:
        raise click.ClickException(str(e))
    finally:
        tuner.shutdown()
        context.close()
        signal.signal(signal.SIGINT, original_handler)


@main.command()
def stations():
    """List the available stations."""
    from wavetuner.paths import get_stations_path
    from wavetuner.stations import StationDirectory

    cfg, data_dir = _load_config()
    directory = StationDirectory.load(get_stations_path(data_dir))

    entries = directory.list_stations()
    if not entries:
        click.echo("No stations configured.")
        return

    click.echo(f"{'ID':<6} {'Name':<30} {'Fav':>3}  {'URL'}")
    click.echo("-" * 80)
    for s in entries:
        fav = "*" if s.favorite else ""
        default = " (default)" if s.id == cfg.playback.default_station else ""
        click.echo(f"{s.id:<6} {s.name + default:<30} {fav:>3}  {s.url}")


@main.command(name="list")
@click.option("--limit", "-n", default=20, help="Number of entries to show.")
@click.option("--station", "-s", default=None, help="Filter by station name.")
@click.option("--sort", "sort_by", default="date", type=click.Choice(["date", "duration", "name"]),
              help="Sort field.")
@click.option("--no-header", is_flag=True, help="Omit table header.")
def list_recordings(limit, station, sort_by, no_header):
    """List past recordings."""
    from wavetuner.archive import RecordingArchive
    from wavetuner.paths import get_recordings_dir

    _, data_dir = _load_config()
    archive = RecordingArchive(get_recordings_dir(data_dir))

    recordings = archive.list_recordings(limit=limit, sort_by=sort_by, station=station)
    if not recordings:
        click.echo("No recordings found.")
        return

    if not no_header:
        click.echo(f"{'Station':<24} {'Started':<20} {'Duration':>9} {'Size':>9}  {'File'}")
        click.echo("-" * 90)

    for r in recordings:
        started = "---"
        if r.metadata and r.metadata.get("started_at"):
            started = r.metadata["started_at"][:19].replace("T", " ")
        if r.duration_seconds is not None:
            m, sec = divmod(int(r.duration_seconds), 60)
            h, m = divmod(m, 60)
            dur_str = f"{h:02d}:{m:02d}:{sec:02d}"
        else:
            dur_str = "---"
        size = f"{r.size_bytes / 1_000_000:.1f} MB"
        click.echo(f"{(r.station_name or '?'):<24} {started:<20} {dur_str:>9} {size:>9}  {r.mp3_path.name}")


@main.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--list", "list_all", is_flag=True, help="Show all configuration values.")
def config(key, value, list_all):
    """View or set configuration."""
    from wavetuner.paths import get_config_path

    cfg, data_dir = _load_config()
    config_path = get_config_path(data_dir)

    if list_all or (key is None and value is None):
        for section_name, section_dict in cfg._to_dict().items():
            for k, v in section_dict.items():
                click.echo(f"{section_name}.{k} = {v!r}")
        return

    if value is None:
        try:
            click.echo(cfg.get(key))
        except KeyError as e:
            raise click.ClickException(str(e))
        return

    try:
        cfg.set(key, value)
    except (KeyError, ValueError) as e:
        raise click.ClickException(str(e))
    cfg.save(config_path)
    click.echo(f"Set {key} = {cfg.get(key)!r}")
