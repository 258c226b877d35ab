"""Stream backend that decodes with an ffmpeg subprocess and plays via sounddevice.

ffmpeg reads the station URL and writes raw float32 PCM to stdout. A reader
thread slices stdout into fixed-size blocks, writes each block to the output
device, and reports it as a ``Block`` event for capture. The reader thread
owns the output path, so a slow capture consumer on the event loop never
stalls playback.
"""

from __future__ import annotations

import signal
import subprocess
import threading
from concurrent.futures import Future
from typing import Optional

import numpy as np
from loguru import logger

from wavetuner.constants import DEFAULT_BLOCK_SIZE, DEFAULT_CHANNELS, DEFAULT_SAMPLE_RATE
from wavetuner.errors import StreamUnavailable
from wavetuner.events import Block, CanPlay, LoadStarted, Paused, Playing, StreamError, StreamEvent, Waiting
from wavetuner.playback.base import StreamBackend

_BYTES_PER_SAMPLE = 4  # f32le


class FfmpegStreamBackend(StreamBackend):
    """Decodes live streams with ffmpeg and plays them on a sounddevice output."""

    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = DEFAULT_CHANNELS,
        block_size: int = DEFAULT_BLOCK_SIZE,
        device: Optional[int | str] = None,
    ):
        super().__init__()
        self._ffmpeg = ffmpeg
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_size = block_size
        self._device = device
        self._gain = 1.0
        self._generation = 0
        self._process: subprocess.Popen | None = None
        self._reader_thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._play_event = threading.Event()
        self._announce_playing = False
        self._output = None
        self._output_lock = threading.Lock()
        # Guards the generation so a stale reader cannot emit after stop() returns.
        self._emit_lock = threading.RLock()

    def build_command(self, url: str) -> list[str]:
        cmd = [self._ffmpeg, "-nostdin", "-hide_banner", "-loglevel", "error"]
        if url.startswith(("http://", "https://")):
            cmd.extend([
                "-reconnect", "1",
                "-reconnect_streamed", "1",
                "-reconnect_delay_max", "5",
            ])
        cmd.extend([
            "-i", url,
            "-vn",
            "-f", "f32le",
            "-acodec", "pcm_f32le",
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            "pipe:1",
        ])
        return cmd

    def load(self, url: str) -> Future:
        self.stop()

        with self._emit_lock:
            self._generation += 1
            generation = self._generation
        future: Future = Future()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._emit(LoadStarted(url))

        try:
            process = subprocess.Popen(
                self.build_command(url),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            reason = f"Could not start {self._ffmpeg}: {e}"
            future.set_exception(StreamUnavailable(reason))
            self._emit(StreamError(reason))
            return future

        self._process = process
        self._reader_thread = threading.Thread(
            target=self._pipe_reader,
            args=(process, url, generation, future, stop_event),
            daemon=True,
        )
        self._reader_thread.start()
        return future

    def play(self) -> None:
        import sounddevice as sd

        with self._output_lock:
            if self._output is None:
                self._output = sd.OutputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="float32",
                    device=self._device,
                )
                self._output.start()
        self._announce_playing = True
        self._play_event.set()

    def pause(self) -> None:
        was_playing = self._play_event.is_set()
        self._play_event.clear()
        self._close_output()
        if was_playing:
            self._emit(Paused())

    def stop(self) -> None:
        with self._emit_lock:
            self._generation += 1
        self._stop_event.set()
        self._play_event.clear()

        process, self._process = self._process, None
        if process is not None and process.poll() is None:
            process.send_signal(signal.SIGINT)
            try:
                process.wait(timeout=3)
            except subprocess.TimeoutExpired:
                process.terminate()
                try:
                    process.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait()

        reader, self._reader_thread = self._reader_thread, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=2)

        self._close_output()

    def set_volume(self, volume: float) -> None:
        self._gain = float(volume)

    # -- internal --

    def _close_output(self) -> None:
        with self._output_lock:
            if self._output is not None:
                try:
                    self._output.stop()
                    self._output.close()
                except Exception as e:
                    logger.warning(f"Error closing output stream: {e}")
                self._output = None

    def _write(self, block: np.ndarray) -> bool:
        """Write one block to the output device. Returns True on underflow."""
        with self._output_lock:
            if self._output is None:
                return False
            return bool(self._output.write(block * np.float32(self._gain)))

    def _emit_current(self, generation: int, event: StreamEvent) -> None:
        with self._emit_lock:
            if generation == self._generation:
                self._emit(event)

    def _pipe_reader(
        self,
        process: subprocess.Popen,
        url: str,
        generation: int,
        future: Future,
        stop_event: threading.Event,
    ) -> None:
        """Read raw PCM from ffmpeg stdout, play it, and report blocks."""
        chunk_bytes = self.block_size * self.channels * _BYTES_PER_SAMPLE
        buffering = False

        while not stop_event.is_set():
            try:
                data = process.stdout.read(chunk_bytes)
            except (OSError, ValueError):
                break
            # A short read only happens at EOF; the partial tail is dropped.
            if len(data) < chunk_bytes:
                break

            block = np.frombuffer(data, dtype=np.float32).reshape(self.block_size, self.channels)

            if not future.done():
                future.set_result(url)
                self._emit_current(generation, CanPlay())

            while not self._play_event.wait(0.1):
                if stop_event.is_set():
                    return

            try:
                underflowed = self._write(block)
            except Exception as e:
                logger.warning(f"Output write failed: {e}")
                underflowed = False

            if self._announce_playing:
                self._announce_playing = False
                buffering = False
                self._emit_current(generation, Playing())
            elif underflowed and not buffering:
                buffering = True
                self._emit_current(generation, Waiting())
            elif buffering and not underflowed:
                buffering = False
                self._emit_current(generation, Playing())

            self._emit_current(generation, Block(block))

        if stop_event.is_set():
            return

        reason = self._exit_reason(process)
        logger.warning(f"Stream ended for {url}: {reason}")
        if not future.done():
            future.set_exception(StreamUnavailable(reason))
        self._emit_current(generation, StreamError(reason))

    @staticmethod
    def _exit_reason(process: subprocess.Popen) -> str:
        try:
            returncode = process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            return "stream stopped delivering audio"
        stderr = b""
        if process.stderr is not None:
            try:
                stderr = process.stderr.read() or b""
            except (OSError, ValueError):
                pass
        lines = [line for line in stderr.decode("utf-8", "replace").splitlines() if line.strip()]
        if lines:
            return lines[-1].strip()
        return f"ffmpeg exited with code {returncode}"
