"""Shared constants and defaults."""

APP_NAME = "wavetuner"

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_CHANNELS = 2
DEFAULT_BLOCK_SIZE = 4096
DEFAULT_VOLUME = 0.7
DEFAULT_BITRATE = 192
DEFAULT_LOG_LEVEL = "INFO"

VALID_BITRATES = (128, 192, 320)
VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
# Input rates accepted by the MPEG-1/2/2.5 layer III encoder.
SUPPORTED_SAMPLE_RATES = (8000, 11025, 12000, 16000, 22050, 24000, 32000, 44100, 48000)

MP3_MIME_TYPE = "audio/mpeg"

RETRY_BACKOFF_SECONDS = 2.0
TICK_SECONDS = 1.0
BACKLOG_WARN_THRESHOLD = 64
