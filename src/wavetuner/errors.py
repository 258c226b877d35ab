"""Exception hierarchy for wavetuner."""


class WavetunerError(Exception):
    """Base exception class for wavetuner errors."""

    pass


class StreamUnavailable(WavetunerError):
    """Raised when a live stream fails to load or drops its connection."""

    pass


class StationNotFound(WavetunerError):
    """Raised when a station id is not in the station directory."""

    pass


class NoStationSelected(WavetunerError):
    """Raised when a playback command needs a station and none is selected."""

    pass


class PlaybackNotActive(WavetunerError):
    """Raised when recording is requested while playback is not running."""

    pass


class UnsupportedRate(WavetunerError):
    """Raised when the encoder cannot accept the source sample rate."""

    pass


class InvalidBlockSize(WavetunerError):
    """Raised when a PCM block does not match the sink's declared block shape."""

    pass
