"""wavetuner: internet radio tuner with scheduled MP3 capture."""

__version__ = "0.1.0"
