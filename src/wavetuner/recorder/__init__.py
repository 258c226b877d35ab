"""Capture, encoding and recording sessions."""

from wavetuner.recorder.base import RecordingArtifact, artifact_filename
from wavetuner.recorder.encoder import EncodeSink
from wavetuner.recorder.session import RecordingSession, SessionStatus
from wavetuner.recorder.tap import CaptureTap, to_int16

__all__ = [
    "RecordingArtifact",
    "artifact_filename",
    "EncodeSink",
    "RecordingSession",
    "SessionStatus",
    "CaptureTap",
    "to_int16",
]
