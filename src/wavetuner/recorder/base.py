"""Shared data types for finished recordings."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from wavetuner.constants import MP3_MIME_TYPE

_UNSAFE_CHARS_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


@dataclass
class RecordingArtifact:
    """One finalized recording, ready for the host to persist."""
    data: bytes
    filename: str
    started_at: datetime
    duration_seconds: int
    sample_rate: int
    bitrate_kbps: int
    station_id: Optional[str] = None
    station_name: Optional[str] = None
    mime_type: str = MP3_MIME_TYPE


def artifact_filename(station_name: Optional[str], when: datetime) -> str:
    """Build ``<station>-<dd-mm-YYYY>-<HH-MM-SS>.mp3`` with a filesystem-safe station part."""
    name = _UNSAFE_CHARS_RE.sub("_", station_name or "").strip(" .")
    if not name:
        name = "Radio"
    return f"{name}-{when.strftime('%d-%m-%Y')}-{when.strftime('%H-%M-%S')}.mp3"
