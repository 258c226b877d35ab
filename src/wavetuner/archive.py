"""Recordings archive: persists delivered artifacts with metadata and lists them."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

from wavetuner.recorder.base import RecordingArtifact


@dataclass
class RecordingInfo:
    """A saved recording and its sidecar metadata."""
    stem: str
    mp3_path: Path
    meta_path: Optional[Path]
    metadata: Optional[dict]
    duration_seconds: Optional[float]
    station_name: Optional[str]
    size_bytes: int


class RecordingArchive:
    def __init__(self, recordings_dir: Path):
        self.recordings_dir = recordings_dir
        self.recordings_dir.mkdir(parents=True, exist_ok=True)

    def save(self, artifact: RecordingArtifact) -> Path:
        """Write the artifact bytes and a ``.meta`` sidecar. Returns the MP3 path."""
        path = self._unique_path(artifact.filename)
        path.write_bytes(artifact.data)
        self.write_metadata(path.stem, self.create_metadata(artifact))
        logger.info(f"Saved recording {path} ({len(artifact.data)} bytes)")
        return path

    def create_metadata(self, artifact: RecordingArtifact, **extra) -> dict:
        """Build metadata dict from a recording artifact."""
        meta = {
            "created": datetime.now(timezone.utc).isoformat(),
            "started_at": artifact.started_at.isoformat() if artifact.started_at else None,
            "duration_seconds": artifact.duration_seconds,
            "sample_rate": artifact.sample_rate,
            "bitrate_kbps": artifact.bitrate_kbps,
            "station_id": artifact.station_id,
            "station_name": artifact.station_name,
            "mime_type": artifact.mime_type,
        }
        meta.update(extra)
        return meta

    def write_metadata(self, stem: str, metadata: dict) -> Path:
        """Write .meta JSON file."""
        meta_path = self.recordings_dir / f"{stem}.meta"
        meta_path.write_text(json.dumps(metadata, indent=2))
        return meta_path

    def read_metadata(self, stem: str) -> Optional[dict]:
        """Read .meta JSON file, return None if missing."""
        meta_path = self.recordings_dir / f"{stem}.meta"
        if not meta_path.exists():
            return None
        return json.loads(meta_path.read_text())

    def list_recordings(
        self,
        limit: Optional[int] = 20,
        sort_by: str = "date",
        station: Optional[str] = None,
    ) -> list[RecordingInfo]:
        """List saved recordings, optionally filtered by station name substring."""
        recordings = []

        for mp3_path in self.recordings_dir.glob("*.mp3"):
            info = self._build_info(mp3_path.stem, mp3_path)
            if station and station.lower() not in (info.station_name or "").lower():
                continue
            recordings.append(info)

        recordings.sort(key=lambda r: self._sort_key(r, sort_by), reverse=(sort_by == "date"))
        return recordings[:limit] if limit else recordings

    def get_recording(self, stem: str) -> Optional[RecordingInfo]:
        mp3_path = self.recordings_dir / f"{stem}.mp3"
        if not mp3_path.exists():
            return None
        return self._build_info(stem, mp3_path)

    def _unique_path(self, filename: str) -> Path:
        path = self.recordings_dir / filename
        n = 1
        while path.exists():
            path = self.recordings_dir / f"{Path(filename).stem}-{n}{Path(filename).suffix}"
            n += 1
        return path

    def _build_info(self, stem: str, mp3_path: Path) -> RecordingInfo:
        meta_path = self.recordings_dir / f"{stem}.meta"

        metadata = None
        if meta_path.exists():
            try:
                metadata = json.loads(meta_path.read_text())
            except (json.JSONDecodeError, OSError):
                pass

        return RecordingInfo(
            stem=stem,
            mp3_path=mp3_path,
            meta_path=meta_path if meta_path.exists() else None,
            metadata=metadata,
            duration_seconds=metadata.get("duration_seconds") if metadata else None,
            station_name=metadata.get("station_name") if metadata else None,
            size_bytes=mp3_path.stat().st_size,
        )

    def _sort_key(self, info: RecordingInfo, sort_by: str):
        if sort_by == "duration":
            return info.duration_seconds or 0.0
        if sort_by == "name":
            return info.stem
        # Stems start with the station name, so date order comes from metadata.
        if info.metadata and info.metadata.get("started_at"):
            return info.metadata["started_at"]
        return datetime.fromtimestamp(info.mp3_path.stat().st_mtime).isoformat()
