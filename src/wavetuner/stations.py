"""Read-only station directory backed by a JSON file."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from wavetuner.errors import StationNotFound


@dataclass(frozen=True)
class Station:
    id: str
    name: str
    url: str
    favorite: bool = False


DEFAULT_STATIONS = (
    Station("1", "Radio Paradise", "https://stream.radioparadise.com/mp3-128", favorite=True),
    Station("2", "Classic FM UK", "https://media-ssl.musicradio.com/ClassicFM"),
    Station("3", "SomaFM Groove Salad", "https://ice1.somafm.com/groovesalad-128-mp3"),
    Station("4", "FFH 80er", "https://mp3.ffh.de/ffhchannels/hq80er.mp3"),
)


class StationDirectory:
    """Ordered, read-only view over the user's stations.

    Station management lives elsewhere; the tuner only resolves ids to
    names and stream URLs.
    """

    def __init__(self, stations=DEFAULT_STATIONS):
        self._stations: list[Station] = list(stations)

    @classmethod
    def load(cls, path: Optional[Path]) -> StationDirectory:
        """Load stations from a JSON list, falling back to the defaults."""
        if path is None or not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read station list {path}: {e}; using defaults")
            return cls()

        stations = []
        for entry in data:
            try:
                stations.append(
                    Station(
                        id=str(entry["id"]),
                        name=entry["name"],
                        url=entry["url"],
                        favorite=bool(entry.get("favorite", False)),
                    )
                )
            except (KeyError, TypeError):
                logger.warning(f"Skipping malformed station entry: {entry!r}")
        return cls(stations)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps([asdict(s) for s in self._stations], indent=2))

    def list_stations(self) -> list[Station]:
        return list(self._stations)

    def find(self, station_id: str) -> Optional[Station]:
        for station in self._stations:
            if station.id == station_id:
                return station
        return None

    def get(self, station_id: str) -> Station:
        station = self.find(station_id)
        if station is None:
            raise StationNotFound(f"Station not found: {station_id}")
        return station

    def get_station_name(self, station_id: str) -> str:
        return self.get(station_id).name
