"""Configuration loading, saving, and management."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from wavetuner.constants import (
    DEFAULT_BITRATE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_VOLUME,
    SUPPORTED_SAMPLE_RATES,
    VALID_BITRATES,
    VALID_LOG_LEVELS,
)


@dataclass
class PlaybackDefaults:
    volume: float = DEFAULT_VOLUME
    muted: bool = False
    sample_rate: int = DEFAULT_SAMPLE_RATE
    ffmpeg: str = "ffmpeg"
    default_station: str = ""


@dataclass
class RecordingDefaults:
    bitrate: int = DEFAULT_BITRATE


@dataclass
class KeepAliveDefaults:
    enabled: bool = True


@dataclass
class LoggingDefaults:
    level: str = DEFAULT_LOG_LEVEL


@dataclass
class StorageDefaults:
    data_dir: str = ""


@dataclass
class WavetunerConfig:
    playback: PlaybackDefaults = field(default_factory=PlaybackDefaults)
    recording: RecordingDefaults = field(default_factory=RecordingDefaults)
    keepalive: KeepAliveDefaults = field(default_factory=KeepAliveDefaults)
    logging: LoggingDefaults = field(default_factory=LoggingDefaults)
    storage: StorageDefaults = field(default_factory=StorageDefaults)

    @classmethod
    def load(cls, config_path: Path | None = None) -> WavetunerConfig:
        """Load config from TOML file, falling back to defaults for missing keys."""
        config = cls()
        if config_path is None or not config_path.exists():
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        for section_field in fields(config):
            section = data.get(section_field.name)
            if not isinstance(section, dict):
                continue
            obj = getattr(config, section_field.name)
            for k, v in section.items():
                if hasattr(obj, k):
                    setattr(obj, k, v)

        return config

    def save(self, config_path: Path) -> None:
        """Write current config to TOML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self._to_dict()
        with open(config_path, "wb") as f:
            tomli_w.dump(data, f)

    def get(self, key: str) -> Any:
        """Get a config value by dotted key (e.g., 'recording.bitrate')."""
        obj, name = self._resolve(key)
        return getattr(obj, name)

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dotted key."""
        obj, name = self._resolve(key)

        # Coerce value to match the field type
        current = getattr(obj, name)
        coerced = _coerce_value(value, current, key)
        _validate_value(key, coerced)
        setattr(obj, name, coerced)

    def _resolve(self, key: str) -> tuple[Any, str]:
        section, _, name = key.partition(".")
        if not name:
            raise KeyError(f"Invalid key format: {key!r}. Use 'section.key' (e.g., 'recording.bitrate')")
        obj = getattr(self, section, None)
        if obj is None or section not in {f.name for f in fields(self)}:
            raise KeyError(f"Unknown config section: {section!r}")
        if not hasattr(obj, name):
            raise KeyError(f"Unknown config key: {key!r}")
        return obj, name

    def _to_dict(self) -> dict:
        """Convert config to a nested dict for TOML serialization."""
        result = {}
        for section_field in fields(self):
            section_obj = getattr(self, section_field.name)
            section_dict = {}
            for f in fields(section_obj):
                section_dict[f.name] = getattr(section_obj, f.name)
            result[section_field.name] = section_dict
        return result


def _coerce_value(value: Any, current: Any, key: str) -> Any:
    """Coerce a string value to match the type of the current value."""
    if isinstance(value, str) and not isinstance(current, str):
        if isinstance(current, bool):
            if value.lower() in ("true", "1", "yes", "on"):
                return True
            elif value.lower() in ("false", "0", "no", "off"):
                return False
            raise ValueError(f"Cannot convert {value!r} to bool for key {key!r}")
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
    if isinstance(current, float) and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _validate_value(key: str, value: Any) -> None:
    """Validate a config value."""
    if key == "recording.bitrate" and value not in VALID_BITRATES:
        raise ValueError(
            f"Invalid bitrate: {value!r}. Choose from: {', '.join(str(b) for b in VALID_BITRATES)}"
        )
    if key == "playback.volume" and not (0.0 <= value <= 1.0):
        raise ValueError(f"volume must be 0.0-1.0, got {value}")
    if key == "playback.sample_rate" and value not in SUPPORTED_SAMPLE_RATES:
        raise ValueError(f"Unsupported sample_rate: {value}")
    if key == "logging.level" and str(value).upper() not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value!r}. Choose from: {', '.join(VALID_LOG_LEVELS)}")
