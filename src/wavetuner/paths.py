"""Cross-platform path resolution for wavetuner data directories."""

import os
from pathlib import Path

from platformdirs import user_data_dir

from wavetuner.constants import APP_NAME


def get_data_dir(config_override: str = "") -> Path:
    """Resolve the wavetuner data directory.

    Priority: config_override > WAVETUNER_DATA_DIR env var > platform default.
    """
    if config_override:
        return Path(config_override)

    env_dir = os.environ.get("WAVETUNER_DATA_DIR")
    if env_dir:
        return Path(env_dir)

    return Path(user_data_dir(APP_NAME))


def get_recordings_dir(data_dir: Path) -> Path:
    return data_dir / "recordings"


def get_config_path(data_dir: Path) -> Path:
    return data_dir / "config.toml"


def get_stations_path(data_dir: Path) -> Path:
    return data_dir / "stations.json"


def get_log_path(data_dir: Path) -> Path:
    return data_dir / f"{APP_NAME}.log"


def ensure_dirs(data_dir: Path) -> None:
    """Create all required subdirectories if they don't exist."""
    get_recordings_dir(data_dir).mkdir(parents=True, exist_ok=True)
