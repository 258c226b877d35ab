"""Loguru setup for the wavetuner CLI."""

from pathlib import Path

from loguru import logger


def setup_logging(log_file: Path, level: str = "INFO") -> None:
    """Route loguru to a rotating log file.

    The default stderr handler is removed so log lines never interleave with
    the status line the CLI redraws on the terminal.

    Args:
        log_file: Path to log file
        level: Minimum level for file logging (DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation="10 MB",
        retention=5,
        level=level.upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}",
        enqueue=False,
    )

    logger.info(f"Logging initialized: {log_file} (level={level})")
