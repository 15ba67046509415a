"""Loguru sink configuration: a log file under the cache dir plus warnings on stderr."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import default_cache_dir

LOG_FILENAME = "vibe-playlist.log"


def configure_logging(verbose: bool = False, log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Replace the default sink. Returns the log file path, or None if the
    log directory could not be created (stderr logging still works).
    """
    logger.remove()
    logger.add(sys.stderr, level="WARNING")

    log_dir = Path(log_dir) if log_dir else default_cache_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Failed to initialize log file in {log_dir}: {e}")
        return None

    log_path = log_dir / LOG_FILENAME
    logger.add(log_path, level="DEBUG" if verbose else "INFO")
    if verbose:
        logger.info("Verbose logging enabled")
    logger.info(f"Log file: {log_path}")
    return log_path
