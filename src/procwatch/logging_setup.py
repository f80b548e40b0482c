"""Rotating file logger for procwatch, kept to ~1 MB on disk."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


def log_path() -> Path:
    """Return the log file path, next to the config file."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "procwatch" / "procwatch.log"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure and return the ``procwatch`` logger.

    * 512 KB max per file, 1 backup = **1 MB total** on disk.
    * Idempotent: safe to call multiple times (checks for existing handlers).
    * If the log directory is not writable, log records are dropped; the
      check result is still produced.
    """
    logger = logging.getLogger("procwatch")

    # Avoid adding duplicate handlers on repeated calls
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    log_file = log_path()
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            str(log_file),
            maxBytes=512 * 1024,  # 512 KB
            backupCount=1,
        )
    except OSError:
        logger.addHandler(logging.NullHandler())
        return logger

    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(message)s",
                          datefmt="%Y-%m-%d %H:%M:%S")
    )

    logger.addHandler(handler)
    return logger
