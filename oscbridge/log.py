"""Logging utilities for the oscbridge service."""
import logging
import sys
import os
import threading
from typing import Optional


# Guards handler installation when loggers are created from several threads
# (HTTP workers and the OSC receive thread start up concurrently)
_logger_init_lock = threading.Lock()

LOG_LEVEL_ENV = "OSCBRIDGE_LOG_LEVEL"


class BridgeFormatter(logging.Formatter):
    """Compact single-line formatter.

    Format: [{level[0]} {time} {module_basename[:9]}] {message}
    Example: [I 14:23:45.123 listener ] OSC listener ready on 0.0.0.0:9005
    """

    def format(self, record):
        level_char = record.levelname[0]

        # Last dotted component, truncated and padded to 9 chars
        module_name = record.name.split('.')[-1]
        module_padded = module_name[:9].ljust(9)

        timestamp = self.formatTime(record, "%H:%M:%S")
        msecs = f"{record.msecs:03.0f}"

        prefix = f"[{level_char} {timestamp}.{msecs} {module_padded}]"
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{prefix} {message}"


def resolve_level(level: Optional[str] = None) -> int:
    """Translate a level name into a logging constant.

    Falls back to OSCBRIDGE_LOG_LEVEL, then INFO. Unknown names map to INFO.
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    return getattr(logging, str(level).upper(), logging.INFO)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get logger for an oscbridge component.

    Args:
        name: Component name (usually __name__)
        level: Optional level (DEBUG/INFO/WARNING/ERROR)
               Falls back to OSCBRIDGE_LOG_LEVEL env var, then INFO

    Returns:
        Configured logger instance

    Example:
        >>> from oscbridge.log import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Listener started")
        [I 14:23:45.123 listener ] Listener started
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))

    with _logger_init_lock:
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(BridgeFormatter())
            logger.addHandler(handler)

    return logger


def set_level(level: str) -> None:
    """Apply a level to every oscbridge logger created so far."""
    resolved = resolve_level(level)
    for name in list(logging.root.manager.loggerDict):
        if name == "oscbridge" or name.startswith("oscbridge."):
            logging.getLogger(name).setLevel(resolved)
