"""
Logger module for localsecret

Every component logs through a named logger created here. Output goes to
stderr so that stdout only ever carries the share URL.
"""

import logging
import os
import sys
from typing import List, Optional


LOG_LEVEL_ENV = 'LOCALSECRET_LOG_LEVEL'


class LogColors:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta


class ColoredFormatter(logging.Formatter):
    """Formatter that colors level names when stderr is a terminal"""

    COLORS = {
        logging.DEBUG: LogColors.DEBUG,
        logging.INFO: LogColors.INFO,
        logging.WARNING: LogColors.WARNING,
        logging.ERROR: LogColors.ERROR,
        logging.CRITICAL: LogColors.CRITICAL,
    }

    def format(self, record):
        if hasattr(sys.stderr, 'isatty') and sys.stderr.isatty():
            color = self.COLORS.get(record.levelno)
            if color:
                # Work on a copy so other handlers see the plain level name
                record = logging.makeLogRecord(record.__dict__)
                record.levelname = f"{color}{record.levelname}{LogColors.RESET}"
        return super().format(record)


def resolve_level(level: Optional[str] = None) -> str:
    """
    Resolve a log level name.

    Falls back to the LOCALSECRET_LOG_LEVEL env var, then INFO. Unknown
    names resolve to INFO.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, 'INFO')
    level = level.upper()
    if level == 'WARN':
        level = 'WARNING'
    if not isinstance(getattr(logging, level, None), int):
        level = 'INFO'
    return level


def _own_handlers(logger: logging.Logger) -> List[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h.formatter, ColoredFormatter)]


def create_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Create a logger instance with the specified log level.

    Args:
        name: Logger name (e.g. "LocalSecret.Gate")
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Falls back to LOCALSECRET_LOG_LEVEL env var, then INFO.

    Returns:
        Configured logger instance

    Example:
        >>> logger = create_logger("LocalSecret.Gate", level="INFO")
        >>> logger.info("Gate ready")
    """
    level_value = getattr(logging, resolve_level(level))

    logger = logging.getLogger(name)
    logger.setLevel(level_value)

    # Avoid duplicate handlers if logger already configured; handlers added
    # by others (e.g. log capture) don't count
    if not _own_handlers(logger):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColoredFormatter(
            fmt='%(name)s %(levelname)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(handler)

    for handler in _own_handlers(logger):
        handler.setLevel(level_value)

    # Prevent propagation to root logger to avoid duplicate logs
    logger.propagate = False

    return logger
