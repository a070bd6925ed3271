"""
Console logging with colored levels.
"""

import logging


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for warnings/errors."""
    COLORS = {
        'WARNING': '\033[93m',  # Yellow
        'ERROR': '\033[91m',    # Red
        'CRITICAL': '\033[91m\033[1m',  # Bold Red
        'DEBUG': '\033[90m',    # Gray
        'INFO': '',             # Default
        'RESET': '\033[0m'
    }

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET'] if color else ''
        message = super().format(record)
        return f"{color}{message}{reset}"


def configure_logging(level='INFO', logger_name: str = 'commodity_forecast') -> logging.Logger:
    """
    Attach a single colored console handler to the package logger.

    Safe to call repeatedly; existing handlers are replaced.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    logger.handlers = []  # Clear any existing handlers

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    console_handler.setFormatter(ColoredFormatter('%(levelname)s:%(name)s: %(message)s'))
    logger.addHandler(console_handler)
    return logger
