"""
Shared helpers: logging setup and identifier parsing.
"""
import logging
import sys
from typing import Any

from assetguard.core import config
from assetguard.core.exceptions import ValidationError


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root "assetguard" logger once.

    Output goes to stderr so it doubles as the side channel for audit sink failures.
    """
    global _configured
    root = logging.getLogger("assetguard")
    root.setLevel(level or config.LOG_LEVEL)
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = True
    _configured = True

    # SQLAlchemy is chatty at INFO
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance"""
    return logging.getLogger(name)


def parse_id(value: Any, field: str = "id") -> int:
    """
    Coerce a numeric identifier coming from a path, query or body.

    Raises:
        ValidationError: if the value is not a non-negative integer
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}", details={field: value})
    if isinstance(value, int):
        if value < 0:
            raise ValidationError(f"Invalid {field}", details={field: value})
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"Invalid {field}", details={field: value})
