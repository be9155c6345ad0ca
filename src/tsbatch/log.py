"""Logging helpers.

Library modules log through ``logging.getLogger(__name__)``. This module
adds the HTTP log level understood by the transport and a small helper
to attach a console handler for command-line use.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_HANDLER_NAME = "tsbatch-console"


class LogLevel(str, Enum):
    """How much of each HTTP exchange the transport logs."""

    NONE = "none"  # nothing
    BASIC = "basic"  # method, URL, status and elapsed time
    HEADERS = "headers"  # BASIC plus request and response headers
    FULL = "full"  # HEADERS plus bodies

    @classmethod
    def from_string(cls, value: str) -> "LogLevel":
        """Convert string to LogLevel (case-insensitive)."""
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Unknown log level: {value!r}") from None

    def includes(self, other: "LogLevel") -> bool:
        """Whether this level logs everything ``other`` logs."""
        order = list(LogLevel)
        return order.index(self) >= order.index(other)


def configure_logging(level: int | str = logging.INFO, fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """Attach a stderr handler to the ``tsbatch`` logger.

    Calling it again only updates the level and format.

    Args:
        level: Logging level name or number.
        fmt: Log record format.

    Returns:
        The ``tsbatch`` logger.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown logging level: {level!r}")
        level = resolved

    root = logging.getLogger("tsbatch")
    handler = next((h for h in root.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        root.addHandler(handler)
    handler.setFormatter(logging.Formatter(fmt))
    root.setLevel(level)
    return root
