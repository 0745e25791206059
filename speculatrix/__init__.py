from __future__ import annotations

from typing import TYPE_CHECKING

from speculatrix.smart_parallel_enums import Command
from speculatrix.smart_parallel_enums import LineEnding
from speculatrix.smart_parallel_enums import PrintMode

if TYPE_CHECKING:
    import logging

__all__ = [
    "Command",
    "LineEnding",
    "PrintMode",
    "create_null_logger",
]


def create_null_logger() -> "logging.Logger":  # type: ignore # noqa: F821
    """Create a null logger."""
    import logging

    logger = logging.getLogger("null")
    logger.addHandler(logging.NullHandler())
    return logger
