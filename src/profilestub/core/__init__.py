"""Core ProfileStub utilities.

This module exports core utilities for use throughout the package.
"""

from profilestub.core.config import Settings, get_settings
from profilestub.core.exceptions import NotFoundError, ProfileStubError, StructureError
from profilestub.core.logging import (
    LoggingContext,
    clear_context,
    configure_logging,
    get_logger,
)

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "LoggingContext",
    "clear_context",
    "ProfileStubError",
    "StructureError",
    "NotFoundError",
]
