"""Core module initialization."""

from codegraph.core.config import Settings, get_settings, settings
from codegraph.core.exceptions import (
    CodeGraphError,
    FlowGraphIngestRejectedError,
    InvalidTraversalDepthError,
    MalformedRecordError,
    MissingGraphElementError,
    ReferentialIntegrityError,
)
from codegraph.core.logging import configure_logging, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "CodeGraphError",
    "FlowGraphIngestRejectedError",
    "InvalidTraversalDepthError",
    "MalformedRecordError",
    "MissingGraphElementError",
    "ReferentialIntegrityError",
    "configure_logging",
    "get_logger",
]
