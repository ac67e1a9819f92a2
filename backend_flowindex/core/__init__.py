"""
Core utilities: error taxonomy shared by parser, listener and stream.
"""

from backend_flowindex.core.exceptions import (
    ConversionError,
    FetchError,
    FlowIndexError,
    MissingArgumentsError,
    ParseError,
    RedundantArgumentsError,
    StreamCancelled,
    TerminalBlockError,
    TransientIndexingError,
    ValidationError,
)

__all__ = [
    "ConversionError",
    "FetchError",
    "FlowIndexError",
    "MissingArgumentsError",
    "ParseError",
    "RedundantArgumentsError",
    "StreamCancelled",
    "TerminalBlockError",
    "TransientIndexingError",
    "ValidationError",
]
