"""
Application-level exceptions.

Every error raised on purpose by this package derives from FlowIndexError so
callers can catch the whole family at a block or stream boundary:

- ValidationError: argument binding mismatches (reports all names at once).
- ParseError: malformed Cadence source.
- ConversionError: JSON-Cadence payloads or fee fields of an unexpected shape.
- FetchError: access node failures; TransientIndexingError for data that is
  not indexed yet and should be retried at the same height.
- TerminalBlockError: any other per-block failure, surfaced once to the consumer.
- StreamCancelled: the stream's stop event was set.
"""

from __future__ import annotations


class FlowIndexError(Exception):
    """Base class for all backend_flowindex errors."""


class ValidationError(FlowIndexError):
    """Named arguments do not match the declared parameter list."""

    def __init__(self, message: str, names: list[str]) -> None:
        super().__init__(message)
        self.names = list(names)


class MissingArgumentsError(ValidationError):
    def __init__(self, names: list[str]) -> None:
        super().__init__(f"the interaction is missing [{', '.join(names)}]", names)


class RedundantArgumentsError(ValidationError):
    def __init__(self, names: list[str]) -> None:
        super().__init__(
            f"the interaction has the following extra arguments [{', '.join(names)}]",
            names,
        )


class ParseError(FlowIndexError):
    """Cadence source could not be parsed; line/column are 1-based."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None) -> None:
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)
        self.line = line
        self.column = column


class ConversionError(FlowIndexError):
    """A protocol value could not be converted to or from a host value."""


class FetchError(FlowIndexError):
    """The access node call failed."""


class TransientIndexingError(FetchError):
    """Execution data for a block is not indexed yet; retry the same height."""


class TerminalBlockError(FlowIndexError):
    """A block could not be assembled; the stream reports it once and moves on."""

    def __init__(self, height: int, message: str) -> None:
        super().__init__(f"block {height}: {message}")
        self.height = height


class StreamCancelled(FlowIndexError):
    """The stop event of a running stream was set."""
