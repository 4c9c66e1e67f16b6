"""Exceptions raised by the opportunity discovery pipeline.

Only ``UserNotFoundError`` is allowed to abort a discovery request; every
other failure is caught at a stage boundary and degrades the result.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for pipeline errors."""


class UserNotFoundError(EngineError):
    """The requesting user does not exist."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class UnknownSourceError(EngineError, KeyError):
    """No opportunity source is registered under the given id."""

    def __init__(self, source_id: str):
        super().__init__(f"Unknown opportunity source: {source_id}")
        self.source_id = source_id

    def __str__(self) -> str:
        return self.args[0]


class SourceTimeoutError(EngineError):
    """A source did not answer within the aggregation timeout."""

    def __init__(self, source_id: str, timeout: float):
        super().__init__(f"Source {source_id} timed out after {timeout:.1f}s")
        self.source_id = source_id
        self.timeout = timeout


class AIServiceError(EngineError):
    """The generative AI service failed or is unavailable."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class AIResponseError(AIServiceError):
    """The AI service answered, but not with usable structured data."""
