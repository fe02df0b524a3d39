"""Base exception classes for domain-level errors."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class UserInputError(DomainError):
    """Raised when a caller supplies an invalid request.

    Reported to the requesting client only; never broadcast.
    """

    def __init__(self, message: str, code: str = "INVALID_INPUT") -> None:
        super().__init__(message, code=code)


class TrackNotFoundError(UserInputError):
    """Raised when a referenced track id is absent from the queue."""

    def __init__(self, track_id: str, message: str | None = None) -> None:
        msg = message or f"Track with id '{track_id}' not found in queue"
        super().__init__(msg, code="TRACK_NOT_FOUND")
        self.track_id = track_id


class InvalidRangeError(UserInputError):
    """Raised when a seek position or queue index is out of bounds."""

    def __init__(self, field: str, value: int | float, message: str | None = None) -> None:
        msg = message or f"{field} out of range: {value}"
        super().__init__(msg, code="INVALID_RANGE")
        self.field = field
        self.value = value


class MalformedCommandError(UserInputError):
    """Raised when an inbound command payload cannot be parsed."""

    def __init__(self, message: str, command: str | None = None) -> None:
        super().__init__(message, code="MALFORMED_COMMAND")
        self.command = command


class ResourceResolutionError(DomainError):
    """Raised when a query or URL cannot be resolved to playable media."""

    def __init__(self, query: str, message: str | None = None) -> None:
        msg = message or f"Could not resolve '{query}'"
        super().__init__(msg, code="RESOLUTION_FAILED")
        self.query = query


class PipelineFailureError(DomainError):
    """Raised when the transcode process cannot be started or dies abnormally."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PIPELINE_FAILURE")


class StreamSupersededError(PipelineFailureError):
    """Raised when a pending stream start was replaced by a newer one."""

    def __init__(self, epoch: int) -> None:
        super().__init__(f"Stream start superseded (epoch {epoch})")
        self.epoch = epoch


class InfrastructureError(DomainError):
    """Raised when a transport the session depends on is lost."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INFRASTRUCTURE_ERROR")


class SessionNotFoundError(DomainError):
    """Raised when a session id is unknown or expired."""

    def __init__(self, session_id: str, message: str | None = None) -> None:
        msg = message or f"Session '{session_id}' not found or expired"
        super().__init__(msg, code="SESSION_NOT_FOUND")
        self.session_id = session_id


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state
