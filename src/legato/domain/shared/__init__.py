"""
Shared Domain Kernel

Contains constants, types and exceptions shared across all bounded contexts.
"""

from legato.domain.shared.exceptions import (
    DomainError,
    InfrastructureError,
    InvalidOperationError,
    InvalidRangeError,
    MalformedCommandError,
    PipelineFailureError,
    ResourceResolutionError,
    SessionNotFoundError,
    StreamSupersededError,
    TrackNotFoundError,
    UserInputError,
)

__all__ = [
    "DomainError",
    "UserInputError",
    "TrackNotFoundError",
    "InvalidRangeError",
    "MalformedCommandError",
    "ResourceResolutionError",
    "PipelineFailureError",
    "StreamSupersededError",
    "InfrastructureError",
    "SessionNotFoundError",
    "InvalidOperationError",
]
