"""Domain-specific exceptions for fleet payments.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from FleetPaymentsError for easy catching.
"""

from __future__ import annotations


class FleetPaymentsError(Exception):
    """Base exception for all fleet payments errors.

    Users can catch this exception to handle any error raised by the package.
    """

    pass


class ConfigError(FleetPaymentsError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Invalid configuration values are provided
    - Required settings are missing from the environment
    """

    pass


class DataQualityError(FleetPaymentsError):
    """Raised when input data cannot be processed.

    This exception is raised when:
    - Required columns are missing from a transactions or summary DataFrame
    """

    pass


class PipelineError(FleetPaymentsError):
    """Raised when a pipeline stage fails."""

    pass


class ReferenceFetchError(PipelineError):
    """Raised when a chunk of schedule reference lookups fails.

    The pipeline never propagates this error out of a rebuild. It is logged,
    collected on the snapshot, and the affected ids stay unresolved.

    Attributes:
        schedule_ids: Ids of the chunk that could not be fetched.
    """

    def __init__(self, message: str, schedule_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.schedule_ids = list(schedule_ids or [])
