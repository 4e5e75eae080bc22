"""🚨 Errors - Exception hierarchy for the lineage engine."""

from __future__ import annotations


class ArchviewError(Exception):
    """Base exception for archview."""

    pass


class InvalidArchError(ArchviewError, ValueError):
    """Manual arch creation request is missing or has inconsistent fields."""

    pass


class WorkflowError(ArchviewError):
    """Connection workflow action not allowed in the current state."""

    pass


class ImportValidationError(ArchviewError):
    """Imported document does not match the export format."""

    pass


class ServiceError(ArchviewError):
    """A data-access service call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ServiceNotFoundError(ServiceError):
    """Requested resource does not exist on the service."""

    pass
