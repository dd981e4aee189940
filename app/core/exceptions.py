"""
Exception hierarchy for the coordination core.

Routes translate these into HTTP errors; cache and event-bus failures never
raise and so have no entry here.
"""

from typing import Optional


class CoordinationError(Exception):
    """Base exception for all coordination errors."""


class InvalidQuery(CoordinationError):
    """A query cannot run as given (missing center point, bad radius, ...)."""


class BackendFailure(CoordinationError):
    """The backing store failed while serving a query."""

    def __init__(self, message: str, *, operation: str = ""):
        self.operation = operation
        super().__init__(message)


class QueryTimeout(BackendFailure):
    """A query exceeded its deadline; partial results were discarded."""


class AuditWriteError(CoordinationError):
    """A mutation was rejected because its audit entry could not be persisted."""

    def __init__(self, message: str, *, disaster_id: Optional[str] = None):
        self.disaster_id = disaster_id
        super().__init__(message)


class DisasterNotFound(CoordinationError):
    """No disaster record with the requested id."""

    def __init__(self, disaster_id: str):
        self.disaster_id = disaster_id
        super().__init__(f"Disaster {disaster_id} not found")


class ResourceNotFound(CoordinationError):
    """No resource record with the requested id."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Resource {resource_id} not found")


class PermissionDenied(CoordinationError):
    """The acting user may not mutate this record."""


class FetchError(CoordinationError):
    """An external fetcher could not produce a result."""

    def __init__(self, message: str, *, fetcher: str = ""):
        self.fetcher = fetcher
        super().__init__(message)
