class RoutingMetricsError(Exception):
    """Base class for errors raised by this package."""


class RecordSourceError(RoutingMetricsError):
    """The ticket service could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StorageUnavailable(RoutingMetricsError):
    """A key/value backend could not read or write its data."""
