"""Exception types for the ride retry queue."""


class RideRetryError(Exception):
    """Base class for all ride_retry errors."""


class ValidationError(RideRetryError, ValueError):
    """Raised for malformed operations, records, or trigger types."""


class OwnershipError(RideRetryError, PermissionError):
    """Raised when someone other than the owner manages triggers."""


class QueueBusyError(RideRetryError):
    """Raised when another run already holds the queue processing guard."""
