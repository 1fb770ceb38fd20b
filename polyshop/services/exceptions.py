# polyshop/services/exceptions.py

class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class ConfigError(ServiceError):
    """Malformed store target or retry policy. Fatal at startup, never retried."""
    pass


class ConnectFailure(ServiceError):
    """A single failed connection attempt; retried with backoff."""
    pass


class ConnectFatal(ServiceError):
    """Connection attempts exhausted; the process must abort."""

    def __init__(self, detail: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(detail)


class ConnectCancelled(ConnectFatal):
    """Connection establishment cancelled or out of time while backing off."""
    pass


class InvalidQuantityError(ServiceError):
    """Raised when a quantity is invalid (e.g., <= 0)."""
    pass


class StoreFailure(ServiceError):
    """Per-request store communication failure (timeout, reset, refused)."""
    pass


class DomainValidationError(ServiceError):
    """Invalid domain input."""
    pass


class ResourceNotFoundError(ServiceError):
    """Resource not found."""
    pass
