"""Custom exceptions for the rate limiting library."""


class RateLimitError(Exception):
    """Base class for rate limiting exceptions.

    All library exceptions inherit from this class so callers can catch
    every failure the limiters raise with a single ``except`` clause.
    """

    def __init__(self, message: str = "Rate limit error"):
        self.message = message
        super().__init__(message)


class StoreUnavailable(RateLimitError):
    """Raised when the backing store could not complete an operation.

    Covers connection refusals, timeouts and any other store-side failure.
    Limiters never retry or mask it; the caller decides whether to retry,
    fail open or fail closed.
    """

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        message = f"Counter store unavailable during '{operation}'"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class InvalidConfiguration(RateLimitError, ValueError):
    """Raised for non-positive limiter parameters or unsatisfiable requests.

    Also a ``ValueError`` so it reads naturally to callers validating input.
    """

    def __init__(self, detail: str = "Invalid rate limiter configuration"):
        self.detail = detail
        super().__init__(detail)
