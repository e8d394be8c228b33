"""
Provider Errors - Typed failure kinds for the reconciliation engine.

Remote failures are classified into one of these kinds at the point where
the remote call is made. Nothing above the resource plugins looks at raw
transport errors.
"""

from typing import Any, Optional


class ProviderError(Exception):
    """Base class for all classified provider failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(ProviderError):
    """Confirmed absence of a remote resource."""

    def __init__(
        self,
        message: str = "couldn't find resource",
        last_request: Any = None,
        last_error: Optional[BaseException] = None,
    ):
        self.last_request = last_request
        self.last_error = last_error
        super().__init__(message)


class EmptyResultError(NotFoundError):
    """A describe/list call returned no records."""

    def __init__(self, last_request: Any = None):
        super().__init__("empty result", last_request=last_request)


class RetryableError(ProviderError):
    """Transient remote condition (propagation lag, throttling)."""


class TerminalError(ProviderError):
    """Non-retryable remote rejection."""


class TooManyResultsError(TerminalError):
    """A lookup that must match one record matched several."""

    def __init__(self, count: int, last_request: Any = None):
        self.count = count
        self.last_request = last_request
        super().__init__(f"too many results: wanted 1, got {count}")


class UnexpectedStateError(TerminalError):
    """A status waiter observed a status outside the pending and target sets."""

    def __init__(self, state: str, expected: Any):
        self.state = state
        self.expected = list(expected)
        super().__init__(
            f"unexpected state '{state}', wanted target '{', '.join(self.expected)}'"
        )


class InvalidConfigurationError(TerminalError):
    """Desired state failed schema validation."""


class MalformedIdentityError(TerminalError):
    """A composite identity could not be parsed."""


class TypeMismatchError(TerminalError):
    """A configuration value did not have the expected type."""

    def __init__(self, path: str, expected: str, value: Any):
        self.path = path
        self.expected = expected
        self.value = value
        super().__init__(
            f"{path or '(root)'}: expected {expected}, got {type(value).__name__}"
        )


class WaitTimeoutError(ProviderError):
    """The wait budget ran out before a terminal outcome was observed."""

    def __init__(
        self,
        message: str,
        timeout: float,
        last_state: Any = None,
        last_error: Optional[BaseException] = None,
    ):
        self.timeout = timeout
        self.last_state = last_state
        self.last_error = last_error
        super().__init__(message)


class PartitionUnsupportedError(ProviderError):
    """An explicitly requested capability is not available in this partition."""


class ResourceOperationError(ProviderError):
    """A failed operation on one resource instance, as shown to the user."""

    def __init__(self, operation: str, resource: str, identity: str, cause: Any):
        self.operation = operation
        self.resource = resource
        self.identity = identity
        self.cause = cause
        super().__init__(f"{operation} {resource} ({identity}): {cause}")
