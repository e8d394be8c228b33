"""
AWS Error Inspection - Helpers for botocore ClientError codes and messages.

Resource plugins use these at the remote-call boundary to decide which
error kind a failure belongs to.
"""

from typing import Optional

from botocore.exceptions import ClientError

from errors import ProviderError, RetryableError, TerminalError

# Codes that indicate a transient service-side condition
RETRYABLE_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "InternalFailure",
        "InternalServerError",
    }
)


def client_error(err: Optional[BaseException]) -> Optional[ClientError]:
    """Find the ClientError behind an error, following explicit chaining."""
    while err is not None and not isinstance(err, ClientError):
        err = err.__cause__
    return err


def error_code(err: Optional[BaseException]) -> str:
    """Return the AWS error code behind an error, or '' if there is none."""
    found = client_error(err)
    if found is None:
        return ""
    return found.response.get("Error", {}).get("Code", "")


def error_message(err: Optional[BaseException]) -> str:
    """Return the AWS error message behind an error, or '' if there is none."""
    found = client_error(err)
    if found is None:
        return ""
    return found.response.get("Error", {}).get("Message", "")


def error_code_equals(err: Optional[BaseException], *codes: str) -> bool:
    """Check whether an error carries one of the given AWS error codes."""
    code = error_code(err)
    return bool(code) and code in codes


def error_message_contains(
    err: Optional[BaseException], code: str, needle: str
) -> bool:
    """Check an error's code and whether its message contains a substring."""
    return error_code_equals(err, code) and needle in error_message(err)


def classify(err: ClientError) -> ProviderError:
    """
    Classify a raw ClientError as retryable or terminal.

    The returned error keeps the remote message unmodified.

    Args:
        err: The botocore ClientError.

    Returns:
        A RetryableError for throttling and transient service codes,
        otherwise a TerminalError.
    """
    if error_code(err) in RETRYABLE_ERROR_CODES:
        return RetryableError(str(err))
    return TerminalError(str(err))
