"""
Eventual-Consistency Finder - Locate exactly one remote record.

Wraps a describe/list call that may return zero, one or many records and
turns the result into a single record or a classified error. The finder
never retries; callers wrap it in a Waiter when propagation lag is expected.
"""

import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from botocore.exceptions import ClientError

import awserr
from errors import (
    EmptyResultError,
    NotFoundError,
    ProviderError,
    TooManyResultsError,
)

logger = logging.getLogger(__name__)


async def find_single(
    call: Callable[[], Awaitable[Optional[Sequence[Any]]]],
    *,
    request: Any = None,
    not_found_codes: Iterable[str] = (),
    match: Optional[Callable[[Any], bool]] = None,
    description: str = "resource",
) -> Any:
    """
    Run a lookup and reduce its result to exactly one record.

    Args:
        call: Coroutine function issuing the remote call and returning the
            list of records it found.
        request: The request parameters, kept on errors for diagnostics.
        not_found_codes: Remote error codes meaning the resource is absent.
        match: Exact secondary check on the single returned record. Remote
            filters are sometimes prefix or fuzzy matches.
        description: Human-readable name used in log messages.

    Returns:
        The single matching record.

    Raises:
        NotFoundError: The remote call signalled absence, or the single
            record failed the exact-match check.
        EmptyResultError: No records were returned.
        TooManyResultsError: More than one record was returned.
        RetryableError: A transient remote failure.
        TerminalError: Any other remote failure.
    """
    not_found_codes = tuple(not_found_codes)

    try:
        records = await call()
    except (ClientError, ProviderError) as e:
        if not_found_codes and awserr.error_code_equals(e, *not_found_codes):
            raise NotFoundError(
                f"couldn't find {description}: {e}",
                last_request=request,
                last_error=e,
            ) from e
        if isinstance(e, ProviderError):
            raise
        raise awserr.classify(e) from e

    if not records:
        raise EmptyResultError(last_request=request)

    if len(records) > 1:
        raise TooManyResultsError(len(records), last_request=request)

    if records[0] is None:
        raise EmptyResultError(last_request=request)

    record = records[0]

    if match is not None and not match(record):
        # Eventual consistency check.
        logger.debug(f"Lookup for {description} returned a non-matching record")
        raise NotFoundError(
            f"couldn't find {description}: returned record does not match",
            last_request=request,
        )

    return record
