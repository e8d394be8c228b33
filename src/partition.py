"""
Partition Capability Degradation - Fall back when a partition lacks an operation.

Some partitions reject parts of a request (tags on a create call, tag
listing) with a recognizable error. These helpers strip the capability and
retry, defer it to a separate call, or turn the failure into a warning when
the capability only came from provider defaults.

An explicitly requested capability is never dropped silently.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

from botocore.exceptions import ClientError

import awserr
from diagnostics import Diagnostics
from errors import PartitionUnsupportedError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_PARTITION = "aws"

DEFAULT_PRIMARY_PARTITIONS = frozenset({DEFAULT_PARTITION})

# Error codes that mean "operation not available" whatever the message
DEFAULT_UNSUPPORTED_ERROR_CODES = frozenset(
    {
        "UnsupportedOperation",
        "UnsupportedOperationException",
        "UnknownOperationException",
    }
)

# Generic codes only count as unsupported with a matching message
DEFAULT_UNSUPPORTED_ERROR_MESSAGES: Tuple[Tuple[str, str], ...] = (
    ("InvalidParameterException", "Partition"),
    ("InvalidParameterValue", "not supported"),
    ("ValidationException", "not supported"),
    ("ValidationError", "not support tagging"),
)


@dataclass(frozen=True)
class PartitionPolicy:
    """
    Decides whether an error means "not supported in this partition".

    An error only counts as unsupported outside the primary partitions.
    It must carry one of the unsupported error codes, or one of the
    (code, message substring) signatures. A custom predicate, when given,
    replaces both checks; it is called with the partition name and the
    error.
    """

    partition: str = DEFAULT_PARTITION
    primary_partitions: FrozenSet[str] = DEFAULT_PRIMARY_PARTITIONS
    unsupported_error_codes: FrozenSet[str] = DEFAULT_UNSUPPORTED_ERROR_CODES
    unsupported_error_messages: Tuple[
        Tuple[str, str], ...
    ] = DEFAULT_UNSUPPORTED_ERROR_MESSAGES
    predicate: Optional[Callable[[str, BaseException], bool]] = None

    def is_primary(self) -> bool:
        return self.partition in self.primary_partitions

    def is_unsupported(self, err: Optional[BaseException]) -> bool:
        if err is None or self.is_primary():
            return False
        if self.predicate is not None:
            return bool(self.predicate(self.partition, err))
        if awserr.error_code(err) in self.unsupported_error_codes:
            return True
        return any(
            awserr.error_message_contains(err, code, needle)
            for code, needle in self.unsupported_error_messages
        )


def _reraise(err: BaseException) -> None:
    """Raise a failure as a classified ProviderError."""
    if isinstance(err, ProviderError):
        raise err
    raise awserr.classify(err) from err


async def call_with_capability_fallback(
    call: Callable[..., Awaitable[Any]],
    params: Dict[str, Any],
    capability: str,
    policy: PartitionPolicy,
    diagnostics: Diagnostics,
    *,
    description: str = "resource",
    action: str = "creating",
) -> Tuple[Any, bool]:
    """
    Issue a mutating call, retrying without an optional capability.

    Args:
        call: Coroutine function taking the request parameters as keywords.
        params: Request parameters, including the optional capability.
        capability: Key of the optional parameter (for example "tags").
        policy: Partition policy used to recognize unsupported errors.
        diagnostics: Receives a warning when the capability is stripped.
        description: Human-readable subject for messages.
        action: Verb phrase for messages ("creating", "describing").

    Returns:
        Tuple of (call output, deferred). ``deferred`` is True when the call
        only succeeded without the capability, which must then be applied
        with a separate call.

    Raises:
        RetryableError: Transient failure of the call.
        TerminalError: Any other failure.
    """
    try:
        return await call(**params), False
    except (ClientError, ProviderError) as e:
        if not params.get(capability) or not policy.is_unsupported(e):
            _reraise(e)
        logger.warning(
            f"failed {action} {description} with {capability}: {e}. "
            f"Retrying without {capability}."
        )
        diagnostics.append_warning(
            f"{action} {description} without {capability}",
            f"partition {policy.partition} rejected {capability}: {e}",
        )

    stripped = {k: v for k, v in params.items() if k != capability}
    try:
        return await call(**stripped), True
    except (ClientError, ProviderError) as e:
        _reraise(e)


async def apply_deferred_tags(
    tag_call: Callable[[Dict[str, str]], Awaitable[Any]],
    tags: Dict[str, str],
    *,
    explicit: bool,
    policy: PartitionPolicy,
    diagnostics: Diagnostics,
    description: str = "resource",
) -> bool:
    """
    Apply tags that could not be sent with the create call.

    Args:
        tag_call: Coroutine function tagging the new resource.
        tags: Effective tags to apply.
        explicit: Whether the resource itself configures tags, as opposed
            to tags that only come from provider defaults.
        policy: Partition policy used to recognize unsupported errors.
        diagnostics: Receives a warning when default-only tags are dropped.
        description: Human-readable subject for messages.

    Returns:
        True if the tags were applied.

    Raises:
        PartitionUnsupportedError: The partition rejected explicitly
            configured tags.
        RetryableError: Transient failure of the tag call.
        TerminalError: Any other failure.
    """
    if not tags:
        return False

    try:
        await tag_call(tags)
    except (ClientError, ProviderError) as e:
        if not policy.is_unsupported(e):
            _reraise(e)
        if explicit:
            raise PartitionUnsupportedError(
                f"adding tags after create for {description}: {e}"
            ) from e
        logger.warning(f"failed adding tags after create for {description}: {e}")
        diagnostics.append_warning(
            f"default tags not applied to {description}",
            f"partition {policy.partition} does not support tagging: {e}",
        )
        return False

    return True


async def tolerate_unsupported(
    call: Callable[[], Awaitable[Any]],
    *,
    policy: PartitionPolicy,
    diagnostics: Diagnostics,
    summary: str,
) -> Tuple[Any, bool]:
    """
    Run a tag read or update, downgrading partition rejections to a warning.

    Returns:
        Tuple of (result, supported). When ``supported`` is False the step
        was skipped and a warning was recorded.
    """
    try:
        return await call(), True
    except (ClientError, ProviderError) as e:
        if not policy.is_unsupported(e):
            _reraise(e)
        logger.warning(f"{summary}: {e}")
        diagnostics.append_warning(summary, str(e))
        return None, False
