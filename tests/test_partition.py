"""Unit tests for partition.py - Partition capability degradation."""

from unittest.mock import AsyncMock

import pytest

from diagnostics import Diagnostics
from errors import PartitionUnsupportedError, RetryableError, TerminalError
from partition import (
    PartitionPolicy,
    apply_deferred_tags,
    call_with_capability_fallback,
    tolerate_unsupported,
)

GOV = PartitionPolicy(partition="aws-us-gov")


class TestPartitionPolicy:
    """Tests for recognizing unsupported-capability errors."""

    def test_primary_partition_never_unsupported(self, client_error):
        policy = PartitionPolicy(partition="aws")
        assert policy.is_primary()
        assert not policy.is_unsupported(client_error("UnsupportedOperation"))

    def test_known_code_on_other_partition(self, client_error):
        assert GOV.is_unsupported(client_error("UnknownOperationException"))
        assert GOV.is_unsupported(client_error("UnsupportedOperation"))

    def test_generic_code_needs_matching_message(self, client_error):
        assert GOV.is_unsupported(
            client_error("ValidationException", "Tags are not supported")
        )
        assert GOV.is_unsupported(
            client_error("InvalidParameterException", "Partition aws-iso is invalid")
        )
        assert not GOV.is_unsupported(
            client_error(
                "ValidationException", "Tag value exceeds maximum length of 256"
            )
        )
        assert not GOV.is_unsupported(client_error("InvalidParameterException"))
        assert not GOV.is_unsupported(client_error("AccessDeniedException"))

    def test_custom_codes_and_messages(self, client_error):
        policy = PartitionPolicy(
            partition="aws-iso",
            unsupported_error_codes=frozenset({"AccessDeniedException"}),
            unsupported_error_messages=(("BadRequest", "tagging"),),
        )
        assert policy.is_unsupported(client_error("AccessDeniedException"))
        assert policy.is_unsupported(client_error("BadRequest", "no tagging here"))
        assert not policy.is_unsupported(client_error("UnsupportedOperation"))

    def test_unrelated_code(self, client_error):
        assert not GOV.is_unsupported(client_error("RepositoryAlreadyExistsException"))

    def test_none_error(self):
        assert not GOV.is_unsupported(None)

    def test_classified_error_uses_cause(self, client_error):
        raw = client_error("UnsupportedOperation")
        classified = TerminalError(str(raw))
        classified.__cause__ = raw
        assert GOV.is_unsupported(classified)

    def test_custom_primary_partitions(self, client_error):
        policy = PartitionPolicy(
            partition="aws-cn", primary_partitions=frozenset({"aws", "aws-cn"})
        )
        assert not policy.is_unsupported(client_error("UnsupportedOperation"))

    def test_custom_predicate(self, client_error):
        policy = PartitionPolicy(
            partition="aws-iso",
            predicate=lambda partition, err: partition.startswith("aws-iso"),
        )
        assert policy.is_unsupported(client_error("AnythingAtAll"))


@pytest.mark.asyncio
class TestCallWithCapabilityFallback:
    """Tests for stripping an optional capability from a call."""

    async def test_success_first_try(self):
        call = AsyncMock(return_value={"id": "1"})
        diags = Diagnostics()
        output, deferred = await call_with_capability_fallback(
            call, {"name": "x", "tags": [{"Key": "a"}]}, "tags", GOV, diags
        )
        assert output == {"id": "1"}
        assert deferred is False
        assert len(diags) == 0
        call.assert_awaited_once_with(name="x", tags=[{"Key": "a"}])

    async def test_retries_without_capability(self, client_error):
        call = AsyncMock(
            side_effect=[
                client_error("ValidationException", "Tags are not supported"),
                {"id": "1"},
            ]
        )
        diags = Diagnostics()
        output, deferred = await call_with_capability_fallback(
            call,
            {"name": "x", "tags": [{"Key": "a"}]},
            "tags",
            GOV,
            diags,
            description="ECR Repository (x)",
        )
        assert output == {"id": "1"}
        assert deferred is True
        assert call.await_args_list[1].kwargs == {"name": "x"}
        assert len(diags.warnings) == 1
        assert diags.warnings[0].summary == "creating ECR Repository (x) without tags"
        assert not diags.has_error()

    async def test_primary_partition_error_is_raised(self, client_error):
        call = AsyncMock(side_effect=client_error("ValidationException", "bad name"))
        with pytest.raises(TerminalError) as exc_info:
            await call_with_capability_fallback(
                call, {"tags": [1]}, "tags", PartitionPolicy(), Diagnostics()
            )
        assert "bad name" in str(exc_info.value)
        assert call.await_count == 1

    async def test_no_capability_no_retry(self, client_error):
        call = AsyncMock(side_effect=client_error("ValidationException"))
        with pytest.raises(TerminalError):
            await call_with_capability_fallback(
                call, {"name": "x"}, "tags", GOV, Diagnostics()
            )
        assert call.await_count == 1

    async def test_retry_failure_is_classified(self, client_error):
        call = AsyncMock(
            side_effect=[
                client_error("ValidationException", "Tags are not supported"),
                client_error("Throttling"),
            ]
        )
        with pytest.raises(RetryableError):
            await call_with_capability_fallback(
                call, {"tags": [1]}, "tags", GOV, Diagnostics()
            )

    async def test_provider_errors_pass_through(self):
        err = RetryableError("busy")
        call = AsyncMock(side_effect=err)
        with pytest.raises(RetryableError) as exc_info:
            await call_with_capability_fallback(
                call, {"tags": [1]}, "tags", GOV, Diagnostics()
            )
        assert exc_info.value is err


@pytest.mark.asyncio
class TestApplyDeferredTags:
    """Tests for tagging after a create call that could not carry tags."""

    async def test_applies_tags(self):
        tag_call = AsyncMock()
        diags = Diagnostics()
        applied = await apply_deferred_tags(
            tag_call, {"env": "prod"}, explicit=True, policy=GOV, diagnostics=diags
        )
        assert applied is True
        tag_call.assert_awaited_once_with({"env": "prod"})
        assert len(diags) == 0

    async def test_no_tags_no_call(self):
        tag_call = AsyncMock()
        applied = await apply_deferred_tags(
            tag_call, {}, explicit=False, policy=GOV, diagnostics=Diagnostics()
        )
        assert applied is False
        tag_call.assert_not_awaited()

    async def test_default_only_tags_downgraded_to_warning(self, client_error):
        tag_call = AsyncMock(side_effect=client_error("UnsupportedOperation"))
        diags = Diagnostics()
        applied = await apply_deferred_tags(
            tag_call,
            {"env": "prod"},
            explicit=False,
            policy=GOV,
            diagnostics=diags,
            description="volume",
        )
        assert applied is False
        assert [w.summary for w in diags.warnings] == [
            "default tags not applied to volume"
        ]

    async def test_explicit_tags_rejection_is_an_error(self, client_error):
        tag_call = AsyncMock(side_effect=client_error("UnsupportedOperation"))
        with pytest.raises(PartitionUnsupportedError):
            await apply_deferred_tags(
                tag_call,
                {"team": "infra"},
                explicit=True,
                policy=GOV,
                diagnostics=Diagnostics(),
            )

    async def test_explicit_tags_validation_error_is_not_unsupported(
        self, client_error
    ):
        tag_call = AsyncMock(
            side_effect=client_error(
                "ValidationException", "Tag value exceeds maximum length of 256"
            )
        )
        with pytest.raises(TerminalError) as exc_info:
            await apply_deferred_tags(
                tag_call,
                {"team": "x" * 300},
                explicit=True,
                policy=GOV,
                diagnostics=Diagnostics(),
            )
        assert "maximum length" in str(exc_info.value)

    async def test_other_errors_raised(self, client_error):
        tag_call = AsyncMock(side_effect=client_error("InvalidParameterValue"))
        with pytest.raises(TerminalError):
            await apply_deferred_tags(
                tag_call,
                {"env": "prod"},
                explicit=False,
                policy=GOV,
                diagnostics=Diagnostics(),
            )


@pytest.mark.asyncio
class TestTolerateUnsupported:
    """Tests for downgrading unsupported tag reads and writes."""

    async def test_supported(self):
        result, supported = await tolerate_unsupported(
            AsyncMock(return_value={"a": "1"}),
            policy=GOV,
            diagnostics=Diagnostics(),
            summary="listing tags",
        )
        assert result == {"a": "1"}
        assert supported is True

    async def test_unsupported_becomes_warning(self, client_error):
        diags = Diagnostics()
        result, supported = await tolerate_unsupported(
            AsyncMock(side_effect=client_error("UnknownOperationException")),
            policy=GOV,
            diagnostics=diags,
            summary="listing tags not supported",
        )
        assert result is None
        assert supported is False
        assert diags.warnings[0].summary == "listing tags not supported"

    async def test_primary_partition_raises(self, client_error):
        with pytest.raises(TerminalError):
            await tolerate_unsupported(
                AsyncMock(side_effect=client_error("UnknownOperationException")),
                policy=PartitionPolicy(),
                diagnostics=Diagnostics(),
                summary="listing tags",
            )
