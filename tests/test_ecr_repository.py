"""Unit tests for the aws_ecr_repository resource plugin."""

import pytest

from errors import TerminalError, TypeMismatchError, WaitTimeoutError
from plugins.resources.ecr_repository import (
    SCHEMA,
    ECRRepositoryPlugin,
    expand_encryption_configuration,
    expand_image_scanning_configuration,
    flatten_encryption_configuration,
)
from resource_data import ResourceData

ARN = "arn:aws:ecr:us-east-1:123456789012:repository/repo"

REPOSITORY = {
    "repositoryName": "repo",
    "repositoryArn": ARN,
    "registryId": "123456789012",
    "repositoryUri": "123456789012.dkr.ecr.us-east-1.amazonaws.com/repo",
    "imageTagMutability": "MUTABLE",
    "imageScanningConfiguration": {"scanOnPush": True},
    "encryptionConfiguration": {"encryptionType": "KMS", "kmsKey": "key-arn"},
}


@pytest.fixture
def plugin():
    return ECRRepositoryPlugin()


def _new(desired):
    return ResourceData(SCHEMA, desired=desired, new_resource=True)


# ==================== Expand/Flatten Tests ====================


class TestBlocks:
    """Tests for nested block conversion."""

    def test_encryption_defaults_type(self):
        assert expand_encryption_configuration([{"kms_key": None}]) == {
            "encryptionType": "AES256"
        }

    def test_encryption_with_key(self):
        assert expand_encryption_configuration(
            [{"encryption_type": "KMS", "kms_key": "key-arn"}]
        ) == {"encryptionType": "KMS", "kmsKey": "key-arn"}

    def test_absent_blocks(self):
        assert expand_encryption_configuration(None) is None
        assert expand_image_scanning_configuration([]) is None
        assert flatten_encryption_configuration(None) == []

    def test_scan_on_push_must_be_bool(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            expand_image_scanning_configuration([{"scan_on_push": "yes"}])
        assert exc_info.value.path.startswith("image_scanning_configuration.0")


# ==================== Lifecycle Tests ====================


@pytest.mark.asyncio
class TestECRRepositoryLifecycle:
    """Tests for create, read, update and delete."""

    async def test_create_with_tags(self, plugin, ctx, fake_conn):
        fake_conn.respond("ecr", "create_repository", {"repository": REPOSITORY})
        fake_conn.respond("ecr", "describe_repositories", {"repositories": [REPOSITORY]})
        fake_conn.respond(
            "ecr",
            "list_tags_for_resource",
            {"tags": [{"Key": "team", "Value": "infra"}]},
        )
        d = _new(
            {
                "name": "repo",
                "image_tag_mutability": "MUTABLE",
                "image_scanning_configuration": [{"scan_on_push": True}],
                "tags": {"team": "infra"},
            }
        )

        await plugin.create(d, ctx)

        (params,) = fake_conn.calls_to("ecr", "create_repository")
        assert params == {
            "repositoryName": "repo",
            "imageTagMutability": "MUTABLE",
            "imageScanningConfiguration": {"scanOnPush": True},
            "tags": [{"Key": "team", "Value": "infra"}],
        }
        state = d.observed_state()
        assert state["id"] == "repo"
        assert state["repository_url"] == REPOSITORY["repositoryUri"]
        assert state["encryption_configuration"] == [
            {"encryption_type": "KMS", "kms_key": "key-arn"}
        ]
        assert state["tags"] == {"team": "infra"}
        assert len(ctx.diagnostics) == 0

    async def test_create_read_retries_until_visible(
        self, plugin, ctx, fake_conn, client_error
    ):
        fake_conn.respond("ecr", "create_repository", {"repository": REPOSITORY})
        fake_conn.respond(
            "ecr",
            "describe_repositories",
            client_error("RepositoryNotFoundException"),
            {"repositories": [REPOSITORY]},
        )
        fake_conn.respond("ecr", "list_tags_for_resource", {"tags": []})

        d = _new({"name": "repo"})
        await plugin.create(d, ctx)

        assert d.id == "repo"
        assert len(fake_conn.calls_to("ecr", "describe_repositories")) == 2

    async def test_new_resource_never_visible(
        self, plugin, ctx, fake_conn, client_error
    ):
        fake_conn.respond("ecr", "create_repository", {"repository": REPOSITORY})
        fake_conn.respond(
            "ecr", "describe_repositories", client_error("RepositoryNotFoundException")
        )

        d = _new({"name": "repo"})
        with pytest.raises(WaitTimeoutError) as exc_info:
            await plugin.create(d, ctx)
        # The propagation allowance alone bounds the new-resource read
        assert exc_info.value.timeout == ctx.propagation_timeout
        # Identity stays assigned so the caller keeps tracking the resource
        assert d.id == "repo"

    async def test_read_mismatched_name_is_gone(self, plugin, ctx, fake_conn):
        fake_conn.respond(
            "ecr",
            "describe_repositories",
            {"repositories": [dict(REPOSITORY, repositoryName="repo-2")]},
        )
        d = ResourceData(SCHEMA, identity="repo")

        await plugin.read(d, ctx)

        assert d.id == ""
        assert d.observed_state() is None

    async def test_read_too_many_results(self, plugin, ctx, fake_conn):
        fake_conn.respond(
            "ecr", "describe_repositories", {"repositories": [REPOSITORY, REPOSITORY]}
        )
        d = ResourceData(SCHEMA, identity="repo")

        with pytest.raises(TerminalError):
            await plugin.read(d, ctx)

    async def test_update_scanning_and_tags(self, plugin, ctx, fake_conn):
        fake_conn.respond("ecr", "put_image_scanning_configuration", {})
        fake_conn.respond("ecr", "untag_resource", {})
        fake_conn.respond("ecr", "tag_resource", {})
        fake_conn.respond("ecr", "describe_repositories", {"repositories": [REPOSITORY]})
        fake_conn.respond(
            "ecr",
            "list_tags_for_resource",
            {"tags": [{"Key": "team", "Value": "platform"}]},
        )
        prior = {
            "name": "repo",
            "arn": ARN,
            "image_tag_mutability": "MUTABLE",
            "image_scanning_configuration": [{"scan_on_push": False}],
            "tags": {"team": "infra", "old": "x"},
            "tags_all": {"team": "infra", "old": "x"},
        }
        d = ResourceData(
            SCHEMA,
            identity="repo",
            prior=prior,
            desired={
                "name": "repo",
                "image_tag_mutability": "MUTABLE",
                "image_scanning_configuration": [{"scan_on_push": True}],
                "tags": {"team": "platform"},
                "tags_all": {"team": "platform"},
            },
        )

        await plugin.update(d, ctx)

        assert fake_conn.operations() == [
            "ecr.put_image_scanning_configuration",
            "ecr.untag_resource",
            "ecr.tag_resource",
            "ecr.describe_repositories",
            "ecr.list_tags_for_resource",
        ]
        assert fake_conn.calls_to("ecr", "untag_resource") == [
            {"resourceArn": ARN, "tagKeys": ["old"]}
        ]
        assert fake_conn.calls_to("ecr", "tag_resource") == [
            {"resourceArn": ARN, "tags": [{"Key": "team", "Value": "platform"}]}
        ]

    async def test_delete_not_empty(self, plugin, ctx, fake_conn, client_error):
        fake_conn.respond(
            "ecr",
            "delete_repository",
            client_error("RepositoryNotEmptyException", "has images"),
        )
        d = ResourceData(SCHEMA, identity="repo", prior={"name": "repo"})

        with pytest.raises(TerminalError, match="consider using force_delete"):
            await plugin.delete(d, ctx)

    async def test_delete_force(self, plugin, ctx, fake_conn, client_error):
        fake_conn.respond("ecr", "delete_repository", {})
        fake_conn.respond(
            "ecr", "describe_repositories", client_error("RepositoryNotFoundException")
        )
        d = ResourceData(
            SCHEMA,
            identity="repo",
            prior={"name": "repo", "force_delete": True, "registry_id": "1234"},
            desired={"name": "repo", "force_delete": True},
        )

        await plugin.delete(d, ctx)

        assert fake_conn.calls_to("ecr", "delete_repository") == [
            {"repositoryName": "repo", "force": True, "registryId": "1234"}
        ]
