"""Pytest configuration and fixtures."""

import copy
from typing import Any, Dict, List, Tuple

import pytest
from botocore.exceptions import ClientError

from diagnostics import Diagnostics
from partition import PartitionPolicy
from plugins.registry import reset_registry
from plugins.resources.base import ResourceContext
from tags import DefaultTagsConfig, IgnoreConfig
from waiter import Waiter


def make_client_error(
    code: str, message: str = "", operation: str = "Operation"
) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeAWSClient:
    """
    In-memory stand-in for AWSClient.

    Responses are queued per (service, operation). Each call consumes the
    next queued response except the last, which repeats. A response may be
    a dict (returned), an exception (raised) or a callable (called with the
    request parameters).
    """

    def __init__(
        self,
        partition: str = "aws",
        region: str = "us-east-1",
        account: str = "123456789012",
    ):
        self.partition = partition
        self.region = region
        self.account = account
        self.responses: Dict[Tuple[str, str], List[Any]] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def respond(self, service: str, operation: str, *responses: Any) -> None:
        self.responses.setdefault((service, operation), []).extend(responses)

    def calls_to(self, service: str, operation: str) -> List[Dict[str, Any]]:
        return [p for s, o, p in self.calls if s == service and o == operation]

    def operations(self) -> List[str]:
        return [f"{s}.{o}" for s, o, _ in self.calls]

    async def call(
        self, service: str, operation: str, /, **params: Any
    ) -> Dict[str, Any]:
        self.calls.append((service, operation, copy.deepcopy(params)))
        queue = self.responses.get((service, operation))
        if not queue:
            raise AssertionError(f"unexpected call {service}.{operation}({params})")
        response = queue[0] if len(queue) == 1 else queue.pop(0)
        if callable(response) and not isinstance(response, BaseException):
            response = response(**params)
        if isinstance(response, BaseException):
            raise response
        return copy.deepcopy(response)

    async def account_id(self) -> str:
        return self.account


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_registry():
    """Reset the global plugin registry around every test."""
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def client_error():
    """Factory for botocore ClientErrors with a given code."""
    return make_client_error


@pytest.fixture
def fake_conn():
    return FakeAWSClient()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def waiter(clock):
    """Waiter driven by the fake clock."""
    return Waiter(poll_interval=10.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def ctx(fake_conn, waiter):
    """Resource context on the primary partition with no default tags."""
    return ResourceContext(
        conn=fake_conn,
        waiter=waiter,
        partition=PartitionPolicy(),
        default_tags=DefaultTagsConfig(),
        ignore=IgnoreConfig(),
        propagation_timeout=30.0,
        not_found_checks=3,
        diagnostics=Diagnostics(),
    )


@pytest.fixture
def gov_ctx(fake_conn, waiter):
    """Resource context on a restricted partition with default tags."""
    fake_conn.partition = "aws-us-gov"
    return ResourceContext(
        conn=fake_conn,
        waiter=waiter,
        partition=PartitionPolicy(partition="aws-us-gov"),
        default_tags=DefaultTagsConfig(tags={"env": "prod"}),
        ignore=IgnoreConfig(),
        propagation_timeout=30.0,
        not_found_checks=3,
        diagnostics=Diagnostics(),
    )
