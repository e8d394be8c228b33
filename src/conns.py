"""
AWS Connections - Shared boto3 session and service clients.

Every remote call made by a resource plugin goes through AWSClient.call,
which runs the blocking boto3 method in a worker thread so waits and
retries stay on the event loop.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import boto3

from config import AWSConfig
from partition import DEFAULT_PARTITION

logger = logging.getLogger(__name__)


class AWSClient:
    """
    Holds the boto3 session and lazily created service clients.

    Clients are created once per service and reused; boto3 clients are
    safe to share between threads.
    """

    def __init__(
        self,
        config: Optional[AWSConfig] = None,
        session: Optional[boto3.Session] = None,
    ):
        self.config = config or AWSConfig()
        self.session = session or boto3.Session(
            profile_name=self.config.profile,
            region_name=self.config.region,
        )
        self._clients: Dict[str, Any] = {}
        self._account_id: Optional[str] = None

    @property
    def region(self) -> Optional[str]:
        return self.config.region or self.session.region_name

    @property
    def partition(self) -> str:
        """Partition name, from config or derived from the region."""
        if self.config.partition:
            return self.config.partition
        if not self.region:
            return DEFAULT_PARTITION
        return self.session.get_partition_for_region(self.region)

    def client(self, service: str) -> Any:
        """Return the cached boto3 client for a service."""
        if service not in self._clients:
            kwargs: Dict[str, Any] = {}
            if self.region:
                kwargs["region_name"] = self.region
            if self.config.endpoint_url:
                kwargs["endpoint_url"] = self.config.endpoint_url
            logger.debug(f"Creating {service} client ({kwargs})")
            self._clients[service] = self.session.client(service, **kwargs)
        return self._clients[service]

    async def call(
        self, service: str, operation: str, /, **params: Any
    ) -> Dict[str, Any]:
        """
        Invoke a service operation.

        Args:
            service: boto3 service name ("ecr", "ram", ...).
            operation: Client method name ("describe_repositories", ...).
            **params: Request parameters.

        Returns:
            The response dictionary.

        Raises:
            botocore.exceptions.ClientError: On a remote error. Callers
                classify it at the call site.
        """
        method = getattr(self.client(service), operation)
        logger.debug(f"Calling {service}.{operation}: {params}")
        return await asyncio.to_thread(method, **params)

    async def account_id(self) -> str:
        """Account ID of the caller, looked up once via STS."""
        if self._account_id is None:
            identity = await self.call("sts", "get_caller_identity")
            self._account_id = identity["Account"]
        return self._account_id
