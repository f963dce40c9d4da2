"""
boto3 client factory whose calls all go through the shared rate limiter.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import boto3
import botocore.session

from .throttle import RateLimiter

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


class AwsClients:
    """Create AWS clients per region and execute their calls under the rate limit."""

    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        profile: Optional[str] = None,
        credential_timeout: float = 5.0,
    ):
        """
        Initialize the client factory.

        Args:
            limiter: Rate limiter shared by every call
            profile: AWS profile to use
            credential_timeout: Timeout in seconds to fetch credentials from
                the instance metadata service
        """
        self.limiter = limiter or RateLimiter()
        self.profile = profile
        self.credential_timeout = credential_timeout
        self._sessions: Dict[str, boto3.Session] = {}
        self._clients: Dict[Tuple[str, str], Any] = {}

    def _create_session(self, region: str) -> boto3.Session:
        """Create AWS session with appropriate credentials."""
        # The default 1s metadata timeout is often too short on EC2 roles
        core_session = botocore.session.get_session()
        core_session.set_config_variable(
            "metadata_service_timeout", self.credential_timeout
        )
        session_args = {"region_name": region, "botocore_session": core_session}
        if self.profile:
            session_args["profile_name"] = self.profile
        return boto3.Session(**session_args)

    def client(self, service: str, region: str) -> Any:
        """Get or create AWS client for a service in a region."""
        if (service, region) not in self._clients:
            if region not in self._sessions:
                self._sessions[region] = self._create_session(region)
            self._clients[(service, region)] = self._sessions[region].client(service)
        return self._clients[(service, region)]

    async def call(self, service: str, region: str, method: str, **kwargs: Any) -> Any:
        """Call a client method through the rate limiter."""
        client = self.client(service, region)
        return await self.limiter.call(getattr(client, method), **kwargs)

    async def paginate(
        self, service: str, region: str, method: str, **kwargs: Any
    ) -> List[Dict[str, Any]]:
        """Retrieve all the pages of a paginated operation.

        Each page is one API call, so each is fetched through the limiter.
        """
        client = self.client(service, region)
        pages = iter(client.get_paginator(method).paginate(**kwargs))
        results = []
        while True:
            page = await self.limiter.call(next, pages, _EXHAUSTED)
            if page is _EXHAUSTED:
                return results
            results.append(page)
