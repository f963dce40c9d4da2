"""
Shared fixtures for stack orchestration tests.
"""

import os
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from aws_clients import AwsClients, RateLimiter

REGION = "us-east-1"
ACCOUNT_ID = "123456789012"


class StubClients(AwsClients):
    """Client factory returning one MagicMock per service, without rate limiting."""

    def __init__(self) -> None:
        super().__init__(RateLimiter(limit=1000, interval=0))
        self.mocks: Dict[str, MagicMock] = {}

    def client(self, service: str, region: str) -> Any:
        if service not in self.mocks:
            self.mocks[service] = MagicMock(name=service)
        return self.mocks[service]

    def __getitem__(self, service: str) -> MagicMock:
        return self.client(service, REGION)


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    """Build a ClientError as botocore raises it."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def missing_stack_error(name: str = "stack") -> ClientError:
    return client_error("ValidationError", f"Stack with id {name} does not exist", "DescribeStacks")


@pytest.fixture
def clients() -> StubClients:
    """Create stub AWS clients."""
    return StubClients()


@pytest.fixture
def aws_credentials(monkeypatch) -> None:
    """Fake credentials so that moto intercepts every call."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)


def write(path: str, content: str) -> str:
    """Write a text file, creating its directory."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path
