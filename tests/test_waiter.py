"""
Tests for stack and change set status polling.
"""

import pytest

from cloudformation.statuses import (
    CHANGE_SET_CREATED,
    CHANGE_SET_FAILED,
    DELETE_FAILED,
    DELETE_SUCCESS,
    DEPLOY_FAILED,
    DEPLOY_SUCCESS,
)
from cloudformation.waiter import StatusPoller
from conftest import REGION, missing_stack_error

CHANGE_SET_ARN = "arn:aws:cloudformation:us-east-1:123456789012:changeSet/app-1/abc"


def stack(status, reason=None):
    description = {"StackName": "app", "StackStatus": status}
    if reason:
        description["StackStatusReason"] = reason
    return {"Stacks": [description]}


class TestStatusPoller:
    """Test waiting for terminal statuses."""

    @pytest.mark.asyncio
    async def test_waits_until_success(self, clients) -> None:
        """Test polling a stack until it is deployed."""
        clients["cloudformation"].describe_stacks.side_effect = [
            stack("CREATE_IN_PROGRESS"),
            stack("CREATE_IN_PROGRESS"),
            stack("CREATE_COMPLETE"),
        ]
        poller = StatusPoller(clients, interval=0)

        result = await poller.wait_for_status(REGION, "app", DEPLOY_SUCCESS, DEPLOY_FAILED)

        assert result is True
        assert clients["cloudformation"].describe_stacks.call_count == 3

    @pytest.mark.asyncio
    async def test_failure_returns_reason(self, clients) -> None:
        """Test that a failed status returns its reason."""
        clients["cloudformation"].describe_stacks.return_value = stack(
            "ROLLBACK_COMPLETE", "The following resource(s) failed to create: [Bucket]."
        )
        poller = StatusPoller(clients, interval=0)

        result = await poller.wait_for_status(REGION, "app", DEPLOY_SUCCESS, DEPLOY_FAILED)

        assert result == "The following resource(s) failed to create: [Bucket]."

    @pytest.mark.asyncio
    async def test_failure_without_reason_returns_status(self, clients) -> None:
        """Test the status code is returned when no reason is given."""
        clients["cloudformation"].describe_stacks.return_value = stack("DELETE_FAILED")
        poller = StatusPoller(clients, interval=0)

        result = await poller.wait_for_status(REGION, "app", DELETE_SUCCESS, DELETE_FAILED)

        assert result == "DELETE_FAILED"

    @pytest.mark.asyncio
    async def test_missing_stack_is_new(self, clients) -> None:
        """Test that a deleted stack counts as deleted."""
        clients["cloudformation"].describe_stacks.side_effect = missing_stack_error()
        poller = StatusPoller(clients, interval=0)

        result = await poller.wait_for_status(REGION, "app", DELETE_SUCCESS, DELETE_FAILED)

        assert result is True

    @pytest.mark.asyncio
    async def test_change_set_arn_is_detected(self, clients) -> None:
        """Test that change set ARNs are described as change sets."""
        cfn = clients["cloudformation"]
        cfn.describe_change_set.side_effect = [
            {"Status": "CREATE_IN_PROGRESS"},
            {"Status": "CREATE_COMPLETE"},
        ]
        poller = StatusPoller(clients, interval=0)

        result = await poller.wait_for_status(
            REGION, CHANGE_SET_ARN, CHANGE_SET_CREATED, CHANGE_SET_FAILED
        )

        assert result is True
        cfn.describe_change_set.assert_called_with(ChangeSetName=CHANGE_SET_ARN)
        cfn.describe_stacks.assert_not_called()
