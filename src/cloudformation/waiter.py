"""
Wait for stacks and change sets to reach a terminal status.
"""

import asyncio
import logging
import re
from typing import AbstractSet, Optional, Tuple, Union

from botocore.exceptions import ClientError

from aws_clients import AwsClients

from .statuses import ChangeSetStatus, StackStatus

logger = logging.getLogger(__name__)

CHANGE_SET_ARN = re.compile(r"^arn:aws[\w-]*:cloudformation:[^:]+:[^:]+:changeSet/.+")

Status = Union[StackStatus, ChangeSetStatus]


def is_missing_stack_error(error: ClientError) -> bool:
    """Check whether an error reports that a stack does not exist."""
    return "does not exist" in str(error)


class StatusPoller:
    """Poll the status of a stack or change set until it becomes terminal.

    The wait is unbounded: callers needing a time budget wrap the coroutine in
    ``asyncio.wait_for``.
    """

    def __init__(self, clients: AwsClients, interval: float = 1.0):
        self.clients = clients
        self.interval = interval

    async def _describe_change_set(self, region: str, arn: str) -> Tuple[Status, str]:
        response = await self.clients.call(
            "cloudformation", region, "describe_change_set", ChangeSetName=arn
        )
        return ChangeSetStatus(response["Status"]), response.get("StatusReason", "")

    async def _describe_stack(self, region: str, arn: str) -> Tuple[Status, str]:
        try:
            response = await self.clients.call(
                "cloudformation", region, "describe_stacks", StackName=arn
            )
        except ClientError as e:
            if is_missing_stack_error(e):
                return StackStatus.NEW, ""
            raise
        stacks = response.get("Stacks") or [{}]
        return (
            StackStatus.parse(stacks[0].get("StackStatus")),
            stacks[0].get("StackStatusReason", ""),
        )

    async def wait_for_status(
        self,
        region: str,
        arn: str,
        success: AbstractSet[Status],
        failure: Optional[AbstractSet[Status]] = None,
    ) -> Union[bool, str]:
        """
        Wait until a stack or change set is in one of the supplied statuses.

        Args:
            region: The stack's region
            arn: The name or ARN of the stack, or the ARN of a change set
            success: Statuses ending the wait successfully
            failure: Statuses ending the wait with a failure

        Returns:
            True on success, otherwise the status reason (or the status itself
            when no reason is given)
        """
        failure = failure or frozenset()
        describe = (
            self._describe_change_set
            if CHANGE_SET_ARN.match(arn)
            else self._describe_stack
        )
        while True:
            status, reason = await describe(region, arn)
            if status in success:
                return True
            if status in failure:
                return reason or status.value
            logger.debug(f"Waiting for {arn} (currently {status.value})")
            await asyncio.sleep(self.interval)
