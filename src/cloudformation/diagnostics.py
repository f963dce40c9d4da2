"""
CloudFormation stack diagnostics and troubleshooting.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from aws_clients import AwsClients

from .statuses import STABLE, StackStatus

logger = logging.getLogger(__name__)

FAILED_STATUS = re.compile(r"[A-Z]+_FAILED$")
CANCELLED_REASON = "Resource creation cancelled"
NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"


@dataclass
class FailedResource:
    """A resource that failed during a deployment, with nested failures for stacks."""

    logical_id: str
    status: str = ""
    reason: str = ""
    timestamp: Optional[datetime] = None
    resources: Dict[str, "FailedResource"] = field(default_factory=dict)


def _is_stable(status: str) -> bool:
    try:
        return StackStatus(status) in STABLE
    except ValueError:
        return False


class StackDiagnostics:
    """Diagnose CloudFormation stack deployment failures."""

    def __init__(self, clients: AwsClients):
        """Initialize diagnostics with the AWS client factory."""
        self.clients = clients

    async def _collect_failed_events(
        self,
        region: str,
        stack_name: str,
        parent_stack_id: Optional[str],
        newest: Optional[datetime],
        oldest: Optional[datetime],
    ) -> Tuple[List[Dict[str, Any]], Optional[datetime], Optional[datetime]]:
        """Collect the failure events of the last operation on a stack.

        Events are returned newest first, with the boundaries of the operation:
        the most recent event and the previous event leaving the stack stable.
        """
        events: List[Dict[str, Any]] = []
        kwargs = {"StackName": stack_name}
        while True:
            response = await self.clients.call(
                "cloudformation", region, "describe_stack_events", **kwargs
            )
            page = response.get("StackEvents", [])
            if not page:
                return events, newest, oldest
            if newest is None:
                newest = page[0]["Timestamp"]
            for event in page:
                if (
                    event.get("StackId") == (parent_stack_id or event.get("PhysicalResourceId"))
                    and _is_stable(event.get("ResourceStatus", ""))
                    and event["Timestamp"] < newest
                ):
                    oldest = event["Timestamp"]
                    break
            for event in page:
                if (
                    event["Timestamp"] <= newest
                    and (oldest is None or event["Timestamp"] > oldest)
                    and FAILED_STATUS.search(event.get("ResourceStatus", ""))
                    and event.get("ResourceStatusReason") != CANCELLED_REASON
                ):
                    events.append(event)
            next_token = response.get("NextToken")
            if not next_token or (oldest is not None and page[-1]["Timestamp"] <= oldest):
                return events, newest, oldest
            kwargs["NextToken"] = next_token

    async def get_failures(self, region: str, stack_name: str) -> FailedResource:
        """
        Build the tree of resources that failed in the last stack operation.

        Nested stacks are walked breadth first with an explicit worklist.

        Args:
            region: The stack's region
            stack_name: The name or id of the stack

        Returns:
            The root of the failure tree
        """
        root = FailedResource(logical_id=stack_name)
        # (node, stack to inspect, root stack id, newest, oldest)
        worklist = [(root, stack_name, None, None, None)]
        while worklist:
            node, name, parent_id, newest, oldest = worklist.pop(0)
            events, newest, oldest = await self._collect_failed_events(
                region, name, parent_id, newest, oldest
            )
            for event in events:
                stack_id = event.get("StackId")
                physical_id = event.get("PhysicalResourceId")
                logical_id = event["LogicalResourceId"]
                if stack_id == physical_id or logical_id in node.resources:
                    continue
                child = FailedResource(
                    logical_id=logical_id,
                    status=event.get("ResourceStatus", ""),
                    reason=event.get("ResourceStatusReason", ""),
                    timestamp=event["Timestamp"],
                )
                node.resources[logical_id] = child
                if event.get("ResourceType") == NESTED_STACK_TYPE and physical_id:
                    worklist.append(
                        (child, physical_id, parent_id or stack_id, newest, oldest)
                    )
        return root

    def render(self, failure: FailedResource, indentation: int = 1) -> List[str]:
        """Render a failure tree as indented lines."""
        lines = []
        pending = [(failure, indentation)]
        while pending:
            node, depth = pending.pop()
            if node.status:
                line = f"{' ' * depth}✗ {node.logical_id} {node.status}"
                if node.reason:
                    line += f": {node.reason}"
                lines.append(line)
            children = list(node.resources.values())
            pending.extend((child, depth + 2) for child in reversed(children))
        return lines

    async def report(self, region: str, stack_name: str) -> FailedResource:
        """Retrieve the failures of a stack and log them."""
        failures = await self.get_failures(region, stack_name)
        for line in self.render(failures):
            logger.error(line)
        return failures
