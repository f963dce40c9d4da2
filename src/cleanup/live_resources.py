"""
List the resources of live stacks.
"""

import logging
from typing import List

from aws_clients import AwsClients
from cloudformation.stack_manager import StackManager
from cloudformation.statuses import StackStatus

from .arns import DELETABLE_TYPES, resource_arn

logger = logging.getLogger(__name__)

NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"


async def list_live_resource_arns(
    clients: AwsClients, region: str, stack_name: str
) -> List[str]:
    """
    List the ARNs of a stack's resources, including those of nested stacks.

    Only stack ids and resources of deletable types are listed: they are the
    ones that must never be mistaken for retained resources.

    Args:
        clients: Rate-limited AWS client factory
        region: The stack's region
        stack_name: The name of the stack

    Returns:
        The ARNs, empty if the stack does not exist
    """
    stack_manager = StackManager(clients)
    arns: List[str] = []
    worklist = [stack_name]
    while worklist:
        current = worklist.pop()
        stack = await stack_manager.describe_stack(region, current)
        if stack is None or StackStatus.parse(stack.get("StackStatus")) == StackStatus.NEW:
            continue
        stack_id = stack["StackId"]
        account_id = stack_id.split(":")[4]
        arns.append(stack_id)
        for summary in await stack_manager.list_stack_resources(region, current):
            resource_type = summary["ResourceType"]
            physical_id = summary.get("PhysicalResourceId")
            if not physical_id:
                continue
            if resource_type == NESTED_STACK_TYPE:
                worklist.append(physical_id)
            elif resource_type in DELETABLE_TYPES.values():
                arns.append(resource_arn(resource_type, physical_id, region, account_id))
    return arns
