"""
CloudFormation stack management operations.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from botocore.exceptions import ClientError

from aws_clients import AwsClients

from .statuses import DELETE_FAILED, DELETE_SUCCESS, StackStatus
from .waiter import StatusPoller, is_missing_stack_error

logger = logging.getLogger(__name__)


class StackManager:
    """Manage CloudFormation stack operations."""

    def __init__(self, clients: AwsClients, poller: Optional[StatusPoller] = None):
        """
        Initialize stack manager.

        Args:
            clients: Rate-limited AWS client factory
            poller: Status poller used to wait for stack operations
        """
        self.clients = clients
        self.poller = poller or StatusPoller(clients)

    async def _call(self, region: str, method: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.clients.call("cloudformation", region, method, **kwargs)

    async def describe_stack(self, region: str, stack_name: str) -> Optional[Dict[str, Any]]:
        """Describe a stack, or return None if it does not exist."""
        try:
            response = await self._call(region, "describe_stacks", StackName=stack_name)
        except ClientError as e:
            if is_missing_stack_error(e):
                return None
            raise
        stacks = response.get("Stacks") or []
        return stacks[0] if stacks else None

    async def get_stack_status(self, region: str, stack_name: str) -> StackStatus:
        """Get current stack status, NEW if the stack does not exist."""
        stack = await self.describe_stack(region, stack_name)
        return StackStatus.parse(stack["StackStatus"] if stack else None)

    async def get_stack_outputs(self, region: str, stack_name: str) -> Dict[str, str]:
        """Get outputs from a CloudFormation stack."""
        stack = await self.describe_stack(region, stack_name)
        outputs = {}
        for output in (stack or {}).get("Outputs", []):
            outputs[output["OutputKey"]] = output["OutputValue"]
        return outputs

    async def validate_template(self, region: str, template_path: str) -> Dict[str, Any]:
        """Validate a local CloudFormation template."""
        with open(template_path, "r", encoding="utf-8") as f:
            body = f.read()
        try:
            return await self._call(region, "validate_template", TemplateBody=body)
        except ClientError:
            logger.error(f"Failed to validate template {template_path}")
            raise

    async def get_template_body(
        self, region: str, stack_name: str, stage: str = "Original"
    ) -> Union[str, Dict[str, Any]]:
        """Get the template of a deployed stack (Original or Processed stage)."""
        response = await self._call(
            region, "get_template", StackName=stack_name, TemplateStage=stage
        )
        return response["TemplateBody"]

    async def list_stack_resources(self, region: str, stack_name: str) -> List[Dict[str, Any]]:
        """List the resource summaries of a stack, across all pages."""
        pages = await self.clients.paginate(
            "cloudformation", region, "list_stack_resources", StackName=stack_name
        )
        return [
            summary for page in pages for summary in page.get("StackResourceSummaries", [])
        ]

    async def execute_change_set(self, region: str, change_set_arn: str) -> None:
        """Execute a change set."""
        await self._call(region, "execute_change_set", ChangeSetName=change_set_arn)

    async def delete_stack(self, region: str, stack_name: str) -> Union[bool, str]:
        """
        Delete a stack (not its retained resources) and wait for completion.

        Returns:
            True if the stack was deleted, otherwise the failure reason
        """
        stack = await self.describe_stack(region, stack_name)
        if stack is None:
            logger.info(f"Stack {stack_name} does not exist")
            return True
        # Address the stack by id so it can still be described once deleted
        stack_id = stack["StackId"]
        await self._call(region, "delete_stack", StackName=stack_id)
        return await self.poller.wait_for_status(
            region, stack_id, success=DELETE_SUCCESS, failure=DELETE_FAILED
        )
