"""
CloudFormation change set creation and cleanup.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from botocore.exceptions import ClientError

from aws_clients import AwsClients

from .stack_manager import StackManager
from .statuses import CHANGE_SET_CREATED, CHANGE_SET_FAILED, IS_NEW
from .waiter import StatusPoller

logger = logging.getLogger(__name__)

MAX_RETRIES = 3

NO_CHANGES_PATTERNS = (
    "The submitted information didn't contain changes",
    "No updates are to be performed.",
)

MACRO_CAPABILITIES = ("CAPABILITY_AUTO_EXPAND", "CAPABILITY_IAM")


@dataclass
class ChangeSetResult:
    """Outcome of a change set creation."""

    change_set_arn: str
    has_changes: bool


def is_change_set_limit_error(error: ClientError) -> bool:
    """Check whether the stack has too many change sets."""
    err = error.response.get("Error", {})
    return err.get("Code") == "LimitExceededException" and err.get(
        "Message", ""
    ).startswith("ChangeSet limit exceeded")


def format_parameters(
    parameters: Mapping[str, Any], declared: List[str]
) -> List[Dict[str, Any]]:
    """
    Convert stack parameters to the change set format.

    Mappings are used as the parameter entry (e.g. ``{"UsePreviousValue": True}``),
    lists are joined with commas and other non-string values are JSON encoded.
    Parameters not declared by the template are dropped.
    """
    formatted = []
    for key, value in parameters.items():
        if key not in declared:
            continue
        if isinstance(value, Mapping):
            entry = {"ParameterKey": key, **value}
        elif isinstance(value, str):
            entry = {"ParameterKey": key, "ParameterValue": value}
        elif isinstance(value, (list, tuple)):
            entry = {"ParameterKey": key, "ParameterValue": ",".join(map(str, value))}
        else:
            entry = {"ParameterKey": key, "ParameterValue": json.dumps(value)}
        formatted.append(entry)
    return formatted


def change_set_name(stack_name: str) -> str:
    """Build a unique change set name matching [a-zA-Z][-a-zA-Z0-9]*."""
    prefix = re.sub(r"[^-a-zA-Z0-9]", "", stack_name)[:100]
    return f"{prefix}-{int(time.time() * 1000)}"


class ChangeSetManager:
    """Create change sets and classify their outcome."""

    def __init__(
        self,
        clients: AwsClients,
        stack_manager: Optional[StackManager] = None,
        poller: Optional[StatusPoller] = None,
        max_retries: int = MAX_RETRIES,
    ):
        self.clients = clients
        self.poller = poller or StatusPoller(clients)
        self.stack_manager = stack_manager or StackManager(clients, self.poller)
        self.max_retries = max_retries

    async def _call(self, region: str, method: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.clients.call("cloudformation", region, method, **kwargs)

    async def get_change_set_args(
        self,
        region: str,
        stack_name: str,
        template_location: str,
        parameters: Optional[Mapping[str, Any]] = None,
        tags: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Build the arguments of a change set creation request.

        Args:
            region: The stack's region
            stack_name: The name of the stack
            template_location: Local template path or packaged template URL
            parameters: Stack parameters
            tags: Stack tags

        Returns:
            Keyword arguments for ``create_change_set``
        """
        if template_location.startswith("http"):
            template_arg = {"TemplateURL": template_location}
        else:
            with open(template_location, "r", encoding="utf-8") as f:
                template_arg = {"TemplateBody": f.read()}

        summary = await self._call(region, "get_template_summary", **template_arg)
        capabilities = list(summary.get("Capabilities", []))
        if summary.get("DeclaredTransforms"):
            for capability in MACRO_CAPABILITIES:
                if capability not in capabilities:
                    capabilities.append(capability)
        declared = [p["ParameterKey"] for p in summary.get("Parameters", [])]

        status = await self.stack_manager.get_stack_status(region, stack_name)
        args = {
            "ChangeSetName": change_set_name(stack_name),
            "StackName": stack_name,
            "Capabilities": capabilities,
            "ChangeSetType": "CREATE" if status in IS_NEW else "UPDATE",
            "Parameters": format_parameters(parameters or {}, declared),
            **template_arg,
        }
        if tags:
            args["Tags"] = [{"Key": k, "Value": v} for k, v in tags.items()]
        return args

    async def create_change_set(
        self,
        region: str,
        stack_name: str,
        template_location: str,
        parameters: Optional[Mapping[str, Any]] = None,
        tags: Optional[Mapping[str, str]] = None,
    ) -> ChangeSetResult:
        """
        Create a change set and wait until it is ready.

        When the stack has reached its change set quota, its change sets are
        deleted and the creation is retried, up to ``max_retries`` times.

        Returns:
            The change set ARN and whether it contains any changes

        Raises:
            ClientError: If the creation fails or retries are exhausted
            RuntimeError: If the change set could not be created
        """
        attempts = 0
        while True:
            args = await self.get_change_set_args(
                region, stack_name, template_location, parameters, tags
            )
            try:
                response = await self._call(region, "create_change_set", **args)
                break
            except ClientError as e:
                if not is_change_set_limit_error(e):
                    raise
                logger.warning(e.response["Error"]["Message"])
                await self.delete_change_sets(region, stack_name)
                if attempts >= self.max_retries:
                    raise
                attempts += 1

        change_set_arn = response["Id"]
        result = await self.poller.wait_for_status(
            region, change_set_arn, success=CHANGE_SET_CREATED, failure=CHANGE_SET_FAILED
        )
        if result is True:
            return ChangeSetResult(change_set_arn, has_changes=True)
        if any(pattern in result for pattern in NO_CHANGES_PATTERNS):
            logger.info(f"Stack {stack_name} is already up-to-date")
            return ChangeSetResult(change_set_arn, has_changes=False)
        logger.error(f"Failed to create change set for {stack_name}")
        raise RuntimeError(result)

    async def list_change_sets(self, region: str, stack_name: str) -> List[Dict[str, Any]]:
        """List the change set summaries of a stack."""
        summaries = []
        kwargs = {"StackName": stack_name}
        while True:
            response = await self._call(region, "list_change_sets", **kwargs)
            summaries.extend(response.get("Summaries", []))
            if not response.get("NextToken"):
                return summaries
            kwargs["NextToken"] = response["NextToken"]

    async def delete_change_sets(self, region: str, stack_name: str) -> List[str]:
        """Delete every change set of a stack and return the deleted ids."""
        change_sets = await self.list_change_sets(region, stack_name)
        deleted = []

        async def delete(change_set_id: str) -> None:
            try:
                await self._call(region, "delete_change_set", ChangeSetName=change_set_id)
            except ClientError:
                logger.error(f"Failed to delete change set {change_set_id}")
                raise
            deleted.append(change_set_id)

        await asyncio.gather(*(delete(cs["ChangeSetId"]) for cs in change_sets))
        logger.info(f"{len(deleted)} change sets deleted for {stack_name}")
        return deleted
