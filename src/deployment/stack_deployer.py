"""
Deploy and delete a single stack.
"""

import asyncio
import logging
import time
from typing import Dict, Optional, Sequence

from artifacts import PackagingEngine, count_new_files
from cleanup.selection import Selector, select_items
from cloudformation import ChangeSetManager, StackDiagnostics, StackManager, StackStatus
from cloudformation.statuses import (
    CAN_BE_MODIFIED,
    DEPLOY_FAILED,
    DEPLOY_SUCCESS,
    NEEDS_DELETE,
    STABLE,
)
from config import ResolvedStackSpec, StackSpec

from .results import DeploymentResult, DeploymentStatus
from .sync import write_outputs

logger = logging.getLogger(__name__)


class StackNotModifiableError(Exception):
    """The stack is in a state that does not allow deploying it."""

    def __init__(self, stack_name: str, status: StackStatus):
        self.stack_name = stack_name
        self.status = status
        super().__init__(f"Stack {stack_name} cannot be deployed in state {status.value}")


class StackDeployer:
    """Sequence the steps of deploying or deleting one stack."""

    def __init__(
        self,
        stack_manager: StackManager,
        change_sets: ChangeSetManager,
        packaging: PackagingEngine,
        diagnostics: StackDiagnostics,
        select: Optional[Selector] = None,
    ):
        """
        Initialize the deployer.

        Args:
            stack_manager: Stack operations
            change_sets: Change set creation
            packaging: Template packaging
            diagnostics: Failure reports
            select: Asks which stacks may be deleted when not forced
        """
        self.stack_manager = stack_manager
        self.change_sets = change_sets
        self.packaging = packaging
        self.diagnostics = diagnostics
        self.select = select

    async def validate(self, stacks: Sequence[StackSpec]) -> None:
        """Validate the local templates of stacks."""
        await asyncio.gather(
            *(
                self.stack_manager.validate_template(s.region, s.template_path)
                for s in stacks
                if s.template_path and not s.template_path.startswith("http")
            )
        )

    async def prepare(self, stack: StackSpec) -> StackStatus:
        """
        Bring a stack to a state where it can be deployed.

        Waits for the operation in progress, then deletes the stack if its
        last creation failed.

        Returns:
            The stack status once prepared

        Raises:
            StackNotModifiableError: If the stack cannot be deployed
        """
        region, name = stack.region, stack.stack_name
        status = await self.stack_manager.get_stack_status(region, name)
        if status not in STABLE:
            logger.info(f"Waiting for {name} to be stable ({status.value})")
            await self.stack_manager.poller.wait_for_status(region, name, success=STABLE)
            status = await self.stack_manager.get_stack_status(region, name)

        if status in NEEDS_DELETE:
            logger.warning(f"Stack {name} is in state {status.value} and must be deleted")
            confirmed = select_items(
                [stack],
                label=lambda s: f"{s.stack_name} ({s.region})",
                forced=lambda s: s.force_delete,
                select=self.select,
                message=f"Delete {name} to deploy it again?",
            )
            if not confirmed:
                raise StackNotModifiableError(name, status)
            result = await self.stack_manager.delete_stack(region, name)
            if result is not True:
                logger.error(f"Failed to delete {name}: {result}")
            status = await self.stack_manager.get_stack_status(region, name)

        if status not in CAN_BE_MODIFIED:
            raise StackNotModifiableError(name, status)
        return status

    async def deploy(self, stack: ResolvedStackSpec) -> DeploymentResult:
        """
        Package a stack's template, then create and execute its change set.

        Returns:
            The deployment result with the stack outputs
        """
        start = time.time()
        region, name = stack.region, stack.stack_name

        location, files = await self.packaging.package_template(
            stack.template_path,
            region,
            deploy_bucket=stack.deploy_bucket,
            deploy_ecr=stack.deploy_ecr,
            stack_tags=stack.stack_tags,
            force_upload=stack.force_upload,
        )
        if files:
            logger.info(f"{count_new_files(files)}/{len(files)} files uploaded for {name}")

        change_set = await self.change_sets.create_change_set(
            region, name, location, stack.stack_parameters, stack.stack_tags
        )
        if change_set.has_changes:
            logger.info(f"Executing change set of {name}")
            await self.stack_manager.execute_change_set(region, change_set.change_set_arn)
            result = await self.stack_manager.poller.wait_for_status(
                region, name, success=DEPLOY_SUCCESS, failure=DEPLOY_FAILED
            )
            if result is not True:
                logger.error(f"Failed to deploy {name}: {result}")
                await self.diagnostics.report(region, name)
                return DeploymentResult(
                    stack_id=stack.id,
                    status=DeploymentStatus.FAILED,
                    message=str(result),
                    duration=time.time() - start,
                    errors=[str(result)],
                )
            logger.info(f"Stack {name} deployed")

        outputs = await self.stack_manager.get_stack_outputs(region, name)
        errors = []
        try:
            self.sync(stack, outputs)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to sync outputs of {name}: {e}")
            errors.append(str(e))
        return DeploymentResult(
            stack_id=stack.id,
            status=DeploymentStatus.SUCCESS,
            message="Deployed" if change_set.has_changes else "No changes",
            duration=time.time() - start,
            outputs=outputs,
            errors=errors,
        )

    def sync(self, stack: ResolvedStackSpec, outputs: Dict[str, str]) -> Dict[str, bool]:
        """Write outputs to the sync paths of a stack; returns which files changed."""
        return {
            path: write_outputs(path, outputs, stack.no_override) for path in stack.sync_path
        }

    async def delete(self, stack: ResolvedStackSpec) -> DeploymentResult:
        """Delete a stack and wait for completion."""
        start = time.time()
        result = await self.stack_manager.delete_stack(stack.region, stack.stack_name)
        if result is not True:
            logger.error(f"Failed to delete {stack.stack_name}: {result}")
            return DeploymentResult(
                stack_id=stack.id,
                status=DeploymentStatus.FAILED,
                message=str(result),
                duration=time.time() - start,
                errors=[str(result)],
            )
        logger.info(f"Stack {stack.stack_name} deleted")
        return DeploymentResult(
            stack_id=stack.id,
            status=DeploymentStatus.SUCCESS,
            message="Deleted",
            duration=time.time() - start,
        )
