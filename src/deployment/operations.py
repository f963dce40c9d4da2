"""
Operations on sets of stacks: deploy, delete, cleanup, package, sync and status.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import docker

from artifacts import PackagingEngine, count_new_files
from aws_clients import AwsClients, RateLimiter
from cleanup import prune_packaged_files, prune_retained_resources
from cleanup.selection import Selector, select_items
from cloudformation import (
    ChangeSetManager,
    StackDiagnostics,
    StackManager,
    StackStatus,
    StatusPoller,
)
from cloudformation.statuses import AVAILABLE
from config import OrchestratorConfig, ResolvedStackSpec, StackSpec, dedupe, get_config

from .resolver import resolve_stack, resolve_stacks
from .results import DeploymentResult
from .scheduler import StackGraphScheduler
from .stack_deployer import StackDeployer

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """What a cleanup removed."""
    pruned_files: List[str] = field(default_factory=list)
    deleted_resources: List[str] = field(default_factory=list)


class Orchestrator:
    """Entry point of every multi-stack operation."""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        clients: Optional[AwsClients] = None,
        select: Optional[Selector] = None,
        docker_client: Optional[docker.DockerClient] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Orchestrator settings (loaded from the environment by default)
            clients: AWS client factory (built from the settings by default)
            select: Asks which stacks or resources may be deleted when not forced;
                without it, only forced deletions happen
            docker_client: Docker client used to build images
        """
        self.config = config or get_config()
        self.clients = clients or AwsClients(
            RateLimiter(self.config.rate_limit, self.config.rate_interval),
            profile=self.config.profile,
            credential_timeout=self.config.credential_timeout,
        )
        self.select = select
        self.poller = StatusPoller(self.clients, self.config.poll_interval)
        self.stack_manager = StackManager(self.clients, self.poller)
        self.packaging = PackagingEngine(
            self.clients, self.config.tag_delimiter, docker_client=docker_client
        )
        self.deployer = StackDeployer(
            self.stack_manager,
            ChangeSetManager(self.clients, self.stack_manager, self.poller),
            self.packaging,
            StackDiagnostics(self.clients),
            select=select,
        )

    async def resolve(
        self, stacks: Sequence[StackSpec], strict: bool = False
    ) -> List[ResolvedStackSpec]:
        """Resolve stack specs against the outputs of their dependencies."""
        return await resolve_stacks(
            self.stack_manager, dedupe(stacks), self.config.root_tag_key, strict
        )

    async def _deploy_one(self, stack: StackSpec) -> DeploymentResult:
        # Dependencies are deployed at this point, so their outputs are final
        resolved = await resolve_stack(self.stack_manager, stack, self.config.root_tag_key)
        return await self.deployer.deploy(resolved)

    async def deploy(self, stacks: Sequence[StackSpec]) -> Dict[str, DeploymentResult]:
        """
        Deploy stacks in dependency order, then clean up after them.

        Templates are validated and stacks prepared before anything is deployed.
        Retained resources are only cleaned for stacks with ``cleanup`` set.

        Returns:
            Results keyed by stack id
        """
        stacks = dedupe(stacks)
        scheduler = StackGraphScheduler(stacks)
        await self.deployer.validate(stacks)
        await asyncio.gather(*(self.deployer.prepare(s) for s in stacks))

        results = await scheduler.deploy(self._deploy_one)

        deployed = [s for s in stacks if results[s.id].success]
        if deployed:
            await self.cleanup(deployed)
        return results

    async def delete(self, stacks: Sequence[StackSpec]) -> Dict[str, DeploymentResult]:
        """
        Delete stacks, dependents first, then their retained resources and files.

        Stacks flagged with ``force_delete`` are deleted directly, the others
        only when confirmed by the selector.

        Returns:
            Results keyed by stack id
        """
        # Resolved while the dependencies still exist
        resolved = await self.resolve(stacks)
        statuses = await asyncio.gather(
            *(self.stack_manager.get_stack_status(s.region, s.stack_name) for s in resolved)
        )
        existing = []
        for stack, status in zip(resolved, statuses):
            if status == StackStatus.NEW:
                logger.info(f"Stack {stack.stack_name} ({stack.region}) does not exist")
            else:
                existing.append(stack)

        to_delete = select_items(
            existing,
            label=lambda s: f"{s.stack_name} ({s.region})",
            forced=lambda s: s.force_delete,
            select=self.select,
            message="Select stacks to delete",
        )
        results = await StackGraphScheduler(to_delete).delete(self.deployer.delete)
        await self.cleanup(resolved)
        return results

    async def cleanup(self, stacks: Sequence[StackSpec]) -> CleanupResult:
        """Prune unused packaged files, then delete retained resources."""
        resolved = await self.resolve(stacks)
        pruned = await prune_packaged_files(
            self.clients,
            resolved,
            self.select,
            root_tag_key=self.config.root_tag_key,
            tag_delimiter=self.config.tag_delimiter,
            batch_size=self.config.delete_batch_size,
        )
        deleted = await prune_retained_resources(
            self.clients, resolved, self.select, root_tag_key=self.config.root_tag_key
        )
        return CleanupResult(pruned_files=pruned, deleted_resources=deleted)

    async def package(self, stacks: Sequence[StackSpec]) -> List[str]:
        """
        Package the templates of stacks.

        Returns:
            The packaged template URLs, or the template paths when nothing
            needed packaging
        """
        resolved = await self.resolve(stacks, strict=True)

        async def package_one(stack: ResolvedStackSpec) -> str:
            location, files = await self.packaging.package_template(
                stack.template_path,
                stack.region,
                deploy_bucket=stack.deploy_bucket,
                deploy_ecr=stack.deploy_ecr,
                stack_tags=stack.stack_tags,
                force_upload=stack.force_upload,
            )
            logger.info(
                f"{stack.stack_name}: {count_new_files(files)} new files packaged"
                f" out of {len(files)}"
            )
            return location

        return list(await asyncio.gather(*(package_one(s) for s in resolved)))

    async def sync(self, stacks: Sequence[StackSpec]) -> Dict[str, Dict[str, str]]:
        """
        Write the outputs of available stacks to their sync paths.

        Returns:
            Outputs keyed by stack id
        """
        resolved = await self.resolve(stacks)

        async def sync_one(stack: ResolvedStackSpec) -> Optional[Dict[str, str]]:
            status = await self.stack_manager.get_stack_status(stack.region, stack.stack_name)
            if status not in AVAILABLE:
                logger.info(f"Skipped {stack.stack_name}: not available ({status.value})")
                return None
            outputs = await self.stack_manager.get_stack_outputs(stack.region, stack.stack_name)
            self.deployer.sync(stack, outputs)
            return outputs

        results = await asyncio.gather(*(sync_one(s) for s in resolved))
        return {s.id: outputs for s, outputs in zip(resolved, results) if outputs is not None}

    async def get_status(self, stack: StackSpec) -> str:
        """Get the status of a stack, ``NEW`` if it does not exist."""
        status = await self.stack_manager.get_stack_status(stack.region, stack.stack_name)
        return status.value

    def abort(self) -> None:
        """Reject every AWS call waiting for the rate limiter."""
        self.clients.limiter.abort()
