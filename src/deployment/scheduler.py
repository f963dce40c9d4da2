"""
Run stack operations concurrently in dependency order.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from config import dedupe

from .results import DeploymentResult, DeploymentStatus

logger = logging.getLogger(__name__)

S = TypeVar("S")
Action = Callable[[S], Awaitable[DeploymentResult]]


class DependencyCycleError(Exception):
    """The stacks depend on each other in a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Circular dependency between stacks: {' -> '.join(cycle)}")


def _stack_id(region: str, name: str) -> str:
    return f"{region}|{name}"


class StackGraphScheduler(Generic[S]):
    """
    Deploy or delete stacks, each one as soon as the stacks it waits for succeeded.

    A stack is deployed once every stack it depends on was deployed, and deleted
    once every stack depending on it was deleted. A failure leaves the stacks
    waiting for it pending, which halts only the affected part of the graph.
    Dependencies on stacks outside of the scheduled set are considered met.
    """

    def __init__(self, stacks: Sequence[S]):
        """
        Initialize the scheduler.

        Args:
            stacks: Stack specs with ``id`` and ``depends_on`` (region and name)

        Raises:
            DependencyCycleError: If the stacks depend on each other in a cycle
        """
        self.stacks: List[S] = dedupe(stacks)
        self._by_id: Dict[str, S] = {s.id: s for s in self.stacks}
        self.status: Dict[str, DeploymentStatus] = {
            s.id: DeploymentStatus.PENDING for s in self.stacks
        }
        cycle = self.find_cycle()
        if cycle:
            raise DependencyCycleError(cycle)

    def dependencies(self, stack: S) -> List[S]:
        """The scheduled stacks a stack depends on."""
        ids = (_stack_id(d.region, d.name) for d in stack.depends_on)
        return [self._by_id[i] for i in ids if i in self._by_id]

    def dependents(self, stack: S) -> List[S]:
        """The scheduled stacks depending on a stack."""
        return [
            s for s in self.stacks if any(d.id == stack.id for d in self.dependencies(s))
        ]

    def find_cycle(self) -> Optional[List[str]]:
        """Return the ids forming a dependency cycle, if any."""
        visiting, done = set(), set()
        for start in self.stacks:
            if start.id in done:
                continue
            # Depth first, with the path kept on the stack
            path = [start]
            iterators = [iter(self.dependencies(start))]
            visiting.add(start.id)
            while iterators:
                child = next(iterators[-1], None)
                if child is None:
                    iterators.pop()
                    node = path.pop()
                    visiting.discard(node.id)
                    done.add(node.id)
                elif child.id in visiting:
                    ids = [s.id for s in path]
                    return ids[ids.index(child.id):] + [child.id]
                elif child.id not in done:
                    path.append(child)
                    visiting.add(child.id)
                    iterators.append(iter(self.dependencies(child)))
        return None

    def _all_succeeded(self, stacks: Sequence[S]) -> bool:
        return all(self.status[s.id] == DeploymentStatus.SUCCESS for s in stacks)

    def ready_to_deploy(self) -> List[S]:
        """Pending stacks whose dependencies were deployed."""
        return [
            s
            for s in self.stacks
            if self.status[s.id] == DeploymentStatus.PENDING
            and self._all_succeeded(self.dependencies(s))
        ]

    def ready_to_delete(self) -> List[S]:
        """Pending stacks whose dependents were deleted."""
        return [
            s
            for s in self.stacks
            if self.status[s.id] == DeploymentStatus.PENDING
            and self._all_succeeded(self.dependents(s))
        ]

    async def _run_one(self, stack: S, action: Action) -> DeploymentResult:
        start = time.time()
        try:
            result = await action(stack)
        except Exception as e:
            logger.error(f"{stack.stack_name} ({stack.region}) failed: {e}")
            result = DeploymentResult(
                stack_id=stack.id,
                status=DeploymentStatus.FAILED,
                message=str(e),
                errors=[str(e)],
            )
        if not result.duration:
            result.duration = time.time() - start
        return result

    async def run(
        self, action: Action, ready: Callable[[], List[S]], verb: str
    ) -> Dict[str, DeploymentResult]:
        """
        Run an action on every stack, starting stacks as they become ready.

        Args:
            action: Coroutine function deploying or deleting one stack
            ready: Returns the stacks that can start
            verb: Name of the operation, for logs

        Returns:
            Results keyed by stack id; stacks that never started have a
            pending result
        """
        results: Dict[str, DeploymentResult] = {}
        running: Dict[asyncio.Task, S] = {}

        def launch() -> None:
            for stack in ready():
                self.status[stack.id] = DeploymentStatus.IN_PROGRESS
                logger.info(f"Starting to {verb} {stack.stack_name} ({stack.region})")
                running[asyncio.ensure_future(self._run_one(stack, action))] = stack

        launch()
        while running:
            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                stack = running.pop(task)
                result = task.result()
                self.status[stack.id] = (
                    DeploymentStatus.SUCCESS if result.success else DeploymentStatus.FAILED
                )
                results[stack.id] = result
            launch()

        for stack in self.stacks:
            if self.status[stack.id] == DeploymentStatus.PENDING:
                logger.warning(
                    f"Skipped {stack.stack_name} ({stack.region}): a stack it waits for failed"
                )
                results[stack.id] = DeploymentResult(
                    stack_id=stack.id,
                    status=DeploymentStatus.PENDING,
                    message="Skipped",
                )
        return results

    async def deploy(self, action: Action) -> Dict[str, DeploymentResult]:
        """Deploy the stacks, dependencies first."""
        return await self.run(action, self.ready_to_deploy, "deploy")

    async def delete(self, action: Action) -> Dict[str, DeploymentResult]:
        """Delete the stacks, dependents first."""
        return await self.run(action, self.ready_to_delete, "delete")
