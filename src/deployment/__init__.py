"""
Deploy, delete and clean up sets of interdependent stacks.
"""

from .operations import CleanupResult, Orchestrator
from .resolver import ResolutionError, resolve_stack
from .results import DeploymentResult, DeploymentStatus
from .scheduler import DependencyCycleError, StackGraphScheduler
from .stack_deployer import StackDeployer, StackNotModifiableError
from .sync import write_outputs

__all__ = [
    "CleanupResult",
    "DependencyCycleError",
    "DeploymentResult",
    "DeploymentStatus",
    "Orchestrator",
    "ResolutionError",
    "StackDeployer",
    "StackGraphScheduler",
    "StackNotModifiableError",
    "resolve_stack",
    "write_outputs",
]
