"""
Outcome of a stack operation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class DeploymentStatus(Enum):
    """Status of a stack in a deploy or delete run."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class DeploymentResult:
    """Result of a deploy or delete operation on one stack."""
    stack_id: str
    status: DeploymentStatus
    message: str = ""
    duration: float = 0.0
    outputs: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if the operation was successful."""
        return self.status == DeploymentStatus.SUCCESS

    @property
    def skipped(self) -> bool:
        """Check if the operation never started."""
        return self.status == DeploymentStatus.PENDING
