"""
CloudFormation stack, change set and template operations.
"""

from .change_sets import ChangeSetManager, ChangeSetResult
from .diagnostics import FailedResource, StackDiagnostics
from .stack_manager import StackManager
from .statuses import ChangeSetStatus, StackStatus
from .waiter import StatusPoller

__all__ = [
    "ChangeSetManager",
    "ChangeSetResult",
    "ChangeSetStatus",
    "FailedResource",
    "StackDiagnostics",
    "StackManager",
    "StackStatus",
    "StatusPoller",
]
