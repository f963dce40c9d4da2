"""
Classification of CloudFormation stack and change set statuses.
"""

from enum import Enum
from typing import FrozenSet, Optional


class StackStatus(str, Enum):
    """Status of a stack. NEW means the stack does not exist."""

    NEW = "NEW"
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_FAILED = "CREATE_FAILED"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_FAILED = "DELETE_FAILED"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    UPDATE_IN_PROGRESS = "UPDATE_IN_PROGRESS"
    UPDATE_COMPLETE_CLEANUP_IN_PROGRESS = "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    UPDATE_FAILED = "UPDATE_FAILED"
    UPDATE_ROLLBACK_IN_PROGRESS = "UPDATE_ROLLBACK_IN_PROGRESS"
    UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"
    UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS = (
        "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS"
    )
    UPDATE_ROLLBACK_COMPLETE = "UPDATE_ROLLBACK_COMPLETE"
    REVIEW_IN_PROGRESS = "REVIEW_IN_PROGRESS"
    IMPORT_IN_PROGRESS = "IMPORT_IN_PROGRESS"
    IMPORT_COMPLETE = "IMPORT_COMPLETE"
    IMPORT_ROLLBACK_IN_PROGRESS = "IMPORT_ROLLBACK_IN_PROGRESS"
    IMPORT_ROLLBACK_FAILED = "IMPORT_ROLLBACK_FAILED"
    IMPORT_ROLLBACK_COMPLETE = "IMPORT_ROLLBACK_COMPLETE"

    @classmethod
    def parse(cls, value: Optional[str]) -> "StackStatus":
        """Convert a raw API value, a missing value meaning the stack is new."""
        return cls(value) if value else cls.NEW


class ChangeSetStatus(str, Enum):
    """Status of a change set."""

    CREATE_PENDING = "CREATE_PENDING"
    CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
    CREATE_COMPLETE = "CREATE_COMPLETE"
    DELETE_PENDING = "DELETE_PENDING"
    DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
    DELETE_COMPLETE = "DELETE_COMPLETE"
    DELETE_FAILED = "DELETE_FAILED"
    FAILED = "FAILED"


S = StackStatus

# Stack exists and can serve its outputs
AVAILABLE: FrozenSet[StackStatus] = frozenset(
    {S.CREATE_COMPLETE, S.UPDATE_COMPLETE, S.UPDATE_ROLLBACK_COMPLETE}
)

# A change set on this stack must be of type CREATE
IS_NEW: FrozenSet[StackStatus] = frozenset(
    {S.NEW, S.REVIEW_IN_PROGRESS, S.CREATE_FAILED, S.ROLLBACK_COMPLETE}
)

CAN_BE_MODIFIED: FrozenSet[StackStatus] = AVAILABLE | IS_NEW

# Must be deleted before it can be created again
NEEDS_DELETE: FrozenSet[StackStatus] = frozenset(
    {S.ROLLBACK_COMPLETE, S.ROLLBACK_FAILED, S.DELETE_FAILED}
)

DEPLOY_SUCCESS: FrozenSet[StackStatus] = frozenset(
    {S.CREATE_COMPLETE, S.UPDATE_COMPLETE}
)

DEPLOY_FAILED: FrozenSet[StackStatus] = frozenset(
    {
        S.ROLLBACK_COMPLETE,
        S.ROLLBACK_FAILED,
        S.DELETE_FAILED,
        S.CREATE_FAILED,
        S.UPDATE_ROLLBACK_COMPLETE,
        S.UPDATE_ROLLBACK_FAILED,
    }
)

# No operation is in progress on the stack
STABLE: FrozenSet[StackStatus] = frozenset(
    {
        S.NEW,
        S.CREATE_FAILED,
        S.CREATE_COMPLETE,
        S.ROLLBACK_FAILED,
        S.ROLLBACK_COMPLETE,
        S.DELETE_FAILED,
        S.DELETE_COMPLETE,
        S.UPDATE_COMPLETE,
        S.UPDATE_FAILED,
        S.UPDATE_ROLLBACK_FAILED,
        S.UPDATE_ROLLBACK_COMPLETE,
        S.REVIEW_IN_PROGRESS,
        S.IMPORT_COMPLETE,
        S.IMPORT_ROLLBACK_FAILED,
        S.IMPORT_ROLLBACK_COMPLETE,
    }
)

DELETE_SUCCESS: FrozenSet[StackStatus] = frozenset({S.DELETE_COMPLETE, S.NEW})

DELETE_FAILED: FrozenSet[StackStatus] = frozenset({S.DELETE_FAILED})

CHANGE_SET_CREATED: FrozenSet[ChangeSetStatus] = frozenset(
    {ChangeSetStatus.CREATE_COMPLETE}
)

CHANGE_SET_FAILED: FrozenSet[ChangeSetStatus] = frozenset(
    {ChangeSetStatus.FAILED, ChangeSetStatus.DELETE_FAILED}
)

del S
