"""
Local files to package and their packaging state.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Destination(str, Enum):
    """Where a local file is packaged to."""

    S3 = "S3"
    ECR = "ECR"
    INLINE = "INLINE"


class FileStatus(str, Enum):
    """Packaging outcome of a file."""

    PENDING = "pending"
    EXISTS = "exists"
    UPDATED = "updated"
    FORCED = "forced"


@dataclass
class File:
    """A local file (or directory) referenced by a template.

    ``path`` may change while packaging (e.g. to point at a zip of a directory),
    ``original_path`` keeps the absolute path used to identify the file.
    """

    path: str
    resource_type: str
    prop_name: str
    package_to: Destination
    status: FileStatus = FileStatus.PENDING
    depends_on: List[str] = field(default_factory=list)
    location: Optional[str] = None
    hash: Optional[str] = None
    original_path: str = ""

    def __post_init__(self):
        if not self.original_path:
            self.original_path = self.path
        self.package_to = Destination(self.package_to)

    @property
    def packaged(self) -> bool:
        return self.location is not None
