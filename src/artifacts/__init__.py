"""
Packaging of local artifacts referenced by CloudFormation templates.
"""

from .engine import PackagingEngine, count_new_files
from .files import Destination, File, FileStatus
from .remote import PackagedFile, list_packaged_files
from .uploaders import PackagingError

__all__ = [
    "Destination",
    "File",
    "FileStatus",
    "PackagedFile",
    "PackagingEngine",
    "PackagingError",
    "count_new_files",
    "list_packaged_files",
]
