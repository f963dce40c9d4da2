"""
Reclaim what stacks leave behind: retained resources and unused packaged files.
"""

from .arns import UnsupportedResourceError, resource_arn, resource_name
from .live_resources import list_live_resource_arns
from .packaged_files import prune_packaged_files
from .retained import list_retained_resource_arns, prune_retained_resources
from .selection import Selector

__all__ = [
    "Selector",
    "UnsupportedResourceError",
    "list_live_resource_arns",
    "list_retained_resource_arns",
    "prune_packaged_files",
    "prune_retained_resources",
    "resource_arn",
    "resource_name",
]
