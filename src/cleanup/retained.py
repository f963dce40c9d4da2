"""
Find and delete the resources retained by deleted or updated stacks.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from aws_clients import AwsClients
from config import StackSpec, dedupe

from .arns import DELETABLE_TYPES, arn_service
from .deleters import delete_resource
from .live_resources import list_live_resource_arns
from .selection import Selector, select_items

logger = logging.getLogger(__name__)

ROOT_TAG_KEY = "RootStackName"


async def list_retained_resource_arns(
    clients: AwsClients,
    region: str,
    stack_name: str,
    exclude: Iterable[str] = (),
    root_tag_key: str = ROOT_TAG_KEY,
) -> List[str]:
    """
    List the deletable resources tagged with a stack's name that are not live.

    Args:
        clients: Rate-limited AWS client factory
        region: The stack's region
        stack_name: The name of the root stack
        exclude: ARNs of live resources
        root_tag_key: Tag holding the root stack name

    Returns:
        The ARNs of retained resources
    """
    exclude = set(exclude)
    pages = await clients.paginate(
        "resourcegroupstaggingapi",
        region,
        "get_resources",
        TagFilters=[{"Key": root_tag_key, "Values": [stack_name]}],
    )
    return [
        mapping["ResourceARN"]
        for page in pages
        for mapping in page.get("ResourceTagMappingList", [])
        if mapping["ResourceARN"] not in exclude
        and arn_service(mapping["ResourceARN"]) in DELETABLE_TYPES
    ]


async def prune_retained_resources(
    clients: AwsClients,
    stacks: Sequence[StackSpec],
    select: Optional[Selector] = None,
    root_tag_key: str = ROOT_TAG_KEY,
) -> List[str]:
    """
    Delete the retained resources of stacks.

    Resources of stacks flagged with ``force_delete`` are deleted directly,
    the others only when confirmed by ``select``.

    Returns:
        The ARNs of deleted resources
    """
    stacks = dedupe(s for s in stacks if not s.no_retained)
    if not stacks:
        return []

    live = await asyncio.gather(
        *(list_live_resource_arns(clients, s.region, s.stack_name) for s in stacks)
    )
    live_arns = {arn for arns in live for arn in arns}

    async def list_retained(stack):
        arns = await list_retained_resource_arns(
            clients, stack.region, stack.stack_name, live_arns, root_tag_key
        )
        return [(stack, arn) for arn in arns]

    retained = [r for rs in await asyncio.gather(*(list_retained(s) for s in stacks)) for r in rs]
    if not retained:
        logger.info("No retained resources")
        return []

    to_delete = select_items(
        retained,
        label=lambda item: f"{item[1]} ({item[0].region})",
        forced=lambda item: item[0].force_delete,
        select=select,
        message="Do you want to delete any retained resources?",
    )

    async def delete(stack, arn) -> Optional[str]:
        deleted, error = await delete_resource(clients, stack.region, arn)
        if deleted:
            logger.info(f"Deleted {arn}")
            return arn
        logger.warning(f"Failed to delete {arn}: {error}" if error else f"Failed to delete {arn}")
        return None

    results = await asyncio.gather(*(delete(stack, arn) for stack, arn in to_delete))
    deleted = [arn for arn in results if arn]

    left = await asyncio.gather(*(list_retained(s) for s in stacks))
    left_count = sum(len(arns) for arns in left)
    logger.info(
        f"Deleted {len(deleted)} retained resources, {left_count or 'none'} left"
    )
    return deleted
