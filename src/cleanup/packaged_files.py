"""
Prune packaged files that no deployed stack uses anymore.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from artifacts.remote import PackagedFile, list_packaged_files
from artifacts.storage import TAG_DELIMITER
from aws_clients import AwsClients
from cloudformation.stack_manager import StackManager
from cloudformation.statuses import StackStatus
from config import ResolvedStackSpec, dedupe

from .buckets import MAX_KEYS, ObjectVersion, delete_versions, has_any_tag_value, list_bucket
from .retained import ROOT_TAG_KEY
from .selection import Selector, select_items

logger = logging.getLogger(__name__)


async def list_packaged_files_in_use(
    clients: AwsClients, stacks: Sequence[ResolvedStackSpec]
) -> Set[PackagedFile]:
    """List the packaged files referenced by stacks that exist."""
    stack_manager = StackManager(clients)

    async def in_use(stack: ResolvedStackSpec) -> List[PackagedFile]:
        status = await stack_manager.get_stack_status(stack.region, stack.stack_name)
        if status == StackStatus.NEW:
            return []
        return await list_packaged_files(
            clients, stack.region, stack.stack_name, stack.deploy_bucket
        )

    files = await asyncio.gather(*(in_use(s) for s in stacks))
    return {f for packaged in files for f in packaged}


async def list_files_to_prune(
    clients: AwsClients,
    region: str,
    bucket: str,
    stack_names: Set[str],
    exclude: Set[PackagedFile],
    root_tag_key: str = ROOT_TAG_KEY,
    tag_delimiter: str = TAG_DELIMITER,
) -> Dict[str, List[ObjectVersion]]:
    """
    List the unused files of stacks in a bucket, grouped by owning stack.

    An object tagged by several stacks is only listed when every one of them
    is being pruned.

    Returns:
        Object versions to delete keyed by stack name
    """
    excluded_keys = {f.key for f in exclude if f.region == region and f.bucket == bucket}
    versions = await list_bucket(
        clients,
        region,
        bucket,
        tag_filter=has_any_tag_value(root_tag_key, stack_names),
        exclude=excluded_keys,
        tag_delimiter=tag_delimiter,
    )
    per_stack: Dict[str, List[ObjectVersion]] = defaultdict(list)
    for version in versions:
        owners = [name for name in version.tags.get(root_tag_key, []) if name]
        if not set(owners) <= stack_names:
            logger.debug(f"Kept s3://{bucket}/{version.key}: also used by {owners}")
            continue
        for owner in owners:
            per_stack[owner].append(version)
    return dict(per_stack)


async def prune_packaged_files(
    clients: AwsClients,
    stacks: Sequence[ResolvedStackSpec],
    select: Optional[Selector] = None,
    root_tag_key: str = ROOT_TAG_KEY,
    tag_delimiter: str = TAG_DELIMITER,
    batch_size: int = MAX_KEYS,
) -> List[str]:
    """
    Delete the packaged files of stacks which their templates do not reference.

    Files still referenced by any of the supplied stacks (root or nested
    templates) are never deleted.

    Returns:
        The deleted keys
    """
    stacks = dedupe(stacks)
    prunable = [s for s in stacks if not s.no_prune and s.deploy_bucket]
    to_prune = select_items(
        prunable,
        label=lambda s: f"{s.stack_name} ({s.region})",
        forced=lambda s: s.force_delete,
        select=select,
        message="Select stacks for which to prune deployment files",
    )
    if not to_prune:
        return []
    logger.info(f"Pruning old deployment files of {len(to_prune)} stacks")

    in_use = await list_packaged_files_in_use(clients, stacks)

    by_bucket: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
    for stack in to_prune:
        by_bucket[(stack.region, stack.deploy_bucket)].add(stack.stack_name)

    async def prune_bucket(region: str, bucket: str, names: Set[str]) -> List[str]:
        per_stack = await list_files_to_prune(
            clients, region, bucket, names, in_use, root_tag_key, tag_delimiter
        )
        unique = {(v.key, v.version_id): v for versions in per_stack.values() for v in versions}
        return await delete_versions(clients, region, bucket, list(unique.values()), batch_size)

    pruned = await asyncio.gather(
        *(prune_bucket(region, bucket, names) for (region, bucket), names in by_bucket.items())
    )
    deleted = [key for keys in pruned for key in keys]
    logger.info(f"{len(deleted) or 'No'} unused files pruned")
    return deleted
