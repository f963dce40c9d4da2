"""
Find the packaged files used by a deployed stack.
"""

import asyncio
import logging
from typing import List, NamedTuple, Optional

from aws_clients import AwsClients
from cloudformation.stack_manager import StackManager
from cloudformation.template import parse_template

from .discovery import NESTED_STACK_PROPERTY, NESTED_STACK_TYPE, iter_properties
from .files import Destination
from .hashing import md5_bytes
from .properties import get_descriptor

logger = logging.getLogger(__name__)


class PackagedFile(NamedTuple):
    """A packaged object, identified by its region, bucket and key."""

    region: str
    bucket: str
    key: str


async def list_packaged_files(
    clients: AwsClients,
    region: str,
    stack_name: str,
    deploy_bucket: Optional[str] = None,
) -> List[PackagedFile]:
    """
    List the packaged files referenced by a deployed stack.

    The processed template is walked along with the nested templates packaged
    to S3, which are downloaded. The key of the root template is not referenced
    anywhere, so it is recomputed from the original template body when the
    deploy bucket is known.

    Args:
        clients: Rate-limited AWS client factory
        region: The stack's region
        stack_name: The name of the stack
        deploy_bucket: The bucket the root template was packaged to

    Returns:
        The packaged files, without duplicates
    """
    stack_manager = StackManager(clients)
    packaged: List[PackagedFile] = []
    if deploy_bucket:
        original = await stack_manager.get_template_body(region, stack_name, "Original")
        if isinstance(original, str):
            packaged.append(PackagedFile(region, deploy_bucket, f"{md5_bytes(original)}.yaml"))

    worklist = [await stack_manager.get_template_body(region, stack_name, "Processed")]
    while worklist:
        template = parse_template(worklist.pop())
        for _, resource_type, prop_name, value in iter_properties(template):
            locations = get_descriptor(resource_type, prop_name).packaged_locations(value)
            for obj in locations.get(Destination.S3, []):
                entry = PackagedFile(region, obj.bucket, obj.key)
                if entry not in packaged:
                    packaged.append(entry)
                if resource_type == NESTED_STACK_TYPE and prop_name == NESTED_STACK_PROPERTY:
                    response = await clients.call(
                        "s3", region, "get_object", Bucket=obj.bucket, Key=obj.key
                    )
                    body = await asyncio.to_thread(response["Body"].read)
                    worklist.append(body.decode("utf-8"))
    return packaged
