"""
Object tags of packaged files.

A packaged file can be shared by several stacks, so each tag holds every value
applied to it, joined by a delimiter.
"""

import logging
from typing import Dict, List, Mapping

from aws_clients import AwsClients

logger = logging.getLogger(__name__)

TAG_DELIMITER = ":"


def decode_tags(tag_set: List[Dict[str, str]], delimiter: str = TAG_DELIMITER) -> Dict[str, List[str]]:
    """Convert a TagSet to a mapping of tag key to its values."""
    return {tag["Key"]: tag["Value"].split(delimiter) for tag in tag_set}


def merge_tags(
    existing: Mapping[str, List[str]],
    stack_tags: Mapping[str, str],
    delimiter: str = TAG_DELIMITER,
) -> List[Dict[str, str]]:
    """Add the stack tags to the existing values and build a TagSet."""
    tag_set = []
    for key in list(dict.fromkeys([*existing, *stack_tags])):
        values = list(existing.get(key, []))
        if key in stack_tags and stack_tags[key] not in values:
            values.append(stack_tags[key])
        tag_set.append({"Key": key, "Value": delimiter.join(values)})
    return tag_set


async def get_tags(
    clients: AwsClients, region: str, bucket: str, key: str, delimiter: str = TAG_DELIMITER
) -> Dict[str, List[str]]:
    """Get the decoded tags of an object."""
    response = await clients.call("s3", region, "get_object_tagging", Bucket=bucket, Key=key)
    return decode_tags(response.get("TagSet", []), delimiter)


async def add_tags(
    clients: AwsClients,
    region: str,
    bucket: str,
    key: str,
    stack_tags: Mapping[str, str],
    delimiter: str = TAG_DELIMITER,
) -> None:
    """Merge the stack tags into the tags of an object."""
    existing = await get_tags(clients, region, bucket, key, delimiter)
    tag_set = merge_tags(existing, stack_tags, delimiter)
    await clients.call(
        "s3",
        region,
        "put_object_tagging",
        Bucket=bucket,
        Key=key,
        Tagging={"TagSet": tag_set},
    )
