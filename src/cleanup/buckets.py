"""
List and delete the objects of versioned buckets.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional

from botocore.exceptions import ClientError

from artifacts.storage import TAG_DELIMITER, get_tags
from aws_clients import AwsClients

logger = logging.getLogger(__name__)

MAX_KEYS = 1000


class ObjectVersion(NamedTuple):
    """A version (or delete marker) of an object, with its decoded tags."""

    key: str
    version_id: Optional[str]
    tags: Mapping[str, List[str]] = {}


Tags = Mapping[str, List[str]]
TagFilter = Callable[[Tags], bool]


def has_tags(tags_filter: Mapping[str, str]) -> TagFilter:
    """Match objects whose tags contain every given value."""
    return lambda tags: all(value in tags.get(key, []) for key, value in tags_filter.items())


def has_any_tag_value(key: str, values: Iterable[str]) -> TagFilter:
    """Match objects whose tag contains one of the given values."""
    values = set(values)
    return lambda tags: bool(values.intersection(tags.get(key, [])))


async def list_bucket(
    clients: AwsClients,
    region: str,
    bucket: str,
    tag_filter: Optional[TagFilter] = None,
    exclude: Iterable[str] = (),
    page_size: int = MAX_KEYS,
    tag_delimiter: str = TAG_DELIMITER,
) -> List[ObjectVersion]:
    """
    List the object versions and delete markers of a bucket.

    Args:
        clients: Rate-limited AWS client factory
        region: The bucket's region
        bucket: The bucket name
        tag_filter: Keep only objects whose decoded tags match
        exclude: Keys to leave out
        page_size: Max keys per listing request
        tag_delimiter: Separator of multiple values in object tags

    Returns:
        The matching versions
    """
    exclude = set(exclude)
    versions: List[ObjectVersion] = []
    kwargs: Dict[str, Any] = {"Bucket": bucket, "MaxKeys": page_size}
    while True:
        response = await clients.call("s3", region, "list_object_versions", **kwargs)
        page = [
            ObjectVersion(entry["Key"], entry.get("VersionId"))
            for entry in response.get("Versions", []) + response.get("DeleteMarkers", [])
            if entry["Key"] not in exclude
        ]
        if tag_filter:
            # Delete markers have no tags, so only objects carrying them are kept
            tagged = await asyncio.gather(
                *(_with_tags(clients, region, bucket, v, tag_delimiter) for v in page)
            )
            page = [v for v in tagged if v is not None and tag_filter(v.tags)]
        versions.extend(page)

        if not response.get("IsTruncated"):
            return versions
        kwargs["KeyMarker"] = response.get("NextKeyMarker")
        kwargs["VersionIdMarker"] = response.get("NextVersionIdMarker")


async def _with_tags(
    clients: AwsClients, region: str, bucket: str, version: ObjectVersion, delimiter: str
) -> Optional[ObjectVersion]:
    try:
        tags = await get_tags(clients, region, bucket, version.key, delimiter)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "MethodNotAllowed", "404"):
            return None
        raise
    return version._replace(tags=tags)


async def delete_versions(
    clients: AwsClients,
    region: str,
    bucket: str,
    versions: List[ObjectVersion],
    batch_size: int = MAX_KEYS,
) -> List[str]:
    """Delete object versions in batches and return the deleted keys."""
    deleted = []
    for start in range(0, len(versions), batch_size):
        batch = versions[start : start + batch_size]
        objects = [
            {"Key": v.key, "VersionId": v.version_id} if v.version_id else {"Key": v.key}
            for v in batch
        ]
        response = await clients.call(
            "s3", region, "delete_objects", Bucket=bucket, Delete={"Objects": objects}
        )
        for error in response.get("Errors", []):
            logger.warning(f"Failed to delete s3://{bucket}/{error['Key']}: {error.get('Message')}")
        deleted.extend(d["Key"] for d in response.get("Deleted", []))
    return deleted


async def empty_bucket(
    clients: AwsClients,
    region: str,
    bucket: str,
    tag_filter: Optional[TagFilter] = None,
    exclude: Iterable[str] = (),
    batch_size: int = MAX_KEYS,
) -> List[str]:
    """Delete every object version and delete marker of a bucket."""
    versions = await list_bucket(clients, region, bucket, tag_filter, exclude)
    return await delete_versions(clients, region, bucket, versions, batch_size)
