"""
Helpers to recognize and build packaged artifact locations.
"""

import re
from typing import NamedTuple, Optional
from urllib.parse import urlparse

ECR_URI = re.compile(
    r"^(([a-z0-9]|[a-z0-9][a-z0-9\-]*[a-z0-9])\.)*([a-z0-9]|[a-z0-9][a-z0-9\-]*[a-z0-9])"
    r"(:[0-9]+\/)?(?:[0-9a-z-]+[/@])(?:([0-9a-z-]+))[/@]?(?:([0-9a-z-]+))?(?::[a-z0-9\.-]+)?$"
)

# Path-style endpoints: s3.amazonaws.com, s3-<region>.amazonaws.com, s3.<region>.amazonaws.com
PATH_STYLE_HOST = re.compile(r"^s3([.-][a-z0-9-]+)?\.amazonaws\.com$")
VIRTUAL_HOST = re.compile(r"^(?P<bucket>.+)\.s3([.-][a-z0-9-]+)?\.amazonaws\.com$")


class S3Object(NamedTuple):
    """An object in a bucket."""

    bucket: str
    key: str


def is_valid_s3_uri(value) -> bool:
    """Check whether a value already points at object storage."""
    return isinstance(value, str) and (value.startswith("http") or value.startswith("s3:"))


def is_valid_ecr_uri(value) -> bool:
    """Check whether a value is already a container registry image URI."""
    return isinstance(value, str) and bool(ECR_URI.match(value))


def parse_s3_uri(uri: str) -> S3Object:
    """
    Extract the bucket and key of an S3 URL or URI.

    Args:
        uri: ``s3://bucket/key`` or a path-style or virtual-hosted HTTPS URL

    Returns:
        The bucket and key
    """
    parsed = urlparse(uri)
    host = parsed.netloc
    path = parsed.path.lstrip("/")
    if parsed.scheme != "s3":
        if PATH_STYLE_HOST.match(host):
            bucket, _, key = path.partition("/")
            return S3Object(bucket, key)
        match = VIRTUAL_HOST.match(host)
        if match:
            return S3Object(match.group("bucket"), path)
    return S3Object(host, path)


def get_s3_uri(obj: S3Object) -> str:
    """Build an ``s3://`` URI for an object."""
    return f"s3://{obj.bucket}/{obj.key}"


def s3_location(region: str, bucket: str, key: str) -> str:
    """Build the HTTPS location of a packaged object."""
    prefix = "s3" if region == "us-east-1" else f"s3-{region}"
    return f"https://{prefix}.amazonaws.com/{bucket}/{key}"


def bucket_from_arn(arn: Optional[str]) -> Optional[str]:
    """Extract a bucket name from its ARN."""
    if not arn or ":::" not in arn:
        return None
    return arn.split(":::", 1)[1]
