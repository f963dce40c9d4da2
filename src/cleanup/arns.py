"""
Build and parse the ARNs of stack resources.
"""

import re
from typing import Callable, Dict, Optional


class UnsupportedResourceError(Exception):
    """The ARN of a resource cannot be derived from its physical id."""

    pass


# Resource types whose retained instances can be deleted, by ARN service
DELETABLE_TYPES: Dict[str, str] = {
    "s3": "AWS::S3::Bucket",
    "dynamodb": "AWS::DynamoDB::Table",
    "cognito-idp": "AWS::Cognito::UserPool",
    "cognito-identity": "AWS::Cognito::IdentityPool",
    "athena": "AWS::Athena::WorkGroup",
    "ecr": "AWS::ECR::Repository",
}

ArnBuilder = Callable[[str, str, str], str]

ARN_BUILDERS: Dict[str, ArnBuilder] = {
    "AWS::IAM::Role": lambda pid, region, account: f"arn:aws:iam::{account}:role/{pid}",
    "AWS::Lambda::Function": lambda pid, region, account: (
        f"arn:aws:lambda:{region}:{account}:function:{pid}"
    ),
    "AWS::Cognito::IdentityPool": lambda pid, region, account: (
        f"arn:aws:cognito-identity:{region}:{account}:identitypool/{pid}"
    ),
    "AWS::Cognito::UserPool": lambda pid, region, account: (
        f"arn:aws:cognito-idp:{region}:{account}:userpool/{pid}"
    ),
    "AWS::S3::Bucket": lambda pid, region, account: f"arn:aws:s3:::{pid}",
    "AWS::DynamoDB::Table": lambda pid, region, account: (
        f"arn:aws:dynamodb:{region}:{account}:table/{pid}"
    ),
    "AWS::CloudFront::Distribution": lambda pid, region, account: (
        f"arn:aws:cloudfront::{account}:distribution/{pid}"
    ),
    "AWS::SQS::Queue": lambda pid, region, account: pid.replace(
        f"https://sqs.{region}.amazonaws.com/{account}/", f"arn:aws:sqs:{region}:{account}:"
    ),
    "AWS::Events::Rule": lambda pid, region, account: (
        f"arn:aws:events:{region}:{account}:rule/{pid}"
    ),
    "AWS::Athena::WorkGroup": lambda pid, region, account: (
        f"arn:aws:athena:{region}:{account}:workgroup/{pid}"
    ),
    "AWS::ECR::Repository": lambda pid, region, account: (
        f"arn:aws:ecr:{region}:{account}:repository/{pid}"
    ),
}

RESOURCE_NAMES = {
    "s3": re.compile(r".*:::(?P<name>.+)$"),
    "ecr": re.compile(r"arn:.*:repository/(?P<name>[^/]+)$"),
    "dynamodb": re.compile(r"arn:.*:table/(?P<name>[^:/]+)"),
    "lambda": re.compile(r".*:function:(?P<name>[^:]+)(:[^:]+)*$"),
    "cognito-idp": re.compile(r"arn:.*:userpool/(?P<name>[^/]+)$"),
    "cognito-identity": re.compile(r"arn:.*:identitypool/(?P<name>[^/]+)$"),
    "athena": re.compile(r"arn:.*:workgroup/(?P<name>[^/]+)$"),
}


def arn_service(arn: str) -> str:
    """Get the service of an ARN (``arn:aws:<service>:...``)."""
    parts = arn.split(":")
    return parts[2] if len(parts) > 2 else ""


def resource_arn(resource_type: str, physical_id: str, region: str, account_id: str) -> str:
    """
    Build the ARN of a stack resource from its physical id.

    Raises:
        UnsupportedResourceError: If the type is unknown and the physical id
            is not an ARN already
    """
    builder = ARN_BUILDERS.get(resource_type)
    if builder is not None:
        return builder(physical_id, region, account_id)
    if physical_id.startswith("arn"):
        return physical_id
    raise UnsupportedResourceError(
        f"The arn of resource {resource_type} {physical_id} could not be generated"
        " and the resource would be deleted inadvertently"
    )


def resource_name(arn: str) -> Optional[str]:
    """Extract the name (or id) of a resource from its ARN."""
    pattern = RESOURCE_NAMES.get(arn_service(arn))
    match = pattern.match(arn) if pattern else None
    return match.group("name") if match else None
