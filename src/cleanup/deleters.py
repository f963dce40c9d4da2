"""
Delete retained resources, per resource type.
"""

import logging
from typing import Awaitable, Callable, Dict, Tuple

from botocore.exceptions import ClientError

from aws_clients import AwsClients

from .arns import DELETABLE_TYPES, arn_service, resource_name
from .buckets import empty_bucket

logger = logging.getLogger(__name__)

Deleter = Callable[[AwsClients, str, str, str], Awaitable[None]]


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ResourceNotFoundException"


async def delete_bucket(clients: AwsClients, region: str, bucket: str, arn: str) -> None:
    """Empty a bucket, including versions and delete markers, and delete it."""
    await empty_bucket(clients, region, bucket)
    await clients.call("s3", region, "delete_bucket", Bucket=bucket)


async def delete_table(clients: AwsClients, region: str, table: str, arn: str) -> None:
    await clients.call("dynamodb", region, "delete_table", TableName=table)


async def _untag_and_delete(
    clients: AwsClients, service: str, region: str, arn: str, method: str, **kwargs
) -> None:
    # Pool tags are not removed with the pool
    try:
        response = await clients.call(service, region, "list_tags_for_resource", ResourceArn=arn)
        tag_keys = list(response.get("Tags", {}))
        if tag_keys:
            await clients.call(
                service, region, "untag_resource", ResourceArn=arn, TagKeys=tag_keys
            )
        await clients.call(service, region, method, **kwargs)
    except ClientError as e:
        if not _is_not_found(e):
            raise
        logger.info(f"{arn} was already deleted")


async def delete_user_pool(clients: AwsClients, region: str, pool_id: str, arn: str) -> None:
    await _untag_and_delete(
        clients, "cognito-idp", region, arn, "delete_user_pool", UserPoolId=pool_id
    )


async def delete_identity_pool(
    clients: AwsClients, region: str, pool_id: str, arn: str
) -> None:
    await _untag_and_delete(
        clients, "cognito-identity", region, arn, "delete_identity_pool", IdentityPoolId=pool_id
    )


async def delete_work_group(clients: AwsClients, region: str, name: str, arn: str) -> None:
    """Delete a workgroup with its named queries and query executions."""
    await clients.call(
        "athena", region, "delete_work_group", WorkGroup=name, RecursiveDeleteOption=True
    )


async def delete_repository(clients: AwsClients, region: str, name: str, arn: str) -> None:
    """Delete a repository even if it still holds images."""
    await clients.call("ecr", region, "delete_repository", repositoryName=name, force=True)


DELETERS: Dict[str, Deleter] = {
    "AWS::S3::Bucket": delete_bucket,
    "AWS::DynamoDB::Table": delete_table,
    "AWS::Cognito::UserPool": delete_user_pool,
    "AWS::Cognito::IdentityPool": delete_identity_pool,
    "AWS::Athena::WorkGroup": delete_work_group,
    "AWS::ECR::Repository": delete_repository,
}


async def delete_resource(clients: AwsClients, region: str, arn: str) -> Tuple[bool, str]:
    """
    Delete a resource given its ARN.

    Args:
        clients: Rate-limited AWS client factory
        region: The resource's region
        arn: The resource's ARN

    Returns:
        Whether the resource was deleted, and the error message otherwise
    """
    resource_type = DELETABLE_TYPES.get(arn_service(arn))
    if resource_type is None:
        return False, f"Unsupported resource type: {arn_service(arn)}"
    name = resource_name(arn)
    if not name:
        return False, f"Unable to parse resource name from arn {arn}"
    try:
        await DELETERS[resource_type](clients, region, name, arn)
    except ClientError as e:
        return False, str(e)
    return True, ""
