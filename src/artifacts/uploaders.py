"""
Upload strategies per packaging destination.
"""

import asyncio
import base64
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import docker
from botocore.exceptions import ClientError

from aws_clients import AwsClients

from .archive import archive_basename, create_tar, create_zip
from .discovery import NESTED_STACK_PROPERTY, NESTED_STACK_TYPE, update_template
from .files import File, FileStatus
from .hashing import hash_contents, md5_file
from .locations import s3_location
from .storage import TAG_DELIMITER, add_tags

logger = logging.getLogger(__name__)

TARBALL = re.compile(r".*\.(tgz|tar|tar\.gz)$", re.IGNORECASE)
ENV_REFERENCE = re.compile(r"\$\{([a-zA-Z_][a-zA-Z0-9_]*)\}")
ALREADY_PUSHED = "Layer already exists"


class PackagingError(Exception):
    """A file could not be packaged."""

    pass


def is_not_found(error: ClientError) -> bool:
    code = error.response.get("Error", {}).get("Code")
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in ("404", "NoSuchKey", "NotFound") or status == 404


class S3Uploader:
    """Upload files to a bucket under a content-hashed key."""

    def __init__(
        self,
        clients: AwsClients,
        region: str,
        bucket: str,
        work_dir: str,
        stack_tags: Optional[Mapping[str, str]] = None,
        force: bool = False,
        tag_delimiter: str = TAG_DELIMITER,
    ):
        self.clients = clients
        self.region = region
        self.bucket = bucket
        self.work_dir = work_dir
        self.stack_tags = dict(stack_tags or {})
        self.force = force
        self.tag_delimiter = tag_delimiter

    def _prepare(self, file: File, dependencies: Mapping[str, File]) -> None:
        """Point the file at the content to upload."""
        if file.resource_type == NESTED_STACK_TYPE and file.prop_name == NESTED_STACK_PROPERTY:
            content = update_template(file.original_path, dependencies)
            fd, path = tempfile.mkstemp(suffix=".yaml", dir=self.work_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            file.path = path
        elif os.path.isdir(file.original_path):
            fd, path = tempfile.mkstemp(suffix=".zip", dir=self.work_dir)
            os.close(fd)
            file.path = str(create_zip(file.original_path, path))

    async def _exists(self, key: str) -> bool:
        try:
            await self.clients.call("s3", self.region, "head_object", Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                return False
            raise
        return True

    async def upload(self, file: File, dependencies: Mapping[str, File]) -> None:
        """Upload a file unless an object with the same content exists."""
        await asyncio.to_thread(self._prepare, file, dependencies)
        file.hash = await asyncio.to_thread(hash_contents, file.path)
        key = f"{file.hash}{Path(file.path).suffix}"

        exists = await self._exists(key)
        status = FileStatus.EXISTS
        if self.force or not exists:
            await self.clients.call(
                "s3", self.region, "upload_file", Filename=file.path, Bucket=self.bucket, Key=key
            )
            status = FileStatus.FORCED if exists else FileStatus.UPDATED
            logger.debug(f"Uploaded {file.original_path} to s3://{self.bucket}/{key}")

        await add_tags(
            self.clients, self.region, self.bucket, key, self.stack_tags, self.tag_delimiter
        )
        file.status = status
        file.location = s3_location(self.region, self.bucket, key)


class EcrUploader:
    """Build container images and push them to a registry repository."""

    def __init__(
        self,
        clients: AwsClients,
        region: str,
        repository: str,
        work_dir: str,
        force: bool = False,
        docker_client: Optional[docker.DockerClient] = None,
    ):
        self.clients = clients
        self.region = region
        self.repository = repository
        self.work_dir = work_dir
        self.force = force
        self._docker = docker_client

    @property
    def docker(self) -> docker.DockerClient:
        if self._docker is None:
            self._docker = docker.from_env()
        return self._docker

    async def get_auth_config(self) -> Dict[str, str]:
        """Get the registry credentials."""
        response = await self.clients.call("ecr", self.region, "get_authorization_token")
        data = response["authorizationData"][0]
        username, password = (
            base64.b64decode(data["authorizationToken"]).decode().split(":", 1)
        )
        return {
            "username": username,
            "password": password,
            "serveraddress": urlparse(data["proxyEndpoint"]).netloc,
        }

    def _build(self, file: File, image_name: str) -> None:
        options: Dict[str, Any] = {"tag": image_name, "rm": True, "nocache": self.force}
        options.update(docker_build_options(file.original_path))
        if os.path.isdir(file.path):
            self.docker.images.build(path=file.path, **options)
            return
        if not TARBALL.match(file.path):
            # Any other file is a Dockerfile, sent as the only file of the context
            fd, path = tempfile.mkstemp(suffix=".tar", dir=self.work_dir)
            os.close(fd)
            file.path = str(create_tar(file.path, path))
        with open(file.path, "rb") as context:
            self.docker.images.build(
                fileobj=context,
                custom_context=True,
                encoding="gzip" if file.path.endswith(("gz", "tgz")) else None,
                **options,
            )

    def _push(self, image_name: str, auth_config: Dict[str, str]):
        repository, _, tag = image_name.rpartition(":")
        logs = list(
            self.docker.images.push(
                repository, tag=tag, auth_config=auth_config, stream=True, decode=True
            )
        )
        errors = [log["error"] for log in logs if "error" in log]
        if errors:
            raise PackagingError("\n".join(errors))
        return logs

    async def upload(self, file: File, dependencies: Mapping[str, File]) -> None:
        """Build and push an image, located by digest."""
        basename = re.sub(r"[^\w.-]", "-", archive_basename(file.original_path))
        image_name = f"{self.repository}:{basename}"
        await asyncio.to_thread(self._build, file, image_name)
        auth_config = await self.get_auth_config()
        logs = await self.clients.limiter.call(self._push, image_name, auth_config)

        digest = next(
            (log["aux"]["Digest"] for log in reversed(logs) if "Digest" in log.get("aux", {})),
            None,
        )
        if digest is None:
            raise PackagingError(f"No digest returned when pushing {image_name}")
        statuses = [log.get("status") for log in logs if log.get("status")]
        if self.force:
            file.status = FileStatus.FORCED
        elif ALREADY_PUSHED in statuses and "Pushed" not in statuses:
            file.status = FileStatus.EXISTS
        else:
            file.status = FileStatus.UPDATED
        file.hash = digest
        file.location = f"{self.repository}@{digest}"


def docker_build_options(path: str) -> Dict[str, Any]:
    """Read the ``dockerBuild`` options of the nearest package.json.

    ``${VAR}`` references in build arguments are replaced by environment values.
    """
    start = Path(path).resolve()
    start = start if start.is_dir() else start.parent
    for directory in [start, *start.parents]:
        package_file = directory / "package.json"
        if package_file.is_file():
            options = json.loads(package_file.read_text(encoding="utf-8") or "{}").get(
                "dockerBuild", {}
            )
            break
    else:
        return {}
    buildargs = options.get("buildargs")
    if isinstance(buildargs, dict):
        options["buildargs"] = {
            name: ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), str(value))
            for name, value in buildargs.items()
        }
    return options


class InlineUploader:
    """Copy files to a content-hashed temporary path to inline them."""

    def __init__(self, force: bool = False, target_dir: Optional[str] = None):
        self.force = force
        self.target_dir = target_dir or tempfile.gettempdir()

    async def upload(self, file: File, dependencies: Mapping[str, File]) -> None:
        file.hash = await asyncio.to_thread(md5_file, file.path)
        target = os.path.join(self.target_dir, f"{file.hash}{Path(file.path).suffix}")
        exists = os.path.exists(target)
        if self.force or not exists:
            await asyncio.to_thread(shutil.copyfile, file.path, target)
            file.status = FileStatus.FORCED if exists else FileStatus.UPDATED
        else:
            file.status = FileStatus.EXISTS
        file.location = target
