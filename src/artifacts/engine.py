"""
Package the local files referenced by templates.
"""

import asyncio
import logging
import os
import tempfile
from typing import Dict, Mapping, Optional, Tuple

import docker

from aws_clients import AwsClients

from .discovery import get_files_to_package
from .files import Destination, File, FileStatus
from .storage import TAG_DELIMITER
from .uploaders import EcrUploader, InlineUploader, PackagingError, S3Uploader

logger = logging.getLogger(__name__)


class PackagingEngine:
    """Upload template artifacts to S3 or ECR, or inline them, in dependency order."""

    def __init__(
        self,
        clients: AwsClients,
        tag_delimiter: str = TAG_DELIMITER,
        docker_client: Optional[docker.DockerClient] = None,
        inline_dir: Optional[str] = None,
    ):
        """
        Initialize the packaging engine.

        Args:
            clients: Rate-limited AWS client factory
            tag_delimiter: Separator of multiple values in object tags
            docker_client: Docker client used to build images (from the
                environment by default)
            inline_dir: Directory receiving files to inline
        """
        self.clients = clients
        self.tag_delimiter = tag_delimiter
        self.docker_client = docker_client
        self.inline_dir = inline_dir

    def _check_destinations(
        self,
        template_path: str,
        to_package: Mapping[str, File],
        deploy_bucket: Optional[str],
        deploy_ecr: Optional[str],
    ) -> None:
        for file in to_package.values():
            if file.package_to == Destination.S3 and not deploy_bucket:
                raise PackagingError(f"A bucket is missing to package {template_path}")
            if file.package_to == Destination.ECR and not deploy_ecr:
                raise PackagingError(
                    f"A docker repository is missing to package {template_path}"
                )

    async def _package_file(
        self, file: File, to_package: Mapping[str, File], uploaders: Mapping[Destination, object]
    ) -> None:
        uploader = uploaders.get(file.package_to)
        if uploader is None:
            raise PackagingError(
                f"Unable to determine where file '{file.path}' should be packaged"
                f" (value '{file.package_to}' not recognized)"
            )
        dependencies = {path: to_package[path] for path in file.depends_on}
        await uploader.upload(file, dependencies)

    async def package_files(
        self,
        template_path: str,
        region: str,
        deploy_bucket: Optional[str] = None,
        deploy_ecr: Optional[str] = None,
        stack_tags: Optional[Mapping[str, str]] = None,
        force_upload: bool = False,
    ) -> Dict[str, File]:
        """
        Package a template and the local files it references.

        Files are uploaded in waves: each wave packages concurrently every file
        whose dependencies are all packaged, so nested templates are rewritten
        only once their own files have a location.

        Args:
            template_path: Path to the root template
            region: Region of the bucket and repository
            deploy_bucket: Bucket receiving templates and archives
            deploy_ecr: Repository URI receiving images
            stack_tags: Tags applied to uploaded objects
            force_upload: Upload files even if their content already exists

        Returns:
            Packaged files keyed by absolute path (empty when the template did
            not need packaging)

        Raises:
            PackagingError: If a destination is missing or some files could
                not be packaged
        """
        to_package = await asyncio.to_thread(get_files_to_package, template_path)
        if not to_package:
            return to_package
        self._check_destinations(template_path, to_package, deploy_bucket, deploy_ecr)

        with tempfile.TemporaryDirectory() as work_dir:
            uploaders = {
                Destination.S3: S3Uploader(
                    self.clients,
                    region,
                    deploy_bucket,
                    work_dir,
                    stack_tags,
                    force_upload,
                    self.tag_delimiter,
                ),
                Destination.ECR: EcrUploader(
                    self.clients, region, deploy_ecr, work_dir, force_upload, self.docker_client
                ),
                Destination.INLINE: InlineUploader(force_upload, self.inline_dir),
            }
            while True:
                ready = [
                    file
                    for file in to_package.values()
                    if not file.packaged
                    and all(to_package[path].packaged for path in file.depends_on)
                ]
                if not ready:
                    break
                await asyncio.gather(
                    *(self._package_file(file, to_package, uploaders) for file in ready)
                )

        packaged = sum(1 for file in to_package.values() if file.packaged)
        if packaged != len(to_package):
            raise PackagingError(
                f"Expected to package {len(to_package)} files, but {packaged} were packaged"
            )
        return to_package

    async def package_template(
        self, template_path: str, region: str, **kwargs
    ) -> Tuple[str, Dict[str, File]]:
        """Package a template and return its location with the packaged files.

        The location is the template path itself when nothing needed packaging.
        """
        files = await self.package_files(template_path, region, **kwargs)
        root = next(
            (f for f in files.values() if f.original_path == os.path.abspath(template_path)), None
        )
        return (root.location if root else template_path), files


def count_new_files(files: Mapping[str, File]) -> int:
    """Count the files that were actually uploaded."""
    return sum(1 for f in files.values() if f.status != FileStatus.EXISTS)
