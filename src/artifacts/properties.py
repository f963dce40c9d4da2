"""
Resource properties that reference local files to package.

Each supported ``<resource type>.<property>`` pair is described by a
:class:`ResourcePropertyDescriptor` which knows:

- which local paths a property value references (``candidates``),
- which already-packaged locations it references (``packaged_locations``),
- how to rewrite the value once its files are packaged (``rewrite``).
"""

import copy
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .files import Destination
from .locations import (
    S3Object,
    bucket_from_arn,
    get_s3_uri,
    is_valid_ecr_uri,
    is_valid_s3_uri,
    parse_s3_uri,
)

Candidates = Dict[Destination, List[str]]
# Relative path as written in the template -> packaged location
Locations = Mapping[str, str]


def _is_local_path(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(".")


def _read(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


class ResourcePropertyDescriptor:
    """Base descriptor: the property never references local files."""

    def candidates(self, value: Any) -> Candidates:
        return {}

    def packaged_locations(self, value: Any) -> Dict[Destination, List[Any]]:
        return {}

    def rewrite(self, value: Any, locations: Locations) -> Any:
        return value


class S3ObjectProperty(ResourcePropertyDescriptor):
    """A path packaged to S3 and replaced by a ``{bucket, key}`` mapping."""

    def __init__(self, bucket_field: str = "Bucket", key_field: str = "Key"):
        self.bucket_field = bucket_field
        self.key_field = key_field

    def candidates(self, value):
        if isinstance(value, str) and not is_valid_s3_uri(value):
            return {Destination.S3: [value]}
        return {}

    def packaged_locations(self, value):
        if isinstance(value, dict) and value.get(self.bucket_field) and value.get(self.key_field):
            return {Destination.S3: [S3Object(value[self.bucket_field], value[self.key_field])]}
        return {}

    def rewrite(self, value, locations):
        obj = parse_s3_uri(locations[value])
        return {self.bucket_field: obj.bucket, self.key_field: obj.key}


class S3UriProperty(ResourcePropertyDescriptor):
    """A path packaged to S3 and replaced by an ``s3://`` URI.

    With ``keep_location``, the packaged HTTPS location is used as is
    (nested stack templates must be referenced by URL).
    """

    def __init__(self, keep_location: bool = False):
        self.keep_location = keep_location

    def candidates(self, value):
        if isinstance(value, str) and not is_valid_s3_uri(value):
            return {Destination.S3: [value]}
        return {}

    def packaged_locations(self, value):
        return {Destination.S3: [parse_s3_uri(value)]} if is_valid_s3_uri(value) else {}

    def rewrite(self, value, locations):
        location = locations[value]
        return location if self.keep_location else get_s3_uri(parse_s3_uri(location))


class ImageUriProperty(ResourcePropertyDescriptor):
    """A container image built from a local path, possibly nested in a mapping."""

    def __init__(self, field: Optional[str] = None):
        self.field = field

    def _image(self, value):
        if self.field is None:
            return value
        return value.get(self.field) if isinstance(value, dict) else None

    def candidates(self, value):
        image = self._image(value)
        if isinstance(image, str) and not is_valid_ecr_uri(image):
            return {Destination.ECR: [image]}
        return {}

    def packaged_locations(self, value):
        image = self._image(value)
        return {Destination.ECR: [image]} if is_valid_ecr_uri(image) else {}

    def rewrite(self, value, locations):
        if self.field is None:
            return locations[value]
        return {**value, self.field: locations[value[self.field]]}


class InlineProperty(ResourcePropertyDescriptor):
    """A local file whose content is inlined in the template."""

    def candidates(self, value):
        return {Destination.INLINE: [value]} if _is_local_path(value) else {}

    def rewrite(self, value, locations):
        return _read(locations[value])


class LambdaCodeProperty(ResourcePropertyDescriptor):
    """``AWS::Lambda::Function.Code``: zip to S3, image to ECR or inline file."""

    def candidates(self, value):
        if isinstance(value, str):
            return {} if is_valid_s3_uri(value) else {Destination.S3: [value]}
        if not isinstance(value, dict):
            return {}
        image = value.get("ImageUri")
        if isinstance(image, str) and not is_valid_ecr_uri(image):
            return {Destination.ECR: [image]}
        if _is_local_path(value.get("ZipFile")):
            return {Destination.INLINE: [value["ZipFile"]]}
        return {}

    def packaged_locations(self, value):
        if not isinstance(value, dict):
            return {}
        if value.get("S3Bucket") and value.get("S3Key"):
            return {Destination.S3: [S3Object(value["S3Bucket"], value["S3Key"])]}
        if is_valid_ecr_uri(value.get("ImageUri")):
            return {Destination.ECR: [value["ImageUri"]]}
        return {}

    def rewrite(self, value, locations):
        if isinstance(value, str):
            obj = parse_s3_uri(locations[value])
            return {"S3Bucket": obj.bucket, "S3Key": obj.key}
        if isinstance(value.get("ImageUri"), str):
            return {**value, "ImageUri": locations[value["ImageUri"]]}
        return {**value, "ZipFile": _read(locations[value["ZipFile"]])}


class GlueCommandProperty(ResourcePropertyDescriptor):
    """``AWS::Glue::Job.Command`` script location."""

    def candidates(self, value):
        script = value.get("ScriptLocation") if isinstance(value, dict) else None
        if isinstance(script, str) and not is_valid_s3_uri(script):
            return {Destination.S3: [script]}
        return {}

    def packaged_locations(self, value):
        script = value.get("ScriptLocation") if isinstance(value, dict) else None
        return {Destination.S3: [parse_s3_uri(script)]} if is_valid_s3_uri(script) else {}

    def rewrite(self, value, locations):
        location = locations[value["ScriptLocation"]]
        return {**value, "ScriptLocation": get_s3_uri(parse_s3_uri(location))}


GLUE_PACKAGED_ARGUMENTS = ("--scriptLocation", "--extra-jars", "--extra-files", "--extra-py-files")


class GlueDefaultArgumentsProperty(ResourcePropertyDescriptor):
    """``AWS::Glue::Job.DefaultArguments`` arguments pointing at files."""

    def _arguments(self, value) -> List[Tuple[str, Any]]:
        if not isinstance(value, dict):
            return []
        return [(arg, value[arg]) for arg in GLUE_PACKAGED_ARGUMENTS if isinstance(value.get(arg), str)]

    def candidates(self, value):
        paths = [v for _, v in self._arguments(value) if not is_valid_s3_uri(v)]
        return {Destination.S3: paths} if paths else {}

    def packaged_locations(self, value):
        objects = [parse_s3_uri(v) for _, v in self._arguments(value) if is_valid_s3_uri(v)]
        return {Destination.S3: objects} if objects else {}

    def rewrite(self, value, locations):
        updated = dict(value)
        for arg, path in self._arguments(value):
            if not is_valid_s3_uri(path):
                updated[arg] = get_s3_uri(parse_s3_uri(locations[path]))
        return updated


class ContainerDefinitionsProperty(ResourcePropertyDescriptor):
    """``AWS::ECS::TaskDefinition.ContainerDefinitions`` images."""

    def _images(self, value) -> List[str]:
        if not isinstance(value, list):
            return []
        return [d["Image"] for d in value if isinstance(d, dict) and isinstance(d.get("Image"), str)]

    def candidates(self, value):
        images = [i for i in self._images(value) if not is_valid_ecr_uri(i)]
        return {Destination.ECR: images} if images else {}

    def packaged_locations(self, value):
        images = [i for i in self._images(value) if is_valid_ecr_uri(i)]
        return {Destination.ECR: images} if images else {}

    def rewrite(self, value, locations):
        definitions = []
        for definition in value:
            image = definition.get("Image") if isinstance(definition, dict) else None
            if isinstance(image, str) and not is_valid_ecr_uri(image):
                definition = {**definition, "Image": locations[image]}
            definitions.append(definition)
        return definitions


class KinesisApplicationConfigurationProperty(ResourcePropertyDescriptor):
    """``AWS::KinesisAnalyticsV2::Application.ApplicationConfiguration`` code."""

    def _content(self, value) -> Dict[str, Any]:
        if not isinstance(value, dict):
            return {}
        return (value.get("ApplicationCodeConfiguration") or {}).get("CodeContent") or {}

    def candidates(self, value):
        content = self._content(value)
        if isinstance(content.get("S3ContentLocation"), str):
            return {Destination.S3: [content["S3ContentLocation"]]}
        if _is_local_path(content.get("TextContent")):
            return {Destination.INLINE: [content["TextContent"]]}
        return {}

    def packaged_locations(self, value):
        location = self._content(value).get("S3ContentLocation")
        if isinstance(location, dict):
            bucket = bucket_from_arn(location.get("BucketARN"))
            if bucket and location.get("FileKey"):
                return {Destination.S3: [S3Object(bucket, location["FileKey"])]}
        return {}

    def rewrite(self, value, locations):
        updated = copy.deepcopy(value)
        content = updated["ApplicationCodeConfiguration"]["CodeContent"]
        s3_path = content.get("S3ContentLocation")
        if isinstance(s3_path, str):
            obj = parse_s3_uri(locations[s3_path])
            content["S3ContentLocation"] = {
                "BucketARN": f"arn:aws:s3:::{obj.bucket}",
                "FileKey": obj.key,
            }
        else:
            content["TextContent"] = _read(locations[content["TextContent"]])
        return updated


class AppRunnerSourceConfigurationProperty(ResourcePropertyDescriptor):
    """``AWS::AppRunner::Service.SourceConfiguration`` ECR image."""

    def _image(self, value) -> Optional[str]:
        repository = value.get("ImageRepository") if isinstance(value, dict) else None
        if isinstance(repository, dict) and repository.get("ImageRepositoryType") == "ECR":
            return repository.get("ImageIdentifier")
        return None

    def candidates(self, value):
        image = self._image(value)
        if isinstance(image, str) and not is_valid_ecr_uri(image):
            return {Destination.ECR: [image]}
        return {}

    def packaged_locations(self, value):
        image = self._image(value)
        return {Destination.ECR: [image]} if is_valid_ecr_uri(image) else {}

    def rewrite(self, value, locations):
        updated = copy.deepcopy(value)
        repository = updated["ImageRepository"]
        repository["ImageIdentifier"] = locations[repository["ImageIdentifier"]]
        return updated


class VerificationMessageTemplateProperty(ResourcePropertyDescriptor):
    """``AWS::Cognito::UserPool.VerificationMessageTemplate`` email messages."""

    FIELDS = ("EmailMessageByCode", "EmailMessageByLink")

    def candidates(self, value):
        if not isinstance(value, dict):
            return {}
        paths = [value[f] for f in self.FIELDS if _is_local_path(value.get(f))]
        return {Destination.INLINE: paths} if paths else {}

    def rewrite(self, value, locations):
        updated = dict(value)
        for name in self.FIELDS:
            if _is_local_path(value.get(name)):
                updated[name] = _read(locations[value[name]])
        return updated


DESCRIPTORS: Dict[Tuple[str, str], ResourcePropertyDescriptor] = {
    ("AWS::ApiGateway::RestApi", "BodyS3Location"): S3ObjectProperty(),
    ("AWS::Lambda::Function", "Code"): LambdaCodeProperty(),
    ("AWS::Serverless::Function", "CodeUri"): S3ObjectProperty(),
    ("AWS::Serverless::Function", "ImageUri"): ImageUriProperty(),
    ("AWS::Serverless::Function", "InlineCode"): InlineProperty(),
    ("AWS::AppSync::GraphQLSchema", "DefinitionS3Location"): S3UriProperty(),
    ("AWS::AppSync::Resolver", "RequestMappingTemplateS3Location"): S3UriProperty(),
    ("AWS::AppSync::Resolver", "ResponseMappingTemplateS3Location"): S3UriProperty(),
    ("AWS::Serverless::Api", "DefinitionUri"): S3UriProperty(),
    ("AWS::ElasticBeanstalk::ApplicationVersion", "SourceBundle"): S3ObjectProperty(
        "S3Bucket", "S3Key"
    ),
    ("AWS::CloudFormation::Stack", "TemplateURL"): S3UriProperty(keep_location=True),
    ("AWS::Glue::Job", "Command"): GlueCommandProperty(),
    ("AWS::Glue::Job", "DefaultArguments"): GlueDefaultArgumentsProperty(),
    ("AWS::Include", "Location"): S3UriProperty(),
    ("AWS::Lambda::LayerVersion", "Content"): S3ObjectProperty("S3Bucket", "S3Key"),
    ("AWS::CloudFront::Function", "FunctionCode"): InlineProperty(),
    ("AWS::ECS::TaskDefinition", "ContainerDefinitions"): ContainerDefinitionsProperty(),
    ("AWS::CodeBuild::Project", "Environment"): ImageUriProperty("Image"),
    ("AWS::KinesisAnalytics::Application", "ApplicationCode"): InlineProperty(),
    (
        "AWS::KinesisAnalyticsV2::Application",
        "ApplicationConfiguration",
    ): KinesisApplicationConfigurationProperty(),
    ("AWS::AppRunner::Service", "SourceConfiguration"): AppRunnerSourceConfigurationProperty(),
    ("AWS::StepFunctions::StateMachine", "DefinitionS3Location"): S3ObjectProperty(),
    ("AWS::EMRServerless::Application", "ImageConfiguration"): ImageUriProperty("ImageUri"),
    ("AWS::Cognito::UserPool", "VerificationMessageTemplate"): VerificationMessageTemplateProperty(),
}

_UNSUPPORTED = ResourcePropertyDescriptor()


def get_descriptor(resource_type: str, prop_name: str) -> ResourcePropertyDescriptor:
    """Get the descriptor of a resource property (a no-op one if unsupported)."""
    return DESCRIPTORS.get((resource_type, prop_name), _UNSUPPORTED)
