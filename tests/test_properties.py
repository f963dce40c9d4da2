"""
Tests for the resource property descriptors and artifact locations.
"""

import pytest

from artifacts.files import Destination
from artifacts.locations import (
    S3Object,
    bucket_from_arn,
    is_valid_ecr_uri,
    parse_s3_uri,
    s3_location,
)
from artifacts.properties import DESCRIPTORS, get_descriptor

IMAGE = "123456789012.dkr.ecr.us-east-1.amazonaws.com/app@sha256:abcdef0123"


class TestLocations:
    """Test S3 and ECR location helpers."""

    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("s3://bucket/path/key.zip", S3Object("bucket", "path/key.zip")),
            ("https://s3.amazonaws.com/bucket/key.yaml", S3Object("bucket", "key.yaml")),
            ("https://s3-eu-west-1.amazonaws.com/bucket/key.yaml", S3Object("bucket", "key.yaml")),
            ("https://s3.eu-west-1.amazonaws.com/bucket/key.yaml", S3Object("bucket", "key.yaml")),
            ("https://bucket.s3.amazonaws.com/dir/key.yaml", S3Object("bucket", "dir/key.yaml")),
        ],
    )
    def test_parse_s3_uri(self, uri, expected) -> None:
        """Test path-style, virtual-hosted and s3:// locations."""
        assert parse_s3_uri(uri) == expected

    def test_s3_location(self) -> None:
        """Test the HTTPS location of packaged objects."""
        assert s3_location("us-east-1", "b", "k.zip") == "https://s3.amazonaws.com/b/k.zip"
        assert s3_location("eu-west-1", "b", "k.zip") == "https://s3-eu-west-1.amazonaws.com/b/k.zip"

    def test_is_valid_ecr_uri(self) -> None:
        """Test recognizing registry images and local paths."""
        assert is_valid_ecr_uri(IMAGE)
        assert not is_valid_ecr_uri("./docker")
        assert not is_valid_ecr_uri(None)

    def test_bucket_from_arn(self) -> None:
        assert bucket_from_arn("arn:aws:s3:::my-bucket") == "my-bucket"
        assert bucket_from_arn("not-an-arn") is None


class TestDescriptors:
    """Test candidates, packaged locations and rewrites per property."""

    def test_unsupported_property(self) -> None:
        """Test that unknown properties reference nothing."""
        descriptor = get_descriptor("AWS::SNS::Topic", "TopicName")
        assert descriptor.candidates("./file") == {}
        assert descriptor.rewrite("value", {}) == "value"

    def test_lambda_code_zip(self) -> None:
        """Test a Lambda code directory packaged to S3."""
        descriptor = DESCRIPTORS[("AWS::Lambda::Function", "Code")]
        assert descriptor.candidates("./src") == {Destination.S3: ["./src"]}
        rewritten = descriptor.rewrite(
            "./src", {"./src": "https://s3.amazonaws.com/bucket/abc.zip"}
        )
        assert rewritten == {"S3Bucket": "bucket", "S3Key": "abc.zip"}
        assert descriptor.packaged_locations(rewritten) == {
            Destination.S3: [S3Object("bucket", "abc.zip")]
        }

    def test_lambda_code_image_and_inline(self) -> None:
        """Test Lambda images and inlined code."""
        descriptor = DESCRIPTORS[("AWS::Lambda::Function", "Code")]
        assert descriptor.candidates({"ImageUri": "./docker"}) == {Destination.ECR: ["./docker"]}
        assert descriptor.candidates({"ImageUri": IMAGE}) == {}
        assert descriptor.candidates({"ZipFile": "./index.js"}) == {
            Destination.INLINE: ["./index.js"]
        }
        assert descriptor.candidates({"ZipFile": "exports.handler = () => {}"}) == {}

    def test_lambda_code_already_packaged(self) -> None:
        """Test that an S3 URI is not packaged again."""
        descriptor = DESCRIPTORS[("AWS::Lambda::Function", "Code")]
        assert descriptor.candidates("s3://bucket/code.zip") == {}

    def test_nested_template_keeps_https_location(self) -> None:
        """Test that nested templates are referenced by URL."""
        descriptor = DESCRIPTORS[("AWS::CloudFormation::Stack", "TemplateURL")]
        location = "https://s3.amazonaws.com/bucket/nested.yaml"
        assert descriptor.candidates("./nested.yaml") == {Destination.S3: ["./nested.yaml"]}
        assert descriptor.rewrite("./nested.yaml", {"./nested.yaml": location}) == location
        assert descriptor.packaged_locations(location) == {
            Destination.S3: [S3Object("bucket", "nested.yaml")]
        }

    def test_s3_uri_property(self) -> None:
        """Test properties rewritten to s3:// URIs."""
        descriptor = DESCRIPTORS[("AWS::AppSync::GraphQLSchema", "DefinitionS3Location")]
        location = "https://s3.amazonaws.com/bucket/schema.graphql"
        assert descriptor.rewrite("./schema.graphql", {"./schema.graphql": location}) == (
            "s3://bucket/schema.graphql"
        )

    def test_glue_default_arguments(self) -> None:
        """Test that only file arguments are packaged."""
        descriptor = DESCRIPTORS[("AWS::Glue::Job", "DefaultArguments")]
        value = {"--extra-py-files": "./lib.zip", "--job-language": "python"}
        assert descriptor.candidates(value) == {Destination.S3: ["./lib.zip"]}
        rewritten = descriptor.rewrite(
            value, {"./lib.zip": "https://s3.amazonaws.com/bucket/lib.zip"}
        )
        assert rewritten == {"--extra-py-files": "s3://bucket/lib.zip", "--job-language": "python"}

    def test_container_definitions(self) -> None:
        """Test that each local image of a task definition is built."""
        descriptor = DESCRIPTORS[("AWS::ECS::TaskDefinition", "ContainerDefinitions")]
        value = [{"Name": "app", "Image": "./app"}, {"Name": "proxy", "Image": IMAGE}]
        assert descriptor.candidates(value) == {Destination.ECR: ["./app"]}
        assert descriptor.packaged_locations(value) == {Destination.ECR: [IMAGE]}
        rewritten = descriptor.rewrite(value, {"./app": IMAGE})
        assert [d["Image"] for d in rewritten] == [IMAGE, IMAGE]

    def test_kinesis_application_configuration(self) -> None:
        """Test that the code location becomes a bucket ARN and key."""
        descriptor = DESCRIPTORS[
            ("AWS::KinesisAnalyticsV2::Application", "ApplicationConfiguration")
        ]
        value = {"ApplicationCodeConfiguration": {"CodeContent": {"S3ContentLocation": "./app.jar"}}}
        rewritten = descriptor.rewrite(
            value, {"./app.jar": "https://s3.amazonaws.com/bucket/app.jar"}
        )
        location = rewritten["ApplicationCodeConfiguration"]["CodeContent"]["S3ContentLocation"]
        assert location == {"BucketARN": "arn:aws:s3:::bucket", "FileKey": "app.jar"}
        assert descriptor.packaged_locations(rewritten) == {
            Destination.S3: [S3Object("bucket", "app.jar")]
        }
        # The original value is left untouched
        assert value["ApplicationCodeConfiguration"]["CodeContent"]["S3ContentLocation"] == "./app.jar"

    def test_app_runner_source_configuration(self) -> None:
        """Test the ECR image of an App Runner service."""
        descriptor = DESCRIPTORS[("AWS::AppRunner::Service", "SourceConfiguration")]
        value = {"ImageRepository": {"ImageRepositoryType": "ECR", "ImageIdentifier": "./app"}}
        assert descriptor.candidates(value) == {Destination.ECR: ["./app"]}
        rewritten = descriptor.rewrite(value, {"./app": IMAGE})
        assert rewritten["ImageRepository"]["ImageIdentifier"] == IMAGE
        assert descriptor.packaged_locations(rewritten) == {Destination.ECR: [IMAGE]}

    def test_verification_message_template(self, tmp_path) -> None:
        """Test that both email messages are inlined."""
        by_code = tmp_path / "code.html"
        by_code.write_text("<p>{####}</p>")
        by_link = tmp_path / "link.html"
        by_link.write_text("<a>{##Verify##}</a>")
        descriptor = DESCRIPTORS[("AWS::Cognito::UserPool", "VerificationMessageTemplate")]
        value = {"EmailMessageByCode": "./code.html", "EmailMessageByLink": "./link.html"}

        assert descriptor.candidates(value) == {
            Destination.INLINE: ["./code.html", "./link.html"]
        }
        rewritten = descriptor.rewrite(
            value, {"./code.html": str(by_code), "./link.html": str(by_link)}
        )
        assert rewritten == {
            "EmailMessageByCode": "<p>{####}</p>",
            "EmailMessageByLink": "<a>{##Verify##}</a>",
        }
