"""
Tests for change set creation.
"""

import pytest
from botocore.exceptions import ClientError

from cloudformation.change_sets import (
    ChangeSetManager,
    change_set_name,
    format_parameters,
    is_change_set_limit_error,
)
from cloudformation.stack_manager import StackManager
from cloudformation.waiter import StatusPoller
from conftest import REGION, client_error, missing_stack_error

TEMPLATE_URL = "https://s3.amazonaws.com/deploy-bucket/abc.yaml"
CHANGE_SET_ARN = "arn:aws:cloudformation:us-east-1:123456789012:changeSet/app-1/abc"


def limit_error() -> ClientError:
    return client_error(
        "LimitExceededException",
        "ChangeSet limit exceeded for stack arn:aws:cloudformation:us-east-1:123:stack/app",
        "CreateChangeSet",
    )


@pytest.fixture
def cfn(clients):
    cfn = clients["cloudformation"]
    cfn.get_template_summary.return_value = {
        "Capabilities": [],
        "Parameters": [{"ParameterKey": "Env"}],
    }
    cfn.describe_stacks.return_value = {
        "Stacks": [{"StackName": "app", "StackStatus": "UPDATE_COMPLETE"}]
    }
    cfn.list_change_sets.return_value = {"Summaries": [{"ChangeSetId": "old-change-set"}]}
    cfn.describe_change_set.return_value = {"Status": "CREATE_COMPLETE"}
    return cfn


@pytest.fixture
def manager(clients):
    poller = StatusPoller(clients, interval=0)
    return ChangeSetManager(clients, StackManager(clients, poller), poller)


class TestFormatParameters:
    """Test conversion of stack parameters."""

    def test_values_are_stringified(self) -> None:
        """Test strings, lists and other values."""
        parameters = format_parameters(
            {"Name": "app", "Subnets": ["a", "b"], "Count": 3, "Debug": True},
            ["Name", "Subnets", "Count", "Debug"],
        )
        assert parameters == [
            {"ParameterKey": "Name", "ParameterValue": "app"},
            {"ParameterKey": "Subnets", "ParameterValue": "a,b"},
            {"ParameterKey": "Count", "ParameterValue": "3"},
            {"ParameterKey": "Debug", "ParameterValue": "true"},
        ]

    def test_mapping_is_the_entry(self) -> None:
        """Test passing UsePreviousValue."""
        parameters = format_parameters({"Version": {"UsePreviousValue": True}}, ["Version"])
        assert parameters == [{"ParameterKey": "Version", "UsePreviousValue": True}]

    def test_undeclared_parameters_are_dropped(self) -> None:
        """Test that only template parameters are sent."""
        assert format_parameters({"Unknown": "x"}, ["Env"]) == []


def test_change_set_name() -> None:
    """Test that change set names only keep allowed characters."""
    name = change_set_name("my_stack.v2")
    prefix, _, suffix = name.rpartition("-")
    assert prefix == "mystackv2"
    assert suffix.isdigit()


def test_is_change_set_limit_error() -> None:
    """Test recognizing the change set quota error."""
    assert is_change_set_limit_error(limit_error())
    assert not is_change_set_limit_error(client_error("LimitExceededException", "Other limit"))


class TestChangeSetManager:
    """Test change set creation and classification."""

    @pytest.mark.asyncio
    async def test_update_change_set(self, manager, cfn) -> None:
        """Test the arguments of a change set on an existing stack."""
        cfn.create_change_set.return_value = {"Id": CHANGE_SET_ARN}

        result = await manager.create_change_set(
            REGION, "app", TEMPLATE_URL, {"Env": "dev", "Other": "x"}, {"RootStackName": "app"}
        )

        assert result.change_set_arn == CHANGE_SET_ARN
        assert result.has_changes is True
        kwargs = cfn.create_change_set.call_args.kwargs
        assert kwargs["ChangeSetType"] == "UPDATE"
        assert kwargs["TemplateURL"] == TEMPLATE_URL
        assert kwargs["Parameters"] == [{"ParameterKey": "Env", "ParameterValue": "dev"}]
        assert kwargs["Tags"] == [{"Key": "RootStackName", "Value": "app"}]

    @pytest.mark.asyncio
    async def test_create_change_set_for_new_stack(self, manager, cfn, tmp_path) -> None:
        """Test a local template on a stack that does not exist."""
        template = tmp_path / "template.yaml"
        template.write_text("Resources: {}\n")
        cfn.describe_stacks.side_effect = missing_stack_error()
        cfn.get_template_summary.return_value = {
            "Capabilities": ["CAPABILITY_IAM"],
            "DeclaredTransforms": ["AWS::Serverless-2016-10-31"],
        }
        cfn.create_change_set.return_value = {"Id": CHANGE_SET_ARN}

        await manager.create_change_set(REGION, "app", str(template))

        kwargs = cfn.create_change_set.call_args.kwargs
        assert kwargs["ChangeSetType"] == "CREATE"
        assert kwargs["TemplateBody"] == "Resources: {}\n"
        assert kwargs["Capabilities"] == ["CAPABILITY_IAM", "CAPABILITY_AUTO_EXPAND"]
        assert "Tags" not in kwargs

    @pytest.mark.asyncio
    async def test_no_changes_is_not_an_error(self, manager, cfn) -> None:
        """Test that an empty change set is reported without changes."""
        cfn.create_change_set.return_value = {"Id": CHANGE_SET_ARN}
        cfn.describe_change_set.return_value = {
            "Status": "FAILED",
            "StatusReason": "The submitted information didn't contain changes. "
            "Submit different information to create a change set.",
        }

        result = await manager.create_change_set(REGION, "app", TEMPLATE_URL)

        assert result.has_changes is False

    @pytest.mark.asyncio
    async def test_other_failure_raises(self, manager, cfn) -> None:
        """Test that a failed change set raises its reason."""
        cfn.create_change_set.return_value = {"Id": CHANGE_SET_ARN}
        cfn.describe_change_set.return_value = {
            "Status": "FAILED",
            "StatusReason": "Template format error",
        }

        with pytest.raises(RuntimeError, match="Template format error"):
            await manager.create_change_set(REGION, "app", TEMPLATE_URL)

    @pytest.mark.asyncio
    async def test_limit_exceeded_is_retried_three_times(self, manager, cfn) -> None:
        """Test that the retry on the change set quota is bounded."""
        cfn.create_change_set.side_effect = limit_error()

        with pytest.raises(ClientError):
            await manager.create_change_set(REGION, "app", TEMPLATE_URL)

        assert cfn.create_change_set.call_count == 4
        assert cfn.delete_change_set.call_count == 4

    @pytest.mark.asyncio
    async def test_transient_limit_exceeded(self, manager, cfn) -> None:
        """Test that change sets are deleted and the creation retried."""
        cfn.create_change_set.side_effect = [limit_error(), {"Id": CHANGE_SET_ARN}]

        result = await manager.create_change_set(REGION, "app", TEMPLATE_URL)

        assert result.has_changes is True
        cfn.delete_change_set.assert_called_once_with(ChangeSetName="old-change-set")

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, manager, cfn) -> None:
        """Test that only the quota error is retried."""
        cfn.create_change_set.side_effect = client_error("ValidationError", "Bad template")

        with pytest.raises(ClientError):
            await manager.create_change_set(REGION, "app", TEMPLATE_URL)

        assert cfn.create_change_set.call_count == 1

    @pytest.mark.asyncio
    async def test_delete_change_sets_follows_pages(self, manager, cfn) -> None:
        """Test listing change sets across pages."""
        cfn.list_change_sets.side_effect = [
            {"Summaries": [{"ChangeSetId": "cs-1"}], "NextToken": "token"},
            {"Summaries": [{"ChangeSetId": "cs-2"}]},
        ]

        deleted = await manager.delete_change_sets(REGION, "app")

        assert sorted(deleted) == ["cs-1", "cs-2"]
        assert cfn.list_change_sets.call_args.kwargs == {"StackName": "app", "NextToken": "token"}
