"""
Tests for configuration management.
"""

import json
from pathlib import Path

import jsonschema
import pytest
import yaml

from config import (
    Dependency,
    OrchestratorConfig,
    StackSpec,
    dedupe,
    load_config,
    load_stack_specs,
    stack_spec_from_dict,
)


class TestOrchestratorConfig:
    """Test OrchestratorConfig dataclass."""

    def test_defaults(self):
        config = OrchestratorConfig()

        assert config.rate_limit == 2
        assert config.rate_interval == 1.0
        assert config.root_tag_key == "RootStackName"
        assert config.tag_delimiter == ":"
        assert config.delete_batch_size == 1000

    def test_from_dict_ignores_unknown_keys(self):
        config = OrchestratorConfig.from_dict({"rate_limit": 5, "unknown": True})
        assert config.rate_limit == 5
        assert config.to_dict()["rate_limit"] == 5

    def test_load_config_file_and_environment(self, tmp_path):
        """Test that environment variables override the file."""
        config_file = tmp_path / "stacks.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"rate_limit": 4, "poll_interval": 3, "profile": "dev"}, f)

        config = load_config(
            config_file, environ={"STACKS_RATE_LIMIT": "10", "STACKS_RATE_INTERVAL": "0.5"}
        )

        assert config.rate_limit == 10
        assert config.rate_interval == 0.5
        assert config.poll_interval == 3
        assert config.profile == "dev"

    def test_missing_config_file(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml", environ={})
        assert config == OrchestratorConfig()


class TestStackSpecs:
    """Test loading stack specifications."""

    def test_defaults(self):
        """Test that retained resources are kept unless cleanup is enabled."""
        assert StackSpec(region="us-east-1", stack_name="app").no_retained is True
        spec = StackSpec(region="us-east-1", stack_name="app", cleanup=True)
        assert spec.no_retained is False
        assert StackSpec("us-east-1", "app", cleanup=True, no_retained=True).no_retained

    def test_from_camel_case(self, tmp_path):
        spec = stack_spec_from_dict(
            {
                "region": "us-east-1",
                "stackName": "app",
                "templatePath": "templates/app.yaml",
                "dependsOn": [{"region": "us-east-1", "name": "infra"}],
                "forceDelete": True,
                "syncPath": ".env",
            },
            base_dir=tmp_path,
        )

        assert spec.template_path == str((tmp_path / "templates" / "app.yaml").resolve())
        assert spec.depends_on == [Dependency("us-east-1", "infra")]
        assert spec.force_delete is True
        assert spec.sync_path == ".env"
        assert spec.id == "us-east-1|app"

    def test_depends_on_stack(self):
        infra = StackSpec(region="us-east-1", stack_name="infra")
        app = StackSpec(
            region="us-east-1", stack_name="app", depends_on=[{"region": "us-east-1", "name": "infra"}]
        )
        assert app.depends_on_stack(infra)
        assert not infra.depends_on_stack(app)

    def test_dedupe(self):
        """Test that a stack is kept once per region and name, in order."""
        stacks = [
            StackSpec("us-east-1", "app", force_delete=True),
            StackSpec("eu-west-1", "app"),
            StackSpec("us-east-1", "app"),
        ]

        unique = dedupe(stacks)

        assert [s.id for s in unique] == ["us-east-1|app", "eu-west-1|app"]
        assert unique[0].force_delete is True
        assert Dependency("eu-west-1", "app").id == unique[1].id

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "stacks.yaml"
        path.write_text(
            "stacks:\n"
            "  - region: us-east-1\n"
            "    stackName: infra\n"
            "    templatePath: infra.yaml\n"
            "  - region: us-east-1\n"
            "    stackName: app\n"
            "    deployBucket: \"${infra.Bucket}\"\n"
            "    dependsOn:\n"
            "      - {region: us-east-1, name: infra}\n"
        )

        specs = load_stack_specs(path)

        assert [s.stack_name for s in specs] == ["infra", "app"]
        assert specs[0].template_path == str(Path(tmp_path / "infra.yaml").resolve())
        assert specs[1].deploy_bucket == "${infra.Bucket}"

    def test_load_json_list(self, tmp_path):
        path = tmp_path / "stacks.json"
        path.write_text(json.dumps([{"region": "eu-west-1", "stackName": "app", "cleanup": True}]))

        specs = load_stack_specs(path)

        assert specs[0].region == "eu-west-1"
        assert specs[0].cleanup is True

    @pytest.mark.parametrize(
        "stack",
        [
            {"region": "us-east-1"},
            {"region": "us-east-1", "stackName": "1-invalid"},
            {"region": "us-east-1", "stackName": "app", "forceDelete": "yes"},
            {"region": "us-east-1", "stackName": "app", "unknownKey": 1},
        ],
    )
    def test_invalid_specs(self, tmp_path, stack):
        """Test that invalid files are rejected before anything runs."""
        path = tmp_path / "stacks.json"
        path.write_text(json.dumps([stack]))

        with pytest.raises(jsonschema.ValidationError):
            load_stack_specs(path)
