"""
Read and write CloudFormation templates in YAML or JSON.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml


class CloudFormationYAMLLoader(yaml.SafeLoader):
    """YAML loader that can handle CloudFormation intrinsic functions."""

    pass


# Timestamps such as AWSTemplateFormatVersion must stay strings
CloudFormationYAMLLoader.add_constructor(
    "tag:yaml.org,2002:timestamp",
    lambda loader, node: loader.construct_scalar(node),
)


def _construct_node(loader: yaml.SafeLoader, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        return loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    elif isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node, deep=True)
    raise yaml.constructor.ConstructorError(
        None, None, f"could not determine a constructor for the tag {node.tag}",
        node.start_mark,
    )


def cfn_tag_constructor(loader, tag_suffix, node):
    """Convert a short-form intrinsic function into its long form."""
    value = _construct_node(loader, node)
    if tag_suffix in ("Ref", "Condition"):
        return {tag_suffix: value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        value = value.split(".", 1)
    return {f"Fn::{tag_suffix}": value}


# Register all CloudFormation intrinsic functions
cfn_tags = [
    'Ref', 'GetAtt', 'GetAZs', 'ImportValue', 'Join', 'Select',
    'Split', 'Sub', 'Transform', 'Base64', 'Cidr', 'FindInMap',
    'GetParam', 'Condition', 'Equals', 'If', 'Not', 'And', 'Or',
    'ToJsonString', 'Length',
]

for tag in cfn_tags:
    CloudFormationYAMLLoader.add_constructor(
        f'!{tag}',
        lambda loader, node, tag=tag: cfn_tag_constructor(loader, tag, node)
    )


class CloudFormationYAMLDumper(yaml.SafeDumper):
    """Dumper keeping long strings such as inlined code readable."""

    pass


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


CloudFormationYAMLDumper.add_representer(str, _represent_str)


def parse_template(body: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Parse a template body; JSON is a subset of YAML.

    boto3 already decodes JSON bodies returned by GetTemplate into a dict.
    """
    if isinstance(body, dict):
        return body
    template = yaml.load(body, Loader=CloudFormationYAMLLoader)
    if not isinstance(template, dict):
        raise ValueError("Template is not a mapping")
    return template


def load_template(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a template from a local file."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_template(f.read())


def dump_template(template: Dict[str, Any]) -> str:
    """Serialize a template to YAML, preserving key order."""
    return yaml.dump(
        template,
        Dumper=CloudFormationYAMLDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
