"""
Discover the local files referenced by a template and its nested templates.
"""

import logging
import os
from typing import Any, Dict, Iterator, Mapping, Tuple

from cloudformation.template import dump_template, load_template

from .files import Destination, File
from .properties import get_descriptor

logger = logging.getLogger(__name__)

NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"
NESTED_STACK_PROPERTY = "TemplateURL"


def full_path(path: str, relative_to: str) -> str:
    """Resolve a path written in a template relative to the template's directory."""
    base = relative_to if os.path.isdir(relative_to) else os.path.dirname(relative_to)
    return os.path.normpath(os.path.join(os.path.abspath(base), path))


def iter_properties(template: Mapping[str, Any]) -> Iterator[Tuple[str, str, str, Any]]:
    """Yield (logical id, resource type, property name, value) of every resource property."""
    for logical_id, resource in (template.get("Resources") or {}).items():
        if not isinstance(resource, dict):
            continue
        properties = resource.get("Properties") or {}
        if not isinstance(properties, dict):
            continue
        for prop_name, value in properties.items():
            yield logical_id, resource.get("Type", ""), prop_name, value


def is_local_nested_template(resource_type: str, prop_name: str, value: Any) -> bool:
    return (
        resource_type == NESTED_STACK_TYPE
        and prop_name == NESTED_STACK_PROPERTY
        and isinstance(value, str)
        and not value.startswith("http")
    )


def get_files_to_package(template_path: str) -> Dict[str, File]:
    """
    List the local files to package for a template, including nested templates.

    Every template is registered as a file to package to S3 which depends on
    the files it references. Templates are walked with a worklist rather than
    by recursion.

    Args:
        template_path: Path to the root template

    Returns:
        Files keyed by absolute path, or an empty mapping when the root template
        references no local file and does not need packaging
    """
    root = os.path.abspath(template_path)
    to_package: Dict[str, File] = {}
    worklist = [root]
    visited = set()
    while worklist:
        current = worklist.pop()
        if current in visited:
            continue
        visited.add(current)
        to_package.setdefault(
            current,
            File(
                path=current,
                resource_type=NESTED_STACK_TYPE,
                prop_name=NESTED_STACK_PROPERTY,
                package_to=Destination.S3,
            ),
        )
        template = load_template(current)
        for _, resource_type, prop_name, value in iter_properties(template):
            if is_local_nested_template(resource_type, prop_name, value):
                worklist.append(full_path(value, current))
            candidates = get_descriptor(resource_type, prop_name).candidates(value)
            for destination, paths in candidates.items():
                for path in paths:
                    file_path = full_path(path, current)
                    if file_path not in to_package:
                        to_package[file_path] = File(
                            path=file_path,
                            resource_type=resource_type,
                            prop_name=prop_name,
                            package_to=destination,
                        )
                    if file_path not in to_package[current].depends_on:
                        to_package[current].depends_on.append(file_path)

    if list(to_package) == [root]:
        return {}
    return to_package


def update_template(template_path: str, dependencies: Mapping[str, File]) -> str:
    """
    Rewrite the properties of a template to point at packaged locations.

    Args:
        template_path: Path to the template to rewrite
        dependencies: Packaged files the template depends on

    Returns:
        The rewritten template as YAML
    """
    template = load_template(template_path)
    by_original_path = {f.original_path: f for f in dependencies.values()}
    for logical_id, resource_type, prop_name, value in list(iter_properties(template)):
        descriptor = get_descriptor(resource_type, prop_name)
        candidates = descriptor.candidates(value)
        if not candidates:
            continue
        locations: Dict[str, str] = {}
        for paths in candidates.values():
            for path in paths:
                packaged = by_original_path.get(full_path(path, template_path))
                if packaged is not None and packaged.location:
                    locations[path] = packaged.location
        properties = template["Resources"][logical_id]["Properties"]
        properties[prop_name] = descriptor.rewrite(value, locations)
    return dump_template(template)
