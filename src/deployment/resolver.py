"""
Resolve stack specs against the outputs of the stacks they depend on.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional, Sequence

from cloudformation.stack_manager import StackManager
from cloudformation.statuses import StackStatus
from config import Outputs, ResolvedStackSpec, StackSpec

logger = logging.getLogger(__name__)

# ${stackName.OutputKey} or ${region|stackName.OutputKey}
PLACEHOLDER = re.compile(r"\$\{((?:[a-z0-9-]+\|)?[a-zA-Z][-a-zA-Z0-9]*)\.([a-zA-Z0-9]+)\}")


class ResolutionError(ValueError):
    """A value references an output that is not available."""


def substitute(value: str, outputs: Outputs) -> str:
    """
    Replace the ``${stackName.OutputKey}`` placeholders of a string.

    A stack may be qualified with its region, as in
    ``${us-east-1|stackName.OutputKey}``.

    Raises:
        ResolutionError: If a referenced output is missing
    """

    def replace(match: "re.Match[str]") -> str:
        stack_name, key = match.groups()
        try:
            return outputs[stack_name][key]
        except KeyError:
            raise ResolutionError(
                f"Output {key} of stack {stack_name} is not available"
            ) from None

    return PLACEHOLDER.sub(replace, value)


def _substitute_all(value: Any, outputs: Outputs) -> Any:
    if isinstance(value, str):
        return substitute(value, outputs)
    if isinstance(value, dict):
        return {k: _substitute_all(v, outputs) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_all(v, outputs) for v in value]
    return value


async def get_dependency_outputs(stack_manager: StackManager, spec: StackSpec) -> Outputs:
    """Get the outputs of the dependencies of a stack that exist, keyed by ``region|name``."""

    async def outputs_of(region: str, name: str) -> Optional[Dict[str, str]]:
        status = await stack_manager.get_stack_status(region, name)
        if status == StackStatus.NEW:
            logger.debug(f"Dependency {name} of {spec.stack_name} does not exist")
            return None
        return await stack_manager.get_stack_outputs(region, name)

    deps = list(spec.depends_on)
    results = await asyncio.gather(*(outputs_of(d.region, d.name) for d in deps))
    return {d.id: outputs for d, outputs in zip(deps, results) if outputs is not None}


def index_outputs(spec: StackSpec, outputs: Outputs) -> Outputs:
    """
    Make dependency outputs keyed by ``region|name`` also reachable by stack name.

    When dependencies in several regions share a name, the one in the
    region of ``spec`` owns the bare name.
    """
    indexed = dict(outputs)
    for dep in sorted(spec.depends_on, key=lambda d: d.region == spec.region):
        if dep.id in outputs:
            indexed[dep.name] = outputs[dep.id]
    return indexed


def resolve_with_outputs(
    spec: StackSpec, outputs: Outputs, root_tag_key: str = "RootStackName", strict: bool = True
) -> ResolvedStackSpec:
    """
    Compute the dynamic values of a stack spec.

    Args:
        spec: The stack spec
        outputs: Outputs of the stacks depended on, keyed by ``region|name``
        root_tag_key: Tag key receiving the stack name
        strict: Raise when a placeholder cannot be resolved; otherwise the
            destinations referencing it are left unset and the parameters
            are left empty

    Returns:
        The resolved, immutable spec

    Raises:
        ResolutionError: If ``strict`` and a referenced output is missing
    """
    outputs = index_outputs(spec, outputs)

    def resolve(value: Any) -> Any:
        if callable(value):
            return value(outputs)
        return _substitute_all(value, outputs)

    def lenient(value: Any, default: Any) -> Any:
        try:
            return resolve(value)
        except (ResolutionError, KeyError):
            if strict:
                raise
            logger.debug(f"Unresolved value {value!r} of {spec.stack_name}")
            return default

    parameters = spec.stack_parameters
    if isinstance(parameters, str):
        parameters = json.loads(parameters)
    tags = spec.stack_tags
    if isinstance(tags, str):
        tags = json.loads(tags)
    sync_path = spec.sync_path
    if isinstance(sync_path, str):
        sync_path = [sync_path]

    return ResolvedStackSpec(
        region=spec.region,
        stack_name=spec.stack_name,
        template_path=spec.template_path,
        depends_on=tuple(spec.depends_on),
        deploy_bucket=lenient(spec.deploy_bucket, None),
        deploy_ecr=lenient(spec.deploy_ecr, None),
        stack_parameters=dict(lenient(parameters, {}) or {}),
        stack_tags={**(tags or {}), root_tag_key: spec.stack_name},
        force_delete=spec.force_delete,
        force_upload=spec.force_upload,
        no_prune=spec.no_prune,
        cleanup=spec.cleanup,
        no_retained=bool(spec.no_retained),
        sync_path=tuple(sync_path),
        no_override=spec.no_override,
    )


async def resolve_stack(
    stack_manager: StackManager,
    spec: StackSpec,
    root_tag_key: str = "RootStackName",
    strict: bool = True,
) -> ResolvedStackSpec:
    """Resolve a stack spec against the current outputs of its dependencies."""
    if isinstance(spec, ResolvedStackSpec):
        return spec
    outputs = await get_dependency_outputs(stack_manager, spec)
    return resolve_with_outputs(spec, outputs, root_tag_key, strict)


async def resolve_stacks(
    stack_manager: StackManager,
    specs: Sequence[StackSpec],
    root_tag_key: str = "RootStackName",
    strict: bool = True,
) -> list:
    """Resolve several stack specs concurrently, keeping their order."""
    return list(
        await asyncio.gather(
            *(resolve_stack(stack_manager, s, root_tag_key, strict) for s in specs)
        )
    )
