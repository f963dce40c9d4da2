"""
Configuration management for stack operations.

Handles the orchestrator settings (rate limit, polling, tagging) and the stack
specifications read from YAML or JSON files.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar, Union

import jsonschema
import yaml

ENV_PREFIX = "STACKS_"

Outputs = Dict[str, Dict[str, str]]
# A value given as is, or computed from the outputs of the stacks depended on
Resolvable = Union[str, Callable[[Outputs], str], None]

T = TypeVar("T")


@dataclass
class OrchestratorConfig:
    """Settings shared by every stack operation."""

    # Max AWS requests per interval (seconds)
    rate_limit: int = 2
    rate_interval: float = 1.0

    # Delay between two status checks of a stack or change set (seconds)
    poll_interval: float = 1.0

    # Credentials
    profile: Optional[str] = None
    credential_timeout: float = 5.0

    # Tags of packaged files and retained resources
    root_tag_key: str = "RootStackName"
    tag_delimiter: str = ":"

    # Max keys per object storage delete request
    delete_batch_size: int = 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        """Create config from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def _from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Read ``STACKS_<FIELD>`` variables, converted to the field's type."""
    values: Dict[str, Any] = {}
    defaults = OrchestratorConfig()
    for f in fields(OrchestratorConfig):
        raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is None:
            continue
        default = getattr(defaults, f.name)
        if isinstance(default, bool):
            values[f.name] = raw.lower() in ("1", "true", "yes")
        elif isinstance(default, int):
            values[f.name] = int(raw)
        elif isinstance(default, float):
            values[f.name] = float(raw)
        else:
            values[f.name] = raw
    return values


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> OrchestratorConfig:
    """
    Load the orchestrator configuration.

    Defaults are overridden by the YAML file, then by environment variables.

    Args:
        config_file: Optional YAML file
        environ: Environment variables (``os.environ`` by default)

    Returns:
        The configuration
    """
    data: Dict[str, Any] = {}
    if config_file and Path(config_file).exists():
        with open(config_file, "r") as f:
            data.update(yaml.safe_load(f) or {})
    data.update(_from_env(os.environ if environ is None else environ))
    return OrchestratorConfig.from_dict(data)


@dataclass(frozen=True)
class Dependency:
    """Reference to a stack depended on."""

    region: str
    name: str

    @property
    def id(self) -> str:
        return f"{self.region}|{self.name}"


@dataclass
class StackSpec:
    """A stack to operate on, before its dependencies are resolved."""

    region: str
    stack_name: str
    template_path: Optional[str] = None
    depends_on: List[Dependency] = field(default_factory=list)
    deploy_bucket: Resolvable = None
    deploy_ecr: Resolvable = None
    stack_parameters: Union[Dict[str, Any], str, Callable[[Outputs], Dict[str, Any]]] = field(
        default_factory=dict
    )
    stack_tags: Union[Dict[str, str], str] = field(default_factory=dict)
    force_delete: bool = False
    force_upload: bool = False
    no_prune: bool = False
    cleanup: bool = False
    no_retained: Optional[bool] = None
    sync_path: Union[str, List[str]] = field(default_factory=list)
    no_override: bool = False

    def __post_init__(self):
        self.depends_on = [
            d if isinstance(d, Dependency) else Dependency(**d) for d in self.depends_on
        ]
        if self.no_retained is None:
            self.no_retained = not self.cleanup

    @property
    def id(self) -> str:
        return f"{self.region}|{self.stack_name}"

    def depends_on_stack(self, other: "StackSpec") -> bool:
        """Check whether this stack depends on another one."""
        return Dependency(other.region, other.stack_name) in self.depends_on


@dataclass(frozen=True)
class ResolvedStackSpec:
    """A stack whose dynamic values were computed from its dependencies' outputs."""

    region: str
    stack_name: str
    template_path: Optional[str]
    depends_on: tuple
    deploy_bucket: Optional[str]
    deploy_ecr: Optional[str]
    stack_parameters: Dict[str, Any]
    stack_tags: Dict[str, str]
    force_delete: bool
    force_upload: bool
    no_prune: bool
    cleanup: bool
    no_retained: bool
    sync_path: tuple
    no_override: bool

    @property
    def id(self) -> str:
        return f"{self.region}|{self.stack_name}"

    def with_template(self, template_path: str) -> "ResolvedStackSpec":
        """Copy the spec pointing at another (packaged) template."""
        return replace(self, template_path=template_path)


def dedupe(stacks: Iterable[T]) -> List[T]:
    """Remove stacks listed more than once (same region and name)."""
    seen = set()
    unique = []
    for stack in stacks:
        if stack.id not in seen:
            seen.add(stack.id)
            unique.append(stack)
    return unique


# Schema of the stack specification files; keys are camelCase as in the files
STACK_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["region", "stackName"],
    "properties": {
        "region": {"type": "string", "minLength": 1},
        "stackName": {"type": "string", "pattern": "^[a-zA-Z][-a-zA-Z0-9]*$"},
        "templatePath": {"type": "string"},
        "dependsOn": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["region", "name"],
                "properties": {"region": {"type": "string"}, "name": {"type": "string"}},
                "additionalProperties": False,
            },
        },
        "deployBucket": {"type": "string"},
        "deployEcr": {"type": "string"},
        "stackParameters": {"type": ["object", "string"]},
        "stackTags": {
            "oneOf": [
                {"type": "object", "additionalProperties": {"type": "string"}},
                {"type": "string"},
            ]
        },
        "forceDelete": {"type": "boolean"},
        "forceUpload": {"type": "boolean"},
        "noPrune": {"type": "boolean"},
        "cleanup": {"type": "boolean"},
        "noRetained": {"type": "boolean"},
        "syncPath": {"type": ["string", "array"], "items": {"type": "string"}},
        "noOverride": {"type": "boolean"},
    },
    "additionalProperties": False,
}

STACKS_FILE_SCHEMA: Dict[str, Any] = {
    "oneOf": [
        {"type": "array", "items": STACK_SCHEMA},
        {
            "type": "object",
            "required": ["stacks"],
            "properties": {"stacks": {"type": "array", "items": STACK_SCHEMA}},
        },
    ]
}


def _snake_case(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)


def stack_spec_from_dict(data: Mapping[str, Any], base_dir: Optional[Path] = None) -> StackSpec:
    """Create a stack spec from a camelCase mapping.

    Relative template paths are resolved against ``base_dir``.
    """
    values = {_snake_case(k): v for k, v in data.items()}
    if base_dir is not None and values.get("template_path"):
        values["template_path"] = str((base_dir / values["template_path"]).resolve())
    return StackSpec(**values)


def load_stack_specs(path: Union[str, Path]) -> List[StackSpec]:
    """
    Load stack specifications from a YAML or JSON file.

    The file holds a list of stacks, or a mapping with a ``stacks`` list.

    Args:
        path: Path to the file

    Returns:
        The stack specs

    Raises:
        jsonschema.ValidationError: If the file content is invalid
    """
    path = Path(path)
    with open(path, "r") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    jsonschema.validate(data, STACKS_FILE_SCHEMA)
    stacks = data["stacks"] if isinstance(data, dict) else data
    return [stack_spec_from_dict(stack, path.parent) for stack in stacks]


# Singleton instance
_config: Optional[OrchestratorConfig] = None


def get_config(config_file: Optional[Union[str, Path]] = None) -> OrchestratorConfig:
    """Get or load the orchestrator configuration."""
    global _config
    if _config is None or config_file is not None:
        _config = load_config(config_file)
    return _config
