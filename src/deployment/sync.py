"""
Write stack outputs to local JSON or .env files.
"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


class UnsupportedSyncFormatError(ValueError):
    """The output file extension is neither .json nor .env."""


def macro_case(key: str) -> str:
    """Convert ``apiUrl`` or ``ApiUrl`` to ``API_URL``."""
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
    key = re.sub(r"[^a-zA-Z0-9]+", "_", key)
    return key.strip("_").upper()


def _md5(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    return hashlib.md5(path.read_bytes()).hexdigest()


def _write_json(path: Path, outputs: Mapping[str, str]) -> None:
    data: Dict[str, str] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    data.update(outputs)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def _write_env(path: Path, outputs: Mapping[str, str]) -> None:
    values: Dict[str, Optional[str]] = {}
    if path.exists():
        values.update(dotenv_values(path))
    values.update({macro_case(k): v for k, v in outputs.items()})
    lines = [f"{key}={json.dumps(value or '')}" for key, value in values.items()]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


WRITERS = {".json": _write_json, ".env": _write_env}


def write_outputs(path: str, outputs: Mapping[str, str], no_override: bool = False) -> bool:
    """
    Merge stack outputs into a local file.

    Args:
        path: Destination, a ``.json`` or ``.env`` file
        outputs: Stack outputs
        no_override: Leave the file untouched if it already exists

    Returns:
        Whether the file content changed

    Raises:
        UnsupportedSyncFormatError: If the extension is not supported
    """
    target = Path(path)
    writer = WRITERS.get(target.suffix) or (
        _write_env if target.name == ".env" else None
    )
    if writer is None:
        raise UnsupportedSyncFormatError(f"Cannot sync outputs to {path}: unknown format")
    if no_override and target.exists():
        logger.info(f"{path} already exists, skipped")
        return False

    before = _md5(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    writer(target, outputs)
    changed = _md5(target) != before
    logger.info(f"{path} {'updated' if changed else 'unchanged'}")
    return changed
