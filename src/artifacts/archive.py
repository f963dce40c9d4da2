"""Create reproducible archives of artifact directories."""

import io
import json
import logging
import os
import tarfile
import tomllib
import zipfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

SKIPPED_DIRS = {".git", ".hg", ".svn", "__pycache__", ".pytest_cache", ".mypy_cache"}
SKIPPED_SUFFIXES = (".pyc", ".pyo", ".DS_Store", ".swp")

# Earliest timestamp a zip entry can hold
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def list_files(source_dir: Union[str, Path]) -> List[Tuple[Path, str]]:
    """List the files of a directory with their archive names, sorted by name.

    Args:
        source_dir: Directory to archive

    Returns:
        Pairs of (file path, path inside the archive)
    """
    source_dir = Path(source_dir)
    entries = []
    for root, dirs, files in os.walk(source_dir):
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRS)
        for name in files:
            if name.endswith(SKIPPED_SUFFIXES):
                continue
            file_path = Path(root) / name
            entries.append((file_path, file_path.relative_to(source_dir).as_posix()))
    return sorted(entries, key=lambda entry: entry[1])


def _mode(path: Path) -> int:
    return 0o755 if os.access(path, os.X_OK) else 0o644


def create_zip(source_dir: Union[str, Path], output_file: Union[str, Path]) -> Path:
    """Zip a directory so identical contents always produce identical bytes.

    Entries are sorted and stored with a fixed timestamp and normalized
    permissions.
    """
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(output_file, "w", zipfile.ZIP_DEFLATED) as zipf:
        for file_path, arcname in list_files(source_dir):
            info = zipfile.ZipInfo(arcname, date_time=ZIP_EPOCH)
            info.external_attr = (0o100000 | _mode(file_path)) << 16
            info.compress_type = zipfile.ZIP_DEFLATED
            zipf.writestr(info, file_path.read_bytes())

    size_mb = output_file.stat().st_size / (1024 * 1024)
    logger.debug(f"Archive created: {output_file} ({size_mb:.2f} MB)")
    return output_file


def _tar_entries(
    source: Union[str, Path], arcname: Optional[str] = None
) -> Iterator[Tuple[Path, str]]:
    source = Path(source)
    if source.is_dir():
        yield from list_files(source)
    else:
        yield source, arcname or source.name


def create_tar(
    source: Union[str, Path], output_file: Union[str, Path], arcname: Optional[str] = None
) -> Path:
    """Create a reproducible tarball from a directory or a single file.

    A single file (e.g. a Dockerfile) is stored at the root of the archive.
    """
    output_file = Path(output_file)
    with tarfile.open(output_file, "w") as tar:
        for file_path, name in _tar_entries(source, arcname):
            data = file_path.read_bytes()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = _mode(file_path)
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return output_file


def _find_up(start: Path, names: List[str]) -> Optional[Path]:
    for directory in [start, *start.parents]:
        for name in names:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def _read_package_metadata(path: Path) -> Dict[str, str]:
    """Read the name and version of a package.json or pyproject.toml."""
    if path.name == "package.json":
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    else:
        with open(path, "rb") as f:
            data = tomllib.load(f).get("project", {})
    return {"name": data.get("name") or "", "version": str(data.get("version") or "")}


def archive_basename(path: Union[str, Path]) -> str:
    """
    Build a stable base name for an artifact, used as image tag.

    The name is made of the enclosing package's name, the artifact directory
    name when it is nested inside the package (or no package name exists) and
    the package version.

    Args:
        path: Artifact file or directory

    Returns:
        The base name, e.g. ``my-app-worker-1.2.0``
    """
    path = Path(path).resolve()
    root = path if path.is_dir() else path.parent
    package_file = _find_up(root, ["package.json", "pyproject.toml"])
    metadata = _read_package_metadata(package_file) if package_file else {}
    prefix = metadata.get("name", "")
    version = metadata.get("version", "")
    nested = package_file is not None and package_file.parent != root
    suffix = root.name if not prefix or nested else ""
    return "".join(
        [f"{prefix}-" if prefix else "", f"{suffix}-" if suffix else "", version]
    )
