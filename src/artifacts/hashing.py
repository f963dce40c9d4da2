"""
Content hashes of packaged files, ignoring archive metadata.
"""

import hashlib
import zipfile
from pathlib import Path
from typing import Union

CHUNK_SIZE = 64 * 1024


def md5_bytes(content: Union[str, bytes]) -> str:
    """Hash a string or bytes."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.md5(content).hexdigest()


def md5_file(path: Union[str, Path]) -> str:
    """Hash the bytes of a file."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def md5_zip(path: Union[str, Path]) -> str:
    """Hash the contents of a zip archive.

    Combines the md5 of every file entry, sorted by entry name, so timestamps and
    permissions stored in the archive do not affect the result.
    """
    hashes = []
    with zipfile.ZipFile(path) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            digest = hashlib.md5()
            with archive.open(info) as entry:
                for chunk in iter(lambda: entry.read(CHUNK_SIZE), b""):
                    digest.update(chunk)
            hashes.append((info.filename, digest.hexdigest()))
    combined = hashlib.md5()
    for _, entry_hash in sorted(hashes):
        combined.update(entry_hash.encode("ascii"))
    return combined.hexdigest()


def hash_contents(path: Union[str, Path]) -> str:
    """Hash a file's content, looking inside zip archives."""
    if str(path).endswith(".zip"):
        return md5_zip(path)
    return md5_file(path)
