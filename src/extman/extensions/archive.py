"""
Archive Unpacking

Reads repository zip archives into entries and writes them below a version
directory, dropping the single top-level folder GitHub archives contain.
"""

import io
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List

from ..core.exceptions import FilesystemError
from ..core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    """One member of an archive."""

    path: str
    is_directory: bool
    content: bytes = b""


def unpack(data: bytes) -> List[ArchiveEntry]:
    """
    Read every member of a zip archive.

    Raises:
        FilesystemError: If data is not a readable zip archive
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return [
                ArchiveEntry(
                    path=info.filename,
                    is_directory=info.is_dir(),
                    content=b"" if info.is_dir() else zf.read(info),
                )
                for info in zf.infolist()
            ]
    except zipfile.BadZipFile as e:
        raise FilesystemError(f"Invalid archive: {e}", "<download>", "unpack")


def strip_root(path: str) -> str:
    """Drop the first path component ('owner-repo-sha/src/x' -> 'src/x')."""
    return "/".join(PurePosixPath(path).parts[1:])


def extract(entries: List[ArchiveEntry], destination: Path) -> int:
    """
    Write entries below destination, rebased past the archive root folder.

    Returns:
        Number of files written

    Raises:
        FilesystemError: On write failures or entries escaping destination
    """
    destination = Path(destination)
    root = destination.resolve()
    written = 0
    try:
        destination.mkdir(parents=True, exist_ok=True)
        for entry in entries:
            relative = strip_root(entry.path)
            if not relative:
                continue
            target = (destination / relative).resolve()
            if target != root and root not in target.parents:
                raise FilesystemError(
                    f"Archive entry escapes extension directory: {entry.path}",
                    target,
                    "unpack",
                )
            if entry.is_directory:
                target.mkdir(parents=True, exist_ok=True)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(entry.content)
                written += 1
    except OSError as e:
        raise FilesystemError(
            f"Failed to unpack archive: {e}", e.filename or destination, "unpack"
        )
    logger.debug(f"Extracted {written} files to {destination}")
    return written
