"""
Extension Directory Layout

Extensions live at ``<root>/<extension name>/<version>/``; the per-extension
base directory is the anchor for cleanup and uninstall.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import List

from ..core.exceptions import FilesystemError
from ..core.logging import get_logger
from .archive import ArchiveEntry, extract

logger = get_logger(__name__)


def version_dirname(version: str) -> str:
    """Directory name of a version ('feature/x' -> 'feature%2Fx')."""
    return version.replace("%", "%25").replace("/", "%2F")


class ExtensionLayout:
    """Computes and maintains extension directories under one root."""

    def __init__(self, root: Path):
        """
        Initialize the layout.

        Args:
            root: Extensions root directory
        """
        self.root = Path(root)

    def ensure_root(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Failed to create extensions root: {e}", self.root, "mkdir"
            )
        return self.root

    def base_path(self, name: str) -> Path:
        path = self.root / name
        if self.root.resolve() not in path.resolve().parents:
            raise FilesystemError(
                f"Extension name escapes the extensions root: {name}", path, "resolve"
            )
        return path

    def version_path(self, name: str, version: str) -> Path:
        return self.base_path(name) / version_dirname(version)

    def write_version(
        self, name: str, version: str, entries: List[ArchiveEntry]
    ) -> Path:
        """
        Unpack archive entries into the version directory.

        Entries are extracted into a staging directory beside the version
        directory and only swapped in once extraction succeeded, so an
        existing version directory survives a failed write.

        Raises:
            FilesystemError: If extraction or the swap failed
        """
        path = self.version_path(name, version)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=path.parent))
        except OSError as e:
            raise FilesystemError(f"Failed to stage {path}: {e}", path, "unpack")

        try:
            extract(entries, staging)
        except FilesystemError:
            self._rmtree(staging, "unpack")
            raise

        previous = staging.with_name(f".previous-{staging.name}")
        try:
            if path.exists():
                os.replace(path, previous)
            os.replace(staging, path)
        except OSError as e:
            if previous.exists() and not path.exists():
                os.replace(previous, path)
            self._rmtree(staging, "unpack")
            raise FilesystemError(f"Failed to replace {path}: {e}", path, "unpack")
        self._rmtree(previous, "remove")
        return path

    def prune_stale_versions(self, name: str, keep_version: str) -> List[Path]:
        """
        Delete every version directory of name except keep_version.

        A missing base directory is a no-op.

        Returns:
            Deleted directories

        Raises:
            FilesystemError: If any stale directory could not be removed;
                the others are still removed
        """
        base = self.base_path(name)
        if not base.is_dir():
            return []

        keep = version_dirname(keep_version)
        removed: List[Path] = []
        failures: List[str] = []
        for child in sorted(base.iterdir()):
            if not child.is_dir() or child.name == keep:
                continue
            try:
                shutil.rmtree(child)
                removed.append(child)
                logger.info(f"Removed stale version {child.name} of {name}")
            except OSError as e:
                failures.append(f"{child}: {e}")

        if failures:
            raise FilesystemError(
                f"Failed to prune stale versions of {name}: {'; '.join(failures)}",
                base,
                "prune",
            )
        return removed

    def remove(self, name: str) -> bool:
        """
        Remove the base directory of name recursively.

        Returns:
            False if it did not exist
        """
        base = self.base_path(name)
        if not base.exists():
            return False
        self._rmtree(base, "uninstall")
        # drop the now-empty owner directory of "owner/name"
        parent = base.parent
        if parent != self.root and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
        return True

    def _rmtree(self, path: Path, operation: str) -> None:
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise FilesystemError(f"Failed to remove {path}: {e}", path, operation)
