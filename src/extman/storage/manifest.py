"""
extman Manifest Storage

Keeps the installed-extension manifest: a single JSON document mapping
extension keys to their records.
"""

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..core.exceptions import (
    AmbiguousMatchError,
    FilesystemError,
    MalformedManifestError,
    UserCancelled,
)
from ..core.logging import get_logger
from ..core.models import ExtensionRecord

logger = get_logger(__name__)

Manifest = Dict[str, ExtensionRecord]


class ManifestStore:
    """
    Durable key -> ExtensionRecord mapping.

    Reads are cached for the lifetime of the store (one command invocation).
    Every mutation holds an asyncio lock across a fresh read, the change and
    an atomic rewrite of the whole document, so concurrent targets of a batch
    never overwrite each other's records.
    """

    def __init__(self, path: Path) -> None:
        """
        Initialize the store.

        Args:
            path: Location of manifest.json
        """
        self.path = Path(path)
        self._manifest: Optional[Manifest] = None
        self._lock = asyncio.Lock()

    def _read(self) -> Optional[Manifest]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise MalformedManifestError(f"Invalid JSON in {self.path}: {e}")
        except OSError as e:
            raise MalformedManifestError(f"Failed to read {self.path}: {e}")

        if not isinstance(data, dict):
            raise MalformedManifestError(
                f"Manifest {self.path} must be a JSON object, got {type(data).__name__}"
            )
        try:
            return {
                key: ExtensionRecord.model_validate(value)
                for key, value in data.items()
            }
        except ValidationError as e:
            raise MalformedManifestError(f"Invalid record in {self.path}: {e}")

    def load(self) -> Optional[Manifest]:
        """
        Load the manifest.

        Returns:
            The manifest, or None when it does not exist or cannot be parsed
        """
        if self._manifest is not None:
            return self._manifest
        try:
            self._manifest = self._read()
        except MalformedManifestError as e:
            logger.error(f"Ignoring malformed manifest: {e}")
            return None
        return self._manifest

    def save(self, manifest: Manifest) -> None:
        """
        Write the whole manifest atomically.

        Raises:
            FilesystemError: If the document cannot be written
        """
        document = {key: record.to_document() for key, record in manifest.items()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".manifest-", suffix=".json", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise FilesystemError(
                f"Failed to write manifest: {e}", self.path, "write"
            )
        self._manifest = dict(manifest)

    def _load_for_update(self) -> Manifest:
        try:
            manifest = self._read()
        except MalformedManifestError as e:
            backup = self.path.with_name(self.path.name + ".bak")
            logger.warning(f"{e}; keeping a copy at {backup}")
            try:
                shutil.copy2(self.path, backup)
            except OSError as copy_error:
                raise FilesystemError(
                    f"Failed to back up malformed manifest: {copy_error}",
                    backup,
                    "copy",
                )
            manifest = None
        return dict(manifest or {})

    def get(self, key: str) -> Optional[ExtensionRecord]:
        """
        Look up a record by key, falling back to its title.

        Args:
            key: Manifest key or human-readable title
        """
        manifest = self.load()
        if not manifest:
            return None
        if key in manifest:
            return manifest[key]
        for record in manifest.values():
            if record.title == key:
                return record
        return None

    def find(self, name: str) -> List[str]:
        """Keys whose key, repository or title equals name."""
        manifest = self.load() or {}
        return [
            key
            for key, record in manifest.items()
            if key == name or record.repository == name or record.title == name
        ]

    def find_by_repository(self, repository: str) -> List[str]:
        manifest = self.load() or {}
        return [
            key for key, record in manifest.items() if record.repository == repository
        ]

    async def select(self, name: str, decisions: Optional[Any] = None) -> Optional[str]:
        """
        Resolve a user-supplied name to exactly one manifest key.

        Args:
            name: Key, repository or title
            decisions: Decision source used when several records match

        Returns:
            The selected key, or None if nothing matches

        Raises:
            AmbiguousMatchError: Several matches and no decision source
            UserCancelled: The user cancelled the selection
        """
        keys = self.find(name)
        if not keys:
            return None
        if len(keys) == 1:
            return keys[0]
        if decisions is None:
            # an exact key beats repository and title matches
            if name in keys:
                return name
            raise AmbiguousMatchError(name, keys)
        return await decisions.select(
            "multiple extensions found, please select one",
            keys,
            default=name if name in keys else keys[0],
        )

    async def upsert(self, key: str, fields: Dict[str, Any]) -> ExtensionRecord:
        """
        Merge fields into the record stored under key and persist.

        Fields missing from the partial value keep their previous values.

        Args:
            key: Manifest key
            fields: Partial record (attribute names or serialized names)

        Returns:
            The merged record
        """
        async with self._lock:
            manifest = self._load_for_update()
            current = manifest.get(key)
            merged: Dict[str, Any] = current.model_dump() if current else {}
            for name, value in fields.items():
                merged[ExtensionRecord.field_name(name)] = value
            record = ExtensionRecord.model_validate(merged)
            manifest[key] = record
            self.save(manifest)
            logger.debug(f"Manifest updated: {key}")
            return record

    async def remove(self, key: str) -> bool:
        """
        Delete one key and persist.

        Returns:
            True if the key existed
        """
        async with self._lock:
            if not self.path.exists():
                return False
            manifest = self._load_for_update()
            if key not in manifest:
                return False
            del manifest[key]
            self.save(manifest)
            logger.debug(f"Manifest entry removed: {key}")
            return True

    async def remove_repository(
        self, repository: str, decisions: Optional[Any] = None
    ) -> List[str]:
        """
        Delete every record of a repository (all monorepo packages).

        Args:
            repository: Repository id
            decisions: Decision source asked to confirm when several
                records match

        Returns:
            Removed keys

        Raises:
            UserCancelled: The confirmation was declined
        """
        keys = self.find_by_repository(repository)
        if len(keys) > 1 and decisions is not None:
            titles = ", ".join(self.load()[k].title for k in keys)
            if not await decisions.confirm(
                f"{titles} will be uninstalled, continue?", default=False
            ):
                raise UserCancelled(f"uninstall of {repository} declined")

        async with self._lock:
            if not self.path.exists():
                return []
            manifest = self._load_for_update()
            removed = [
                key
                for key, record in manifest.items()
                if record.repository == repository
            ]
            if not removed:
                return []
            for key in removed:
                del manifest[key]
            self.save(manifest)
            logger.debug(f"Manifest entries removed: {', '.join(removed)}")
            return removed
