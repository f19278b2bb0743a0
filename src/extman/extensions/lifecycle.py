"""
Extension Lifecycle

Drives install, update and uninstall of extensions: version resolution,
download and unpack, stale version cleanup, manifest updates and the
package manager build.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..core.config import ExtmanConfig
from ..core.exceptions import (
    ExtensionMetadataError,
    ExtmanException,
    UserCancelled,
)
from ..core.logging import get_logger, log_structured
from ..core.models import ResolvedVersion
from ..storage.manifest import ManifestStore
from .archive import unpack
from .decisions import DecisionSource
from .layout import ExtensionLayout
from .models import Action, InstallTarget, LifecycleState, TargetOutcome
from .resolver import VersionResolver
from .toolchain import Toolchain

logger = get_logger(__name__)

# package.json fields kept in the record besides the modeled ones
EXTRA_METADATA_FIELDS = ("name", "icon", "platforms", "keywords", "homepage")


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


class ExtensionLifecycle:
    """
    Orchestrates install / update / uninstall of extensions.

    Each target runs its steps strictly in order; targets of a batch run
    concurrently and only meet at the manifest store, which serializes
    writes. A failing or cancelled target never stops its siblings.
    """

    def __init__(
        self,
        config: ExtmanConfig,
        manifest: ManifestStore,
        layout: ExtensionLayout,
        resolver: VersionResolver,
        remote: Any,
        decisions: DecisionSource,
        toolchain: Optional[Toolchain] = None,
    ):
        """
        Initialize the lifecycle.

        Args:
            config: extman configuration
            manifest: Manifest store
            layout: Directory layout
            resolver: Version resolver
            remote: Remote client providing fetch_bytes and branch_archive_url
            decisions: Source of user decisions
            toolchain: Package manager runner (None skips the build step)
        """
        self.config = config
        self.manifest = manifest
        self.layout = layout
        self.resolver = resolver
        self.remote = remote
        self.decisions = decisions
        self.toolchain = toolchain

    @classmethod
    def from_config(
        cls, config: ExtmanConfig, remote: Any, decisions: DecisionSource
    ) -> "ExtensionLifecycle":
        """Wire a lifecycle from configuration."""
        toolchain = None
        if config.run_build:
            toolchain = Toolchain(
                decisions,
                dev_args=config.dev_args,
                success_message=config.dev_success_message,
            )
        return cls(
            config=config,
            manifest=ManifestStore(config.manifest_path),
            layout=ExtensionLayout(config.root_path),
            resolver=VersionResolver(remote, decisions),
            remote=remote,
            decisions=decisions,
            toolchain=toolchain,
        )

    async def _guard(self, outcome: TargetOutcome, step: Any) -> TargetOutcome:
        try:
            await step
        except UserCancelled as e:
            outcome.state = LifecycleState.ABORTED
            outcome.cancelled = True
            outcome.error = str(e)
            logger.warning(f"{outcome.action.value} {outcome.target}: {e}")
        except ExtmanException as e:
            outcome.state = LifecycleState.ABORTED
            outcome.error = str(e)
            logger.error(f"{outcome.action.value} {outcome.target} failed: {e}")
        except Exception as e:
            outcome.state = LifecycleState.ABORTED
            outcome.error = f"{type(e).__name__}: {e}"
            logger.exception(f"{outcome.action.value} {outcome.target} failed")
        log_structured(
            logger,
            logging.INFO,
            f"{outcome.action.value} finished",
            target=outcome.target,
            state=outcome.state.value,
            version=outcome.version,
        )
        return outcome

    # ------------------------------------------------------------------
    # install

    async def install(self, target: InstallTarget) -> TargetOutcome:
        """
        Install one extension.

        Returns:
            Outcome in state READY, or ABORTED with the error
        """
        outcome = TargetOutcome(target=target.repo, action=Action.INSTALL)
        return await self._guard(outcome, self._install(target, outcome))

    async def install_many(self, targets: List[InstallTarget]) -> List[TargetOutcome]:
        """Install several extensions concurrently."""
        seen: Dict[str, InstallTarget] = {}
        for target in targets:
            seen.setdefault(target.repo, target)
        return list(await asyncio.gather(*(self.install(t) for t in seen.values())))

    async def _install(self, target: InstallTarget, outcome: TargetOutcome) -> None:
        resolved = await self.resolver.pick_version(
            target.repo, tag=target.tag, branch=target.branch
        )
        await self._install_resolved(target, resolved, outcome)

    async def _install_resolved(
        self,
        target: InstallTarget,
        resolved: ResolvedVersion,
        outcome: TargetOutcome,
    ) -> None:
        repo = target.repo
        version = resolved.version
        outcome.state = LifecycleState.RESOLVED
        outcome.version = version

        self.layout.ensure_root()
        version_path = self.layout.version_path(repo, version)
        if version_path.exists() and not (target.overwrite or self.config.assume_yes):
            if not await self.decisions.confirm(
                f"{repo}@{version} already exists, overwrite it?", default=False
            ):
                raise UserCancelled(f"{repo}@{version} already installed")

        # an installed version directory is only replaced after a complete download
        logger.info(f"Downloading {repo}@{version}")
        data = await self.remote.fetch_bytes(resolved.download_url)
        entries = await asyncio.to_thread(unpack, data)
        await asyncio.to_thread(self.layout.write_version, repo, version, entries)
        outcome.state = LifecycleState.DOWNLOADED

        await asyncio.to_thread(self.layout.prune_stale_versions, repo, version)

        packages = _unique(p.strip("/") for p in target.packages if p.strip("/"))
        for package in packages or [""]:
            key = await self._update_record(repo, package, version_path, resolved)
            outcome.keys.append(key)
        outcome.state = LifecycleState.CONFIG_UPDATED

        if self.toolchain is not None:
            await self.toolchain.run_install(version_path)
            for package in packages or [""]:
                await self.toolchain.run_dev(version_path / package)

        outcome.state = LifecycleState.READY
        outcome.changed = True
        outcome.message = f"installed {repo}@{version}"
        logger.info(outcome.message)

    def _read_package_metadata(self, directory: Path) -> Dict[str, Any]:
        path = directory / "package.json"
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ExtensionMetadataError(f"No package.json found in {directory}")
        except (OSError, ValueError) as e:
            raise ExtensionMetadataError(f"Unreadable {path}: {e}")
        if not isinstance(data, dict):
            raise ExtensionMetadataError(f"{path} must contain a JSON object")
        return data

    async def _update_record(
        self,
        repo: str,
        package: str,
        version_path: Path,
        resolved: ResolvedVersion,
    ) -> str:
        directory = version_path / package if package else version_path
        data = self._read_package_metadata(directory)
        key = f"{repo}/{package}" if package else repo

        license_ = data.get("license")
        if isinstance(license_, dict):
            license_ = license_.get("type")

        fields: Dict[str, Any] = {
            name: data[name] for name in EXTRA_METADATA_FIELDS if name in data
        }
        fields.update(
            {
                "repository": repo,
                "package": package or None,
                "title": data.get("title") or data.get("name") or repo,
                "url": f"https://github.com/{repo}",
                "description": data.get("description"),
                "license": license_,
                "author": data.get("author"),
                "categories": data.get("categories"),
                "contributors": data.get("contributors"),
                "commands": data.get("commands"),
                "preferences": data.get("preferences"),
                "dependencies": data.get("dependencies"),
                "devDependencies": data.get("devDependencies"),
                "optionalDependencies": data.get("optionalDependencies"),
                "peerDependencies": data.get("peerDependencies"),
                "tag": resolved.tag,
                "branch": resolved.branch,
                "commit": resolved.commit.model_dump() if resolved.commit else None,
            }
        )
        try:
            await self.manifest.upsert(key, fields)
        except ValidationError as e:
            raise ExtensionMetadataError(
                f"Invalid extension metadata in {directory}: {e}"
            )
        return key

    # ------------------------------------------------------------------
    # update

    async def update(self, name: str) -> TargetOutcome:
        """
        Update one installed extension if a newer version exists.

        Returns:
            Outcome in state UPDATED, READY (already current) or ABORTED
        """
        outcome = TargetOutcome(target=name, action=Action.UPDATE)
        return await self._guard(outcome, self._update(name, outcome))

    async def update_many(self, names: List[str]) -> List[TargetOutcome]:
        return list(await asyncio.gather(*(self.update(n) for n in _unique(names))))

    async def update_all(self) -> List[TargetOutcome]:
        """Update every installed repository (monorepo packages together)."""
        manifest = self.manifest.load() or {}
        repositories = _unique(record.repository for record in manifest.values())
        return await self.update_many(repositories)

    def _packages_of(self, repo: str) -> List[str]:
        manifest = self.manifest.load() or {}
        return [
            manifest[key].package
            for key in self.manifest.find_by_repository(repo)
            if manifest[key].package
        ]

    async def _reinstall(
        self, repo: str, outcome: TargetOutcome, message: str
    ) -> None:
        if not await self.decisions.confirm(message, default=True):
            raise UserCancelled(f"reinstall of {repo} declined")
        target = InstallTarget(
            repo=repo, packages=self._packages_of(repo), overwrite=True
        )
        await self._install(target, outcome)
        outcome.state = LifecycleState.UPDATED

    async def _update(self, name: str, outcome: TargetOutcome) -> None:
        # packages of one repository share their version
        keys = self.manifest.find_by_repository(name)
        key = keys[0] if keys else await self.manifest.select(name, self.decisions)
        record = self.manifest.get(key) if key else None
        if record is None:
            await self._reinstall(
                name,
                outcome,
                f"can't find {name} in the manifest, do you want to reinstall it?",
            )
            return

        repo = record.repository
        outcome.target = repo
        outcome.version = record.version
        packages = self._packages_of(repo)

        if record.is_branch:
            commit = await self.resolver.branch_commit(repo, record.branch)
            if commit is None:
                await self._reinstall(
                    repo,
                    outcome,
                    f"can't find branch {record.branch} of {repo} at the remote, "
                    "do you want to reinstall it?",
                )
                return
            if record.commit is not None and record.commit.sha == commit.sha:
                outcome.state = LifecycleState.READY
                outcome.message = "already on the latest branch"
                logger.info(f"{repo}: {outcome.message}")
                return
            resolved = ResolvedVersion(
                branch=record.branch,
                commit=commit,
                download_url=self.remote.branch_archive_url(repo, record.branch),
            )
        else:
            newest = await self.resolver.newer_tag(
                repo, record.tag, verify_order=self.config.verify_tag_order
            )
            if newest is None:
                outcome.state = LifecycleState.READY
                outcome.message = "already on the latest tag"
                logger.info(f"{repo}: {outcome.message}")
                return
            logger.info(f"Updating {repo} to {newest.name}")
            resolved = ResolvedVersion(
                tag=newest.name,
                commit=newest.commit,
                download_url=newest.download_url
                or self.remote.branch_archive_url(repo, newest.name),
            )

        target = InstallTarget(repo=repo, packages=packages, overwrite=True)
        await self._install_resolved(target, resolved, outcome)
        outcome.state = LifecycleState.UPDATED
        outcome.message = f"updated {repo} to {resolved.version}"

    # ------------------------------------------------------------------
    # uninstall

    def _repository_of(self, name: str) -> str:
        if self.manifest.find_by_repository(name):
            return name
        record = self.manifest.get(name)
        return record.repository if record else name

    async def _confirm_uninstall(self, repo: str) -> None:
        keys = self.manifest.find_by_repository(repo)
        if len(keys) <= 1:
            return
        manifest = self.manifest.load() or {}
        titles = ", ".join(manifest[k].title for k in keys)
        if not await self.decisions.confirm(
            f"{titles} will be uninstalled, continue?", default=False
        ):
            raise UserCancelled(f"uninstall of {repo} declined")

    async def uninstall(self, name: str, confirmed: bool = False) -> TargetOutcome:
        """
        Remove an extension's files and every manifest record of it.

        Uninstalling something that is not installed succeeds without
        changes.
        """
        outcome = TargetOutcome(target=name, action=Action.UNINSTALL)
        return await self._guard(outcome, self._uninstall(name, confirmed, outcome))

    async def uninstall_many(self, names: List[str]) -> List[TargetOutcome]:
        """
        Uninstall several extensions.

        All confirmations are collected first; declining one aborts the whole
        action before anything is deleted.

        Raises:
            UserCancelled: A confirmation was declined
        """
        repos = _unique(self._repository_of(n) for n in names)
        for repo in repos:
            await self._confirm_uninstall(repo)
        return list(
            await asyncio.gather(*(self.uninstall(r, confirmed=True) for r in repos))
        )

    async def _uninstall(
        self, name: str, confirmed: bool, outcome: TargetOutcome
    ) -> None:
        repo = self._repository_of(name)
        outcome.target = repo
        if not confirmed:
            await self._confirm_uninstall(repo)

        removed_dir = await asyncio.to_thread(self.layout.remove, repo)
        removed_keys = await self.manifest.remove_repository(repo)

        outcome.state = LifecycleState.REMOVED
        outcome.keys = removed_keys
        outcome.changed = removed_dir or bool(removed_keys)
        outcome.message = (
            f"uninstalled {repo}" if outcome.changed else f"{repo} is not installed"
        )
        logger.info(outcome.message)
