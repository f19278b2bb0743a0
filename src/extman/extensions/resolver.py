"""
Version Resolution

Turns a repository id and an optional tag/branch hint into the concrete
version to install. Tags win over branches; branches are the fallback for
repositories without tags.
"""

from typing import Dict, List, Optional, Protocol

from ..core.exceptions import NetworkError, NotFoundError
from ..core.logging import get_logger
from ..core.models import (
    CommitInfo,
    GithubBranch,
    GithubCommit,
    GithubTag,
    ResolvedVersion,
)
from .decisions import DecisionSource

logger = get_logger(__name__)


class RemoteRepository(Protocol):
    """Remote listing operations the resolver relies on."""

    async def get_tags(self, repo: str) -> List[GithubTag]: ...

    async def get_branches(self, repo: str) -> List[GithubBranch]: ...

    async def get_default_branch(self, repo: str) -> str: ...

    async def get_commit(self, repo: str, sha: str) -> CommitInfo: ...

    def branch_archive_url(self, repo: str, branch: str) -> str: ...


class VersionResolver:
    """
    Resolves versions against the remote.

    Listings are cached per repository for the lifetime of the resolver, so a
    command touches the remote at most once per listing and repository.
    """

    def __init__(self, remote: RemoteRepository, decisions: DecisionSource):
        self.remote = remote
        self.decisions = decisions
        self._tags: Dict[str, List[GithubTag]] = {}
        self._branches: Dict[str, List[GithubBranch]] = {}
        self._default_branches: Dict[str, str] = {}

    async def resolve_tags(self, repo: str) -> List[GithubTag]:
        """Tags of repo, newest first; empty if the repository has none."""
        if repo not in self._tags:
            logger.info(f"Fetching tags of {repo}")
            self._tags[repo] = await self.remote.get_tags(repo)
        return self._tags[repo]

    async def resolve_branches(self, repo: str) -> List[GithubBranch]:
        if repo not in self._branches:
            logger.info(f"Fetching branches of {repo}")
            self._branches[repo] = await self.remote.get_branches(repo)
        return self._branches[repo]

    async def resolve_default_branch(self, repo: str) -> str:
        if repo not in self._default_branches:
            self._default_branches[repo] = await self.remote.get_default_branch(repo)
        return self._default_branches[repo]

    async def pick_version(
        self, repo: str, tag: Optional[str] = None, branch: Optional[str] = None
    ) -> ResolvedVersion:
        """
        Decide which version of repo to install.

        Args:
            repo: Repository id (owner/name)
            tag: Requested tag, if any
            branch: Requested branch, if any (only used without tags)

        Returns:
            The selected tag or branch with its commit

        Raises:
            UserCancelled: The selection was cancelled
            NotFoundError: The repository has neither tags nor branches
        """
        tags = await self.resolve_tags(repo)
        if tags:
            return await self._pick_tag(repo, tags, tag)
        # without tags a version hint can only name a branch
        return await self._pick_branch(repo, branch or tag)

    async def _pick_tag(
        self, repo: str, tags: List[GithubTag], hint: Optional[str]
    ) -> ResolvedVersion:
        by_name = {t.name: t for t in tags}
        if hint in by_name:
            selected = by_name[hint]
        elif len(tags) == 1 and not hint:
            selected = tags[0]
        else:
            message = (
                f"{repo}@{hint} not found, please select a tag"
                if hint
                else f"select a tag for {repo}"
            )
            name = await self.decisions.select(
                message, [t.name for t in tags], default=tags[0].name
            )
            selected = by_name[name]

        logger.info(f"Resolved {repo} to tag {selected.name}")
        return ResolvedVersion(
            tag=selected.name,
            commit=selected.commit,
            download_url=selected.download_url
            or self.remote.branch_archive_url(repo, selected.name),
        )

    async def _pick_branch(self, repo: str, hint: Optional[str]) -> ResolvedVersion:
        branches = await self.resolve_branches(repo)
        if not branches:
            raise NotFoundError(f"{repo} has neither tags nor branches")
        default_branch = await self.resolve_default_branch(repo)

        names = [b.name for b in branches]
        if hint in names:
            name = hint
        else:
            if hint:
                logger.warning(f"Branch {hint} not found in {repo}")
            name = default_branch if default_branch in names else names[0]

        if len(branches) > 1:
            name = await self.decisions.select(
                f"select a branch for {repo}", names, default=name
            )

        selected = next(b for b in branches if b.name == name)
        logger.info(f"Resolved {repo} to branch {name} ({selected.commit.sha[:7]})")
        return ResolvedVersion(
            branch=name,
            commit=selected.commit,
            download_url=self.remote.branch_archive_url(repo, name),
        )

    async def branch_commit(self, repo: str, branch: str) -> Optional[GithubCommit]:
        """Current head commit of branch, or None if it no longer exists."""
        for b in await self.resolve_branches(repo):
            if b.name == branch:
                return b.commit
        return None

    async def newer_tag(
        self, repo: str, installed: Optional[str], verify_order: bool = True
    ) -> Optional[GithubTag]:
        """
        The tag to update to, or None if installed is already the newest.

        The listing is taken as newest first. With verify_order, a candidate
        that is not positionally first-equal is only accepted if its commit
        is strictly newer than the installed tag's commit.
        """
        tags = await self.resolve_tags(repo)
        if not tags:
            return None
        newest = tags[0]
        if newest.name == installed:
            return None

        current = next((t for t in tags if t.name == installed), None)
        if current is None or not verify_order:
            return newest

        try:
            newest_info = await self.remote.get_commit(repo, newest.commit.sha)
            current_info = await self.remote.get_commit(repo, current.commit.sha)
        except NetworkError as e:
            logger.warning(f"Could not compare tag dates of {repo}: {e}")
            return newest

        if newest_info.date is None or current_info.date is None:
            return newest
        if newest_info.date <= current_info.date:
            logger.warning(
                f"{repo}: tag {newest.name} is listed first but is not newer "
                f"than installed {installed}"
            )
            return None
        return newest
