"""
Pytest configuration and shared fixtures for extman tests.
"""

import io
import json
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple

import pytest

from extman.core.config import ExtmanConfig
from extman.core.exceptions import NotFoundError, UserCancelled
from extman.core.models import CommitInfo, GithubBranch, GithubCommit, GithubTag
from extman.extensions.decisions import DecisionSource


def build_zip(files: Dict[str, Any], root: str = "owner-demo-abc123") -> bytes:
    """
    Build an in-memory zip archive the way GitHub lays out repository archives.

    Values that are dicts are written as JSON, everything else as text/bytes.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(f"{root}/", "")
        for name, content in files.items():
            if isinstance(content, dict):
                content = json.dumps(content)
            zf.writestr(f"{root}/{name}", content)
    return buffer.getvalue()


def make_tag(name: str, url: str, sha: Optional[str] = None) -> GithubTag:
    return GithubTag(
        name=name, commit=GithubCommit(sha=sha or f"sha-{name}"), zipball_url=url
    )


def make_branch(name: str, sha: Optional[str] = None) -> GithubBranch:
    return GithubBranch(name=name, commit=GithubCommit(sha=sha or f"sha-{name}"))


class FakeRemote:
    """In-memory remote repository host."""

    def __init__(self) -> None:
        self.tags: Dict[str, List[GithubTag]] = {}
        self.branches: Dict[str, List[GithubBranch]] = {}
        self.default_branches: Dict[str, str] = {}
        self.commit_dates: Dict[str, datetime] = {}
        self.archives: Dict[str, bytes] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, str]] = []

    async def __aenter__(self) -> "FakeRemote":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        pass

    def add_tags(self, repo: str, *names: str) -> None:
        """Register tags newest first."""
        self.tags[repo] = [make_tag(name, self.tag_url(repo, name)) for name in names]

    def add_branches(self, repo: str, *names: str, default: Optional[str] = None) -> None:
        self.branches[repo] = [make_branch(name) for name in names]
        if default or names:
            self.default_branches[repo] = default or names[0]

    def tag_url(self, repo: str, tag: str) -> str:
        return f"https://example.test/{repo}/zip/{tag}"

    def add_archive(self, url: str, files: Dict[str, Any]) -> None:
        self.archives[url] = build_zip(files)

    def _check(self, repo: str, call: str) -> None:
        self.calls.append((call, repo))
        if repo in self.failures:
            raise self.failures[repo]

    async def get_tags(self, repo: str) -> List[GithubTag]:
        self._check(repo, "tags")
        return list(self.tags.get(repo, []))

    async def get_branches(self, repo: str) -> List[GithubBranch]:
        self._check(repo, "branches")
        return list(self.branches.get(repo, []))

    async def get_default_branch(self, repo: str) -> str:
        self._check(repo, "default_branch")
        if repo not in self.default_branches:
            raise NotFoundError(f"Repository not found: {repo}")
        return self.default_branches[repo]

    async def get_commit(self, repo: str, sha: str) -> CommitInfo:
        self._check(repo, "commit")
        return CommitInfo(sha=sha, date=self.commit_dates.get(sha))

    def branch_archive_url(self, repo: str, branch: str) -> str:
        return f"https://example.test/{repo}/zipball/{branch}"

    async def fetch_bytes(self, url: str) -> bytes:
        self.calls.append(("fetch", url))
        if url not in self.archives:
            raise NotFoundError(f"Not found: {url}", url=url, status=404)
        return self.archives[url]


class ScriptedDecisionSource(DecisionSource):
    """Answers questions from scripted lists and records every question."""

    def __init__(
        self,
        selections: Optional[Sequence[Any]] = None,
        confirmations: Optional[Sequence[Any]] = None,
    ):
        self.selections = list(selections or [])
        self.confirmations = list(confirmations or [])
        self.asked: List[Tuple[str, str]] = []

    async def select(
        self, message: str, choices: Sequence[str], default: Optional[str] = None
    ) -> str:
        self.asked.append(("select", message))
        if not self.selections:
            return default if default in choices else choices[0]
        answer = self.selections.pop(0)
        if answer is UserCancelled:
            raise UserCancelled()
        return answer

    async def confirm(self, message: str, default: bool = False) -> bool:
        self.asked.append(("confirm", message))
        if not self.confirmations:
            return default
        return self.confirmations.pop(0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def test_config(temp_dir: Path) -> ExtmanConfig:
    """Provide a test configuration."""
    return ExtmanConfig(
        root_path=temp_dir / "extensions",
        retries=0,
        token=None,
        run_build=False,
        interactive=False,
        logging={"level": "DEBUG"},
    )


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def decisions() -> ScriptedDecisionSource:
    return ScriptedDecisionSource()
