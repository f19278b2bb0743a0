"""
extman Lifecycle Demo

Demonstrates install, update and uninstall against an in-memory repository
host, without network access or prompts.
"""

import asyncio
import io
import json
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, List

from extman.core.config import ExtmanConfig
from extman.core.exceptions import NotFoundError
from extman.core.logging import setup_logging
from extman.core.models import CommitInfo, GithubBranch, GithubCommit, GithubTag
from extman.extensions import (
    ExtensionLifecycle,
    InstallTarget,
    PolicyDecisionSource,
)


def make_archive(package: Dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("acme-weather-0000000/package.json", json.dumps(package))
        zf.writestr("acme-weather-0000000/src/index.ts", "export default {}\n")
    return buffer.getvalue()


class InMemoryHost:
    """Serves tags and archives of a single repository."""

    def __init__(self) -> None:
        self.tags: List[GithubTag] = []
        self.archives: Dict[str, bytes] = {}

    def publish(self, tag: str) -> None:
        url = f"memory://acme/weather/{tag}.zip"
        self.tags.insert(
            0, GithubTag(name=tag, commit=GithubCommit(sha=f"{tag}-sha"), zipball_url=url)
        )
        self.archives[url] = make_archive(
            {"name": "weather", "title": "Weather", "description": f"Weather {tag}"}
        )

    async def get_tags(self, repo: str) -> List[GithubTag]:
        return list(self.tags)

    async def get_branches(self, repo: str) -> List[GithubBranch]:
        return []

    async def get_default_branch(self, repo: str) -> str:
        raise NotFoundError(f"No branches in {repo}")

    async def get_commit(self, repo: str, sha: str) -> CommitInfo:
        return CommitInfo(sha=sha)

    def branch_archive_url(self, repo: str, branch: str) -> str:
        return f"memory://{repo}/{branch}.zip"

    async def fetch_bytes(self, url: str) -> bytes:
        return self.archives[url]


async def main():
    """Run the demo."""
    print("=" * 60)
    print("extman Lifecycle Demo")
    print("=" * 60)

    setup_logging(log_level="WARNING")
    host = InMemoryHost()
    host.publish("v1.0.0")

    with tempfile.TemporaryDirectory() as temp:
        config = ExtmanConfig(root_path=Path(temp), run_build=False, interactive=False)
        decisions = PolicyDecisionSource(assume_yes=True)

        lifecycle = ExtensionLifecycle.from_config(config, host, decisions)
        outcome = await lifecycle.install(InstallTarget(repo="acme/weather"))
        print(f"\n✓ {outcome.message}")

        host.publish("v1.1.0")
        lifecycle = ExtensionLifecycle.from_config(config, host, decisions)
        outcome = await lifecycle.update("Weather")
        print(f"✓ {outcome.message}")

        record = lifecycle.manifest.get("acme/weather")
        print(f"  {record.title} -> acme/weather@{record.version}")
        print(f"  Description: {record.description}")

        outcome = await lifecycle.uninstall("acme/weather")
        print(f"✓ {outcome.message}")

    print("\n" + "=" * 60)
    print("Demo completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
