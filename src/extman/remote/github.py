"""
GitHub Repository Client

Fetches tag and branch listings, repository details and archives from the
GitHub REST API, retrying transient failures up to the configured bound.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.config import ExtmanConfig
from ..core.exceptions import NetworkError, NotFoundError, TransientNetworkError
from ..core.logging import get_logger
from ..core.models import CommitInfo, GithubBranch, GithubTag

logger = get_logger(__name__)


class GitHubClient:
    """
    Async client for the subset of the GitHub API extman needs.

    Usable as an async context manager; the underlying session is created
    lazily if the client is used without one.
    """

    def __init__(
        self,
        config: ExtmanConfig,
        session: Optional[aiohttp.ClientSession] = None,
        retry_wait: Optional[Any] = None,
    ):
        """
        Initialize the client.

        Args:
            config: extman configuration (API URL, token, retries, timeout)
            session: Existing aiohttp session to reuse
            retry_wait: tenacity wait strategy between retries
        """
        self.config = config
        self.api_url = config.api_url.rstrip("/")
        self.retries = config.retries
        self._session = session
        self._owns_session = session is None
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, max=8)

    async def __aenter__(self) -> "GitHubClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/vnd.github+json",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def _get(self, url: str, as_json: bool, with_next: bool = False) -> Any:
        session = self._ensure_session()
        try:
            async with session.get(url, headers=self.headers) as response:
                if response.status == 404:
                    raise NotFoundError(f"Not found: {url}", url=url, status=404)
                if response.status >= 500 or response.status == 429:
                    raise TransientNetworkError(
                        f"Server error {response.status} for {url}",
                        url=url,
                        status=response.status,
                    )
                if response.status >= 400:
                    raise NetworkError(
                        f"Request failed with {response.status} for {url}",
                        url=url,
                        status=response.status,
                    )
                if with_next:
                    next_link = response.links.get("next")
                    next_url = str(next_link["url"]) if next_link else None
                    return await response.json(content_type=None), next_url
                if as_json:
                    return await response.json(content_type=None)
                return await response.read()
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
            raise TransientNetworkError(f"Connection error for {url}: {e}", url=url)
        except TimeoutError as e:
            raise TransientNetworkError(f"Timed out fetching {url}", url=url) from e

    async def _fetch(self, url: str, as_json: bool, with_next: bool = False) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=self._retry_wait,
            retry=retry_if_exception_type(TransientNetworkError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying {url} (attempt {attempt.retry_state.attempt_number})"
                    )
                return await self._get(url, as_json, with_next)

    async def fetch_json(self, url: str) -> Any:
        """
        GET a JSON document.

        Raises:
            NotFoundError: On 404
            TransientNetworkError: When retries are exhausted
            NetworkError: On other client errors
        """
        return await self._fetch(url, as_json=True)

    async def fetch_bytes(self, url: str) -> bytes:
        """GET raw bytes (archives)."""
        return await self._fetch(url, as_json=False)

    async def fetch_all(self, url: str) -> List[Any]:
        """GET every page of a JSON listing, following Link rel="next"."""
        items: List[Any] = []
        next_url: Optional[str] = url
        while next_url:
            page, next_url = await self._fetch(next_url, as_json=True, with_next=True)
            items.extend(page)
        return items

    async def get_tags(self, repo: str) -> List[GithubTag]:
        """List tags, newest first as returned by the API."""
        data = await self.fetch_all(f"{self.api_url}/repos/{repo}/tags?per_page=100")
        return [GithubTag.model_validate(item) for item in data]

    async def get_branches(self, repo: str) -> List[GithubBranch]:
        data = await self.fetch_all(
            f"{self.api_url}/repos/{repo}/branches?per_page=100"
        )
        return [GithubBranch.model_validate(item) for item in data]

    async def get_default_branch(self, repo: str) -> str:
        data = await self.fetch_json(f"{self.api_url}/repos/{repo}")
        return data["default_branch"]

    async def get_commit(self, repo: str, sha: str) -> CommitInfo:
        """Fetch a commit with its committer date."""
        data = await self.fetch_json(f"{self.api_url}/repos/{repo}/commits/{sha}")
        commit = data.get("commit") or {}
        raw_date = (commit.get("committer") or {}).get("date") or (
            commit.get("author") or {}
        ).get("date")
        date = None
        if raw_date:
            date = datetime.fromisoformat(raw_date.replace("Z", "+00:00"))
        return CommitInfo(sha=data.get("sha", sha), date=date)

    def branch_archive_url(self, repo: str, branch: str) -> str:
        return f"{self.api_url}/repos/{repo}/zipball/{branch}"
