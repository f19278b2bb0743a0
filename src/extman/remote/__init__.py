"""Remote repository access."""

from .github import GitHubClient

__all__ = ["GitHubClient"]
