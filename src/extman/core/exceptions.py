"""
extman Exception Hierarchy

Defines the exceptions raised by the resolver, storage and lifecycle layers.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class ExtmanException(Exception):
    """Base exception for all extman errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ConfigurationError(ExtmanException):
    """Configuration-related errors."""

    pass


class NetworkError(ExtmanException):
    """Remote API errors that are not worth retrying."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if url:
            details["url"] = url
        if status is not None:
            details["status"] = status
        super().__init__(message, details)
        self.url = url
        self.status = status


class TransientNetworkError(NetworkError):
    """Connection failures, timeouts and 5xx responses (retried)."""

    pass


class NotFoundError(NetworkError):
    """Requested repository, tag or branch does not exist remotely."""

    pass


class AmbiguousMatchError(ExtmanException):
    """Several manifest records match a name and nothing can pick one."""

    def __init__(self, name: str, candidates: List[str]) -> None:
        super().__init__(
            f"Multiple extensions match '{name}'", {"candidates": candidates}
        )
        self.name = name
        self.candidates = candidates


class UserCancelled(ExtmanException):
    """The user declined a confirmation or cancelled a selection."""

    def __init__(self, message: str = "aborted by user") -> None:
        super().__init__(message)


class FilesystemError(ExtmanException):
    """Filesystem failures while unpacking, pruning or removing files."""

    def __init__(self, message: str, path: Union[str, Path], operation: str) -> None:
        super().__init__(message, {"path": str(path), "operation": operation})
        self.path = Path(path)
        self.operation = operation


class MalformedManifestError(ExtmanException):
    """The manifest document exists but cannot be parsed."""

    pass


class ExtensionMetadataError(ExtmanException):
    """The extension's own package metadata is missing or unreadable."""

    pass


class ToolchainError(ExtmanException):
    """Package manager commands failed for an installed extension."""

    pass
