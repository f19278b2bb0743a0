"""extman storage components."""

from .manifest import Manifest, ManifestStore

__all__ = ["Manifest", "ManifestStore"]
