"""
Extension Lifecycle Data Models

Defines lifecycle states, install targets and per-target outcomes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class LifecycleState(Enum):
    """Lifecycle state reached by one target"""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    DOWNLOADED = "downloaded"
    CONFIG_UPDATED = "config_updated"
    READY = "ready"
    UPDATED = "updated"
    REMOVED = "removed"
    ABORTED = "aborted"


class Action(Enum):
    """Operation applied to a target"""

    INSTALL = "install"
    UPDATE = "update"
    UNINSTALL = "uninstall"


@dataclass
class InstallTarget:
    """What to install"""

    repo: str
    tag: Optional[str] = None
    branch: Optional[str] = None
    packages: List[str] = field(default_factory=list)
    overwrite: bool = False


@dataclass
class TargetOutcome:
    """Result of one target of a (batch) operation"""

    target: str
    action: Action
    state: LifecycleState = LifecycleState.UNRESOLVED
    version: Optional[str] = None
    message: str = ""
    error: Optional[str] = None
    cancelled: bool = False
    changed: bool = False
    keys: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state != LifecycleState.ABORTED
