"""
extman Extension Lifecycle

Version resolution, directory layout, decision sources and the lifecycle
that installs, updates and uninstalls extensions.
"""

from .decisions import (
    DecisionSource,
    InteractiveDecisionSource,
    PolicyDecisionSource,
    decision_source_for,
)
from .layout import ExtensionLayout
from .lifecycle import ExtensionLifecycle
from .models import Action, InstallTarget, LifecycleState, TargetOutcome
from .resolver import VersionResolver

__all__ = [
    "Action",
    "DecisionSource",
    "ExtensionLayout",
    "ExtensionLifecycle",
    "InstallTarget",
    "InteractiveDecisionSource",
    "LifecycleState",
    "PolicyDecisionSource",
    "TargetOutcome",
    "VersionResolver",
    "decision_source_for",
]
