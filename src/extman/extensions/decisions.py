"""
Decision Sources

User decisions (single selections and confirmations) are injected into the
resolver and lifecycle so unattended runs can swap the terminal prompts for a
fixed policy.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import click

from ..core.config import ExtmanConfig
from ..core.exceptions import UserCancelled
from ..core.logging import get_logger

logger = get_logger(__name__)


class DecisionSource(ABC):
    """Answers the questions the lifecycle cannot answer on its own."""

    @abstractmethod
    async def select(
        self, message: str, choices: Sequence[str], default: Optional[str] = None
    ) -> str:
        """
        Pick one of choices.

        Raises:
            UserCancelled: If the selection was cancelled
        """

    @abstractmethod
    async def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question."""


class InteractiveDecisionSource(DecisionSource):
    """Prompts on the terminal with click; prompts never interleave."""

    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes
        self._lock = asyncio.Lock()

    async def select(
        self, message: str, choices: Sequence[str], default: Optional[str] = None
    ) -> str:
        if not choices:
            raise UserCancelled(f"nothing to select: {message}")
        async with self._lock:
            try:
                return await asyncio.to_thread(
                    click.prompt,
                    message,
                    type=click.Choice(list(choices)),
                    default=default if default in choices else None,
                    show_choices=True,
                )
            except click.Abort:
                raise UserCancelled()

    async def confirm(self, message: str, default: bool = False) -> bool:
        if self.assume_yes:
            return True
        async with self._lock:
            try:
                return await asyncio.to_thread(click.confirm, message, default=default)
            except click.Abort:
                raise UserCancelled()


class PolicyDecisionSource(DecisionSource):
    """
    Non-interactive decisions.

    Selections take the proposed default (the newest tag, the resolved
    branch); confirmations are answered with ``assume_yes`` or, if that is
    off, with the question's default.
    """

    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes

    async def select(
        self, message: str, choices: Sequence[str], default: Optional[str] = None
    ) -> str:
        if not choices:
            raise UserCancelled(f"nothing to select: {message}")
        choice = default if default in choices else choices[0]
        logger.info(f"{message}: {choice} (non-interactive)")
        return choice

    async def confirm(self, message: str, default: bool = False) -> bool:
        answer = True if self.assume_yes else default
        logger.info(f"{message} -> {'yes' if answer else 'no'} (non-interactive)")
        return answer


def decision_source_for(config: ExtmanConfig) -> DecisionSource:
    """Pick the decision source matching the configuration."""
    if config.interactive:
        return InteractiveDecisionSource(assume_yes=config.assume_yes)
    return PolicyDecisionSource(assume_yes=config.assume_yes)
