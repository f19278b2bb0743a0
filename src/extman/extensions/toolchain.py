"""
Package Manager Toolchain

Detects the JavaScript package manager of an installed extension, installs
its dependencies and runs its development build until it reports success.
"""

import asyncio
import json
import os
import shutil
import signal
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Sequence

from ..core.exceptions import ToolchainError, UserCancelled
from ..core.logging import get_logger
from .decisions import DecisionSource

logger = get_logger(__name__)

LOCKFILES: Dict[str, str] = {
    "pnpm-lock.yaml": "pnpm",
    "yarn.lock": "yarn",
    "bun.lockb": "bun",
    "bun.lock": "bun",
    "package-lock.json": "npm",
    "npm-shrinkwrap.json": "npm",
}

EXEC_COMMANDS: Dict[str, List[str]] = {
    "npm": ["npx"],
    "pnpm": ["pnpm", "exec"],
    "yarn": ["yarn"],
    "bun": ["bunx"],
}


def detect_package_manager(directory: Path) -> Optional[str]:
    """
    Detect the package manager of a project directory.

    The ``packageManager`` field of package.json wins over lockfiles; a bare
    package.json falls back to npm.
    """
    directory = Path(directory)
    package_json = directory / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
            declared = data.get("packageManager")
            if isinstance(declared, str) and declared:
                agent = declared.split("@", 1)[0]
                if agent in EXEC_COMMANDS:
                    return agent
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable {package_json}: {e}")

    for lockfile, agent in LOCKFILES.items():
        if (directory / lockfile).exists():
            return agent

    if package_json.is_file():
        return "npm"
    return None


class Toolchain:
    """Runs package manager commands in extension directories."""

    def __init__(
        self,
        decisions: DecisionSource,
        dev_args: Sequence[str] = ("ray", "develop"),
        success_message: str = "built extension successfully",
    ):
        self.decisions = decisions
        self.dev_args = list(dev_args)
        self.success_message = success_message

    async def _ensure_agent(self, agent: str, cwd: Path) -> None:
        if shutil.which(agent):
            return
        if not await self.decisions.confirm(f"{agent} not found, install it?", True):
            raise UserCancelled(f"{agent} is required to build the extension")
        await self._run(["npm", "install", "--global", agent], cwd)

    async def _run(self, command: List[str], cwd: Path) -> None:
        logger.info(f"Running {' '.join(command)} in {cwd}")
        try:
            proc = await asyncio.create_subprocess_exec(*command, cwd=str(cwd))
        except OSError as e:
            raise ToolchainError(f"Failed to start {command[0]}: {e}")
        code = await proc.wait()
        if code != 0:
            raise ToolchainError(
                f"{' '.join(command)} exited with {code}", {"cwd": str(cwd)}
            )

    async def run_install(self, directory: Path) -> bool:
        """
        Install dependencies of the extension at directory.

        Returns:
            False if no package manager could be detected
        """
        agent = detect_package_manager(directory)
        if agent is None:
            logger.warning(f"Unknown package manager in {directory}, skipping install")
            return False
        await self._ensure_agent(agent, directory)
        await self._run([agent, "install"], directory)
        return True

    async def dev_output(self, directory: Path) -> AsyncIterator[str]:
        """
        Run the development build and yield its output lines.

        The process runs in its own session and is terminated once a line
        contains the success message or the consumer stops iterating.
        """
        agent = detect_package_manager(directory)
        if agent is None:
            logger.warning(f"Unknown package manager in {directory}, skipping build")
            return

        command = EXEC_COMMANDS[agent] + self.dev_args
        logger.info(f"Running {' '.join(command)} in {directory}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(directory),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise ToolchainError(f"Failed to start {command[0]}: {e}")

        try:
            async for raw in proc.stdout:  # type: ignore[union-attr]
                line = raw.decode("utf-8", errors="replace").rstrip()
                yield line
                if self.success_message in line:
                    break
        finally:
            if proc.returncode is None:
                try:
                    os.killpg(proc.pid, signal.SIGTERM)
                except ProcessLookupError:
                    pass
                await proc.wait()

    async def run_dev(self, directory: Path) -> bool:
        """
        Run the development build until it succeeds.

        Returns:
            True if the success message was seen
        """
        succeeded = False
        async for line in self.dev_output(directory):
            logger.info(line)
            if self.success_message in line:
                succeeded = True
        if not succeeded:
            logger.warning(f"Development build in {directory} did not report success")
        return succeeded
