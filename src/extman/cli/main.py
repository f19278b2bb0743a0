"""
extman CLI Main Entry Point

Command-line interface for installing, updating and removing extensions.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import click

from .. import __version__
from ..core.config import ExtmanConfig, load_config
from ..core.exceptions import ConfigurationError, ExtmanException, UserCancelled
from ..core.logging import setup_logging
from ..extensions.decisions import decision_source_for
from ..extensions.lifecycle import ExtensionLifecycle
from ..extensions.models import InstallTarget, TargetOutcome
from ..remote.github import GitHubClient
from ..storage.manifest import ManifestStore
from ..utils.parse import parse_spec

T = TypeVar("T")

ALIASES = {
    "ls": "list",
    "v": "view",
    "info": "view",
    "show": "view",
    "i": "install",
    "add": "install",
    "un": "uninstall",
    "u": "uninstall",
    "remove": "uninstall",
    "rm": "uninstall",
    "upgrade": "update",
    "up": "update",
}


class AliasedGroup(click.Group):
    """Group that also accepts the short command aliases."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        return super().get_command(ctx, ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx: click.Context, args: List[str]) -> Any:
        _, cmd, args = super().resolve_command(ctx, args)
        return cmd.name if cmd else None, cmd, args


@click.group(cls=AliasedGroup)
@click.version_option(version=__version__)
@click.option("--retries", type=int, default=None, help="Retries for failed requests")
@click.option(
    "--token", default=None, help="GitHub token (default: $EXTMAN_TOKEN or $GITHUB_TOKEN)"
)
@click.option("--yes", "-y", is_flag=True, help="Answer yes to every confirmation")
@click.option(
    "--non-interactive", is_flag=True, help="Never prompt, take the default choice"
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Extensions root directory",
)
@click.option(
    "--log-level",
    type=click.Choice(
        ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False
    ),
    default=None,
    help="Logging level",
)
@click.pass_context
def cli(
    ctx: click.Context,
    retries: Optional[int],
    token: Optional[str],
    yes: bool,
    non_interactive: bool,
    root: Optional[Path],
    log_level: Optional[str],
):
    """
    extman - extension manager

    Installs extensions from GitHub repositories and keeps them up to date.
    """
    ctx.obj = {
        "overrides": {
            "retries": retries,
            "token": token,
            "assume_yes": True if yes else None,
            "interactive": False if non_interactive else None,
            "root_path": root,
        },
        "log_level": log_level,
    }


def _load(ctx: click.Context, **extra: Any) -> ExtmanConfig:
    overrides = dict(ctx.obj["overrides"], **extra)
    try:
        config = load_config(**overrides)
    except ConfigurationError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    setup_logging(config.logging, log_level=ctx.obj["log_level"])
    return config


def _run_lifecycle(
    config: ExtmanConfig, action: Callable[[ExtensionLifecycle], Awaitable[T]]
) -> T:
    async def run() -> T:
        decisions = decision_source_for(config)
        async with GitHubClient(config) as remote:
            lifecycle = ExtensionLifecycle.from_config(config, remote, decisions)
            return await action(lifecycle)

    return asyncio.run(run())


def _report(outcomes: List[TargetOutcome]) -> None:
    failed = False
    for outcome in outcomes:
        if outcome.ok:
            click.echo(f"✓ {outcome.message or outcome.target}")
        else:
            failed = True
            click.echo(f"✗ {outcome.target}: {outcome.error}", err=True)
    if failed:
        sys.exit(1)


@cli.command("list")
@click.pass_context
def list_extensions(ctx: click.Context):
    """
    List installed extensions.

    Example:
        extman list
    """
    config = _load(ctx)
    manifest = ManifestStore(config.manifest_path).load()

    if not manifest:
        click.echo("No extensions installed.")
        sys.exit(1)

    for key, record in manifest.items():
        click.echo(f"{record.title} -> {key}@{record.version}")


@cli.command("view")
@click.argument("name")
@click.pass_context
def view_extension(ctx: click.Context, name: str):
    """
    Show details of an installed extension.

    Example:
        extman view owner/demo
    """
    config = _load(ctx)
    store = ManifestStore(config.manifest_path)
    try:
        key = asyncio.run(store.select(name, decision_source_for(config)))
    except ExtmanException as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    record = store.get(key) if key else None
    if record is None:
        click.echo(f"✗ Extension not found: {name}", err=True)
        sys.exit(1)

    click.echo(f"\n{record.title} ({key}@{record.version})")
    if record.url:
        click.echo(f"Repository: {record.url}")
    if record.description:
        click.echo(f"Description: {record.description}")
    if record.author:
        author = record.author if isinstance(record.author, str) else record.author.name
        click.echo(f"Author: {author}")
    if record.license:
        click.echo(f"License: {record.license}")
    if record.contributors:
        click.echo(f"Contributors: {', '.join(record.contributors)}")
    if record.categories:
        click.echo(f"Categories: {', '.join(sorted(record.categories))}")

    if record.commands:
        click.echo("\nCommands:")
        for command in record.commands:
            summary = command.description or command.title or ""
            click.echo(f"  • {command.name}" + (f": {summary}" if summary else ""))

    if record.preferences:
        click.echo("\nPreferences:")
        for preference in record.preferences:
            required = " (required)" if preference.required else ""
            click.echo(f"  • {preference.name}{required}")

    if record.dependencies:
        click.echo("\nDependencies:")
        for dependency, version in sorted(record.dependencies.items()):
            click.echo(f"  {dependency}: {version}")


@cli.command("install")
@click.argument("specs", nargs=-1, required=True)
@click.option(
    "--package", "-p", "packages", multiple=True, help="Monorepo package path"
)
@click.option("--no-build", is_flag=True, help="Skip the package manager build")
@click.pass_context
def install(ctx: click.Context, specs: tuple, packages: tuple, no_build: bool):
    """
    Install extensions from repositories.

    Example:
        extman install owner/demo@v1.0 owner/other -p packages/app
    """
    config = _load(
        ctx, packages=list(packages) or None, run_build=False if no_build else None
    )
    targets = []
    for spec in specs:
        repo, version = parse_spec(spec)
        targets.append(InstallTarget(repo=repo, tag=version, packages=config.packages))

    _report(_run_lifecycle(config, lambda lifecycle: lifecycle.install_many(targets)))


@cli.command("uninstall")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def uninstall(ctx: click.Context, names: tuple):
    """
    Uninstall extensions.

    Example:
        extman uninstall owner/demo
    """
    config = _load(ctx)
    try:
        outcomes = _run_lifecycle(
            config, lambda lifecycle: lifecycle.uninstall_many(list(names))
        )
    except UserCancelled as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    _report(outcomes)


@cli.command("update")
@click.argument("names", nargs=-1)
@click.option("--no-build", is_flag=True, help="Skip the package manager build")
@click.pass_context
def update(ctx: click.Context, names: tuple, no_build: bool):
    """
    Update extensions; without names every installed extension is updated.

    Example:
        extman update owner/demo
    """
    config = _load(ctx, run_build=False if no_build else None)

    if not names and not ManifestStore(config.manifest_path).load():
        click.echo("No extensions installed.")
        sys.exit(1)

    if names:
        repos = [parse_spec(name)[0] for name in names]
        outcomes = _run_lifecycle(
            config, lambda lifecycle: lifecycle.update_many(repos)
        )
    else:
        outcomes = _run_lifecycle(config, lambda lifecycle: lifecycle.update_all())
    _report(outcomes)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
