"""
Tests for the extman command-line interface.
"""

import json

import pytest
from click.testing import CliRunner

from conftest import FakeRemote, build_zip

import extman.cli.main as cli_module
from extman.cli.main import cli

REPO = "owner/demo"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def root(temp_dir):
    return temp_dir / "extensions"


@pytest.fixture
def installed(root):
    root.mkdir(parents=True)
    (root / "manifest.json").write_text(
        json.dumps(
            {
                REPO: {
                    "repository": REPO,
                    "title": "Demo",
                    "url": f"https://github.com/{REPO}",
                    "description": "Shows things",
                    "author": "Ada",
                    "contributors": ["bob"],
                    "categories": ["Productivity"],
                    "commands": [{"name": "show", "description": "Show things"}],
                    "preferences": [{"name": "token", "required": True}],
                    "dependencies": {"react": "^18.0.0"},
                    "tag": "v1.0",
                }
            }
        )
    )
    (root / REPO / "v1.0").mkdir(parents=True)
    return root


@pytest.fixture
def fake_remote(monkeypatch) -> FakeRemote:
    remote = FakeRemote()
    monkeypatch.setattr(cli_module, "GitHubClient", lambda config: remote)
    return remote


def invoke(runner, root, *args):
    return runner.invoke(
        cli, ["--root", str(root), "--non-interactive", "--log-level", "ERROR", *args]
    )


class TestListAndView:
    """Tests for read-only commands."""

    def test_list(self, runner, installed):
        result = invoke(runner, installed, "list")

        assert result.exit_code == 0
        assert f"Demo -> {REPO}@v1.0" in result.output

    def test_list_alias(self, runner, installed):
        result = invoke(runner, installed, "ls")

        assert result.exit_code == 0
        assert "Demo" in result.output

    def test_list_without_extensions(self, runner, root):
        result = invoke(runner, root, "list")

        assert result.exit_code == 1
        assert "No extensions installed" in result.output

    @pytest.mark.parametrize("command", ["view", "v", "info", "show"])
    def test_view(self, runner, installed, command):
        result = invoke(runner, installed, command, "Demo")

        assert result.exit_code == 0
        assert f"Repository: https://github.com/{REPO}" in result.output
        assert "Author: Ada" in result.output
        assert "show: Show things" in result.output
        assert "token (required)" in result.output
        assert "react: ^18.0.0" in result.output

    def test_view_unknown(self, runner, installed):
        result = invoke(runner, installed, "view", "nope")

        assert result.exit_code == 1

    def test_invalid_configuration(self, runner, root):
        result = invoke(runner, root, "--retries", "-1", "list")

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestLifecycleCommands:
    """Tests for install / update / uninstall."""

    def test_install(self, runner, root, fake_remote):
        fake_remote.add_tags(REPO, "v2.0", "v1.0")
        fake_remote.archives[fake_remote.tag_url(REPO, "v1.0")] = build_zip(
            {"package.json": {"name": "demo", "title": "Demo"}}
        )

        result = invoke(runner, root, "install", "--no-build", f"{REPO}@v1.0")

        assert result.exit_code == 0, result.output
        assert f"✓ installed {REPO}@v1.0" in result.output
        manifest = json.loads((root / "manifest.json").read_text())
        assert manifest[REPO]["tag"] == "v1.0"

    def test_install_failure_exit_code(self, runner, root, fake_remote):
        result = invoke(runner, root, "add", "--no-build", "owner/missing")

        assert result.exit_code == 1

    def test_update_noop(self, runner, installed, fake_remote):
        fake_remote.add_tags(REPO, "v1.0")

        result = invoke(runner, installed, "up", "--no-build")

        assert result.exit_code == 0, result.output
        assert "already on the latest tag" in result.output

    def test_update_without_extensions(self, runner, root, fake_remote):
        result = invoke(runner, root, "update")

        assert result.exit_code == 1

    @pytest.mark.parametrize("command", ["uninstall", "rm", "un"])
    def test_uninstall(self, runner, installed, fake_remote, command):
        result = invoke(runner, installed, command, REPO)

        assert result.exit_code == 0, result.output
        assert json.loads((installed / "manifest.json").read_text()) == {}
        assert not (installed / REPO).exists()
