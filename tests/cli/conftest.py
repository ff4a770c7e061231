"""Fixtures for CLI interface tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from pkgtracker.cli import cli


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PKGTRACKER_TOKEN", "PKGTRACKER_BOT_TOKEN", "PKGTRACKER_CHAT_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a tracker in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--token", "s3cret", "--bot-token", "1:abc", "--chat-id", "-100"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


@pytest.fixture
def cli_with_packagers(cli_in_project: tuple[CliRunner, Path]) -> tuple[CliRunner, Path]:
    """Project with packagers 42 (alice) and 7 (bob); alice holds foo, which is stuck."""
    runner, _ = cli_in_project
    for args in (
        ["packager-add", "42", "alice"],
        ["packager-add", "7", "bob"],
        ["assign", "foo", "42"],
        ["mark", "foo", "stuck", "--by", "42"],
        ["mark", "foo", "needs_review"],
    ):
        result = runner.invoke(cli, args)
        assert result.exit_code == 0, result.output
    return cli_in_project
