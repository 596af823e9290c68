"""Shared fixtures for the test suite."""

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Iterator
from unittest.mock import MagicMock

import pytest


@pytest.fixture(autouse=True)
def reset_logger() -> Iterator[None]:
    """Drops handlers and levels that `setup_logging` leaves on the app logger."""
    yield
    logger = logging.getLogger("git-mirror")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolates git from the user's configuration and provides an identity."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


@pytest.fixture
def bare_remote(tmp_path: Path, git_env: None) -> Path:
    """An empty bare repository used as the remote."""
    remote = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "--quiet", str(remote)], check=True)
    return remote


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A small notes tree with nested folders and trash content."""
    src = tmp_path / "source"
    (src / "pages").mkdir(parents=True)
    (src / "journals" / "2024").mkdir(parents=True)
    (src / ".recycle").mkdir()
    (src / "pages" / "index.md").write_text("- hello\n")
    (src / "pages" / "todo.md").write_text("- [ ] write tests\n")
    (src / "journals" / "2024" / "01_01.md").write_text("- new year\n")
    (src / ".recycle" / "old.md").write_text("- gone\n")
    return src


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Writes a JSON config file and returns its path."""

    def _write(**data: Any) -> Path:
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data))
        return path

    return _write


@pytest.fixture
def no_notify(mocker: MagicMock) -> MagicMock:
    """Silences desktop notifications."""
    return mocker.patch("git_mirror.ops.system.get_system")
