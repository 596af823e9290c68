import logging
from pathlib import Path
from typing import Callable

import pytest
from hypothesis import given
from hypothesis import strategies as st

from git_mirror.config import BackupConfig, ConfigError, parse_log_level, parse_time
from git_mirror.constants import DEFAULT_EXCLUDES, DEFAULT_IGNORES


def test_minimal_config_uses_defaults(tmp_path: Path, write_config: Callable[..., Path]) -> None:
    """Verifies that only the three required keys are needed."""
    path = write_config(
        sourcePath="/data/notes",
        backupPath="/data/backup",
        remoteURL="git@example.com:me/notes.git",
    )

    config = BackupConfig.load(path)

    assert config.source_path == Path("/data/notes").resolve()
    assert config.remote_url == "git@example.com:me/notes.git"
    assert config.log_level == "error"
    assert config.level == logging.ERROR
    assert config.branch == "main"
    assert config.exclude == tuple(DEFAULT_EXCLUDES)
    assert config.ignore == tuple(DEFAULT_IGNORES)
    assert config.retry_attempts == 3


def test_missing_required_keys_are_listed(write_config: Callable[..., Path]) -> None:
    path = write_config(sourcePath="/data/notes")

    with pytest.raises(ConfigError, match="Missing required config keys: backupPath, remoteURL"):
        BackupConfig.load(path)


def test_missing_file_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Config file not found"):
        BackupConfig.load(tmp_path / "absent.json")


def test_malformed_json_is_a_config_error(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{ not json")

    with pytest.raises(ConfigError, match="Config syntax error"):
        BackupConfig.load(path)


def test_invalid_log_level_is_rejected(write_config: Callable[..., Path]) -> None:
    path = write_config(
        sourcePath="/a", backupPath="/b", remoteURL="https://x/y.git", logLevel="verbose"
    )

    with pytest.raises(ConfigError, match="Invalid logLevel 'verbose'"):
        BackupConfig.load(path)


def test_log_level_names_are_case_insensitive() -> None:
    assert parse_log_level("WARN") == logging.WARNING
    assert parse_log_level("debug") == logging.DEBUG


def test_relative_paths_resolve_against_config_directory(
    tmp_path: Path, write_config: Callable[..., Path]
) -> None:
    path = write_config(sourcePath="notes", backupPath="../backup", remoteURL="https://x/y.git")

    config = BackupConfig.load(path)

    assert config.source_path == (tmp_path / "notes").resolve()
    assert config.backup_path == (tmp_path.parent / "backup").resolve()


def test_unknown_keys_warn_but_load(
    write_config: Callable[..., Path], caplog: pytest.LogCaptureFixture
) -> None:
    path = write_config(sourcePath="/a", backupPath="/b", remoteURL="https://x/y.git", colour="blue")

    BackupConfig.load(path)

    assert "Unknown config keys: colour" in caplog.text


def test_optional_settings_are_parsed() -> None:
    """Verifies time strings, list merges and integer settings."""
    config = BackupConfig.from_dict(
        {
            "sourcePath": "/a",
            "backupPath": "/b",
            "remoteURL": "https://x/y.git",
            "logLevel": "Info",
            "branch": "backup",
            "exclude": ["node_modules", ".git"],
            "commandTimeout": "2m",
            "retryBackoff": "250ms",
            "retryAttempts": 5,
        }
    )

    assert config.log_level == "info"
    assert config.branch == "backup"
    assert config.exclude[-1] == "node_modules"
    assert config.exclude.count(".git") == 1
    assert config.command_timeout == 120
    assert config.retry_backoff == pytest.approx(0.25)

    options = config.remote_options()
    assert options.retry_attempts == 5
    assert options.command_timeout == 120


@pytest.mark.parametrize(
    "key, value",
    [
        ("retryAttempts", 0),
        ("retryAttempts", True),
        ("commandTimeout", "soon"),
        ("commandTimeout", -1),
        ("exclude", "node_modules"),
        ("branch", ""),
    ],
)
def test_invalid_optional_values_are_fatal(key: str, value: object) -> None:
    data = {"sourcePath": "/a", "backupPath": "/b", "remoteURL": "https://x/y.git", key: value}

    with pytest.raises(ConfigError):
        BackupConfig.from_dict(data)


@pytest.mark.parametrize(
    "value, seconds",
    [("10ms", 0.01), ("30s", 30), ("2m", 120), ("1h", 3600), ("1.5min", 90), (45, 45)],
)
def test_parse_time(value: str | int, seconds: float) -> None:
    assert parse_time(value) == pytest.approx(seconds)


@given(st.integers(min_value=1, max_value=10_000), st.sampled_from(["s", "m", "h"]))
def test_parse_time_scales_units(amount: int, unit: str) -> None:
    """Property: every unit is a fixed multiple of seconds."""
    factor = {"s": 1, "m": 60, "h": 3600}[unit]
    assert parse_time(f"{amount}{unit}") == amount * factor
