import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    COMMAND_TIMEOUT,
    CONFIG_FILE,
    COPY_WORKERS,
    DEFAULT_BRANCH,
    DEFAULT_EXCLUDES,
    DEFAULT_IGNORES,
    DEFAULT_PRESERVES,
    DEFAULT_REMOTE,
    PROBE_TIMEOUT,
    RETRY_ATTEMPTS,
    RETRY_BACKOFF,
)
from .ops import RemoteOptions

logger = logging.getLogger(APP_NAME)

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
"""dict[str, int]: Accepted `logLevel` names and their stdlib levels."""

REQUIRED_KEYS = ("sourcePath", "backupPath", "remoteURL")

# JSON key -> dataclass field for the optional settings.
OPTIONAL_KEYS = {
    "logLevel": "log_level",
    "branch": "branch",
    "remoteName": "remote_name",
    "exclude": "exclude",
    "preserve": "preserve",
    "ignore": "ignore",
    "commandTimeout": "command_timeout",
    "probeTimeout": "probe_timeout",
    "retryAttempts": "retry_attempts",
    "retryBackoff": "retry_backoff",
    "copyWorkers": "copy_workers",
}


class ConfigError(ValueError):
    """The configuration is missing, unreadable, or has an invalid field."""


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '30s', '2m') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time format '{value}'")
    if isinstance(value, (int, float)):
        if value <= 0:
            raise ValueError(f"Time must be positive, got {value}")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 0.001,
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hr": 3600,
    }
    seconds = num * multiplier[unit]
    if seconds <= 0:
        raise ValueError(f"Time must be positive, got '{value}'")
    return seconds


def parse_log_level(name: str) -> int:
    """Maps a log level name (error, warn, info, debug) to its stdlib value."""
    try:
        return LOG_LEVELS[str(name).strip().lower()]
    except KeyError:
        raise ConfigError(
            f"Invalid logLevel '{name}'. Expected one of: error, warn, info, debug."
        ) from None


def _merge_names(defaults: list[str], extra: Any, key: str) -> tuple[str, ...]:
    if not isinstance(extra, list) or not all(isinstance(x, str) for x in extra):
        raise ConfigError(f"'{key}' must be a list of strings.")
    return tuple(dict.fromkeys([*defaults, *extra]))


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"'{key}' must be a positive integer, got {value!r}.")
    return value


@dataclass(frozen=True)
class BackupConfig:
    """The settings for one backup run.

    Attributes:
        source_path (Path): The tree to back up (read-only input).
        backup_path (Path): The mirror directory that holds the repository.
        remote_url (str): The remote repository URL.
        log_level (str): One of error, warn, info, debug.
        branch (str): The single branch published to.
        remote_name (str): The name of the bound remote.
        exclude (tuple[str, ...]): Entry names never copied.
        preserve (tuple[str, ...]): Top-level backup names never deleted.
        ignore (tuple[str, ...]): Patterns required in the backup's .gitignore.
        command_timeout (float): Seconds allowed per git command.
        probe_timeout (float): Seconds allowed for the reachability probe.
        retry_attempts (int): Attempts for remote operations.
        retry_backoff (float): Seconds between remote operation attempts.
        copy_workers (int): Ceiling on concurrent file copies.
    """

    source_path: Path
    backup_path: Path
    remote_url: str
    log_level: str = "error"
    branch: str = DEFAULT_BRANCH
    remote_name: str = DEFAULT_REMOTE
    exclude: tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_EXCLUDES))
    preserve: tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_PRESERVES))
    ignore: tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_IGNORES))
    command_timeout: float = COMMAND_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    retry_attempts: int = RETRY_ATTEMPTS
    retry_backoff: float = RETRY_BACKOFF
    copy_workers: int = COPY_WORKERS

    @classmethod
    def load(cls, path: Path | None = None) -> "BackupConfig":
        """Reads and validates a JSON configuration file.

        Args:
            path (Path | None): The file to read. Defaults to the global config file.

        Returns:
            BackupConfig: The validated configuration.

        Raises:
            ConfigError: If the file is missing, malformed, or fails validation.
        """
        path = Path(path or CONFIG_FILE).expanduser()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}") from None
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config syntax error in {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Could not read config {path}: {e}") from e

        return cls.from_dict(data, base_dir=path.resolve().parent)

    @classmethod
    def from_dict(cls, data: Any, base_dir: Path | None = None) -> "BackupConfig":
        """Builds a configuration from a parsed JSON object.

        Relative paths are resolved against `base_dir` (the config file's
        directory), falling back to the current directory.

        Raises:
            ConfigError: If a required key is missing or any value is invalid.
        """
        if not isinstance(data, dict):
            raise ConfigError("Config must be a JSON object.")

        missing = [k for k in REQUIRED_KEYS if not data.get(k)]
        if missing:
            raise ConfigError(f"Missing required config keys: {', '.join(missing)}")
        for key in REQUIRED_KEYS:
            if not isinstance(data[key], str) or not data[key].strip():
                raise ConfigError(f"'{key}' must be a non-empty string.")

        unknown = set(data) - set(REQUIRED_KEYS) - set(OPTIONAL_KEYS)
        if unknown:
            logger.warning(f"Unknown config keys: {', '.join(sorted(unknown))}. Ignoring.")

        base = base_dir or Path.cwd()

        def resolve(value: str) -> Path:
            p = Path(value).expanduser()
            return (p if p.is_absolute() else base / p).resolve()

        updates: dict[str, Any] = {}
        for key, attr in OPTIONAL_KEYS.items():
            if key not in data:
                continue
            value = data[key]
            try:
                if attr == "log_level":
                    parse_log_level(value)
                    updates[attr] = str(value).strip().lower()
                elif attr in ("branch", "remote_name"):
                    if not isinstance(value, str) or not value.strip():
                        raise ConfigError(f"'{key}' must be a non-empty string.")
                    updates[attr] = value.strip()
                elif attr == "exclude":
                    updates[attr] = _merge_names(DEFAULT_EXCLUDES, value, key)
                elif attr == "preserve":
                    updates[attr] = _merge_names(DEFAULT_PRESERVES, value, key)
                elif attr == "ignore":
                    updates[attr] = _merge_names(DEFAULT_IGNORES, value, key)
                elif attr in ("command_timeout", "probe_timeout", "retry_backoff"):
                    updates[attr] = parse_time(value)
                else:
                    updates[attr] = _positive_int(value, key)
            except ValueError as e:
                if isinstance(e, ConfigError):
                    raise
                raise ConfigError(f"Config error in '{key}': {e}") from e

        return cls(
            source_path=resolve(data["sourcePath"]),
            backup_path=resolve(data["backupPath"]),
            remote_url=data["remoteURL"].strip(),
            **updates,
        )

    @property
    def level(self) -> int:
        """The stdlib logging level for `log_level`."""
        return parse_log_level(self.log_level)

    def remote_options(self) -> RemoteOptions:
        """Timeouts and retry settings handed to the repository operations."""
        return RemoteOptions(
            remote_name=self.remote_name,
            command_timeout=self.command_timeout,
            probe_timeout=self.probe_timeout,
            retry_attempts=self.retry_attempts,
            retry_backoff=self.retry_backoff,
        )
