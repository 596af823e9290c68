import os
from pathlib import Path

"""Global constants and path definitions for Git Mirror.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, the default exclude/preserve/ignore sets used by the mirror,
and the timeouts applied to external commands.
"""

# --- Identity ---
APP_NAME = "git-mirror"
"""str: The human-readable application name (also the logger name)."""

APP_LABEL = "com.gitmirror.backup"
"""str: The reverse-DNS style identifier used for scheduler units."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-mirror"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "mirror.log"
"""Path: The rotating log file written by scheduled runs."""

CONFIG_DIR: Path = Path.home() / ".config/git-mirror"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.json"
"""Path: The default configuration file path."""

# --- Git ---
GIT_DIR_NAME = ".git"
"""str: The version-control metadata directory inside the backup."""

IGNORE_FILE_NAME = ".gitignore"
"""str: The ignore manifest maintained inside the backup."""

DEFAULT_BRANCH = "main"
"""str: The single branch that backups are published to."""

DEFAULT_REMOTE = "origin"
"""str: The name of the remote bound to the backup repository."""

# --- Mirror rules ---
DEFAULT_EXCLUDES = [
    GIT_DIR_NAME,
    ".recycle",
    ".trash",
    ".Trash",
    ".Trashes",
    "$RECYCLE.BIN",
]
"""list[str]: Entry names never copied from the source, at any depth."""

DEFAULT_PRESERVES = [
    GIT_DIR_NAME,
    IGNORE_FILE_NAME,
    "README.md",
]
"""list[str]: Top-level names in the backup that survive the clearing step."""

DEFAULT_IGNORES = [
    ".recycle/",
    ".trash/",
    ".Trash/",
    ".Trashes/",
    "$RECYCLE.BIN/",
    ".DS_Store",
]
"""list[str]: Patterns that must always be present in the backup's .gitignore."""

COPY_WORKERS = 16
"""int: Ceiling on simultaneous in-flight file copies."""

# --- Commands ---
COMMAND_TIMEOUT = 30.0
"""float: Seconds allowed for a general git command."""

PROBE_TIMEOUT = 10.0
"""float: Seconds allowed for the remote reachability probe."""

RETRY_ATTEMPTS = 3
"""int: Attempts made for remote operations before giving up."""

RETRY_BACKOFF = 1.0
"""float: Seconds slept between remote operation attempts."""

# --- Exit codes ---
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INTERRUPTED = 2
