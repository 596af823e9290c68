"""Git Mirror: scheduled directory backups published to a git remote.

This package mirrors a working directory into a backup location, keeps that
location a git repository bound to a single remote, and commits and pushes the
mirror whenever it changes.
"""

from . import (
    cli,
    config,
    constants,
    engine,
    git_wrapper,
    ignore,
    mirror,
    notes,
    ops,
    retry,
    runner,
    service,
    system,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "engine",
    "git_wrapper",
    "ignore",
    "mirror",
    "notes",
    "ops",
    "retry",
    "runner",
    "service",
    "system",
]
