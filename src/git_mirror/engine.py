import logging
import signal
import sys
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from . import ops
from .config import BackupConfig, ConfigError, parse_log_level
from .constants import (
    APP_NAME,
    EXIT_FATAL,
    EXIT_INTERRUPTED,
    EXIT_OK,
    LOG_FILE,
)
from .ignore import ensure_ignore_patterns
from .mirror import MirrorError, MirrorStats, mirror
from .ops import PublishOutcome, PublishResult, RemoteUnreachableError, RepoState
from .runner import CommandFailure, CommandTimeout

logger = logging.getLogger(APP_NAME)

MAX_LOG_SIZE = 5 * 1024 * 1024


class RunInterrupted(Exception):
    """Raised from the signal handler when the process is asked to stop."""


@dataclass
class RunReport:
    """Summary of a completed run.

    Attributes:
        state (RepoState): The repository state found before reconciling.
        mirror (MirrorStats): What the mirror pass did.
        ignore_added (list[str]): Patterns newly added to .gitignore.
        publish (PublishResult): What the publisher did.
    """

    state: RepoState
    mirror: MirrorStats
    ignore_added: list[str] = field(default_factory=list)
    publish: PublishResult = field(
        default_factory=lambda: PublishResult(PublishOutcome.NO_CHANGE)
    )


def setup_logging(level: int, log_file: Path | None = None) -> None:
    """Configures the application logger.

    Records go to stderr (captured by cron/systemd/launchd) and, when
    `log_file` is given, to a rotating file.

    Args:
        level (int): The stdlib logging level for the run.
        log_file (Path | None, optional): Rotating log destination. None disables it.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file, maxBytes=MAX_LOG_SIZE, backupCount=5
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not open log file {log_file}: {e}")

    logger.setLevel(level)


def _handle_signal(signum: int, _frame: FrameType | None) -> None:
    raise RunInterrupted(signal.Signals(signum).name)


def cleanup() -> None:
    """Best-effort hook run before exiting on an interrupt.

    A re-run clears and re-copies the backup, so there is nothing to undo yet.
    """


def run_backup(config: BackupConfig) -> RunReport:
    """Runs one mirror-and-publish pass.

    Steps:
    1. Mirrors the source tree into the backup directory.
    2. Ensures the backup's .gitignore holds the required patterns.
    3. Reconciles the repository state and probes the remote.
    4. Commits and pushes if the tree changed.

    Args:
        config (BackupConfig): The validated configuration.

    Returns:
        RunReport: What each step did.

    Raises:
        MirrorError: On a filesystem failure while mirroring.
        RemoteUnreachableError: If the remote cannot be fetched or probed.
        CommandError: If a git command fails or times out.
        OSError: If the ignore manifest cannot be written.
    """
    target = config.backup_path
    options = config.remote_options()

    stats = mirror(
        config.source_path,
        target,
        exclude_names=config.exclude,
        preserve_names=config.preserve,
        max_workers=config.copy_workers,
    )
    added = ensure_ignore_patterns(target, config.ignore)
    state = ops.reconcile(target, config.remote_url, config.branch, options)
    result = ops.publish(target, config.branch, options)

    return RunReport(state=state, mirror=stats, ignore_added=added, publish=result)


def main(config_path: Path | None = None, log_level: str | None = None) -> int:
    """Entry point for a single scheduled run.

    The log level comes from `log_level` when given, else from the config file.

    Args:
        config_path (Path | None, optional): The JSON config to load.
        log_level (str | None, optional): A level name overriding the config.

    Returns:
        int: 0 on success (including no change and push failure), 1 on a fatal
        error, 2 when interrupted by a signal.
    """
    try:
        override = parse_log_level(log_level) if log_level else None
    except ConfigError as e:
        setup_logging(logging.ERROR)
        logger.error(f"CONFIG ERROR: {e}")
        return EXIT_FATAL

    setup_logging(override if override is not None else logging.ERROR, LOG_FILE)

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handle_signal)
        except ValueError:
            # Not the main thread; leave signal handling to the caller.
            pass

    try:
        config = BackupConfig.load(config_path)
        logger.setLevel(override if override is not None else config.level)

        report = run_backup(config)

        if report.publish.outcome is PublishOutcome.NO_CHANGE:
            logger.info("DONE: backup already up to date.")
        elif report.publish.pushed:
            logger.info(f"DONE: published {report.publish.commit}.")
        else:
            logger.info(f"DONE: committed {report.publish.commit}, push pending.")
        return EXIT_OK

    except (RunInterrupted, KeyboardInterrupt) as e:
        logger.warning(f"INTERRUPTED: {str(e) or 'SIGINT'}. Exiting.")
        cleanup()
        return EXIT_INTERRUPTED
    except ConfigError as e:
        _fatal(f"CONFIG ERROR: {e}")
    except MirrorError as e:
        _fatal(f"MIRROR ERROR: {e}")
    except RemoteUnreachableError as e:
        _fatal(f"REMOTE UNREACHABLE: {e}")
    except CommandTimeout as e:
        _fatal(f"TIMEOUT: {e}. Consider raising 'commandTimeout'.")
    except CommandFailure as e:
        _fatal(f"GIT ERROR: {e}")
    except OSError as e:
        _fatal(f"FILESYSTEM ERROR: {e}")
    except Exception as e:
        _fatal(f"CRITICAL: {e}", level=logging.CRITICAL)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return EXIT_FATAL


def _fatal(message: str, level: int = logging.ERROR) -> None:
    """Logs one diagnostic line, plus the traceback at debug level."""
    logger.log(level, message)
    logger.debug("Failure details:", exc_info=True)
