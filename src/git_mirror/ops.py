import datetime
import enum
import logging
from dataclasses import dataclass
from pathlib import Path

from . import system
from .constants import (
    APP_NAME,
    COMMAND_TIMEOUT,
    DEFAULT_BRANCH,
    DEFAULT_REMOTE,
    GIT_DIR_NAME,
    PROBE_TIMEOUT,
    RETRY_ATTEMPTS,
    RETRY_BACKOFF,
)
from .git_wrapper import GitRepo
from .retry import with_retry
from .runner import CommandError, CommandFailure

logger = logging.getLogger(APP_NAME)


class RemoteUnreachableError(RuntimeError):
    """The remote could not be queried or fetched from."""


class RepoState(enum.Enum):
    FRESH = "fresh"
    EXISTING = "existing"


class PublishOutcome(enum.Enum):
    NO_CHANGE = "no-change"
    PUBLISHED = "published"


@dataclass(frozen=True)
class RemoteOptions:
    """Knobs for talking to the remote.

    Attributes:
        remote_name (str): Name of the single remote bound to the backup.
        command_timeout (float): Seconds allowed per git command.
        probe_timeout (float): Seconds allowed for the reachability probe.
        retry_attempts (int): Attempts for remote add/set-url, fetch and push.
        retry_backoff (float): Seconds slept between those attempts.
    """

    remote_name: str = DEFAULT_REMOTE
    command_timeout: float = COMMAND_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    retry_attempts: int = RETRY_ATTEMPTS
    retry_backoff: float = RETRY_BACKOFF


@dataclass(frozen=True)
class PublishResult:
    """What the publisher did.

    Attributes:
        outcome (PublishOutcome): Whether a commit was created.
        changed_files (int): Number of porcelain status lines that gated the commit.
        pushed (bool): Whether the push succeeded.
        commit (str | None): SHA-1 of the new commit, if any.
    """

    outcome: PublishOutcome
    changed_files: int = 0
    pushed: bool = False
    commit: str | None = None


def detect_state(directory: Path) -> RepoState:
    """Classifies a directory by the presence of its git metadata."""
    if (directory / GIT_DIR_NAME).exists():
        return RepoState.EXISTING
    return RepoState.FRESH


def _retrying(repo_op, options: RemoteOptions, description: str):
    return with_retry(
        repo_op,
        max_attempts=options.retry_attempts,
        backoff=options.retry_backoff,
        retry_on=(CommandFailure,),
        description=description,
    )


def bind_remote(repo: GitRepo, remote_url: str, options: RemoteOptions) -> None:
    """Points the configured remote at `remote_url`, adding it if missing."""
    name = options.remote_name
    current = repo.remote_url(name)
    if current is None:
        logger.info(f"REMOTE {repo.path.name}: adding '{name}' -> {remote_url}")
        _retrying(lambda: repo.add_remote(name, remote_url), options, "remote add")
    else:
        if current != remote_url:
            logger.info(f"REMOTE {repo.path.name}: '{name}' moved {current} -> {remote_url}")
        _retrying(lambda: repo.set_remote_url(name, remote_url), options, "remote set-url")


def fetch_remote(repo: GitRepo, options: RemoteOptions) -> None:
    """Fetches from the remote, converting a persistent failure into a remote error."""
    try:
        _retrying(lambda: repo.fetch(options.remote_name), options, "fetch")
    except CommandError as e:
        raise RemoteUnreachableError(
            f"Could not fetch from remote '{options.remote_name}': {e}. "
            "Check your credentials and the remote URL."
        ) from e


def select_branch(repo: GitRepo, branch: str, options: RemoteOptions) -> None:
    """Makes `branch` the current branch after a fetch.

    Only HEAD, the branch ref and the index move; the mirrored working tree is
    left alone so that it is compared against the selected commit.

    * Local branch exists: switch to it and fast-forward it to the fetched
      remote tip when that tip descends from it.
    * Only the remote branch exists: create the local branch at the remote tip.
    * Neither exists: leave HEAD unborn on `branch`.
    """
    local_ref = f"refs/heads/{branch}"
    remote_ref = f"refs/remotes/{options.remote_name}/{branch}"
    local_sha = repo.rev_parse(local_ref)
    remote_sha = repo.rev_parse(remote_ref)

    repo.set_head(branch)

    if local_sha and remote_sha:
        if local_sha != remote_sha and repo.is_ancestor(local_sha, remote_sha):
            logger.info(f"BRANCH {branch}: fast-forward to {remote_sha[:8]}")
            repo.update_ref(local_ref, remote_sha)
        elif local_sha != remote_sha and not repo.is_ancestor(remote_sha, local_sha):
            logger.warning(
                f"BRANCH {branch}: local and remote history have diverged. "
                "The next push will be rejected."
            )
    elif remote_sha:
        logger.info(f"BRANCH {branch}: created from {options.remote_name}/{branch}")
        repo.update_ref(local_ref, remote_sha)
    else:
        logger.debug(f"BRANCH {branch}: no commits yet.")
        return

    repo.reset_index()

    if remote_sha:
        ahead = repo.count_commits(remote_ref, local_ref)
        if ahead:
            logger.warning(
                f"BRANCH {branch}: {ahead} local commit(s) not yet on the remote "
                "(an earlier push failed)."
            )


def probe_remote(repo: GitRepo, branch: str, options: RemoteOptions) -> bool:
    """Confirms the remote answers before any commit is made.

    Returns:
        bool: Whether the branch already exists on the remote.

    Raises:
        RemoteUnreachableError: If the remote cannot be queried in time.
    """
    try:
        heads = repo.ls_remote_heads(
            options.remote_name, branch, timeout=options.probe_timeout
        )
    except CommandError as e:
        raise RemoteUnreachableError(
            f"Remote '{options.remote_name}' is unreachable ({e}). "
            "Check your credentials and the remote URL."
        ) from e
    return any(line.endswith(f"refs/heads/{branch}") for line in heads)


def reconcile(
    directory: Path,
    remote_url: str,
    branch: str = DEFAULT_BRANCH,
    options: RemoteOptions | None = None,
) -> RepoState:
    """Brings the backup directory into a repository state linked to the remote.

    Fresh directories are initialized and bound to the remote without fetching.
    Existing repositories get their remote URL rebound, are fetched, and have the
    target branch selected. Either way the remote is then probed; an unreachable
    remote aborts the run.

    Args:
        directory (Path): The backup directory.
        remote_url (str): The URL the remote must point at.
        branch (str, optional): The branch backups are published to.
        options (RemoteOptions | None, optional): Timeouts and retry settings.

    Returns:
        RepoState: The state the directory was in before reconciling.

    Raises:
        RemoteUnreachableError: If the remote cannot be fetched or probed.
        CommandError: If a local git command fails or times out.
    """
    options = options or RemoteOptions()
    state = detect_state(directory)

    if state is RepoState.FRESH:
        logger.info(f"INIT {directory}: new repository on '{branch}'.")
        repo = GitRepo.init(directory, branch, timeout=options.command_timeout)
        bind_remote(repo, remote_url, options)
    else:
        repo = GitRepo(directory, timeout=options.command_timeout)
        bind_remote(repo, remote_url, options)
        fetch_remote(repo, options)
        select_branch(repo, branch, options)

    remote_has_branch = probe_remote(repo, branch, options)

    if state is RepoState.FRESH and remote_has_branch:
        # The remote already holds history; adopt it so the first push fast-forwards.
        logger.info(f"INIT {directory}: remote already has '{branch}', adopting it.")
        fetch_remote(repo, options)
        select_branch(repo, branch, options)

    return state


def publish(
    directory: Path,
    branch: str = DEFAULT_BRANCH,
    options: RemoteOptions | None = None,
    now: datetime.datetime | None = None,
) -> PublishResult:
    """Commits and pushes the working tree if, and only if, it has changed.

    A push failure is not raised: the commit is already recorded locally and the
    next run (or a manual push) will publish it.

    Args:
        directory (Path): The backup repository.
        branch (str, optional): The branch to push.
        options (RemoteOptions | None, optional): Timeouts and retry settings.
        now (datetime.datetime | None, optional): Commit timestamp override.

    Returns:
        PublishResult: NO_CHANGE when the tree is clean, PUBLISHED otherwise.
    """
    options = options or RemoteOptions()
    repo = GitRepo(directory, timeout=options.command_timeout)

    changes = repo.status_porcelain()
    if not changes:
        logger.info(f"CLEAN {directory.name}: nothing to publish.")
        return PublishResult(PublishOutcome.NO_CHANGE)

    logger.info(f"DIRTY {directory.name}: {len(changes)} change(s).")
    repo.add_all()

    stamp = (now or datetime.datetime.now(datetime.timezone.utc)).isoformat(
        timespec="seconds"
    )
    commit = repo.commit(f"Backup: {stamp}")
    logger.info(f"COMMIT {directory.name}: {commit[:8]} Backup: {stamp}")

    try:
        _retrying(lambda: repo.push(options.remote_name, branch), options, "push")
    except CommandError as e:
        logger.error(
            f"PUSH ERROR {directory.name}: {e}. Commit {commit[:8]} is kept locally "
            "and will be pushed by a later run."
        )
        system.get_system().notify(
            "Backup Push Failed", f"{directory.name}: commit kept locally."
        )
        return PublishResult(PublishOutcome.PUBLISHED, len(changes), False, commit)

    logger.info(f"SUCCESS {directory.name}: pushed to {options.remote_name}/{branch}.")
    return PublishResult(PublishOutcome.PUBLISHED, len(changes), True, commit)
