import logging
import os
import socket
from pathlib import Path

from . import runner
from .constants import APP_NAME, COMMAND_TIMEOUT, GIT_DIR_NAME
from .runner import CommandFailure

logger = logging.getLogger(APP_NAME)


def _batch_env() -> dict[str, str]:
    """Environment that keeps git from prompting when no operator is present."""
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


class GitRepo:
    """A wrapper around the Git command-line interface for the backup repository.

    Every call goes through the command runner with an argument vector and a
    timeout, so a hung git process is killed instead of stalling the run.

    Attributes:
        path (Path): The file system path to the repository root.
        timeout (float): Seconds allowed for each git command.
    """

    def __init__(self, path: Path, timeout: float = COMMAND_TIMEOUT):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            timeout (float, optional): Default per-command timeout in seconds.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        self.timeout = timeout
        if not (self.path / GIT_DIR_NAME).exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def init(cls, path: Path, branch: str, timeout: float = COMMAND_TIMEOUT) -> "GitRepo":
        """Creates a new repository whose unborn HEAD points at `branch`.

        Args:
            path (Path): The directory to initialize. Must already exist.
            branch (str): The branch the first commit will land on.
            timeout (float, optional): Default per-command timeout in seconds.

        Returns:
            GitRepo: The wrapper for the new repository.
        """
        runner.run(["git", "init", "--quiet"], cwd=path, timeout=timeout, env=_batch_env())
        repo = cls(path, timeout)
        repo.set_head(branch)
        return repo

    def _run(self, args: list[str], timeout: float | None = None) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): Arguments passed to the git executable.
            timeout (float | None, optional): Overrides the default timeout.

        Returns:
            str: The stdout of the command with trailing whitespace removed.

        Raises:
            CommandTimeout: If git did not finish in time.
            CommandFailure: If git exited non-zero.
        """
        return runner.run(
            ["git", *args],
            cwd=self.path,
            timeout=self.timeout if timeout is None else timeout,
            env=_batch_env(),
        )

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the working tree.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        output = self._run(["status", "--porcelain"])
        return output.splitlines() if output else []

    def add_all(self) -> None:
        """Stages all changes (modified, deleted, and untracked files)."""
        self._run(["add", "--all"])

    def _identity_args(self) -> list[str]:
        # Scheduled runs may have no committer identity configured.
        try:
            self._run(["config", "user.email"])
            return []
        except CommandFailure:
            host = socket.gethostname().split(".")[0] or "localhost"
            logger.debug("No git identity configured; using a fallback identity.")
            return ["-c", f"user.name={APP_NAME}", "-c", f"user.email={APP_NAME}@{host}"]

    def commit(self, message: str, no_verify: bool = False) -> str:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            no_verify (bool, optional): Whether to bypass commit hooks.

        Returns:
            str: The SHA-1 of the new commit.
        """
        cmd = [*self._identity_args(), "commit", "--quiet", "-m", message]
        if no_verify:
            cmd.append("--no-verify")
        self._run(cmd)
        return self._run(["rev-parse", "HEAD"])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision to a full SHA-1 hash.

        Returns:
            str | None: The hash, or None if the revision does not exist.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        except CommandFailure as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def get_last_commit_time(self, branch: str) -> str:
        """Gets the relative time since the last commit on a branch (e.g. '2 hours ago')."""
        return self._run(["log", "-1", "--format=%cr", branch])

    def remote_url(self, name: str) -> str | None:
        """Returns the URL bound to a remote, or None if it is not configured."""
        try:
            return self._run(["remote", "get-url", name])
        except CommandFailure:
            return None

    def add_remote(self, name: str, url: str) -> None:
        self._run(["remote", "add", name, url])

    def set_remote_url(self, name: str, url: str) -> None:
        self._run(["remote", "set-url", name, url])

    def fetch(self, remote: str) -> None:
        """Updates remote-tracking refs from `remote`."""
        self._run(["fetch", "--quiet", remote])

    def ls_remote_heads(
        self, remote: str, branch: str, timeout: float | None = None
    ) -> list[str]:
        """Lists the remote heads matching `branch`.

        Args:
            remote (str): The remote name or URL to query.
            branch (str): The branch name to look for.
            timeout (float | None, optional): Overrides the default timeout.

        Returns:
            list[str]: `<sha>\\t<ref>` lines; empty if the branch does not exist.
        """
        output = self._run(["ls-remote", "--heads", remote, branch], timeout=timeout)
        return output.splitlines() if output else []

    def set_head(self, branch: str) -> None:
        """Points HEAD at `branch` without touching the working tree."""
        self._run(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])

    def update_ref(self, ref: str, new_oid: str) -> None:
        """Moves a reference to a new object ID."""
        self._run(["update-ref", "-m", f"{APP_NAME}: sync", ref, new_oid])

    def reset_index(self) -> None:
        """Resets the index to HEAD, leaving the working tree as it is."""
        self._run(["reset", "--quiet"])

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Checks whether `ancestor` is reachable from `descendant`."""
        try:
            self._run(["merge-base", "--is-ancestor", ancestor, descendant])
            return True
        except CommandFailure as e:
            if e.exit_code == 1:
                return False
            raise

    def count_commits(self, base: str, tip: str) -> int:
        """Counts commits reachable from `tip` but not from `base`."""
        return int(self._run(["rev-list", "--count", f"{base}..{tip}"]) or 0)

    def push(self, remote: str, branch: str) -> None:
        """Pushes `branch` to `remote` and records it as the upstream."""
        self._run(["push", "--quiet", "--set-upstream", remote, branch])
