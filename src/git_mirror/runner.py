import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, COMMAND_TIMEOUT

logger = logging.getLogger(APP_NAME)


class CommandError(RuntimeError):
    """Base class for failures raised by the command runner."""

    def __init__(self, message: str, args: list[str]):
        super().__init__(message)
        self.command = args


class CommandTimeout(CommandError):
    """The command did not finish within its timeout and was killed."""

    def __init__(self, args: list[str], timeout: float):
        super().__init__(f"'{' '.join(args)}' timed out after {timeout:g}s", args)
        self.timeout = timeout


class CommandFailure(CommandError):
    """The command exited non-zero or could not be spawned."""

    def __init__(self, args: list[str], stderr: str, exit_code: int):
        detail = stderr or f"exit code {exit_code}"
        super().__init__(f"'{' '.join(args)}' failed: {detail}", args)
        self.stderr = stderr
        self.exit_code = exit_code


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single external command.

    Attributes:
        args (list[str]): The argument vector that was executed.
        stdout (str): Captured stdout, trailing whitespace removed.
        stderr (str): Captured stderr, trailing whitespace removed.
        exit_code (int | None): Process exit code, or None if it timed out.
        timed_out (bool): Whether the process was killed after the timeout.
    """

    args: list[str]
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


KILL_GRACE = 1.0
"""float: Seconds allowed to collect output after a timed-out process group is killed."""


def _decode(stream: bytes | None) -> str:
    if not stream:
        return ""
    return stream.decode(errors="replace").rstrip()


def _kill_group(proc: subprocess.Popen) -> tuple[bytes | None, bytes | None]:
    """Kills the process and everything it spawned, then drains what output is left.

    The child leads its own session, so helpers such as ssh that inherit the
    output pipes die with it instead of keeping `communicate` waiting.
    """
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    try:
        return proc.communicate(timeout=KILL_GRACE)
    except subprocess.TimeoutExpired:
        return None, None


def execute(
    args: list[str],
    cwd: Path | None = None,
    timeout: float = COMMAND_TIMEOUT,
    env: dict | None = None,
) -> CommandResult:
    """Runs an argument vector and reports how it ended without raising on failure.

    The command is never passed through a shell, so arguments need no quoting.
    Output is decoded leniently: bytes that are not valid UTF-8 are replaced.

    Args:
        args (list[str]): The program and its arguments.
        cwd (Path | None, optional): Working directory for the process.
        timeout (float, optional): Seconds to wait before killing the process
                                   and its descendants.
        env (dict | None, optional): Environment for the process. Defaults to the
                                     current environment.

    Returns:
        CommandResult: The captured output and exit classification.
    """
    logger.debug(f"RUN {' '.join(args)} (cwd={cwd}, timeout={timeout:g}s)")
    deadline = time.monotonic() + timeout
    try:
        proc = subprocess.Popen(
            args,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        return CommandResult(args, "", str(e), 127)
    except OSError as e:
        return CommandResult(args, "", str(e), 126)

    with proc:
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            stdout, stderr = _kill_group(proc)
            return CommandResult(
                args, _decode(stdout), _decode(stderr), None, timed_out=True
            )
        except BaseException:
            # An interrupt does not cancel the command; it finishes or times out first.
            try:
                proc.communicate(timeout=max(0.0, deadline - time.monotonic()))
            except subprocess.TimeoutExpired:
                _kill_group(proc)
            raise

    result = CommandResult(args, _decode(stdout), _decode(stderr), proc.returncode)
    if result.stdout:
        logger.debug(f"stdout: {result.stdout}")
    if result.stderr:
        logger.debug(f"stderr: {result.stderr}")
    return result


def run(
    args: list[str],
    cwd: Path | None = None,
    timeout: float = COMMAND_TIMEOUT,
    env: dict | None = None,
) -> str:
    """Runs an argument vector and returns its trimmed stdout.

    Args:
        args (list[str]): The program and its arguments.
        cwd (Path | None, optional): Working directory for the process.
        timeout (float, optional): Seconds to wait before killing the process.
        env (dict | None, optional): Environment for the process.

    Returns:
        str: The stdout of the command, trailing whitespace removed.

    Raises:
        CommandTimeout: If the command did not finish within `timeout`.
        CommandFailure: If the command exited non-zero or could not be started.
    """
    result = execute(args, cwd=cwd, timeout=timeout, env=env)
    if result.timed_out:
        raise CommandTimeout(args, timeout)
    if result.exit_code != 0:
        raise CommandFailure(args, result.stderr, result.exit_code or 0)
    return result.stdout
