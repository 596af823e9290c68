import plistlib
import shlex
import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL, LOG_FILE

console = Console()


def get_executable() -> str:
    """Locates the installed CLI executable in the system path.

    Returns:
        str: The absolute path to the 'git-mirror' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which("git-mirror")
    if not exe:
        console.print(
            "[bold red]ERROR:[/bold red] Could not find 'git-mirror'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_path() -> Path:
    """Resolves where the scheduler definition lives for the current OS.

    Returns:
        Path: The systemd .service file on Linux, or the launchd plist on macOS.

    Raises:
        NotImplementedError: On platforms without a supported scheduler.
    """
    home = Path.home()
    if sys.platform.startswith("linux"):
        return home / f".config/systemd/user/{APP_LABEL}.service"
    if sys.platform == "darwin":
        return home / f"Library/LaunchAgents/{APP_LABEL}.plist"
    raise NotImplementedError(f"No scheduler support for platform '{sys.platform}'.")


def build_command(executable: str, config_path: Path | None) -> list[str]:
    """The argument vector the scheduler invokes on every tick."""
    cmd = [executable, "run"]
    if config_path:
        cmd.extend(["--config", str(Path(config_path).expanduser().resolve())])
    return cmd


def install_linux(unit_path: Path, command: list[str], interval: int) -> None:
    """Configures and enables a systemd user timer for Linux.

    Creates the .service and .timer unit files in the user's systemd configuration
    directory, reloads the daemon, and enables the timer.

    Args:
        unit_path (Path): The target path for the .service file.
        command (list[str]): The command line the service runs.
        interval (int): The backup interval in seconds.
    """
    base_dir = unit_path.parent
    base_dir.mkdir(parents=True, exist_ok=True)

    timer_file = base_dir / f"{APP_LABEL}.timer"

    service_content = f"""[Unit]
Description=Git Mirror Backup

[Service]
Type=oneshot
ExecStart={shlex.join(command)}
"""
    timer_content = f"""[Unit]
Description=Run Git Mirror every {interval} seconds

[Timer]
OnBootSec=5min
OnUnitActiveSec={interval}s
Unit={APP_LABEL}.service

[Install]
WantedBy=timers.target
"""

    with open(unit_path, "w") as f:
        f.write(service_content)
    with open(timer_file, "w") as f:
        f.write(timer_content)

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", f"{APP_LABEL}.timer"], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] systemd timer active (Linux).\n"
        f"Check status: systemctl --user status {APP_LABEL}.timer"
    )


def install_macos(plist_path: Path, command: list[str], interval: int) -> None:
    """Writes and loads a launchd agent that runs the backup periodically.

    Args:
        plist_path (Path): The target path for the agent plist.
        command (list[str]): The command line the agent runs.
        interval (int): The backup interval in seconds.
    """
    plist_path.parent.mkdir(parents=True, exist_ok=True)
    agent = {
        "Label": APP_LABEL,
        "ProgramArguments": command,
        "StartInterval": interval,
        "RunAtLoad": True,
        "StandardOutPath": str(LOG_FILE),
        "StandardErrorPath": str(LOG_FILE),
    }
    with open(plist_path, "wb") as f:
        plistlib.dump(agent, f)

    # Reload so an updated interval or command takes effect.
    subprocess.run(["launchctl", "unload", str(plist_path)], stderr=subprocess.DEVNULL)
    subprocess.run(["launchctl", "load", str(plist_path)], check=True)
    console.print(
        f"[bold green]SUCCESS:[/bold green] launchd agent loaded (macOS).\n"
        f"Check status: launchctl list | grep {APP_LABEL}"
    )


def install(interval: int = 3600, config_path: Path | None = None) -> None:
    """Registers a scheduler entry that runs `git-mirror run` on a timer.

    Args:
        interval (int, optional): Seconds between runs. Defaults to hourly.
        config_path (Path | None, optional): Config file passed to each run.
    """
    exe = get_executable()
    path = get_unit_path()
    command = build_command(exe, config_path)

    console.print(f"Installing scheduled backup (interval: {interval}s)...")
    if sys.platform.startswith("linux"):
        install_linux(path, command, interval)
    elif sys.platform == "darwin":
        install_macos(path, command, interval)


def uninstall() -> None:
    """Removes the scheduler entry created by `install`."""
    path = get_unit_path()

    if sys.platform.startswith("linux"):
        timer_name = f"{APP_LABEL}.timer"
        subprocess.run(
            ["systemctl", "--user", "disable", "--now", timer_name],
            stderr=subprocess.DEVNULL,
        )

        # Remove .service and .timer files.
        timer_path = path.parent / timer_name
        if path.exists():
            path.unlink()
        if timer_path.exists():
            timer_path.unlink()

        subprocess.run(["systemctl", "--user", "daemon-reload"])

    elif sys.platform == "darwin":
        if path.exists():
            subprocess.run(["launchctl", "unload", str(path)], stderr=subprocess.DEVNULL)
            path.unlink()

    console.print("[bold green]SUCCESS:[/bold green] Scheduled backup removed.")


def is_service_installed() -> bool:
    """Whether a scheduler definition exists for the current OS."""
    try:
        return get_unit_path().exists()
    except NotImplementedError:
        return False
