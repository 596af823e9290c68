import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import engine, notes, service
from .config import BackupConfig, ConfigError
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_EXCLUDES,
    DEFAULT_IGNORES,
    DEFAULT_PRESERVES,
    GIT_DIR_NAME,
)
from .git_wrapper import GitRepo
from .runner import CommandError

logger = logging.getLogger(APP_NAME)
console = Console()


def _load_config(path: Path | None) -> BackupConfig:
    """Loads the configuration or exits with a readable error."""
    try:
        return BackupConfig.load(path)
    except ConfigError as e:
        console.print(f"[bold red]CONFIG ERROR:[/bold red] {e}")
        sys.exit(1)


def show_status(config_path: Path | None = None) -> None:
    """Displays the configured paths and the state of the backup repository."""
    config = _load_config(config_path)

    summary = Text()
    summary.append("Source:  ", style="bold")
    summary.append(f"{config.source_path}\n")
    summary.append("Backup:  ", style="bold")
    summary.append(f"{config.backup_path}\n")
    summary.append("Remote:  ", style="bold")
    summary.append(f"{config.remote_url} ({config.branch})\n")
    summary.append("Service: ", style="bold")
    if service.is_service_installed():
        summary.append("Scheduled", style="green")
    else:
        summary.append("Not scheduled", style="yellow")
    console.print(Panel(summary, title="Configuration", expand=False))

    if not (config.backup_path / GIT_DIR_NAME).exists():
        console.print(
            Panel(
                "No backup repository yet.\n"
                "Run [bold cyan]git-mirror run[/bold cyan] to create it.",
                title="Backup Status",
                expand=False,
                border_style="yellow",
            )
        )
        return

    repo = GitRepo(config.backup_path, timeout=config.command_timeout)
    local_ref = f"refs/heads/{config.branch}"
    remote_ref = f"refs/remotes/{config.remote_name}/{config.branch}"

    try:
        last_backup = repo.get_last_commit_time(local_ref)
    except CommandError as e:
        logger.debug(f"Failed to read last backup time: {e}")
        last_backup = "Never"

    unpushed = None
    if repo.rev_parse(local_ref) and repo.rev_parse(remote_ref):
        try:
            unpushed = repo.count_commits(remote_ref, local_ref)
        except CommandError as e:
            logger.debug(f"Failed to count unpushed commits: {e}")

    try:
        pending = f"{len(repo.status_porcelain())} files changed"
    except CommandError as e:
        logger.debug(f"Failed to read working tree status: {e}")
        pending = "unknown"

    content = Text()
    content.append(f"Last Backup: {last_backup}\n")
    content.append(f"Pending:     {pending}\n")
    if unpushed is None:
        content.append("Remote:      unknown (never fetched)", style="dim")
    elif unpushed:
        content.append(f"Remote:      {unpushed} commit(s) not pushed", style="bold yellow")
    else:
        content.append("Remote:      up to date", style="green")

    console.print(Panel(content, title="Backup Status", expand=False))


def show_config(config_path: Path | None = None) -> None:
    """Prints the resolved configuration."""
    config = _load_config(config_path)

    table = Table(title=f"{config_path or CONFIG_FILE}", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("sourcePath", str(config.source_path))
    table.add_row("backupPath", str(config.backup_path))
    table.add_row("remoteURL", config.remote_url)
    table.add_row("logLevel", config.log_level)
    table.add_row("branch", config.branch)
    table.add_row("remoteName", config.remote_name)
    table.add_row("exclude", ", ".join(config.exclude))
    table.add_row("preserve", ", ".join(config.preserve))
    table.add_row("ignore", ", ".join(config.ignore))
    table.add_row("commandTimeout", f"{config.command_timeout:g}s")
    table.add_row("probeTimeout", f"{config.probe_timeout:g}s")
    table.add_row("retryAttempts", str(config.retry_attempts))
    table.add_row("retryBackoff", f"{config.retry_backoff:g}s")
    table.add_row("copyWorkers", str(config.copy_workers))

    console.print(table)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Git Mirror Configuration Schema", show_lines=True)
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("sourcePath", "str", "required", "Directory to back up (read-only).")
    table.add_row(
        "backupPath", "str", "required", "Mirror directory holding the git repository."
    )
    table.add_row("remoteURL", "str", "required", "Remote repository URL.")
    table.add_row(
        "logLevel", "str", '"error"', "One of 'error', 'warn', 'info', 'debug'."
    )
    table.add_row("branch", "str", '"main"', "The single branch backups are pushed to.")
    table.add_row("remoteName", "str", '"origin"', "Name of the bound remote.")
    table.add_row(
        "exclude",
        "list",
        ", ".join(DEFAULT_EXCLUDES),
        "Extra entry names never copied (appended to defaults).",
    )
    table.add_row(
        "preserve",
        "list",
        ", ".join(DEFAULT_PRESERVES),
        "Extra top-level backup names never deleted (appended to defaults).",
    )
    table.add_row(
        "ignore",
        "list",
        ", ".join(DEFAULT_IGNORES),
        "Extra .gitignore patterns (appended to defaults).",
    )
    table.add_row(
        "commandTimeout", "int | str", '"30s"', "Time allowed per git command."
    )
    table.add_row(
        "probeTimeout", "int | str", '"10s"', "Time allowed for the remote probe."
    )
    table.add_row("retryAttempts", "int", "3", "Attempts for fetch, push, remote add.")
    table.add_row("retryBackoff", "int | str", '"1s"', "Wait between those attempts.")
    table.add_row("copyWorkers", "int", "16", "Maximum concurrent file copies.")

    console.print(table)


def clean_notes(
    config_path: Path | None = None,
    dry_run: bool = False,
    directory: Path | None = None,
) -> None:
    """Moves empty notes to the trash.

    Args:
        config_path (Path | None, optional): Config whose source tree is cleaned.
        dry_run (bool, optional): Only list what would be trashed.
        directory (Path | None, optional): Tree to clean instead of the configured
                                           source. The config is not read then.
    """
    if directory is None:
        config = _load_config(config_path)
        engine.setup_logging(config.level, log_file=None)
        directory = config.source_path
    else:
        engine.setup_logging(logging.ERROR, log_file=None)
        directory = directory.expanduser().resolve()

    if not directory.is_dir():
        console.print(
            f"[bold red]ERROR:[/bold red] Directory does not exist: {directory}"
        )
        sys.exit(1)

    with console.status("Scanning for empty notes...", spinner="dots"):
        deleted = notes.prune_empty_notes(directory, dry_run=dry_run)

    verb = "Would delete" if dry_run else "Deleted"
    for path in deleted:
        console.print(f"   - {path.relative_to(directory)}", style="dim")
    console.print(f"[bold green]SUCCESS:[/bold green] {verb} {len(deleted)} empty note(s).")


class MirrorHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into logical categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Backup": ["run", "status", "clean"],
                "Configuration": ["config"],
                "Service": ["install-service", "uninstall-service"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def _add_config_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help=f"Path to the JSON config (default: {CONFIG_FILE})",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        formatter_class=MirrorHelpFormatter,
        description="Mirror a directory into a git repository and push it.",
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Mirror and publish once (default)")
    _add_config_flag(run_parser)
    run_parser.add_argument(
        "--log-level",
        "-l",
        choices=["error", "warn", "info", "debug"],
        default=None,
        help="Override the configured log level",
    )

    status_parser = subparsers.add_parser("status", help="Show backup status")
    _add_config_flag(status_parser)

    clean_parser = subparsers.add_parser(
        "clean", help="Delete empty notes from the source tree"
    )
    _add_config_flag(clean_parser)
    clean_parser.add_argument(
        "--dry-run", "-n", action="store_true", help="Only list what would be deleted"
    )
    clean_parser.add_argument(
        "--dir",
        "-d",
        type=Path,
        help="Directory to clean instead of the configured source",
    )

    config_parser = subparsers.add_parser(
        "config", help="Show the resolved config or the options reference"
    )
    _add_config_flag(config_parser)
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    install_parser = subparsers.add_parser(
        "install-service", help="Schedule periodic backups"
    )
    _add_config_flag(install_parser)
    install_parser.add_argument(
        "--interval",
        type=int,
        default=3600,
        help="Backup interval in seconds (default: 3600)",
    )
    subparsers.add_parser("uninstall-service", help="Remove the scheduled backups")
    subparsers.add_parser("help", help="Show this help message")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Mirror CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "run"):
        sys.exit(
            engine.main(
                config_path=getattr(args, "config", None),
                log_level=getattr(args, "log_level", None),
            )
        )
    elif args.command == "help":
        parser.print_help()
    elif args.command == "status":
        show_status(args.config)
    elif args.command == "clean":
        clean_notes(args.config, dry_run=args.dry_run, directory=args.dir)
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            show_config(args.config)
    elif args.command == "install-service":
        service.install(interval=args.interval, config_path=args.config)
    elif args.command == "uninstall-service":
        with console.status("Uninstalling service...", spinner="dots"):
            service.uninstall()


if __name__ == "__main__":
    main()
