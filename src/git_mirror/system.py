"""Desktop notifications for unattended backup runs.

A scheduled run has no terminal to print to, so failures that do not stop the
run (a rejected or unreachable push) are also announced on the desktop. Every
notifier is best effort: a missing or hung notification tool never affects the
backup outcome.
"""

import subprocess
import sys

NOTIFY_TIMEOUT = 5
"""int: Seconds a notification tool may take before it is abandoned."""


class SystemStrategy:
    """Notifier used where no desktop notification tool is known; it stays silent."""

    def notify(self, title: str, message: str) -> None:
        """Announces a backup event to the logged-in user.

        Args:
            title (str): Short headline, e.g. "Backup Push Failed".
            message (str): One line naming the backup and what happened.
        """
        pass


class MacOSStrategy(SystemStrategy):
    """Posts backup notifications to Notification Center through `osascript`."""

    def notify(self, title: str, message: str) -> None:
        # AppleScript string literals cannot hold double quotes.
        clean_msg = message.replace('"', "'")
        clean_title = title.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{clean_title}"'
        try:
            subprocess.run(
                ["osascript", "-e", script],
                stderr=subprocess.DEVNULL,
                timeout=NOTIFY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass


class LinuxStrategy(SystemStrategy):
    """Posts backup notifications through `notify-send` (libnotify)."""

    def notify(self, title: str, message: str) -> None:
        try:
            subprocess.run(
                ["notify-send", "--app-name=git-mirror", title, message],
                stderr=subprocess.DEVNULL,
                timeout=NOTIFY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass


def get_system() -> SystemStrategy:
    """Picks the notifier for the current platform.

    Used when a push fails: the run still succeeds, and the notification is how
    the user learns that commits are waiting locally.

    Returns:
        SystemStrategy: The macOS or Linux notifier, or a silent one elsewhere.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()
