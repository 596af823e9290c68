import plistlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_mirror import service, system


def test_build_command_resolves_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    cmd = service.build_command("/usr/bin/git-mirror", Path("conf/config.json"))

    assert cmd == [
        "/usr/bin/git-mirror",
        "run",
        "--config",
        str((tmp_path / "conf" / "config.json").resolve()),
    ]
    assert service.build_command("/usr/bin/git-mirror", None) == ["/usr/bin/git-mirror", "run"]


def test_install_linux_writes_units(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the systemd service/timer pair and the systemctl calls."""
    mock_run = mocker.patch("subprocess.run")
    unit = tmp_path / "systemd" / "com.gitmirror.backup.service"

    service.install_linux(unit, ["/opt/my tools/git-mirror", "run"], 900)

    service_text = unit.read_text()
    assert "Type=oneshot" in service_text
    assert "ExecStart='/opt/my tools/git-mirror' run" in service_text
    timer_text = (unit.parent / "com.gitmirror.backup.timer").read_text()
    assert "OnUnitActiveSec=900s" in timer_text
    mock_run.assert_any_call(["systemctl", "--user", "daemon-reload"], check=True)


def test_install_macos_writes_agent(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch("subprocess.run")
    plist = tmp_path / "LaunchAgents" / "com.gitmirror.backup.plist"

    service.install_macos(plist, ["/usr/local/bin/git-mirror", "run"], 1800)

    with open(plist, "rb") as f:
        agent = plistlib.load(f)
    assert agent["ProgramArguments"] == ["/usr/local/bin/git-mirror", "run"]
    assert agent["StartInterval"] == 1800


def test_missing_executable_exits(mocker: MagicMock) -> None:
    mocker.patch("shutil.which", return_value=None)

    with pytest.raises(SystemExit):
        service.get_executable()


def test_uninstall_linux_removes_units(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "linux")
    mocker.patch("subprocess.run")
    unit = tmp_path / "com.gitmirror.backup.service"
    timer = tmp_path / "com.gitmirror.backup.timer"
    unit.write_text("[Unit]")
    timer.write_text("[Timer]")
    mocker.patch("git_mirror.service.get_unit_path", return_value=unit)

    service.uninstall()

    assert not unit.exists()
    assert not timer.exists()


def test_unsupported_platform_is_not_installed(mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "win32")

    assert service.is_service_installed() is False


def test_linux_notification_uses_notify_send(mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "linux")
    mock_run = mocker.patch("subprocess.run")

    system.get_system().notify("Backup Push Failed", "notes: commit kept locally.")

    args = mock_run.call_args[0][0]
    assert args == [
        "notify-send",
        "--app-name=git-mirror",
        "Backup Push Failed",
        "notes: commit kept locally.",
    ]


def test_macos_notification_escapes_quotes(mocker: MagicMock) -> None:
    """Verifies that a quoted remote message cannot break the AppleScript literal."""
    mocker.patch("sys.platform", "darwin")
    mock_run = mocker.patch("subprocess.run")

    system.get_system().notify("Backup Push Failed", 'rejected: "main" diverged')

    args = mock_run.call_args[0][0]
    assert args[:2] == ["osascript", "-e"]
    assert args[2] == (
        "display notification \"rejected: 'main' diverged\" "
        'with title "Backup Push Failed"'
    )


def test_unknown_platform_stays_silent(mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "win32")
    mock_run = mocker.patch("subprocess.run")

    system.get_system().notify("Backup Push Failed", "message")

    mock_run.assert_not_called()


def test_missing_notifier_is_ignored(mocker: MagicMock) -> None:
    mocker.patch("sys.platform", "linux")
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("notify-send"))

    system.get_system().notify("title", "message")
