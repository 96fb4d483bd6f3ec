"""Pluggable build notifications.

Hosts can provide any object implementing BuildNotifier (tests, embedding,
UI integration). Delivery failures always degrade to a console line.
"""

import logging
import shutil
import subprocess
import sys
from typing import Protocol

from autobuild_core.errors import NotificationUnavailableError
from autobuild_core.models import BuildConfig, BuildOutcome

logger = logging.getLogger(__name__)

APP_NAME = "autobuild"


class BuildNotifier(Protocol):
    """Protocol for notifications - host can provide custom implementation."""

    def send(self, title: str, message: str, success: bool) -> None:
        """Deliver one notification."""
        ...


class NoOpNotifier:
    """Silent notifier - default for embedded mode."""

    def send(self, title: str, message: str, success: bool) -> None:
        """Do nothing."""
        pass


class ConsoleNotifier:
    """Prints notifications as a single console line."""

    def __init__(self, stream=None):
        self.stream = stream

    def send(self, title: str, message: str, success: bool) -> None:
        icon = "✅" if success else "❌"
        print(f"{icon} {title}: {message}", file=self.stream or sys.stdout, flush=True)


class DesktopNotifier:
    """OS-level transient notification via the platform's own tooling."""

    def __init__(self, platform: str | None = None, timeout: float = 10.0):
        self.platform = platform or sys.platform
        self.timeout = timeout

    def _command(self, title: str, message: str) -> list[str]:
        if self.platform.startswith("linux") and shutil.which("notify-send"):
            return ["notify-send", "--app-name", APP_NAME, title, message]

        if self.platform == "darwin" and shutil.which("osascript"):
            script = f"display notification {_applescript_quote(message)} with title {_applescript_quote(title)}"
            return ["osascript", "-e", script]

        if self.platform == "win32":
            powershell = shutil.which("powershell") or shutil.which("pwsh")
            if powershell:
                return [powershell, "-NoProfile", "-NonInteractive", "-Command", _toast_script(title, message)]

        raise NotificationUnavailableError(f"No desktop notification mechanism on {self.platform}")

    def send(self, title: str, message: str, success: bool) -> None:
        cmd = self._command(title, message)
        try:
            subprocess.run(cmd, capture_output=True, timeout=self.timeout, check=True)
        except (OSError, subprocess.SubprocessError) as e:
            raise NotificationUnavailableError(f"Desktop notification failed: {e}") from e


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _toast_script(title: str, message: str) -> str:
    def ps(text: str) -> str:
        return "'" + text.replace("'", "''") + "'"

    return (
        "[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType=WindowsRuntime] | Out-Null;"
        "$t = [Windows.UI.Notifications.ToastNotificationManager]::GetTemplateContent("
        "[Windows.UI.Notifications.ToastTemplateType]::ToastText02);"
        "$x = $t.GetElementsByTagName('text');"
        f"$x.Item(0).AppendChild($t.CreateTextNode({ps(title)})) | Out-Null;"
        f"$x.Item(1).AppendChild($t.CreateTextNode({ps(message)})) | Out-Null;"
        "$n = [Windows.UI.Notifications.ToastNotification]::new($t);"
        f"[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier({ps(APP_NAME)}).Show($n)"
    )


def format_notification(outcome: BuildOutcome) -> tuple[str, str]:
    """Build (title, message) summarizing an outcome."""
    if outcome.succeeded:
        title = f"Build complete: {outcome.target}"
        message = f"Finished in {outcome.duration_str}"
        if outcome.output_artifacts:
            message += f" ({len(outcome.output_artifacts)} artifact(s))"
    else:
        title = f"Build failed: {outcome.target}"
        reason = (outcome.failure_reason or "unknown error").strip().splitlines()
        message = f"{reason[-1] if reason else 'unknown error'} (after {outcome.duration_str})"
    return title, message


def notify_outcome(
    outcome: BuildOutcome,
    config: BuildConfig,
    notifier: BuildNotifier,
    fallback: BuildNotifier | None = None,
) -> bool:
    """Emit a notification for an outcome if the config asks for one.

    Never raises: delivery errors fall back to the console notifier.

    Returns:
        True if a notification was emitted (by either notifier)
    """
    settings = config.notifications
    if not settings.enabled:
        return False
    if outcome.succeeded and not settings.on_success:
        return False
    if not outcome.succeeded and not settings.on_failure:
        return False

    title, message = format_notification(outcome)
    try:
        notifier.send(title, message, outcome.succeeded)
        return True
    except Exception as e:
        logger.debug(f"Notification unavailable, falling back to console: {e}")

    try:
        (fallback or ConsoleNotifier()).send(title, message, outcome.succeeded)
        return True
    except Exception as e:
        logger.warning(f"Console notification failed: {e}")
        return False
