"""Git integration: post-build commit/push and working-tree status."""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from autobuild_core.errors import VcsActionError
from autobuild_core.models import BuildConfig, BuildOutcome, VcsStatus

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_commit_message(template: str, now: datetime | None = None) -> str:
    """Substitute `{timestamp}` with local time as YYYY-MM-DD HH:MM:SS."""
    now = now or datetime.now()
    return template.replace("{timestamp}", now.strftime(TIMESTAMP_FORMAT))


@dataclass
class VcsActionResult:
    """What the post-build VCS step did."""

    committed: bool = False
    pushed: bool = False
    skipped_reason: str | None = None
    error: str | None = None


class GitClient:
    """Thin wrapper over the git executable, always invoked with argument lists."""

    def __init__(self, root: str | Path, executable: str = "git", timeout: float = 120.0):
        self.root = Path(root)
        self.executable = executable
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def run(self, *args: str) -> str:
        """Run a git subcommand and return its stdout.

        Raises:
            VcsActionError: git missing, timed out, or exited nonzero
        """
        cmd = [self.executable, *args]
        try:
            proc = subprocess.run(
                cmd,
                cwd=self.root,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise VcsActionError(f"git {args[0]} failed: {e}") from e

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()
            raise VcsActionError(
                f"git {args[0]} exited with {proc.returncode}: {detail}",
                returncode=proc.returncode,
                output=detail,
            )
        return proc.stdout

    def is_repository(self) -> bool:
        try:
            return self.run("rev-parse", "--is-inside-work-tree").strip() == "true"
        except VcsActionError:
            return False

    def changed_files(self) -> list[str]:
        return [line for line in self.run("status", "--porcelain").splitlines() if line.strip()]

    def current_branch(self) -> str | None:
        try:
            branch = self.run("rev-parse", "--abbrev-ref", "HEAD").strip()
        except VcsActionError:
            # Fresh repository with no commits yet
            branch = self.run("symbolic-ref", "--short", "HEAD").strip()
        return branch or None

    def status(self) -> VcsStatus:
        """Read-only snapshot of branch and uncommitted changes."""
        if not self.is_repository():
            return VcsStatus(is_repository=False)
        try:
            changes = self.changed_files()
            branch = self.current_branch()
        except VcsActionError as e:
            logger.warning(f"Failed to query git status: {e}")
            return VcsStatus(is_repository=True)
        return VcsStatus(
            is_repository=True,
            branch=branch,
            has_changes=bool(changes),
            changed_files=len(changes),
        )

    def init(self) -> None:
        self.run("init")

    def commit_all(self, message: str) -> None:
        self.run("add", "-A")
        self.run("commit", "-m", message)

    def push(self) -> None:
        self.run("push")


def run_vcs_post_action(
    outcome: BuildOutcome,
    config: BuildConfig,
    git: GitClient,
    now: datetime | None = None,
) -> VcsActionResult:
    """Commit (and optionally push) after a successful build.

    Failures are logged as warnings and reported in the result; they never
    affect the build outcome.
    """
    if not config.vcs.auto_commit:
        return VcsActionResult(skipped_reason="auto-commit disabled")
    if not outcome.succeeded:
        return VcsActionResult(skipped_reason="build failed")

    result = VcsActionResult()
    try:
        if not git.changed_files():
            result.skipped_reason = "no changes to commit"
            logger.info("Working tree clean, nothing to commit")
            return result

        message = format_commit_message(config.vcs.commit_message_template, now)
        git.commit_all(message)
        result.committed = True
        logger.info(f"Committed: {message}")

        if config.vcs.auto_push:
            git.push()
            result.pushed = True
            logger.info("Pushed to upstream")
    except VcsActionError as e:
        result.error = str(e)
        logger.warning(f"VCS post-build action failed: {e}")

    return result
