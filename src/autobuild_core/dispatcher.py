"""Build dispatch: run a named target as a child process and report the outcome."""

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

from autobuild_core.errors import UnknownTargetError
from autobuild_core.models import BuildConfig, BuildOutcome, BuildTarget

logger = logging.getLogger(__name__)

# Tail of output kept as the failure reason
FAILURE_TAIL_CHARS = 2000

ARTIFACT_SUFFIXES = {".exe", ".msi", ".dmg", ".app", ".AppImage", ".deb", ".rpm"}


def _resolve_argv(command: tuple[str, ...]) -> list[str]:
    """Resolve the executable through PATH (picks up npm.cmd etc. on Windows)."""
    executable = shutil.which(command[0]) or command[0]
    return [executable, *command[1:]]


def _tail(text: str, limit: int = FAILURE_TAIL_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


def find_artifacts(release_dir: Path) -> tuple[Path, ...]:
    """List produced binaries/installers under a release directory.

    Best-effort: scan errors are logged and yield whatever was found so far.
    """
    if not release_dir.is_dir():
        return ()

    found: list[Path] = []
    try:
        for entry in sorted(release_dir.iterdir()):
            if not entry.is_file():
                continue
            if entry.suffix in ARTIFACT_SUFFIXES:
                found.append(entry)
            elif not entry.suffix and os.access(entry, os.X_OK):
                found.append(entry)

        bundle_dir = release_dir / "bundle"
        if bundle_dir.is_dir():
            for entry in sorted(bundle_dir.rglob("*")):
                if entry.suffix in ARTIFACT_SUFFIXES and (entry.is_file() or entry.suffix == ".app"):
                    found.append(entry)
    except OSError as e:
        logger.warning(f"Failed to scan release directory {release_dir}: {e}")

    return tuple(found)


class BuildDispatcher:
    """Resolves build targets and executes them synchronously."""

    def __init__(
        self,
        project_root: str | Path,
        release_dir: str | Path | None = None,
        on_output: Callable[[str, str], None] | None = None,
    ):
        """Initialize dispatcher.

        Args:
            project_root: Working directory for every build command
            release_dir: Directory scanned for artifacts after a successful build
            on_output: Optional callback receiving (target_name, captured_output)
        """
        self.project_root = Path(project_root)
        self.release_dir = Path(release_dir) if release_dir else None
        self.on_output = on_output

    @classmethod
    def for_config(cls, config: BuildConfig, **kwargs) -> "BuildDispatcher":
        return cls(config.project.root, config.project.release_path, **kwargs)

    def resolve(self, target_name: str, config: BuildConfig) -> BuildTarget:
        target = config.get_target(target_name)
        if target is None:
            raise UnknownTargetError(target_name, sorted(config.build_targets))
        return target

    def run(self, target_name: str, config: BuildConfig) -> BuildOutcome:
        """Run a build target to completion.

        Raises:
            UnknownTargetError: Target is not configured (nothing is spawned)
        """
        target = self.resolve(target_name, config)
        argv = _resolve_argv(target.command)
        logger.info(f"Building '{target.name}': {' '.join(target.command)}")

        started_at = time.time()
        start = time.perf_counter()
        try:
            proc = subprocess.run(
                argv,
                cwd=self.project_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as e:
            duration = time.perf_counter() - start
            logger.error(f"Failed to start '{target.name}': {e}")
            return BuildOutcome(
                target=target.name,
                started_at=started_at,
                duration=duration,
                succeeded=False,
                failure_reason=str(e),
                command=target.command,
            )
        duration = time.perf_counter() - start

        output = proc.stdout or ""
        if self.on_output:
            try:
                self.on_output(target.name, output)
            except Exception:
                logger.exception("Output callback error")

        if proc.returncode != 0:
            reason = _tail(output) or f"exit code {proc.returncode}"
            logger.error(f"Build '{target.name}' failed with exit code {proc.returncode}")
            return BuildOutcome(
                target=target.name,
                started_at=started_at,
                duration=duration,
                succeeded=False,
                failure_reason=reason,
                exit_code=proc.returncode,
                command=target.command,
            )

        artifacts = find_artifacts(self.release_dir) if self.release_dir else ()
        for artifact in artifacts:
            logger.info(f"Artifact: {artifact}")

        outcome = BuildOutcome(
            target=target.name,
            started_at=started_at,
            duration=duration,
            succeeded=True,
            output_artifacts=artifacts,
            exit_code=0,
            command=target.command,
        )
        logger.info(f"Build '{target.name}' succeeded in {outcome.duration_str}")
        return outcome
