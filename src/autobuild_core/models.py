"""Shared data models for autobuild_core."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class WatchState(str, Enum):
    """Watch session states.

    IDLE → WATCHING → BUILDING → WATCHING → ... → STOPPED
    """

    IDLE = "idle"
    WATCHING = "watching"
    BUILDING = "building"
    STOPPED = "stopped"


class ClassificationResult(str, Enum):
    """Outcome of classifying one changed path."""

    ACCEPTED = "accepted"
    REJECTED_BY_IGNORE = "rejected_by_ignore"
    REJECTED_BY_WATCH_PATH = "rejected_by_watch_path"
    REJECTED_BY_EXTENSION = "rejected_by_extension"

    @property
    def accepted(self) -> bool:
        return self is ClassificationResult.ACCEPTED


@dataclass(frozen=True)
class BuildTarget:
    """A named build command."""

    name: str
    """Unique target name (key under [buildTargets])."""

    command: tuple[str, ...]
    """Executable followed by its arguments."""

    description: str = ""
    """Human readable description shown by `status` and `init`."""


@dataclass(frozen=True)
class NotificationSettings:
    """Desktop notification toggles."""

    enabled: bool = True
    on_success: bool = True
    on_failure: bool = True


@dataclass(frozen=True)
class VcsSettings:
    """Post-build git actions."""

    auto_commit: bool = False
    auto_push: bool = False
    commit_message_template: str = "chore: auto build {timestamp}"
    """Commit message; `{timestamp}` is replaced with local time."""


@dataclass(frozen=True)
class ProjectSettings:
    """Project layout expectations."""

    root: Path
    """Project root; every watch/ignore glob is relative to it."""

    manifest: str = "package.json"
    """Manifest file that must exist at the root."""

    source_dir: str = "src-tauri"
    """Build-source subdirectory that must exist at the root."""

    release_dir: str = "src-tauri/target/release"
    """Release output directory scanned for artifacts after a build."""

    @property
    def release_path(self) -> Path:
        return self.root / self.release_dir

    @property
    def state_dir(self) -> Path:
        return self.root / ".autobuild"


@dataclass(frozen=True)
class BuildConfig:
    """Typed, read-only orchestrator configuration."""

    project: ProjectSettings
    build_targets: dict[str, BuildTarget]
    default_target: str
    watch_paths: tuple[str, ...] = ()
    ignore_paths: tuple[str, ...] = ()
    file_extensions: frozenset[str] = frozenset()
    build_cooldown: int = 5
    """Minimum seconds between two accepted build triggers."""

    auto_trigger_enabled: bool = True
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    vcs: VcsSettings = field(default_factory=VcsSettings)
    config_path: Path | None = None
    """File this config was loaded from (used by reload)."""

    def get_target(self, name: str) -> BuildTarget | None:
        return self.build_targets.get(name)


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one Build Dispatcher invocation."""

    target: str
    started_at: float
    """Wall-clock start (epoch seconds)."""

    duration: float
    """Seconds from just before spawn to process exit."""

    succeeded: bool
    failure_reason: str | None = None
    output_artifacts: tuple[Path, ...] = ()
    """Best-effort listing of produced binaries/installers."""

    exit_code: int | None = None
    command: tuple[str, ...] = ()

    @property
    def duration_str(self) -> str:
        """Format duration for display (e.g. '850ms', '12.3s', '2m 5s')."""
        if self.duration < 1:
            return f"{int(self.duration * 1000)}ms"
        if self.duration < 60:
            return f"{self.duration:.1f}s"
        minutes, seconds = divmod(int(self.duration), 60)
        return f"{minutes}m {seconds}s"

    def summary(self) -> dict:
        return {
            "target": self.target,
            "succeeded": self.succeeded,
            "duration": round(self.duration, 3),
            "started_at": self.started_at,
            "failure_reason": self.failure_reason,
        }


@dataclass(frozen=True)
class VcsStatus:
    """Snapshot of the working tree."""

    is_repository: bool = False
    branch: str | None = None
    has_changes: bool = False
    changed_files: int = 0


@dataclass
class SessionStatus:
    """Snapshot of a watch session, as reported by `status`."""

    state: WatchState = WatchState.IDLE
    last_trigger_time: float | None = None
    active_target: str | None = None
    pid: int | None = None
    builds_run: int = 0
    last_outcome: dict | None = None
    vcs: VcsStatus = field(default_factory=VcsStatus)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "state": self.state.value,
            "last_trigger_time": self.last_trigger_time,
            "active_target": self.active_target,
            "pid": self.pid,
            "builds_run": self.builds_run,
            "last_outcome": self.last_outcome,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionStatus":
        return cls(
            state=WatchState(data.get("state", WatchState.IDLE.value)),
            last_trigger_time=data.get("last_trigger_time"),
            active_target=data.get("active_target"),
            pid=data.get("pid"),
            builds_run=data.get("builds_run", 0),
            last_outcome=data.get("last_outcome"),
        )


@dataclass
class ConfigValidationResult:
    """Results from startup configuration validation.

    Built by the config layer, consumed by the CLI for display only.
    """

    targets_loaded: int = 0
    """Number of build targets loaded."""

    warnings: list[str] = field(default_factory=list)
    """Config issues found (non-fatal)."""
