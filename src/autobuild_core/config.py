"""Configuration parsing for autobuild."""

import json
import logging
import shlex
import tomllib
from pathlib import Path
from typing import Any

from autobuild_core.errors import ConfigInvalidError, ConfigMalformedError, ConfigNotFoundError
from autobuild_core.models import (
    BuildConfig,
    BuildTarget,
    ConfigValidationResult,
    NotificationSettings,
    ProjectSettings,
    VcsSettings,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _require(table: dict, key: str, kind: type | tuple, section: str) -> Any:
    """Fetch a required key, checking its type."""
    value = table.get(key, _MISSING)
    if value is _MISSING:
        raise ConfigInvalidError(f"Missing required key: {section}.{key}")
    # bool is an int subclass; never accept it where a number is expected
    if kind is int and isinstance(value, bool):
        raise ConfigInvalidError(f"{section}.{key} must be an integer, got {value!r}")
    if not isinstance(value, kind):
        expected = kind.__name__ if isinstance(kind, type) else " or ".join(k.__name__ for k in kind)
        raise ConfigInvalidError(f"{section}.{key} must be {expected}, got {type(value).__name__}")
    return value


def _require_table(raw: dict, key: str) -> dict:
    return _require(raw, key, dict, "<root>")


def _string_list(table: dict, key: str, section: str) -> tuple[str, ...]:
    values = _require(table, key, list, section)
    for item in values:
        if not isinstance(item, str):
            raise ConfigInvalidError(f"{section}.{key} must contain only strings, got {item!r}")
    return tuple(values)


def _parse_command(name: str, command: Any) -> tuple[str, ...]:
    """Turn a configured command into an argument tuple.

    Strings are split with POSIX shell-word rules; no shell is ever involved.
    """
    if isinstance(command, str):
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise ConfigInvalidError(f"buildTargets.{name}.command cannot be parsed: {e}") from e
    elif isinstance(command, list) and all(isinstance(a, str) for a in command):
        argv = list(command)
    else:
        raise ConfigInvalidError(f"buildTargets.{name}.command must be a string or list of strings")

    if not argv or not argv[0].strip():
        raise ConfigInvalidError(f"buildTargets.{name}.command is empty")
    return tuple(argv)


def _read_raw(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigMalformedError(f"Failed to read config file {path}: {e}", path) from e

    try:
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = tomllib.loads(text)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigMalformedError(f"Failed to parse config file {path}: {e}", path) from e

    if not isinstance(raw, dict):
        raise ConfigMalformedError(f"Config file {path} must contain a table at the top level", path)
    return raw


def parse_build_config(raw: dict, base_dir: Path, config_path: Path | None = None) -> BuildConfig:
    """Build a validated BuildConfig from already-parsed data.

    Args:
        raw: Parsed TOML/JSON document
        base_dir: Directory that relative project paths resolve against
        config_path: File the data came from, if any

    Raises:
        ConfigInvalidError: On any schema violation
    """
    auto = _require_table(raw, "autoTrigger")
    enabled = _require(auto, "enabled", bool, "autoTrigger")
    watch_paths = _string_list(auto, "watchPaths", "autoTrigger")
    ignore_paths = _string_list(auto, "ignorePaths", "autoTrigger")
    extensions = _string_list(auto, "fileExtensions", "autoTrigger")
    cooldown = _require(auto, "buildCooldown", int, "autoTrigger")
    default_target = _require(auto, "buildTarget", str, "autoTrigger")

    for pattern in watch_paths + ignore_paths:
        if not pattern.strip():
            raise ConfigInvalidError("Glob patterns in autoTrigger.watchPaths/ignorePaths must not be empty")
    for ext in extensions:
        if not ext.startswith(".") or len(ext) < 2:
            raise ConfigInvalidError(f"File extension {ext!r} must start with '.'")
    if cooldown <= 0:
        raise ConfigInvalidError(f"autoTrigger.buildCooldown must be a positive integer, got {cooldown}")

    targets_raw = _require_table(raw, "buildTargets")
    targets: dict[str, BuildTarget] = {}
    for name, entry in targets_raw.items():
        if not isinstance(entry, dict):
            raise ConfigInvalidError(f"buildTargets.{name} must be a table with a command")
        targets[name] = BuildTarget(
            name=name,
            command=_parse_command(name, entry.get("command")),
            description=str(entry.get("description", "")),
        )
    if default_target not in targets:
        raise ConfigInvalidError(
            f"autoTrigger.buildTarget '{default_target}' does not match any entry under buildTargets"
        )

    notif = _require_table(raw, "notifications")
    notifications = NotificationSettings(
        enabled=_require(notif, "enabled", bool, "notifications"),
        on_success=_require(notif, "showBuildComplete", bool, "notifications"),
        on_failure=_require(notif, "showBuildError", bool, "notifications"),
    )

    github = _require_table(raw, "github")
    vcs = VcsSettings(
        auto_commit=_require(github, "autoCommit", bool, "github"),
        auto_push=_require(github, "autoPush", bool, "github"),
        commit_message_template=_require(github, "commitMessage", str, "github"),
    )

    project_raw = raw.get("project", {})
    if not isinstance(project_raw, dict):
        raise ConfigInvalidError("project must be a table")
    defaults = ProjectSettings(root=base_dir)
    project_values = {
        "root": ".",
        "manifest": defaults.manifest,
        "sourceDir": defaults.source_dir,
        "releaseDir": defaults.release_dir,
    }
    for key in project_values:
        if key in project_raw:
            project_values[key] = _require(project_raw, key, str, "project")
            if not project_values[key].strip():
                raise ConfigInvalidError(f"project.{key} must not be empty")
    project = ProjectSettings(
        root=(base_dir / project_values["root"]).resolve(),
        manifest=project_values["manifest"],
        source_dir=project_values["sourceDir"],
        release_dir=project_values["releaseDir"],
    )

    return BuildConfig(
        project=project,
        build_targets=targets,
        default_target=default_target,
        watch_paths=watch_paths,
        ignore_paths=ignore_paths,
        file_extensions=frozenset(extensions),
        build_cooldown=cooldown,
        auto_trigger_enabled=enabled,
        notifications=notifications,
        vcs=vcs,
        config_path=config_path,
    )


def load_build_config(path: str | Path) -> BuildConfig:
    """Load and validate the orchestrator configuration.

    Args:
        path: Path to TOML (or .json) config file

    Returns:
        Immutable BuildConfig

    Raises:
        ConfigNotFoundError: File is absent
        ConfigMalformedError: File cannot be parsed
        ConfigInvalidError: Schema or reference violation
    """
    path = Path(path)

    if not path.exists():
        raise ConfigNotFoundError(
            f"Config file not found: {path}\nRun 'autobuild init' to create a default config.", path
        )

    raw = _read_raw(path)
    try:
        config = parse_build_config(raw, base_dir=path.resolve().parent, config_path=path)
    except ConfigInvalidError as e:
        e.path = path
        raise

    logger.debug(f"Loaded {len(config.build_targets)} build target(s) from {path}")
    return config


def validate_config(config: BuildConfig) -> ConfigValidationResult:
    """Collect non-fatal warnings about a loaded config."""
    result = ConfigValidationResult(targets_loaded=len(config.build_targets))
    root = config.project.root

    if not config.auto_trigger_enabled:
        result.warnings.append("autoTrigger.enabled is false; only 'watch' and 'build' will run")

    for pattern in config.watch_paths:
        # Literal prefix before the first wildcard segment
        prefix_parts = []
        for part in pattern.split("/"):
            if any(ch in part for ch in "*?"):
                break
            prefix_parts.append(part)
        if prefix_parts and not (root / "/".join(prefix_parts)).exists():
            result.warnings.append(f"Watch path '{pattern}' does not match anything under {root}")

    if not config.project.release_path.exists():
        result.warnings.append(f"Release directory {config.project.release_path} does not exist yet")

    return result
