"""CLI entry point for autobuild: init, watch/start, stop, status and one-shot builds."""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

from autobuild import __version__
from autobuild.supervisor import WatchSupervisor, build_once
from autobuild_core.config import load_build_config, validate_config
from autobuild_core.errors import AlreadyRunningError, ConfigError, UnknownTargetError, VcsActionError
from autobuild_core.models import BuildConfig, ProjectSettings
from autobuild_core.notifier import ConsoleNotifier, DesktopNotifier
from autobuild_core.session import SessionStore
from autobuild_core.vcs import GitClient

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "autobuild.toml"

# Default config template for a web frontend + desktop bundle project
DEFAULT_CONFIG_TEMPLATE = """\
# Auto-generated autobuild.toml

[project]
root = "."
manifest = "package.json"
sourceDir = "src-tauri"
releaseDir = "src-tauri/target/release"

[autoTrigger]
enabled = true
watchPaths = ["src/**", "src-tauri/src/**"]
ignorePaths = ["**/node_modules/**", "**/target/**", "**/dist/**", "**/.git/**"]
fileExtensions = [".ts", ".tsx", ".vue", ".rs", ".json", ".css"]
buildCooldown = 5
buildTarget = "web"

[buildTargets.web]
command = "npm run build"
description = "Build the web frontend"

[buildTargets.desktop]
command = "npx tauri build"
description = "Build the desktop application and installers"

[buildTargets.desktop-debug]
command = "npx tauri build --debug"
description = "Build an unoptimized desktop application"

[notifications]
enabled = true
showBuildComplete = true
showBuildError = true

[github]
autoCommit = false
autoPush = false
commitMessage = "chore: auto build {timestamp}"
"""


def create_default_config(config_path: Path) -> bool:
    """
    Create a default autobuild.toml if it doesn't exist.

    Args:
        config_path: Path where config should be created

    Returns:
        True if config was created, False if it already exists

    Raises:
        PermissionError: If unable to write to the directory
        OSError: If other file system errors occur
    """
    if config_path.exists():
        return False

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autobuild",
        description="Watch a project tree and run debounced builds on change.",
        epilog="Examples:\n"
        "  autobuild init                  # Check project layout, create autobuild.toml\n"
        "  autobuild start                 # Watch using autoTrigger settings\n"
        "  autobuild build --target web    # Build once\n"
        "  autobuild status                # Show session and branch info",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_NAME,
        help=f"Path to config file (default: {DEFAULT_CONFIG_NAME})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    init = sub.add_parser("init", help="Validate project layout and create a default config")
    init.add_argument("-y", "--yes", action="store_true", help="Initialize git without asking")
    init.add_argument("--no-git", action="store_true", help="Never initialize git")

    start = sub.add_parser("start", help="Watch for changes (requires autoTrigger.enabled)")
    start.add_argument("-t", "--target", help="Override autoTrigger.buildTarget")

    watch = sub.add_parser("watch", help="Watch for changes regardless of autoTrigger.enabled")
    watch.add_argument("-t", "--target", help="Override autoTrigger.buildTarget")

    sub.add_parser("stop", help="Stop the running watch session")
    sub.add_parser("status", help="Show watch session and git status")

    build = sub.add_parser("build", help="Run one build target now")
    build.add_argument("-t", "--target", required=True, help="Build target name")

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    return build_parser().parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def _error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _load(config_path: Path) -> BuildConfig | None:
    try:
        return load_build_config(config_path)
    except ConfigError as e:
        _error(str(e))
        return None


def _project_for(config_path: Path) -> ProjectSettings:
    """Project settings from the config, or defaults next to it."""
    try:
        return load_build_config(config_path).project
    except ConfigError:
        return ProjectSettings(root=config_path.parent)


def _default_notifier():
    return DesktopNotifier()


def cmd_init(args: argparse.Namespace, config_path: Path) -> int:
    project = _project_for(config_path)
    missing = [
        name
        for name, ok in (
            (project.manifest, (project.root / project.manifest).is_file()),
            (project.source_dir, (project.root / project.source_dir).is_dir()),
        )
        if not ok
    ]
    if missing:
        _error(f"Missing required project files in {project.root}: {', '.join(missing)}")
        return 1
    print(f"Project layout OK: {project.root}")

    git = GitClient(project.root)
    if args.no_git:
        pass
    elif not git.available:
        print("git not found on PATH; skipping repository setup")
    elif git.is_repository():
        print("Git repository already initialized")
    else:
        answer = "y" if args.yes else _ask("Initialize a git repository? [y/N] ")
        if answer.strip().lower() in ("y", "yes"):
            try:
                git.init()
                print("Initialized git repository")
            except VcsActionError as e:
                print(f"Warning: {e}", file=sys.stderr)

    if create_default_config(config_path):
        print(f"Created default config at: {config_path}")
    else:
        print(f"Config already exists: {config_path}")
    return 0


def _ask(prompt: str) -> str:
    try:
        return input(prompt)
    except EOFError:
        return ""


async def _serve(supervisor: WatchSupervisor, target: str | None) -> None:
    """Run the supervisor until SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    await supervisor.start(target)

    stopping: set[asyncio.Task] = set()

    def request_stop() -> None:
        task = loop.create_task(supervisor.stop())
        stopping.add(task)
        task.add_done_callback(stopping.discard)

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops: KeyboardInterrupt ends asyncio.run instead
            pass

    try:
        await supervisor.wait_stopped()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await supervisor.stop()


def cmd_watch(args: argparse.Namespace, config_path: Path, require_enabled: bool) -> int:
    config = _load(config_path)
    if config is None:
        return 1
    if require_enabled and not config.auto_trigger_enabled:
        _error("autoTrigger.enabled is false in the config; use 'autobuild watch' to watch anyway")
        return 1

    for warning in validate_config(config).warnings:
        logger.warning(warning)

    supervisor = WatchSupervisor(
        config,
        notifier=_default_notifier(),
        fallback_notifier=ConsoleNotifier(),
        session_store=SessionStore(config.project.state_dir),
    )
    try:
        asyncio.run(_serve(supervisor, args.target))
    except (AlreadyRunningError, UnknownTargetError) as e:
        _error(str(e))
        return 1
    return 0


def cmd_stop(args: argparse.Namespace, config_path: Path) -> int:
    store = SessionStore(_project_for(config_path).state_dir)
    pid = store.request_stop()
    if pid is None:
        print("Watch session not running")
    else:
        print(f"Stop requested (PID {pid})")
    return 0


def _format_time(timestamp: float | None) -> str:
    if timestamp is None:
        return "never"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def cmd_status(args: argparse.Namespace, config_path: Path) -> int:
    project = _project_for(config_path)
    store = SessionStore(project.state_dir)
    pid = store.active_pid()
    session = store.read_status() if pid else None

    print(f"Project:       {project.root}")
    if session is None:
        print("Monitor:       not running")
    else:
        print(f"Monitor:       running (PID {pid})")
        print(f"State:         {session.state.value}")
        print(f"Target:        {session.active_target}")
        print(f"Last trigger:  {_format_time(session.last_trigger_time)}")
        print(f"Builds run:    {session.builds_run}")
        if session.last_outcome:
            result = "succeeded" if session.last_outcome.get("succeeded") else "failed"
            print(f"Last build:    {session.last_outcome.get('target')} {result}")

    vcs = GitClient(project.root).status()
    if not vcs.is_repository:
        print("Git:           not a repository")
    else:
        changes = f"{vcs.changed_files} uncommitted change(s)" if vcs.has_changes else "clean"
        print(f"Git:           {vcs.branch or '(detached)'}, {changes}")
    return 0


def cmd_build(args: argparse.Namespace, config_path: Path) -> int:
    config = _load(config_path)
    if config is None:
        return 1
    try:
        outcome = build_once(
            config,
            args.target,
            notifier=_default_notifier(),
            fallback=ConsoleNotifier(),
        )
    except UnknownTargetError as e:
        _error(str(e))
        return 1

    if outcome.succeeded:
        print(f"Build '{outcome.target}' succeeded in {outcome.duration_str}")
        for artifact in outcome.output_artifacts:
            print(f"  {artifact}")
        return 0

    print(f"Build '{outcome.target}' failed after {outcome.duration_str}", file=sys.stderr)
    if outcome.failure_reason:
        print(outcome.failure_reason, file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the autobuild CLI.

    Handles:
    - Argument parsing
    - Dispatch to subcommands
    - Error handling and exit codes
    """
    args = parse_args(argv)
    configure_logging(args.verbose)
    config_path = Path(args.config).resolve()

    try:
        if args.command == "init":
            code = cmd_init(args, config_path)
        elif args.command == "start":
            code = cmd_watch(args, config_path, require_enabled=True)
        elif args.command == "watch":
            code = cmd_watch(args, config_path, require_enabled=False)
        elif args.command == "stop":
            code = cmd_stop(args, config_path)
        elif args.command == "status":
            code = cmd_status(args, config_path)
        else:
            code = cmd_build(args, config_path)
    except KeyboardInterrupt:
        # Gracefully handle Ctrl+C
        sys.exit(130)
    except (PermissionError, OSError) as e:
        _error(str(e))
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
