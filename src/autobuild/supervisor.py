"""Watch supervisor: owns the file watch, the debounce gate and the build cycle."""

import asyncio
import contextlib
import logging
import os
import time
from collections.abc import Callable

from autobuild_core.classifier import classify
from autobuild_core.config import load_build_config
from autobuild_core.debounce import DebounceGate
from autobuild_core.dispatcher import BuildDispatcher
from autobuild_core.errors import AlreadyRunningError, ConfigError, UnknownTargetError
from autobuild_core.file_watcher import WatchdogChangeSource
from autobuild_core.models import BuildConfig, BuildOutcome, SessionStatus, VcsStatus, WatchState
from autobuild_core.notifier import BuildNotifier, NoOpNotifier, notify_outcome
from autobuild_core.session import SessionStore
from autobuild_core.vcs import GitClient, run_vcs_post_action
from autobuild_core.watchers import ChangeSource, ChangeSourceFactory, FileChange

logger = logging.getLogger(__name__)


def post_build_actions(
    outcome: BuildOutcome,
    config: BuildConfig,
    git: GitClient,
    notifier: BuildNotifier,
    fallback: BuildNotifier | None = None,
) -> None:
    """Run VCS post-action then notify. Never raises."""
    try:
        run_vcs_post_action(outcome, config, git)
    except Exception:
        logger.exception("Unexpected error in VCS post-action")
    notify_outcome(outcome, config, notifier, fallback)


def build_once(
    config: BuildConfig,
    target: str | None = None,
    dispatcher: BuildDispatcher | None = None,
    notifier: BuildNotifier | None = None,
    git: GitClient | None = None,
    fallback: BuildNotifier | None = None,
) -> BuildOutcome:
    """One-shot build followed by the post-build actions.

    Raises:
        UnknownTargetError: Target is not configured
    """
    dispatcher = dispatcher or BuildDispatcher.for_config(config)
    outcome = dispatcher.run(target or config.default_target, config)
    post_build_actions(outcome, config, git or GitClient(config.project.root), notifier or NoOpNotifier(), fallback)
    return outcome


class WatchSupervisor:
    """Single watch session: file events → classify → debounce → build.

    At most one build runs at a time per instance. Events that arrive while a
    build is running are still classified and offered to the debounce gate,
    but never start a second build.
    """

    def __init__(
        self,
        config: BuildConfig,
        dispatcher: BuildDispatcher | None = None,
        notifier: BuildNotifier | None = None,
        git: GitClient | None = None,
        change_source_factory: ChangeSourceFactory | None = None,
        clock: Callable[[], float] = time.time,
        session_store: SessionStore | None = None,
        fallback_notifier: BuildNotifier | None = None,
    ):
        """Initialize supervisor.

        Args:
            config: Loaded configuration
            dispatcher: Build dispatcher (defaults to one rooted at the project)
            notifier: Notification handler (defaults to NoOpNotifier - silent)
            git: Git client for post-build actions and status
            change_source_factory: Creates the file watcher (defaults to watchdog)
            clock: Wall-clock source for the debounce gate
            session_store: Cross-process lock/status store; None disables it
            fallback_notifier: Used when the notifier fails (defaults to console)
        """
        self.config = config
        self.dispatcher = dispatcher or BuildDispatcher.for_config(config)
        self.notifier = notifier or NoOpNotifier()
        self.fallback_notifier = fallback_notifier
        self.git = git or GitClient(config.project.root)
        self.change_source_factory = change_source_factory or WatchdogChangeSource
        self.clock = clock
        self.session_store = session_store

        self.gate = DebounceGate(config.build_cooldown)
        self.state = WatchState.IDLE
        self.active_target = config.default_target
        self.builds_run = 0
        self.last_outcome: BuildOutcome | None = None

        self._active = False
        self._generation = 0
        self._queue: asyncio.Queue[FileChange] | None = None
        self._source: ChangeSource | None = None
        self._consumer: asyncio.Task | None = None
        self._build_task: asyncio.Task | None = None
        self._stopped = asyncio.Event()

        # Outbound events (host wires these)
        self.on_state_change: Callable[[WatchState], None] | None = None
        self.on_outcome: Callable[[BuildOutcome], None] | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def build_in_flight(self) -> bool:
        return self._build_task is not None and not self._build_task.done()

    def _set_state(self, state: WatchState) -> None:
        if state == self.state:
            return
        logger.debug(f"State {self.state.value} → {state.value}")
        self.state = state
        if self.session_store:
            self.session_store.write_status(self.status(include_vcs=False))
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception:
                logger.exception("State change listener error")

    async def start(self, target: str | None = None) -> None:
        """Register the file watch and begin consuming events.

        Raises:
            AlreadyRunningError: This instance or another process is watching
            UnknownTargetError: `target` is not configured
        """
        if self._active:
            raise AlreadyRunningError("This supervisor is already watching")
        if target is not None:
            self.dispatcher.resolve(target, self.config)
            self.active_target = target

        loop = asyncio.get_running_loop()
        if self.session_store:
            self.session_store.acquire(os.getpid())

        queue: asyncio.Queue[FileChange] = asyncio.Queue()
        source: ChangeSource | None = None
        try:
            source = self.change_source_factory(self.config.project.root, queue, loop)
            source.start()
        except BaseException:
            if source is not None:
                with contextlib.suppress(Exception):
                    source.stop()
            if self.session_store:
                self.session_store.release()
            raise

        self._source = source
        self._queue = queue
        self._active = True
        self._generation += 1
        self._stopped.clear()
        self._consumer = loop.create_task(self._consume(queue))
        self._set_state(WatchState.WATCHING)
        logger.info(
            f"Watching {self.config.project.root} → target '{self.active_target}' "
            f"(cooldown {self.config.build_cooldown}s)"
        )

    async def stop(self) -> bool:
        """Stop watching. Idempotent.

        An in-flight build is left to finish but its outcome is discarded.

        Returns:
            False if the supervisor was not running
        """
        if not self._active:
            logger.info("Watch session not running")
            return False

        self._active = False
        self._generation += 1

        try:
            if self._source:
                self._source.stop()
        except Exception as e:
            logger.error(f"Error stopping file watcher: {e}")
        finally:
            self._source = None

        if self._consumer:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

        self._queue = None
        self.gate.reset()
        self._set_state(WatchState.STOPPED)
        if self.session_store:
            self.session_store.release()
        self._stopped.set()
        logger.info("Watch session stopped")
        return True

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def _consume(self, queue: "asyncio.Queue[FileChange]") -> None:
        """Process events in delivery order until cancelled."""
        while True:
            change = await queue.get()
            try:
                self.handle_change(change)
            except Exception:
                logger.exception(f"Error handling change {change.path}")

    def handle_change(self, change: FileChange) -> bool:
        """Classify one change and start a build if it triggers.

        Must be called from the event loop thread.

        Returns:
            True if a build was started
        """
        result = classify(change.path, self.config)
        if not result.accepted:
            logger.debug(f"{change.kind.value} {change.path}: {result.value}")
            return False

        logger.debug(f"{change.kind.value} {change.path}: accepted")
        if not self.gate.offer(self.clock()):
            return False

        if self.build_in_flight:
            logger.info(f"Build already running; change to {change.path} not rebuilt")
            return False

        self._set_state(WatchState.BUILDING)
        self._build_task = asyncio.get_running_loop().create_task(
            self._build_cycle(self.active_target, self._generation)
        )
        return True

    async def _build_cycle(self, target: str, generation: int) -> BuildOutcome | None:
        outcome: BuildOutcome | None = None
        try:
            outcome = await asyncio.to_thread(self.dispatcher.run, target, self.config)
        except UnknownTargetError as e:
            logger.error(f"Auto-triggered build skipped: {e}")
        except Exception:
            logger.exception(f"Build '{target}' crashed")

        if generation != self._generation:
            logger.info(f"Session stopped during build of '{target}'; outcome discarded")
            return outcome

        try:
            if outcome is not None:
                self.builds_run += 1
                self.last_outcome = outcome
                await asyncio.to_thread(
                    post_build_actions, outcome, self.config, self.git, self.notifier, self.fallback_notifier
                )
                if self.on_outcome:
                    try:
                        self.on_outcome(outcome)
                    except Exception:
                        logger.exception("Outcome listener error")
        finally:
            if generation == self._generation:
                self._set_state(WatchState.WATCHING)
        return outcome

    def status(self, include_vcs: bool = True) -> SessionStatus:
        """Read-only snapshot of the session."""
        return SessionStatus(
            state=self.state,
            last_trigger_time=self.gate.last_trigger_time,
            active_target=self.active_target,
            pid=os.getpid() if self._active else None,
            builds_run=self.builds_run,
            last_outcome=self.last_outcome.summary() if self.last_outcome else None,
            vcs=self.git.status() if include_vcs else VcsStatus(),
        )

    def reload_config(self) -> bool:
        """Reload configuration from disk, keeping the old one on error."""
        if self.config.config_path is None:
            logger.warning("Config was not loaded from a file; nothing to reload")
            return False
        try:
            config = load_build_config(self.config.config_path)
        except ConfigError as e:
            logger.error(f"Failed to reload config: {e}")
            return False

        self.config = config
        self.gate.cooldown = config.build_cooldown
        if self.active_target not in config.build_targets:
            logger.warning(f"Target '{self.active_target}' no longer exists; using '{config.default_target}'")
            self.active_target = config.default_target
        logger.info("Configuration reloaded")
        return True
