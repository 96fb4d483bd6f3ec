"""File watcher implementation using watchdog.

Events are handed from the observer thread to the asyncio loop through a
queue; all filtering and debouncing happen on the consumer side.
"""

import asyncio
import logging
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from autobuild_core.watchers import ChangeKind, FileChange

logger = logging.getLogger(__name__)


class _QueueingHandler(FileSystemEventHandler):
    """Forwards file events onto an asyncio queue."""

    def __init__(self, queue: "asyncio.Queue[FileChange]", loop: asyncio.AbstractEventLoop):
        """Initialize handler.

        Args:
            queue: Queue consumed by the supervisor loop
            loop: Event loop owning the queue
        """
        self.queue = queue
        self.loop = loop

    def _post(self, kind: ChangeKind, src_path: str | bytes) -> None:
        if isinstance(src_path, bytes):
            src_path = src_path.decode(errors="replace")
        change = FileChange(kind=kind, path=Path(src_path))
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, change)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped {kind.value} event for {src_path}: loop closed")

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation events."""
        if not event.is_directory:
            self._post(ChangeKind.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        if not event.is_directory:
            self._post(ChangeKind.CHANGED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion events."""
        if not event.is_directory:
            self._post(ChangeKind.DELETED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treat a move as deletion of the source and creation of the destination."""
        if event.is_directory:
            return
        self._post(ChangeKind.DELETED, event.src_path)
        self._post(ChangeKind.CREATED, event.dest_path)


class WatchdogChangeSource:
    """Recursive watchdog observer rooted at the project directory."""

    def __init__(self, root: Path, queue: "asyncio.Queue[FileChange]", loop: asyncio.AbstractEventLoop):
        self.root = Path(root)
        self.handler = _QueueingHandler(queue, loop)
        self.observer = Observer()
        self._scheduled = False

    def start(self) -> None:
        """Register the recursive watch and start the observer thread."""
        if not self.root.is_dir():
            raise FileNotFoundError(f"Watch root does not exist: {self.root}")
        self.observer.schedule(self.handler, str(self.root), recursive=True)
        self._scheduled = True
        self.observer.start()
        logger.info(f"Watching {self.root}")

    def stop(self) -> None:
        """Release the watch handle and stop the observer thread."""
        if self._scheduled:
            self.observer.unschedule_all()
            self._scheduled = False
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)
            logger.info("Stopped file watcher")
